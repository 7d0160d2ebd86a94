"""
Signing collaborators.

Both implement ``async sign(digest: bytes, address: str) -> ECSignature`` and
keep key material out of the engine core.
"""
import logging
from typing import Dict, Iterable

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_utils import encode_hex

from order_engine.api.exceptions import (
    LedgerError,
    LedgerRPCError,
    SigningRejected,
    SigningUnavailable,
)
from order_engine.models.order import ECSignature

logger = logging.getLogger(__name__)

# EIP-1193 "user rejected request"
USER_REJECTED_CODE = 4001
_REJECTION_MARKERS = ("denied", "rejected", "declined")


class LocalKeySigner:
    """
    Signs with private keys held in process.

    With ``prefix_messages`` (default) it behaves like a node answering
    ``eth_sign``: the personal-message prefix is added before signing.
    Without it the digest is signed raw, which pairs with an OrderSigner
    configured to add the prefix itself.
    """

    def __init__(self, private_keys: Iterable[str], prefix_messages: bool = True):
        self.prefix_messages = prefix_messages
        self._accounts: Dict[str, object] = {}
        for key in private_keys:
            account = Account.from_key(key)
            self._accounts[account.address.lower()] = account

    @property
    def addresses(self):
        return list(self._accounts)

    async def sign(self, digest: bytes, address: str) -> ECSignature:
        account = self._accounts.get(address.lower())
        if account is None:
            raise SigningUnavailable(address)

        if self.prefix_messages:
            signed = account.sign_message(encode_defunct(primitive=digest))
            return ECSignature.from_vrs(signed.v, signed.r, signed.s)

        signature = keys.PrivateKey(bytes(account.key)).sign_msg_hash(digest)
        return ECSignature.from_vrs(signature.v + 27, signature.r, signature.s)


class LedgerSigner:
    """
    Delegates signing to the node's ``eth_sign`` (keys unlocked on the node).
    """

    def __init__(self, ledger):
        """
        Args:
            ledger: JsonRpcClient (or compatible) exposing ``sign``
        """
        self.ledger = ledger

    async def sign(self, digest: bytes, address: str) -> ECSignature:
        try:
            raw = await self.ledger.sign(address, encode_hex(digest))
        except LedgerRPCError as e:
            message = (e.message or "").lower()
            if e.code == USER_REJECTED_CODE or any(m in message for m in _REJECTION_MARKERS):
                raise SigningRejected(address, e.message)
            raise SigningUnavailable(address, e.message)
        except LedgerError as e:
            raise SigningUnavailable(address, str(e))

        logger.debug(f"eth_sign returned signature for {address}")
        return ECSignature.from_hex(raw)
