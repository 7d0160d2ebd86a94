"""
Order signing.

The exchange contract validates signatures as
``ecrecover(keccak256("\\x19Ethereum Signed Message:\\n32" ++ orderHash))``.
Nodes answering ``eth_sign`` add that prefix themselves; signers that sign
raw digests need the engine to add it first (``add_personal_message_prefix``).
"""
import logging
from typing import Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import keccak, to_bytes

from order_engine.api.exceptions import InvalidSignature, OrderIntegrityError
from order_engine.execution.orders.hasher import order_hash_hex
from order_engine.models.order import ECSignature, OrderRecord, SignedOrder

logger = logging.getLogger(__name__)

PERSONAL_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n32"


def _hash_bytes(order_hash: Union[str, bytes]) -> bytes:
    if isinstance(order_hash, bytes):
        return order_hash
    return to_bytes(hexstr=order_hash)


def personal_message_hash(order_hash: Union[str, bytes]) -> bytes:
    """keccak256 of the Ethereum signed-message prefix plus the 32-byte hash."""
    return keccak(PERSONAL_MESSAGE_PREFIX + _hash_bytes(order_hash))


def is_valid_signature(
    order_hash: Union[str, bytes],
    signature: ECSignature,
    signer_address: str,
) -> bool:
    """Whether ``signature`` over ``order_hash`` recovers ``signer_address``."""
    try:
        recovered = Account.recover_message(
            encode_defunct(primitive=_hash_bytes(order_hash)),
            vrs=signature.vrs,
        )
    except (ValueError, BadSignature, ValidationError) as e:
        logger.debug(f"Signature recovery failed for {order_hash}: {e}")
        return False
    return recovered.lower() == signer_address.lower()


class OrderSigner:
    """
    Signs order hashes through an external signing collaborator.

    The collaborator holds the keys; this class only decides whether the
    personal-message prefix is applied locally, checks the result and
    assembles the SignedOrder.
    """

    def __init__(self, collaborator, add_personal_message_prefix: bool = False):
        """
        Args:
            collaborator: Object with ``async sign(digest: bytes, address: str) -> ECSignature``
            add_personal_message_prefix: Hash the order hash with the personal
                message prefix before handing it to the collaborator
        """
        self.collaborator = collaborator
        self.add_personal_message_prefix = add_personal_message_prefix

    async def sign(self, order_hash: str, signer_address: str) -> ECSignature:
        """
        Sign an order hash.

        Raises:
            SigningUnavailable: Collaborator cannot sign for the address
            SigningRejected: Collaborator declined
            InvalidSignature: Signature does not recover the signer
        """
        digest = _hash_bytes(order_hash)
        if self.add_personal_message_prefix:
            digest = personal_message_hash(digest)

        signature = await self.collaborator.sign(digest, signer_address)

        if not is_valid_signature(order_hash, signature, signer_address):
            raise InvalidSignature(order_hash, signer_address)
        return signature

    async def sign_order(
        self,
        order_hash: str,
        maker_address: str,
        order: OrderRecord,
    ) -> SignedOrder:
        """
        Sign ``order`` as ``maker_address`` and attach the signature.

        Raises:
            OrderIntegrityError: ``order_hash`` is not the hash of ``order``
                or ``maker_address`` is not the order's maker
        """
        expected = order_hash_hex(order)
        if order_hash.lower() != expected:
            raise OrderIntegrityError(
                f"Order hash {order_hash} does not match order fields ({expected})"
            )
        if maker_address.lower() != order.maker:
            raise OrderIntegrityError(
                f"Signer {maker_address} is not the order maker {order.maker}"
            )

        signature = await self.sign(expected, maker_address)
        signed = SignedOrder(order=order, ec_signature=signature)
        logger.info(f"Signed order {signed.order_hash} for maker {order.maker}")
        return signed
