"""
Thin wrappers over the protocol contracts.

Calldata is ABI-encoded locally and sent through the ledger provider;
reads go through ``eth_call`` and writes through ``eth_sendTransaction``
(the node signs and fills in gas price and nonce).
"""
import logging
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, keccak, to_bytes

from order_engine.models.order import ECSignature, OrderRecord
from order_engine.models.receipt import TransactionReceipt

logger = logging.getLogger(__name__)

UNLIMITED_ALLOWANCE = 2 ** 256 - 1


def selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


def encode_call(signature: str, types: Sequence[str], args: Sequence[Any]) -> str:
    """0x-hex calldata for ``signature`` with ABI-encoded ``args``."""
    return "0x" + (selector(signature) + encode(list(types), list(args))).hex()


def _decode_uint(result: str) -> int:
    return decode(["uint256"], to_bytes(hexstr=result))[0]


class _Contract:
    def __init__(self, ledger, address: str, gas_limit: Optional[int] = None):
        self.ledger = ledger
        self.address = address.lower()
        self.gas_limit = gas_limit

    def _tx(self, sender: str, data: str, value: int = 0) -> Dict[str, Any]:
        tx: Dict[str, Any] = {"from": sender, "to": self.address, "data": data}
        if value:
            tx["value"] = hex(value)
        if self.gas_limit:
            tx["gas"] = hex(self.gas_limit)
        return tx


class TokenContract(_Contract):
    """ERC20 token."""

    async def allowance(self, owner: str, spender: str) -> int:
        data = encode_call("allowance(address,address)", ["address", "address"], [owner, spender])
        return _decode_uint(await self.ledger.call(self.address, data))

    async def balance_of(self, owner: str) -> int:
        data = encode_call("balanceOf(address)", ["address"], [owner])
        return _decode_uint(await self.ledger.call(self.address, data))

    async def approve(self, owner: str, spender: str, amount: int) -> str:
        """Submit ``approve(spender, amount)`` from ``owner``; returns the tx hash."""
        data = encode_call("approve(address,uint256)", ["address", "uint256"], [spender, amount])
        return await self.ledger.send_transaction(self._tx(owner, data))


class EtherTokenContract(TokenContract):
    """Wrapped ether: ERC20 plus payable ``deposit``."""

    async def deposit(self, sender: str, amount: int) -> str:
        data = encode_call("deposit()", [], [])
        return await self.ledger.send_transaction(self._tx(sender, data, value=amount))


class ExchangeError(IntEnum):
    """Error ids logged by the exchange's ``LogError`` event."""
    ORDER_EXPIRED = 0
    ORDER_FULLY_FILLED_OR_CANCELLED = 1
    ROUNDING_ERROR_TOO_LARGE = 2
    INSUFFICIENT_BALANCE_OR_ALLOWANCE = 3


LOG_ERROR_TOPIC = "0x" + keccak(text="LogError(uint8,bytes32)").hex()

_ORDER_TYPES = ["address[5]", "uint256[6]"]


def order_call_args(order: OrderRecord) -> List[Any]:
    """``orderAddresses`` and ``orderValues`` arrays in exchange layout."""
    addresses = [
        order.maker,
        order.taker,
        order.maker_token_address,
        order.taker_token_address,
        order.fee_recipient,
    ]
    values = [
        order.maker_token_amount,
        order.taker_token_amount,
        order.maker_fee,
        order.taker_fee,
        order.expiration_unix_timestamp_sec,
        order.salt,
    ]
    return [addresses, values]


def find_exchange_errors(receipt: TransactionReceipt, exchange_address: str) -> List[ExchangeError]:
    """Error ids from ``LogError`` events emitted by ``exchange_address``."""
    errors = []
    for log in receipt.logs:
        if log.address != exchange_address.lower() or not log.topics:
            continue
        if log.topics[0] != LOG_ERROR_TOPIC or len(log.topics) < 2:
            continue
        code = int(log.topics[1], 16)
        try:
            errors.append(ExchangeError(code))
        except ValueError:
            logger.warning(f"Unrecognized exchange error id {code} in {receipt.tx_hash}")
    return errors


class ExchangeContract(_Contract):
    """The settlement contract."""

    async def filled(self, order_hash: str) -> int:
        data = encode_call("filled(bytes32)", ["bytes32"], [to_bytes(hexstr=order_hash)])
        return _decode_uint(await self.ledger.call(self.address, data))

    async def cancelled(self, order_hash: str) -> int:
        data = encode_call("cancelled(bytes32)", ["bytes32"], [to_bytes(hexstr=order_hash)])
        return _decode_uint(await self.ledger.call(self.address, data))

    async def get_unavailable_taker_token_amount(self, order_hash: str) -> int:
        data = encode_call(
            "getUnavailableTakerTokenAmount(bytes32)", ["bytes32"], [to_bytes(hexstr=order_hash)]
        )
        return _decode_uint(await self.ledger.call(self.address, data))

    async def fill_order(
        self,
        order: OrderRecord,
        signature: ECSignature,
        fill_taker_token_amount: int,
        should_throw_on_insufficient_balance_or_allowance: bool,
        taker: str,
    ) -> str:
        """Submit ``fillOrder`` from ``taker``; returns the tx hash."""
        data = encode_call(
            "fillOrder(address[5],uint256[6],uint256,bool,uint8,bytes32,bytes32)",
            _ORDER_TYPES + ["uint256", "bool", "uint8", "bytes32", "bytes32"],
            order_call_args(order) + [
                fill_taker_token_amount,
                should_throw_on_insufficient_balance_or_allowance,
                signature.v,
                to_bytes(hexstr=signature.r),
                to_bytes(hexstr=signature.s),
            ],
        )
        return await self.ledger.send_transaction(self._tx(taker, data))

    async def cancel_order(self, order: OrderRecord, cancel_taker_token_amount: int) -> str:
        """Submit ``cancelOrder`` from the maker; returns the tx hash."""
        data = encode_call(
            "cancelOrder(address[5],uint256[6],uint256)",
            _ORDER_TYPES + ["uint256"],
            order_call_args(order) + [cancel_taker_token_amount],
        )
        return await self.ledger.send_transaction(self._tx(order.maker, data))
