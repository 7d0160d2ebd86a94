"""
Canonical order hashing.

The exchange contract recomputes this hash on every fill, so the encoding
must match it bit for bit: Solidity tightly-packed encoding of six
addresses (20 bytes each) followed by six uint256 values (32 bytes each,
big-endian), hashed with keccak-256.
"""
from typing import Tuple

from eth_abi.packed import encode_packed
from eth_utils import keccak

from order_engine.models.order import OrderRecord

ORDER_HASH_TYPES: Tuple[str, ...] = (
    "address",  # exchangeContractAddress
    "address",  # maker
    "address",  # taker
    "address",  # makerTokenAddress
    "address",  # takerTokenAddress
    "address",  # feeRecipient
    "uint256",  # makerTokenAmount
    "uint256",  # takerTokenAmount
    "uint256",  # makerFee
    "uint256",  # takerFee
    "uint256",  # expirationUnixTimestampSec
    "uint256",  # salt
)

PACKED_ORDER_LENGTH = 6 * 20 + 6 * 32


def pack_order_fields(
    exchange_contract_address: str,
    maker: str,
    taker: str,
    maker_token_address: str,
    taker_token_address: str,
    fee_recipient: str,
    maker_token_amount: int,
    taker_token_amount: int,
    maker_fee: int,
    taker_fee: int,
    expiration_unix_timestamp_sec: int,
    salt: int,
) -> bytes:
    """
    Pack raw order values in hash order.

    Pure function over plain values; no validation beyond what the ABI
    encoder enforces, so it can be fed known-answer vectors directly.
    """
    return encode_packed(
        list(ORDER_HASH_TYPES),
        [
            exchange_contract_address,
            maker,
            taker,
            maker_token_address,
            taker_token_address,
            fee_recipient,
            maker_token_amount,
            taker_token_amount,
            maker_fee,
            taker_fee,
            expiration_unix_timestamp_sec,
            salt,
        ],
    )


def encode_order(order: OrderRecord) -> bytes:
    """Packed encoding of an order record."""
    return pack_order_fields(
        order.exchange_contract_address,
        order.maker,
        order.taker,
        order.maker_token_address,
        order.taker_token_address,
        order.fee_recipient,
        order.maker_token_amount,
        order.taker_token_amount,
        order.maker_fee,
        order.taker_fee,
        order.expiration_unix_timestamp_sec,
        order.salt,
    )


def hash_order(order: OrderRecord) -> bytes:
    """keccak-256 digest of the packed order."""
    return keccak(encode_order(order))


def order_hash_hex(order: OrderRecord) -> str:
    """Order hash as 0x-prefixed lowercase hex."""
    return "0x" + hash_order(order).hex()
