"""
Order records exchanged between maker, taker and the settlement contract.
"""
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict

from eth_utils import is_hex_address

from order_engine.api.exceptions import InvalidAmount, InvalidOrder, OrderIntegrityError
from order_engine.models.units import UINT256_MAX

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"

# dataclass field -> protocol JSON key
_ADDRESS_FIELDS = {
    "maker": "maker",
    "taker": "taker",
    "fee_recipient": "feeRecipient",
    "maker_token_address": "makerTokenAddress",
    "taker_token_address": "takerTokenAddress",
    "exchange_contract_address": "exchangeContractAddress",
}
_INTEGER_FIELDS = {
    "salt": "salt",
    "maker_fee": "makerFee",
    "taker_fee": "takerFee",
    "maker_token_amount": "makerTokenAmount",
    "taker_token_amount": "takerTokenAmount",
    "expiration_unix_timestamp_sec": "expirationUnixTimestampSec",
}
_POSITIVE_FIELDS = ("maker_token_amount", "taker_token_amount")


def generate_salt() -> int:
    """Random 256-bit salt."""
    return secrets.randbits(256)


def normalize_address(value: Any, field_name: str = "address") -> str:
    """Validate a 20-byte hex address and return it lowercased."""
    if not isinstance(value, str) or not is_hex_address(value):
        raise InvalidOrder(field_name, f"{value!r} is not a 20-byte hex address")
    return value.lower()


def _parse_integer(value: Any, field_name: str) -> int:
    """Accept ints and decimal strings (the JSON wire form)."""
    if isinstance(value, bool):
        raise InvalidAmount(value, f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        # Wire amounts are plain ASCII decimal strings
        if text.isascii() and text.isdigit():
            return int(text)
    raise InvalidAmount(value, f"{field_name} must be a non-negative integer")


@dataclass(frozen=True)
class OrderRecord:
    """
    Canonical description of a trade intent.

    Amounts are integer base units. ``taker`` and ``fee_recipient`` may be
    NULL_ADDRESS (any taker / no fee recipient).
    """
    maker: str
    taker: str
    fee_recipient: str
    maker_token_address: str
    taker_token_address: str
    exchange_contract_address: str
    salt: int
    maker_fee: int
    taker_fee: int
    maker_token_amount: int
    taker_token_amount: int
    expiration_unix_timestamp_sec: int

    def __post_init__(self):
        for name in _ADDRESS_FIELDS:
            object.__setattr__(self, name, normalize_address(getattr(self, name), name))

        for name in _INTEGER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidAmount(value, f"{name} must be an integer")
            if value < 0:
                raise InvalidAmount(value, f"{name} must be non-negative")
            if value > UINT256_MAX:
                raise InvalidAmount(value, f"{name} exceeds uint256 range")

        for name in _POSITIVE_FIELDS:
            if getattr(self, name) == 0:
                raise InvalidAmount(0, f"{name} must be positive")

    @property
    def is_open(self) -> bool:
        """Whether any taker may fill the order."""
        return self.taker == NULL_ADDRESS

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the protocol JSON shape (integers as decimal strings)."""
        data: Dict[str, Any] = {}
        for name, key in _ADDRESS_FIELDS.items():
            data[key] = getattr(self, name)
        for name, key in _INTEGER_FIELDS.items():
            data[key] = str(getattr(self, name))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderRecord":
        """Build a validated record from the protocol JSON shape."""
        kwargs: Dict[str, Any] = {}
        for name, key in {**_ADDRESS_FIELDS, **_INTEGER_FIELDS}.items():
            if key not in data:
                raise InvalidOrder(key, "missing")
        for name, key in _ADDRESS_FIELDS.items():
            kwargs[name] = data[key]
        for name, key in _INTEGER_FIELDS.items():
            kwargs[name] = _parse_integer(data[key], key)
        return cls(**kwargs)


@dataclass(frozen=True)
class ECSignature:
    """secp256k1 signature components; ``r`` and ``s`` are 0x-prefixed 32-byte hex."""
    v: int
    r: str
    s: str

    def __post_init__(self):
        if self.v not in (27, 28):
            raise InvalidOrder("ecSignature.v", f"{self.v} is not 27 or 28")
        for name in ("r", "s"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.startswith("0x") or len(value) != 66:
                raise InvalidOrder(f"ecSignature.{name}", f"{value!r} is not 32-byte hex")
            object.__setattr__(self, name, value.lower())

    @classmethod
    def from_vrs(cls, v: int, r: int, s: int) -> "ECSignature":
        return cls(v=v, r="0x" + r.to_bytes(32, "big").hex(), s="0x" + s.to_bytes(32, "big").hex())

    @classmethod
    def from_hex(cls, signature: str) -> "ECSignature":
        """
        Parse a 65-byte ``r || s || v`` signature as returned by eth_sign.

        Some nodes return v as 0/1; those are shifted to 27/28.
        """
        raw = signature[2:] if signature.startswith("0x") else signature
        if len(raw) != 130:
            raise InvalidOrder("signature", f"expected 65 bytes, got {len(raw) // 2}")
        v = int(raw[128:130], 16)
        if v < 27:
            v += 27
        return cls(v=v, r="0x" + raw[0:64], s="0x" + raw[64:128])

    @property
    def vrs(self):
        return self.v, int(self.r, 16), int(self.s, 16)

    def to_dict(self) -> Dict[str, Any]:
        return {"v": self.v, "r": self.r, "s": self.s}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ECSignature":
        try:
            return cls(v=int(data["v"]), r=data["r"], s=data["s"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidOrder("ecSignature", str(e))


@dataclass(frozen=True)
class SignedOrder:
    """
    An OrderRecord plus the maker's signature over its hash.

    Frozen: assigning to a field raises FrozenInstanceError, and a copy
    with altered order fields fails ``ensure_integrity``.
    """
    order: OrderRecord
    ec_signature: ECSignature
    order_hash: str = field(init=False, repr=True, compare=False)

    def __post_init__(self):
        from order_engine.execution.orders.hasher import order_hash_hex

        object.__setattr__(self, "order_hash", order_hash_hex(self.order))

    @property
    def maker(self) -> str:
        return self.order.maker

    def is_valid_signature(self) -> bool:
        """Whether the signature recovers the maker over the current hash."""
        from order_engine.execution.orders.signer import is_valid_signature

        return is_valid_signature(self.order_hash, self.ec_signature, self.order.maker)

    def ensure_integrity(self) -> None:
        """Raise OrderIntegrityError unless the maker's signature still holds."""
        if not self.is_valid_signature():
            raise OrderIntegrityError(
                f"Signature on order {self.order_hash} does not match maker {self.order.maker}"
            )

    def to_dict(self) -> Dict[str, Any]:
        data = self.order.to_dict()
        data["ecSignature"] = self.ec_signature.to_dict()
        data["orderHash"] = self.order_hash
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignedOrder":
        """
        Rebuild a signed order from its JSON shape.

        If ``orderHash`` is present it must match the recomputed hash.
        """
        if "ecSignature" not in data:
            raise InvalidOrder("ecSignature", "missing")
        order = OrderRecord.from_dict(data)
        signed = cls(order=order, ec_signature=ECSignature.from_dict(data["ecSignature"]))
        claimed = data.get("orderHash")
        if claimed is None:
            return signed
        if not isinstance(claimed, str):
            raise InvalidOrder("orderHash", f"{claimed!r} is not a hex string")
        if claimed.lower() != signed.order_hash:
            raise OrderIntegrityError(
                f"orderHash {claimed} does not match order fields ({signed.order_hash})"
            )
        return signed
