"""
Conversion between human-facing decimal amounts and integer base units.

Rounding rule: the scaled value is rounded ROUND_HALF_UP (ties away from
zero; inputs are never negative). Scaling runs in a local decimal context
wide enough to be exact, so rounding only ever happens once.
"""
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Union

from order_engine.api.exceptions import InvalidAmount

logger = logging.getLogger(__name__)

UINT256_MAX = 2 ** 256 - 1
MAX_DECIMALS = 77  # 10**77 is the largest power of ten below 2**256

AmountLike = Union[int, float, str, Decimal]

# Precision for intermediate arithmetic; uint256 needs 78 digits.
_PRECISION = 200


def _to_decimal(amount: AmountLike) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidAmount(amount, "booleans are not amounts")

    if isinstance(amount, Decimal):
        value = amount
    elif isinstance(amount, int):
        value = Decimal(amount)
    elif isinstance(amount, float):
        # str() gives the shortest repr, so 0.2 means exactly 0.2
        value = Decimal(str(amount))
    elif isinstance(amount, str):
        try:
            value = Decimal(amount.strip())
        except InvalidOperation:
            raise InvalidAmount(amount, "not a decimal number")
    else:
        raise InvalidAmount(amount, f"unsupported type {type(amount).__name__}")

    if not value.is_finite():
        raise InvalidAmount(amount, "must be finite")
    if value < 0:
        raise InvalidAmount(amount, "must be non-negative")
    return value


def _check_decimals(decimals: int) -> None:
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise InvalidAmount(decimals, "decimals must be an integer")
    if not 0 <= decimals <= MAX_DECIMALS:
        raise InvalidAmount(decimals, f"decimals must be within 0..{MAX_DECIMALS}")


def to_base_units(amount: AmountLike, decimals: int) -> int:
    """
    Convert a decimal amount to integer base units.

    Args:
        amount: Non-negative, finite amount (int, float, str or Decimal)
        decimals: Token decimal precision

    Returns:
        amount * 10**decimals rounded half-up to an integer

    Raises:
        InvalidAmount: Negative, non-finite, unparseable or above uint256
    """
    _check_decimals(decimals)
    value = _to_decimal(amount)

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        ctx.rounding = ROUND_HALF_UP
        if value.adjusted() + decimals >= _PRECISION - 1:
            raise InvalidAmount(amount, "exceeds uint256 range")
        scaled = value.scaleb(decimals)
        rounded = scaled.to_integral_value(rounding=ROUND_HALF_UP)

    if rounded != scaled:
        logger.debug(f"Rounded {amount} to {rounded} base units ({decimals} decimals)")

    result = int(rounded)
    if result > UINT256_MAX:
        raise InvalidAmount(amount, "exceeds uint256 range")
    return result


def from_base_units(amount: int, decimals: int) -> Decimal:
    """
    Convert integer base units back to a decimal amount.

    The result is exact: ``from_base_units(to_base_units(a, d), d) == a``
    for any ``a`` with at most ``d`` fractional digits.
    """
    _check_decimals(decimals)
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(amount, "base units must be an integer")
    if amount < 0:
        raise InvalidAmount(amount, "must be non-negative")
    if amount > UINT256_MAX:
        raise InvalidAmount(amount, "exceeds uint256 range")

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(amount).scaleb(-decimals)


class AmountConverter:
    """
    Token-aware amount conversion.

    Decimals are resolved per token from the address registry instead of a
    single global constant.
    """

    def __init__(self, registry):
        """
        Args:
            registry: ProtocolAddressRegistry used to resolve token decimals
        """
        self.registry = registry

    def to_base_units(self, amount: AmountLike, token: str) -> int:
        """Convert a human amount of ``token`` (symbol or address) to base units."""
        return to_base_units(amount, self.registry.token(token).decimals)

    def from_base_units(self, amount: int, token: str) -> Decimal:
        """Convert base units of ``token`` (symbol or address) to a decimal amount."""
        return from_base_units(amount, self.registry.token(token).decimals)
