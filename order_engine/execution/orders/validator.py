"""
Local fillability checks for signed orders.

Advisory only: the exchange re-checks everything when the fill is mined.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from order_engine.api.contracts import ExchangeContract
from order_engine.api.exceptions import OrderNotFillable
from order_engine.models.order import SignedOrder

logger = logging.getLogger(__name__)

# Exchange rejects fills whose rounding error exceeds 0.1%
ROUNDING_ERROR_LIMIT_PPM = 1000


class FillIssue(str, Enum):
    """Reasons an order cannot be filled."""
    EXPIRED = "expired"
    FULLY_FILLED = "fully_filled"
    CANCELLED = "cancelled"
    INVALID_SIGNATURE = "invalid_signature"
    TAKER_NOT_AUTHORIZED = "taker_not_authorized"
    FILL_AMOUNT_EXCEEDS_REMAINING = "fill_amount_exceeds_remaining"
    ROUNDING_ERROR_TOO_LARGE = "rounding_error_too_large"


@dataclass
class FillCheckResult:
    """Result of a fillability check."""
    order_hash: str
    is_fillable: bool = True
    issues: List[FillIssue] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)
    remaining_taker_amount: Optional[int] = None
    filled_taker_amount: int = 0
    cancelled_taker_amount: int = 0

    def add_issue(self, issue: FillIssue, message: str) -> None:
        self.issues.append(issue)
        self.messages.append(message)
        self.is_fillable = False


def is_rounding_error(numerator: int, denominator: int, target: int) -> bool:
    """
    Exchange rounding rule for ``target * numerator / denominator``.

    True when the truncated result is off by more than 0.1%.
    """
    remainder = (target * numerator) % denominator
    if remainder == 0:
        return False
    error_ppm = (remainder * 1_000_000) // (numerator * target)
    return error_ppm > ROUNDING_ERROR_LIMIT_PPM


class FillValidator:
    """
    Checks that a signed order is still worth submitting.

    Checks:
    - Signature still recovers the maker
    - Not expired (now < expiration)
    - Not fully filled or cancelled
    - Taker allowed to fill (for orders bound to one taker)
    - Fill amount within remaining and without excessive rounding
    """

    def __init__(
        self,
        exchange: ExchangeContract,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            exchange: Exchange contract for filled/cancelled amounts
            clock: Returns the current unix time in seconds
        """
        self.exchange = exchange
        self.clock = clock

    async def get_remaining_taker_amount(self, signed_order: SignedOrder) -> int:
        unavailable = await self.exchange.get_unavailable_taker_token_amount(signed_order.order_hash)
        return max(0, signed_order.order.taker_token_amount - unavailable)

    async def check_fillable(
        self,
        signed_order: SignedOrder,
        taker_address: Optional[str] = None,
        fill_amount: Optional[int] = None,
    ) -> FillCheckResult:
        """
        Run all checks and collect every issue found.

        Args:
            signed_order: Order to check
            taker_address: Prospective taker, checked against a bound taker
            fill_amount: Prospective fill in taker base units

        Returns:
            FillCheckResult; ``is_fillable`` False lists the issues
        """
        order = signed_order.order
        result = FillCheckResult(order_hash=signed_order.order_hash)

        if not signed_order.is_valid_signature():
            result.add_issue(
                FillIssue.INVALID_SIGNATURE,
                f"Signature does not recover maker {order.maker}",
            )

        now = int(self.clock())
        if now >= order.expiration_unix_timestamp_sec:
            result.add_issue(
                FillIssue.EXPIRED,
                f"Expired at {order.expiration_unix_timestamp_sec} (now {now})",
            )

        if taker_address is not None and not order.is_open and taker_address.lower() != order.taker:
            result.add_issue(
                FillIssue.TAKER_NOT_AUTHORIZED,
                f"Order is reserved for taker {order.taker}",
            )

        filled = await self.exchange.filled(signed_order.order_hash)
        cancelled = await self.exchange.cancelled(signed_order.order_hash)
        remaining = max(0, order.taker_token_amount - filled - cancelled)
        result.filled_taker_amount = filled
        result.cancelled_taker_amount = cancelled
        result.remaining_taker_amount = remaining

        if remaining == 0:
            if cancelled > 0:
                result.add_issue(FillIssue.CANCELLED, "Remaining amount was cancelled")
            else:
                result.add_issue(FillIssue.FULLY_FILLED, "Order is fully filled")
        elif fill_amount is not None:
            if fill_amount > remaining:
                result.add_issue(
                    FillIssue.FILL_AMOUNT_EXCEEDS_REMAINING,
                    f"Fill {fill_amount} exceeds remaining {remaining}",
                )
            elif fill_amount > 0 and is_rounding_error(
                fill_amount, order.taker_token_amount, order.maker_token_amount
            ):
                result.add_issue(
                    FillIssue.ROUNDING_ERROR_TOO_LARGE,
                    f"Filling {fill_amount} rounds the maker amount by more than 0.1%",
                )

        if not result.is_fillable:
            logger.info(f"Order {result.order_hash} not fillable: {', '.join(result.messages)}")
        return result

    async def ensure_fillable(
        self,
        signed_order: SignedOrder,
        taker_address: Optional[str] = None,
        fill_amount: Optional[int] = None,
    ) -> FillCheckResult:
        """Like ``check_fillable`` but raises OrderNotFillable on any issue."""
        result = await self.check_fillable(signed_order, taker_address, fill_amount)
        if not result.is_fillable:
            raise OrderNotFillable(result)
        return result
