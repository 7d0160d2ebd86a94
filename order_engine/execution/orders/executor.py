"""
Fill and cancel submission.
"""
import logging
from typing import Optional

from order_engine.api.contracts import ExchangeContract, find_exchange_errors
from order_engine.api.exceptions import (
    FillRejected,
    InvalidAmount,
    LedgerRPCError,
    OrderNotFillable,
    TransactionReverted,
    TransactionTimeout,
)
from order_engine.execution.orders.validator import FillValidator
from order_engine.execution.orders.waiter import TransactionWaiter
from order_engine.logging import log_timing
from order_engine.models.order import SignedOrder
from order_engine.models.receipt import FillReceipt, TransactionReceipt

logger = logging.getLogger(__name__)


def _require_positive(amount: int, what: str) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(amount, f"{what} must be an integer in base units")
    if amount <= 0:
        raise InvalidAmount(amount, f"{what} must be positive")


class FillExecutor:
    """
    Submits fills against the exchange contract.

    Failure paths stay distinguishable:
    - OrderNotFillable: local pre-check failed, nothing submitted
    - FillRejected(submitted=False): node refused the transaction
    - FillRejected(submitted=True): mined, exchange logged an error or
      reverted the fill
    - TransactionTimeout: from the waiter
    """

    def __init__(
        self,
        exchange: ExchangeContract,
        validator: FillValidator,
        waiter: TransactionWaiter,
        should_throw_on_insufficient_balance_or_allowance: bool = True,
        attempt_if_unfillable: bool = False,
    ):
        """
        Args:
            exchange: Exchange contract wrapper
            validator: Local pre-check
            waiter: Confirmation waiter
            should_throw_on_insufficient_balance_or_allowance: Make the
                exchange revert instead of logging an error when either
                party lacks balance or allowance
            attempt_if_unfillable: Submit even when the pre-check fails and
                let the exchange decide
        """
        self.exchange = exchange
        self.validator = validator
        self.waiter = waiter
        self.should_throw = should_throw_on_insufficient_balance_or_allowance
        self.attempt_if_unfillable = attempt_if_unfillable

    async def _submit(self, action: str, send, precheck=None) -> str:
        try:
            return await send
        except LedgerRPCError as e:
            logger.error(f"{action} refused by node: {e.message}")
            raise FillRejected(e.message, submitted=False, precheck=precheck)

    def _check_receipt(self, receipt: TransactionReceipt, precheck=None) -> None:
        errors = find_exchange_errors(receipt, self.exchange.address)
        if errors:
            error = errors[0]
            logger.error(f"Exchange logged {error.name} for {receipt.tx_hash}")
            raise FillRejected(
                error.name,
                submitted=True,
                error_code=int(error),
                tx_hash=receipt.tx_hash,
                receipt=receipt,
                precheck=precheck,
            )

    @log_timing
    async def fill(
        self,
        signed_order: SignedOrder,
        taker_address: str,
        fill_amount: int,
    ) -> FillReceipt:
        """
        Fill ``fill_amount`` (taker base units) of ``signed_order``.

        A fill below the remaining amount is a normal partial fill. The
        local pre-check result travels with the outcome: ``precheck`` on the
        returned FillReceipt, on FillRejected and on TransactionTimeout.

        Raises:
            InvalidAmount: ``fill_amount`` is not a positive integer
            OrderIntegrityError: Signature no longer matches the order
            OrderNotFillable: Pre-check failed (unless attempting anyway)
            FillRejected: Node refused, or the exchange logged an error or
                reverted the fill
            TransactionTimeout: Not mined in time
        """
        _require_positive(fill_amount, "fill amount")
        signed_order.ensure_integrity()

        check = await self.validator.check_fillable(signed_order, taker_address, fill_amount)
        if not check.is_fillable:
            if not self.attempt_if_unfillable:
                raise OrderNotFillable(check)
            logger.warning(
                f"Pre-check failed for {signed_order.order_hash} "
                f"({', '.join(i.value for i in check.issues)}); submitting anyway"
            )

        tx_hash = await self._submit(
            "fillOrder",
            self.exchange.fill_order(
                signed_order.order,
                signed_order.ec_signature,
                fill_amount,
                self.should_throw,
                taker_address,
            ),
            precheck=check,
        )
        logger.info(f"Fill submitted for {signed_order.order_hash}: {fill_amount} by {taker_address} ({tx_hash})")

        try:
            receipt = await self.waiter.await_mined(tx_hash)
        except TransactionReverted as e:
            logger.error(f"Exchange reverted fill {tx_hash} for {signed_order.order_hash}")
            raise FillRejected(
                "reverted",
                submitted=True,
                tx_hash=e.tx_hash,
                receipt=e.receipt,
                precheck=check,
                reverted=True,
            ) from e
        except TransactionTimeout as e:
            e.precheck = check
            raise
        self._check_receipt(receipt, precheck=check)
        logger.info(f"Fill mined for {signed_order.order_hash} in block {receipt.block_number}")
        return FillReceipt.from_receipt(receipt, check)

    @log_timing
    async def cancel(
        self,
        signed_order: SignedOrder,
        cancel_amount: Optional[int] = None,
    ) -> TransactionReceipt:
        """
        Cancel ``cancel_amount`` (default: all remaining) as the maker.

        Raises:
            OrderNotFillable: Nothing left to cancel
            FillRejected: Node or exchange refused the cancel
            TransactionReverted / TransactionTimeout: From the waiter
        """
        check = await self.validator.check_fillable(signed_order)
        remaining = check.remaining_taker_amount or 0
        if cancel_amount is None:
            cancel_amount = remaining
            if cancel_amount == 0:
                raise OrderNotFillable(check)
        _require_positive(cancel_amount, "cancel amount")

        tx_hash = await self._submit(
            "cancelOrder",
            self.exchange.cancel_order(signed_order.order, cancel_amount),
        )
        logger.info(f"Cancel submitted for {signed_order.order_hash}: {cancel_amount} ({tx_hash})")

        receipt = await self.waiter.await_mined(tx_hash)
        self._check_receipt(receipt)
        return receipt
