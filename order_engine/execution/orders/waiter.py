"""
Waiting for transactions to be mined.
"""
import asyncio
import logging
from typing import Optional

from order_engine.api.exceptions import TransactionReverted, TransactionTimeout
from order_engine.models.receipt import TransactionReceipt

logger = logging.getLogger(__name__)

_DEFAULT = object()


class TransactionWaiter:
    """
    Polls the ledger until a transaction has a receipt.

    Never resubmits: a timeout leaves the decision to resend with the
    caller. Cancelling the awaiting task stops the wait but not the
    transaction.
    """

    def __init__(
        self,
        ledger,
        poll_interval: float = 1.0,
        timeout: Optional[float] = 120.0,
    ):
        """
        Args:
            ledger: Provider exposing ``get_transaction_receipt``
            poll_interval: Seconds between receipt polls
            timeout: Default seconds to wait; None waits without bound
        """
        self.ledger = ledger
        self.poll_interval = poll_interval
        self.timeout = timeout

    async def await_mined(self, tx_hash: str, timeout=_DEFAULT) -> TransactionReceipt:
        """
        Wait for ``tx_hash`` to be mined.

        Raises:
            TransactionTimeout: No receipt within ``timeout`` seconds
            TransactionReverted: Receipt reports failure
        """
        if timeout is _DEFAULT:
            timeout = self.timeout

        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        polls = 0

        while True:
            raw = await self.ledger.get_transaction_receipt(tx_hash)
            polls += 1
            if raw is not None and raw.get("blockNumber") is not None:
                receipt = TransactionReceipt.from_rpc(raw)
                if not receipt.succeeded:
                    logger.error(f"Transaction {tx_hash} reverted in block {receipt.block_number}")
                    raise TransactionReverted(receipt)
                logger.debug(f"Transaction {tx_hash} mined in block {receipt.block_number} after {polls} polls")
                return receipt

            if deadline is not None and loop.time() >= deadline:
                logger.warning(f"Gave up waiting for {tx_hash} after {timeout}s")
                raise TransactionTimeout(tx_hash, timeout)

            delay = self.poll_interval
            if deadline is not None:
                delay = max(0.0, min(delay, deadline - loop.time()))
            await asyncio.sleep(delay)
