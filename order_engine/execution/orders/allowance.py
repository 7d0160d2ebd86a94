"""
Token allowances for the exchange's transfer proxy.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from order_engine.api.contracts import UNLIMITED_ALLOWANCE, TokenContract
from order_engine.api.exceptions import (
    AllowanceInsufficient,
    AllowancesInsufficient,
    AllowanceSetupError,
)
from order_engine.execution.orders.waiter import TransactionWaiter
from order_engine.models.receipt import TransactionReceipt

logger = logging.getLogger(__name__)


class AllowanceManager:
    """
    Makes sure the transfer proxy may move a party's tokens.

    Policy is "unlimited": approve the maximum uint256 once so later trades
    never need to re-authorize. Any allowance at or above ``threshold``
    counts as already unlimited.
    """

    def __init__(
        self,
        ledger,
        proxy_address: str,
        waiter: TransactionWaiter,
        threshold: int = 2 ** 255,
        gas_limit: Optional[int] = None,
    ):
        """
        Args:
            ledger: Ledger provider
            proxy_address: Token transfer proxy (the spender)
            waiter: Confirmation waiter for approve transactions
            threshold: Allowance treated as unlimited
            gas_limit: Optional gas limit for approve transactions
        """
        self.ledger = ledger
        self.proxy_address = proxy_address.lower()
        self.waiter = waiter
        self.threshold = threshold
        self.gas_limit = gas_limit

    def _token(self, token_address: str) -> TokenContract:
        return TokenContract(self.ledger, token_address, gas_limit=self.gas_limit)

    async def get_allowance(self, token_address: str, owner: str) -> int:
        return await self._token(token_address).allowance(owner, self.proxy_address)

    async def ensure_unlimited_allowance(
        self,
        token_address: str,
        owner: str,
    ) -> Optional[TransactionReceipt]:
        """
        Approve the proxy for ``owner``'s tokens unless already unlimited.

        Returns:
            The approve receipt, or None when nothing had to be submitted

        Raises:
            AllowanceInsufficient: Approve was mined but the allowance is
                still below the threshold
            TransactionTimeout / TransactionReverted: From the waiter
        """
        token = self._token(token_address)
        current = await token.allowance(owner, self.proxy_address)
        if current >= self.threshold:
            logger.debug(f"Allowance for {owner} on {token.address} already unlimited")
            return None

        logger.info(f"Setting unlimited allowance for {owner} on {token.address}")
        tx_hash = await token.approve(owner, self.proxy_address, UNLIMITED_ALLOWANCE)
        receipt = await self.waiter.await_mined(tx_hash)

        updated = await token.allowance(owner, self.proxy_address)
        if updated < self.threshold:
            raise AllowanceInsufficient(
                token.address, owner, updated, self.threshold,
                submitted=True, tx_hash=tx_hash,
            )

        logger.info(f"Allowance mined for {owner} on {token.address} in block {receipt.block_number}")
        return receipt

    async def require_allowance(
        self,
        token_address: str,
        owner: str,
        amount: int,
        side: Optional[str] = None,
    ) -> int:
        """
        Check that the proxy may move ``amount`` of ``owner``'s tokens.

        Read-only; nothing is submitted.

        Raises:
            AllowanceInsufficient: Current allowance is below ``amount``
        """
        current = await self.get_allowance(token_address, owner)
        if current < amount:
            raise AllowanceInsufficient(token_address.lower(), owner, current, amount, side=side)
        return current

    async def require_allowances(
        self,
        maker_token: str,
        maker: str,
        maker_amount: int,
        taker_token: str,
        taker: str,
        taker_amount: int,
    ) -> None:
        """
        Check both parties' allowances for a fill, concurrently.

        Read-only; nothing is submitted.

        Raises:
            AllowanceInsufficient: One side is short (``side`` names it)
            AllowancesInsufficient: Both sides are short
        """
        sides = {
            "maker": (maker_token, maker, maker_amount),
            "taker": (taker_token, taker, taker_amount),
        }
        results = await asyncio.gather(
            *(
                self.require_allowance(token, owner, amount, side=side)
                for side, (token, owner, amount) in sides.items()
            ),
            return_exceptions=True,
        )

        shortfalls: Dict[str, AllowanceInsufficient] = {}
        for side, result in zip(sides, results):
            if isinstance(result, AllowanceInsufficient):
                shortfalls[side] = result
            elif isinstance(result, BaseException):
                raise result

        if len(shortfalls) > 1:
            raise AllowancesInsufficient(shortfalls)
        for error in shortfalls.values():
            raise error

    async def ensure_allowances(
        self,
        maker_token: str,
        maker: str,
        taker_token: str,
        taker: str,
    ) -> List[Optional[TransactionReceipt]]:
        """
        Ensure unlimited allowances for both parties.

        The two sides touch unrelated accounts, so they run concurrently.

        Returns:
            [maker receipt, taker receipt]; None entries were no-ops

        Raises:
            AllowanceSetupError: One or both sides failed; ``failures``
                names each failing side
        """
        sides = {
            "maker": (maker_token, maker),
            "taker": (taker_token, taker),
        }
        results = await asyncio.gather(
            *(self.ensure_unlimited_allowance(token, owner) for token, owner in sides.values()),
            return_exceptions=True,
        )

        receipts: Dict[str, Optional[TransactionReceipt]] = {}
        failures: Dict[str, Exception] = {}
        for side, result in zip(sides, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                if isinstance(result, AllowanceInsufficient):
                    result.side = side
                logger.error(f"Allowance setup failed for {side}: {result}")
                failures[side] = result
            else:
                receipts[side] = result

        if failures:
            raise AllowanceSetupError(failures, receipts)
        return [receipts["maker"], receipts["taker"]]
