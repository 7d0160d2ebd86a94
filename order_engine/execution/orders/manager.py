"""
Order lifecycle facade.

Wires the components around one ledger provider, one registry and one
signing collaborator, all injected by the caller:

    create_order -> sign_order -> ensure_allowances -> fill_order
"""
import time
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from order_engine.api.contracts import EtherTokenContract, ExchangeContract
from order_engine.api.exceptions import InvalidAmount, InvalidOrder
from order_engine.api.registry import ProtocolAddressRegistry
from order_engine.execution.orders.allowance import AllowanceManager
from order_engine.execution.orders.executor import FillExecutor
from order_engine.execution.orders.hasher import order_hash_hex
from order_engine.execution.orders.signer import OrderSigner
from order_engine.execution.orders.validator import FillCheckResult, FillValidator
from order_engine.execution.orders.waiter import TransactionWaiter
from order_engine.logging import log_timing, logger as engine_logger
from order_engine.models.order import (
    NULL_ADDRESS,
    OrderRecord,
    SignedOrder,
    generate_salt,
    normalize_address,
)
from order_engine.models.receipt import FillReceipt, TransactionReceipt
from order_engine.models.units import AmountConverter, AmountLike, from_base_units

log = engine_logger.with_context(component="order_manager")


class OrderManager:
    """
    Entry point for maker and taker flows.

    Holds no order state: every OrderRecord / SignedOrder is an immutable
    value owned by the caller.
    """

    def __init__(
        self,
        ledger,
        registry: ProtocolAddressRegistry,
        signing_collaborator,
        add_personal_message_prefix: bool = False,
        order_ttl_seconds: int = 3600,
        allowance_threshold: int = 2 ** 255,
        should_throw_on_insufficient_balance_or_allowance: bool = True,
        attempt_fill_if_precheck_fails: bool = False,
        check_allowances_before_fill: bool = True,
        confirmation_timeout: Optional[float] = 120.0,
        confirmation_poll_interval: float = 1.0,
        transaction_gas_limit: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            ledger: Ledger provider (JsonRpcClient or compatible)
            registry: Protocol address registry
            signing_collaborator: Key holder used by the OrderSigner
            add_personal_message_prefix: See OrderSigner
            order_ttl_seconds: Default lifetime of new orders
            allowance_threshold: Allowance treated as unlimited
            should_throw_on_insufficient_balance_or_allowance: Fail-loud fills
            attempt_fill_if_precheck_fails: Submit despite a failed pre-check
            check_allowances_before_fill: Verify both allowances before filling
            confirmation_timeout: Seconds to wait for mining (None: unbounded)
            confirmation_poll_interval: Seconds between receipt polls
            transaction_gas_limit: Explicit gas for submitted transactions
            clock: Unix time source
        """
        self.ledger = ledger
        self.registry = registry
        self.order_ttl_seconds = order_ttl_seconds
        self.check_allowances_before_fill = check_allowances_before_fill
        self.clock = clock

        self.converter = AmountConverter(registry)
        self.waiter = TransactionWaiter(
            ledger, poll_interval=confirmation_poll_interval, timeout=confirmation_timeout
        )
        self.signer = OrderSigner(signing_collaborator, add_personal_message_prefix)
        self.exchange = ExchangeContract(ledger, registry.exchange_address, gas_limit=transaction_gas_limit)
        self.wrapped_token = EtherTokenContract(
            ledger, registry.wrapped_token.address, gas_limit=transaction_gas_limit
        )
        self.allowances = AllowanceManager(
            ledger,
            registry.token_transfer_proxy_address,
            self.waiter,
            threshold=allowance_threshold,
            gas_limit=transaction_gas_limit,
        )
        self.validator = FillValidator(self.exchange, clock=clock)
        self.executor = FillExecutor(
            self.exchange,
            self.validator,
            self.waiter,
            should_throw_on_insufficient_balance_or_allowance=should_throw_on_insufficient_balance_or_allowance,
            attempt_if_unfillable=attempt_fill_if_precheck_fails,
        )

    @classmethod
    def from_config(cls, config, ledger, signing_collaborator, **overrides) -> "OrderManager":
        """Build a manager from a Config instance."""
        options = dict(
            add_personal_message_prefix=config.add_personal_message_prefix,
            order_ttl_seconds=config.order_ttl_seconds,
            allowance_threshold=config.allowance_threshold,
            should_throw_on_insufficient_balance_or_allowance=(
                config.should_throw_on_insufficient_balance_or_allowance
            ),
            attempt_fill_if_precheck_fails=config.attempt_fill_if_precheck_fails,
            check_allowances_before_fill=config.check_allowances_before_fill,
            confirmation_timeout=config.confirmation_timeout,
            confirmation_poll_interval=config.confirmation_poll_interval,
            transaction_gas_limit=config.transaction_gas_limit,
        )
        options.update(overrides)
        return cls(
            ledger,
            ProtocolAddressRegistry.from_config(config),
            signing_collaborator,
            **options,
        )

    async def get_available_addresses(self) -> List[str]:
        """Addresses the ledger can send from. Errors propagate."""
        addresses = await self.ledger.accounts()
        log.debug("Available addresses", count=len(addresses))
        return [a.lower() for a in addresses]

    def create_order(
        self,
        maker: str,
        taker: Optional[str],
        maker_token: str,
        taker_token: str,
        maker_amount: AmountLike,
        taker_amount: AmountLike,
        expiration: Optional[int] = None,
        fee_recipient: Optional[str] = None,
        maker_fee: AmountLike = 0,
        taker_fee: AmountLike = 0,
        salt: Optional[int] = None,
    ) -> Tuple[str, OrderRecord]:
        """
        Build an order record and its hash.

        Args:
            maker: Maker address
            taker: Taker address, or None for an open order
            maker_token / taker_token: Symbol or address from the registry
            maker_amount / taker_amount: Human amounts in each token's units
            expiration: Unix seconds; defaults to now + order TTL
            fee_recipient: Fee recipient, or None for no fees
            maker_fee / taker_fee: Human amounts in fee-token units
            salt: Fixed salt; random 256-bit by default

        Returns:
            (order hash hex, OrderRecord)

        Raises:
            UnknownToken, InvalidAmount, InvalidOrder
        """
        maker_info = self.registry.token(maker_token)
        taker_info = self.registry.token(taker_token)
        fee_token = self.registry.fee_token.symbol

        if expiration is None:
            expiration = int(self.clock()) + self.order_ttl_seconds

        order = OrderRecord(
            maker=normalize_address(maker, "maker"),
            taker=NULL_ADDRESS if taker is None else taker,
            fee_recipient=NULL_ADDRESS if fee_recipient is None else fee_recipient,
            maker_token_address=maker_info.address,
            taker_token_address=taker_info.address,
            exchange_contract_address=self.registry.exchange_address,
            salt=generate_salt() if salt is None else salt,
            maker_fee=self.converter.to_base_units(maker_fee, fee_token),
            taker_fee=self.converter.to_base_units(taker_fee, fee_token),
            maker_token_amount=self.converter.to_base_units(maker_amount, maker_info.symbol),
            taker_token_amount=self.converter.to_base_units(taker_amount, taker_info.symbol),
            expiration_unix_timestamp_sec=expiration,
        )
        order_hash = order_hash_hex(order)

        log.order_event(
            "created",
            order_hash=order_hash,
            maker=order.maker,
            maker_token=maker_info.symbol,
            taker_token=taker_info.symbol,
            maker_amount=str(order.maker_token_amount),
            taker_amount=str(order.taker_token_amount),
        )
        return order_hash, order

    async def sign_order(self, order_hash: str, maker: str, order: OrderRecord) -> SignedOrder:
        """Sign ``order`` as ``maker``; see OrderSigner.sign_order."""
        signed = await self.signer.sign_order(order_hash, maker, order)
        log.order_event("signed", order_hash=signed.order_hash, v=signed.ec_signature.v)
        return signed

    @log_timing
    async def ensure_allowances(
        self,
        signed_order: SignedOrder,
        taker_address: Optional[str] = None,
    ) -> List[Optional[TransactionReceipt]]:
        """
        Ensure unlimited proxy allowances for the maker and taker tokens.

        Args:
            signed_order: Order whose tokens are involved
            taker_address: Taker; defaults to the order's bound taker

        Returns:
            [maker receipt, taker receipt]; None entries were no-ops

        Raises:
            InvalidOrder: Open order and no taker given
            AllowanceSetupError: Either side failed
        """
        order = signed_order.order
        taker = self._resolve_taker(order, taker_address)
        receipts = await self.allowances.ensure_allowances(
            order.maker_token_address, order.maker,
            order.taker_token_address, taker,
        )
        log.order_event(
            "allowances_ready",
            order_hash=signed_order.order_hash,
            submitted=sum(1 for r in receipts if r is not None),
        )
        return receipts

    @staticmethod
    def _resolve_taker(order: OrderRecord, taker_address: Optional[str]) -> str:
        if taker_address is not None:
            return normalize_address(taker_address, "taker")
        if order.is_open:
            raise InvalidOrder("taker", "open order needs an explicit taker address")
        return order.taker

    async def check_fillable(
        self,
        signed_order: SignedOrder,
        taker_address: Optional[str] = None,
        fill_amount: Optional[AmountLike] = None,
    ) -> FillCheckResult:
        """Local pre-check; ``fill_amount`` in human taker-token units."""
        base_amount = None
        if fill_amount is not None:
            base_amount = self.converter.to_base_units(fill_amount, signed_order.order.taker_token_address)
        return await self.validator.check_fillable(signed_order, taker_address, base_amount)

    async def get_remaining_taker_amount(self, signed_order: SignedOrder) -> int:
        """Unfilled, uncancelled taker amount in base units."""
        return await self.validator.get_remaining_taker_amount(signed_order)

    async def get_remaining_taker_amount_decimal(self, signed_order: SignedOrder) -> Decimal:
        remaining = await self.get_remaining_taker_amount(signed_order)
        return self.converter.from_base_units(remaining, signed_order.order.taker_token_address)

    @log_timing
    async def fill_order(
        self,
        signed_order: SignedOrder,
        taker_address: str,
        fill_amount: AmountLike,
    ) -> FillReceipt:
        """
        Fill ``fill_amount`` (human taker-token units) of ``signed_order``.

        Raises:
            InvalidAmount, UnknownToken, OrderIntegrityError,
            AllowanceInsufficient (AllowancesInsufficient when both sides
            are short), OrderNotFillable, FillRejected, TransactionTimeout
        """
        order = signed_order.order
        taker = normalize_address(taker_address, "taker")
        base_amount = self.converter.to_base_units(fill_amount, order.taker_token_address)
        if base_amount == 0:
            raise InvalidAmount(fill_amount, "fill amount must be positive")

        if self.check_allowances_before_fill:
            maker_needed = order.maker_token_amount * base_amount // order.taker_token_amount
            await self.allowances.require_allowances(
                order.maker_token_address, order.maker, maker_needed,
                order.taker_token_address, taker, base_amount,
            )

        receipt = await self.executor.fill(signed_order, taker, base_amount)
        log.order_event(
            "filled",
            order_hash=signed_order.order_hash,
            taker=taker,
            fill_amount=str(base_amount),
            tx_hash=receipt.tx_hash,
            precheck_passed=receipt.precheck_passed,
        )
        return receipt

    @log_timing
    async def cancel_order(
        self,
        signed_order: SignedOrder,
        cancel_amount: Optional[AmountLike] = None,
    ) -> TransactionReceipt:
        """Cancel (part of) the remaining amount as the maker."""
        base_amount = None
        if cancel_amount is not None:
            base_amount = self.converter.to_base_units(cancel_amount, signed_order.order.taker_token_address)
        receipt = await self.executor.cancel(signed_order, base_amount)
        log.order_event("cancelled", order_hash=signed_order.order_hash, tx_hash=receipt.tx_hash)
        return receipt

    @log_timing
    async def convert_to_wrapped_asset(self, amount: AmountLike, destination: str) -> TransactionReceipt:
        """
        Wrap ``amount`` ether into the wrapped token for ``destination``.

        The deposit is sent from ``destination``, which must be an account
        the ledger can send from.
        """
        owner = normalize_address(destination, "destination")
        wei = self.converter.to_base_units(amount, self.registry.wrapped_token.symbol)
        if wei == 0:
            raise InvalidAmount(amount, "deposit amount must be positive")

        tx_hash = await self.wrapped_token.deposit(owner, wei)
        receipt = await self.waiter.await_mined(tx_hash)
        log.order_event(
            "wrapped",
            destination=owner,
            amount=str(from_base_units(wei, self.registry.wrapped_token.decimals)),
            tx_hash=receipt.tx_hash,
        )
        return receipt
