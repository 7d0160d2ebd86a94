"""
Shared fixtures: deterministic keys, a controllable clock and an in-memory
ledger that simulates ERC20 tokens, wrapped ether and the exchange by
decoding the calldata the engine sends.
"""
import itertools
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from eth_abi import decode, encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import function_signature_to_4byte_selector, keccak, to_bytes

from order_engine.api.contracts import LOG_ERROR_TOPIC, ExchangeError
from order_engine.api.exceptions import LedgerRPCError
from order_engine.api.registry import ProtocolAddressRegistry, TokenInfo
from order_engine.api.signers import LocalKeySigner
from order_engine.config.settings import (
    TESTRPC_EXCHANGE_ADDRESS,
    TESTRPC_TOKEN_TRANSFER_PROXY_ADDRESS,
    TESTRPC_WETH_ADDRESS,
    TESTRPC_ZRX_ADDRESS,
)
from order_engine.execution.orders import OrderManager
from order_engine.execution.orders.hasher import pack_order_fields
from order_engine.execution.orders.signer import is_valid_signature
from order_engine.models.order import NULL_ADDRESS, ECSignature, OrderRecord

MAKER_KEY = "0x" + "11" * 32
TAKER_KEY = "0x" + "22" * 32
OTHER_KEY = "0x" + "33" * 32
USDC_ADDRESS = "0x" + "a0" * 20

NOW = 1_700_000_000


def _sel(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


SEL_ALLOWANCE = _sel("allowance(address,address)")
SEL_BALANCE_OF = _sel("balanceOf(address)")
SEL_APPROVE = _sel("approve(address,uint256)")
SEL_DEPOSIT = _sel("deposit()")
SEL_FILLED = _sel("filled(bytes32)")
SEL_CANCELLED = _sel("cancelled(bytes32)")
SEL_UNAVAILABLE = _sel("getUnavailableTakerTokenAmount(bytes32)")
SEL_FILL_ORDER = _sel("fillOrder(address[5],uint256[6],uint256,bool,uint8,bytes32,bytes32)")
SEL_CANCEL_ORDER = _sel("cancelOrder(address[5],uint256[6],uint256)")

FILL_TYPES = ["address[5]", "uint256[6]", "uint256", "bool", "uint8", "bytes32", "bytes32"]
CANCEL_TYPES = ["address[5]", "uint256[6]", "uint256"]


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeLedger:
    """In-memory ledger provider with the JsonRpcClient interface."""

    def __init__(self, exchange: str, proxy: str, weth: str, clock: FakeClock, keys: List[str]):
        self.exchange = exchange.lower()
        self.proxy = proxy.lower()
        self.weth = weth.lower()
        self.clock = clock
        self._accounts = {Account.from_key(k).address.lower(): Account.from_key(k) for k in keys}

        self.allowances: Dict[tuple, int] = {}
        self.balances: Dict[tuple, int] = {}
        self.filled: Dict[str, int] = {}
        self.cancelled: Dict[str, int] = {}

        self.sent: List[Dict[str, Any]] = []
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.receipt_polls: Dict[str, int] = {}
        self.pending_polls = 0
        self.reject_sends: Optional[LedgerRPCError] = None
        self.sign_error: Optional[LedgerRPCError] = None
        self._tx_ids = itertools.count(1)
        self._block = 100

    # -- provider interface -------------------------------------------------

    async def accounts(self) -> List[str]:
        return list(self._accounts)

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        to = to.lower()
        raw = to_bytes(hexstr=data)
        sel, args = raw[:4], raw[4:]
        if sel == SEL_ALLOWANCE:
            owner, spender = decode(["address", "address"], args)
            value = self.allowances.get((to, owner.lower(), spender.lower()), 0)
        elif sel == SEL_BALANCE_OF:
            (owner,) = decode(["address"], args)
            value = self.balances.get((to, owner.lower()), 0)
        elif sel in (SEL_FILLED, SEL_CANCELLED, SEL_UNAVAILABLE):
            order_hash = "0x" + decode(["bytes32"], args)[0].hex()
            filled = self.filled.get(order_hash, 0)
            cancelled = self.cancelled.get(order_hash, 0)
            value = {SEL_FILLED: filled, SEL_CANCELLED: cancelled}.get(sel, filled + cancelled)
        else:
            raise LedgerRPCError(-32000, f"unknown call selector {sel.hex()}")
        return "0x" + encode(["uint256"], [value]).hex()

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        if self.reject_sends is not None:
            raise self.reject_sends
        self.sent.append(tx)

        to = tx["to"].lower()
        sender = tx["from"].lower()
        raw = to_bytes(hexstr=tx["data"])
        sel, args = raw[:4], raw[4:]
        logs: List[Dict[str, Any]] = []
        status = 1

        if sel == SEL_APPROVE:
            spender, amount = decode(["address", "uint256"], args)
            self.allowances[(to, sender, spender.lower())] = amount
        elif sel == SEL_DEPOSIT:
            value = int(tx.get("value", "0x0"), 16)
            self.balances[(to, sender)] = self.balances.get((to, sender), 0) + value
        elif sel == SEL_FILL_ORDER:
            status, logs = self._fill(to, sender, decode(FILL_TYPES, args))
        elif sel == SEL_CANCEL_ORDER:
            status, logs = self._cancel(to, sender, decode(CANCEL_TYPES, args))
        else:
            raise LedgerRPCError(-32000, f"unknown tx selector {sel.hex()}")

        tx_hash = "0x" + keccak(text=f"tx-{next(self._tx_ids)}").hex()
        self._block += 1
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "blockNumber": hex(self._block),
            "status": hex(status),
            "gasUsed": hex(21000),
            "logs": logs,
        }
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        polls = self.receipt_polls.get(tx_hash, 0)
        self.receipt_polls[tx_hash] = polls + 1
        if polls < self.pending_polls:
            return None
        return self.receipts.get(tx_hash)

    async def sign(self, address: str, data: str) -> str:
        if self.sign_error is not None:
            raise self.sign_error
        account = self._accounts.get(address.lower())
        if account is None:
            raise LedgerRPCError(-32000, "unknown account")
        signed = account.sign_message(encode_defunct(primitive=to_bytes(hexstr=data)))
        return "0x" + bytes(signed.signature).hex()

    # -- exchange simulation ------------------------------------------------

    def _order_hash(self, exchange: str, addresses, values) -> str:
        maker, taker, maker_token, taker_token, fee_recipient = addresses
        packed = pack_order_fields(
            exchange, maker, taker, maker_token, taker_token, fee_recipient, *values
        )
        return "0x" + keccak(packed).hex()

    def _error_log(self, code: ExchangeError, order_hash: str) -> Dict[str, Any]:
        return {
            "address": self.exchange,
            "topics": [LOG_ERROR_TOPIC, "0x" + int(code).to_bytes(32, "big").hex(), order_hash],
            "data": "0x",
        }

    def _fill(self, exchange: str, sender: str, args):
        addresses, values, fill_amount, should_throw, v, r, s = args
        addresses = [a.lower() for a in addresses]
        maker, taker, maker_token, taker_token, _ = addresses
        maker_amount, taker_amount, _, _, expiration, _ = values
        order_hash = self._order_hash(exchange, addresses, values)

        signature = ECSignature.from_vrs(v, int.from_bytes(r, "big"), int.from_bytes(s, "big"))
        if not is_valid_signature(order_hash, signature, maker):
            return 0, []
        if taker != "0x" + "00" * 20 and taker != sender:
            return 0, []

        if self.clock() >= expiration:
            return 1, [self._error_log(ExchangeError.ORDER_EXPIRED, order_hash)]

        remaining = taker_amount - self.filled.get(order_hash, 0) - self.cancelled.get(order_hash, 0)
        fill = min(fill_amount, remaining)
        if fill == 0:
            return 1, [self._error_log(ExchangeError.ORDER_FULLY_FILLED_OR_CANCELLED, order_hash)]

        maker_fill = maker_amount * fill // taker_amount
        maker_allowance = self.allowances.get((maker_token, maker, self.proxy), 0)
        taker_allowance = self.allowances.get((taker_token, sender, self.proxy), 0)
        if maker_allowance < maker_fill or taker_allowance < fill:
            if should_throw:
                return 0, []
            return 1, [self._error_log(ExchangeError.INSUFFICIENT_BALANCE_OR_ALLOWANCE, order_hash)]

        self.filled[order_hash] = self.filled.get(order_hash, 0) + fill
        return 1, []

    def _cancel(self, exchange: str, sender: str, args):
        addresses, values, cancel_amount = args
        addresses = [a.lower() for a in addresses]
        order_hash = self._order_hash(exchange, addresses, values)
        if sender != addresses[0]:
            return 0, []
        taker_amount = values[1]
        remaining = taker_amount - self.filled.get(order_hash, 0) - self.cancelled.get(order_hash, 0)
        cancelled = min(cancel_amount, remaining)
        if cancelled == 0:
            return 1, [self._error_log(ExchangeError.ORDER_FULLY_FILLED_OR_CANCELLED, order_hash)]
        self.cancelled[order_hash] = self.cancelled.get(order_hash, 0) + cancelled
        return 1, []

    # -- helpers ------------------------------------------------------------

    def sent_with_selector(self, sel: bytes) -> List[Dict[str, Any]]:
        return [tx for tx in self.sent if to_bytes(hexstr=tx["data"])[:4] == sel]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def maker_account():
    return Account.from_key(MAKER_KEY)


@pytest.fixture
def taker_account():
    return Account.from_key(TAKER_KEY)


@pytest.fixture
def maker(maker_account):
    return maker_account.address.lower()


@pytest.fixture
def taker(taker_account):
    return taker_account.address.lower()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return ProtocolAddressRegistry(
        network_id=50,
        exchange_address=TESTRPC_EXCHANGE_ADDRESS,
        token_transfer_proxy_address=TESTRPC_TOKEN_TRANSFER_PROXY_ADDRESS,
        tokens=[
            TokenInfo(symbol="ZRX", address=TESTRPC_ZRX_ADDRESS, decimals=18),
            TokenInfo(symbol="WETH", address=TESTRPC_WETH_ADDRESS, decimals=18),
            TokenInfo(symbol="USDC", address=USDC_ADDRESS, decimals=6),
        ],
    )


@pytest.fixture
def ledger(clock):
    return FakeLedger(
        TESTRPC_EXCHANGE_ADDRESS,
        TESTRPC_TOKEN_TRANSFER_PROXY_ADDRESS,
        TESTRPC_WETH_ADDRESS,
        clock,
        [MAKER_KEY, TAKER_KEY],
    )


@pytest.fixture
def key_signer():
    return LocalKeySigner([MAKER_KEY, TAKER_KEY])


@pytest.fixture
def manager(ledger, registry, key_signer, clock):
    return OrderManager(
        ledger,
        registry,
        key_signer,
        clock=clock,
        confirmation_timeout=1.0,
        confirmation_poll_interval=0.001,
    )


def grant_allowance(ledger: FakeLedger, token: str, owner: str, amount: int = 2 ** 256 - 1) -> None:
    ledger.allowances[(token.lower(), owner.lower(), ledger.proxy)] = amount


@pytest.fixture
def order_pair(manager, maker):
    """(order_hash, OrderRecord): open order selling 0.2 ZRX for 0.3 WETH."""
    return manager.create_order(maker, None, "ZRX", "WETH", "0.2", "0.3", salt=42)


@pytest_asyncio.fixture
async def signed_order(manager, maker, order_pair):
    order_hash, order = order_pair
    return await manager.sign_order(order_hash, maker, order)


@pytest.fixture
def funded(ledger, maker, taker):
    """Unlimited proxy allowances for maker ZRX and taker WETH."""
    grant_allowance(ledger, TESTRPC_ZRX_ADDRESS, maker)
    grant_allowance(ledger, TESTRPC_WETH_ADDRESS, taker)
    return ledger


SAMPLE_MAKER = "0x5409ed021d9299bf6814279a6a1411a7e866a631"


@pytest.fixture
def make_order():
    """Factory for a fixed sample OrderRecord with optional field overrides."""
    def _make(**changes) -> OrderRecord:
        fields = dict(
            maker=SAMPLE_MAKER,
            taker=NULL_ADDRESS,
            fee_recipient=NULL_ADDRESS,
            maker_token_address=TESTRPC_ZRX_ADDRESS,
            taker_token_address=TESTRPC_WETH_ADDRESS,
            exchange_contract_address=TESTRPC_EXCHANGE_ADDRESS,
            salt=123456789,
            maker_fee=0,
            taker_fee=0,
            maker_token_amount=200000000000000000,
            taker_token_amount=300000000000000000,
            expiration_unix_timestamp_sec=1700000000,
        )
        fields.update(changes)
        return OrderRecord(**fields)
    return _make
