"""
Tests for FillValidator and the exchange rounding rule.
"""
import dataclasses

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_bytes

from order_engine.api.exceptions import OrderNotFillable
from order_engine.execution.orders.validator import FillIssue, is_rounding_error
from order_engine.models.order import ECSignature, SignedOrder

from conftest import OTHER_KEY


class TestRoundingRule:

    def test_exact_division(self):
        assert not is_rounding_error(1, 2, 10)

    def test_small_error_tolerated(self):
        # 999 * 1001 / 1000 = 999.999; error 0.0999%
        assert not is_rounding_error(999, 1000, 1001)

    def test_large_error_flagged(self):
        # 1 * 3 / 2 = 1.5 truncates to 1; error 33%
        assert is_rounding_error(1, 2, 3)

    def test_threshold_is_strict(self):
        # error of exactly 0.1% passes, anything above fails
        assert not is_rounding_error(1, 999, 1000)
        assert is_rounding_error(1, 998, 1000)


class TestCheckFillable:

    @pytest.mark.asyncio
    async def test_fresh_order(self, manager, signed_order, taker):
        result = await manager.validator.check_fillable(signed_order, taker, 300)
        assert result.is_fillable
        assert result.issues == []
        assert result.remaining_taker_amount == signed_order.order.taker_token_amount

    @pytest.mark.asyncio
    async def test_expiry_boundary(self, manager, signed_order, clock):
        expiration = signed_order.order.expiration_unix_timestamp_sec

        clock.now = expiration - 1
        assert (await manager.validator.check_fillable(signed_order)).is_fillable

        clock.now = expiration
        result = await manager.validator.check_fillable(signed_order)
        assert not result.is_fillable
        assert result.issues == [FillIssue.EXPIRED]

    @pytest.mark.asyncio
    async def test_fully_filled(self, manager, ledger, signed_order):
        ledger.filled[signed_order.order_hash] = signed_order.order.taker_token_amount
        result = await manager.validator.check_fillable(signed_order)
        assert result.issues == [FillIssue.FULLY_FILLED]
        assert result.remaining_taker_amount == 0
        assert result.filled_taker_amount == signed_order.order.taker_token_amount

    @pytest.mark.asyncio
    async def test_cancelled(self, manager, ledger, signed_order):
        ledger.filled[signed_order.order_hash] = 1
        ledger.cancelled[signed_order.order_hash] = signed_order.order.taker_token_amount - 1
        result = await manager.validator.check_fillable(signed_order)
        assert result.issues == [FillIssue.CANCELLED]

    @pytest.mark.asyncio
    async def test_fill_exceeds_remaining(self, manager, ledger, signed_order):
        total = signed_order.order.taker_token_amount
        ledger.filled[signed_order.order_hash] = total // 2
        result = await manager.validator.check_fillable(signed_order, fill_amount=total)
        assert result.issues == [FillIssue.FILL_AMOUNT_EXCEEDS_REMAINING]
        assert result.remaining_taker_amount == total - total // 2

    @pytest.mark.asyncio
    async def test_rounding_error(self, manager, maker, taker):
        # 2 maker units for 3 taker units: filling 1 gives 0.667 -> 0
        order_hash, order = manager.create_order(
            maker, None, "ZRX", "USDC", "0.000000000000000002", "0.000003", salt=1
        )
        signed = await manager.sign_order(order_hash, maker, order)

        result = await manager.validator.check_fillable(signed, taker, 1)
        assert result.issues == [FillIssue.ROUNDING_ERROR_TOO_LARGE]
        assert (await manager.validator.check_fillable(signed, taker, 3)).is_fillable

    @pytest.mark.asyncio
    async def test_bound_taker(self, manager, maker, taker):
        order_hash, order = manager.create_order(maker, taker, "ZRX", "WETH", "1", "1", salt=2)
        signed = await manager.sign_order(order_hash, maker, order)

        assert (await manager.validator.check_fillable(signed, taker)).is_fillable
        result = await manager.validator.check_fillable(signed, "0x" + "77" * 20)
        assert result.issues == [FillIssue.TAKER_NOT_AUTHORIZED]

    @pytest.mark.asyncio
    async def test_invalid_signature(self, manager, signed_order):
        other = Account.sign_message(
            encode_defunct(primitive=to_bytes(hexstr=signed_order.order_hash)), OTHER_KEY
        )
        forged = SignedOrder(
            order=signed_order.order,
            ec_signature=ECSignature.from_vrs(other.v, other.r, other.s),
        )
        result = await manager.validator.check_fillable(forged)
        assert FillIssue.INVALID_SIGNATURE in result.issues

    @pytest.mark.asyncio
    async def test_collects_every_issue(self, manager, signed_order, clock, taker):
        clock.now = signed_order.order.expiration_unix_timestamp_sec + 10
        tampered = SignedOrder(
            order=dataclasses.replace(signed_order.order, salt=43),
            ec_signature=signed_order.ec_signature,
        )
        result = await manager.validator.check_fillable(tampered, taker, 1)
        assert FillIssue.INVALID_SIGNATURE in result.issues
        assert FillIssue.EXPIRED in result.issues
        assert len(result.messages) == len(result.issues)

    @pytest.mark.asyncio
    async def test_ensure_fillable_raises(self, manager, ledger, signed_order):
        ledger.filled[signed_order.order_hash] = signed_order.order.taker_token_amount
        with pytest.raises(OrderNotFillable) as exc:
            await manager.validator.ensure_fillable(signed_order)
        assert exc.value.submitted is False
        assert exc.value.result.issues == [FillIssue.FULLY_FILLED]
        assert "fully_filled" in str(exc.value)


class TestRemainingAmount:

    @pytest.mark.asyncio
    async def test_remaining(self, manager, ledger, signed_order):
        total = signed_order.order.taker_token_amount
        ledger.filled[signed_order.order_hash] = 10
        ledger.cancelled[signed_order.order_hash] = 5
        assert await manager.validator.get_remaining_taker_amount(signed_order) == total - 15
