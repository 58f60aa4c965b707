"""Unit tests for fee oracles and the fee gate."""
import pytest
from unittest.mock import AsyncMock

from airdrop.services.price_gate import (
    CachedFeeOracle,
    MaxFeePriceGate,
    SolanaFeeOracle,
    StaticFeeOracle,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FailingOracle:
    async def current_fee(self) -> int:
        raise RuntimeError("rpc unavailable")


class TestSolanaFeeOracle:
    @pytest.mark.asyncio
    async def test_median_of_recent_fees(self):
        client = AsyncMock()
        client.get_recent_priority_fees.return_value = [0, 5000, 100, 20, 7]
        assert await SolanaFeeOracle(client).current_fee() == 20

    @pytest.mark.asyncio
    async def test_no_samples_means_zero(self):
        client = AsyncMock()
        client.get_recent_priority_fees.return_value = []
        assert await SolanaFeeOracle(client).current_fee() == 0


class TestCachedFeeOracle:
    @pytest.mark.asyncio
    async def test_serves_cached_value_within_ttl(self):
        source = StaticFeeOracle(100)
        clock = FakeClock()
        oracle = CachedFeeOracle(source, ttl_seconds=10, clock=clock)

        assert await oracle.current_fee() == 100
        source.fee = 500
        clock.now += 9.9
        assert await oracle.current_fee() == 100
        assert source.calls == 1

    @pytest.mark.asyncio
    async def test_refreshes_after_ttl(self):
        source = StaticFeeOracle(100)
        clock = FakeClock()
        oracle = CachedFeeOracle(source, ttl_seconds=10, clock=clock)

        await oracle.current_fee()
        source.fee = 500
        clock.now += 10
        assert await oracle.current_fee() == 500
        assert source.calls == 2

    @pytest.mark.asyncio
    async def test_invalidate(self):
        source = StaticFeeOracle(1)
        oracle = CachedFeeOracle(source, ttl_seconds=60, clock=FakeClock())
        await oracle.current_fee()
        oracle.invalidate()
        await oracle.current_fee()
        assert source.calls == 2

    @pytest.mark.asyncio
    async def test_separate_instances_do_not_share_state(self):
        first = CachedFeeOracle(StaticFeeOracle(1), clock=FakeClock())
        second = CachedFeeOracle(StaticFeeOracle(2), clock=FakeClock())
        assert await first.current_fee() == 1
        assert await second.current_fee() == 2


class TestMaxFeePriceGate:
    @pytest.mark.asyncio
    async def test_fee_at_limit_is_acceptable(self):
        assert await MaxFeePriceGate(StaticFeeOracle(50_000), max_fee=50_000).is_acceptable()

    @pytest.mark.asyncio
    async def test_fee_above_limit_pauses(self):
        assert not await MaxFeePriceGate(StaticFeeOracle(50_001), max_fee=50_000).is_acceptable()

    @pytest.mark.asyncio
    async def test_oracle_failure_pauses_instead_of_raising(self):
        assert not await MaxFeePriceGate(FailingOracle(), max_fee=50_000).is_acceptable()
