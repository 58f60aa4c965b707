"""
Fee gate checked before every batch.

The oracle cache is an explicit object owned by whoever builds the
orchestrator; there is no module-level price state.
"""
import statistics
import time
from typing import Callable, Optional, Protocol

import structlog

logger = structlog.get_logger()


class FeeOracle(Protocol):
    async def current_fee(self) -> int:
        """Current priority fee, micro-lamports per compute unit"""
        ...


class PriceGate(Protocol):
    async def is_acceptable(self) -> bool:
        ...


class SolanaFeeOracle:
    """Median of the recent prioritization fees reported by the RPC node"""

    def __init__(self, client):
        self.client = client

    async def current_fee(self) -> int:
        fees = await self.client.get_recent_priority_fees()
        if not fees:
            return 0
        return int(statistics.median(fees))


class StaticFeeOracle:
    """Fixed fee, used in mock mode and tests"""

    def __init__(self, fee: int = 0):
        self.fee = fee
        self.calls = 0

    async def current_fee(self) -> int:
        self.calls += 1
        return self.fee


class CachedFeeOracle:
    """Caches another oracle's answer for ttl_seconds"""

    def __init__(self, oracle: FeeOracle, ttl_seconds: float = 10.0, clock: Callable[[], float] = time.monotonic):
        self.oracle = oracle
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Optional[int] = None
        self._fetched_at = 0.0

    async def current_fee(self) -> int:
        now = self._clock()
        if self._value is not None and now - self._fetched_at < self.ttl_seconds:
            return self._value
        self._value = await self.oracle.current_fee()
        self._fetched_at = now
        return self._value

    def invalidate(self) -> None:
        self._value = None


class MaxFeePriceGate:
    """Acceptable while the current fee is at or below max_fee"""

    def __init__(self, oracle: FeeOracle, max_fee: int):
        self.oracle = oracle
        self.max_fee = max_fee

    async def is_acceptable(self) -> bool:
        try:
            fee = await self.oracle.current_fee()
        except Exception as e:
            # An unknown fee pauses the run instead of failing a batch
            logger.warning("Fee lookup failed, pausing", error=str(e))
            return False

        if fee > self.max_fee:
            logger.warning("Priority fee above limit", fee=fee, max_fee=self.max_fee)
            return False
        return True


class AlwaysOpenGate:
    async def is_acceptable(self) -> bool:
        return True
