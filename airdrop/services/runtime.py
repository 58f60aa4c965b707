"""Wiring of executor and fee gate shared by the API and the scheduler"""
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop.config import get_settings
from airdrop.services.execution import BatchExecutor, MockBatchExecutor, SolanaBatchExecutor
from airdrop.services.orchestrator import DistributionOrchestrator
from airdrop.services.price_gate import (
    CachedFeeOracle,
    MaxFeePriceGate,
    PriceGate,
    SolanaFeeOracle,
    StaticFeeOracle,
)
from airdrop.services.solana_client import get_solana_client

logger = structlog.get_logger()
settings = get_settings()


class AirdropRuntime:
    """Holds the executor and fee gate for the lifetime of the process"""

    def __init__(
        self,
        executor: BatchExecutor,
        price_gate: PriceGate,
        cooldown_seconds: Optional[float] = None,
        lease_seconds: Optional[int] = None,
    ):
        self.executor = executor
        self.price_gate = price_gate
        self.cooldown_seconds = cooldown_seconds
        self.lease_seconds = lease_seconds

    def orchestrator(self, db: AsyncSession) -> DistributionOrchestrator:
        return DistributionOrchestrator(
            db,
            executor=self.executor,
            price_gate=self.price_gate,
            cooldown_seconds=self.cooldown_seconds,
            lease_seconds=self.lease_seconds,
        )

    @classmethod
    async def from_settings(cls) -> "AirdropRuntime":
        if settings.mock_transactions:
            logger.warning("Mock transactions enabled, nothing will be broadcast")
            return cls(
                executor=MockBatchExecutor(),
                price_gate=MaxFeePriceGate(StaticFeeOracle(0), settings.max_priority_fee),
            )

        client = await get_solana_client()
        oracle = CachedFeeOracle(SolanaFeeOracle(client), ttl_seconds=settings.fee_cache_ttl_seconds)
        executor = SolanaBatchExecutor.from_settings(client, fee_oracle=oracle)
        size = executor.check_batch_size(settings.batch_size)
        logger.info("Batch transaction size checked", batch_size=settings.batch_size, max_bytes=size)
        return cls(
            executor=executor,
            price_gate=MaxFeePriceGate(oracle, settings.max_priority_fee),
        )
