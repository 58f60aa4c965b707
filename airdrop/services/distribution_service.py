"""Distribution service: turns two snapshots into persisted recipients and batches."""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop.config import get_settings
from airdrop.exceptions import (
    DistributionAlreadyCompletedError,
    DistributionNotFoundError,
    InvalidStatusError,
)
from airdrop.models.batch import Batch, BatchStatus
from airdrop.models.distribution import Distribution, DistributionStatus
from airdrop.models.recipient import Recipient, RecipientStatus
from airdrop.models.state import ensure_transition
from airdrop.services.balances import resolve_balance_pair
from airdrop.services.calculation import RewardCalculation, calculate_rewards
from airdrop.services.exclusions import ExclusionService
from airdrop.services.partition import partition_rewards, verify_partition
from airdrop.services.periods import previous_period_id as period_before

logger = structlog.get_logger()
settings = get_settings()

INSERT_CHUNK_SIZE = 1000


@dataclass
class CalculationResult:
    """Outcome of calculating a period"""
    distribution: Distribution
    calculation: RewardCalculation
    batch_count: int

    @property
    def eligible_count(self) -> int:
        return self.calculation.stats.recipient_count

    @property
    def excluded_count(self) -> int:
        return self.calculation.stats.excluded_count


class DistributionService:
    """Calculates distributions and answers queries about them."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, distribution_id: int) -> Distribution:
        distribution = await self.db.get(Distribution, distribution_id)
        if distribution is None:
            raise DistributionNotFoundError(distribution_id)
        return distribution

    async def get_by_period(self, period_id: str) -> Optional[Distribution]:
        result = await self.db.execute(select(Distribution).where(Distribution.period_id == period_id))
        return result.scalar_one_or_none()

    async def list(self, limit: int = 20, offset: int = 0) -> List[Distribution]:
        result = await self.db.execute(
            select(Distribution)
            .order_by(Distribution.created_at.desc(), Distribution.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def calculate(
        self,
        period_id: str,
        previous_period_id: Optional[str] = None,
        reward_pool: Optional[int] = None,
        min_balance: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
    ) -> CalculationResult:
        """
        Calculate rewards for a period from its previous and current snapshots.

        Recalculating a period that has not completed discards its recipients
        and batches and writes new ones from the current inputs.

        Raises:
            DistributionAlreadyCompletedError: the period was already paid out
            InvalidStatusError: a processing pass owns the distribution
            SnapshotNotFoundError / SnapshotNotCompletedError: unusable inputs
        """
        previous_period_id = previous_period_id or period_before(period_id)
        reward_pool = settings.reward_pool if reward_pool is None else int(reward_pool)
        min_balance = settings.min_balance if min_balance is None else int(min_balance)
        batch_size = batch_size or settings.batch_size
        max_retries = settings.max_retries if max_retries is None else max_retries

        if reward_pool < 0:
            raise ValueError("Reward pool cannot be negative")
        if batch_size < 1:
            raise ValueError("Batch size must be at least 1")

        logger.info("Calculating rewards", period_id=period_id, previous_period_id=previous_period_id)
        started = datetime.utcnow()

        existing = await self.get_by_period(period_id)
        if existing is not None:
            if existing.status == DistributionStatus.COMPLETED:
                raise DistributionAlreadyCompletedError(period_id)
            if existing.status == DistributionStatus.PROCESSING:
                raise InvalidStatusError(
                    f"Distribution for period {period_id} is processing and cannot be recalculated",
                    {"period_id": period_id, "status": existing.status.value},
                )
            paid = await self._completed_batch_count(existing.id)
            if paid:
                raise InvalidStatusError(
                    f"Distribution for period {period_id} has {paid} confirmed batch(es) and cannot be recalculated",
                    {"period_id": period_id, "completed_batches": paid},
                )

        # Input errors surface before anything is written
        balances = await resolve_balance_pair(self.db, previous_period_id, period_id)
        exclusions = ExclusionService(self.db)
        excluded = await exclusions.policy_addresses()
        restricted = await exclusions.restricted_addresses()

        if existing is None:
            distribution = Distribution(period_id=period_id, status=DistributionStatus.CALCULATING)
            self.db.add(distribution)
        else:
            distribution = existing
            # A row left in calculating by a crashed run is simply taken over
            if distribution.status != DistributionStatus.CALCULATING:
                distribution.status = ensure_transition(distribution.status, DistributionStatus.CALCULATING)

        distribution.previous_period_id = previous_period_id
        distribution.previous_snapshot_id = balances.previous_snapshot.id
        distribution.current_snapshot_id = balances.current_snapshot.id
        distribution.min_balance = min_balance
        distribution.reward_pool = reward_pool
        distribution.reward_mint = settings.reward_mint
        distribution.batch_size = batch_size
        distribution.max_retries = max_retries
        distribution.total_distributed = 0
        distribution.error = None
        distribution.completed_at = None
        await self.db.commit()
        distribution_id = distribution.id

        try:
            calculation = calculate_rewards(
                balances.previous,
                balances.current,
                reward_pool=reward_pool,
                min_balance=min_balance,
                excluded=excluded,
                restricted=restricted,
            )
            plans = partition_rewards(calculation.recipients, batch_size)
            verify_partition(calculation.recipients, plans)

            await self.db.execute(delete(Recipient).where(Recipient.distribution_id == distribution_id))
            await self.db.execute(delete(Batch).where(Batch.distribution_id == distribution_id))

            batch_of: Dict[str, int] = {}
            for plan in plans:
                for transfer in plan.recipients:
                    batch_of[transfer["address"]] = plan.batch_number

            recipients = [
                Recipient(
                    distribution_id=distribution_id,
                    period_id=period_id,
                    address=r.address,
                    previous_balance=r.previous_balance,
                    current_balance=r.current_balance,
                    eligible_balance=r.eligible_balance,
                    reward=r.reward,
                    percentage=r.percentage,
                    status=RecipientStatus.PENDING,
                    batch_number=batch_of[r.address],
                )
                for r in calculation.recipients
            ]
            for start in range(0, len(recipients), INSERT_CHUNK_SIZE):
                self.db.add_all(recipients[start:start + INSERT_CHUNK_SIZE])
                await self.db.flush()

            self.db.add_all([
                Batch(
                    distribution_id=distribution_id,
                    period_id=period_id,
                    batch_number=plan.batch_number,
                    recipients=[
                        {"address": t["address"], "amount": str(t["amount"])} for t in plan.recipients
                    ],
                    recipient_count=plan.recipient_count,
                    total_amount=plan.total_amount,
                    status=BatchStatus.PENDING,
                    retry_count=0,
                    max_retries=max_retries,
                )
                for plan in plans
            ])

            stats = calculation.stats
            distribution.total_holders = stats.total_holders
            distribution.eligible_holders = stats.eligible_count
            distribution.excluded_holders = stats.excluded_count
            distribution.policy_excluded = stats.policy_excluded
            distribution.restricted_excluded = stats.restricted_excluded
            distribution.ineligible_holders = stats.ineligible_count
            distribution.recipient_count = stats.recipient_count
            distribution.total_batches = len(plans)
            distribution.total_eligible_balance = stats.total_eligible_balance
            distribution.total_allocated = stats.total_allocated
            distribution.status = ensure_transition(distribution.status, DistributionStatus.READY)
            distribution.calculated_at = datetime.utcnow()
            await self.db.commit()
            await self.db.refresh(distribution)
        except Exception as e:
            await self.db.rollback()
            await self._mark_calculation_failed(distribution_id, str(e))
            logger.error("Calculation failed", period_id=period_id, error=str(e))
            raise

        logger.info(
            "Calculation completed",
            period_id=period_id,
            recipients=stats.recipient_count,
            batches=len(plans),
            policy_excluded=stats.policy_excluded,
            restricted_excluded=stats.restricted_excluded,
            total_allocated=str(stats.total_allocated),
            dust=str(stats.dust),
            duration_ms=int((datetime.utcnow() - started).total_seconds() * 1000),
        )
        return CalculationResult(distribution=distribution, calculation=calculation, batch_count=len(plans))

    async def _completed_batch_count(self, distribution_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Batch.id)).where(
                Batch.distribution_id == distribution_id,
                Batch.status == BatchStatus.COMPLETED,
            )
        )
        return result.scalar() or 0

    async def _mark_calculation_failed(self, distribution_id: int, error: str) -> None:
        distribution = await self.db.get(Distribution, distribution_id)
        if distribution is None:
            return
        distribution.status = ensure_transition(distribution.status, DistributionStatus.FAILED)
        distribution.error = error[:500]
        await self.db.commit()

    async def approve(self, distribution_id: int, reward_pool: int) -> CalculationResult:
        """
        Fix the reward pool for a ready distribution.

        Rewards are recalculated from the same snapshots and settings, so the
        persisted amounts always match the approved pool.
        """
        distribution = await self.get(distribution_id)
        if distribution.status != DistributionStatus.READY:
            raise InvalidStatusError(
                f"Distribution {distribution_id} must be ready to approve (status: {distribution.status.value})",
                {"distribution_id": distribution_id, "status": distribution.status.value},
            )
        logger.info("Approving distribution", period_id=distribution.period_id, reward_pool=str(reward_pool))
        return await self.calculate(
            distribution.period_id,
            previous_period_id=distribution.previous_period_id,
            reward_pool=reward_pool,
            min_balance=distribution.min_balance,
            batch_size=distribution.batch_size,
            max_retries=distribution.max_retries,
        )

    async def list_recipients(
        self,
        distribution_id: int,
        status: Optional[RecipientStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Recipient], int]:
        """Recipients in payout order (batch number, then position within the batch)"""
        query = select(Recipient).where(Recipient.distribution_id == distribution_id)
        count_query = select(func.count(Recipient.id)).where(Recipient.distribution_id == distribution_id)
        if status is not None:
            query = query.where(Recipient.status == status)
            count_query = count_query.where(Recipient.status == status)

        result = await self.db.execute(
            query.order_by(Recipient.batch_number, Recipient.id).offset(offset).limit(limit)
        )
        total = (await self.db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total

    async def list_batches(self, distribution_id: int, status: Optional[BatchStatus] = None) -> List[Batch]:
        query = select(Batch).where(Batch.distribution_id == distribution_id)
        if status is not None:
            query = query.where(Batch.status == status)
        result = await self.db.execute(query.order_by(Batch.batch_number))
        return list(result.scalars().all())

    async def batch_stats(self, distribution_id: int) -> Dict[str, int]:
        """Batch count per status"""
        result = await self.db.execute(
            select(Batch.status, func.count(Batch.id))
            .where(Batch.distribution_id == distribution_id)
            .group_by(Batch.status)
        )
        return {status.value: count for status, count in result.all()}

    async def progress(self, distribution_id: int) -> Dict[str, object]:
        distribution = await self.get(distribution_id)
        batches = await self.list_batches(distribution_id)
        stats = await self.batch_stats(distribution_id)

        result = await self.db.execute(
            select(Recipient.status, func.count(Recipient.id))
            .where(Recipient.distribution_id == distribution_id)
            .group_by(Recipient.status)
        )
        recipients = {status.value: count for status, count in result.all()}

        return {
            "distribution_id": distribution_id,
            "period_id": distribution.period_id,
            "status": distribution.status.value,
            "total_batches": len(batches),
            "completed_batches": stats.get(BatchStatus.COMPLETED.value, 0),
            "failed_batches": stats.get(BatchStatus.FAILED.value, 0),
            "pending_batches": stats.get(BatchStatus.PENDING.value, 0),
            "processing_batches": stats.get(BatchStatus.PROCESSING.value, 0),
            "exhausted_batches": sum(
                1 for b in batches if b.status == BatchStatus.FAILED and b.retries_exhausted
            ),
            "completed_recipients": recipients.get(RecipientStatus.COMPLETED.value, 0),
            "failed_recipients": recipients.get(RecipientStatus.FAILED.value, 0),
            "pending_recipients": recipients.get(RecipientStatus.PENDING.value, 0),
            "total_allocated": distribution.total_allocated,
            "total_distributed": sum(b.total_amount for b in batches if b.status == BatchStatus.COMPLETED),
            "reward_pool": distribution.reward_pool,
        }
