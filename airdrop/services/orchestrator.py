"""
Distribution orchestrator.

Drives a distribution's batches through a BatchExecutor one at a time,
persisting every state change before moving on, so a pass can stop at any
point (fee gate, crash, restart) and a later pass resumes from the stored
batch statuses.
"""
import asyncio
import os
import socket
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

import structlog
from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop.config import get_settings
from airdrop.exceptions import (
    BatchNotFoundError,
    DistributionLockedError,
    DistributionNotFoundError,
    ExecutionError,
    InvalidStatusError,
)
from airdrop.models.batch import Batch, BatchStatus
from airdrop.models.distribution import Distribution, DistributionStatus
from airdrop.models.recipient import Recipient, RecipientStatus
from airdrop.models.state import (
    PROCESSABLE_DISTRIBUTION_STATUSES,
    RUNNABLE_BATCH_STATUSES,
    ensure_transition,
)
from airdrop.services.execution import BatchExecutor, ExecutionReceipt
from airdrop.services.price_gate import PriceGate

logger = structlog.get_logger()
settings = get_settings()


def default_lease_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


@dataclass
class ProcessResult:
    """Outcome of one processing pass"""
    distribution: Distribution
    processed_batches: int = 0  # confirmed in this pass
    failed_batches: int = 0  # failed in this pass, exhausted batches included
    skipped_batches: int = 0  # the failed ones not attempted, retries exhausted
    paused: bool = False  # stopped by the fee gate
    total_distributed: int = 0  # cumulative over all passes

    @property
    def status(self) -> DistributionStatus:
        return self.distribution.status


class DistributionOrchestrator:
    """
    Runs processing passes over a distribution's batches.

    Batch outcomes are written to the database and reported in the
    ProcessResult. Only precondition failures raise (unknown distribution,
    wrong status, lease held by another owner).
    """

    def __init__(
        self,
        db: AsyncSession,
        executor: BatchExecutor,
        price_gate: PriceGate,
        cooldown_seconds: Optional[float] = None,
        lease_seconds: Optional[int] = None,
        owner: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.executor = executor
        self.price_gate = price_gate
        self.cooldown_seconds = settings.batch_cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        self.lease_seconds = lease_seconds or settings.lease_seconds
        self.owner = owner or default_lease_owner()
        self._sleep = sleep

    # Lease

    async def acquire_lease(self, distribution: Distribution) -> None:
        """
        Take the single-writer lease with a conditional update.

        The lease is free when nobody holds it, when it expired, or when this
        orchestrator already holds it.
        """
        now = datetime.utcnow()
        result = await self.db.execute(
            update(Distribution)
            .where(
                Distribution.id == distribution.id,
                Distribution.status.in_(list(PROCESSABLE_DISTRIBUTION_STATUSES)),
                or_(
                    Distribution.lease_owner.is_(None),
                    Distribution.lease_expires_at < now,
                    Distribution.lease_owner == self.owner,
                ),
            )
            .values(lease_owner=self.owner, lease_expires_at=now + timedelta(seconds=self.lease_seconds))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(distribution)

        if result.rowcount == 0:
            if distribution.status not in PROCESSABLE_DISTRIBUTION_STATUSES:
                raise self._not_processable(distribution)
            raise DistributionLockedError(distribution.id, distribution.lease_owner)

        logger.debug("Lease acquired", distribution_id=distribution.id, owner=self.owner)

    async def release_lease(self, distribution_id: int) -> None:
        await self.db.execute(
            update(Distribution)
            .where(Distribution.id == distribution_id, Distribution.lease_owner == self.owner)
            .values(lease_owner=None, lease_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    def _extend_lease(self, distribution: Distribution) -> None:
        distribution.lease_expires_at = datetime.utcnow() + timedelta(seconds=self.lease_seconds)

    # Processing pass

    async def process(self, distribution_id: int) -> ProcessResult:
        """
        Run one pass over the distribution's pending and failed batches.

        Raises:
            DistributionNotFoundError: unknown distribution
            InvalidStatusError: distribution is not ready, processing or failed
            DistributionLockedError: another pass holds the lease
        """
        distribution = await self._get_distribution(distribution_id)
        if distribution.status not in PROCESSABLE_DISTRIBUTION_STATUSES:
            raise self._not_processable(distribution)

        await self.acquire_lease(distribution)
        try:
            result = await self._run_pass(distribution)
        except Exception:
            await self.db.rollback()
            raise
        finally:
            await self.release_lease(distribution_id)

        await self.db.refresh(distribution)
        return result

    async def _run_pass(self, distribution: Distribution) -> ProcessResult:
        distribution.status = ensure_transition(distribution.status, DistributionStatus.PROCESSING)
        distribution.error = None
        await self.db.commit()

        result = ProcessResult(distribution=distribution)
        batches = await self._runnable_batches(distribution.id)

        logger.info(
            "Processing distribution",
            period_id=distribution.period_id,
            runnable_batches=len(batches),
            owner=self.owner,
        )

        for index, batch in enumerate(batches):
            if not await self.price_gate.is_acceptable():
                result.paused = True
                logger.info(
                    "Fee gate closed, pausing distribution",
                    period_id=distribution.period_id,
                    next_batch=batch.batch_number,
                )
                break

            if batch.retries_exhausted:
                result.failed_batches += 1
                result.skipped_batches += 1
                logger.warning(
                    "Batch exceeded max retries, skipping",
                    batch_number=batch.batch_number,
                    retry_count=batch.retry_count,
                )
                continue

            self._extend_lease(distribution)
            if await self._execute_batch(batch):
                result.processed_batches += 1
            else:
                result.failed_batches += 1

            if index < len(batches) - 1 and self.cooldown_seconds > 0:
                await self._sleep(self.cooldown_seconds)

        await self._finalize(distribution)
        result.total_distributed = distribution.total_distributed

        logger.info(
            "Distribution pass finished",
            period_id=distribution.period_id,
            status=distribution.status.value,
            processed=result.processed_batches,
            failed=result.failed_batches,
            skipped=result.skipped_batches,
            paused=result.paused,
            total_distributed=str(result.total_distributed),
        )
        return result

    async def _execute_batch(self, batch: Batch) -> bool:
        """Mark the batch processing, execute it and persist the outcome"""
        batch.status = ensure_transition(batch.status, BatchStatus.PROCESSING)
        await self.db.commit()

        logger.info(
            "Processing batch",
            batch_number=batch.batch_number,
            recipients=batch.recipient_count,
            attempt=batch.retry_count + 1,
        )
        try:
            receipt = await self._earlier_broadcast_receipt(batch)
            if receipt is None:
                receipt = await self.executor.execute(batch.transfers)
        except Exception as e:
            signature = e.details.get("tx_signature") if isinstance(e, ExecutionError) else None
            await self._record_failure(batch, str(e), signature)
            return False

        await self._record_success(batch, receipt)
        return True

    async def _earlier_broadcast_receipt(self, batch: Batch) -> Optional[ExecutionReceipt]:
        """Receipt of a previous attempt that landed after it was recorded as failed"""
        if not batch.last_signature:
            return None
        receipt = await self.executor.lookup(batch.last_signature)
        if receipt is not None:
            logger.info(
                "Earlier broadcast confirmed, not sending again",
                batch_number=batch.batch_number,
                signature=batch.last_signature,
            )
        return receipt

    async def _record_success(self, batch: Batch, receipt: ExecutionReceipt) -> None:
        now = datetime.utcnow()
        batch.status = ensure_transition(batch.status, BatchStatus.COMPLETED)
        batch.tx_signature = receipt.tx_signature
        batch.last_signature = receipt.tx_signature
        batch.fee_used = receipt.fee_used
        batch.fee_price = receipt.fee_price
        batch.confirmed_slot = receipt.confirmed_slot
        batch.confirmed_at = receipt.confirmed_at
        batch.last_error = None
        batch.completed_at = now

        for recipient in await self._batch_recipients(batch):
            recipient.status = ensure_transition(recipient.status, RecipientStatus.COMPLETED)
            recipient.tx_signature = receipt.tx_signature
            recipient.error = None
            recipient.completed_at = now

        await self.db.commit()
        logger.info(
            "Batch completed",
            batch_number=batch.batch_number,
            signature=receipt.tx_signature,
            slot=receipt.confirmed_slot,
            fee=receipt.fee_used,
        )

    async def _record_failure(self, batch: Batch, error: str, tx_signature: Optional[str] = None) -> None:
        batch.status = ensure_transition(batch.status, BatchStatus.FAILED)
        batch.last_error = error
        batch.retry_count += 1
        if tx_signature:
            batch.last_signature = tx_signature

        for recipient in await self._batch_recipients(batch):
            recipient.status = ensure_transition(recipient.status, RecipientStatus.FAILED)
            recipient.error = error

        await self.db.commit()
        logger.error(
            "Batch failed",
            batch_number=batch.batch_number,
            retry_count=batch.retry_count,
            max_retries=batch.max_retries,
            error=error,
            signature=tx_signature,
        )

    async def _finalize(self, distribution: Distribution) -> None:
        """Derive the distribution status from its batches"""
        counts = await self._batch_counts(distribution.id)
        open_batches = counts.get(BatchStatus.PENDING, 0) + counts.get(BatchStatus.PROCESSING, 0)
        failed_batches = counts.get(BatchStatus.FAILED, 0)

        distribution.total_distributed = await self._confirmed_total(distribution.id)

        if open_batches == 0 and failed_batches == 0:
            target = DistributionStatus.COMPLETED
            distribution.completed_at = datetime.utcnow()
        elif open_batches == 0:
            target = DistributionStatus.FAILED
            distribution.error = f"{failed_batches} batch(es) failed"
        else:
            target = DistributionStatus.PROCESSING

        distribution.status = ensure_transition(distribution.status, target)
        await self.db.commit()

    # Single batch operations

    async def process_single_batch(self, batch_id: int) -> Batch:
        """
        Execute one batch outside a full pass.

        A completed batch is returned unchanged. A failed attempt is recorded
        like in a pass and then raised as ExecutionError.
        """
        batch = await self._get_batch(batch_id)
        if batch.status == BatchStatus.COMPLETED:
            logger.info("Batch already completed", batch_number=batch.batch_number)
            return batch
        if batch.status == BatchStatus.PROCESSING:
            raise InvalidStatusError(
                f"Batch {batch_id} is processing; reconcile it before executing again",
                {"batch_id": batch_id, "status": batch.status.value},
            )
        if batch.retries_exhausted:
            raise InvalidStatusError(
                f"Batch {batch_id} exhausted its retries; reset it with a retry first",
                {"batch_id": batch_id, "retry_count": batch.retry_count},
            )

        distribution = await self._get_distribution(batch.distribution_id)
        if distribution.status not in PROCESSABLE_DISTRIBUTION_STATUSES:
            raise self._not_processable(distribution)

        await self.acquire_lease(distribution)
        try:
            await self.db.refresh(batch)
            distribution.status = ensure_transition(distribution.status, DistributionStatus.PROCESSING)
            succeeded = await self._execute_batch(batch)
            await self._finalize(distribution)
        except Exception:
            await self.db.rollback()
            raise
        finally:
            await self.release_lease(distribution.id)

        if not succeeded:
            raise ExecutionError(
                batch.last_error or "Batch execution failed",
                {"batch_id": batch.id, "batch_number": batch.batch_number, "retry_count": batch.retry_count},
            )
        return batch

    async def retry_batch(self, batch_id: int) -> Batch:
        """Reset a failed batch's retry count so the next pass attempts it again"""
        batch = await self._get_batch(batch_id)
        if batch.status != BatchStatus.FAILED:
            raise InvalidStatusError(
                f"Only failed batches can be retried (status: {batch.status.value})",
                {"batch_id": batch_id, "status": batch.status.value},
            )

        batch.retry_count = 0
        await self.db.commit()
        logger.info("Batch reset for retry", batch_id=batch_id, batch_number=batch.batch_number)
        return batch

    async def reconcile_batch(self, batch_id: int, tx_signature: Optional[str] = None) -> Batch:
        """
        Resolve a batch left processing by an interrupted pass.

        The given tx_signature, or else the last broadcast recorded on the
        batch, is looked up. If the executor finds it confirmed, the batch
        completes with that receipt. Otherwise it is marked failed and its retry
        is counted, so the next pass sends it again.
        """
        batch = await self._get_batch(batch_id)
        if batch.status != BatchStatus.PROCESSING:
            raise InvalidStatusError(
                f"Only processing batches can be reconciled (status: {batch.status.value})",
                {"batch_id": batch_id, "status": batch.status.value},
            )

        distribution = await self._get_distribution(batch.distribution_id)
        await self.acquire_lease(distribution)
        try:
            tx_signature = tx_signature or batch.last_signature
            receipt = await self.executor.lookup(tx_signature) if tx_signature else None
            if receipt is not None:
                logger.info("Reconciled batch as confirmed", batch_id=batch_id, signature=tx_signature)
                await self._record_success(batch, receipt)
            else:
                logger.warning("Reconciled batch as failed", batch_id=batch_id, signature=tx_signature)
                await self._record_failure(
                    batch,
                    f"Reconciled after interruption: transaction {tx_signature or 'unknown'} not confirmed",
                )
            await self._finalize(distribution)
        except Exception:
            await self.db.rollback()
            raise
        finally:
            await self.release_lease(distribution.id)

        return batch

    # Queries

    async def _get_distribution(self, distribution_id: int) -> Distribution:
        distribution = await self.db.get(Distribution, distribution_id)
        if distribution is None:
            raise DistributionNotFoundError(distribution_id)
        return distribution

    async def _get_batch(self, batch_id: int) -> Batch:
        batch = await self.db.get(Batch, batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    async def _runnable_batches(self, distribution_id: int) -> List[Batch]:
        result = await self.db.execute(
            select(Batch)
            .where(Batch.distribution_id == distribution_id, Batch.status.in_(list(RUNNABLE_BATCH_STATUSES)))
            .order_by(Batch.batch_number)
        )
        return list(result.scalars().all())

    async def _batch_recipients(self, batch: Batch) -> List[Recipient]:
        result = await self.db.execute(
            select(Recipient).where(
                Recipient.distribution_id == batch.distribution_id,
                Recipient.address.in_(batch.addresses),
            )
        )
        return list(result.scalars().all())

    async def _batch_counts(self, distribution_id: int) -> Dict[BatchStatus, int]:
        result = await self.db.execute(
            select(Batch.status).where(Batch.distribution_id == distribution_id)
        )
        counts: Dict[BatchStatus, int] = {}
        for status in result.scalars().all():
            counts[status] = counts.get(status, 0) + 1
        return counts

    async def _confirmed_total(self, distribution_id: int) -> int:
        # Amounts are stored as strings, so the sum happens here
        result = await self.db.execute(
            select(Batch.total_amount).where(
                Batch.distribution_id == distribution_id,
                Batch.status == BatchStatus.COMPLETED,
            )
        )
        return sum(result.scalars().all())

    @staticmethod
    def _not_processable(distribution: Distribution) -> InvalidStatusError:
        return InvalidStatusError(
            f"Distribution {distribution.id} cannot be processed (status: {distribution.status.value})",
            {"distribution_id": distribution.id, "status": distribution.status.value},
        )
