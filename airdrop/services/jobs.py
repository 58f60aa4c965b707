"""Periodic calculate and airdrop jobs"""
from datetime import datetime
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop.config import get_settings
from airdrop.exceptions import DistributionAlreadyCompletedError, DistributionLockedError
from airdrop.models.distribution import DistributionStatus
from airdrop.services.distribution_service import CalculationResult, DistributionService
from airdrop.services.orchestrator import DistributionOrchestrator, ProcessResult
from airdrop.services.periods import current_period_id

logger = structlog.get_logger()
settings = get_settings()


async def run_calculate_job(
    db: AsyncSession,
    period_id: Optional[str] = None,
) -> Optional[CalculationResult]:
    """
    Calculate the period's rewards from its previous and current snapshots.

    A distribution that was already calculated is left alone; only missing
    periods and unfinished calculations are (re)computed.
    """
    period_id = period_id or current_period_id(settings.cycle_mode, datetime.utcnow())
    service = DistributionService(db)
    log = logger.bind(job="calculate", period_id=period_id)

    existing = await service.get_by_period(period_id)
    if existing is not None and existing.calculated_at is not None:
        log.info("Distribution already calculated, skipping", status=existing.status.value)
        return None

    log.info("Starting calculation")
    try:
        result = await service.calculate(period_id)
    except DistributionAlreadyCompletedError:
        log.warning("Distribution already completed, skipping")
        return None
    except Exception as e:
        log.error("Calculation job failed", error=str(e))
        raise

    log.info("Calculation job completed", eligible=result.eligible_count, batches=result.batch_count)
    return result


async def run_airdrop_job(
    db: AsyncSession,
    orchestrator_factory: Callable[[AsyncSession], DistributionOrchestrator],
    period_id: Optional[str] = None,
) -> Optional[ProcessResult]:
    """Run a processing pass for the period's distribution if it is ready or in progress"""
    period_id = period_id or current_period_id(settings.cycle_mode, datetime.utcnow())
    log = logger.bind(job="airdrop", period_id=period_id)

    distribution = await DistributionService(db).get_by_period(period_id)
    if distribution is None:
        log.warning("No distribution found")
        return None
    if distribution.status == DistributionStatus.COMPLETED:
        log.info("Distribution already completed")
        return None
    if distribution.status not in (DistributionStatus.READY, DistributionStatus.PROCESSING):
        log.warning("Distribution not ready", status=distribution.status.value)
        return None

    try:
        result = await orchestrator_factory(db).process(distribution.id)
    except DistributionLockedError as e:
        log.warning("Distribution is being processed elsewhere", owner=e.details.get("lease_owner"))
        return None
    except Exception as e:
        log.error("Airdrop job failed", error=str(e))
        raise

    log.info(
        "Airdrop job completed",
        processed=result.processed_batches,
        failed=result.failed_batches,
        paused=result.paused,
        status=result.status.value,
    )
    if result.failed_batches:
        log.warning(
            "Batches failed, manual intervention may be required",
            failed=result.failed_batches,
            skipped=result.skipped_batches,
        )
    return result
