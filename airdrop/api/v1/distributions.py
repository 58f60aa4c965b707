"""Distributions API endpoints"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from airdrop.api.deps import get_runtime, http_error
from airdrop.config import get_settings
from airdrop.exceptions import AirdropError
from airdrop.models.batch import BatchStatus
from airdrop.models.database import get_db
from airdrop.models.recipient import RecipientStatus
from airdrop.schemas.distribution import (
    ApproveRequest,
    BatchResponse,
    CalculateRequest,
    CalculateResponse,
    DistributionResponse,
    ProcessResponse,
    ProgressResponse,
    RecipientListResponse,
    RecipientResponse,
)
from airdrop.services.distribution_service import CalculationResult, DistributionService
from airdrop.services.periods import current_period_id
from airdrop.services.runtime import AirdropRuntime

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()


def _calculation_to_response(result: CalculationResult) -> CalculateResponse:
    stats = result.calculation.stats
    return CalculateResponse(
        distribution=DistributionResponse.model_validate(result.distribution),
        eligible_count=result.eligible_count,
        excluded_count=result.excluded_count,
        batch_count=result.batch_count,
        dust=stats.dust,
        ineligible=dict(stats.ineligible),
    )


@router.get("", response_model=List[DistributionResponse])
async def list_distributions(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List distributions, newest first"""
    distributions = await DistributionService(db).list(limit=limit, offset=offset)
    return [DistributionResponse.model_validate(d) for d in distributions]


@router.post("/calculate", response_model=CalculateResponse)
async def calculate_distribution(request: CalculateRequest, db: AsyncSession = Depends(get_db)):
    """Calculate (or recalculate) rewards for a period"""
    period_id = request.period_id or current_period_id(settings.cycle_mode, datetime.utcnow())
    try:
        result = await DistributionService(db).calculate(
            period_id,
            previous_period_id=request.previous_period_id,
            reward_pool=request.reward_pool,
            min_balance=request.min_balance,
            batch_size=request.batch_size,
        )
    except AirdropError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _calculation_to_response(result)


@router.get("/{distribution_id}", response_model=DistributionResponse)
async def get_distribution(distribution_id: int, db: AsyncSession = Depends(get_db)):
    """Get a distribution"""
    try:
        distribution = await DistributionService(db).get(distribution_id)
    except AirdropError as e:
        raise http_error(e)
    return DistributionResponse.model_validate(distribution)


@router.post("/{distribution_id}/approve", response_model=CalculateResponse)
async def approve_distribution(
    distribution_id: int,
    request: ApproveRequest,
    db: AsyncSession = Depends(get_db),
):
    """Fix the reward pool of a ready distribution"""
    try:
        result = await DistributionService(db).approve(distribution_id, request.reward_pool)
    except AirdropError as e:
        raise http_error(e)
    return _calculation_to_response(result)


@router.post("/{distribution_id}/process", response_model=ProcessResponse)
async def process_distribution(
    distribution_id: int,
    db: AsyncSession = Depends(get_db),
    runtime: AirdropRuntime = Depends(get_runtime),
):
    """Run one processing pass; batch failures are reported, not raised"""
    try:
        result = await runtime.orchestrator(db).process(distribution_id)
    except AirdropError as e:
        raise http_error(e)

    return ProcessResponse(
        distribution=DistributionResponse.model_validate(result.distribution),
        processed_batches=result.processed_batches,
        failed_batches=result.failed_batches,
        skipped_batches=result.skipped_batches,
        paused=result.paused,
        total_distributed=result.total_distributed,
    )


@router.get("/{distribution_id}/progress", response_model=ProgressResponse)
async def get_distribution_progress(distribution_id: int, db: AsyncSession = Depends(get_db)):
    """Batch and recipient counts per status"""
    try:
        progress = await DistributionService(db).progress(distribution_id)
    except AirdropError as e:
        raise http_error(e)
    return ProgressResponse(**progress)


@router.get("/{distribution_id}/recipients", response_model=RecipientListResponse)
async def list_distribution_recipients(
    distribution_id: int,
    status: Optional[RecipientStatus] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Recipients in payout order"""
    service = DistributionService(db)
    try:
        await service.get(distribution_id)
    except AirdropError as e:
        raise http_error(e)

    recipients, total = await service.list_recipients(distribution_id, status=status, limit=limit, offset=offset)
    return RecipientListResponse(
        recipients=[RecipientResponse.model_validate(r) for r in recipients],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{distribution_id}/batches", response_model=List[BatchResponse])
async def list_distribution_batches(
    distribution_id: int,
    status: Optional[BatchStatus] = None,
    db: AsyncSession = Depends(get_db),
):
    """Batches in execution order"""
    service = DistributionService(db)
    try:
        await service.get(distribution_id)
    except AirdropError as e:
        raise http_error(e)

    batches = await service.list_batches(distribution_id, status=status)
    return [BatchResponse.model_validate(b) for b in batches]
