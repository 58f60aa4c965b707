"""Batch recovery endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop.api.deps import get_runtime, http_error
from airdrop.exceptions import AirdropError
from airdrop.models.database import get_db
from airdrop.schemas.distribution import BatchResponse, ReconcileRequest
from airdrop.services.runtime import AirdropRuntime

router = APIRouter()


@router.post("/{batch_id}/retry", response_model=BatchResponse)
async def retry_batch(
    batch_id: int,
    db: AsyncSession = Depends(get_db),
    runtime: AirdropRuntime = Depends(get_runtime),
):
    """Reset a failed batch's retry count; the next pass sends it again"""
    try:
        batch = await runtime.orchestrator(db).retry_batch(batch_id)
    except AirdropError as e:
        raise http_error(e)
    return BatchResponse.model_validate(batch)


@router.post("/{batch_id}/reconcile", response_model=BatchResponse)
async def reconcile_batch(
    batch_id: int,
    request: ReconcileRequest,
    db: AsyncSession = Depends(get_db),
    runtime: AirdropRuntime = Depends(get_runtime),
):
    """Resolve a batch left processing by an interrupted pass"""
    try:
        batch = await runtime.orchestrator(db).reconcile_batch(batch_id, request.tx_signature)
    except AirdropError as e:
        raise http_error(e)
    return BatchResponse.model_validate(batch)
