"""Snapshot API endpoints"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop.api.deps import http_error
from airdrop.exceptions import AirdropError
from airdrop.models.database import get_db
from airdrop.schemas.snapshot import SnapshotResponse, StoreSnapshotRequest
from airdrop.services.periods import previous_period_id
from airdrop.services.snapshots import SnapshotService

router = APIRouter()


@router.get("", response_model=List[SnapshotResponse])
async def list_snapshots(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List snapshots, newest first"""
    snapshots = await SnapshotService(db).list(limit=limit)
    return [SnapshotResponse.model_validate(s) for s in snapshots]


@router.post("", response_model=SnapshotResponse)
async def store_snapshot(request: StoreSnapshotRequest, db: AsyncSession = Depends(get_db)):
    """Store balances fetched by the ingestion side as a completed snapshot"""
    try:
        # Rejects malformed period ids before anything is written
        previous_period_id(request.period_id)
        snapshot = await SnapshotService(db).store_snapshot(
            request.period_id,
            request.balances,
            labels=request.labels,
            contracts=set(request.contracts),
        )
    except AirdropError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SnapshotResponse.model_validate(snapshot)
