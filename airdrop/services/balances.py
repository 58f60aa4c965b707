"""Balance resolver: reads materialized holder balances for a period."""
from dataclasses import dataclass
from typing import Dict

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop.exceptions import SnapshotNotFoundError, SnapshotNotCompletedError
from airdrop.models.snapshot import Snapshot, SnapshotStatus, Holder

logger = structlog.get_logger()


@dataclass
class BalancePair:
    """Balances at both ends of a reward period"""
    previous_snapshot: Snapshot
    current_snapshot: Snapshot
    previous: Dict[str, int]
    current: Dict[str, int]


async def get_completed_snapshot(db: AsyncSession, period_id: str) -> Snapshot:
    """
    Load a snapshot that is safe to compute rewards from.

    Raises:
        SnapshotNotFoundError: no snapshot for the period
        SnapshotNotCompletedError: ingestion has not finished
    """
    result = await db.execute(select(Snapshot).where(Snapshot.period_id == period_id))
    snapshot = result.scalar_one_or_none()
    if snapshot is None:
        raise SnapshotNotFoundError(period_id)
    if snapshot.status != SnapshotStatus.COMPLETED:
        raise SnapshotNotCompletedError(period_id, snapshot.status.value)
    return snapshot


async def resolve_balances(db: AsyncSession, period_id: str) -> Dict[str, int]:
    """Return address -> balance for a completed snapshot"""
    snapshot = await get_completed_snapshot(db, period_id)
    result = await db.execute(
        select(Holder.address, Holder.balance).where(Holder.snapshot_id == snapshot.id)
    )
    return {address: balance for address, balance in result.all()}


async def resolve_balance_pair(
    db: AsyncSession,
    previous_period_id: str,
    current_period_id: str,
) -> BalancePair:
    """Resolve both snapshots of a period; fails before reading any holders if either is unusable"""
    previous_snapshot = await get_completed_snapshot(db, previous_period_id)
    current_snapshot = await get_completed_snapshot(db, current_period_id)

    previous = await resolve_balances(db, previous_period_id)
    current = await resolve_balances(db, current_period_id)

    logger.info(
        "Resolved holder balances",
        previous_period=previous_period_id,
        current_period=current_period_id,
        previous_holders=len(previous),
        current_holders=len(current),
    )
    return BalancePair(
        previous_snapshot=previous_snapshot,
        current_snapshot=current_snapshot,
        previous=previous,
        current=current,
    )
