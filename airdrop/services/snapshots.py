"""Snapshot storage for balances fetched by the ingestion job."""
from datetime import datetime
from typing import Dict, List, Mapping, Optional

import structlog
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop.exceptions import SnapshotAlreadyCompletedError, SnapshotNotFoundError
from airdrop.models.snapshot import Snapshot, SnapshotStatus, Holder

logger = structlog.get_logger()

INSERT_CHUNK_SIZE = 1000


def normalize_address(address: str) -> str:
    # Base58 is case-sensitive; only surrounding whitespace is dropped
    return address.strip()


class SnapshotService:
    """Persists already-fetched holder balances as a completed snapshot."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_period(self, period_id: str) -> Optional[Snapshot]:
        result = await self.db.execute(select(Snapshot).where(Snapshot.period_id == period_id))
        return result.scalar_one_or_none()

    async def list(self, limit: int = 10) -> List[Snapshot]:
        result = await self.db.execute(
            select(Snapshot).order_by(Snapshot.taken_at.desc(), Snapshot.id.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def store_snapshot(
        self,
        period_id: str,
        balances: Mapping[str, int],
        labels: Optional[Dict[str, str]] = None,
        contracts: Optional[set] = None,
    ) -> Snapshot:
        """
        Store balances for a period and mark the snapshot completed.

        A snapshot that never completed is replaced (its holders are deleted
        first), so a crashed ingestion can simply be re-run.

        Raises:
            SnapshotAlreadyCompletedError: if the period already has a completed snapshot
        """
        labels = {normalize_address(a): label for a, label in (labels or {}).items()}
        contracts = {normalize_address(a) for a in (contracts or ())}

        snapshot = await self.get_by_period(period_id)
        if snapshot is not None and snapshot.status == SnapshotStatus.COMPLETED:
            raise SnapshotAlreadyCompletedError(period_id)

        if snapshot is None:
            snapshot = Snapshot(period_id=period_id, status=SnapshotStatus.IN_PROGRESS)
            self.db.add(snapshot)
            await self.db.flush()
        else:
            snapshot.status = SnapshotStatus.IN_PROGRESS
            snapshot.error = None
            await self.db.execute(delete(Holder).where(Holder.snapshot_id == snapshot.id))

        merged: Dict[str, int] = {}
        for address, balance in balances.items():
            balance = int(balance)
            if balance < 0:
                raise ValueError(f"Negative balance for {address}: {balance}")
            key = normalize_address(address)
            merged[key] = merged.get(key, 0) + balance

        rows = [
            Holder(
                snapshot_id=snapshot.id,
                period_id=period_id,
                address=address,
                balance=balance,
                is_contract=address in contracts,
                label=labels.get(address),
            )
            for address, balance in merged.items()
        ]
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            self.db.add_all(rows[start:start + INSERT_CHUNK_SIZE])
            await self.db.flush()

        snapshot.total_holders = len(rows)
        snapshot.total_balance = sum(merged.values())
        snapshot.status = SnapshotStatus.COMPLETED
        snapshot.completed_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(snapshot)

        logger.info(
            "Snapshot stored",
            period_id=period_id,
            holders=snapshot.total_holders,
            total_balance=str(snapshot.total_balance),
        )
        return snapshot

    async def mark_failed(self, period_id: str, error: str) -> Snapshot:
        """Record an ingestion failure for a period"""
        snapshot = await self.get_by_period(period_id)
        if snapshot is None:
            raise SnapshotNotFoundError(period_id)
        if snapshot.status == SnapshotStatus.COMPLETED:
            raise SnapshotAlreadyCompletedError(period_id)

        snapshot.status = SnapshotStatus.FAILED
        snapshot.error = error[:500]
        await self.db.commit()
        await self.db.refresh(snapshot)
        logger.warning("Snapshot marked failed", period_id=period_id, error=error)
        return snapshot

    async def begin_snapshot(self, period_id: str) -> Snapshot:
        """Create (or reopen) an in-progress snapshot before ingestion starts"""
        snapshot = await self.get_by_period(period_id)
        if snapshot is not None and snapshot.status == SnapshotStatus.COMPLETED:
            raise SnapshotAlreadyCompletedError(period_id)
        if snapshot is None:
            snapshot = Snapshot(period_id=period_id, status=SnapshotStatus.IN_PROGRESS)
            self.db.add(snapshot)
        else:
            snapshot.status = SnapshotStatus.IN_PROGRESS
            snapshot.error = None
        await self.db.commit()
        await self.db.refresh(snapshot)
        return snapshot
