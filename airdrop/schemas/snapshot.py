"""Snapshot schemas"""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, Dict, List

from airdrop.models.snapshot import SnapshotStatus
from airdrop.schemas.distribution import Amount


class SnapshotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    period_id: str
    status: SnapshotStatus
    total_holders: int = 0
    total_balance: Amount = 0
    error: Optional[str] = None
    taken_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class StoreSnapshotRequest(BaseModel):
    """Balances already fetched by the ingestion side, keyed by owner address"""
    period_id: str
    balances: Dict[str, int]
    labels: Optional[Dict[str, str]] = None
    contracts: List[str] = Field(default_factory=list)
