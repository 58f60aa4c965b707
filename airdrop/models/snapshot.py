"""Holder snapshot models"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship

from airdrop.models.database import Base
from airdrop.models.types import TokenAmount


class SnapshotStatus(str, enum.Enum):
    """Snapshot ingestion status"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Snapshot(Base):
    """Holder balances captured for a period"""
    __tablename__ = "snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_id = Column(String(20), nullable=False, unique=True, index=True)
    status = Column(SQLEnum(SnapshotStatus), nullable=False, default=SnapshotStatus.PENDING)
    total_holders = Column(Integer, nullable=False, default=0)
    total_balance = Column(TokenAmount, nullable=False, default=0)
    error = Column(Text, nullable=True)
    taken_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    holders = relationship("Holder", back_populates="snapshot", lazy="dynamic")

    def __repr__(self):
        return f"<Snapshot {self.period_id} holders={self.total_holders} ({self.status})>"


class Holder(Base):
    """Balance of one wallet in a snapshot (materialized by the ingestion job)"""
    __tablename__ = "holders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    snapshot_id = Column(Integer, ForeignKey("snapshots.id"), nullable=False, index=True)
    period_id = Column(String(20), nullable=False, index=True)
    address = Column(String(44), nullable=False, index=True)
    balance = Column(TokenAmount, nullable=False, default=0)
    is_contract = Column(Boolean, nullable=False, default=False)
    label = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    snapshot = relationship("Snapshot", back_populates="holders")

    __table_args__ = (
        UniqueConstraint("snapshot_id", "address", name="uq_holder_snapshot_address"),
    )

    def __repr__(self):
        return f"<Holder {self.address[:8]}... ({self.balance})>"
