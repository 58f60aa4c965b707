"""Distribution model"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship

from airdrop.models.database import Base
from airdrop.models.types import TokenAmount


class DistributionStatus(str, enum.Enum):
    """Distribution lifecycle status"""
    CALCULATING = "calculating"  # Rewards being computed from snapshots
    READY = "ready"  # Recipients and batches written, waiting for execution
    PROCESSING = "processing"  # At least one pass started; batches remain
    COMPLETED = "completed"  # Every batch confirmed
    FAILED = "failed"  # Calculation failed or batches exhausted their retries


class Distribution(Base):
    """One reward distribution per period"""
    __tablename__ = "distributions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_id = Column(String(20), nullable=False, unique=True, index=True)
    previous_period_id = Column(String(20), nullable=False)
    previous_snapshot_id = Column(Integer, nullable=True)
    current_snapshot_id = Column(Integer, nullable=True)
    status = Column(SQLEnum(DistributionStatus), nullable=False, default=DistributionStatus.CALCULATING)

    # Config captured when the rewards were calculated
    min_balance = Column(TokenAmount, nullable=False, default=0)
    reward_pool = Column(TokenAmount, nullable=False, default=0)
    reward_mint = Column(String(44), nullable=True)
    batch_size = Column(Integer, nullable=False)
    max_retries = Column(Integer, nullable=False, default=3)

    # Stats
    total_holders = Column(Integer, nullable=False, default=0)
    eligible_holders = Column(Integer, nullable=False, default=0)
    excluded_holders = Column(Integer, nullable=False, default=0)
    policy_excluded = Column(Integer, nullable=False, default=0)
    restricted_excluded = Column(Integer, nullable=False, default=0)
    ineligible_holders = Column(Integer, nullable=False, default=0)
    recipient_count = Column(Integer, nullable=False, default=0)
    total_batches = Column(Integer, nullable=False, default=0)
    total_eligible_balance = Column(TokenAmount, nullable=False, default=0)
    total_allocated = Column(TokenAmount, nullable=False, default=0)  # Sum of rewards written
    total_distributed = Column(TokenAmount, nullable=False, default=0)  # Sum of confirmed batches

    # Single-writer lease for processing passes
    lease_owner = Column(String(100), nullable=True)
    lease_expires_at = Column(DateTime, nullable=True)

    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    calculated_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    recipients = relationship("Recipient", back_populates="distribution", lazy="dynamic")
    batches = relationship("Batch", back_populates="distribution", lazy="dynamic")

    @property
    def dust(self) -> int:
        """Reward pool left unallocated by floor division"""
        return (self.reward_pool or 0) - (self.total_allocated or 0)

    def __repr__(self):
        return f"<Distribution {self.period_id} ({self.status})>"
