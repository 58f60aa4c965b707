"""Batch model"""
import enum
from datetime import datetime
from typing import List, Dict
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship

from airdrop.models.database import Base
from airdrop.models.types import TokenAmount


class BatchStatus(str, enum.Enum):
    """Batch execution status"""
    PENDING = "pending"  # Never attempted
    PROCESSING = "processing"  # Handed to the executor; unknown outcome after a crash
    COMPLETED = "completed"  # Transaction confirmed
    FAILED = "failed"  # Last attempt failed


class Batch(Base):
    """A group of recipients paid by a single transaction"""
    __tablename__ = "batches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    distribution_id = Column(Integer, ForeignKey("distributions.id"), nullable=False, index=True)
    period_id = Column(String(20), nullable=False)
    batch_number = Column(Integer, nullable=False)

    # Ordered [{"address": str, "amount": str}] in calculator order
    recipients = Column(JSON, nullable=False)
    recipient_count = Column(Integer, nullable=False)
    total_amount = Column(TokenAmount, nullable=False)

    status = Column(SQLEnum(BatchStatus), nullable=False, default=BatchStatus.PENDING, index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    last_error = Column(Text, nullable=True)

    # Signature of the most recent broadcast, looked up before sending again
    last_signature = Column(String(100), nullable=True)

    # Execution record, only set after confirmation
    tx_signature = Column(String(100), nullable=True, index=True)
    fee_used = Column(TokenAmount, nullable=True)  # lamports
    fee_price = Column(TokenAmount, nullable=True)  # micro-lamports per compute unit
    confirmed_slot = Column(Integer, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    distribution = relationship("Distribution", back_populates="batches")

    __table_args__ = (
        UniqueConstraint("distribution_id", "batch_number", name="uq_batch_distribution_number"),
    )

    @property
    def addresses(self) -> List[str]:
        return [r["address"] for r in self.recipients]

    @property
    def transfers(self) -> List[Dict[str, int]]:
        """Member transfers with integer amounts"""
        return [{"address": r["address"], "amount": int(r["amount"])} for r in self.recipients]

    @property
    def retries_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries

    def __repr__(self):
        return f"<Batch #{self.batch_number} {self.recipient_count} recipients ({self.status})>"
