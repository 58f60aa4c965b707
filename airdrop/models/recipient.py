"""Recipient model"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Text, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship

from airdrop.models.database import Base
from airdrop.models.types import TokenAmount


class RecipientStatus(str, enum.Enum):
    """Individual payout status, mirrors the owning batch outcome"""
    PENDING = "pending"  # Not yet sent
    COMPLETED = "completed"  # Confirmed in the batch transaction
    FAILED = "failed"  # Last attempt of the owning batch failed


class Recipient(Base):
    """Eligible holder with a non-zero reward in a distribution"""
    __tablename__ = "recipients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    distribution_id = Column(Integer, ForeignKey("distributions.id"), nullable=False, index=True)
    period_id = Column(String(20), nullable=False, index=True)
    address = Column(String(44), nullable=False, index=True)

    previous_balance = Column(TokenAmount, nullable=False)
    current_balance = Column(TokenAmount, nullable=False)
    eligible_balance = Column(TokenAmount, nullable=False)  # min(previous, current)

    reward = Column(TokenAmount, nullable=False)
    percentage = Column(Float, nullable=False, default=0)  # Display only
    status = Column(SQLEnum(RecipientStatus), nullable=False, default=RecipientStatus.PENDING)
    batch_number = Column(Integer, nullable=False, index=True)
    tx_signature = Column(String(100), nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    distribution = relationship("Distribution", back_populates="recipients")

    __table_args__ = (
        UniqueConstraint("distribution_id", "address", name="uq_recipient_distribution_address"),
    )

    def __repr__(self):
        return f"<Recipient {self.address[:8]}... {self.reward} ({self.status})>"
