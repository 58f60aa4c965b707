"""Reward exclusion lists"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from airdrop.models.database import Base


class ExcludedAddress(Base):
    """Policy exclusion (liquidity pools, treasury, burn addresses)"""
    __tablename__ = "excluded_addresses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    address = Column(String(44), nullable=False, unique=True, index=True)
    label = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<ExcludedAddress {self.address[:8]}... ({self.label})>"


class RestrictedAddress(Base):
    """Restriction list entry (bot-flagged or blocked wallets)"""
    __tablename__ = "restricted_addresses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    address = Column(String(44), nullable=False, unique=True, index=True)
    source = Column(String(50), nullable=True)  # e.g. antibot scan, manual
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<RestrictedAddress {self.address[:8]}... ({self.source})>"
