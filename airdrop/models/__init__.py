"""Database models"""
from airdrop.models.database import Base, get_db
from airdrop.models.snapshot import Snapshot, SnapshotStatus, Holder
from airdrop.models.exclusion import ExcludedAddress, RestrictedAddress
from airdrop.models.distribution import Distribution, DistributionStatus
from airdrop.models.recipient import Recipient, RecipientStatus
from airdrop.models.batch import Batch, BatchStatus

__all__ = [
    "Base",
    "get_db",
    # Snapshots
    "Snapshot",
    "SnapshotStatus",
    "Holder",
    # Exclusions
    "ExcludedAddress",
    "RestrictedAddress",
    # Distributions
    "Distribution",
    "DistributionStatus",
    "Recipient",
    "RecipientStatus",
    "Batch",
    "BatchStatus",
]
