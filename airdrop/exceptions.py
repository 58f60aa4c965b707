"""
Exception classes for the airdrop engine.

Only precondition failures are raised to callers. Batch execution outcomes
are persisted as rows and never surface as exceptions from a processing pass.
"""
from typing import Any, Dict, Optional


class AirdropError(Exception):
    """Base exception for the airdrop engine."""

    def __init__(
        self,
        message: str,
        code: str = "AIRDROP_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AirdropError):
    """Raised when a requested record does not exist."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class DistributionNotFoundError(NotFoundError):
    def __init__(self, distribution_id: Any):
        super().__init__(
            f"Distribution {distribution_id} not found",
            {"distribution_id": distribution_id},
        )


class BatchNotFoundError(NotFoundError):
    def __init__(self, batch_id: Any):
        super().__init__(f"Batch {batch_id} not found", {"batch_id": batch_id})


class SnapshotNotFoundError(NotFoundError):
    def __init__(self, period_id: str):
        super().__init__(
            f"Snapshot for period {period_id} not found",
            {"period_id": period_id},
        )


class SnapshotNotCompletedError(AirdropError):
    """Raised when balances are requested from a snapshot that has not finished."""

    def __init__(self, period_id: str, status: str):
        super().__init__(
            f"Snapshot {period_id} is not completed (status: {status})",
            "SNAPSHOT_NOT_COMPLETED",
            {"period_id": period_id, "status": status},
        )


class SnapshotAlreadyCompletedError(AirdropError):
    def __init__(self, period_id: str):
        super().__init__(
            f"Snapshot for period {period_id} already exists",
            "SNAPSHOT_ALREADY_COMPLETED",
            {"period_id": period_id},
        )


class DistributionAlreadyCompletedError(AirdropError):
    """Raised when recalculating a period whose payouts have all been sent."""

    def __init__(self, period_id: str):
        super().__init__(
            f"Distribution for period {period_id} already exists",
            "DISTRIBUTION_ALREADY_COMPLETED",
            {"period_id": period_id},
        )


class InvalidStatusError(AirdropError):
    """Raised when an operation is not allowed in the record's current status."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_STATUS", details)


class InvalidTransitionError(InvalidStatusError):
    """Raised when a status change is not declared in the state machine."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Invalid {entity} status transition: {current} -> {target}",
            {"entity": entity, "from": current, "to": target},
        )
        self.code = "INVALID_TRANSITION"


class DistributionLockedError(AirdropError):
    """Raised when another processing pass holds the distribution lease."""

    def __init__(self, distribution_id: Any, owner: Optional[str]):
        super().__init__(
            f"Distribution {distribution_id} is being processed by {owner}",
            "DISTRIBUTION_LOCKED",
            {"distribution_id": distribution_id, "lease_owner": owner},
        )


class PartitionError(AirdropError):
    """Raised when batches do not exactly cover the recipient rewards."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PARTITION_ERROR", details)


class ExecutionError(AirdropError):
    """Raised by a batch executor when a transfer could not be confirmed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "EXECUTION_ERROR", details)
