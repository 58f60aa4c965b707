"""Shared API dependencies"""
from fastapi import HTTPException, Request

from airdrop.exceptions import (
    AirdropError,
    DistributionAlreadyCompletedError,
    DistributionLockedError,
    InvalidStatusError,
    NotFoundError,
    SnapshotAlreadyCompletedError,
    SnapshotNotCompletedError,
)
from airdrop.services.runtime import AirdropRuntime


def get_runtime(request: Request) -> AirdropRuntime:
    """Executor and fee gate created at startup"""
    return request.app.state.runtime


def http_error(error: AirdropError) -> HTTPException:
    """Map a domain error to an HTTP error"""
    if isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, (
        DistributionAlreadyCompletedError,
        SnapshotAlreadyCompletedError,
        InvalidStatusError,
        DistributionLockedError,
    )):
        status_code = 409
    elif isinstance(error, SnapshotNotCompletedError):
        status_code = 400
    else:
        status_code = 500
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message, "details": error.details},
    )
