"""API v1 router aggregation"""
from fastapi import APIRouter

from airdrop.api.v1 import distributions, batches, snapshots

api_router = APIRouter()

api_router.include_router(distributions.router, prefix="/distributions", tags=["Distributions"])
api_router.include_router(batches.router, prefix="/batches", tags=["Batches"])
api_router.include_router(snapshots.router, prefix="/snapshots", tags=["Snapshots"])
