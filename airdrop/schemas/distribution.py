"""Distribution, batch and recipient schemas"""
from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from datetime import datetime
from typing import Optional, List, Dict, Annotated

from airdrop.models.batch import BatchStatus
from airdrop.models.distribution import DistributionStatus
from airdrop.models.recipient import RecipientStatus

# Token amounts exceed what JSON clients can hold in a double, so they go out as strings
Amount = Annotated[int, PlainSerializer(lambda v: str(v), return_type=str)]


class DistributionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    period_id: str
    previous_period_id: str
    status: DistributionStatus
    reward_pool: Amount
    reward_mint: Optional[str] = None
    min_balance: Amount
    batch_size: int
    max_retries: int
    total_holders: int = 0
    eligible_holders: int = 0
    excluded_holders: int = 0
    policy_excluded: int = 0
    restricted_excluded: int = 0
    ineligible_holders: int = 0
    recipient_count: int = 0
    total_batches: int = 0
    total_eligible_balance: Amount = 0
    total_allocated: Amount = 0
    total_distributed: Amount = 0
    dust: Amount = 0
    error: Optional[str] = None
    created_at: datetime
    calculated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class CalculateRequest(BaseModel):
    period_id: Optional[str] = None  # Defaults to the current period
    previous_period_id: Optional[str] = None
    reward_pool: Optional[int] = Field(default=None, ge=0)
    min_balance: Optional[int] = Field(default=None, ge=0)
    batch_size: Optional[int] = Field(default=None, ge=1)


class CalculateResponse(BaseModel):
    distribution: DistributionResponse
    eligible_count: int
    excluded_count: int
    batch_count: int
    dust: Amount
    ineligible: Dict[str, int]


class ApproveRequest(BaseModel):
    reward_pool: int = Field(ge=0)


class RecipientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    address: str
    previous_balance: Amount
    current_balance: Amount
    eligible_balance: Amount
    reward: Amount
    percentage: float
    status: RecipientStatus
    batch_number: int
    tx_signature: Optional[str] = None
    error: Optional[str] = None
    completed_at: Optional[datetime] = None


class RecipientListResponse(BaseModel):
    recipients: List[RecipientResponse]
    total: int
    limit: int
    offset: int


class BatchTransfer(BaseModel):
    address: str
    amount: Amount


class BatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    distribution_id: int
    batch_number: int
    recipient_count: int
    total_amount: Amount
    status: BatchStatus
    retry_count: int
    max_retries: int
    last_error: Optional[str] = None
    last_signature: Optional[str] = None
    tx_signature: Optional[str] = None
    fee_used: Optional[Amount] = None
    fee_price: Optional[Amount] = None
    confirmed_slot: Optional[int] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    recipients: List[BatchTransfer] = []


class ProgressResponse(BaseModel):
    distribution_id: int
    period_id: str
    status: str
    total_batches: int
    completed_batches: int
    failed_batches: int
    pending_batches: int
    processing_batches: int
    exhausted_batches: int
    completed_recipients: int
    failed_recipients: int
    pending_recipients: int
    total_allocated: Amount
    total_distributed: Amount
    reward_pool: Amount


class ProcessResponse(BaseModel):
    distribution: DistributionResponse
    processed_batches: int
    failed_batches: int
    skipped_batches: int
    paused: bool
    total_distributed: Amount


class ReconcileRequest(BaseModel):
    tx_signature: Optional[str] = None
