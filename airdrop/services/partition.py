"""
Batch Partitioner

Splits the ordered reward list into fixed-size batches. Batches keep the
calculator order (largest rewards first) so that if the fee gate pauses a run,
the most significant transfers have already gone out.
"""
import math
from typing import List, Dict, Sequence
from dataclasses import dataclass
from collections import Counter

from airdrop.exceptions import PartitionError
from airdrop.services.calculation import RecipientReward


@dataclass
class BatchPlan:
    """A batch to be persisted, numbered from 1"""
    batch_number: int
    recipients: List[Dict[str, int]]

    @property
    def recipient_count(self) -> int:
        return len(self.recipients)

    @property
    def total_amount(self) -> int:
        return sum(r["amount"] for r in self.recipients)


def partition_rewards(rewards: Sequence[RecipientReward], batch_size: int) -> List[BatchPlan]:
    """Emit ceil(len(rewards) / batch_size) consecutive batches"""
    if batch_size < 1:
        raise ValueError("Batch size must be at least 1")

    plans = []
    for index in range(math.ceil(len(rewards) / batch_size)):
        chunk = rewards[index * batch_size:(index + 1) * batch_size]
        plans.append(BatchPlan(
            batch_number=index + 1,
            recipients=[{"address": r.address, "amount": r.reward} for r in chunk],
        ))
    return plans


def verify_partition(rewards: Sequence[RecipientReward], plans: Sequence[BatchPlan]) -> None:
    """
    Check that batches cover every reward exactly once.

    Raises:
        PartitionError: if membership, amounts or numbering diverge
    """
    expected_total = sum(r.reward for r in rewards)
    batched_total = sum(p.total_amount for p in plans)
    if expected_total != batched_total:
        raise PartitionError(
            "Batch totals do not match recipient rewards",
            {"rewards_total": str(expected_total), "batches_total": str(batched_total)},
        )

    members = Counter(t["address"] for p in plans for t in p.recipients)
    duplicated = [address for address, count in members.items() if count > 1]
    if duplicated:
        raise PartitionError("Recipients appear in more than one batch", {"addresses": duplicated[:10]})

    if set(members) != {r.address for r in rewards}:
        raise PartitionError("Batch members differ from the recipient set")

    numbers = [p.batch_number for p in plans]
    if numbers != list(range(1, len(plans) + 1)):
        raise PartitionError("Batch numbers are not sequential from 1", {"batch_numbers": numbers})
