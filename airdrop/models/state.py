"""Status transition tables for distributions, batches and recipients"""
from typing import Dict, FrozenSet, TypeVar

from airdrop.exceptions import InvalidTransitionError
from airdrop.models.batch import BatchStatus
from airdrop.models.distribution import DistributionStatus
from airdrop.models.recipient import RecipientStatus

S = TypeVar("S", DistributionStatus, BatchStatus, RecipientStatus)

DISTRIBUTION_TRANSITIONS: Dict[DistributionStatus, FrozenSet[DistributionStatus]] = {
    DistributionStatus.CALCULATING: frozenset({DistributionStatus.READY, DistributionStatus.FAILED}),
    # ready -> calculating is a recompute (e.g. approval with a new reward pool)
    DistributionStatus.READY: frozenset({DistributionStatus.PROCESSING, DistributionStatus.CALCULATING}),
    DistributionStatus.PROCESSING: frozenset({
        DistributionStatus.PROCESSING,
        DistributionStatus.COMPLETED,
        DistributionStatus.FAILED,
    }),
    DistributionStatus.FAILED: frozenset({DistributionStatus.PROCESSING, DistributionStatus.CALCULATING}),
    DistributionStatus.COMPLETED: frozenset(),
}

BATCH_TRANSITIONS: Dict[BatchStatus, FrozenSet[BatchStatus]] = {
    BatchStatus.PENDING: frozenset({BatchStatus.PROCESSING}),
    BatchStatus.PROCESSING: frozenset({BatchStatus.COMPLETED, BatchStatus.FAILED}),
    BatchStatus.FAILED: frozenset({BatchStatus.PROCESSING}),
    BatchStatus.COMPLETED: frozenset(),
}

RECIPIENT_TRANSITIONS: Dict[RecipientStatus, FrozenSet[RecipientStatus]] = {
    RecipientStatus.PENDING: frozenset({RecipientStatus.COMPLETED, RecipientStatus.FAILED}),
    RecipientStatus.FAILED: frozenset({RecipientStatus.COMPLETED, RecipientStatus.FAILED}),
    RecipientStatus.COMPLETED: frozenset(),
}

PROCESSABLE_DISTRIBUTION_STATUSES = frozenset({
    DistributionStatus.READY,
    DistributionStatus.PROCESSING,
    DistributionStatus.FAILED,
})

RUNNABLE_BATCH_STATUSES = frozenset({BatchStatus.PENDING, BatchStatus.FAILED})

_TABLES = {
    DistributionStatus: ("distribution", DISTRIBUTION_TRANSITIONS),
    BatchStatus: ("batch", BATCH_TRANSITIONS),
    RecipientStatus: ("recipient", RECIPIENT_TRANSITIONS),
}


def can_transition(current: S, target: S) -> bool:
    """Check whether a status change is declared for the status type"""
    _, table = _TABLES[type(current)]
    return target in table[current]


def ensure_transition(current: S, target: S) -> S:
    """Return target if the move is allowed, raise InvalidTransitionError otherwise"""
    entity, table = _TABLES[type(current)]
    if target not in table[current]:
        raise InvalidTransitionError(entity, current.value, target.value)
    return target


def is_terminal(status: S) -> bool:
    _, table = _TABLES[type(status)]
    return not table[status]
