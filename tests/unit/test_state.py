"""Unit tests for the status transition tables."""
import pytest

from airdrop.exceptions import InvalidStatusError, InvalidTransitionError
from airdrop.models.batch import BatchStatus
from airdrop.models.distribution import DistributionStatus
from airdrop.models.recipient import RecipientStatus
from airdrop.models.state import can_transition, ensure_transition, is_terminal


class TestDistributionTransitions:
    def test_lifecycle(self):
        status = DistributionStatus.CALCULATING
        for target in (DistributionStatus.READY, DistributionStatus.PROCESSING, DistributionStatus.COMPLETED):
            status = ensure_transition(status, target)
        assert status == DistributionStatus.COMPLETED

    def test_completed_is_terminal(self):
        assert is_terminal(DistributionStatus.COMPLETED)
        for target in DistributionStatus:
            assert not can_transition(DistributionStatus.COMPLETED, target)

    def test_failed_can_be_processed_again(self):
        assert can_transition(DistributionStatus.FAILED, DistributionStatus.PROCESSING)

    def test_ready_cannot_skip_processing(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_transition(DistributionStatus.READY, DistributionStatus.COMPLETED)
        assert exc_info.value.details == {"entity": "distribution", "from": "ready", "to": "completed"}
        assert isinstance(exc_info.value, InvalidStatusError)


class TestBatchTransitions:
    def test_pending_must_pass_through_processing(self):
        assert not can_transition(BatchStatus.PENDING, BatchStatus.COMPLETED)
        assert not can_transition(BatchStatus.PENDING, BatchStatus.FAILED)

    def test_processing_is_not_reentrant(self):
        """A batch found processing needs reconciliation, not another send."""
        assert not can_transition(BatchStatus.PROCESSING, BatchStatus.PROCESSING)

    def test_completed_is_terminal(self):
        assert is_terminal(BatchStatus.COMPLETED)
        assert not is_terminal(BatchStatus.FAILED)


class TestRecipientTransitions:
    def test_failed_recipient_completes_on_retry(self):
        assert can_transition(RecipientStatus.FAILED, RecipientStatus.COMPLETED)

    def test_completed_recipient_never_fails(self):
        with pytest.raises(InvalidTransitionError):
            ensure_transition(RecipientStatus.COMPLETED, RecipientStatus.FAILED)
