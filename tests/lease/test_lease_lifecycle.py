"""
Tests for the lease lifecycle workflow table and resolve_transition.
"""

from uuid import uuid4

import pytest

from rental_kernel.exceptions import InvalidLeaseTransitionError
from rental_modules.lease.lifecycle import (
    ADVANCE_PERIOD_OVER,
    LEASE_LIFECYCLE_WORKFLOW,
    PAYMENT_STATUS_FOR_LEASE_STATUS,
    resolve_transition,
)
from rental_modules.lease.models import LeasePaymentStatus, LeaseStatus

LEGAL_EDGES = [
    (LeaseStatus.PENDING_CAUTION, LeaseStatus.CAUTION_SUBMITTED),
    (LeaseStatus.CAUTION_SUBMITTED, LeaseStatus.ACTIVE_ADVANCE),
    (LeaseStatus.ACTIVE_ADVANCE, LeaseStatus.ACTIVE_REGULAR),
    (LeaseStatus.ACTIVE_REGULAR, LeaseStatus.OVERDUE),
    (LeaseStatus.OVERDUE, LeaseStatus.ACTIVE_REGULAR),
]

ILLEGAL_EDGES = [
    (LeaseStatus.PENDING_CAUTION, LeaseStatus.ACTIVE_ADVANCE),
    (LeaseStatus.PENDING_CAUTION, LeaseStatus.ACTIVE_REGULAR),
    (LeaseStatus.CAUTION_SUBMITTED, LeaseStatus.PENDING_CAUTION),
    (LeaseStatus.ACTIVE_ADVANCE, LeaseStatus.OVERDUE),
    (LeaseStatus.ACTIVE_REGULAR, LeaseStatus.ACTIVE_ADVANCE),
    (LeaseStatus.OVERDUE, LeaseStatus.ACTIVE_ADVANCE),
    (LeaseStatus.TERMINATED, LeaseStatus.ACTIVE_REGULAR),
    (LeaseStatus.TERMINATED, LeaseStatus.PENDING_CAUTION),
]


class TestLifecycleTable:
    def test_every_status_is_a_state(self):
        assert set(LEASE_LIFECYCLE_WORKFLOW.states) == {s.value for s in LeaseStatus}

    def test_starts_pending_caution(self):
        assert LEASE_LIFECYCLE_WORKFLOW.initial_state == "pending_caution"

    def test_terminated_is_terminal(self):
        assert LEASE_LIFECYCLE_WORKFLOW.terminal_states == ("terminated",)
        assert LEASE_LIFECYCLE_WORKFLOW.allowed_targets("terminated") == ()

    def test_allowed_from_regular(self):
        assert set(LEASE_LIFECYCLE_WORKFLOW.allowed_targets("active_regular")) == {
            "overdue", "terminated",
        }

    def test_advance_to_regular_is_guarded(self):
        transition = LEASE_LIFECYCLE_WORKFLOW.find_transition(
            "active_advance", "active_regular",
        )
        assert transition.guard is ADVANCE_PERIOD_OVER

    def test_payment_status_mapping(self):
        assert PAYMENT_STATUS_FOR_LEASE_STATUS[LeaseStatus.OVERDUE] is LeasePaymentStatus.OVERDUE
        assert LeaseStatus.TERMINATED not in PAYMENT_STATUS_FOR_LEASE_STATUS


class TestResolveTransition:
    @pytest.mark.parametrize("from_status, to_status", LEGAL_EDGES)
    def test_legal_edges(self, from_status, to_status):
        transition = resolve_transition(uuid4(), from_status, to_status)
        assert transition.from_state == from_status.value
        assert transition.to_state == to_status.value

    @pytest.mark.parametrize(
        "from_status",
        [s for s in LeaseStatus if s is not LeaseStatus.TERMINATED],
    )
    def test_any_live_status_can_terminate(self, from_status):
        transition = resolve_transition(uuid4(), from_status, LeaseStatus.TERMINATED)
        assert transition.action == "terminate"

    @pytest.mark.parametrize("from_status, to_status", ILLEGAL_EDGES)
    def test_illegal_edges(self, from_status, to_status):
        lease_id = uuid4()
        with pytest.raises(InvalidLeaseTransitionError) as exc_info:
            resolve_transition(lease_id, from_status, to_status)
        assert exc_info.value.lease_id == str(lease_id)
        assert exc_info.value.code == "INVALID_LEASE_TRANSITION"

    @pytest.mark.parametrize("status", list(LeaseStatus))
    def test_same_status_is_a_noop(self, status):
        assert resolve_transition(uuid4(), status, status) is None
