"""Lease Lifecycle State Machine.

pending_caution -> caution_submitted -> active_advance -> active_regular <-> overdue,
and any non-terminated state -> terminated.
"""

from rental_kernel.domain.workflow import Guard, Transition, Workflow
from rental_kernel.exceptions import InvalidLeaseTransitionError
from rental_kernel.logging_config import get_logger
from rental_modules.lease.models import LeasePaymentStatus, LeaseStatus

logger = get_logger("modules.lease.lifecycle")


TENANT_CONFIRMED = Guard("tenant_confirmed", "Tenant confirmed the caution receipt")
ADVANCE_PERIOD_OVER = Guard(
    "advance_period_over", "as_of >= first_regular_payment_date"
)
DEADLINE_MISSED = Guard(
    "deadline_missed", "No settled or in-progress payment after the escalation day"
)
CURRENT_PERIOD_SETTLED = Guard(
    "current_period_settled", "Payment for the currently-due period settled"
)


LEASE_LIFECYCLE_WORKFLOW = Workflow(
    name="lease_lifecycle",
    description="Tenancy lifecycle from caution to termination",
    initial_state=LeaseStatus.PENDING_CAUTION.value,
    states=tuple(s.value for s in LeaseStatus),
    transitions=(
        Transition("pending_caution", "caution_submitted", action="submit_caution_receipt"),
        Transition("caution_submitted", "active_advance", action="confirm_caution", guard=TENANT_CONFIRMED),
        Transition("active_advance", "active_regular", action="enter_regular", guard=ADVANCE_PERIOD_OVER),
        Transition("active_regular", "overdue", action="mark_overdue", guard=DEADLINE_MISSED),
        Transition("overdue", "active_regular", action="resume_regular", guard=CURRENT_PERIOD_SETTLED),
        Transition("*", "terminated", action="terminate"),
    ),
    terminal_states=(LeaseStatus.TERMINATED.value,),
)

# Tenant-facing payment status that follows each lease state.
# Termination leaves the last payment status in place.
PAYMENT_STATUS_FOR_LEASE_STATUS: dict[LeaseStatus, LeasePaymentStatus] = {
    LeaseStatus.PENDING_CAUTION: LeasePaymentStatus.PENDING,
    LeaseStatus.CAUTION_SUBMITTED: LeasePaymentStatus.AWAITING_TENANT_CONFIRMATION,
    LeaseStatus.ACTIVE_ADVANCE: LeasePaymentStatus.VERIFIED,
    LeaseStatus.ACTIVE_REGULAR: LeasePaymentStatus.VERIFIED,
    LeaseStatus.OVERDUE: LeasePaymentStatus.OVERDUE,
}


def resolve_transition(
    lease_id: object,
    from_status: LeaseStatus,
    to_status: LeaseStatus,
) -> Transition | None:
    """
    Look up the edge ``from_status -> to_status``.

    Returns None when the lease is already in ``to_status`` (a no-op).

    Raises:
        InvalidLeaseTransitionError: the edge is not in the lifecycle.
    """
    if from_status is to_status:
        return None
    transition = LEASE_LIFECYCLE_WORKFLOW.find_transition(
        from_status.value, to_status.value
    )
    if transition is None:
        raise InvalidLeaseTransitionError(
            str(lease_id), from_status.value, to_status.value
        )
    return transition


logger.info(
    "lease_lifecycle_workflow_registered",
    extra={
        "workflow_name": LEASE_LIFECYCLE_WORKFLOW.name,
        "state_count": len(LEASE_LIFECYCLE_WORKFLOW.states),
        "transition_count": len(LEASE_LIFECYCLE_WORKFLOW.transitions),
    },
)
