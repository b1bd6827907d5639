"""
Lease Lifecycle Service (``rental_modules.lease.service``).

Responsibility
--------------
Owns every change of a lease's status: caution receipt upload, tenant
confirmation (activation), the automatic move from the advance period to
regular billing, escalation to overdue, resumption, and termination.
Pure date and caution math is delegated to ``calculations.py``; legal
edges come from ``lifecycle.LEASE_LIFECYCLE_WORKFLOW``.

Architecture position
---------------------
**Modules layer**.  Called directly by the hosting application and by
the invoice and reminder batch tasks.

Invariants enforced
-------------------
* Only edges of the lifecycle workflow are taken; a transition to the
  current status is a no-op.
* The tenant-facing ``payment_status`` follows the lease status.
* ``first_regular_payment_date`` is written in the same flush that sets
  ``caution_paid``.
* Every status change writes a ``lease_status_changed`` audit event and
  calls the ``PropertyStatusHook`` exactly once.
* Flush only -- the caller owns the transaction.

Failure modes
-------------
* ``LeaseNotFoundError`` -- unknown lease id.
* ``InvalidLeaseTransitionError`` -- edge not in the lifecycle.
* ``TransitionGuardError`` -- edge exists but its guard is not met.
* ``LeaseStateError`` -- operation unavailable in the current status.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import (
    LeaseNotFoundError,
    LeaseStateError,
    TransitionGuardError,
)
from rental_kernel.logging_config import get_logger
from rental_kernel.ports import (
    LoggingNotificationSink,
    Notification,
    NotificationSink,
    NullPropertyStatusHook,
    PropertyStatusHook,
)
from rental_kernel.services.auditor_service import AuditorService
from rental_modules.lease.calculations import (
    compute_caution,
    compute_first_regular_payment_date,
)
from rental_modules.lease.config import LeaseConfig
from rental_modules.lease.lifecycle import (
    ADVANCE_PERIOD_OVER,
    PAYMENT_STATUS_FOR_LEASE_STATUS,
    resolve_transition,
)
from rental_modules.lease.models import (
    BILLABLE_STATUSES,
    Lease,
    LeasePaymentStatus,
    LeaseStatus,
    NotificationType,
)
from rental_modules.lease.orm import LeaseModel

logger = get_logger("modules.lease.service")


class LeaseService:
    """
    Lease lifecycle commands and queries.

    Contract
    --------
    * Every command returns the updated ``Lease`` DTO.
    * Collaborators (notifications, property status, audit) are injected;
      defaults log notifications and ignore property status.

    Non-goals
    ---------
    * Does NOT commit -- the caller controls transaction boundaries.
    * Does NOT compute invoices or distributions.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifications: NotificationSink | None = None,
        property_hook: PropertyStatusHook | None = None,
        auditor: AuditorService | None = None,
        config: LeaseConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._notifications = notifications or LoggingNotificationSink()
        self._property_hook = property_hook or NullPropertyStatusHook()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._config = config or LeaseConfig.with_defaults()

    # =========================================================================
    # Queries
    # =========================================================================

    def _load(self, lease_id: UUID) -> LeaseModel:
        model = self._session.get(LeaseModel, lease_id)
        if model is None:
            raise LeaseNotFoundError(str(lease_id))
        return model

    def get_lease(self, lease_id: UUID) -> Lease:
        return self._load(lease_id).to_dto()

    def list_billable_leases(self) -> list[Lease]:
        """Leases with the caution paid and an active or overdue status."""
        rows = self._session.execute(
            select(LeaseModel)
            .where(
                LeaseModel.caution_paid.is_(True),
                LeaseModel.status.in_([s.value for s in BILLABLE_STATUSES]),
            )
            .order_by(LeaseModel.created_at, LeaseModel.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def list_leases_for_space(self, space_id: UUID) -> list[Lease]:
        rows = self._session.execute(
            select(LeaseModel)
            .where(LeaseModel.space_id == space_id)
            .order_by(LeaseModel.start_date, LeaseModel.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # =========================================================================
    # Creation
    # =========================================================================

    def create_lease(
        self,
        property_id: UUID,
        tenant_id: UUID,
        manager_id: UUID,
        space_id: UUID,
        monthly_rent: Decimal,
        advance_months: int,
        deposit_months: int,
        broker_months: int,
        start_date: date,
        actor_id: UUID,
        lease_id: UUID | None = None,
    ) -> Lease:
        """
        Create a lease in ``pending_caution`` with its caution amount.

        Raises:
            CautionValidationError: rent or month counts out of range.
        """
        breakdown = compute_caution(
            monthly_rent,
            advance_months,
            deposit_months,
            broker_months,
            allowed_advance=self._config.allowed_advance_months,
            allowed_deposit=self._config.allowed_deposit_months,
            allowed_broker=self._config.allowed_broker_months,
        )

        model = LeaseModel(
            id=lease_id or uuid4(),
            property_id=property_id,
            tenant_id=tenant_id,
            manager_id=manager_id,
            space_id=space_id,
            monthly_rent=Decimal(monthly_rent),
            advance_months=advance_months,
            deposit_months=deposit_months,
            broker_months=broker_months,
            caution_amount=breakdown.total_amount,
            currency=self._config.default_currency,
            start_date=start_date,
            status=LeaseStatus.PENDING_CAUTION.value,
            payment_status=LeasePaymentStatus.PENDING.value,
            caution_paid=False,
            created_by_id=actor_id,
        )
        self._session.add(model)
        self._session.flush()

        self._auditor.record_lease_created(
            lease_id=model.id,
            actor_id=actor_id,
            caution_amount=breakdown.total_amount,
            total_months=breakdown.total_months,
        )

        logger.info("lease_created", extra={
            "lease_id": str(model.id),
            "space_id": str(space_id),
            "monthly_rent": str(model.monthly_rent),
            "caution_amount": str(breakdown.total_amount),
            "total_months": breakdown.total_months,
        })
        return model.to_dto()

    # =========================================================================
    # Caution flow
    # =========================================================================

    def submit_caution_receipt(self, lease_id: UUID, actor_id: UUID) -> Lease:
        """pending_caution -> caution_submitted; asks the tenant to confirm."""
        model = self._load(lease_id)
        changed = self._transition(model, LeaseStatus.CAUTION_SUBMITTED, actor_id)
        if changed:
            self._notify(
                recipient_id=model.tenant_id,
                lease_id=model.id,
                notification_type=NotificationType.RECEIPT_UPLOADED,
                title="Caution receipt uploaded",
                message=(
                    f"A receipt for your caution payment of "
                    f"{model.caution_amount:,.0f} {model.currency} was uploaded. "
                    f"Please confirm it is correct."
                ),
            )
        return model.to_dto()

    def dispute_caution_receipt(
        self,
        lease_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> Lease:
        """
        Tenant reports a problem with the uploaded receipt.

        The lease stays in ``caution_submitted``; the manager is notified.

        Raises:
            LeaseStateError: the lease is not awaiting confirmation.
        """
        model = self._load(lease_id)
        if model.status != LeaseStatus.CAUTION_SUBMITTED.value:
            raise LeaseStateError(str(lease_id), model.status, "dispute the caution receipt of")

        self._auditor.record_caution_receipt_disputed(
            lease_id=model.id,
            actor_id=actor_id,
            reason=reason,
        )
        self._notify(
            recipient_id=model.manager_id,
            lease_id=model.id,
            notification_type=NotificationType.PAYMENT_DISPUTED,
            title="Caution receipt disputed",
            message=f"The tenant reported a problem with the caution receipt: {reason}",
        )
        logger.warning("caution_receipt_disputed", extra={
            "lease_id": str(model.id),
            "reason": reason,
        })
        return model.to_dto()

    def confirm_caution(self, lease_id: UUID, actor_id: UUID) -> Lease:
        """
        caution_submitted -> active_advance.

        Marks the caution paid now and fixes the first regular payment
        date ``advance_months`` calendar months later.
        """
        model = self._load(lease_id)
        current = LeaseStatus(model.status)
        if resolve_transition(model.id, current, LeaseStatus.ACTIVE_ADVANCE) is None:
            return model.to_dto()

        now = self._clock.now()
        model.caution_paid = True
        model.caution_paid_at = now
        model.tenant_confirmed_at = now
        model.first_regular_payment_date = compute_first_regular_payment_date(
            now.date(), model.advance_months,
        )
        self._apply(model, current, LeaseStatus.ACTIVE_ADVANCE, actor_id, "caution_confirmed")

        self._notify(
            recipient_id=model.manager_id,
            lease_id=model.id,
            notification_type=NotificationType.PAYMENT_CONFIRMED,
            title="Caution confirmed",
            message=(
                f"The tenant confirmed the caution payment of "
                f"{model.caution_amount:,.0f} {model.currency}. "
                f"First regular rent is due on "
                f"{model.first_regular_payment_date.isoformat()}."
            ),
        )
        return model.to_dto()

    # =========================================================================
    # Billing states
    # =========================================================================

    def enter_regular(self, lease_id: UUID, as_of: date, actor_id: UUID) -> Lease:
        """
        active_advance -> active_regular once the advance period is over.

        Raises:
            TransitionGuardError: ``as_of`` is before the first regular
                payment date.
        """
        model = self._load(lease_id)
        current = LeaseStatus(model.status)
        if resolve_transition(model.id, current, LeaseStatus.ACTIVE_REGULAR) is None:
            return model.to_dto()

        due = model.first_regular_payment_date
        if due is None or as_of < due:
            raise TransitionGuardError(
                str(model.id),
                ADVANCE_PERIOD_OVER.name,
                f"{as_of.isoformat()} is before first regular payment date "
                f"{due.isoformat() if due else 'unset'}",
            )
        self._apply(model, current, LeaseStatus.ACTIVE_REGULAR, actor_id, "advance_period_over")
        return model.to_dto()

    def mark_overdue(self, lease_id: UUID, actor_id: UUID) -> Lease:
        """active_regular -> overdue."""
        model = self._load(lease_id)
        self._transition(model, LeaseStatus.OVERDUE, actor_id, "deadline_missed")
        return model.to_dto()

    def resume_regular(self, lease_id: UUID, actor_id: UUID) -> Lease:
        """overdue -> active_regular."""
        model = self._load(lease_id)
        self._transition(model, LeaseStatus.ACTIVE_REGULAR, actor_id, "current_period_settled")
        return model.to_dto()

    def terminate_lease(
        self,
        lease_id: UUID,
        actor_id: UUID,
        end_date: date | None = None,
    ) -> Lease:
        """Any non-terminated status -> terminated, recording the end date."""
        model = self._load(lease_id)
        current = LeaseStatus(model.status)
        if resolve_transition(model.id, current, LeaseStatus.TERMINATED) is None:
            return model.to_dto()

        model.end_date = end_date or self._clock.today()
        self._apply(model, current, LeaseStatus.TERMINATED, actor_id, "terminated")
        return model.to_dto()

    # =========================================================================
    # Internals
    # =========================================================================

    def _transition(
        self,
        model: LeaseModel,
        to_status: LeaseStatus,
        actor_id: UUID,
        reason: str | None = None,
    ) -> bool:
        current = LeaseStatus(model.status)
        if resolve_transition(model.id, current, to_status) is None:
            logger.debug("lease_transition_noop", extra={
                "lease_id": str(model.id),
                "status": current.value,
            })
            return False
        self._apply(model, current, to_status, actor_id, reason)
        return True

    def _apply(
        self,
        model: LeaseModel,
        from_status: LeaseStatus,
        to_status: LeaseStatus,
        actor_id: UUID,
        reason: str | None,
    ) -> None:
        model.status = to_status.value
        payment_status = PAYMENT_STATUS_FOR_LEASE_STATUS.get(to_status)
        if payment_status is not None:
            model.payment_status = payment_status.value
        model.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_lease_status_changed(
            lease_id=model.id,
            actor_id=actor_id,
            from_status=from_status.value,
            to_status=to_status.value,
            reason=reason,
        )
        self._property_hook.on_status_changed(
            model.to_dto(), from_status.value, to_status.value,
        )

        logger.info("lease_status_changed", extra={
            "lease_id": str(model.id),
            "from_status": from_status.value,
            "to_status": to_status.value,
            "reason": reason,
        })

    def _notify(
        self,
        recipient_id: UUID,
        lease_id: UUID,
        notification_type: str,
        title: str,
        message: str,
    ) -> None:
        self._notifications.emit(
            Notification(
                recipient_id=recipient_id,
                lease_id=lease_id,
                type=notification_type,
                title=title,
                message=message,
            )
        )
