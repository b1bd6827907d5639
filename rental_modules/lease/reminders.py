"""
Reminder rules and delivery (``rental_modules.lease.reminders``).

Responsibility
--------------
Decides which payment reminders are due for a lease on a given day and
delivers each one at most once per (lease, type, day):

* ``advance_ending`` -- the day before the first regular payment date;
* ``courtesy`` -- on the courtesy day while the month is unpaid;
* ``deadline`` -- on the deadline day while the month is unpaid;
* ``overdue`` -- on the escalation day when nothing is paid or being
  collected; tells the tenant and the manager and moves the lease to
  ``overdue``.

Architecture position
---------------------
**Modules layer**.  ``due_reminders`` is pure; ``ReminderService`` is
driven by the reminder batch task.

Invariants enforced
-------------------
* The ReminderRecord row is written (SAVEPOINT) before any notification
  is emitted; a record that already exists means nothing is sent.
* An overdue lease is escalated before its notifications go out.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import ReminderAlreadySentError
from rental_kernel.logging_config import get_logger
from rental_kernel.ports import LoggingNotificationSink, Notification, NotificationSink
from rental_kernel.services.auditor_service import AuditorService
from rental_modules.lease.calculations import days_until
from rental_modules.lease.models import (
    Lease,
    LeaseStatus,
    NotificationType,
    Payment,
    PaymentStatus,
    ReminderType,
)
from rental_modules.lease.orm import ReminderRecordModel
from rental_modules.lease.service import LeaseService

logger = get_logger("modules.lease.reminders")


@dataclass(frozen=True)
class ReminderSchedule:
    """Days of the month on which rent reminders fire."""

    courtesy_day: int = 5
    deadline_day: int = 10
    escalation_day: int = 11

    def __post_init__(self) -> None:
        days = (self.courtesy_day, self.deadline_day, self.escalation_day)
        if any(d < 1 or d > 28 for d in days):
            raise ValueError(f"Reminder days must be between 1 and 28, got {days}")
        if not self.courtesy_day < self.deadline_day < self.escalation_day:
            raise ValueError(
                f"Reminder days must be increasing (courtesy < deadline < "
                f"escalation), got {days}"
            )


def due_reminders(
    lease: Lease,
    today: date,
    current_payment: Payment | None,
    schedule: ReminderSchedule | None = None,
) -> tuple[ReminderType, ...]:
    """
    Reminders that apply to ``lease`` on ``today``.

    ``current_payment`` is the lease's payment for today's month, if any.
    """
    schedule = schedule or ReminderSchedule()
    first_due = lease.first_regular_payment_date
    if first_due is None:
        return ()

    due: list[ReminderType] = []
    if days_until(first_due, today) == 1:
        due.append(ReminderType.ADVANCE_ENDING)

    if today < first_due:
        return tuple(due)

    status = current_payment.status if current_payment else None
    settled = current_payment is not None and current_payment.is_settled
    collecting = status is PaymentStatus.IN_PROGRESS

    if today.day == schedule.courtesy_day and not settled:
        due.append(ReminderType.COURTESY)
    if today.day == schedule.deadline_day and not settled:
        due.append(ReminderType.DEADLINE)
    if today.day == schedule.escalation_day and not (settled or collecting):
        due.append(ReminderType.OVERDUE)
    return tuple(due)


class ReminderService:
    """
    Delivers reminders exactly once per (lease, type, day).

    Non-goals
    ---------
    * Does NOT decide which reminders are due -- see ``due_reminders``.
    * Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifications: NotificationSink | None = None,
        lease_service: LeaseService | None = None,
        auditor: AuditorService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._notifications = notifications or LoggingNotificationSink()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._leases = lease_service or LeaseService(
            session,
            clock=self._clock,
            notifications=self._notifications,
            auditor=self._auditor,
        )

    def already_sent(
        self,
        lease_id: UUID,
        reminder_type: ReminderType,
        reminder_date: date,
    ) -> bool:
        return self._session.execute(
            select(ReminderRecordModel.id).where(
                ReminderRecordModel.lease_id == lease_id,
                ReminderRecordModel.reminder_type == reminder_type.value,
                ReminderRecordModel.reminder_date == reminder_date,
            )
        ).first() is not None

    def send(
        self,
        lease: Lease,
        reminder_type: ReminderType,
        today: date,
        actor_id: UUID,
    ) -> bool:
        """
        Record and deliver one reminder.

        Returns False when the reminder was already sent today, including
        by a concurrent run that won the insert.
        """
        try:
            self._record(lease.id, reminder_type, today, actor_id)
        except ReminderAlreadySentError:
            logger.debug("reminder_already_sent", extra={
                "lease_id": str(lease.id),
                "reminder_type": reminder_type.value,
            })
            return False

        # A failed escalation must roll back before anyone is told
        if reminder_type is ReminderType.OVERDUE:
            self._escalate(lease, today, actor_id)

        notifications = self._build_notifications(lease, reminder_type, today)
        for notification in notifications:
            self._notifications.emit(notification)

        self._auditor.record_reminder_sent(
            lease_id=lease.id,
            actor_id=actor_id,
            reminder_type=reminder_type.value,
            reminder_date=today,
            notification_types=[n.type for n in notifications],
        )

        logger.info("reminder_sent", extra={
            "lease_id": str(lease.id),
            "reminder_type": reminder_type.value,
            "reminder_date": today.isoformat(),
            "notification_count": len(notifications),
        })
        return True

    def _record(
        self,
        lease_id: UUID,
        reminder_type: ReminderType,
        today: date,
        actor_id: UUID,
    ) -> None:
        """Insert the ReminderRecord or raise ReminderAlreadySentError."""
        if self.already_sent(lease_id, reminder_type, today):
            raise ReminderAlreadySentError(
                str(lease_id), reminder_type.value, today.isoformat()
            )

        record = ReminderRecordModel(
            lease_id=lease_id,
            reminder_type=reminder_type.value,
            reminder_date=today,
            sent_at=self._clock.now(),
            created_by_id=actor_id,
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(record)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            # A concurrent run inserted the same record first
            savepoint.rollback()
            raise ReminderAlreadySentError(
                str(lease_id), reminder_type.value, today.isoformat()
            ) from None

    def _escalate(self, lease: Lease, today: date, actor_id: UUID) -> None:
        status = self._leases.get_lease(lease.id).status
        if status is LeaseStatus.ACTIVE_ADVANCE:
            self._leases.enter_regular(lease.id, today, actor_id)
        self._leases.mark_overdue(lease.id, actor_id)

    def _build_notifications(
        self,
        lease: Lease,
        reminder_type: ReminderType,
        today: date,
    ) -> list[Notification]:
        rent = f"{lease.monthly_rent:,.0f} {lease.currency}"

        def to_tenant(notification_type: str, title: str, message: str) -> Notification:
            return Notification(
                recipient_id=lease.tenant_id,
                lease_id=lease.id,
                type=notification_type,
                title=title,
                message=message,
                data={"reminder_date": today.isoformat()},
            )

        if reminder_type is ReminderType.ADVANCE_ENDING:
            return [to_tenant(
                NotificationType.ADVANCE_ENDING,
                "Advance period ends tomorrow",
                f"Your advance period ends tomorrow. Regular rent of {rent} "
                f"will be due.",
            )]
        if reminder_type is ReminderType.COURTESY:
            return [to_tenant(
                NotificationType.COURTESY_REMINDER,
                "Rent reminder",
                f"Friendly reminder: your rent of {rent} is awaiting payment.",
            )]
        if reminder_type is ReminderType.DEADLINE:
            return [to_tenant(
                NotificationType.PAYMENT_DEADLINE,
                "Payment deadline",
                f"Today is the deadline for your rent of {rent}.",
            )]
        return [
            to_tenant(
                NotificationType.PAYMENT_OVERDUE,
                "Rent overdue",
                "Your rent is overdue. Please settle it as soon as possible.",
            ),
            Notification(
                recipient_id=lease.manager_id,
                lease_id=lease.id,
                type=NotificationType.PAYMENT_OVERDUE_MANAGER,
                title="Rent not paid",
                message=(
                    f"Rent of {rent} was not paid by the deadline and no "
                    f"payment is being collected."
                ),
                data={"reminder_date": today.isoformat()},
            ),
        ]
