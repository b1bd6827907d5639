"""
Batch task: payment reminders and overdue escalation.

Every reminder rule is evaluated for every billable lease; each reminder
goes out at most once per lease and day.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rental_batch.tasks.base import BatchItemInput, BatchTaskResult
from rental_batch.tasks.invoice_tasks import SKIP_NOT_BILLABLE, billable_lease_items
from rental_batch.tasks.wiring import ServiceWiring
from rental_kernel.exceptions import TransientStorageError
from rental_kernel.logging_config import get_logger
from rental_modules.lease.calculations import payment_period_for
from rental_modules.lease.reminders import due_reminders

logger = get_logger("batch.tasks.reminders")

SKIP_NOTHING_DUE = "no_reminder_due"
SKIP_ALREADY_SENT = "already_sent"


class PaymentReminderTask:
    """Send the reminders due today and escalate unpaid leases."""

    def __init__(self, wiring: ServiceWiring | None = None):
        self._wiring = wiring or ServiceWiring()

    @property
    def task_type(self) -> str:
        return "lease.payment_reminders"

    @property
    def description(self) -> str:
        return "Send rent reminders and escalate overdue leases"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        return billable_lease_items(session)

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        services = self._wiring.bind(session)
        today = as_of.date()

        try:
            lease = services.leases.get_lease(UUID(item.item_key))
            if not lease.is_billable:
                return BatchTaskResult.skipped(SKIP_NOT_BILLABLE)

            current = services.payments.find_payment(lease.id, payment_period_for(today))
            due = due_reminders(lease, today, current, self._wiring.reminder_schedule)
            if not due:
                return BatchTaskResult.skipped(SKIP_NOTHING_DUE)

            sent = [
                reminder_type.value
                for reminder_type in due
                if services.reminders.send(lease, reminder_type, today, self._wiring.actor_id)
            ]

        except SQLAlchemyError as exc:
            error = TransientStorageError("payment_reminder", item.item_key, str(exc))
            logger.warning("payment_reminder_storage_error", exc_info=True, extra={
                "item_key": item.item_key,
            })
            return BatchTaskResult.failed(error.code, str(error))

        if not sent:
            return BatchTaskResult.skipped(
                SKIP_ALREADY_SENT, reminders=[r.value for r in due],
            )
        return BatchTaskResult.succeeded(reminders=sent)
