"""
Batch task: monthly rent invoices.

One item per billable lease.  Leases still in their advance period are
skipped; a lease whose advance period just ended moves to regular billing
before its first invoice.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rental_batch.tasks.base import BatchItemInput, BatchTaskResult
from rental_batch.tasks.wiring import ServiceWiring
from rental_kernel.exceptions import InvoiceAlreadyExistsError, TransientStorageError
from rental_kernel.logging_config import get_logger
from rental_modules.lease.calculations import payment_period_for
from rental_modules.lease.models import LeaseStatus
from rental_modules.lease.service import LeaseService

logger = get_logger("batch.tasks.invoices")

SKIP_ADVANCE_PERIOD = "advance_period"
SKIP_ALREADY_INVOICED = "already_invoiced"
SKIP_NOT_BILLABLE = "not_billable"


def billable_lease_items(session: Session) -> tuple[BatchItemInput, ...]:
    leases = LeaseService(session).list_billable_leases()
    return tuple(
        BatchItemInput(item_index=i, item_key=str(lease.id))
        for i, lease in enumerate(leases)
    )


class RentInvoiceTask:
    """Generate the current month's rent invoice for every billable lease."""

    def __init__(self, wiring: ServiceWiring | None = None):
        self._wiring = wiring or ServiceWiring()

    @property
    def task_type(self) -> str:
        return "lease.rent_invoices"

    @property
    def description(self) -> str:
        return "Generate monthly rent invoices for active leases"

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
        actor_id = self._wiring.actor_id
        today = as_of.date()

        try:
            lease = services.leases.get_lease(UUID(item.item_key))
            if not lease.is_billable:
                return BatchTaskResult.skipped(SKIP_NOT_BILLABLE)

            first_due = lease.first_regular_payment_date
            if first_due is None or today < first_due:
                return BatchTaskResult.skipped(
                    SKIP_ADVANCE_PERIOD,
                    first_regular_payment_date=first_due.isoformat() if first_due else None,
                )

            if lease.status is LeaseStatus.ACTIVE_ADVANCE:
                services.leases.enter_regular(lease.id, today, actor_id)

            period = payment_period_for(today)
            try:
                payment = services.payments.create_rent_invoice(lease.id, period, actor_id)
            except InvoiceAlreadyExistsError:
                return BatchTaskResult.skipped(
                    SKIP_ALREADY_INVOICED, payment_period=period.isoformat(),
                )

        except SQLAlchemyError as exc:
            error = TransientStorageError("rent_invoice", item.item_key, str(exc))
            logger.warning("rent_invoice_storage_error", exc_info=True, extra={
                "item_key": item.item_key,
            })
            return BatchTaskResult.failed(error.code, str(error))

        return BatchTaskResult.succeeded(
            payment_id=str(payment.id),
            payment_period=period.isoformat(),
        )
