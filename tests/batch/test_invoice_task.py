"""
Tests for the monthly rent invoice job (rental_batch.tasks.invoice_tasks).

Runs go through DailyJobOrchestrator.run_monthly_invoice_generation so the
executor, the task and the lease services are exercised together.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from rental_batch.domain.types import BatchItemStatus, BatchJobStatus
from rental_batch.tasks.base import BatchItemInput
from rental_batch.tasks.invoice_tasks import (
    SKIP_ADVANCE_PERIOD,
    SKIP_ALREADY_INVOICED,
    SKIP_NOT_BILLABLE,
    RentInvoiceTask,
)
from rental_kernel.exceptions import LeaseNotFoundError
from rental_modules.lease.models import LeaseStatus, NotificationType, PaymentStatus
from rental_modules.lease.payments import PaymentService


class TestAdvancePeriod:
    def test_skipped_the_day_before(self, activate_lease, orchestrator, set_today):
        lease = activate_lease()

        report = orchestrator.run_monthly_invoice_generation(set_today(date(2024, 3, 14)))

        assert report.status is BatchJobStatus.COMPLETED
        assert report.generated == ()
        assert [(s.lease_id, s.reason) for s in report.skipped] == [
            (str(lease.id), SKIP_ADVANCE_PERIOD),
        ]

    def test_first_invoice_on_first_regular_date(
        self, activate_lease, orchestrator, set_today, lease_service, payment_service,
    ):
        lease = activate_lease()

        report = orchestrator.run_monthly_invoice_generation(set_today(date(2024, 3, 15)))

        assert len(report.generated) == 1
        payment = payment_service.find_payment(lease.id, date(2024, 3, 1))
        assert str(payment.id) == report.generated[0]
        assert payment.status is PaymentStatus.PENDING
        assert payment.amount == Decimal("100000")
        assert lease_service.get_lease(lease.id).status is LeaseStatus.ACTIVE_REGULAR

    def test_tenant_notified(self, activate_lease, orchestrator, set_today, notifications):
        lease = activate_lease()
        orchestrator.run_monthly_invoice_generation(set_today(date(2024, 3, 15)))

        invoices = notifications.of_type(NotificationType.RENT_INVOICE)
        assert [n.recipient_id for n in invoices] == [lease.tenant_id]


class TestIdempotency:
    def test_rerun_skips_invoiced_leases(
        self, activate_lease, orchestrator, set_today, payment_service, notifications,
    ):
        lease = activate_lease()
        now = set_today(date(2024, 3, 15))
        orchestrator.run_monthly_invoice_generation(now)

        again = orchestrator.run_monthly_invoice_generation(now)

        assert again.status is BatchJobStatus.COMPLETED
        assert again.generated == ()
        assert [s.reason for s in again.skipped] == [SKIP_ALREADY_INVOICED]
        assert len(payment_service.list_payments(lease.id)) == 1
        assert len(notifications.of_type(NotificationType.RENT_INVOICE)) == 1

    def test_later_day_same_month(self, activate_lease, orchestrator, set_today, payment_service):
        lease = activate_lease()
        orchestrator.run_monthly_invoice_generation(set_today(date(2024, 3, 15)))

        report = orchestrator.run_monthly_invoice_generation(set_today(date(2024, 3, 20)))

        assert [s.reason for s in report.skipped] == [SKIP_ALREADY_INVOICED]
        assert len(payment_service.list_payments(lease.id)) == 1

    def test_next_month(self, activate_lease, orchestrator, set_today, payment_service):
        lease = activate_lease()
        orchestrator.run_monthly_invoice_generation(set_today(date(2024, 3, 15)))

        report = orchestrator.run_monthly_invoice_generation(set_today(date(2024, 4, 1)))

        assert len(report.generated) == 1
        assert [p.payment_period for p in payment_service.list_payments(lease.id)] == [
            date(2024, 3, 1), date(2024, 4, 1),
        ]


class TestEligibility:
    def test_only_billable_leases_are_items(
        self, create_lease, activate_lease, lease_service, orchestrator, set_today, actor_id,
    ):
        create_lease()
        ended = activate_lease()
        lease_service.terminate_lease(ended.id, actor_id)
        billed = activate_lease()

        report = orchestrator.run_monthly_invoice_generation(set_today(date(2024, 3, 15)))

        assert len(report.generated) == 1
        assert report.skipped == ()
        assert lease_service.get_lease(billed.id).status is LeaseStatus.ACTIVE_REGULAR

    def test_overdue_lease_still_invoiced(
        self, activate_lease, lease_service, orchestrator, set_today, actor_id,
    ):
        lease = activate_lease()
        lease_service.enter_regular(lease.id, date(2024, 3, 15), actor_id)
        lease_service.mark_overdue(lease.id, actor_id)

        report = orchestrator.run_monthly_invoice_generation(set_today(date(2024, 4, 1)))

        assert len(report.generated) == 1
        assert lease_service.get_lease(lease.id).status is LeaseStatus.OVERDUE

    def test_lease_no_longer_billable_at_execution(
        self, activate_lease, lease_service, session, wiring, set_today, actor_id,
    ):
        lease = activate_lease()
        lease_service.terminate_lease(lease.id, actor_id)
        task = RentInvoiceTask(wiring)

        result = task.execute_item(
            BatchItemInput(item_index=0, item_key=str(lease.id)),
            parameters={},
            session=session,
            as_of=set_today(date(2024, 3, 15)),
        )

        assert result.status is BatchItemStatus.SKIPPED
        assert result.result_data == {"reason": SKIP_NOT_BILLABLE}

    def test_unknown_lease_raises(self, session, wiring, set_today):
        task = RentInvoiceTask(wiring)
        item = BatchItemInput(item_index=0, item_key=str(uuid4()))

        # Raised, so the executor records UNHANDLED_EXCEPTION and rolls back
        with pytest.raises(LeaseNotFoundError):
            task.execute_item(item, {}, session, set_today(date(2024, 3, 15)))


class TestStorageFailure:
    def test_failed_lease_does_not_stop_the_run(
        self, activate_lease, orchestrator, set_today, lease_service, monkeypatch,
    ):
        broken = activate_lease()
        healthy = activate_lease()
        original = PaymentService.create_rent_invoice

        def create_rent_invoice(self, lease_id, period, actor_id):
            if lease_id == broken.id:
                raise OperationalError("INSERT INTO rental_payments", {}, Exception("disk I/O"))
            return original(self, lease_id, period, actor_id)

        monkeypatch.setattr(PaymentService, "create_rent_invoice", create_rent_invoice)

        report = orchestrator.run_monthly_invoice_generation(set_today(date(2024, 3, 15)))

        assert report.status is BatchJobStatus.PARTIALLY_COMPLETED
        assert len(report.generated) == 1
        assert [(f.lease_id, f.error_code) for f in report.failed] == [
            (str(broken.id), "TRANSIENT_STORAGE_ERROR"),
        ]
        # The failed lease's move to active_regular was rolled back with it
        assert lease_service.get_lease(broken.id).status is LeaseStatus.ACTIVE_ADVANCE
        assert lease_service.get_lease(healthy.id).status is LeaseStatus.ACTIVE_REGULAR
