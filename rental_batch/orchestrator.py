"""
DailyJobOrchestrator -- DI container and entry point for the daily jobs.

Contract:
    Wires the TaskRegistry with the invoice and reminder tasks, creates the
    BatchExecutor, and turns each run into a report that separates
    generated or sent items from business-rule skips and failures.

Architecture: rental_batch (top-level).  Nothing in rental_kernel or
    rental_modules imports from rental_batch.

Invariants enforced:
    - Clock injection (all services receive the same Clock).
    - Audit trail (AuditorService wired into executor).
    - Does NOT commit -- the CLI or the test owns the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.logging_config import get_logger
from rental_kernel.ports import (
    LoggingNotificationSink,
    NotificationSink,
    NullPropertyStatusHook,
    PropertyStatusHook,
)
from rental_kernel.services.auditor_service import AuditorService
from rental_kernel.services.sequence_service import SequenceService
from rental_modules.lease.config import LeaseConfig
from rental_modules.lease.reminders import ReminderSchedule

from rental_batch.domain.types import BatchItemStatus, BatchJobStatus, BatchRunResult
from rental_batch.services.executor import BatchExecutor
from rental_batch.tasks.base import TaskRegistry
from rental_batch.tasks.invoice_tasks import RentInvoiceTask
from rental_batch.tasks.reminder_tasks import PaymentReminderTask
from rental_batch.tasks.wiring import ServiceWiring

if TYPE_CHECKING:
    from rental_config.settings import EngineSettings

logger = get_logger("batch.orchestrator")


# =============================================================================
# Reports
# =============================================================================


@dataclass(frozen=True)
class SkippedLease:
    lease_id: str
    reason: str


@dataclass(frozen=True)
class FailedLease:
    lease_id: str
    error_code: str
    error_message: str


@dataclass(frozen=True)
class SentReminders:
    lease_id: str
    reminder_types: tuple[str, ...]


def _skipped(run: BatchRunResult) -> tuple[SkippedLease, ...]:
    return tuple(
        SkippedLease(lease_id=r.item_key, reason=(r.result_data or {}).get("reason", ""))
        for r in run.items_with_status(BatchItemStatus.SKIPPED)
    )


def _failed(run: BatchRunResult) -> tuple[FailedLease, ...]:
    return tuple(
        FailedLease(
            lease_id=r.item_key,
            error_code=r.error_code or "UNKNOWN",
            error_message=r.error_message or "",
        )
        for r in run.items_with_status(BatchItemStatus.FAILED)
    )


@dataclass(frozen=True)
class InvoiceRunReport:
    """Outcome of one rent invoice run."""
    job_id: UUID
    status: BatchJobStatus
    generated: tuple[str, ...]  # payment ids
    skipped: tuple[SkippedLease, ...]
    failed: tuple[FailedLease, ...]

    @classmethod
    def from_run(cls, run: BatchRunResult) -> InvoiceRunReport:
        return cls(
            job_id=run.job_id,
            status=run.status,
            generated=tuple(
                r.result_data["payment_id"]
                for r in run.items_with_status(BatchItemStatus.SUCCEEDED)
            ),
            skipped=_skipped(run),
            failed=_failed(run),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": str(self.job_id),
            "status": self.status.value,
            "generated": list(self.generated),
            "skipped": [vars(s) for s in self.skipped],
            "failed": [vars(f) for f in self.failed],
        }


@dataclass(frozen=True)
class ReminderRunReport:
    """Outcome of one reminder run."""
    job_id: UUID
    status: BatchJobStatus
    sent: tuple[SentReminders, ...]
    skipped: tuple[SkippedLease, ...]
    failed: tuple[FailedLease, ...]

    @classmethod
    def from_run(cls, run: BatchRunResult) -> ReminderRunReport:
        return cls(
            job_id=run.job_id,
            status=run.status,
            sent=tuple(
                SentReminders(
                    lease_id=r.item_key,
                    reminder_types=tuple(r.result_data["reminders"]),
                )
                for r in run.items_with_status(BatchItemStatus.SUCCEEDED)
            ),
            skipped=_skipped(run),
            failed=_failed(run),
        )

    def reminders_for(self, lease_id: UUID | str) -> tuple[str, ...]:
        for entry in self.sent:
            if entry.lease_id == str(lease_id):
                return entry.reminder_types
        return ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": str(self.job_id),
            "status": self.status.value,
            "sent": [
                {"lease_id": s.lease_id, "reminder_types": list(s.reminder_types)}
                for s in self.sent
            ],
            "skipped": [vars(s) for s in self.skipped],
            "failed": [vars(f) for f in self.failed],
        }


# =============================================================================
# Orchestrator
# =============================================================================


def default_task_registry(wiring: ServiceWiring) -> TaskRegistry:
    """A TaskRegistry pre-loaded with the lease tasks."""
    registry = TaskRegistry()
    registry.register(RentInvoiceTask(wiring))
    registry.register(PaymentReminderTask(wiring))
    return registry


class DailyJobOrchestrator:
    """DI container for the daily invoice and reminder jobs.

    Contract:
        - ``from_session()`` factory creates a fully wired orchestrator.
        - ``run_monthly_invoice_generation()`` / ``run_payment_reminders()``
          run one job each and return its report.
        - ``create_executor()`` returns a BatchExecutor for ad-hoc jobs.

    Non-goals:
        - Does NOT manage session lifecycle -- caller controls commits.
    """

    INVOICE_TASK = "lease.rent_invoices"
    REMINDER_TASK = "lease.payment_reminders"

    def __init__(
        self,
        session: Session,
        wiring: ServiceWiring,
        task_registry: TaskRegistry | None = None,
    ) -> None:
        self._session = session
        self._wiring = wiring
        self._task_registry = task_registry or default_task_registry(wiring)
        self._auditor = AuditorService(session=session, clock=wiring.clock)
        self._sequence = SequenceService(session)

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        clock: Clock | None = None,
        notifications: NotificationSink | None = None,
        property_hook: PropertyStatusHook | None = None,
        settings: EngineSettings | None = None,
    ) -> DailyJobOrchestrator:
        """Create a fully wired orchestrator from a session.

        Args:
            session: SQLAlchemy session for persistence.
            clock: Optional clock for deterministic testing.
            notifications: Where reminders and invoices are delivered.
            property_hook: Receives lease status changes.
            settings: Optional engine settings; defaults apply otherwise.
        """
        options: dict[str, Any] = {
            "clock": clock or SystemClock(),
            "notifications": notifications or LoggingNotificationSink(),
            "property_hook": property_hook or NullPropertyStatusHook(),
        }
        if settings is not None:
            options["lease_config"] = LeaseConfig.from_settings(settings)
            options["reminder_schedule"] = ReminderSchedule(
                courtesy_day=settings.courtesy_day,
                deadline_day=settings.deadline_day,
                escalation_day=settings.escalation_day,
            )
            options["money_decimal_places"] = settings.money_decimal_places
            options["actor_id"] = settings.system_actor_id
        return cls(session=session, wiring=ServiceWiring(**options))

    # -------------------------------------------------------------------------
    # Executor
    # -------------------------------------------------------------------------

    def create_executor(self) -> BatchExecutor:
        return BatchExecutor(
            session=self._session,
            task_registry=self._task_registry,
            clock=self._wiring.clock,
            auditor_service=self._auditor,
            sequence_service=self._sequence,
        )

    # -------------------------------------------------------------------------
    # Daily jobs
    # -------------------------------------------------------------------------

    def run_monthly_invoice_generation(
        self,
        now: datetime | None = None,
    ) -> InvoiceRunReport:
        """Invoice the current month for every billable lease."""
        run = self.create_executor().run(
            self.INVOICE_TASK, self._wiring.actor_id, as_of=now,
        )
        report = InvoiceRunReport.from_run(run)
        logger.info("invoice_run_finished", extra={
            "job_id": str(run.job_id),
            "generated": len(report.generated),
            "skipped": len(report.skipped),
            "failed": len(report.failed),
        })
        return report

    def run_payment_reminders(
        self,
        now: datetime | None = None,
    ) -> ReminderRunReport:
        """Send today's reminders and escalate unpaid leases."""
        run = self.create_executor().run(
            self.REMINDER_TASK, self._wiring.actor_id, as_of=now,
        )
        report = ReminderRunReport.from_run(run)
        logger.info("reminder_run_finished", extra={
            "job_id": str(run.job_id),
            "sent": sum(len(s.reminder_types) for s in report.sent),
            "skipped": len(report.skipped),
            "failed": len(report.failed),
        })
        return report

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry
