"""
BatchExecutor -- runs a task over its items, one SAVEPOINT per item.

Contract:
    ``run()`` submits and executes a job for one business date.  Every
    item is processed inside its own SAVEPOINT so one lease's failure
    never undoes another lease's invoice or reminder.  Each item outcome
    is persisted, and the job's start and finish go on the audit chain.

Architecture: rental_batch/services.  Imports from rental_batch.domain,
    rental_batch.models, rental_batch.tasks, and kernel services.

Invariants enforced:
    - ``idempotency_key`` is unique per job.
    - Job ``seq`` from SequenceService.
    - All timestamps from the injected Clock.
    - Does NOT commit; the caller owns the transaction.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import (
    BatchAlreadyRunningError,
    BatchIdempotencyError,
    BatchJobNotFoundError,
)
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.services.auditor_service import AuditorService
from rental_kernel.services.sequence_service import SequenceService

from rental_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)
from rental_batch.models.batch import BatchItemModel, BatchJobModel
from rental_batch.tasks.base import BatchItemInput, BatchTask, TaskRegistry

logger = get_logger("batch.executor")

UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"


def job_status(succeeded: int, failed: int, skipped: int) -> BatchJobStatus:
    """
    COMPLETED when nothing failed (an all-skipped run is complete),
    FAILED when every item failed, PARTIALLY_COMPLETED otherwise.
    """
    if failed == 0:
        return BatchJobStatus.COMPLETED
    if succeeded == 0 and skipped == 0:
        return BatchJobStatus.FAILED
    return BatchJobStatus.PARTIALLY_COMPLETED


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)


class BatchExecutor:
    """
    Item outcomes:
        SUCCEEDED and SKIPPED items keep their SAVEPOINT; a skip can follow
        legitimate work such as a lifecycle transition.  FAILED items and
        unexpected exceptions roll theirs back.
    """

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        auditor_service: AuditorService | None = None,
        sequence_service: SequenceService | None = None,
    ):
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._auditor = auditor_service or AuditorService(session, self._clock)
        self._sequence = sequence_service or SequenceService(session)

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    def submit_job(
        self,
        job_name: str,
        task_type: str,
        idempotency_key: str,
        actor_id: UUID,
        parameters: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> BatchJob:
        """Create a PENDING job.

        Raises:
            TaskNotRegisteredError: ``task_type`` is not registered.
            BatchIdempotencyError: ``idempotency_key`` was used before.
        """
        self._task_registry.get(task_type)

        existing_id = self._session.execute(
            select(BatchJobModel.id).where(BatchJobModel.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        if existing_id is not None:
            raise BatchIdempotencyError(idempotency_key, str(existing_id))

        job = BatchJob(
            job_id=uuid4(),
            job_name=job_name,
            task_type=task_type,
            status=BatchJobStatus.PENDING,
            idempotency_key=idempotency_key,
            parameters=parameters or {},
            created_at=self._clock.now(),
            created_by=actor_id,
            correlation_id=correlation_id,
            seq=self._sequence.next_value(SequenceService.BATCH_JOB),
        )
        self._session.add(BatchJobModel.pending(job))
        self._session.flush()

        logger.info("batch_job_submitted", extra={
            "job_id": str(job.job_id),
            "task_type": task_type,
            "idempotency_key": idempotency_key,
            "seq": job.seq,
        })
        return job

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def run(
        self,
        task_type: str,
        actor_id: UUID,
        parameters: dict[str, Any] | None = None,
        as_of: datetime | None = None,
    ) -> BatchRunResult:
        """Submit and execute one job of ``task_type`` for ``as_of``.

        Every call is a new job; re-running a day is safe because the
        tasks themselves skip work that was already done.
        """
        as_of = as_of or self._clock.now()
        key = f"{task_type}:{as_of:%Y-%m-%d}:{uuid4().hex[:12]}"
        job = self.submit_job(
            job_name=f"{task_type} {as_of:%Y-%m-%d}",
            task_type=task_type,
            idempotency_key=key,
            actor_id=actor_id,
            parameters={"as_of": as_of.isoformat(), **(parameters or {})},
            correlation_id=key,
        )
        return self.execute_job(job.job_id, actor_id)

    def execute_job(self, job_id: UUID, actor_id: UUID) -> BatchRunResult:
        """Run a PENDING job.

        The reference time is the job's ``as_of`` parameter when present,
        otherwise the clock.

        Raises:
            BatchJobNotFoundError: ``job_id`` does not exist.
            BatchAlreadyRunningError: the job is not PENDING.
            TaskNotRegisteredError: its task is not registered.
        """
        start = time.monotonic()

        job = self._session.execute(
            select(BatchJobModel).where(BatchJobModel.id == job_id).with_for_update()
        ).scalar_one_or_none()
        if job is None:
            raise BatchJobNotFoundError(str(job_id))
        if job.status != BatchJobStatus.PENDING.value:
            raise BatchAlreadyRunningError(job.job_name, str(job_id), job.status)

        task = self._task_registry.get(job.task_type)
        parameters = job.parameters or {}
        raw_as_of = parameters.get("as_of")
        as_of = datetime.fromisoformat(raw_as_of) if raw_as_of else self._clock.now()

        job.status = BatchJobStatus.RUNNING.value
        job.started_at = self._clock.now()
        self._session.flush()

        with LogContext.bind(
            job_id=str(job_id),
            task_type=job.task_type,
            actor_id=str(actor_id),
            correlation_id=job.correlation_id,
        ):
            try:
                items = task.prepare_items(parameters, self._session, as_of)
            except Exception as exc:
                logger.exception("batch_job_prepare_failed", extra={"job_name": job.job_name})
                return self._finish(job, (), actor_id, start, f"prepare_items failed: {exc}")

            job.total_items = len(items)
            self._auditor.record_batch_job_started(
                job_id=job_id,
                actor_id=actor_id,
                task_type=job.task_type,
                total_items=len(items),
            )
            logger.info("batch_job_started", extra={
                "total_items": len(items),
                "as_of": as_of.isoformat(),
            })

            results = tuple(
                self._execute_item(task, item, parameters, as_of, job_id, actor_id)
                for item in items
            )
            return self._finish(job, results, actor_id, start)

    def _execute_item(
        self,
        task: BatchTask,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of: datetime,
        job_id: UUID,
        actor_id: UUID,
    ) -> BatchItemResult:
        item_start = time.monotonic()
        started_at = self._clock.now()

        with LogContext.bind(lease_id=item.item_key):
            savepoint = self._session.begin_nested()
            try:
                outcome = task.execute_item(item, parameters, self._session, as_of)
            except Exception as exc:
                savepoint.rollback()
                logger.exception("batch_item_unhandled_exception", extra={
                    "item_key": item.item_key,
                })
                status, error_code, error_message, data = (
                    BatchItemStatus.FAILED, UNHANDLED_EXCEPTION, str(exc), None,
                )
            else:
                if outcome.status is BatchItemStatus.FAILED:
                    savepoint.rollback()
                    logger.warning("batch_item_failed", extra={
                        "item_key": item.item_key,
                        "error_code": outcome.error_code,
                        "error_message": outcome.error_message,
                    })
                else:
                    savepoint.commit()
                status, error_code, error_message, data = (
                    outcome.status, outcome.error_code, outcome.error_message,
                    outcome.result_data,
                )

        result = BatchItemResult(
            item_index=item.item_index,
            item_key=item.item_key,
            status=status,
            error_code=error_code,
            error_message=error_message,
            result_data=data,
            duration_ms=_elapsed_ms(item_start),
            started_at=started_at,
            completed_at=self._clock.now(),
        )
        self._session.add(BatchItemModel.record(result, job_id, actor_id, self._clock.now()))
        return result

    def _finish(
        self,
        job: BatchJobModel,
        results: tuple[BatchItemResult, ...],
        actor_id: UUID,
        start: float,
        error_summary: str | None = None,
    ) -> BatchRunResult:
        """Store the outcome counts and final status, then audit the finish.

        ``error_summary`` marks a job that failed before any item ran.
        """
        counts = {
            status: sum(1 for r in results if r.status is status)
            for status in BatchItemStatus
        }
        succeeded = counts[BatchItemStatus.SUCCEEDED]
        failed = counts[BatchItemStatus.FAILED]
        skipped = counts[BatchItemStatus.SKIPPED]

        if error_summary is not None:
            status = BatchJobStatus.FAILED
        else:
            status = job_status(succeeded, failed, skipped)
            if failed:
                error_summary = f"{failed} item(s) failed"

        completed_at = self._clock.now()
        job.status = status.value
        job.succeeded_items = succeeded
        job.failed_items = failed
        job.skipped_items = skipped
        job.completed_at = completed_at
        job.error_summary = error_summary
        self._session.flush()

        self._auditor.record_batch_job_completed(
            job_id=job.id,
            actor_id=actor_id,
            status=status.value,
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
        )
        duration_ms = _elapsed_ms(start)
        logger.info("batch_job_completed", extra={
            "status": status.value,
            "succeeded": succeeded,
            "failed": failed,
            "skipped": skipped,
            "duration_ms": duration_ms,
        })

        return BatchRunResult(
            job_id=job.id,
            status=status,
            total_items=len(results),
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            item_results=results,
            started_at=job.started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
            correlation_id=job.correlation_id,
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> BatchJob:
        """Raises BatchJobNotFoundError for an unknown id."""
        model = self._session.get(BatchJobModel, job_id)
        if model is None:
            raise BatchJobNotFoundError(str(job_id))
        return model.to_dto()

    def get_job_items(self, job_id: UUID) -> tuple[BatchItemResult, ...]:
        models = self._session.execute(
            select(BatchItemModel)
            .where(BatchItemModel.job_id == job_id)
            .order_by(BatchItemModel.item_index)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)
