"""
Persisted run reports of the scheduled jobs.

One ``rental_batch_jobs`` row per invoice or reminder run and one
``rental_batch_items`` row per lease the run looked at, so an operator
can see afterwards which leases were invoiced, skipped (and why) or
failed on a given day.

``idempotency_key`` is UNIQUE; ``seq`` comes from SequenceService.
Imports from rental_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from rental_batch.domain.types import BatchItemResult, BatchJob


class BatchJobModel(TrackedBase):
    __tablename__ = "rental_batch_jobs"
    __table_args__ = (
        Index("ix_rental_batch_jobs_task_status", "task_type", "status"),
    )

    job_name: Mapped[str] = mapped_column(String(200))
    task_type: Mapped[str] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(50))
    idempotency_key: Mapped[str] = mapped_column(String(200), unique=True)
    correlation_id: Mapped[str | None] = mapped_column(String(200))
    parameters: Mapped[dict | None] = mapped_column(JSON)
    seq: Mapped[int | None] = mapped_column(unique=True)

    # Outcome counters
    total_items: Mapped[int] = mapped_column(default=0)
    succeeded_items: Mapped[int] = mapped_column(default=0)
    failed_items: Mapped[int] = mapped_column(default=0)
    skipped_items: Mapped[int] = mapped_column(default=0)
    error_summary: Mapped[str | None] = mapped_column(Text)

    started_at: Mapped[datetime | None]
    completed_at: Mapped[datetime | None]

    items: Mapped[list[BatchItemModel]] = relationship(
        back_populates="job",
        order_by="BatchItemModel.item_index",
    )

    def to_dto(self) -> BatchJob:
        from rental_batch.domain.types import BatchJob, BatchJobStatus

        return BatchJob(
            job_id=self.id,
            job_name=self.job_name,
            task_type=self.task_type,
            status=BatchJobStatus(self.status),
            idempotency_key=self.idempotency_key,
            parameters=self.parameters or {},
            total_items=self.total_items,
            succeeded_items=self.succeeded_items,
            failed_items=self.failed_items,
            skipped_items=self.skipped_items,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            created_by=self.created_by_id,
            correlation_id=self.correlation_id,
            error_summary=self.error_summary,
            seq=self.seq,
        )

    @classmethod
    def pending(cls, job: BatchJob) -> BatchJobModel:
        """Row for a freshly submitted job."""
        return cls(
            id=job.job_id,
            job_name=job.job_name,
            task_type=job.task_type,
            status=job.status.value,
            idempotency_key=job.idempotency_key,
            correlation_id=job.correlation_id,
            parameters=job.parameters or None,
            seq=job.seq,
            created_at=job.created_at,
            created_by_id=job.created_by,
        )


class BatchItemModel(TrackedBase):
    """What happened to one lease in one run."""

    __tablename__ = "rental_batch_items"
    __table_args__ = (
        Index("ix_rental_batch_items_job_status", "job_id", "status"),
        Index("ix_rental_batch_items_item_key", "item_key"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("rental_batch_jobs.id", ondelete="CASCADE"),
    )
    item_index: Mapped[int]
    item_key: Mapped[str] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(50))
    error_code: Mapped[str | None] = mapped_column(String(100))
    error_message: Mapped[str | None] = mapped_column(Text)
    # e.g. {"payment_id": ...} or {"reason": "already_invoiced"}
    result_data: Mapped[dict | None] = mapped_column(JSON)
    duration_ms: Mapped[int] = mapped_column(default=0)
    started_at: Mapped[datetime | None]
    completed_at: Mapped[datetime | None]

    job: Mapped[BatchJobModel] = relationship(back_populates="items")

    def to_dto(self) -> BatchItemResult:
        from rental_batch.domain.types import BatchItemResult, BatchItemStatus

        return BatchItemResult(
            item_index=self.item_index,
            item_key=self.item_key,
            status=BatchItemStatus(self.status),
            error_code=self.error_code,
            error_message=self.error_message,
            result_data=self.result_data,
            duration_ms=self.duration_ms,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )

    @classmethod
    def record(
        cls, result: BatchItemResult, job_id: UUID, actor_id: UUID, recorded_at: datetime,
    ) -> BatchItemModel:
        return cls(
            job_id=job_id,
            item_index=result.item_index,
            item_key=result.item_key,
            status=result.status.value,
            error_code=result.error_code,
            error_message=result.error_message,
            result_data=result.result_data,
            duration_ms=result.duration_ms,
            started_at=result.started_at,
            completed_at=result.completed_at,
            created_at=recorded_at,
            created_by_id=actor_id,
        )
