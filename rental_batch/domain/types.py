"""
Value objects describing one scheduled run and what it did to each lease.

No I/O.  The executor builds them, the ORM models convert to and from
them, and the daily reports read them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class BatchJobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"


class BatchItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    # Nothing to do for this lease today, e.g. already invoiced
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchJob:
    """A submitted run, e.g. ``lease.rent_invoices`` for 2024-03-15."""

    job_id: UUID
    job_name: str
    task_type: str
    status: BatchJobStatus
    idempotency_key: str
    parameters: dict[str, Any] = field(default_factory=dict)
    seq: int | None = None
    correlation_id: str | None = None
    created_by: UUID | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    error_summary: str | None = None


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome for one lease; ``item_key`` is the lease id."""

    item_index: int
    item_key: str
    status: BatchItemStatus
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class BatchRunResult:
    job_id: UUID
    status: BatchJobStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    correlation_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    def items_with_status(self, status: BatchItemStatus) -> tuple[BatchItemResult, ...]:
        return tuple(r for r in self.item_results if r.status is status)
