"""
Task protocol and registry for the batch executor.

A task turns one scheduled run into items (``prepare_items``), then
handles them one at a time (``execute_item``) while the executor holds a
SAVEPOINT around each.  For the lease jobs an item is one lease and its
key is the lease id.

base.py imports nothing from the modules layer; the concrete task files
import the lease services they drive.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from rental_batch.domain.types import BatchItemStatus
from rental_kernel.exceptions import TaskNotRegisteredError


@dataclass(frozen=True)
class BatchItemInput:
    """One unit of work, in the order the task listed it."""
    item_index: int
    item_key: str


@dataclass(frozen=True)
class BatchTaskResult:
    """What ``execute_item`` reports back for one item.

    Build it with ``succeeded()``, ``skipped()`` or ``failed()``.  A skip
    always carries a ``reason`` so reports can group skipped leases.
    """

    status: BatchItemStatus
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def succeeded(cls, **result_data: Any) -> BatchTaskResult:
        return cls(BatchItemStatus.SUCCEEDED, result_data=result_data or None)

    @classmethod
    def skipped(cls, reason: str, **result_data: Any) -> BatchTaskResult:
        return cls(BatchItemStatus.SKIPPED, result_data={"reason": reason, **result_data})

    @classmethod
    def failed(cls, error_code: str, error_message: str) -> BatchTaskResult:
        return cls(BatchItemStatus.FAILED, error_code=error_code, error_message=error_message)


@runtime_checkable
class BatchTask(Protocol):
    """
    Contract:
        ``task_type`` is the registry key and the prefix of every job's
        idempotency key.  ``as_of`` is the run's reference time; tasks
        take the business date from it, never from the wall clock.

    Non-goals:
        Does NOT open, commit or roll back transactions.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]: ...

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult: ...


class TaskRegistry:
    """Tasks by ``task_type``; one task per key."""

    def __init__(self) -> None:
        self._tasks: dict[str, BatchTask] = {}

    def register(self, task: BatchTask) -> None:
        """Raises ValueError if the ``task_type`` is taken."""
        if task.task_type in self._tasks:
            raise ValueError(f"Task type '{task.task_type}' is already registered")
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> BatchTask:
        if task_type not in self._tasks:
            raise TaskNotRegisteredError(task_type, self.list_tasks())
        return self._tasks[task_type]

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks
