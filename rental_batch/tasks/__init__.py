"""
Daily lease tasks and the registry the executor looks them up in.

``base`` is dependency-free; ``invoice_tasks`` and ``reminder_tasks``
drive the lease services.
"""

from rental_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
)

__all__ = [
    "BatchItemInput",
    "BatchTask",
    "BatchTaskResult",
    "TaskRegistry",
]
