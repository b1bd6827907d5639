"""Tables recording each scheduled run and each lease it touched."""

from rental_batch.models.batch import BatchItemModel, BatchJobModel

__all__ = ["BatchItemModel", "BatchJobModel"]
