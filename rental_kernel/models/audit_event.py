"""
The append-only, hash-chained audit log.

Each row stores the hash of its own payload and the hash of the row
before it, so editing a payload, a stored hash or a link anywhere in the
log is caught by ``AuditorService.validate_chain()``.  Rows are only
ever inserted; ``seq`` comes from SequenceService.

Kernel > Models: imports db/base.py only.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import Base


class AuditAction(str, Enum):
    """Every action has a ``record_*`` method on AuditorService."""

    LEASE_CREATED = "lease_created"
    LEASE_STATUS_CHANGED = "lease_status_changed"
    CAUTION_RECEIPT_DISPUTED = "caution_receipt_disputed"

    RENT_INVOICE_GENERATED = "rent_invoice_generated"
    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_SETTLED = "payment_settled"
    PAYMENT_FAILED = "payment_failed"

    DISTRIBUTION_CONFIG_UPSERTED = "distribution_config_upserted"
    DISTRIBUTION_CALCULATED = "distribution_calculated"
    RECIPIENT_SETTLED = "recipient_settled"
    RECIPIENT_FAILED = "recipient_failed"

    REMINDER_SENT = "reminder_sent"

    BATCH_JOB_STARTED = "batch_job_started"
    BATCH_JOB_COMPLETED = "batch_job_completed"


class AuditEvent(Base):
    __tablename__ = "rental_audit_events"
    __table_args__ = (
        Index("ix_rental_audit_events_entity", "entity_type", "entity_id"),
        Index("ix_rental_audit_events_action", "action"),
    )

    seq: Mapped[int] = mapped_column(unique=True)
    # lease, payment, payment_distribution, distribution_config, batch_job
    entity_type: Mapped[str] = mapped_column(String(50))
    entity_id: Mapped[UUID]
    action: Mapped[str] = mapped_column(String(50))
    actor_id: Mapped[UUID]
    occurred_at: Mapped[datetime]
    payload: Mapped[dict | None] = mapped_column(JSON)
    payload_hash: Mapped[str] = mapped_column(String(64))
    # None only on the first row
    prev_hash: Mapped[str | None] = mapped_column(String(64))
    hash: Mapped[str] = mapped_column(String(64))

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} {self.entity_type}:{self.entity_id}>"
