"""
AuditorService -- appends to and verifies the hash-chained audit log.

Every state change that matters to a tenant, owner or manager is written
here: lease transitions, invoices, payment settlement, distribution
splits, recipient transfers, reminders and scheduled runs.  Each event
hashes its payload and links to the previous event's hash, so
``validate_chain()`` finds any later edit.

Kernel > Services.  Used by the lease, payment and distribution services,
the batch tasks and the BatchExecutor.  Only INSERTs; never commits.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import AuditChainBrokenError
from rental_kernel.logging_config import get_logger
from rental_kernel.models.audit_event import AuditAction, AuditEvent
from rental_kernel.services.sequence_service import SequenceService
from rental_kernel.utils.hashing import GENESIS, hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """One entity's events, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(e.action for e in self.entries)


def _expected_hash(event: AuditEvent) -> str:
    return hash_audit_event(
        entity_type=event.entity_type,
        entity_id=str(event.entity_id),
        action=event.action,
        payload_hash=event.payload_hash,
        prev_hash=event.prev_hash,
    )


class AuditorService:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence = SequenceService(session)

    def _append(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Insert the next event of the chain and flush it."""
        seq = self._sequence.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

        # Stored in its JSON-safe form so it re-hashes identically
        stored_payload = to_json_safe(payload or {})
        event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=stored_payload,
            payload_hash=hash_payload(stored_payload),
            prev_hash=prev_hash,
        )
        event.hash = _expected_hash(event)
        self._session.add(event)
        self._session.flush()

        logger.info("audit_event_created", extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "action": action.value,
            "seq": seq,
        })
        return event

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record_lease_created(
        self,
        lease_id: UUID,
        actor_id: UUID,
        caution_amount: Decimal,
        total_months: int,
    ) -> AuditEvent:
        return self._append(
            entity_type="lease",
            entity_id=lease_id,
            action=AuditAction.LEASE_CREATED,
            actor_id=actor_id,
            payload={
                "caution_amount": caution_amount,
                "total_months": total_months,
            },
        )

    def record_lease_status_changed(
        self,
        lease_id: UUID,
        actor_id: UUID,
        from_status: str,
        to_status: str,
        reason: str | None = None,
    ) -> AuditEvent:
        """Record one lease state-machine transition."""
        return self._append(
            entity_type="lease",
            entity_id=lease_id,
            action=AuditAction.LEASE_STATUS_CHANGED,
            actor_id=actor_id,
            payload={
                "from_status": from_status,
                "to_status": to_status,
                "reason": reason,
            },
        )

    def record_caution_receipt_disputed(
        self,
        lease_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> AuditEvent:
        return self._append(
            entity_type="lease",
            entity_id=lease_id,
            action=AuditAction.CAUTION_RECEIPT_DISPUTED,
            actor_id=actor_id,
            payload={"reason": reason},
        )

    def record_rent_invoice_generated(
        self,
        payment_id: UUID,
        actor_id: UUID,
        lease_id: UUID,
        amount: Decimal,
        payment_period: date,
    ) -> AuditEvent:
        """Record a monthly rent invoice (a pending payment row)."""
        return self._append(
            entity_type="payment",
            entity_id=payment_id,
            action=AuditAction.RENT_INVOICE_GENERATED,
            actor_id=actor_id,
            payload={
                "lease_id": lease_id,
                "amount": amount,
                "payment_period": payment_period,
            },
        )

    def record_payment_initiated(
        self,
        payment_id: UUID,
        actor_id: UUID,
        transaction_id: str,
        method: str,
    ) -> AuditEvent:
        return self._append(
            entity_type="payment",
            entity_id=payment_id,
            action=AuditAction.PAYMENT_INITIATED,
            actor_id=actor_id,
            payload={"transaction_id": transaction_id, "method": method},
        )

    def record_payment_settled(
        self,
        payment_id: UUID,
        actor_id: UUID,
        transaction_id: str,
        amount: Decimal,
    ) -> AuditEvent:
        return self._append(
            entity_type="payment",
            entity_id=payment_id,
            action=AuditAction.PAYMENT_SETTLED,
            actor_id=actor_id,
            payload={"transaction_id": transaction_id, "amount": amount},
        )

    def record_payment_failed(
        self,
        payment_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> AuditEvent:
        return self._append(
            entity_type="payment",
            entity_id=payment_id,
            action=AuditAction.PAYMENT_FAILED,
            actor_id=actor_id,
            payload={"reason": reason},
        )

    def record_config_upserted(
        self,
        config_id: UUID,
        actor_id: UUID,
        space_id: UUID,
        owner_percentage: int,
        manager_percentage: int,
        created: bool,
    ) -> AuditEvent:
        return self._append(
            entity_type="distribution_config",
            entity_id=config_id,
            action=AuditAction.DISTRIBUTION_CONFIG_UPSERTED,
            actor_id=actor_id,
            payload={
                "space_id": space_id,
                "owner_percentage": owner_percentage,
                "manager_percentage": manager_percentage,
                "created": created,
            },
        )

    def record_distribution_calculated(
        self,
        distribution_id: UUID,
        actor_id: UUID,
        payment_id: UUID,
        kind: str,
        total_amount: Decimal,
        shares: dict[str, Decimal],
    ) -> AuditEvent:
        """Record the split of a settled payment."""
        return self._append(
            entity_type="payment_distribution",
            entity_id=distribution_id,
            action=AuditAction.DISTRIBUTION_CALCULATED,
            actor_id=actor_id,
            payload={
                "payment_id": payment_id,
                "kind": kind,
                "total_amount": total_amount,
                "shares": shares,
            },
        )

    def record_recipient_settled(
        self,
        distribution_id: UUID,
        actor_id: UUID,
        recipient: str,
        transfer_id: str,
        amount: Decimal,
    ) -> AuditEvent:
        return self._append(
            entity_type="payment_distribution",
            entity_id=distribution_id,
            action=AuditAction.RECIPIENT_SETTLED,
            actor_id=actor_id,
            payload={
                "recipient": recipient,
                "transfer_id": transfer_id,
                "amount": amount,
            },
        )

    def record_recipient_failed(
        self,
        distribution_id: UUID,
        actor_id: UUID,
        recipient: str,
        reason: str,
    ) -> AuditEvent:
        return self._append(
            entity_type="payment_distribution",
            entity_id=distribution_id,
            action=AuditAction.RECIPIENT_FAILED,
            actor_id=actor_id,
            payload={"recipient": recipient, "reason": reason},
        )

    def record_reminder_sent(
        self,
        lease_id: UUID,
        actor_id: UUID,
        reminder_type: str,
        reminder_date: date,
        notification_types: tuple[str, ...],
    ) -> AuditEvent:
        return self._append(
            entity_type="lease",
            entity_id=lease_id,
            action=AuditAction.REMINDER_SENT,
            actor_id=actor_id,
            payload={
                "reminder_type": reminder_type,
                "reminder_date": reminder_date,
                "notification_types": list(notification_types),
            },
        )

    def record_batch_job_started(
        self,
        job_id: UUID,
        actor_id: UUID,
        task_type: str,
        total_items: int,
    ) -> AuditEvent:
        return self._append(
            entity_type="batch_job",
            entity_id=job_id,
            action=AuditAction.BATCH_JOB_STARTED,
            actor_id=actor_id,
            payload={"task_type": task_type, "total_items": total_items},
        )

    def record_batch_job_completed(
        self,
        job_id: UUID,
        actor_id: UUID,
        status: str,
        succeeded: int,
        failed: int,
        skipped: int,
    ) -> AuditEvent:
        return self._append(
            entity_type="batch_job",
            entity_id=job_id,
            action=AuditAction.BATCH_JOB_COMPLETED,
            actor_id=actor_id,
            payload={
                "status": status,
                "succeeded": succeeded,
                "failed": failed,
                "skipped": skipped,
            },
        )

    # -------------------------------------------------------------------------
    # Verification and queries
    # -------------------------------------------------------------------------

    def validate_chain(self) -> bool:
        """
        Walk the whole log in ``seq`` order and recompute every hash.

        Raises:
            AuditChainBrokenError: at the first event whose payload hash,
                own hash or link to its predecessor does not match.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for event in events:
            for expected, actual in (
                (prev_hash, event.prev_hash),
                (event.payload_hash, hash_payload(event.payload or {})),
                (_expected_hash(event), event.hash),
            ):
                if expected != actual:
                    logger.critical("audit_chain_broken", extra={"seq": event.seq})
                    raise AuditChainBrokenError(
                        str(event.id), expected or GENESIS, actual or GENESIS,
                    )
            prev_hash = event.hash

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        ).scalars().all()
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=e.action,
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    payload=e.payload or {},
                    hash=e.hash,
                )
                for e in events
            ),
        )

    def get_events_by_action(self, action: AuditAction) -> list[AuditEvent]:
        return list(self._session.execute(
            select(AuditEvent).where(AuditEvent.action == action.value).order_by(AuditEvent.seq)
        ).scalars().all())
