"""
Audit chain tests.

Verifies:
- Every recorded event links to its predecessor's hash
- Tampering with a payload, a stored hash or a link is detected
- Traces return one entity's events in order
"""

from uuid import uuid4

import pytest
from sqlalchemy import select, update

from rental_kernel.exceptions import AuditChainBrokenError
from rental_kernel.models.audit_event import AuditAction, AuditEvent
from rental_kernel.utils.hashing import hash_audit_event, hash_payload


@pytest.fixture
def audited_lease(activate_lease, session):
    """An active lease with its creation and status changes audited."""
    lease = activate_lease()
    session.flush()
    return lease


def _events(session) -> list[AuditEvent]:
    return session.execute(select(AuditEvent).order_by(AuditEvent.seq)).scalars().all()


class TestChainLinks:
    def test_empty_chain_is_valid(self, auditor_service):
        assert auditor_service.validate_chain()

    def test_events_are_linked(self, audited_lease, session, auditor_service):
        events = _events(session)

        assert events[0].prev_hash is None
        for prev, event in zip(events, events[1:]):
            assert event.prev_hash == prev.hash
            assert event.seq > prev.seq
        assert auditor_service.validate_chain()

    def test_hash_covers_payload(self, audited_lease, session):
        event = _events(session)[0]

        assert event.payload_hash == hash_payload(event.payload)
        assert event.hash == hash_audit_event(
            entity_type=event.entity_type,
            entity_id=str(event.entity_id),
            action=event.action,
            payload_hash=event.payload_hash,
            prev_hash=None,
        )


class TestTamperDetection:
    def test_payload_edit(self, audited_lease, session, auditor_service):
        first = _events(session)[0]
        session.execute(
            update(AuditEvent)
            .where(AuditEvent.id == first.id)
            .values(payload={**first.payload, "caution_amount": "1"})
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError) as exc_info:
            auditor_service.validate_chain()
        assert exc_info.value.audit_event_id == str(first.id)

    def test_hash_edit(self, audited_lease, session, auditor_service):
        second = _events(session)[1]
        session.execute(
            update(AuditEvent).where(AuditEvent.id == second.id).values(hash="0" * 64)
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError):
            auditor_service.validate_chain()

    def test_broken_link(self, audited_lease, session, auditor_service):
        last = _events(session)[-1]
        session.execute(
            update(AuditEvent).where(AuditEvent.id == last.id).values(prev_hash="f" * 64)
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError):
            auditor_service.validate_chain()

    def test_break_is_logged(self, audited_lease, session, auditor_service, captured_logs):
        first = _events(session)[0]
        session.execute(
            update(AuditEvent).where(AuditEvent.id == first.id).values(prev_hash="a" * 64)
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError):
            auditor_service.validate_chain()

        broken = [r for r in captured_logs() if r["message"] == "audit_chain_broken"]
        assert broken[0]["level"] == "CRITICAL"


class TestTraces:
    def test_lease_trace(self, audited_lease, auditor_service):
        trace = auditor_service.get_trace("lease", audited_lease.id)

        assert not trace.is_empty
        assert trace.actions[0] == AuditAction.LEASE_CREATED.value
        assert AuditAction.LEASE_STATUS_CHANGED.value in trace.actions
        assert [e.seq for e in trace.entries] == sorted(e.seq for e in trace.entries)

    def test_unknown_entity(self, auditor_service):
        assert auditor_service.get_trace("lease", uuid4()).is_empty

    def test_events_by_action(self, activate_lease, auditor_service):
        first = activate_lease()
        second = activate_lease()

        created = auditor_service.get_events_by_action(AuditAction.LEASE_CREATED)

        assert {e.entity_id for e in created} == {first.id, second.id}
