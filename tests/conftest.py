"""
Pytest fixtures for the lease payment engine test suite.

Provides:
- In-memory SQLite sessions with every ORM table created
- A deterministic clock and recording notification / property ports
- Services wired around one session, as the batch tasks wire them
- Builders for leases in each lifecycle state and distribution configs

PostgreSQL-only tests are marked ``postgres`` and read
RENTAL_TEST_DATABASE_URL; they are skipped when it is not set.
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rental_batch.orchestrator import DailyJobOrchestrator
from rental_batch.tasks.wiring import ServiceWiring
from rental_kernel.db.base import Base
from rental_kernel.db.engine import enable_sqlite_savepoints
from rental_kernel.domain.clock import DeterministicClock
from rental_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from rental_kernel.ports import RecordingNotificationSink, RecordingPropertyStatusHook
from rental_kernel.services.auditor_service import AuditorService
from rental_modules._orm_registry import import_all_orm_models
from rental_modules.distribution.config_store import DistributionConfigStore
from rental_modules.distribution.service import DistributionService
from rental_modules.lease.payments import PaymentService, SimulatedMobileMoneyGateway
from rental_modules.lease.reminders import ReminderService
from rental_modules.lease.service import LeaseService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# 2024-01-15 09:00 UTC: the day the standard test lease's caution is confirmed
CAUTION_DAY = datetime(2024, 1, 15, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture rental_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, payment_service):
            payment_service.create_rent_invoice(...)
            logs = captured_logs()
            assert any(r["message"] == "rent_invoice_generated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("rental_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine with every table created."""
    import_all_orm_models()
    engine = enable_sqlite_savepoints(create_engine("sqlite:///:memory:"))
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Clock, actor and ports
# =============================================================================


@pytest.fixture
def actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=CAUTION_DAY)


@pytest.fixture
def set_today(clock):
    """Move the clock to 06:00 UTC on the given day and return that instant."""

    def _set(day: date) -> datetime:
        now = datetime(day.year, day.month, day.day, 6, 0, 0, tzinfo=timezone.utc)
        clock.set_time(now)
        return now

    return _set


@pytest.fixture
def notifications() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def property_hook() -> RecordingPropertyStatusHook:
    return RecordingPropertyStatusHook()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def auditor_service(session, clock):
    return AuditorService(session, clock)


@pytest.fixture
def lease_service(session, clock, notifications, property_hook, auditor_service):
    return LeaseService(
        session,
        clock=clock,
        notifications=notifications,
        property_hook=property_hook,
        auditor=auditor_service,
    )


@pytest.fixture
def config_store(session, clock, auditor_service):
    return DistributionConfigStore(session, clock, auditor_service)


@pytest.fixture
def distribution_service(session, clock, auditor_service, config_store):
    return DistributionService(
        session,
        clock=clock,
        auditor=auditor_service,
        config_store=config_store,
    )


@pytest.fixture
def payment_service(
    session, clock, notifications, lease_service, distribution_service, auditor_service,
):
    return PaymentService(
        session,
        clock=clock,
        notifications=notifications,
        gateway=SimulatedMobileMoneyGateway(clock),
        lease_service=lease_service,
        distribution_service=distribution_service,
        auditor=auditor_service,
    )


@pytest.fixture
def reminder_service(session, clock, notifications, lease_service, auditor_service):
    return ReminderService(
        session,
        clock=clock,
        notifications=notifications,
        lease_service=lease_service,
        auditor=auditor_service,
    )


@pytest.fixture
def wiring(clock, notifications, property_hook, actor_id):
    return ServiceWiring(
        clock=clock,
        notifications=notifications,
        property_hook=property_hook,
        actor_id=actor_id,
    )


@pytest.fixture
def orchestrator(session, wiring):
    return DailyJobOrchestrator(session, wiring)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def create_lease(lease_service, actor_id):
    """
    Create a ``pending_caution`` lease.

    Defaults: rent 100,000 with 2 advance, 2 deposit and 1 broker month
    (caution 500,000).
    """

    def _create(
        monthly_rent: Decimal = Decimal("100000"),
        advance_months: int = 2,
        deposit_months: int = 2,
        broker_months: int = 1,
        space_id: UUID | None = None,
        start_date: date = date(2024, 1, 15),
    ):
        return lease_service.create_lease(
            property_id=uuid4(),
            tenant_id=uuid4(),
            manager_id=uuid4(),
            space_id=space_id or uuid4(),
            monthly_rent=monthly_rent,
            advance_months=advance_months,
            deposit_months=deposit_months,
            broker_months=broker_months,
            start_date=start_date,
            actor_id=actor_id,
        )

    return _create


@pytest.fixture
def activate_lease(create_lease, lease_service, actor_id):
    """Create a lease and run it through receipt upload and confirmation.

    The caution is confirmed at the clock's current time.
    """

    def _activate(**kwargs):
        lease = create_lease(**kwargs)
        lease_service.submit_caution_receipt(lease.id, actor_id)
        return lease_service.confirm_caution(lease.id, actor_id)

    return _activate


@pytest.fixture
def configure_space(config_store, actor_id):
    """Store a distribution config for a space (90/10 with a broker by default)."""

    def _configure(
        space_id: UUID,
        owner_percentage: int = 90,
        with_broker: bool = True,
        **overrides,
    ):
        fields = {
            "owner_name": "Awa Kone",
            "owner_phone": "+2250700000001",
            "owner_channel": "orange",
            "manager_name": "Yao Immobilier",
            "manager_phone": "+2250500000002",
            "manager_channel": "mtn",
            "owner_percentage": owner_percentage,
        }
        if with_broker:
            fields.update(
                broker_name="Ibrahim Diallo",
                broker_phone="+2250100000003",
                broker_channel="wave",
            )
        fields.update(overrides)
        return config_store.upsert_config(space_id, fields, actor_id)

    return _configure


@pytest.fixture
def lose_insert_race(monkeypatch):
    """
    Make ``cls.method`` miss once, as if another run had not committed yet.

    The service then inserts, hits the UNIQUE constraint and has to take
    its concurrent-insert path.
    """

    def _patch(cls, method_name: str) -> None:
        original = getattr(cls, method_name)
        calls = []

        def _first_call_misses(self, *args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return None
            return original(self, *args, **kwargs)

        monkeypatch.setattr(cls, method_name, _first_call_misses)

    return _patch
