"""
Service wiring shared by the lease batch tasks.

Tasks receive the executor's session per item; this builds the module
services around that session with the run's clock, ports and rules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from rental_kernel.db.types import MONEY_DECIMAL_PLACES
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.ports import (
    LoggingNotificationSink,
    NotificationSink,
    NullPropertyStatusHook,
    PropertyStatusHook,
)
from rental_kernel.services.auditor_service import AuditorService
from rental_modules.distribution.service import DistributionService
from rental_modules.lease.config import LeaseConfig
from rental_modules.lease.payments import PaymentService
from rental_modules.lease.reminders import ReminderSchedule, ReminderService
from rental_modules.lease.service import LeaseService

SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


@dataclass(frozen=True)
class BoundServices:
    """Module services bound to one session."""
    leases: LeaseService
    payments: PaymentService
    reminders: ReminderService


@dataclass(frozen=True)
class ServiceWiring:
    """Collaborators every lease task needs, independent of the session."""

    clock: Clock = field(default_factory=SystemClock)
    notifications: NotificationSink = field(default_factory=LoggingNotificationSink)
    property_hook: PropertyStatusHook = field(default_factory=NullPropertyStatusHook)
    lease_config: LeaseConfig = field(default_factory=LeaseConfig.with_defaults)
    reminder_schedule: ReminderSchedule = field(default_factory=ReminderSchedule)
    money_decimal_places: int = MONEY_DECIMAL_PLACES
    actor_id: UUID = SYSTEM_ACTOR_ID

    def bind(self, session: Session) -> BoundServices:
        auditor = AuditorService(session, self.clock)
        leases = LeaseService(
            session,
            clock=self.clock,
            notifications=self.notifications,
            property_hook=self.property_hook,
            auditor=auditor,
            config=self.lease_config,
        )
        payments = PaymentService(
            session,
            clock=self.clock,
            notifications=self.notifications,
            lease_service=leases,
            distribution_service=DistributionService(
                session,
                clock=self.clock,
                auditor=auditor,
                decimal_places=self.money_decimal_places,
            ),
            auditor=auditor,
        )
        reminders = ReminderService(
            session,
            clock=self.clock,
            notifications=self.notifications,
            lease_service=leases,
            auditor=auditor,
        )
        return BoundServices(leases=leases, payments=payments, reminders=reminders)
