"""
Lease Payment Domain Models (``rental_modules.lease.models``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of the lease payment
lifecycle: leases, their caution breakdown, payments (caution and monthly
rent) and reminder records, plus the status enums shared by the service
layer and the batch jobs.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Returned by
``LeaseService`` and ``PaymentService`` and by the ORM ``to_dto()``
methods.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``Lease.first_regular_payment_date`` is set iff ``caution_paid``.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from rental_kernel.logging_config import get_logger

logger = get_logger("modules.lease.models")


class LeaseStatus(Enum):
    """Lease lifecycle states."""
    PENDING_CAUTION = "pending_caution"
    CAUTION_SUBMITTED = "caution_submitted"
    ACTIVE_ADVANCE = "active_advance"
    ACTIVE_REGULAR = "active_regular"
    OVERDUE = "overdue"
    TERMINATED = "terminated"


# Leases the scheduled jobs bill and remind
BILLABLE_STATUSES: frozenset[LeaseStatus] = frozenset({
    LeaseStatus.ACTIVE_ADVANCE,
    LeaseStatus.ACTIVE_REGULAR,
    LeaseStatus.OVERDUE,
})


class LeasePaymentStatus(Enum):
    """Tenant-facing payment status carried on the lease."""
    PENDING = "pending"
    AWAITING_TENANT_CONFIRMATION = "awaiting_tenant_confirmation"
    VERIFIED = "verified"
    OVERDUE = "overdue"


class PaymentStatus(Enum):
    """Settlement status of one payment row."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SETTLED = "settled"
    FAILED = "failed"


class PaymentMethod(Enum):
    MOBILE_MONEY = "mobile_money"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


class ReminderType(Enum):
    ADVANCE_ENDING = "advance_ending"
    COURTESY = "courtesy"
    DEADLINE = "deadline"
    OVERDUE = "overdue"


class NotificationType:
    """Notification type strings emitted to the NotificationSink."""
    RECEIPT_UPLOADED = "receipt_uploaded"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_DISPUTED = "payment_disputed"
    RENT_INVOICE = "rent_invoice"
    ADVANCE_ENDING = "advance_ending"
    COURTESY_REMINDER = "courtesy_reminder"
    PAYMENT_DEADLINE = "payment_deadline"
    PAYMENT_OVERDUE = "payment_overdue"
    PAYMENT_OVERDUE_MANAGER = "payment_overdue_manager"
    PAYMENT_RECEIVED = "payment_received"


@dataclass(frozen=True)
class CautionBreakdown:
    """Split of the initial caution payment into its three parts."""
    advance_amount: Decimal
    deposit_amount: Decimal
    broker_amount: Decimal
    total_amount: Decimal
    total_months: int


@dataclass(frozen=True)
class Lease:
    """One tenancy."""
    id: UUID
    property_id: UUID
    tenant_id: UUID
    manager_id: UUID
    space_id: UUID
    monthly_rent: Decimal
    advance_months: int
    deposit_months: int
    broker_months: int
    caution_amount: Decimal
    start_date: date
    status: LeaseStatus = LeaseStatus.PENDING_CAUTION
    payment_status: LeasePaymentStatus = LeasePaymentStatus.PENDING
    caution_paid: bool = False
    caution_paid_at: datetime | None = None
    first_regular_payment_date: date | None = None
    tenant_confirmed_at: datetime | None = None
    end_date: date | None = None
    currency: str = "XOF"

    @property
    def is_billable(self) -> bool:
        return self.caution_paid and self.status in BILLABLE_STATUSES


@dataclass(frozen=True)
class Payment:
    """One money movement tied to a lease."""
    id: UUID
    lease_id: UUID
    space_id: UUID
    amount: Decimal
    payment_period: date
    status: PaymentStatus = PaymentStatus.PENDING
    method: PaymentMethod | None = None
    payer_phone: str | None = None
    transaction_id: str | None = None
    settled_at: datetime | None = None
    failure_reason: str | None = None

    @property
    def is_settled(self) -> bool:
        return self.status is PaymentStatus.SETTLED


@dataclass(frozen=True)
class ReminderRecord:
    """Idempotency guard: one row per (lease, reminder type, day)."""
    id: UUID
    lease_id: UUID
    reminder_type: ReminderType
    reminder_date: date
    sent_at: datetime
