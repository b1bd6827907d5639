"""
Module: rental_modules.lease.orm
Responsibility:
    SQLAlchemy ORM persistence models for the lease payment lifecycle.
    Maps frozen dataclass DTOs from ``rental_modules.lease.models`` to
    relational tables.

Architecture position:
    **Modules layer** -- ORM models inheriting from ``TrackedBase``
    (kernel DB base).

Invariants enforced:
    - All monetary fields use Decimal (Numeric(38,9)).
    - Enum fields stored as String(50) for safe serialization.
    - (lease_id, payment_period) is unique on payments: at most one
      payment row per lease and month, so at most one can be settled.
    - (lease_id, reminder_type, reminder_date) is unique on reminders.

Failure modes:
    - IntegrityError on duplicate unique constraints.  Callers insert
      inside a SAVEPOINT and treat the violation as "already done".
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase, UUIDString


# =============================================================================
# Lease
# =============================================================================


class LeaseModel(TrackedBase):
    """
    One tenancy and its caution terms.

    Guarantees:
        - ``status`` is a LeaseStatus value; ``payment_status`` a
          LeasePaymentStatus value.
        - ``first_regular_payment_date`` is NULL until the caution is paid.
        - Rows are never deleted; termination sets ``end_date``.
    """

    __tablename__ = "rental_leases"

    __table_args__ = (
        Index("idx_rental_lease_space", "space_id"),
        Index("idx_rental_lease_tenant", "tenant_id"),
        Index("idx_rental_lease_status", "status"),
    )

    property_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    manager_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    space_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    monthly_rent: Mapped[Decimal] = mapped_column(nullable=False)
    advance_months: Mapped[int] = mapped_column(Integer, nullable=False)
    deposit_months: Mapped[int] = mapped_column(Integer, nullable=False)
    broker_months: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    caution_amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="XOF")

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(String(50), default="pending_caution")
    payment_status: Mapped[str] = mapped_column(String(50), default="pending")

    caution_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    caution_paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    first_regular_payment_date: Mapped[date | None] = mapped_column(
        Date, nullable=True,
    )
    tenant_confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    payments: Mapped[list["PaymentModel"]] = relationship(
        "PaymentModel",
        back_populates="lease",
        order_by="PaymentModel.payment_period",
    )

    def to_dto(self):
        from rental_modules.lease.models import (
            Lease,
            LeasePaymentStatus,
            LeaseStatus,
        )

        return Lease(
            id=self.id,
            property_id=self.property_id,
            tenant_id=self.tenant_id,
            manager_id=self.manager_id,
            space_id=self.space_id,
            monthly_rent=self.monthly_rent,
            advance_months=self.advance_months,
            deposit_months=self.deposit_months,
            broker_months=self.broker_months,
            caution_amount=self.caution_amount,
            start_date=self.start_date,
            status=LeaseStatus(self.status),
            payment_status=LeasePaymentStatus(self.payment_status),
            caution_paid=self.caution_paid,
            caution_paid_at=self.caution_paid_at,
            first_regular_payment_date=self.first_regular_payment_date,
            tenant_confirmed_at=self.tenant_confirmed_at,
            end_date=self.end_date,
            currency=self.currency,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "LeaseModel":
        return cls(
            id=dto.id,
            property_id=dto.property_id,
            tenant_id=dto.tenant_id,
            manager_id=dto.manager_id,
            space_id=dto.space_id,
            monthly_rent=dto.monthly_rent,
            advance_months=dto.advance_months,
            deposit_months=dto.deposit_months,
            broker_months=dto.broker_months,
            caution_amount=dto.caution_amount,
            start_date=dto.start_date,
            status=dto.status.value,
            payment_status=dto.payment_status.value,
            caution_paid=dto.caution_paid,
            caution_paid_at=dto.caution_paid_at,
            first_regular_payment_date=dto.first_regular_payment_date,
            tenant_confirmed_at=dto.tenant_confirmed_at,
            end_date=dto.end_date,
            currency=dto.currency,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<LeaseModel {self.id} ({self.status}/{self.payment_status})>"


# =============================================================================
# Payment
# =============================================================================


class PaymentModel(TrackedBase):
    """
    One caution or rent payment.

    Guarantees:
        - (lease_id, payment_period) is unique (uq_rental_payment_period).
        - ``status`` is one of: pending, in_progress, settled, failed.
        - A retried payment reuses the row rather than inserting another.
    """

    __tablename__ = "rental_payments"

    __table_args__ = (
        UniqueConstraint(
            "lease_id", "payment_period", name="uq_rental_payment_period",
        ),
        Index("idx_rental_payment_status", "status"),
        Index("idx_rental_payment_space", "space_id"),
    )

    lease_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("rental_leases.id"),
        nullable=False,
    )
    space_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_period: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="pending")
    method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    lease: Mapped["LeaseModel"] = relationship(
        "LeaseModel",
        back_populates="payments",
    )

    def to_dto(self):
        from rental_modules.lease.models import (
            Payment,
            PaymentMethod,
            PaymentStatus,
        )

        return Payment(
            id=self.id,
            lease_id=self.lease_id,
            space_id=self.space_id,
            amount=self.amount,
            payment_period=self.payment_period,
            status=PaymentStatus(self.status),
            method=PaymentMethod(self.method) if self.method else None,
            payer_phone=self.payer_phone,
            transaction_id=self.transaction_id,
            settled_at=self.settled_at,
            failure_reason=self.failure_reason,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PaymentModel":
        return cls(
            id=dto.id,
            lease_id=dto.lease_id,
            space_id=dto.space_id,
            amount=dto.amount,
            payment_period=dto.payment_period,
            status=dto.status.value,
            method=dto.method.value if dto.method else None,
            payer_phone=dto.payer_phone,
            transaction_id=dto.transaction_id,
            settled_at=dto.settled_at,
            failure_reason=dto.failure_reason,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<PaymentModel {self.payment_period} "
            f"amount={self.amount} status={self.status}>"
        )


# =============================================================================
# Reminder record
# =============================================================================


class ReminderRecordModel(TrackedBase):
    """
    Idempotency guard for the reminder scheduler.

    Guarantees:
        - (lease_id, reminder_type, reminder_date) is unique
          (uq_rental_reminder_day).
    """

    __tablename__ = "rental_payment_reminders"

    __table_args__ = (
        UniqueConstraint(
            "lease_id", "reminder_type", "reminder_date",
            name="uq_rental_reminder_day",
        ),
    )

    lease_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("rental_leases.id"),
        nullable=False,
    )
    reminder_type: Mapped[str] = mapped_column(String(50), nullable=False)
    reminder_date: Mapped[date] = mapped_column(Date, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def to_dto(self):
        from rental_modules.lease.models import ReminderRecord, ReminderType

        return ReminderRecord(
            id=self.id,
            lease_id=self.lease_id,
            reminder_type=ReminderType(self.reminder_type),
            reminder_date=self.reminder_date,
            sent_at=self.sent_at,
        )

    def __repr__(self) -> str:
        return f"<ReminderRecordModel {self.reminder_type} {self.reminder_date}>"
