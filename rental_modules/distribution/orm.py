"""
Module: rental_modules.distribution.orm
Responsibility:
    SQLAlchemy ORM persistence for distribution configurations, payment
    distributions and their recipient lines.

Architecture position:
    **Modules layer** -- ORM models inheriting from ``TrackedBase``.

Invariants enforced:
    - One configuration per space (uq_rental_distribution_config_space).
    - One distribution per payment (uq_rental_distribution_payment).
    - One recipient line per kind per distribution
      (uq_rental_distribution_recipient_kind).
    - Percentages are integers; amounts are Decimal (Numeric(38,9)).

Failure modes:
    - IntegrityError on a concurrent duplicate insert.  Callers insert
      inside a SAVEPOINT and fall back to the existing row.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
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
# Distribution configuration
# =============================================================================


class DistributionConfigModel(TrackedBase):
    """
    Recipient accounts and owner/manager percentages of one space.

    Guarantees:
        - ``space_id`` is unique.
        - Broker columns are nullable; owner and manager are required.
    """

    __tablename__ = "rental_distribution_configs"

    __table_args__ = (
        UniqueConstraint("space_id", name="uq_rental_distribution_config_space"),
    )

    space_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    owner_name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    owner_channel: Mapped[str | None] = mapped_column(String(50), nullable=True)

    manager_name: Mapped[str] = mapped_column(String(255), nullable=False)
    manager_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    manager_channel: Mapped[str | None] = mapped_column(String(50), nullable=True)

    broker_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    broker_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    broker_channel: Mapped[str | None] = mapped_column(String(50), nullable=True)

    owner_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    manager_percentage: Mapped[int] = mapped_column(Integer, nullable=False)

    def field_values(self) -> dict:
        from rental_modules.distribution.calculations import CONFIG_FIELDS

        return {key: getattr(self, key) for key in CONFIG_FIELDS}

    def to_dto(self):
        from rental_modules.distribution.models import (
            DistributionConfig,
            RecipientAccount,
            RecipientKind,
        )

        def account(kind: RecipientKind) -> RecipientAccount:
            prefix = kind.value
            return RecipientAccount(
                kind=kind,
                name=getattr(self, f"{prefix}_name"),
                phone=getattr(self, f"{prefix}_phone"),
                channel=getattr(self, f"{prefix}_channel"),
            )

        return DistributionConfig(
            id=self.id,
            space_id=self.space_id,
            owner=account(RecipientKind.OWNER),
            manager=account(RecipientKind.MANAGER),
            broker=account(RecipientKind.BROKER),
            owner_percentage=self.owner_percentage,
            manager_percentage=self.manager_percentage,
        )

    def __repr__(self) -> str:
        return (
            f"<DistributionConfigModel space={self.space_id} "
            f"{self.owner_percentage}/{self.manager_percentage}>"
        )


# =============================================================================
# Payment distribution
# =============================================================================


class PaymentDistributionModel(TrackedBase):
    """
    The split of one settled payment.

    Guarantees:
        - ``payment_id`` is unique: a payment is distributed once.
        - Rows are history; only recipient statuses change afterwards.
    """

    __tablename__ = "rental_payment_distributions"

    __table_args__ = (
        UniqueConstraint("payment_id", name="uq_rental_distribution_payment"),
        Index("idx_rental_distribution_space", "space_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("rental_payments.id"),
        nullable=False,
    )
    lease_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    space_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    caution_detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    recipients: Mapped[list["DistributionRecipientModel"]] = relationship(
        "DistributionRecipientModel",
        back_populates="distribution",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def recipient(self, kind: str) -> "DistributionRecipientModel | None":
        for row in self.recipients:
            if row.kind == kind:
                return row
        return None

    def to_dto(self):
        from rental_modules.distribution.models import (
            CautionDetail,
            DistributionKind,
            PaymentDistribution,
            RecipientKind,
        )

        order = [k.value for k in RecipientKind]
        rows = sorted(self.recipients, key=lambda r: order.index(r.kind))
        return PaymentDistribution(
            id=self.id,
            payment_id=self.payment_id,
            lease_id=self.lease_id,
            space_id=self.space_id,
            kind=DistributionKind(self.kind),
            total_amount=self.total_amount,
            recipients=tuple(r.to_dto() for r in rows),
            caution_detail=(
                CautionDetail.from_dict(self.caution_detail)
                if self.caution_detail else None
            ),
        )

    def __repr__(self) -> str:
        return (
            f"<PaymentDistributionModel {self.kind} payment={self.payment_id} "
            f"total={self.total_amount}>"
        )


class DistributionRecipientModel(TrackedBase):
    """
    One recipient line (owner, manager or broker) of a distribution.

    Guarantees:
        - (distribution_id, kind) is unique.
        - ``status`` is one of: pending, settled, failed, not_applicable.
    """

    __tablename__ = "rental_distribution_recipients"

    __table_args__ = (
        UniqueConstraint(
            "distribution_id", "kind",
            name="uq_rental_distribution_recipient_kind",
        ),
    )

    distribution_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("rental_payment_distributions.id"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    channel: Mapped[str | None] = mapped_column(String(50), nullable=True)
    percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="pending")
    transfer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    distribution: Mapped["PaymentDistributionModel"] = relationship(
        "PaymentDistributionModel",
        back_populates="recipients",
    )

    def to_dto(self):
        from rental_modules.distribution.models import (
            RecipientKind,
            RecipientShare,
            RecipientStatus,
        )

        return RecipientShare(
            kind=RecipientKind(self.kind),
            name=self.name,
            phone=self.phone,
            channel=self.channel,
            percentage=self.percentage,
            amount=self.amount,
            status=RecipientStatus(self.status),
            transfer_id=self.transfer_id,
            settled_at=self.settled_at,
            failure_reason=self.failure_reason,
        )

    def __repr__(self) -> str:
        return f"<DistributionRecipientModel {self.kind} {self.amount} {self.status}>"
