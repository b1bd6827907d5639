"""
Payment Distribution Domain Models (``rental_modules.distribution.models``).

Responsibility
--------------
Frozen value objects for splitting a settled payment among the owner,
the manager and the optional broker of a management space: the space's
recipient configuration, the per-recipient shares, and the caution
breakdown kept on caution-kind distributions.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* ``owner_percentage + manager_percentage == 100`` on every config.
* The recipient amounts of a distribution add up to ``total_amount``.
* Every recipient kind has the same shape and is iterated generically.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class DistributionKind(Enum):
    CAUTION = "caution"
    RENT = "rent"


class RecipientKind(Enum):
    OWNER = "owner"
    MANAGER = "manager"
    BROKER = "broker"


class RecipientStatus(Enum):
    PENDING = "pending"
    SETTLED = "settled"
    FAILED = "failed"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class RecipientAccount:
    """Where one recipient kind is paid."""
    kind: RecipientKind
    name: str | None
    phone: str | None
    channel: str | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.phone)


@dataclass(frozen=True)
class DistributionConfig:
    """Recipient accounts and owner/manager split for one space."""
    id: UUID
    space_id: UUID
    owner: RecipientAccount
    manager: RecipientAccount
    broker: RecipientAccount
    owner_percentage: int
    manager_percentage: int

    @property
    def accounts(self) -> tuple[RecipientAccount, ...]:
        return (self.owner, self.manager, self.broker)

    def account(self, kind: RecipientKind) -> RecipientAccount:
        for account in self.accounts:
            if account.kind is kind:
                return account
        raise KeyError(kind)

    def percentage_for(self, kind: RecipientKind) -> int | None:
        if kind is RecipientKind.OWNER:
            return self.owner_percentage
        if kind is RecipientKind.MANAGER:
            return self.manager_percentage
        return None


@dataclass(frozen=True)
class CautionDetail:
    """How a caution payment was split.  Kept on caution distributions."""
    advance_amount: Decimal
    deposit_amount: Decimal
    broker_amount: Decimal
    owner_share_of_advance: Decimal
    manager_share_of_advance: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "advance_amount": str(self.advance_amount),
            "deposit_amount": str(self.deposit_amount),
            "broker_amount": str(self.broker_amount),
            "owner_share_of_advance": str(self.owner_share_of_advance),
            "manager_share_of_advance": str(self.manager_share_of_advance),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CautionDetail":
        return cls(**{key: Decimal(str(data[key])) for key in (
            "advance_amount",
            "deposit_amount",
            "broker_amount",
            "owner_share_of_advance",
            "manager_share_of_advance",
        )})


@dataclass(frozen=True)
class PlannedShare:
    """One line of a split before it is persisted."""
    kind: RecipientKind
    amount: Decimal
    status: RecipientStatus


@dataclass(frozen=True)
class SplitPlan:
    """Output of the pure split calculations."""
    kind: DistributionKind
    total_amount: Decimal
    shares: tuple[PlannedShare, ...]
    caution_detail: CautionDetail | None = None

    def amount_for(self, kind: RecipientKind) -> Decimal:
        for share in self.shares:
            if share.kind is kind:
                return share.amount
        return Decimal("0")


@dataclass(frozen=True)
class RecipientShare:
    """One recipient line of a persisted distribution."""
    kind: RecipientKind
    name: str | None
    phone: str | None
    channel: str | None
    percentage: int | None
    amount: Decimal
    status: RecipientStatus
    transfer_id: str | None = None
    settled_at: datetime | None = None
    failure_reason: str | None = None

    @property
    def is_applicable(self) -> bool:
        return self.status is not RecipientStatus.NOT_APPLICABLE


@dataclass(frozen=True)
class PaymentDistribution:
    """Immutable record of how one settled payment was split."""
    id: UUID
    payment_id: UUID
    lease_id: UUID
    space_id: UUID
    kind: DistributionKind
    total_amount: Decimal
    recipients: tuple[RecipientShare, ...]
    caution_detail: CautionDetail | None = None

    def recipient(self, kind: RecipientKind) -> RecipientShare:
        for share in self.recipients:
            if share.kind is kind:
                return share
        raise KeyError(kind)

    @property
    def recipients_total(self) -> Decimal:
        return sum((r.amount for r in self.recipients), Decimal("0"))

    @property
    def is_fully_settled(self) -> bool:
        """Every applicable recipient has a confirmed transfer."""
        return all(
            r.status is RecipientStatus.SETTLED
            for r in self.recipients
            if r.is_applicable
        )
