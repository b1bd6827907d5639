"""
Payment Distribution Pure Calculation Functions.

- Classify a payment as caution or rent
- Split rent between owner and manager
- Split a caution into owner/manager advance shares, the deposit held by
  the manager, and the broker fee
- Validate and normalize distribution configuration fields

The owner share is rounded (ROUND_HALF_UP, 2 places) and the manager
receives the remainder, so recipient amounts always add up exactly.
"""

from decimal import Decimal
from typing import Any, Mapping

from rental_kernel.db.types import MONEY_DECIMAL_PLACES, round_money
from rental_modules.distribution.models import (
    CautionDetail,
    DistributionKind,
    PlannedShare,
    RecipientKind,
    RecipientStatus,
    SplitPlan,
)
from rental_modules.lease.models import CautionBreakdown

HUNDRED = Decimal("100")

CONFIG_FIELDS: tuple[str, ...] = (
    "owner_name",
    "owner_phone",
    "owner_channel",
    "manager_name",
    "manager_phone",
    "manager_channel",
    "broker_name",
    "broker_phone",
    "broker_channel",
    "owner_percentage",
    "manager_percentage",
)


def classify_payment(amount: Decimal, caution_total: Decimal) -> DistributionKind:
    """A payment equal to the lease's total caution is the caution."""
    if amount == caution_total:
        return DistributionKind.CAUTION
    return DistributionKind.RENT


def owner_manager_split(
    amount: Decimal,
    owner_percentage: int,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> tuple[Decimal, Decimal]:
    """(owner, manager) with the rounding remainder on the manager side."""
    owner = round_money(amount * Decimal(owner_percentage) / HUNDRED, decimal_places)
    return owner, amount - owner


def split_rent(
    amount: Decimal,
    owner_percentage: int,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> SplitPlan:
    """Owner P%, manager the rest, broker nothing."""
    owner, manager = owner_manager_split(amount, owner_percentage, decimal_places)
    return SplitPlan(
        kind=DistributionKind.RENT,
        total_amount=amount,
        shares=(
            PlannedShare(RecipientKind.OWNER, owner, RecipientStatus.PENDING),
            PlannedShare(RecipientKind.MANAGER, manager, RecipientStatus.PENDING),
            PlannedShare(RecipientKind.BROKER, Decimal("0"), RecipientStatus.NOT_APPLICABLE),
        ),
    )


def split_caution(
    breakdown: CautionBreakdown,
    owner_percentage: int,
    broker_configured: bool,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> SplitPlan:
    """
    Split a caution payment.

    The advance is shared owner/manager by percentage.  The deposit is
    held by the manager as a guarantee.  The broker fee goes to the
    broker when one is configured; otherwise the line keeps its amount
    as ``not_applicable`` and is never folded into another share.
    """
    owner_adv, manager_adv = owner_manager_split(
        breakdown.advance_amount, owner_percentage, decimal_places,
    )
    broker_status = (
        RecipientStatus.PENDING
        if broker_configured and breakdown.broker_amount > 0
        else RecipientStatus.NOT_APPLICABLE
    )
    return SplitPlan(
        kind=DistributionKind.CAUTION,
        total_amount=breakdown.total_amount,
        shares=(
            PlannedShare(RecipientKind.OWNER, owner_adv, RecipientStatus.PENDING),
            PlannedShare(
                RecipientKind.MANAGER,
                manager_adv + breakdown.deposit_amount,
                RecipientStatus.PENDING,
            ),
            PlannedShare(RecipientKind.BROKER, breakdown.broker_amount, broker_status),
        ),
        caution_detail=CautionDetail(
            advance_amount=breakdown.advance_amount,
            deposit_amount=breakdown.deposit_amount,
            broker_amount=breakdown.broker_amount,
            owner_share_of_advance=owner_adv,
            manager_share_of_advance=manager_adv,
        ),
    )


def _is_percentage(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 100


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalize_config_fields(
    fields: Mapping[str, Any],
    existing: Mapping[str, Any] | None = None,
) -> tuple[dict[str, Any], list[str]]:
    """
    Merge ``fields`` over ``existing`` and validate the result.

    When ``manager_percentage`` is not among ``fields`` it is derived as
    ``100 - owner_percentage``.

    Returns:
        (normalized values, list of every problem found).
    """
    errors: list[str] = []

    unknown = sorted(set(fields) - set(CONFIG_FIELDS))
    for key in unknown:
        errors.append(f"unknown field {key}")

    merged: dict[str, Any] = {key: None for key in CONFIG_FIELDS}
    if existing:
        merged.update({k: v for k, v in existing.items() if k in merged})
    merged.update({k: v for k, v in fields.items() if k in merged})

    for key in CONFIG_FIELDS:
        if isinstance(merged[key], str):
            merged[key] = merged[key].strip() or None

    owner_pct = merged["owner_percentage"]
    if "manager_percentage" not in fields and _is_percentage(owner_pct):
        merged["manager_percentage"] = 100 - owner_pct
    manager_pct = merged["manager_percentage"]

    if not _is_percentage(owner_pct):
        errors.append(f"owner_percentage must be an integer from 0 to 100, got {owner_pct!r}")
    if not _is_percentage(manager_pct):
        errors.append(f"manager_percentage must be an integer from 0 to 100, got {manager_pct!r}")
    if _is_percentage(owner_pct) and _is_percentage(manager_pct) and owner_pct + manager_pct != 100:
        errors.append(
            f"owner_percentage + manager_percentage must equal 100, got "
            f"{owner_pct} + {manager_pct}"
        )

    for kind in ("owner", "manager"):
        for attr in ("name", "phone"):
            if _blank(merged[f"{kind}_{attr}"]):
                errors.append(f"{kind}_{attr} is required")

    if not _blank(merged["broker_phone"]) and _blank(merged["broker_name"]):
        errors.append("broker_name is required when broker_phone is set")

    return merged, errors
