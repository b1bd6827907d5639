"""
Tests for rental_modules.distribution.calculations.

Rent and caution splits, payment classification and config field
normalization.  Pure functions only.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from rental_modules.distribution.calculations import (
    classify_payment,
    normalize_config_fields,
    owner_manager_split,
    split_caution,
    split_rent,
)
from rental_modules.distribution.models import (
    DistributionKind,
    RecipientKind,
    RecipientStatus,
)
from rental_modules.lease.calculations import compute_caution

VALID_FIELDS = {
    "owner_name": "Awa Kone",
    "owner_phone": "+2250700000001",
    "manager_name": "Yao Immobilier",
    "manager_phone": "+2250500000002",
    "owner_percentage": 90,
}


class TestClassifyPayment:
    def test_caution_total_is_caution(self):
        assert classify_payment(Decimal("500000"), Decimal("500000")) is DistributionKind.CAUTION

    def test_scale_does_not_matter(self):
        assert classify_payment(Decimal("500000.00"), Decimal("500000")) is DistributionKind.CAUTION

    def test_anything_else_is_rent(self):
        assert classify_payment(Decimal("100000"), Decimal("500000")) is DistributionKind.RENT


class TestSplitRent:
    def test_ninety_ten(self):
        plan = split_rent(Decimal("50000"), 90)

        assert plan.kind is DistributionKind.RENT
        assert plan.amount_for(RecipientKind.OWNER) == Decimal("45000")
        assert plan.amount_for(RecipientKind.MANAGER) == Decimal("5000")
        assert plan.amount_for(RecipientKind.BROKER) == Decimal("0")
        assert plan.caution_detail is None

    def test_broker_line_not_applicable(self):
        plan = split_rent(Decimal("50000"), 90)
        statuses = {share.kind: share.status for share in plan.shares}
        assert statuses == {
            RecipientKind.OWNER: RecipientStatus.PENDING,
            RecipientKind.MANAGER: RecipientStatus.PENDING,
            RecipientKind.BROKER: RecipientStatus.NOT_APPLICABLE,
        }

    def test_remainder_goes_to_manager(self):
        owner, manager = owner_manager_split(Decimal("100.01"), 33)

        assert owner == Decimal("33.00")
        assert manager == Decimal("67.01")

    def test_whole_currency_rounding(self):
        owner, manager = owner_manager_split(Decimal("1001"), 50, decimal_places=0)

        assert owner == Decimal("501")
        assert manager == Decimal("500")

    @pytest.mark.parametrize("pct", [0, 100])
    def test_extreme_percentages(self, pct):
        owner, manager = owner_manager_split(Decimal("75000"), pct)
        assert owner + manager == Decimal("75000")
        assert (owner == 0) == (pct == 0)

    @given(
        amount=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000000"), places=2),
        pct=st.integers(min_value=0, max_value=100),
    )
    @settings(max_examples=300)
    def test_shares_always_sum_to_amount(self, amount, pct):
        plan = split_rent(amount, pct)
        assert sum(share.amount for share in plan.shares) == amount


class TestSplitCaution:
    def test_standard_caution_with_broker(self):
        breakdown = compute_caution(Decimal("100000"), 2, 2, 1)

        plan = split_caution(breakdown, 90, broker_configured=True)

        assert plan.kind is DistributionKind.CAUTION
        assert plan.total_amount == Decimal("500000")
        assert plan.amount_for(RecipientKind.OWNER) == Decimal("180000")
        assert plan.amount_for(RecipientKind.MANAGER) == Decimal("220000")
        assert plan.amount_for(RecipientKind.BROKER) == Decimal("100000")
        assert plan.caution_detail.owner_share_of_advance == Decimal("180000")
        assert plan.caution_detail.manager_share_of_advance == Decimal("20000")

    def test_unconfigured_broker_keeps_amount(self):
        breakdown = compute_caution(Decimal("100000"), 2, 2, 1)

        plan = split_caution(breakdown, 90, broker_configured=False)

        broker = [s for s in plan.shares if s.kind is RecipientKind.BROKER][0]
        assert broker.amount == Decimal("100000")
        assert broker.status is RecipientStatus.NOT_APPLICABLE
        # Never folded into the manager share
        assert plan.amount_for(RecipientKind.MANAGER) == Decimal("220000")

    def test_no_broker_months(self):
        breakdown = compute_caution(Decimal("100000"), 3, 1, 0)

        plan = split_caution(breakdown, 80, broker_configured=True)

        broker = [s for s in plan.shares if s.kind is RecipientKind.BROKER][0]
        assert broker.amount == Decimal("0")
        assert broker.status is RecipientStatus.NOT_APPLICABLE
        assert plan.amount_for(RecipientKind.OWNER) == Decimal("240000")
        assert plan.amount_for(RecipientKind.MANAGER) == Decimal("160000")

    def test_detail_round_trips_through_dict(self):
        breakdown = compute_caution(Decimal("100000"), 2, 2, 1)
        detail = split_caution(breakdown, 90, broker_configured=True).caution_detail

        restored = type(detail).from_dict(detail.to_dict())

        assert restored == detail

    @given(
        rent=st.decimals(min_value=Decimal("1"), max_value=Decimal("5000000"), places=2),
        pct=st.integers(min_value=0, max_value=100),
        broker=st.sampled_from([0, 1]),
        broker_configured=st.booleans(),
    )
    @settings(max_examples=200)
    def test_lines_always_sum_to_caution(self, rent, pct, broker, broker_configured):
        breakdown = compute_caution(rent, 2, 2, broker)
        plan = split_caution(breakdown, pct, broker_configured)
        assert sum(share.amount for share in plan.shares) == breakdown.total_amount


class TestNormalizeConfigFields:
    def test_manager_percentage_derived(self):
        values, errors = normalize_config_fields(VALID_FIELDS)

        assert errors == []
        assert values["manager_percentage"] == 10
        assert values["broker_phone"] is None

    def test_percentages_must_sum_to_hundred(self):
        _, errors = normalize_config_fields({**VALID_FIELDS, "manager_percentage": 20})
        assert any("must equal 100" in e for e in errors)

    @pytest.mark.parametrize("pct", [-1, 101, 90.0, "90", True, None])
    def test_owner_percentage_must_be_integer_in_range(self, pct):
        _, errors = normalize_config_fields({**VALID_FIELDS, "owner_percentage": pct})
        assert any(e.startswith("owner_percentage") for e in errors)

    def test_required_fields(self):
        _, errors = normalize_config_fields({"owner_percentage": 70, "owner_name": "  "})
        assert set(errors) == {
            "owner_name is required",
            "owner_phone is required",
            "manager_name is required",
            "manager_phone is required",
        }

    def test_broker_phone_needs_name(self):
        _, errors = normalize_config_fields({**VALID_FIELDS, "broker_phone": "+2250100000003"})
        assert errors == ["broker_name is required when broker_phone is set"]

    def test_unknown_fields_reported(self):
        _, errors = normalize_config_fields({**VALID_FIELDS, "tenant_phone": "x"})
        assert errors == ["unknown field tenant_phone"]

    def test_strings_are_stripped(self):
        values, _ = normalize_config_fields({**VALID_FIELDS, "owner_name": "  Awa Kone "})
        assert values["owner_name"] == "Awa Kone"

    def test_partial_update_over_existing(self):
        existing, _ = normalize_config_fields(VALID_FIELDS)

        values, errors = normalize_config_fields({"owner_percentage": 85}, existing)

        assert errors == []
        assert values["owner_percentage"] == 85
        assert values["manager_percentage"] == 15
        assert values["owner_phone"] == "+2250700000001"
