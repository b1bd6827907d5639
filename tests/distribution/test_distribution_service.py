"""
Tests for rental_modules.distribution.service.DistributionService.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from rental_kernel.exceptions import (
    ConfigMissingError,
    DistributionNotFoundError,
    PaymentNotFoundError,
    PaymentNotSettledError,
    RecipientAlreadySettledError,
    RecipientNotApplicableError,
    ValidationError,
)
from rental_kernel.models.audit_event import AuditAction
from rental_modules.distribution.models import (
    DistributionKind,
    RecipientKind,
    RecipientStatus,
)
from rental_modules.distribution.service import DistributionService
from rental_modules.lease.models import PaymentMethod


@pytest.fixture
def settled_rent(activate_lease, payment_service, actor_id):
    """A settled 50,000 rent payment for March 2024; returns (lease, payment)."""

    def _settled(**lease_kwargs):
        lease_kwargs.setdefault("monthly_rent", Decimal("50000"))
        lease = activate_lease(**lease_kwargs)
        invoice = payment_service.create_rent_invoice(lease.id, date(2024, 3, 1), actor_id)
        settled = payment_service.record_settlement(invoice.id, "TX-RENT", actor_id)
        return lease, settled.payment

    return _settled


class TestCalculateDistribution:
    def test_rent_split(self, settled_rent, configure_space, distribution_service, actor_id):
        lease, payment = settled_rent()
        configure_space(lease.space_id)

        distribution = distribution_service.calculate_distribution(payment.id, actor_id)

        assert distribution.kind is DistributionKind.RENT
        assert distribution.payment_id == payment.id
        assert distribution.lease_id == lease.id
        assert distribution.total_amount == Decimal("50000")
        owner = distribution.recipient(RecipientKind.OWNER)
        assert (owner.amount, owner.percentage, owner.name) == (Decimal("45000"), 90, "Awa Kone")
        manager = distribution.recipient(RecipientKind.MANAGER)
        assert (manager.amount, manager.percentage) == (Decimal("5000"), 10)
        assert distribution.recipient(RecipientKind.BROKER).status is RecipientStatus.NOT_APPLICABLE
        assert distribution.recipients_total == distribution.total_amount

    def test_idempotent(self, settled_rent, configure_space, distribution_service, actor_id):
        lease, payment = settled_rent()
        configure_space(lease.space_id)

        first = distribution_service.calculate_distribution(payment.id, actor_id)
        second = distribution_service.calculate_distribution(payment.id, actor_id)

        assert second == first
        assert len(distribution_service.list_distributions(lease.space_id)) == 1

    def test_concurrent_calculation_returns_the_winner(
        self, settled_rent, configure_space, distribution_service, lose_insert_race,
        actor_id,
    ):
        lease, payment = settled_rent()
        configure_space(lease.space_id)
        first = distribution_service.calculate_distribution(payment.id, actor_id)
        lose_insert_race(DistributionService, "_find_by_payment")

        second = distribution_service.calculate_distribution(payment.id, actor_id)

        assert second.id == first.id
        assert len(distribution_service.list_distributions(lease.space_id)) == 1

    def test_config_change_does_not_rewrite(
        self, settled_rent, configure_space, distribution_service, actor_id,
    ):
        lease, payment = settled_rent()
        configure_space(lease.space_id)
        first = distribution_service.calculate_distribution(payment.id, actor_id)

        configure_space(lease.space_id, owner_percentage=50)
        again = distribution_service.calculate_distribution(payment.id, actor_id)

        assert again.recipient(RecipientKind.OWNER).amount == Decimal("45000")
        assert again.id == first.id

    def test_whole_currency_places(self, settled_rent, configure_space, session, clock,
                                   auditor_service, config_store, actor_id):
        lease, payment = settled_rent(monthly_rent=Decimal("33333"))
        configure_space(lease.space_id, owner_percentage=50)
        service = DistributionService(
            session, clock=clock, auditor=auditor_service, config_store=config_store,
            decimal_places=0,
        )

        distribution = service.calculate_distribution(payment.id, actor_id)

        assert distribution.recipient(RecipientKind.OWNER).amount == Decimal("16667")
        assert distribution.recipient(RecipientKind.MANAGER).amount == Decimal("16666")

    def test_missing_config(self, settled_rent, distribution_service, actor_id):
        lease, payment = settled_rent()

        with pytest.raises(ConfigMissingError) as exc_info:
            distribution_service.calculate_distribution(payment.id, actor_id)

        assert exc_info.value.space_id == str(lease.space_id)
        assert distribution_service.get_distribution_for_payment(payment.id) is None

    def test_unsettled_payment(self, activate_lease, payment_service, distribution_service, actor_id):
        lease = activate_lease()
        invoice = payment_service.create_rent_invoice(lease.id, date(2024, 3, 1), actor_id)

        with pytest.raises(PaymentNotSettledError) as exc_info:
            distribution_service.calculate_distribution(invoice.id, actor_id)
        assert exc_info.value.status == "pending"

    def test_unknown_payment(self, distribution_service, actor_id):
        with pytest.raises(PaymentNotFoundError):
            distribution_service.calculate_distribution(uuid4(), actor_id)

    def test_calculation_is_audited(
        self, settled_rent, configure_space, distribution_service, auditor_service, actor_id,
    ):
        lease, payment = settled_rent()
        configure_space(lease.space_id)
        distribution = distribution_service.calculate_distribution(payment.id, actor_id)

        trace = auditor_service.get_trace("payment_distribution", distribution.id)
        assert trace.actions == (AuditAction.DISTRIBUTION_CALCULATED.value,)
        shares = trace.entries[0].payload["shares"]
        assert Decimal(shares["owner"]) == Decimal("45000")


class TestRecipientTransfers:
    @pytest.fixture
    def caution_distribution(self, activate_lease, configure_space, payment_service, actor_id):
        lease = activate_lease()
        configure_space(lease.space_id)
        initiation = payment_service.initiate_payment(
            lease.id, Decimal("500000"), None, PaymentMethod.MOBILE_MONEY,
            "+2250700000099", actor_id,
        )
        return initiation.settlement.distribution

    def test_mark_sent(self, caution_distribution, distribution_service, actor_id):
        updated = distribution_service.mark_recipient_sent(
            caution_distribution.id, RecipientKind.OWNER, "OM-001", actor_id,
        )

        owner = updated.recipient(RecipientKind.OWNER)
        assert owner.status is RecipientStatus.SETTLED
        assert owner.transfer_id == "OM-001"
        assert owner.settled_at is not None
        assert not updated.is_fully_settled

    def test_fully_settled_after_every_line(self, caution_distribution, distribution_service, actor_id):
        for kind, transfer in [("owner", "T1"), ("manager", "T2"), ("broker", "T3")]:
            updated = distribution_service.mark_recipient_sent(
                caution_distribution.id, kind, transfer, actor_id,
            )
        assert updated.is_fully_settled

    def test_same_transfer_id_is_a_noop(self, caution_distribution, distribution_service, auditor_service, actor_id):
        distribution_service.mark_recipient_sent(caution_distribution.id, "owner", "T1", actor_id)
        distribution_service.mark_recipient_sent(caution_distribution.id, "owner", "T1", actor_id)

        assert len(auditor_service.get_events_by_action(AuditAction.RECIPIENT_SETTLED)) == 1

    def test_different_transfer_id_rejected(self, caution_distribution, distribution_service, actor_id):
        distribution_service.mark_recipient_sent(caution_distribution.id, "owner", "T1", actor_id)

        with pytest.raises(RecipientAlreadySettledError) as exc_info:
            distribution_service.mark_recipient_sent(caution_distribution.id, "owner", "T9", actor_id)
        assert exc_info.value.transfer_id == "T1"

    def test_failed_line_can_be_resent(self, caution_distribution, distribution_service, actor_id):
        failed = distribution_service.mark_recipient_failed(
            caution_distribution.id, RecipientKind.BROKER, "wallet closed", actor_id,
        )
        assert failed.recipient(RecipientKind.BROKER).status is RecipientStatus.FAILED
        assert failed.recipient(RecipientKind.BROKER).failure_reason == "wallet closed"

        resent = distribution_service.mark_recipient_sent(
            caution_distribution.id, RecipientKind.BROKER, "WV-7", actor_id,
        )
        broker = resent.recipient(RecipientKind.BROKER)
        assert broker.status is RecipientStatus.SETTLED
        assert broker.failure_reason is None

    def test_settled_line_cannot_fail(self, caution_distribution, distribution_service, actor_id):
        distribution_service.mark_recipient_sent(caution_distribution.id, "manager", "T2", actor_id)
        with pytest.raises(RecipientAlreadySettledError):
            distribution_service.mark_recipient_failed(
                caution_distribution.id, "manager", "reversed", actor_id,
            )

    def test_not_applicable_line(self, settled_rent, configure_space, distribution_service, actor_id):
        lease, payment = settled_rent()
        configure_space(lease.space_id)
        distribution = distribution_service.calculate_distribution(payment.id, actor_id)

        with pytest.raises(RecipientNotApplicableError):
            distribution_service.mark_recipient_sent(distribution.id, "broker", "T3", actor_id)
        with pytest.raises(RecipientNotApplicableError):
            distribution_service.mark_recipient_failed(distribution.id, "broker", "x", actor_id)

    def test_unknown_recipient_kind(self, caution_distribution, distribution_service, actor_id):
        with pytest.raises(ValidationError):
            distribution_service.mark_recipient_sent(caution_distribution.id, "tenant", "T", actor_id)

    def test_unknown_distribution(self, distribution_service, actor_id):
        with pytest.raises(DistributionNotFoundError):
            distribution_service.mark_recipient_sent(uuid4(), "owner", "T", actor_id)


class TestQueries:
    def test_get_distribution_for_payment(
        self, settled_rent, configure_space, distribution_service, actor_id,
    ):
        lease, payment = settled_rent()
        configure_space(lease.space_id)
        created = distribution_service.calculate_distribution(payment.id, actor_id)

        assert distribution_service.get_distribution_for_payment(payment.id) == created
        assert distribution_service.get_distribution(created.id) == created

    def test_get_unknown(self, distribution_service):
        with pytest.raises(DistributionNotFoundError):
            distribution_service.get_distribution(uuid4())
