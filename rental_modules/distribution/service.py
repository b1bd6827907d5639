"""
Distribution Service (``rental_modules.distribution.service``).

Responsibility
--------------
Turns a settled payment into exactly one ``PaymentDistribution``: owner,
manager and broker lines computed from the space's configuration at
calculation time.  Afterwards only recipient transfer statuses change.

Architecture position
---------------------
**Modules layer**.  Invoked by ``PaymentService.record_settlement`` (the
gateway callback) and directly by the hosting application.

Invariants enforced
-------------------
* One distribution per payment.  A second call returns the stored record
  and writes nothing; a concurrent insert losing on the UNIQUE
  ``payment_id`` constraint does the same.
* Recipient amounts add up to ``total_amount`` exactly.
* The caution breakdown is recomputed from the lease's own month counts.
* Flush only -- the caller owns the transaction.

Failure modes
-------------
* ``PaymentNotFoundError`` / ``LeaseNotFoundError`` -- missing rows.
* ``PaymentNotSettledError`` -- only settled payments are distributed.
* ``ConfigMissingError`` -- the space has no recipients configured.
* ``RecipientNotApplicableError`` -- transfer on a not_applicable line.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rental_kernel.db.types import MONEY_DECIMAL_PLACES
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import (
    ConfigMissingError,
    DistributionAlreadyExistsError,
    DistributionNotFoundError,
    LeaseNotFoundError,
    PaymentNotFoundError,
    PaymentNotSettledError,
    RecipientAlreadySettledError,
    RecipientNotApplicableError,
    ValidationError,
)
from rental_kernel.logging_config import get_logger
from rental_kernel.services.auditor_service import AuditorService
from rental_modules.distribution.calculations import (
    classify_payment,
    split_caution,
    split_rent,
)
from rental_modules.distribution.config_store import DistributionConfigStore
from rental_modules.distribution.models import (
    DistributionConfig,
    DistributionKind,
    PaymentDistribution,
    RecipientKind,
    RecipientStatus,
    SplitPlan,
)
from rental_modules.distribution.orm import (
    DistributionRecipientModel,
    PaymentDistributionModel,
)
from rental_modules.lease.calculations import breakdown_from_terms
from rental_modules.lease.models import PaymentStatus
from rental_modules.lease.orm import LeaseModel, PaymentModel

logger = get_logger("modules.distribution.service")


def _recipient_kind(recipient: RecipientKind | str) -> RecipientKind:
    if isinstance(recipient, RecipientKind):
        return recipient
    try:
        return RecipientKind(recipient)
    except ValueError:
        raise ValidationError(
            f"Unknown recipient {recipient!r}; expected one of "
            + ", ".join(k.value for k in RecipientKind)
        ) from None


class DistributionService:
    """
    Calculates and tracks payment distributions.

    Non-goals
    ---------
    * Does NOT move money -- transfers are confirmed by the caller via
      ``mark_recipient_sent``.
    * Does NOT recalculate a stored distribution after a config change.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
        config_store: DistributionConfigStore | None = None,
        decimal_places: int = MONEY_DECIMAL_PLACES,
    ):
        self._session = session
        self._decimal_places = decimal_places
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._config_store = config_store or DistributionConfigStore(
            session, self._clock, self._auditor,
        )

    # =========================================================================
    # Calculation
    # =========================================================================

    def calculate_distribution(
        self,
        payment_id: UUID,
        actor_id: UUID,
    ) -> PaymentDistribution:
        """
        Split a settled payment among owner, manager and broker.

        Idempotent per payment: a second call returns the first record.
        """
        payment = self._session.get(PaymentModel, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        lease = self._session.get(LeaseModel, payment.lease_id)
        if lease is None:
            raise LeaseNotFoundError(str(payment.lease_id))
        if payment.status != PaymentStatus.SETTLED.value:
            raise PaymentNotSettledError(str(payment_id), payment.status)

        existing = self._find_by_payment(payment_id)
        if existing is not None:
            logger.info("distribution_already_exists", extra={
                "payment_id": str(payment_id),
                "distribution_id": str(existing.id),
            })
            return existing.to_dto()

        config = self._config_store.get_config(lease.space_id)
        if config is None:
            logger.warning("distribution_config_missing", extra={
                "payment_id": str(payment_id),
                "space_id": str(lease.space_id),
            })
            raise ConfigMissingError(str(lease.space_id))

        breakdown = breakdown_from_terms(
            lease.monthly_rent,
            lease.advance_months,
            lease.deposit_months,
            lease.broker_months,
        )
        kind = classify_payment(payment.amount, breakdown.total_amount)
        if kind is DistributionKind.CAUTION:
            plan = split_caution(
                breakdown,
                config.owner_percentage,
                config.broker.is_configured,
                self._decimal_places,
            )
        else:
            plan = split_rent(
                payment.amount, config.owner_percentage, self._decimal_places,
            )

        model = self._build_model(payment, lease, config, plan, actor_id)
        try:
            self._insert(model)
        except DistributionAlreadyExistsError as exc:
            logger.info("distribution_already_exists", extra={
                "payment_id": str(payment_id),
                "distribution_id": exc.distribution_id,
            })
            return self.get_distribution(UUID(exc.distribution_id))

        dto = model.to_dto()
        self._auditor.record_distribution_calculated(
            distribution_id=dto.id,
            actor_id=actor_id,
            payment_id=payment_id,
            kind=dto.kind.value,
            total_amount=dto.total_amount,
            shares={r.kind.value: r.amount for r in dto.recipients},
        )
        logger.info("distribution_calculated", extra={
            "payment_id": str(payment_id),
            "distribution_id": str(dto.id),
            "kind": dto.kind.value,
            "total_amount": str(dto.total_amount),
            "owner_amount": str(plan.amount_for(RecipientKind.OWNER)),
            "manager_amount": str(plan.amount_for(RecipientKind.MANAGER)),
            "broker_amount": str(plan.amount_for(RecipientKind.BROKER)),
        })
        return dto

    def _insert(self, model: PaymentDistributionModel) -> None:
        """Insert in a SAVEPOINT; a concurrent winner raises DistributionAlreadyExistsError."""
        savepoint = self._session.begin_nested()
        try:
            self._session.add(model)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            winner = self._find_by_payment(model.payment_id)
            if winner is None:
                raise
            raise DistributionAlreadyExistsError(
                str(model.payment_id), str(winner.id)
            ) from None

    def _build_model(
        self,
        payment: PaymentModel,
        lease: LeaseModel,
        config: DistributionConfig,
        plan: SplitPlan,
        actor_id: UUID,
    ) -> PaymentDistributionModel:
        model = PaymentDistributionModel(
            payment_id=payment.id,
            lease_id=lease.id,
            space_id=lease.space_id,
            kind=plan.kind.value,
            total_amount=plan.total_amount,
            caution_detail=(
                plan.caution_detail.to_dict() if plan.caution_detail else None
            ),
            created_by_id=actor_id,
        )
        for share in plan.shares:
            account = config.account(share.kind)
            model.recipients.append(
                DistributionRecipientModel(
                    kind=share.kind.value,
                    name=account.name,
                    phone=account.phone,
                    channel=account.channel,
                    percentage=config.percentage_for(share.kind),
                    amount=share.amount,
                    status=share.status.value,
                    created_by_id=actor_id,
                )
            )
        return model

    # =========================================================================
    # Recipient transfers
    # =========================================================================

    def mark_recipient_sent(
        self,
        distribution_id: UUID,
        recipient: RecipientKind | str,
        external_transfer_id: str,
        actor_id: UUID,
    ) -> PaymentDistribution:
        """
        Confirm the transfer to one recipient.

        Re-marking with the same transfer id is a no-op.  A failed line
        may be re-sent.

        Raises:
            RecipientNotApplicableError: the line receives nothing.
            RecipientAlreadySettledError: settled under another transfer id.
        """
        kind = _recipient_kind(recipient)
        model, row = self._load_recipient(distribution_id, kind)

        if row.status == RecipientStatus.SETTLED.value:
            if row.transfer_id == external_transfer_id:
                return model.to_dto()
            raise RecipientAlreadySettledError(
                str(distribution_id), kind.value, row.transfer_id,
            )

        row.status = RecipientStatus.SETTLED.value
        row.transfer_id = external_transfer_id
        row.settled_at = self._clock.now()
        row.failure_reason = None
        row.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_recipient_settled(
            distribution_id=model.id,
            actor_id=actor_id,
            recipient=kind.value,
            transfer_id=external_transfer_id,
            amount=row.amount,
        )

        dto = model.to_dto()
        logger.info("distribution_recipient_settled", extra={
            "distribution_id": str(model.id),
            "recipient": kind.value,
            "transfer_id": external_transfer_id,
            "fully_settled": dto.is_fully_settled,
        })
        return dto

    def mark_recipient_failed(
        self,
        distribution_id: UUID,
        recipient: RecipientKind | str,
        reason: str,
        actor_id: UUID,
    ) -> PaymentDistribution:
        """Record a failed transfer; the line can be re-sent later."""
        kind = _recipient_kind(recipient)
        model, row = self._load_recipient(distribution_id, kind)

        if row.status == RecipientStatus.SETTLED.value:
            raise RecipientAlreadySettledError(
                str(distribution_id), kind.value, row.transfer_id,
            )

        row.status = RecipientStatus.FAILED.value
        row.failure_reason = reason
        row.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_recipient_failed(
            distribution_id=model.id,
            actor_id=actor_id,
            recipient=kind.value,
            reason=reason,
        )
        logger.warning("distribution_recipient_failed", extra={
            "distribution_id": str(model.id),
            "recipient": kind.value,
            "reason": reason,
        })
        return model.to_dto()

    def _load_recipient(
        self,
        distribution_id: UUID,
        kind: RecipientKind,
    ) -> tuple[PaymentDistributionModel, DistributionRecipientModel]:
        model = self._session.get(PaymentDistributionModel, distribution_id)
        if model is None:
            raise DistributionNotFoundError(str(distribution_id))
        row = model.recipient(kind.value)
        if row is None or row.status == RecipientStatus.NOT_APPLICABLE.value:
            raise RecipientNotApplicableError(str(distribution_id), kind.value)
        return model, row

    # =========================================================================
    # Queries
    # =========================================================================

    def _find_by_payment(self, payment_id: UUID) -> PaymentDistributionModel | None:
        return self._session.execute(
            select(PaymentDistributionModel)
            .where(PaymentDistributionModel.payment_id == payment_id)
        ).scalar_one_or_none()

    def get_distribution(self, distribution_id: UUID) -> PaymentDistribution:
        model = self._session.get(PaymentDistributionModel, distribution_id)
        if model is None:
            raise DistributionNotFoundError(str(distribution_id))
        return model.to_dto()

    def get_distribution_for_payment(
        self,
        payment_id: UUID,
    ) -> PaymentDistribution | None:
        model = self._find_by_payment(payment_id)
        return model.to_dto() if model else None

    def list_distributions(self, space_id: UUID) -> list[PaymentDistribution]:
        """All distributions of a space, newest first."""
        rows = self._session.execute(
            select(PaymentDistributionModel)
            .where(PaymentDistributionModel.space_id == space_id)
            .order_by(
                PaymentDistributionModel.created_at.desc(),
                PaymentDistributionModel.id,
            )
        ).scalars().all()
        return [row.to_dto() for row in rows]
