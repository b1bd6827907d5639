"""
Payment Service (``rental_modules.lease.payments``).

Responsibility
--------------
Creates and settles the payment rows of a lease:

* monthly rent invoices (pending payments) for the invoice job;
* tenant-initiated collections through a ``PaymentGateway``;
* the gateway callback that settles a payment, returns an overdue lease
  to regular billing, and triggers the distribution;
* failed collections, which can be retried on the same row.

Architecture position
---------------------
**Modules layer**.  Composes ``LeaseService`` (status changes) and
``DistributionService`` (splits).

Invariants enforced
-------------------
* One payment row per (lease, period); retries reuse it.
* A settled payment is never settled, failed or initiated again.
* Flush only -- the caller owns the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rental_kernel.db.types import to_money
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import (
    ConfigMissingError,
    InvoiceAlreadyExistsError,
    LeaseNotFoundError,
    LeaseStateError,
    PaymentAlreadySettledError,
    PaymentInProgressError,
    PaymentNotFoundError,
    ValidationError,
)
from rental_kernel.logging_config import get_logger
from rental_kernel.ports import (
    LoggingNotificationSink,
    Notification,
    NotificationSink,
    PaymentGateway,
)
from rental_kernel.services.auditor_service import AuditorService
from rental_modules.distribution.models import PaymentDistribution
from rental_modules.distribution.service import DistributionService
from rental_modules.lease.calculations import payment_period_for
from rental_modules.lease.models import (
    LeaseStatus,
    NotificationType,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from rental_modules.lease.orm import LeaseModel, PaymentModel
from rental_modules.lease.service import LeaseService

logger = get_logger("modules.lease.payments")


class SimulatedMobileMoneyGateway:
    """
    Stand-in for a mobile-money provider.

    Returns ``SIM-<epoch millis>-<token>`` transaction ids and reports
    every collection as settled straight away.
    """

    settles_immediately = True

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def initiate(
        self,
        payment_id: UUID,
        amount: Decimal,
        payer_phone: str,
        method: str,
    ) -> str:
        millis = int(self._clock.now().timestamp() * 1000)
        transaction_id = f"SIM-{millis}-{uuid4().hex[:9].upper()}"
        logger.info("simulated_collection_started", extra={
            "payment_id": str(payment_id),
            "transaction_id": transaction_id,
            "amount": str(amount),
            "method": method,
        })
        return transaction_id


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of the gateway settlement callback."""
    payment: Payment
    lease_status: LeaseStatus
    distribution: PaymentDistribution | None = None
    already_settled: bool = False
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class PaymentInitiation:
    payment: Payment
    settlement: SettlementResult | None = None


class PaymentService:
    """
    Payment commands for invoices, collections and settlement callbacks.

    Non-goals
    ---------
    * Does NOT talk to a real provider -- the gateway port does.
    * Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifications: NotificationSink | None = None,
        gateway: PaymentGateway | None = None,
        lease_service: LeaseService | None = None,
        distribution_service: DistributionService | None = None,
        auditor: AuditorService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._notifications = notifications or LoggingNotificationSink()
        self._gateway = gateway or SimulatedMobileMoneyGateway(self._clock)
        self._auditor = auditor or AuditorService(session, self._clock)
        self._leases = lease_service or LeaseService(
            session,
            clock=self._clock,
            notifications=self._notifications,
            auditor=self._auditor,
        )
        self._distributions = distribution_service or DistributionService(
            session, clock=self._clock, auditor=self._auditor,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def _load(self, payment_id: UUID) -> PaymentModel:
        model = self._session.get(PaymentModel, payment_id)
        if model is None:
            raise PaymentNotFoundError(str(payment_id))
        return model

    def _find(self, lease_id: UUID, payment_period: date) -> PaymentModel | None:
        return self._session.execute(
            select(PaymentModel).where(
                PaymentModel.lease_id == lease_id,
                PaymentModel.payment_period == payment_period,
            )
        ).scalar_one_or_none()

    def get_payment(self, payment_id: UUID) -> Payment:
        return self._load(payment_id).to_dto()

    def find_payment(self, lease_id: UUID, payment_period: date) -> Payment | None:
        model = self._find(lease_id, payment_period)
        return model.to_dto() if model else None

    def list_payments(self, lease_id: UUID) -> list[Payment]:
        rows = self._session.execute(
            select(PaymentModel)
            .where(PaymentModel.lease_id == lease_id)
            .order_by(PaymentModel.payment_period)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def latest_period(self, lease_id: UUID) -> date | None:
        """The most recent period with a payment row: the currently-due one."""
        return self._session.execute(
            select(func.max(PaymentModel.payment_period))
            .where(PaymentModel.lease_id == lease_id)
        ).scalar_one_or_none()

    # =========================================================================
    # Invoices
    # =========================================================================

    def create_rent_invoice(
        self,
        lease_id: UUID,
        payment_period: date,
        actor_id: UUID,
    ) -> Payment:
        """
        Insert the pending rent payment for (lease, period) and tell the tenant.

        Raises:
            InvoiceAlreadyExistsError: a payment row exists for the period,
                including one inserted concurrently.
        """
        lease = self._session.get(LeaseModel, lease_id)
        if lease is None:
            raise LeaseNotFoundError(str(lease_id))
        if self._find(lease_id, payment_period) is not None:
            raise InvoiceAlreadyExistsError(str(lease_id), payment_period.isoformat())

        model = PaymentModel(
            lease_id=lease.id,
            space_id=lease.space_id,
            amount=lease.monthly_rent,
            payment_period=payment_period,
            status=PaymentStatus.PENDING.value,
            created_by_id=actor_id,
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(model)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise InvoiceAlreadyExistsError(
                str(lease_id), payment_period.isoformat()
            ) from None

        self._auditor.record_rent_invoice_generated(
            payment_id=model.id,
            actor_id=actor_id,
            lease_id=lease.id,
            amount=model.amount,
            payment_period=payment_period,
        )
        self._notifications.emit(
            Notification(
                recipient_id=lease.tenant_id,
                lease_id=lease.id,
                type=NotificationType.RENT_INVOICE,
                title="New rent invoice",
                message=(
                    f"Your rent of {model.amount:,.0f} {lease.currency} for "
                    f"{payment_period:%B %Y} is due."
                ),
                data={"payment_id": str(model.id)},
            )
        )
        logger.info("rent_invoice_generated", extra={
            "lease_id": str(lease.id),
            "payment_id": str(model.id),
            "payment_period": payment_period.isoformat(),
            "amount": str(model.amount),
        })
        return model.to_dto()

    # =========================================================================
    # Collections
    # =========================================================================

    def initiate_payment(
        self,
        lease_id: UUID,
        amount: Decimal | None,
        payment_period: date | None,
        method: PaymentMethod,
        payer_phone: str,
        actor_id: UUID,
    ) -> PaymentInitiation:
        """
        Start collecting the payment of (lease, period).

        Reuses the pending or failed row of the period, or creates one for
        ``amount`` (e.g. the caution).  ``payment_period`` defaults to the
        current month.

        Raises:
            PaymentAlreadySettledError: the period is already paid.
            PaymentInProgressError: a collection is already under way.
            ValidationError: no amount for a new row, or an amount that
                differs from the invoiced one.
        """
        lease = self._session.get(LeaseModel, lease_id)
        if lease is None:
            raise LeaseNotFoundError(str(lease_id))
        if lease.status == LeaseStatus.TERMINATED.value:
            raise LeaseStateError(str(lease_id), lease.status, "collect a payment for")

        period = payment_period or payment_period_for(self._clock.today())
        money = to_money(amount) if amount is not None else None
        if money is not None and money <= 0:
            raise ValidationError(f"Payment amount must be positive, got {money}")

        model = self._find(lease_id, period)
        if model is None:
            if money is None:
                raise ValidationError(
                    f"No invoice for lease {lease_id} period {period.isoformat()}; "
                    f"an amount is required"
                )
            model = self._insert_payment(lease, period, money, actor_id)
        elif money is not None and money != model.amount:
            raise ValidationError(
                f"Amount {money} does not match invoiced amount {model.amount}"
            )

        if model.status == PaymentStatus.SETTLED.value:
            raise PaymentAlreadySettledError(str(model.id))
        if model.status == PaymentStatus.IN_PROGRESS.value:
            raise PaymentInProgressError(str(model.id), model.transaction_id)

        transaction_id = self._gateway.initiate(
            model.id, model.amount, payer_phone, method.value,
        )
        model.status = PaymentStatus.IN_PROGRESS.value
        model.method = method.value
        model.payer_phone = payer_phone
        model.transaction_id = transaction_id
        model.failure_reason = None
        model.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_payment_initiated(
            payment_id=model.id,
            actor_id=actor_id,
            transaction_id=transaction_id,
            method=method.value,
        )
        logger.info("payment_initiated", extra={
            "lease_id": str(lease_id),
            "payment_id": str(model.id),
            "payment_period": period.isoformat(),
            "transaction_id": transaction_id,
        })

        if self._gateway.settles_immediately:
            settlement = self.record_settlement(model.id, transaction_id, actor_id)
            return PaymentInitiation(payment=settlement.payment, settlement=settlement)
        return PaymentInitiation(payment=model.to_dto())

    def _insert_payment(
        self,
        lease: LeaseModel,
        period: date,
        amount: Decimal,
        actor_id: UUID,
    ) -> PaymentModel:
        model = PaymentModel(
            lease_id=lease.id,
            space_id=lease.space_id,
            amount=amount,
            payment_period=period,
            status=PaymentStatus.PENDING.value,
            created_by_id=actor_id,
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(model)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            existing = self._find(lease.id, period)
            if existing is None:
                raise
            return existing
        return model

    # =========================================================================
    # Gateway callbacks
    # =========================================================================

    def record_settlement(
        self,
        payment_id: UUID,
        transaction_id: str | None,
        actor_id: UUID,
    ) -> SettlementResult:
        """
        Mark a payment settled, then distribute it.

        An overdue lease whose currently-due period is now paid returns to
        ``active_regular``.  A missing distribution config is reported on
        the result; the settlement itself stands.
        """
        model = self._load(payment_id)
        lease = self._session.get(LeaseModel, model.lease_id)

        if model.status == PaymentStatus.SETTLED.value:
            logger.info("payment_already_settled", extra={"payment_id": str(payment_id)})
            return SettlementResult(
                payment=model.to_dto(),
                lease_status=LeaseStatus(lease.status),
                distribution=self._distributions.get_distribution_for_payment(model.id),
                already_settled=True,
            )

        model.status = PaymentStatus.SETTLED.value
        model.settled_at = self._clock.now()
        if transaction_id:
            model.transaction_id = transaction_id
        model.failure_reason = None
        model.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_payment_settled(
            payment_id=model.id,
            actor_id=actor_id,
            transaction_id=model.transaction_id or "",
            amount=model.amount,
        )
        logger.info("payment_settled", extra={
            "payment_id": str(model.id),
            "lease_id": str(lease.id),
            "payment_period": model.payment_period.isoformat(),
            "amount": str(model.amount),
        })

        if (
            lease.status == LeaseStatus.OVERDUE.value
            and model.payment_period == self.latest_period(lease.id)
        ):
            self._leases.resume_regular(lease.id, actor_id)

        self._notifications.emit(
            Notification(
                recipient_id=lease.manager_id,
                lease_id=lease.id,
                type=NotificationType.PAYMENT_RECEIVED,
                title="Payment received",
                message=(
                    f"A payment of {model.amount:,.0f} {lease.currency} for "
                    f"{model.payment_period:%B %Y} was received."
                ),
                data={"payment_id": str(model.id)},
            )
        )

        distribution = None
        error_code = None
        error_message = None
        try:
            distribution = self._distributions.calculate_distribution(model.id, actor_id)
        except ConfigMissingError as exc:
            logger.warning("payment_distribution_deferred", extra={
                "payment_id": str(model.id),
                "space_id": exc.space_id,
            })
            error_code = exc.code
            error_message = str(exc)

        return SettlementResult(
            payment=model.to_dto(),
            lease_status=LeaseStatus(lease.status),
            distribution=distribution,
            error_code=error_code,
            error_message=error_message,
        )

    def record_failure(
        self,
        payment_id: UUID,
        reason: str,
        actor_id: UUID,
    ) -> Payment:
        """
        Mark a collection failed so it can be retried.

        Raises:
            PaymentAlreadySettledError: the payment already settled.
        """
        model = self._load(payment_id)
        if model.status == PaymentStatus.SETTLED.value:
            raise PaymentAlreadySettledError(str(payment_id))

        model.status = PaymentStatus.FAILED.value
        model.failure_reason = reason
        model.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_payment_failed(
            payment_id=model.id,
            actor_id=actor_id,
            reason=reason,
        )
        logger.warning("payment_failed", extra={
            "payment_id": str(model.id),
            "reason": reason,
        })
        return model.to_dto()
