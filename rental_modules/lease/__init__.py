"""
Lease Payment Module (``rental_modules.lease``).

Responsibility
--------------
The tenancy side of the engine: caution computation at signature, the
lease lifecycle from caution to termination, rent invoices, collections
and their settlement.

Architecture position
---------------------
**Modules layer**.  ``service.LeaseService`` owns status changes,
``payments.PaymentService`` owns payment rows; both are imported from
their modules so that the distribution module can depend on the pure
parts of this package without an import cycle.

Invariants enforced
-------------------
* ``caution = rent * (advance + deposit + broker)`` exactly.
* One payment per (lease, period); one reminder per (lease, type, day).
* Lifecycle edges come from ``lifecycle.LEASE_LIFECYCLE_WORKFLOW`` only.
"""

from rental_modules.lease.calculations import (
    compute_caution,
    compute_first_regular_payment_date,
)
from rental_modules.lease.config import LeaseConfig
from rental_modules.lease.models import (
    CautionBreakdown,
    Lease,
    LeasePaymentStatus,
    LeaseStatus,
    NotificationType,
    Payment,
    PaymentMethod,
    PaymentStatus,
    ReminderRecord,
    ReminderType,
)

__all__ = [
    "CautionBreakdown",
    "Lease",
    "LeaseConfig",
    "LeasePaymentStatus",
    "LeaseStatus",
    "NotificationType",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "ReminderRecord",
    "ReminderType",
    "compute_caution",
    "compute_first_regular_payment_date",
]
