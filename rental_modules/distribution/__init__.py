"""
Payment Distribution Module (``rental_modules.distribution``).

Splits every settled caution or rent payment among the owner, the manager
and the optional broker of a management space, using the space's
percentage configuration.
"""

from rental_modules.distribution.config_store import DistributionConfigStore
from rental_modules.distribution.models import (
    CautionDetail,
    DistributionConfig,
    DistributionKind,
    PaymentDistribution,
    RecipientAccount,
    RecipientKind,
    RecipientShare,
    RecipientStatus,
)
from rental_modules.distribution.service import DistributionService

__all__ = [
    "CautionDetail",
    "DistributionConfig",
    "DistributionConfigStore",
    "DistributionKind",
    "DistributionService",
    "PaymentDistribution",
    "RecipientAccount",
    "RecipientKind",
    "RecipientShare",
    "RecipientStatus",
]
