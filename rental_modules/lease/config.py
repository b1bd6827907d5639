"""
Lease Payment Configuration Schema.

Defines the caution month rules (how many months of advance, deposit and
broker fee a lease may require) and the billing currency.
"""

from dataclasses import dataclass
from typing import Any, Self

from rental_kernel.logging_config import get_logger

logger = get_logger("modules.lease.config")


@dataclass
class LeaseConfig:
    """Configuration schema for the lease module."""

    # Allowed month counts for each part of the caution
    allowed_advance_months: tuple[int, ...] = (2, 3)
    allowed_deposit_months: tuple[int, ...] = (1, 2)
    allowed_broker_months: tuple[int, ...] = (0, 1)

    default_currency: str = "XOF"

    def __post_init__(self):
        for name in (
            "allowed_advance_months",
            "allowed_deposit_months",
            "allowed_broker_months",
        ):
            values = tuple(getattr(self, name))
            if not values:
                raise ValueError(f"{name} cannot be empty")
            if any(v < 0 for v in values):
                raise ValueError(f"{name} cannot contain negative counts")
            setattr(self, name, values)
        if any(v == 0 for v in self.allowed_advance_months):
            raise ValueError("allowed_advance_months must be positive")
        if len(self.default_currency) != 3:
            raise ValueError("default_currency must be an ISO 4217 code")

        logger.info(
            "lease_config_initialized",
            extra={
                "allowed_advance_months": list(self.allowed_advance_months),
                "allowed_deposit_months": list(self.allowed_deposit_months),
                "allowed_broker_months": list(self.allowed_broker_months),
                "default_currency": self.default_currency,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard 2-3 / 1-2 / 0-1 month rules."""
        return cls()

    @classmethod
    def from_settings(cls, settings: Any) -> Self:
        """Build from an ``EngineSettings``-shaped object."""
        return cls(
            allowed_advance_months=tuple(settings.allowed_advance_months),
            allowed_deposit_months=tuple(settings.allowed_deposit_months),
            allowed_broker_months=tuple(settings.allowed_broker_months),
            default_currency=settings.currency,
        )
