"""
Engine settings schema (``rental_config.settings``).

Responsibility
--------------
One frozen dataclass holding every tunable of the lease payment engine:
database URL, currency and rounding, the allowed caution month counts,
the reminder days and the actor id recorded for scheduled jobs.

Invariants enforced
-------------------
* Reminder days are within 1-28 and strictly increasing.
* Month sets are non-empty; advance months are positive.
* Every instance is frozen.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from uuid import UUID

DEFAULT_SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings of the lease payment engine."""

    database_url: str = "sqlite:///rental_engine.db"
    currency: str = "XOF"
    money_decimal_places: int = 2
    allowed_advance_months: tuple[int, ...] = (2, 3)
    allowed_deposit_months: tuple[int, ...] = (1, 2)
    allowed_broker_months: tuple[int, ...] = (0, 1)
    courtesy_day: int = 5
    deadline_day: int = 10
    escalation_day: int = 11
    system_actor_id: UUID = DEFAULT_SYSTEM_ACTOR_ID
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url is required")
        if len(self.currency) != 3:
            raise ValueError(f"currency must be an ISO 4217 code, got {self.currency!r}")
        if not 0 <= self.money_decimal_places <= 9:
            raise ValueError("money_decimal_places must be between 0 and 9")

        for name in (
            "allowed_advance_months",
            "allowed_deposit_months",
            "allowed_broker_months",
        ):
            values = getattr(self, name)
            if not values:
                raise ValueError(f"{name} cannot be empty")
            if any(v < 0 for v in values):
                raise ValueError(f"{name} cannot contain negative counts")
        if 0 in self.allowed_advance_months:
            raise ValueError("allowed_advance_months must be positive")

        days = (self.courtesy_day, self.deadline_day, self.escalation_day)
        if any(d < 1 or d > 28 for d in days):
            raise ValueError(f"reminder days must be between 1 and 28, got {days}")
        if not self.courtesy_day < self.deadline_day < self.escalation_day:
            raise ValueError(
                "reminder days must satisfy courtesy_day < deadline_day "
                f"< escalation_day, got {days}"
            )

    def with_database_url(self, database_url: str) -> EngineSettings:
        return replace(self, database_url=database_url)
