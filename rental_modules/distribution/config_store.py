"""
DistributionConfig Store (``rental_modules.distribution.config_store``).

Responsibility
--------------
Reads and upserts the single distribution configuration of a management
space.  An upsert looks for the space's row first and either updates it
or inserts one; the UNIQUE ``space_id`` constraint catches a concurrent
insert, which is then applied as an update.

Failure modes
-------------
* ``DistributionConfigValidationError`` -- lists every problem found;
  nothing is written.
"""

from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import DistributionConfigValidationError
from rental_kernel.logging_config import get_logger
from rental_kernel.services.auditor_service import AuditorService
from rental_modules.distribution.calculations import normalize_config_fields
from rental_modules.distribution.models import DistributionConfig
from rental_modules.distribution.orm import DistributionConfigModel

logger = get_logger("modules.distribution.config_store")


class DistributionConfigStore:
    """
    Per-space recipient configuration.

    Non-goals:
        - Does NOT commit -- the caller controls transaction boundaries.
        - Does NOT remember a "current" space; every call names one.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)

    def _find(self, space_id: UUID) -> DistributionConfigModel | None:
        return self._session.execute(
            select(DistributionConfigModel)
            .where(DistributionConfigModel.space_id == space_id)
        ).scalar_one_or_none()

    def get_config(self, space_id: UUID) -> DistributionConfig | None:
        model = self._find(space_id)
        return model.to_dto() if model else None

    def upsert_config(
        self,
        space_id: UUID,
        fields: Mapping[str, Any],
        actor_id: UUID,
    ) -> DistributionConfig:
        """
        Create or update the configuration of ``space_id``.

        ``fields`` may be partial on update; missing values keep their
        stored value.  ``manager_percentage`` defaults to
        ``100 - owner_percentage``.

        Raises:
            DistributionConfigValidationError: with every problem found.
        """
        existing = self._find(space_id)
        values, errors = normalize_config_fields(
            fields, existing.field_values() if existing else None,
        )
        if errors:
            logger.warning("distribution_config_rejected", extra={
                "space_id": str(space_id),
                "errors": errors,
            })
            raise DistributionConfigValidationError(str(space_id), tuple(errors))

        created = False
        if existing is None:
            model = DistributionConfigModel(
                space_id=space_id,
                created_by_id=actor_id,
                **values,
            )
            savepoint = self._session.begin_nested()
            try:
                self._session.add(model)
                self._session.flush()
                savepoint.commit()
                created = True
            except IntegrityError:
                # A concurrent upsert inserted the row first
                savepoint.rollback()
                model = self._find(space_id)
                if model is None:
                    raise
                self._apply(model, values, actor_id)
        else:
            model = existing
            self._apply(model, values, actor_id)

        self._auditor.record_config_upserted(
            config_id=model.id,
            actor_id=actor_id,
            space_id=space_id,
            owner_percentage=model.owner_percentage,
            manager_percentage=model.manager_percentage,
            created=created,
        )
        logger.info("distribution_config_upserted", extra={
            "space_id": str(space_id),
            "config_created": created,
            "owner_percentage": model.owner_percentage,
            "manager_percentage": model.manager_percentage,
            "broker_configured": bool(model.broker_phone),
        })
        return model.to_dto()

    def _apply(
        self,
        model: DistributionConfigModel,
        values: Mapping[str, Any],
        actor_id: UUID,
    ) -> None:
        for key, value in values.items():
            setattr(model, key, value)
        model.updated_by_id = actor_id
        self._session.flush()
