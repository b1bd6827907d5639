"""
Tests for rental_modules.distribution.config_store.DistributionConfigStore.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from rental_kernel.exceptions import DistributionConfigValidationError
from rental_kernel.models.audit_event import AuditAction
from rental_modules.distribution.config_store import DistributionConfigStore
from rental_modules.distribution.models import RecipientKind
from rental_modules.distribution.orm import DistributionConfigModel


class TestUpsertConfig:
    def test_insert(self, configure_space):
        space_id = uuid4()

        config = configure_space(space_id)

        assert config.space_id == space_id
        assert config.owner_percentage == 90
        assert config.manager_percentage == 10
        assert config.owner.name == "Awa Kone"
        assert config.manager.channel == "mtn"
        assert config.broker.is_configured

    def test_get_config(self, configure_space, config_store):
        space_id = uuid4()
        stored = configure_space(space_id)

        assert config_store.get_config(space_id) == stored
        assert config_store.get_config(uuid4()) is None

    def test_partial_update_keeps_other_fields(self, configure_space, config_store, actor_id):
        space_id = uuid4()
        original = configure_space(space_id)

        updated = config_store.upsert_config(space_id, {"owner_percentage": 75}, actor_id)

        assert updated.id == original.id
        assert (updated.owner_percentage, updated.manager_percentage) == (75, 25)
        assert updated.owner.phone == "+2250700000001"
        assert updated.broker.name == "Ibrahim Diallo"

    def test_broker_can_be_removed(self, configure_space, config_store, actor_id):
        space_id = uuid4()
        configure_space(space_id)

        updated = config_store.upsert_config(
            space_id, {"broker_name": None, "broker_phone": None, "broker_channel": None}, actor_id,
        )

        assert not updated.broker.is_configured
        assert updated.account(RecipientKind.BROKER).phone is None

    def test_one_row_per_space(self, configure_space, session):
        space_id = uuid4()
        configure_space(space_id)
        configure_space(space_id, owner_percentage=60)

        rows = session.execute(
            select(DistributionConfigModel).where(DistributionConfigModel.space_id == space_id)
        ).scalars().all()
        assert len(rows) == 1
        assert rows[0].owner_percentage == 60

    def test_upserts_are_audited(self, configure_space, auditor_service):
        space_id = uuid4()
        config = configure_space(space_id)
        configure_space(space_id, owner_percentage=80)

        trace = auditor_service.get_trace("distribution_config", config.id)
        assert trace.actions == (
            AuditAction.DISTRIBUTION_CONFIG_UPSERTED.value,
            AuditAction.DISTRIBUTION_CONFIG_UPSERTED.value,
        )
        assert [e.payload["created"] for e in trace.entries] == [True, False]


class TestValidation:
    def test_every_problem_reported(self, config_store, actor_id):
        space_id = uuid4()

        with pytest.raises(DistributionConfigValidationError) as exc_info:
            config_store.upsert_config(
                space_id,
                {"owner_percentage": 120, "owner_name": "Awa Kone", "color": "blue"},
                actor_id,
            )

        errors = exc_info.value.errors
        assert "unknown field color" in errors
        assert "owner_phone is required" in errors
        assert "manager_name is required" in errors
        assert any(e.startswith("owner_percentage") for e in errors)
        assert exc_info.value.space_id == str(space_id)

    def test_nothing_written_on_failure(self, config_store, actor_id):
        space_id = uuid4()
        with pytest.raises(DistributionConfigValidationError):
            config_store.upsert_config(space_id, {"owner_percentage": 50}, actor_id)
        assert config_store.get_config(space_id) is None

    def test_invalid_update_leaves_stored_config(self, configure_space, config_store, actor_id):
        space_id = uuid4()
        configure_space(space_id)

        with pytest.raises(DistributionConfigValidationError):
            config_store.upsert_config(
                space_id, {"owner_percentage": 70, "manager_percentage": 20}, actor_id,
            )

        assert config_store.get_config(space_id).owner_percentage == 90

    def test_rejection_is_logged(self, config_store, captured_logs, actor_id):
        with pytest.raises(DistributionConfigValidationError):
            config_store.upsert_config(uuid4(), {}, actor_id)

        rejected = [r for r in captured_logs() if r["message"] == "distribution_config_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["level"] == "WARNING"


class TestConcurrentUpsert:
    def test_insert_race_updates_winning_row(
        self, configure_space, lose_insert_race, session,
    ):
        space_id = uuid4()
        winner = configure_space(space_id)
        lose_insert_race(DistributionConfigStore, "_find")

        updated = configure_space(space_id, owner_percentage=70)

        assert updated.id == winner.id
        assert (updated.owner_percentage, updated.manager_percentage) == (70, 30)
        rows = session.execute(
            select(DistributionConfigModel).where(DistributionConfigModel.space_id == space_id)
        ).scalars().all()
        assert len(rows) == 1


class TestLogging:
    def test_upsert_is_logged(self, configure_space, captured_logs):
        space_id = uuid4()
        configure_space(space_id)
        configure_space(space_id, owner_percentage=80)

        upserted = [
            r for r in captured_logs() if r["message"] == "distribution_config_upserted"
        ]
        assert [r["config_created"] for r in upserted] == [True, False]
        assert upserted[1]["owner_percentage"] == 80
        assert upserted[0]["broker_configured"] is True
