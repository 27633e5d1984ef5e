"""Test Alembic migrations: upgrade, downgrade and structural checks.

Runs against a throwaway SQLite file so no database server is needed.
"""

import os

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from specstate.core.entities import EnablerPatch, EntityKind, EntityPatch
from specstate.core.workflow.states import WorkflowStage
from specstate.db.repository import EntityStateRepository
from specstate.db.session import make_engine, make_session_factory

ALEMBIC_INI = os.path.join(os.path.dirname(__file__), "..", "..", "alembic.ini")

EXPECTED_TABLES = {
    "capabilities",
    "enablers",
    "story_cards",
    "phase_approvals",
    "entity_state_changes",
}


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'migrations.db'}"


@pytest.fixture
def alembic_cfg(database_url):
    cfg = Config(ALEMBIC_INI)
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def _tables(database_url):
    engine = create_engine(database_url)
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


@pytest.mark.integration
class TestMigrations:
    """Run upgrade → verify → downgrade → verify cycle."""

    def test_upgrade_creates_tables(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")
        assert EXPECTED_TABLES <= _tables(database_url)

    def test_downgrade_removes_tables(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")
        command.downgrade(alembic_cfg, "base")
        assert not (EXPECTED_TABLES & _tables(database_url))

    def test_unique_business_id_per_workspace(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")
        engine = create_engine(database_url)
        try:
            for table in ("capabilities", "enablers", "story_cards"):
                constraints = inspect(engine).get_unique_constraints(table)
                assert any(
                    set(c["column_names"]) == {"workspace_id", "business_id"} for c in constraints
                ), table
        finally:
            engine.dispose()

    def test_migrated_schema_serves_repository(self, alembic_cfg, database_url):
        """Test the migrated schema matches the models the repository uses."""
        command.upgrade(alembic_cfg, "head")
        engine = make_engine(database_url)
        try:
            session_factory = make_session_factory(engine)
            with session_factory() as db:
                with db.begin():
                    repo = EntityStateRepository(db, "ws-migrated")
                    cap = repo.upsert(EntityKind.CAPABILITY, EntityPatch(workspace_id="ws-migrated", business_id="CAP-1"))
                    repo.upsert(EntityKind.ENABLER, EnablerPatch(
                        workspace_id="ws-migrated", business_id="ENB-1", capability_id=cap.internal_id,
                    ))
                    repo.approve_phase("intent")
            with session_factory() as db:
                snapshot = EntityStateRepository(db, "ws-migrated").snapshot()
            assert snapshot.total == 2
            assert snapshot.phase_approval(WorkflowStage.INTENT).approved
        finally:
            engine.dispose()
