"""Initial entity state schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Tables added:
- capabilities, enablers, story_cards: Entity approval state
- phase_approvals: Phase-level approval per workspace
- entity_state_changes: State change audit trail
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _entity_columns() -> list:
    return [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workspace_id", sa.String(255), nullable=False),
        sa.Column("business_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(500), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("file_path", sa.String(1000), nullable=True),
        sa.Column("lifecycle_state", sa.String(50), nullable=False, server_default="draft"),
        sa.Column("workflow_stage", sa.String(50), nullable=False, server_default="intent"),
        sa.Column("stage_status", sa.String(50), nullable=False, server_default="in_progress"),
        sa.Column("approval_status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("rejection_comment", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def _entity_indexes(table: str) -> None:
    op.create_index(f"ix_{table}_workspace_id", table, ["workspace_id"])
    op.create_index(f"ix_{table}_approval_status", table, ["approval_status"])


def upgrade() -> None:
    """Create entity state, phase approval and audit tables."""

    # --- capabilities ---
    op.create_table(
        "capabilities",
        *_entity_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_capabilities"),
        sa.UniqueConstraint("workspace_id", "business_id", name="uq_capabilities_workspace_business"),
    )
    _entity_indexes("capabilities")

    # --- enablers ---
    op.create_table(
        "enablers",
        *_entity_columns(),
        sa.Column("capability_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_enablers"),
        sa.ForeignKeyConstraint(
            ["capability_id"], ["capabilities.id"], name="fk_enablers_capability_id", ondelete="RESTRICT"
        ),
        sa.UniqueConstraint("workspace_id", "business_id", name="uq_enablers_workspace_business"),
    )
    _entity_indexes("enablers")
    op.create_index("ix_enablers_capability_id", "enablers", ["capability_id"])

    # --- story_cards ---
    op.create_table(
        "story_cards",
        *_entity_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_story_cards"),
        sa.UniqueConstraint("workspace_id", "business_id", name="uq_story_cards_workspace_business"),
    )
    _entity_indexes("story_cards")

    # --- phase_approvals ---
    op.create_table(
        "phase_approvals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workspace_id", sa.String(255), nullable=False),
        sa.Column("phase", sa.String(50), nullable=False),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_phase_approvals"),
        sa.UniqueConstraint("workspace_id", "phase", name="uq_phase_approvals_workspace_phase"),
    )
    op.create_index("ix_phase_approvals_workspace_id", "phase_approvals", ["workspace_id"])

    # --- entity_state_changes ---
    op.create_table(
        "entity_state_changes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workspace_id", sa.String(255), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("business_id", sa.String(100), nullable=False),
        sa.Column("field_name", sa.String(50), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("change_reason", sa.String(500), nullable=True),
        sa.Column("changed_by", sa.String(255), nullable=True),
        sa.Column("changed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_entity_state_changes"),
    )
    op.create_index(
        "ix_entity_state_changes_entity",
        "entity_state_changes",
        ["workspace_id", "entity_type", "business_id"],
    )
    op.create_index("ix_entity_state_changes_changed_at", "entity_state_changes", ["changed_at"])


def downgrade() -> None:
    """Drop all specstate tables."""
    op.drop_table("entity_state_changes")
    op.drop_table("phase_approvals")
    op.drop_table("story_cards")
    op.drop_table("enablers")
    op.drop_table("capabilities")
