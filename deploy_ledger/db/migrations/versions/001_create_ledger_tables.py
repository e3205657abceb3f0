"""Create ledger tables

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates projects, changes, tags, dependencies and events.
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import mysql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp():
    return sa.DateTime(timezone=True).with_variant(mysql.DATETIME(fsp=6), "mysql")


def _identity_columns(prefix: str):
    return [
        sa.Column(f"{prefix}_name", sa.String(length=255), nullable=False),
        sa.Column(f"{prefix}_email", sa.String(length=255), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("project", sa.String(length=255), primary_key=True),
        sa.Column("uri", sa.String(length=255), nullable=True, unique=True),
        sa.Column(
            "created_at",
            _timestamp(),
            nullable=False,
            server_default=sa.func.now(),
        ),
        *_identity_columns("creator"),
    )

    op.create_table(
        "changes",
        sa.Column("change_id", sa.String(length=40), primary_key=True),
        sa.Column("change", sa.String(length=255), nullable=False),
        sa.Column(
            "project",
            sa.String(length=255),
            sa.ForeignKey("projects.project", onupdate="CASCADE"),
            nullable=False,
        ),
        sa.Column("note", sa.Text, nullable=False),
        sa.Column("committed_at", _timestamp(), nullable=False),
        *_identity_columns("committer"),
        sa.Column("planned_at", _timestamp(), nullable=False),
        *_identity_columns("planner"),
    )
    op.create_index(
        "ix_changes_project_committed_at", "changes", ["project", "committed_at"]
    )

    op.create_table(
        "tags",
        sa.Column("tag_id", sa.String(length=40), primary_key=True),
        sa.Column("tag", sa.String(length=255), nullable=False),
        sa.Column(
            "project",
            sa.String(length=255),
            sa.ForeignKey("projects.project", onupdate="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "change_id",
            sa.String(length=40),
            sa.ForeignKey("changes.change_id", onupdate="CASCADE"),
            nullable=False,
        ),
        sa.Column("note", sa.Text, nullable=False),
        sa.Column("committed_at", _timestamp(), nullable=False),
        *_identity_columns("committer"),
        sa.Column("planned_at", _timestamp(), nullable=False),
        *_identity_columns("planner"),
        sa.UniqueConstraint("project", "tag", name="uq_tags_project_tag"),
    )
    op.create_index(
        "ix_tags_change_id_committed_at", "tags", ["change_id", "committed_at"]
    )

    op.create_table(
        "dependencies",
        sa.Column(
            "change_id",
            sa.String(length=40),
            sa.ForeignKey("changes.change_id", onupdate="CASCADE", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "type",
            sa.Enum(
                "require", "conflict",
                name="ledger_dependency_type",
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column("dependency", sa.String(length=255), primary_key=True),
        sa.Column(
            "dependency_id",
            sa.String(length=40),
            sa.ForeignKey("changes.change_id", onupdate="CASCADE"),
            nullable=True,
        ),
    )
    op.create_index(
        "ix_dependencies_dependency_id", "dependencies", ["dependency_id"]
    )

    op.create_table(
        "events",
        sa.Column(
            "event",
            sa.Enum(
                "deploy", "revert", "fail",
                name="ledger_event_kind",
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column("change_id", sa.String(length=40), primary_key=True),
        sa.Column("change", sa.String(length=255), nullable=False),
        sa.Column(
            "project",
            sa.String(length=255),
            sa.ForeignKey("projects.project", onupdate="CASCADE"),
            nullable=False,
        ),
        sa.Column("note", sa.Text, nullable=False),
        sa.Column("requires", sa.Text, nullable=False),
        sa.Column("conflicts", sa.Text, nullable=False),
        sa.Column("tags", sa.Text, nullable=False),
        sa.Column("committed_at", _timestamp(), primary_key=True),
        *_identity_columns("committer"),
        sa.Column("planned_at", _timestamp(), nullable=False),
        *_identity_columns("planner"),
    )
    op.create_index(
        "ix_events_project_committed_at", "events", ["project", "committed_at"]
    )
    op.create_index("ix_events_committed_at", "events", ["committed_at"])


def downgrade() -> None:
    op.drop_index("ix_events_committed_at", table_name="events")
    op.drop_index("ix_events_project_committed_at", table_name="events")
    op.drop_table("events")

    op.drop_index("ix_dependencies_dependency_id", table_name="dependencies")
    op.drop_table("dependencies")

    op.drop_index("ix_tags_change_id_committed_at", table_name="tags")
    op.drop_table("tags")

    op.drop_index("ix_changes_project_committed_at", table_name="changes")
    op.drop_table("changes")

    op.drop_table("projects")

    # Drop PostgreSQL enum types (no-op for SQLite)
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS ledger_event_kind")
        op.execute("DROP TYPE IF EXISTS ledger_dependency_type")
