"""
SQLAlchemy models for the deploy ledger.

Five tables: ``projects``, ``changes``, ``tags``, ``dependencies`` and
``events``. The first four describe what is deployed right now; ``events`` is
the append-only history of every deploy, revert and fail.
"""

from typing import Any, Dict

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects import mysql
from sqlalchemy.sql import func

from .base import Base

# Microsecond precision on MySQL; other backends keep it by default.
Timestamp = DateTime(timezone=True).with_variant(mysql.DATETIME(fsp=6), "mysql")

event_kind_enum = Enum(
    "deploy",
    "revert",
    "fail",
    name="ledger_event_kind",
    create_constraint=True,
)

dependency_type_enum = Enum(
    "require",
    "conflict",
    name="ledger_dependency_type",
    create_constraint=True,
)


def _isoformat(value):
    return value.isoformat() if value else None


class ProjectModel(Base):
    """A registered migration project."""

    __tablename__ = "projects"

    project = Column(String(255), primary_key=True)
    uri = Column(String(255), nullable=True, unique=True)
    created_at = Column(Timestamp, nullable=False, default=func.now())
    creator_name = Column(String(255), nullable=False)
    creator_email = Column(String(255), nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "project": self.project,
            "uri": self.uri,
            "created_at": _isoformat(self.created_at),
            "creator_name": self.creator_name,
            "creator_email": self.creator_email,
        }


class ChangeModel(Base):
    """A currently deployed change."""

    __tablename__ = "changes"

    change_id = Column(String(40), primary_key=True)
    change = Column(String(255), nullable=False)
    project = Column(
        String(255),
        ForeignKey("projects.project", onupdate="CASCADE"),
        nullable=False,
    )
    note = Column(Text, nullable=False, default="")

    # Deployment time; defines deploy order within a project
    committed_at = Column(Timestamp, nullable=False)
    committer_name = Column(String(255), nullable=False)
    committer_email = Column(String(255), nullable=False)

    # Authoring time and identity from the plan
    planned_at = Column(Timestamp, nullable=False)
    planner_name = Column(String(255), nullable=False)
    planner_email = Column(String(255), nullable=False)

    __table_args__ = (
        Index("ix_changes_project_committed_at", "project", "committed_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "change_id": self.change_id,
            "change": self.change,
            "project": self.project,
            "note": self.note,
            "committed_at": _isoformat(self.committed_at),
            "committer_name": self.committer_name,
            "committer_email": self.committer_email,
            "planned_at": _isoformat(self.planned_at),
            "planner_name": self.planner_name,
            "planner_email": self.planner_email,
        }


class TagModel(Base):
    """A tag on a currently deployed change."""

    __tablename__ = "tags"

    tag_id = Column(String(40), primary_key=True)
    tag = Column(String(255), nullable=False)
    project = Column(
        String(255),
        ForeignKey("projects.project", onupdate="CASCADE"),
        nullable=False,
    )
    change_id = Column(
        String(40),
        ForeignKey("changes.change_id", onupdate="CASCADE"),
        nullable=False,
    )
    note = Column(Text, nullable=False, default="")

    committed_at = Column(Timestamp, nullable=False)
    committer_name = Column(String(255), nullable=False)
    committer_email = Column(String(255), nullable=False)

    planned_at = Column(Timestamp, nullable=False)
    planner_name = Column(String(255), nullable=False)
    planner_email = Column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("project", "tag", name="uq_tags_project_tag"),
        Index("ix_tags_change_id_committed_at", "change_id", "committed_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "tag_id": self.tag_id,
            "tag": self.tag,
            "project": self.project,
            "change_id": self.change_id,
            "note": self.note,
            "committed_at": _isoformat(self.committed_at),
            "committer_name": self.committer_name,
            "committer_email": self.committer_email,
            "planned_at": _isoformat(self.planned_at),
            "planner_name": self.planner_name,
            "planner_email": self.planner_email,
        }


class DependencyModel(Base):
    """A require/conflict dependency of a currently deployed change."""

    __tablename__ = "dependencies"

    change_id = Column(
        String(40),
        ForeignKey("changes.change_id", onupdate="CASCADE", ondelete="CASCADE"),
        primary_key=True,
    )
    type = Column(dependency_type_enum, nullable=False)
    # Dependency as written in the plan, e.g. "users" or "other:users@v1"
    dependency = Column(String(255), primary_key=True)
    # Resolved change id, when known
    dependency_id = Column(
        String(40),
        ForeignKey("changes.change_id", onupdate="CASCADE"),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_dependencies_dependency_id", "dependency_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "change_id": self.change_id,
            "type": self.type,
            "dependency": self.dependency,
            "dependency_id": self.dependency_id,
        }


class LedgerEventModel(Base):
    """Append-only audit record of a deploy, revert or fail."""

    __tablename__ = "events"

    event = Column(event_kind_enum, nullable=False)
    change_id = Column(String(40), primary_key=True)
    change = Column(String(255), nullable=False)
    project = Column(
        String(255),
        ForeignKey("projects.project", onupdate="CASCADE"),
        nullable=False,
    )
    note = Column(Text, nullable=False, default="")

    # Comma-joined snapshots taken at the time of the event
    requires = Column(Text, nullable=False, default="")
    conflicts = Column(Text, nullable=False, default="")
    tags = Column(Text, nullable=False, default="")

    committed_at = Column(Timestamp, primary_key=True)
    committer_name = Column(String(255), nullable=False)
    committer_email = Column(String(255), nullable=False)

    planned_at = Column(Timestamp, nullable=False)
    planner_name = Column(String(255), nullable=False)
    planner_email = Column(String(255), nullable=False)

    __table_args__ = (
        Index("ix_events_project_committed_at", "project", "committed_at"),
        Index("ix_events_committed_at", "committed_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "event": self.event,
            "change_id": self.change_id,
            "change": self.change,
            "project": self.project,
            "note": self.note,
            "requires": self.requires,
            "conflicts": self.conflicts,
            "tags": self.tags,
            "committed_at": _isoformat(self.committed_at),
            "committer_name": self.committer_name,
            "committer_email": self.committer_email,
            "planned_at": _isoformat(self.planned_at),
            "planner_name": self.planner_name,
            "planner_email": self.planner_email,
        }
