"""
Plan-side domain objects handed to the ledger.

The ledger never parses plan files; callers build these from whatever plan
they loaded. Identifiers are content hashes computed by the caller.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator, model_validator


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _strip_tag_marker(value):
    # "@v1" and "v1" name the same tag
    if isinstance(value, str) and value.startswith("@"):
        return value[1:]
    return value


class Identity(BaseModel):
    """A person recorded as creator, committer or planner."""

    model_config = ConfigDict(frozen=True)

    name: constr(min_length=1, max_length=255)
    email: constr(max_length=255) = ""


class Plan(BaseModel):
    """The project a ledger records changes for."""

    model_config = ConfigDict(extra="forbid")

    project: constr(min_length=1, max_length=255)
    uri: Optional[constr(min_length=1, max_length=255)] = None


class Tag(BaseModel):
    """A named release point attached to a change."""

    model_config = ConfigDict(extra="forbid")

    id: constr(min_length=1, max_length=40)
    name: constr(min_length=1, max_length=254)
    note: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    planner_name: constr(min_length=1, max_length=255)
    planner_email: constr(max_length=255) = ""

    @field_validator("name", mode="before")
    @classmethod
    def strip_marker(cls, value):
        return _strip_tag_marker(value)

    @property
    def format_name(self) -> str:
        """Tag name as stored in the ledger, e.g. ``@v1.0``."""
        return f"@{self.name}"


class Dependency(BaseModel):
    """A ``require`` or ``conflict`` relationship to another change.

    At least one of ``change`` and ``tag`` must be given. ``resolved_id`` is
    the change id the dependency points at, when the caller could resolve it.
    """

    model_config = ConfigDict(extra="forbid")

    type: Literal["require", "conflict"] = "require"
    change: Optional[constr(min_length=1)] = None
    tag: Optional[constr(min_length=1)] = None
    project: Optional[constr(min_length=1)] = None
    resolved_id: Optional[constr(min_length=1, max_length=40)] = None

    @field_validator("tag", mode="before")
    @classmethod
    def strip_marker(cls, value):
        return _strip_tag_marker(value)

    @model_validator(mode="after")
    def check_target(self) -> "Dependency":
        if self.change is None and self.tag is None:
            raise ValueError("A dependency needs a change, a tag, or both")
        return self

    def as_string(self) -> str:
        """Dependency as written in a plan, without the conflict marker."""
        key = self.change or ""
        if self.tag is not None:
            key = f"{key}@{self.tag}"
        if self.project is not None:
            return f"{self.project}:{key}"
        return key

    def __str__(self) -> str:
        return self.as_string()


class Change(BaseModel):
    """A single schema change as planned."""

    model_config = ConfigDict(extra="forbid")

    id: constr(min_length=1, max_length=40)
    name: constr(min_length=1, max_length=255)
    project: constr(min_length=1, max_length=255)
    note: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    planner_name: constr(min_length=1, max_length=255)
    planner_email: constr(max_length=255) = ""
    tags: List[Tag] = Field(default_factory=list)
    dependencies: List[Dependency] = Field(default_factory=list)

    @property
    def format_name(self) -> str:
        return self.name

    @property
    def requires(self) -> List[Dependency]:
        return [dep for dep in self.dependencies if dep.type == "require"]

    @property
    def conflicts(self) -> List[Dependency]:
        return [dep for dep in self.dependencies if dep.type == "conflict"]
