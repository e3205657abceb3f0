"""
Event log search.

``search_events`` accepts loose keyword options; they are validated into an
``EventSearch`` model and compiled into a single parameterized SELECT over the
``events`` table.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, conint, field_validator
from sqlalchemy import Select, and_, select

from ..db.models import LedgerEventModel
from ..dialects.base import Dialect
from ..errors import InvalidArgument

# Option name -> events column matched with the dialect's regex operator
PATTERN_COLUMNS = {
    "committer": LedgerEventModel.committer_name,
    "planner": LedgerEventModel.planner_name,
    "change": LedgerEventModel.change,
    "project": LedgerEventModel.project,
}


class EventSearch(BaseModel):
    """Validated event search options.

    ``None`` (or zero, for ``limit`` and ``offset``) means no constraint.
    """

    model_config = ConfigDict(extra="forbid")

    direction: Optional[str] = "DESC"
    committer: Optional[str] = None
    planner: Optional[str] = None
    change: Optional[str] = None
    project: Optional[str] = None
    event: Optional[List[Literal["deploy", "revert", "fail"]]] = None
    limit: Optional[conint(ge=0)] = None
    offset: Optional[conint(ge=0)] = None

    @field_validator("direction")
    @classmethod
    def normalize_direction(cls, value: Optional[str]) -> str:
        if not value:
            return "DESC"
        upper = value.upper()
        if upper.startswith("ASC"):
            return "ASC"
        if upper.startswith("DESC"):
            return "DESC"
        raise ValueError('Search direction must be either "ASC" or "DESC"')

    @classmethod
    def from_options(cls, **options: Any) -> "EventSearch":
        """Validate loose keyword options, raising ``InvalidArgument``."""
        unknown = sorted(set(options) - set(cls.model_fields))
        if unknown:
            raise InvalidArgument(
                "Invalid parameters passed to search_events(): " + ", ".join(unknown)
            )
        try:
            return cls(**options)
        except ValidationError as e:
            messages = []
            for error in e.errors():
                field = ".".join(str(part) for part in error["loc"])
                messages.append(f"{field}: {error['msg']}")
            raise InvalidArgument("; ".join(messages)) from e


def build_search_query(search: EventSearch, dialect: Dialect) -> Select:
    """Compile search options into a SELECT over the event log."""
    columns = [
        LedgerEventModel.event,
        LedgerEventModel.project,
        LedgerEventModel.change_id,
        LedgerEventModel.change,
        LedgerEventModel.note,
        LedgerEventModel.requires,
        LedgerEventModel.conflicts,
        LedgerEventModel.tags,
        LedgerEventModel.committer_name,
        LedgerEventModel.committer_email,
        dialect.timestamp_expression(LedgerEventModel.committed_at).label("committed_at"),
        LedgerEventModel.planner_name,
        LedgerEventModel.planner_email,
        dialect.timestamp_expression(LedgerEventModel.planned_at).label("planned_at"),
    ]

    wheres = []
    for option, column in PATTERN_COLUMNS.items():
        pattern = getattr(search, option)
        if pattern is not None:
            wheres.append(dialect.regex_match(column, pattern))

    # An empty event set matches nothing
    if search.event is not None:
        wheres.append(LedgerEventModel.event.in_(search.event))

    order = LedgerEventModel.committed_at.asc()
    if search.direction == "DESC":
        order = LedgerEventModel.committed_at.desc()

    query = select(*columns).order_by(order)
    if wheres:
        query = query.where(and_(*wheres))
    if search.limit:
        query = query.limit(search.limit)
    if search.offset:
        query = query.offset(search.offset)
    return query


def describe(search: EventSearch) -> Dict[str, Any]:
    """Options that constrain the search, for logging."""
    return search.model_dump(exclude_none=True, exclude_defaults=True)
