"""
Ledger Store.

Records which changes are deployed to a target database and keeps the audit
trail of every deploy, revert and fail. The ``changes``, ``tags`` and
``dependencies`` tables mirror what is deployed right now; ``events`` is never
updated or deleted.

Run deploys and reverts inside ``begin_work()``/``finish_work()`` or the
``transaction()`` context manager so each one is all-or-nothing; writers then
only flush. Outside a unit of work every writer commits its own rows, which is
how a fail is recorded after the deploy transaction has been rolled back.

Usage:
    store = LedgerStore(session, Plan(project="flipr"), Identity(name="Marge"))
    store.register_project()
    with store.transaction():
        store.log_deploy_change(change)
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional

import structlog
from sqlalchemy import (
    DateTime,
    delete,
    exists,
    inspect,
    insert,
    literal,
    select,
)
from sqlalchemy.orm import Session, aliased

from ..db.models import (
    ChangeModel,
    DependencyModel,
    LedgerEventModel,
    ProjectModel,
    TagModel,
)
from ..dialects import Dialect, dialect_for
from ..errors import LedgerError, RegistrationConflict
from ..plan import Change, Identity, Plan
from .results import Row, RowStream
from .search import EventSearch, build_search_query, describe

logger = structlog.get_logger()

_IN_WORK = "deploy_ledger.in_work"


def _join_tags(change: Change) -> str:
    return ",".join(tag.format_name for tag in change.tags)


def _join_requires(change: Change) -> str:
    return ",".join(dep.as_string() for dep in change.requires)


def _join_conflicts(change: Change) -> str:
    return ",".join(dep.as_string() for dep in change.conflicts)


class LedgerStore:
    """Backend-agnostic access to the deploy ledger.

    Args:
        db: Session bound to the target database
        plan: Project name and URI of the plan being deployed
        operator: Identity recorded as committer of every row written
        dialect: Backend adapter; detected from the session when omitted
    """

    def __init__(
        self,
        db: Session,
        plan: Plan,
        operator: Identity,
        dialect: Optional[Dialect] = None,
    ):
        self.db = db
        self.plan = plan
        self.operator = operator
        self.dialect = dialect or dialect_for(db)
        self.logger = logger.bind(project=plan.project)
        self._last_committed_at: Optional[datetime] = None

    # Transaction coordination

    @property
    def in_work(self) -> bool:
        """Whether a unit of work is open on this store's session.

        Kept in ``Session.info`` so every store sharing the session sees it.
        """
        return self.db.info.get(_IN_WORK, False)

    def begin_work(self) -> "LedgerStore":
        """Start the transaction for one deploy or revert.

        Anything left in the session's implicit transaction is discarded;
        writes made outside a unit of work have already committed themselves.
        """
        if self.in_work:
            raise LedgerError("A unit of work is already open on this session")
        if self.db.in_transaction():
            self.db.rollback()
        # Objects added without a flush do not open a transaction
        for obj in list(self.db.new):
            self.db.expunge(obj)
        self.db.begin()
        self.db.info[_IN_WORK] = True
        return self

    def finish_work(self) -> "LedgerStore":
        self.db.info.pop(_IN_WORK, None)
        self.db.commit()
        return self

    def rollback_work(self) -> "LedgerStore":
        self.db.info.pop(_IN_WORK, None)
        self.db.rollback()
        return self

    def _save(self) -> None:
        """Flush inside a unit of work, commit outside one."""
        if self.in_work:
            self.db.flush()
        else:
            self.db.commit()

    @contextmanager
    def transaction(self) -> Iterator["LedgerStore"]:
        """Run a unit of work; roll back and re-raise if it fails."""
        self.begin_work()
        try:
            yield self
        except BaseException:
            self.rollback_work()
            self.logger.debug("transaction_rolled_back")
            raise
        self.finish_work()

    def _now(self) -> datetime:
        """Commit timestamp, strictly increasing for this store."""
        now = datetime.now(timezone.utc)
        last = self._last_committed_at
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        self._last_committed_at = now
        return now

    def _ts(self, value: datetime) -> datetime:
        return self.dialect.timestamp_param(value)

    def _decode_timestamps(self, row: Row) -> Row:
        for key in ("committed_at", "planned_at"):
            if row.get(key) is not None:
                row[key] = self.dialect.parse_timestamp(row[key])
        return row

    # Registration

    def registered_projects(self) -> List[str]:
        """Names of all registered projects, sorted."""
        return list(
            self.db.scalars(select(ProjectModel.project).order_by(ProjectModel.project))
        )

    def register_project(self) -> "LedgerStore":
        """Register the plan's project, or verify an existing registration."""
        project, uri = self.plan.project, self.plan.uri

        registered = self.db.query(ProjectModel).filter(ProjectModel.project == project).first()

        if registered is not None:
            reg_uri = registered.uri
            if uri is not None and reg_uri is None:
                raise RegistrationConflict(
                    f'Cannot register "{project}" with URI {uri}: '
                    "already exists with NULL URI",
                    project=project,
                    uri=uri,
                )
            if uri is None and reg_uri is not None:
                raise RegistrationConflict(
                    f'Cannot register "{project}" without URI: '
                    f"already exists with URI {reg_uri}",
                    project=project,
                    registered_uri=reg_uri,
                )
            if uri != reg_uri:
                raise RegistrationConflict(
                    f'Cannot register "{project}" with URI {uri}: '
                    f"already exists with URI {reg_uri}",
                    project=project,
                    uri=uri,
                    registered_uri=reg_uri,
                )
            return self

        if uri is not None:
            reg_proj = self.db.scalar(
                select(ProjectModel.project).where(ProjectModel.uri == uri)
            )
            if reg_proj is not None:
                raise RegistrationConflict(
                    f'Cannot register "{project}" with URI {uri}: '
                    f'project "{reg_proj}" already using that URI',
                    project=project,
                    uri=uri,
                    registered_project=reg_proj,
                )

        self.db.add(
            ProjectModel(
                project=project,
                uri=uri,
                created_at=self._ts(self._now()),
                creator_name=self.operator.name,
                creator_email=self.operator.email,
            )
        )
        self._save()
        self.logger.info("project_registered", uri=uri)
        return self

    # Deploy, revert, fail

    def log_deploy_change(self, change: Change) -> "LedgerStore":
        """Record a deployed change with its dependencies and tags."""
        user, email = self.operator.name, self.operator.email

        self.db.add(
            ChangeModel(
                change_id=change.id,
                change=change.format_name,
                project=change.project,
                note=change.note,
                committed_at=self._ts(self._now()),
                committer_name=user,
                committer_email=email,
                planned_at=self._ts(change.timestamp),
                planner_name=change.planner_name,
                planner_email=change.planner_email,
            )
        )
        self.db.flush()

        if change.dependencies:
            self.db.execute(
                insert(DependencyModel),
                [
                    {
                        "change_id": change.id,
                        "type": dep.type,
                        "dependency": dep.as_string(),
                        "dependency_id": dep.resolved_id,
                    }
                    for dep in change.dependencies
                ],
            )

        if change.tags:
            self.db.execute(
                insert(TagModel),
                [
                    {
                        "tag_id": tag.id,
                        "tag": tag.format_name,
                        "project": change.project,
                        "change_id": change.id,
                        "note": tag.note,
                        "committed_at": self._ts(self._now()),
                        "committer_name": user,
                        "committer_email": email,
                        "planned_at": self._ts(tag.timestamp),
                        "planner_name": tag.planner_name,
                        "planner_email": tag.planner_email,
                    }
                    for tag in change.tags
                ],
            )

        self._log_event("deploy", change)
        self.logger.info("change_deployed", change_id=change.id, change=change.name)
        return self

    def log_fail_change(self, change: Change) -> "LedgerStore":
        """Record a failed deploy. Only the event log is touched."""
        self._log_event("fail", change)
        self.logger.warning("change_failed", change_id=change.id, change=change.name)
        return self

    def log_revert_change(self, change: Change) -> "LedgerStore":
        """Remove a change from the deployed tables and record the revert."""
        cid = change.id

        # Capture what is about to be removed for the revert event
        del_tags = ",".join(
            self.db.scalars(
                select(TagModel.tag)
                .where(TagModel.change_id == cid)
                .order_by(TagModel.committed_at)
            )
        )
        self.db.execute(delete(TagModel).where(TagModel.change_id == cid))

        def dependencies_of(dep_type: str, planned: List[str]) -> str:
            recorded = self.db.scalars(
                select(DependencyModel.dependency).where(
                    DependencyModel.change_id == cid,
                    DependencyModel.type == dep_type,
                )
            )
            # Plan order, as in the deploy event; unplanned ones last, by text
            rank = {dep: i for i, dep in enumerate(planned)}
            return ",".join(
                sorted(recorded, key=lambda dep: (rank.get(dep, len(rank)), dep))
            )

        requires = dependencies_of(
            "require", [dep.as_string() for dep in change.requires]
        )
        conflicts = dependencies_of(
            "conflict", [dep.as_string() for dep in change.conflicts]
        )
        self.db.execute(delete(DependencyModel).where(DependencyModel.change_id == cid))

        self.db.execute(delete(ChangeModel).where(ChangeModel.change_id == cid))

        self._log_event(
            "revert",
            change,
            tags=del_tags,
            requires=requires,
            conflicts=conflicts,
        )
        self.logger.info("change_reverted", change_id=cid, change=change.name)
        return self

    def _log_event(
        self,
        event: str,
        change: Change,
        tags: Optional[str] = None,
        requires: Optional[str] = None,
        conflicts: Optional[str] = None,
    ) -> None:
        self.db.add(
            LedgerEventModel(
                event=event,
                change_id=change.id,
                change=change.name,
                project=change.project,
                note=change.note,
                tags=_join_tags(change) if tags is None else tags,
                requires=_join_requires(change) if requires is None else requires,
                conflicts=_join_conflicts(change) if conflicts is None else conflicts,
                committed_at=self._ts(self._now()),
                committer_name=self.operator.name,
                committer_email=self.operator.email,
                planned_at=self._ts(change.timestamp),
                planner_name=change.planner_name,
                planner_email=change.planner_email,
            )
        )
        self._save()

    def log_new_tags(self, change: Change) -> "LedgerStore":
        """Add tags that a deployed change gained since it was deployed.

        Each tag is inserted only if its ``tag_id`` is not present yet.
        """
        if not change.tags:
            return self

        columns = [
            "tag_id",
            "tag",
            "project",
            "change_id",
            "note",
            "committed_at",
            "committer_name",
            "committer_email",
            "planned_at",
            "planner_name",
            "planner_email",
        ]
        stamp = DateTime(timezone=True)
        existing = aliased(TagModel)

        inserted = 0
        for tag in change.tags:
            values = select(
                literal(tag.id),
                literal(tag.format_name),
                literal(change.project),
                literal(change.id),
                literal(tag.note),
                literal(self._ts(self._now()), stamp),
                literal(self.operator.name),
                literal(self.operator.email),
                literal(self._ts(tag.timestamp), stamp),
                literal(tag.planner_name),
                literal(tag.planner_email),
            ).where(~exists().where(existing.tag_id == tag.id))

            result = self.db.execute(
                insert(TagModel.__table__).from_select(columns, values)
            )
            inserted += result.rowcount or 0

        self._save()
        self.logger.info("tags_logged", change_id=change.id, inserted=inserted)
        return self

    # State queries

    def _cid(self, descending: bool, offset: Optional[int], project: Optional[str]) -> Optional[str]:
        if not inspect(self.db.connection()).has_table(ChangeModel.__tablename__):
            # Nothing has ever been deployed to this database
            return None

        order = ChangeModel.committed_at.desc() if descending else ChangeModel.committed_at.asc()
        return self.db.scalar(
            select(ChangeModel.change_id)
            .where(ChangeModel.project == (project or self.plan.project))
            .order_by(order)
            .limit(1)
            .offset(offset or 0)
        )

    def earliest_change_id(self, project: Optional[str] = None, offset: Optional[int] = 0) -> Optional[str]:
        """Id of the change ``offset`` places after the first deployed one."""
        return self._cid(False, offset, project)

    def latest_change_id(self, project: Optional[str] = None, offset: Optional[int] = 0) -> Optional[str]:
        """Id of the change ``offset`` places before the last deployed one."""
        return self._cid(True, offset, project)

    def current_state(self, project: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """The most recently deployed change, with its tags, or ``None``."""
        ts = self.dialect.timestamp_expression
        row = self.db.execute(
            select(
                ChangeModel.change_id,
                ChangeModel.change,
                ChangeModel.project,
                ChangeModel.note,
                ChangeModel.committer_name,
                ChangeModel.committer_email,
                ts(ChangeModel.committed_at).label("committed_at"),
                ChangeModel.planner_name,
                ChangeModel.planner_email,
                ts(ChangeModel.planned_at).label("planned_at"),
            )
            .where(ChangeModel.project == (project or self.plan.project))
            .order_by(ChangeModel.committed_at.desc())
            .limit(1)
        ).mappings().first()

        if row is None:
            return None

        state = self._decode_timestamps(dict(row))
        state["tags"] = list(
            self.db.scalars(
                select(TagModel.tag)
                .where(TagModel.change_id == state["change_id"])
                .order_by(TagModel.committed_at)
            )
        )
        return state

    def current_changes(self, project: Optional[str] = None) -> RowStream:
        """Stream deployed changes, newest first."""
        ts = self.dialect.timestamp_expression
        result = self.db.execute(
            select(
                ChangeModel.change_id,
                ChangeModel.change,
                ChangeModel.committer_name,
                ChangeModel.committer_email,
                ts(ChangeModel.committed_at).label("committed_at"),
                ChangeModel.planner_name,
                ChangeModel.planner_email,
                ts(ChangeModel.planned_at).label("planned_at"),
            )
            .where(ChangeModel.project == (project or self.plan.project))
            .order_by(ChangeModel.committed_at.desc())
        )
        return RowStream(result, self._decode_timestamps)

    def current_tags(self, project: Optional[str] = None) -> RowStream:
        """Stream tags on deployed changes, newest first."""
        ts = self.dialect.timestamp_expression
        result = self.db.execute(
            select(
                TagModel.tag_id,
                TagModel.tag,
                TagModel.committer_name,
                TagModel.committer_email,
                ts(TagModel.committed_at).label("committed_at"),
                TagModel.planner_name,
                TagModel.planner_email,
                ts(TagModel.planned_at).label("planned_at"),
            )
            .where(TagModel.project == (project or self.plan.project))
            .order_by(TagModel.committed_at.desc())
        )
        return RowStream(result, self._decode_timestamps)

    def search_events(self, **options: Any) -> RowStream:
        """Stream events matching the given filters.

        Args:
            direction: "ASC" or "DESC" (default), matched by prefix
            committer: Regex on the committer name
            planner: Regex on the planner name
            change: Regex on the change name
            project: Regex on the project name
            event: Event kinds to include ("deploy", "revert", "fail")
            limit: Maximum number of events
            offset: Number of events to skip

        Raises:
            InvalidArgument: For unknown options or invalid values
        """
        search = EventSearch.from_options(**options)
        self.logger.debug("events_searched", options=describe(search))
        result = self.db.execute(build_search_query(search, self.dialect))
        return RowStream(result, self._decode_timestamps)

    # Dependency and naming queries

    def is_deployed_change(self, change_id: str) -> bool:
        return bool(
            self.db.scalar(select(exists().where(ChangeModel.change_id == change_id)))
        )

    def are_deployed_changes(self, *change_ids: str) -> List[str]:
        """The subset of ``change_ids`` that are deployed, in no set order."""
        if not change_ids:
            return []
        return list(
            self.db.scalars(
                select(ChangeModel.change_id).where(ChangeModel.change_id.in_(change_ids))
            )
        )

    def _asof_tag(self, target):
        """First tag at or after ``target``'s commit in its project."""
        later = aliased(ChangeModel)
        return (
            select(TagModel.tag)
            .select_from(later)
            .join(TagModel, later.change_id == TagModel.change_id)
            .where(
                later.project == target.project,
                later.committed_at >= target.committed_at,
            )
            .order_by(later.committed_at, TagModel.committed_at)
            .limit(1)
            .correlate(target)
            .scalar_subquery()
        )

    def changes_requiring_change(self, change: Change) -> List[Dict[str, Any]]:
        """Deployed changes that require ``change``.

        Each entry carries the nearest tag at or after the requiring change,
        as ``asof_tag``, for display as ``change@tag``.
        """
        rows = self.db.execute(
            select(
                ChangeModel.change_id,
                ChangeModel.project,
                ChangeModel.change,
                self._asof_tag(ChangeModel).label("asof_tag"),
            )
            .select_from(DependencyModel)
            .join(ChangeModel, ChangeModel.change_id == DependencyModel.change_id)
            .where(
                DependencyModel.dependency_id == change.id,
                DependencyModel.type == "require",
            )
            .order_by(ChangeModel.committed_at)
        ).mappings()
        return [dict(row) for row in rows]

    def name_for_change_id(self, change_id: str) -> Optional[str]:
        """``name`` or ``name@tag`` for a deployed change, else ``None``."""
        row = self.db.execute(
            select(ChangeModel.change, self._asof_tag(ChangeModel).label("asof_tag"))
            .where(ChangeModel.change_id == change_id)
        ).first()
        if row is None:
            return None
        return row.change + (row.asof_tag or "")

