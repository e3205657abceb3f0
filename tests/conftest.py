"""Test configuration and fixtures."""

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from deploy_ledger.db.base import Base
from deploy_ledger.ledger import LedgerStore
from deploy_ledger.plan import Change, Dependency, Identity, Plan, Tag

PLANNED_AT = datetime(2026, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


def content_id(*parts: str) -> str:
    """Stand-in for the content hash a plan would compute."""
    return hashlib.sha1(" ".join(parts).encode("utf-8")).hexdigest()


@pytest.fixture
def engine():
    """A fresh in-memory database with the ledger schema."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def planned_at() -> datetime:
    """Planner timestamp given to every change and tag built by the factories."""
    return PLANNED_AT


@pytest.fixture
def plan() -> Plan:
    return Plan(project="flipr", uri="https://github.com/example/flipr/")


@pytest.fixture
def operator() -> Identity:
    return Identity(name="Marge N. O'Vera", email="marge@example.com")


@pytest.fixture
def store(db_session, plan, operator) -> LedgerStore:
    """A ledger with the ``flipr`` project registered."""
    store = LedgerStore(db_session, plan, operator)
    store.register_project()
    return store


@pytest.fixture
def make_tag() -> Callable[..., Tag]:
    def _make_tag(name: str, note: str = "", offset_minutes: int = 0) -> Tag:
        return Tag(
            id=content_id("tag", name),
            name=name,
            note=note,
            timestamp=PLANNED_AT + timedelta(minutes=offset_minutes),
            planner_name="Barack Obama",
            planner_email="potus@example.com",
        )

    return _make_tag


@pytest.fixture
def make_change(plan, make_tag) -> Callable[..., Change]:
    """Build a change; ``requires`` takes change objects or raw dependency strings."""

    def _make_change(
        name: str,
        tags: Iterable[str] = (),
        requires: Iterable = (),
        conflicts: Iterable[str] = (),
        note: str = "",
        project: Optional[str] = None,
    ) -> Change:
        dependencies = []
        for required in requires:
            if isinstance(required, Change):
                dependencies.append(
                    Dependency(type="require", change=required.name, resolved_id=required.id)
                )
            else:
                dependencies.append(Dependency(type="require", change=required))
        for conflict in conflicts:
            dependencies.append(Dependency(type="conflict", change=conflict))

        return Change(
            id=content_id("change", project or plan.project, name),
            name=name,
            project=project or plan.project,
            note=note or f"Add {name}",
            timestamp=PLANNED_AT,
            planner_name="Barack Obama",
            planner_email="potus@example.com",
            tags=[make_tag(tag) for tag in tags],
            dependencies=dependencies,
        )

    return _make_change


@pytest.fixture
def deploy(store) -> Callable[[Change], Change]:
    """Record a deploy in its own transaction."""

    def _deploy(change: Change) -> Change:
        with store.transaction():
            store.log_deploy_change(change)
        return change

    return _deploy


@pytest.fixture
def revert(store) -> Callable[[Change], Change]:
    def _revert(change: Change) -> Change:
        with store.transaction():
            store.log_revert_change(change)
        return change

    return _revert
