"""
Tests for event log search.

Verifies:
- option validation (unknown keys, direction, event kinds, limits)
- regex filters on committer, planner, change and project
- ordering, limit and offset
"""

import pytest

from deploy_ledger.dialects import get_dialect
from deploy_ledger.errors import InvalidArgument
from deploy_ledger.ledger import LedgerStore, build_search_query
from deploy_ledger.ledger.search import EventSearch, describe
from deploy_ledger.plan import Identity, Plan


@pytest.fixture
def history(store, db_session, make_change, deploy, revert):
    """users and widgets deployed, widgets reverted, gadgets failed.

    A second operator deploys ``motor`` in the ``engine`` project.
    """
    users = deploy(make_change("users"))
    widgets = deploy(make_change("widgets", requires=[users]))
    revert(widgets)
    with store.transaction():
        store.log_fail_change(make_change("gadgets"))

    other = LedgerStore(
        db_session,
        Plan(project="engine"),
        Identity(name="Homer Simpson", email="homer@example.com"),
    ).register_project()
    with other.transaction():
        other.log_deploy_change(make_change("motor", project="engine"))
    return store


def summary(rows):
    return [(row["event"], row["change"]) for row in rows]


class TestSearchOptions:
    """Validation of search_events() options."""

    def test_unknown_option(self, store):
        with pytest.raises(InvalidArgument) as excinfo:
            store.search_events(foo=1)
        assert str(excinfo.value) == "Invalid parameters passed to search_events(): foo"

    def test_unknown_options_sorted(self, store):
        with pytest.raises(InvalidArgument) as excinfo:
            store.search_events(zap=1, bar=2, change="users")
        assert str(excinfo.value).endswith("search_events(): bar, zap")

    def test_bad_direction(self, store):
        with pytest.raises(InvalidArgument) as excinfo:
            store.search_events(direction="sideways")
        assert 'Search direction must be either "ASC" or "DESC"' in str(excinfo.value)

    @pytest.mark.parametrize(
        "given,expected",
        [("asc", "ASC"), ("Ascending", "ASC"), ("desc", "DESC"), ("DESCENDING", "DESC"), (None, "DESC")],
    )
    def test_direction_prefix(self, given, expected):
        assert EventSearch.from_options(direction=given).direction == expected

    def test_unknown_event_kind(self, store):
        with pytest.raises(InvalidArgument) as excinfo:
            store.search_events(event=["deploy", "explode"])
        assert "event" in str(excinfo.value)

    def test_negative_limit(self, store):
        with pytest.raises(InvalidArgument) as excinfo:
            store.search_events(limit=-1)
        assert "limit" in str(excinfo.value)

    def test_invalid_argument_is_value_error(self, store):
        with pytest.raises(ValueError):
            store.search_events(direction="up")

    def test_describe_lists_constraints_only(self):
        search = EventSearch.from_options(change="^users$", limit=5)
        assert describe(search) == {"change": "^users$", "limit": 5}


class TestSearchResults:
    """Tests for search_events() against a recorded history."""

    def test_all_events_newest_first(self, history):
        assert summary(history.search_events()) == [
            ("deploy", "motor"),
            ("fail", "gadgets"),
            ("revert", "widgets"),
            ("deploy", "widgets"),
            ("deploy", "users"),
        ]

    def test_ascending(self, history):
        rows = summary(history.search_events(direction="asc"))
        assert rows[0] == ("deploy", "users")
        assert rows[-1] == ("deploy", "motor")

    def test_event_filter(self, history):
        assert summary(history.search_events(event=["revert", "fail"])) == [
            ("fail", "gadgets"),
            ("revert", "widgets"),
        ]

    def test_empty_event_filter_matches_nothing(self, history):
        assert list(history.search_events(event=[])) == []
        assert len(list(history.search_events(event=None))) == 5

    def test_deploy_then_revert(self, store, make_change, deploy, revert):
        users = deploy(make_change("users"))
        revert(users)

        assert store.current_state() is None
        assert summary(store.search_events(event=["deploy", "revert"])) == [
            ("revert", "users"),
            ("deploy", "users"),
        ]

    def test_change_regex(self, history):
        assert summary(history.search_events(change="^w")) == [
            ("revert", "widgets"),
            ("deploy", "widgets"),
        ]

    def test_project_regex(self, history):
        assert summary(history.search_events(project="^eng")) == [("deploy", "motor")]

    def test_committer_regex(self, history):
        assert summary(history.search_events(committer="Homer")) == [("deploy", "motor")]
        assert len(list(history.search_events(committer="^Marge"))) == 4

    def test_planner_regex(self, history):
        assert len(list(history.search_events(planner="Obama$"))) == 5
        assert list(history.search_events(planner="Clinton")) == []

    def test_filters_combine_with_and(self, history):
        rows = history.search_events(change="s$", event=["deploy"], committer="Marge")
        assert summary(rows) == [("deploy", "widgets"), ("deploy", "users")]

    def test_limit_and_offset(self, history):
        assert summary(history.search_events(limit=2)) == [
            ("deploy", "motor"),
            ("fail", "gadgets"),
        ]
        assert summary(history.search_events(limit=2, offset=2)) == [
            ("revert", "widgets"),
            ("deploy", "widgets"),
        ]

    def test_zero_limit_means_unlimited(self, history):
        assert len(list(history.search_events(limit=0, offset=0))) == 5

    def test_event_row_contents(self, history, operator, planned_at):
        row = next(history.search_events(event=["revert"]))
        assert row["project"] == "flipr"
        assert row["requires"] == "users"
        assert row["conflicts"] == ""
        assert row["tags"] == ""
        assert row["note"] == "Add widgets"
        assert row["committer_name"] == operator.name
        assert row["committer_email"] == operator.email
        assert row["planned_at"] == planned_at
        assert row["committed_at"].tzinfo is not None

    def test_empty_log(self, store):
        assert list(store.search_events()) == []


class TestBuildSearchQuery:
    """Tests for the compiled search statement."""

    def test_postgresql_regex_operator(self):
        from sqlalchemy.dialects import postgresql

        query = build_search_query(
            EventSearch(committer="^Marge", limit=10, offset=5), get_dialect("postgresql")
        )
        sql = str(query.compile(dialect=postgresql.dialect()))
        assert "events.committer_name ~ " in sql
        assert "to_char" in sql
        assert "LIMIT" in sql
        assert "OFFSET" in sql

    def test_mysql_regex_operator(self):
        from sqlalchemy.dialects import mysql

        query = build_search_query(EventSearch(change="users"), get_dialect("mysql"))
        sql = str(query.compile(dialect=mysql.dialect()))
        assert "REGEXP" in sql
        assert "date_format" in sql

    def test_no_filters_no_where(self):
        query = build_search_query(EventSearch(), get_dialect("sqlite"))
        assert query.whereclause is None
