"""
Tests for dependency and naming queries.
"""

from deploy_ledger.ledger import LedgerStore
from deploy_ledger.plan import Dependency, Plan


class TestIsDeployedChange:
    def test_deployed(self, store, make_change, deploy):
        users = deploy(make_change("users"))
        assert store.is_deployed_change(users.id) is True

    def test_not_deployed(self, store, make_change):
        assert store.is_deployed_change(make_change("users").id) is False

    def test_reverted(self, store, make_change, deploy, revert):
        users = deploy(make_change("users"))
        revert(users)
        assert store.is_deployed_change(users.id) is False

    def test_failed(self, store, make_change):
        users = make_change("users")
        with store.transaction():
            store.log_fail_change(users)
        assert store.is_deployed_change(users.id) is False


class TestAreDeployedChanges:
    def test_subset(self, store, make_change, deploy):
        users = deploy(make_change("users"))
        widgets = deploy(make_change("widgets"))
        gadgets = make_change("gadgets")

        found = store.are_deployed_changes(users.id, gadgets.id, widgets.id)
        assert sorted(found) == sorted([users.id, widgets.id])

    def test_none_deployed(self, store, make_change):
        assert store.are_deployed_changes(make_change("users").id) == []

    def test_no_ids(self, store):
        assert store.are_deployed_changes() == []


class TestChangesRequiringChange:
    """Tests for changes_requiring_change()."""

    def test_no_tag_after_requiring_change(self, store, make_change, deploy):
        a = deploy(make_change("A", tags=["v1"]))
        b = deploy(make_change("B", requires=[a]))

        assert store.changes_requiring_change(a) == [
            {"change_id": b.id, "project": "flipr", "change": "B", "asof_tag": None}
        ]

    def test_asof_tag_is_first_tag_at_or_after_requirer(self, store, make_change, deploy):
        a = deploy(make_change("A", tags=["v1"]))
        b = deploy(make_change("B", requires=[a]))
        deploy(make_change("C", tags=["v2", "v3"]))

        (row,) = store.changes_requiring_change(a)
        assert row["change_id"] == b.id
        assert row["asof_tag"] == "@v2"

    def test_tag_on_requiring_change(self, store, make_change, deploy):
        a = deploy(make_change("A"))
        deploy(make_change("B", requires=[a], tags=["beta"]))

        (row,) = store.changes_requiring_change(a)
        assert row["asof_tag"] == "@beta"

    def test_several_requirers_in_deploy_order(self, store, make_change, deploy):
        a = deploy(make_change("A"))
        b = deploy(make_change("B", requires=[a]))
        c = deploy(make_change("C", requires=[a, b]))

        assert [row["change_id"] for row in store.changes_requiring_change(a)] == [b.id, c.id]
        assert [row["change_id"] for row in store.changes_requiring_change(b)] == [c.id]

    def test_conflicts_are_not_requirements(self, store, make_change, deploy):
        a = deploy(make_change("A"))
        b = make_change("B")
        b = b.model_copy(
            update={
                "dependencies": [
                    Dependency(type="conflict", change="A", resolved_id=a.id)
                ]
            }
        )
        deploy(b)

        assert store.changes_requiring_change(a) == []

    def test_unresolved_dependency_ignored(self, store, make_change, deploy):
        a = deploy(make_change("A"))
        deploy(make_change("B", requires=["A"]))

        assert store.changes_requiring_change(a) == []

    def test_reverted_requirer_dropped(self, store, make_change, deploy, revert):
        a = deploy(make_change("A"))
        b = deploy(make_change("B", requires=[a]))
        revert(b)

        assert store.changes_requiring_change(a) == []

    def test_tags_from_other_projects_ignored(self, store, db_session, operator, make_change, deploy):
        a = deploy(make_change("A"))
        deploy(make_change("B", requires=[a]))

        other = LedgerStore(db_session, Plan(project="engine"), operator).register_project()
        with other.transaction():
            other.log_deploy_change(make_change("motor", project="engine", tags=["v9"]))

        (row,) = store.changes_requiring_change(a)
        assert row["asof_tag"] is None


class TestNameForChangeId:
    """Tests for name_for_change_id()."""

    def test_tagged_change(self, store, make_change, deploy):
        a = deploy(make_change("A", tags=["v1"]))
        deploy(make_change("B", requires=[a]))

        assert store.name_for_change_id(a.id) == "A@v1"

    def test_untagged_latest_change(self, store, make_change, deploy):
        deploy(make_change("A", tags=["v1"]))
        b = deploy(make_change("B"))

        assert store.name_for_change_id(b.id) == "B"

    def test_uses_next_tag(self, store, make_change, deploy):
        a = deploy(make_change("A"))
        deploy(make_change("B", tags=["v1"]))
        deploy(make_change("C", tags=["v2"]))

        assert store.name_for_change_id(a.id) == "A@v1"

    def test_unknown_change(self, store, make_change):
        assert store.name_for_change_id(make_change("nope").id) is None
