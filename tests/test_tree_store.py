"""Tests for TreeStore CRUD, transactions and parent walks."""

from __future__ import annotations

import pytest

from apitree.db import MAX_TREE_DEPTH, TreeStore
from apitree.errors import ConflictError, InvalidParentError, NotFoundError
from apitree.models import APIMethod, APIStatus, ApiDefinition, Group, VersionStatus

from conftest import OTHER_PROJECT, PROJECT, insert_chain


class TestGroups:
    def test_create_root_group(self, store):
        group = store.create_group(PROJECT, "Users", description="User APIs")

        assert group.parent_id is None
        assert group.is_root
        assert group.sort_order == 0
        assert group.description == "User APIs"
        assert group.created_at is not None
        assert group.updated_at is not None

    def test_append_assigns_increasing_sort_order(self, store):
        first = store.create_group(PROJECT, "First")
        second = store.create_group(PROJECT, "Second")
        child = store.create_group(PROJECT, "Child", parent_id=first.id)

        assert first.sort_order == 0
        assert second.sort_order == 1
        # Separate sibling set starts again at 0
        assert child.sort_order == 0

    def test_missing_parent_is_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.create_group(PROJECT, "Orphan", parent_id="nope")

    def test_parent_from_other_project_is_invalid(self, store):
        foreign = store.create_group(OTHER_PROJECT, "Foreign")
        with pytest.raises(InvalidParentError):
            store.create_group(PROJECT, "Child", parent_id=foreign.id)

    def test_api_cannot_be_group_parent(self, store, tree):
        with pytest.raises(InvalidParentError):
            store.create_group(PROJECT, "Child", parent_id=tree["X"].id)

    def test_update_group_touches_updated_at(self, store, tree):
        before = tree["A"]
        after = store.update_group(before.id, name="Renamed")

        assert after.name == "Renamed"
        assert after.updated_at >= before.updated_at

    def test_update_group_rejects_structural_fields(self, store, tree):
        with pytest.raises(ValueError):
            store.update_group(tree["A"].id, parent_id=None)


class TestNodes:
    def test_get_node_resolves_both_kinds(self, store, tree):
        assert isinstance(store.get_node(tree["A"].id, PROJECT), Group)
        assert isinstance(store.get_node(tree["X"].id, PROJECT), ApiDefinition)

    def test_get_node_hides_other_projects(self, store, tree):
        with pytest.raises(NotFoundError):
            store.get_node(tree["A"].id, OTHER_PROJECT)

    def test_list_children_orders_groups_then_apis(self, store, tree):
        b = tree["B"]
        second = store.create_api(PROJECT, b.id, "Pong", "/pong", APIMethod.GET)

        children = store.list_children(b.id)

        assert [c.id for c in children] == [tree["C"].id, tree["X"].id, second.id]

    def test_list_children_ties_fall_back_to_id(self, store, tree):
        b = tree["B"]
        store.create_group(PROJECT, "zz", parent_id=b.id, group_id="zz-id")
        store.create_group(PROJECT, "aa", parent_id=b.id, group_id="aa-id")
        store.update_group("zz-id", sort_order=5)
        store.update_group("aa-id", sort_order=5)

        ids = [g.id for g in store.list_child_groups(b.id)]

        assert ids[-2:] == ["aa-id", "zz-id"]


class TestApis:
    def test_create_api_creates_initial_version(self, store, tree):
        api = tree["X"]

        assert api.status == APIStatus.DRAFT
        assert api.current_version_id is not None
        version = store.versions.get_version(api.current_version_id)
        assert version.version == "v1.0.0"
        assert version.revision == 1
        assert version.status == VersionStatus.DRAFT
        assert version.snapshot.path == "/ping"

    def test_duplicate_route_is_conflict(self, store, tree):
        with pytest.raises(ConflictError):
            store.create_api(PROJECT, tree["C"].id, "Again", "/ping", APIMethod.GET)

    def test_same_path_other_method_is_allowed(self, store, tree):
        api = store.create_api(PROJECT, tree["C"].id, "Post ping", "/ping", APIMethod.POST)
        assert api.route_key == ("/ping", "POST")

    def test_same_route_in_other_project_is_allowed(self, store, tree):
        group = store.create_group(OTHER_PROJECT, "Root")
        api = store.create_api(OTHER_PROJECT, group.id, "Ping", "/ping", APIMethod.GET)
        assert api.project_id == OTHER_PROJECT

    def test_api_owner_must_be_group(self, store, tree):
        with pytest.raises(InvalidParentError):
            store.create_api(PROJECT, tree["X"].id, "Nested", "/n", APIMethod.GET)

    def test_find_and_count(self, store, tree):
        assert store.find_api_by_route(PROJECT, "/ping", APIMethod.GET).id == tree["X"].id
        assert store.find_api_by_route(PROJECT, "/ping", APIMethod.PUT) is None
        assert store.count_apis(PROJECT) == 1
        assert store.count_apis(OTHER_PROJECT) == 0

    def test_delete_api_removes_versions(self, store, tree):
        api_id = tree["X"].id
        removed = store.delete_api(api_id)

        assert removed == 1
        assert store.get_api(api_id) is None
        assert store.versions.list_versions(api_id) == []


class TestHierarchy:
    def test_ancestors_nearest_first(self, store, tree):
        ancestors = store.ancestors(tree["C"].id)
        assert [g.id for g in ancestors] == [tree["B"].id, tree["A"].id]

    def test_ancestors_of_root_is_empty(self, store, tree):
        assert store.ancestors(tree["A"].id) == []

    def test_ancestors_detects_corrupt_cycle(self, store, tree):
        # Force a cycle behind the store's back
        store.conn.execute(
            "UPDATE api_groups SET parent_id = ? WHERE id = ?",
            [tree["C"].id, tree["A"].id],
        )
        with pytest.raises(ConflictError):
            store.ancestors(tree["C"].id)

    def test_collect_subtree_group_ids(self, store, tree):
        ids = store.collect_subtree_group_ids(tree["A"].id)
        assert ids == [tree["A"].id, tree["B"].id, tree["C"].id]

    def test_subtree_depth_bound(self, store, tree):
        rows = store.subtree_groups(PROJECT, tree["A"].id, max_depth=1)
        assert [(g.name, depth) for g, depth in rows] == [("A", 0), ("B", 1)]

    def test_subtree_terminates_on_corrupt_cycle(self, store, tree):
        store.conn.execute(
            "UPDATE api_groups SET parent_id = ? WHERE id = ?",
            [tree["C"].id, tree["A"].id],
        )
        rows = store.subtree_groups(PROJECT, tree["A"].id, max_depth=5)
        assert {g.name for g, _ in rows} == {"A", "B", "C"}
        with pytest.raises(ConflictError):
            store.subtree_groups(PROJECT, tree["A"].id)

    def test_deepest_level_accepts_no_children(self, store, conn):
        ids = insert_chain(conn, MAX_TREE_DEPTH)

        leaf = store.create_group(PROJECT, "Leaf", parent_id=ids[-2])
        with pytest.raises(InvalidParentError):
            store.create_group(PROJECT, "TooDeep", parent_id=ids[-1])

        assert len(store.ancestors(leaf.id)) == MAX_TREE_DEPTH - 1
        assert store.find_group_by_name(PROJECT, "TooDeep") is None

    def test_chain_past_the_bound_is_reported(self, store, conn):
        ids = insert_chain(conn, MAX_TREE_DEPTH + 44)

        with pytest.raises(ConflictError):
            store.collect_subtree_group_ids(ids[0])
        with pytest.raises(ConflictError):
            store.subtree_groups(PROJECT)

    def test_full_depth_chain_is_collected(self, store, conn):
        ids = insert_chain(conn, MAX_TREE_DEPTH)
        assert store.collect_subtree_group_ids(ids[0]) == ids

    def test_find_group_by_name_searches_whole_project(self, store, tree):
        twin = store.create_group(PROJECT, "C")

        # The nested C sorts first: (0, id) beats the root's (2, id)
        assert store.find_group_by_name(PROJECT, "C").id == tree["C"].id
        assert store.find_child_group(PROJECT, None, "C").id == twin.id
        assert store.find_group_by_name(OTHER_PROJECT, "C") is None


class TestSearch:
    def test_wildcards_match_literally(self, store, tree):
        store.create_api(PROJECT, tree["C"].id, "Rate 100%", "/rate_limit", APIMethod.GET)
        group_ids = [tree["B"].id, tree["C"].id]

        def names(search):
            return [a.name for a in store.list_apis_in_groups(group_ids, search=search)]

        assert names("%") == ["Rate 100%"]
        assert names("_") == ["Rate 100%"]
        assert names("e_l") == ["Rate 100%"]
        assert names("ping") == ["Ping"]
        assert names("\\") == []


class TestTransactions:
    def test_error_rolls_back_everything(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.create_group(PROJECT, "Temp")
                raise RuntimeError("boom")

        assert store.list_root_groups(PROJECT) == []

    def test_nested_transactions_commit_once(self, store):
        with store.transaction():
            with store.transaction():
                store.create_group(PROJECT, "Inner")
            store.create_group(PROJECT, "Outer")

        assert [g.name for g in store.list_root_groups(PROJECT)] == ["Inner", "Outer"]

    def test_inner_failure_aborts_outer(self, store, tree):
        with pytest.raises(ConflictError):
            with store.transaction():
                store.create_group(PROJECT, "Kept?")
                store.create_api(PROJECT, tree["C"].id, "Dup", "/ping", APIMethod.GET)

        assert store.find_child_group(PROJECT, None, "Kept?") is None

    def test_separate_cursors_see_committed_writes(self, conn):
        writer = TreeStore(conn.cursor())
        reader = TreeStore(conn.cursor())

        group = writer.create_group(PROJECT, "Shared")

        assert reader.get_group(group.id).name == "Shared"
