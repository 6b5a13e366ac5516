"""Unit tests for the persistent forest operations."""

import pytest

from stubtree.core import forest as forest_ops
from stubtree.core.types import DependencyNode, SourceLocation, Strategy


def node(name, *children, strategy=Strategy.MOCK):
    return DependencyNode(name=name, strategy=strategy, children=tuple(children))


@pytest.fixture
def forest():
    """
    Root
    ├── Child
    │   ├── Leaf1
    │   └── Leaf2
    └── Sibling
    Other
    """
    child = node("Child", node("Leaf1"), node("Leaf2"))
    root = node("Root", child, node("Sibling"))
    return (root, node("Other"))


def by_name(forest, name):
    return next(n for n in forest_ops.iter_nodes(forest) if n.name == name)


class TestTraversal:
    def test_iter_nodes_is_preorder(self, forest):
        names = [n.name for n in forest_ops.iter_nodes(forest)]
        assert names == ["Root", "Child", "Leaf1", "Leaf2", "Sibling", "Other"]

    def test_find_node(self, forest):
        leaf = by_name(forest, "Leaf2")
        assert forest_ops.find_node(forest, leaf.id) is leaf
        assert forest_ops.find_node(forest, "missing") is None

    def test_contains_name(self, forest):
        assert forest_ops.contains_name(forest, "Leaf1")
        assert not forest_ops.contains_name(forest, "Nope")

    def test_ids_are_unique(self, forest):
        ids = [n.id for n in forest_ops.iter_nodes(forest)]
        assert len(ids) == len(set(ids))


class TestSetStrategy:
    def test_cascades_to_descendants(self, forest):
        child = by_name(forest, "Child")

        updated = forest_ops.set_strategy(forest, child.id, Strategy.USE_REAL)

        assert by_name(updated, "Child").strategy == Strategy.USE_REAL
        assert by_name(updated, "Leaf1").strategy == Strategy.USE_REAL
        assert by_name(updated, "Leaf2").strategy == Strategy.USE_REAL

    def test_leaves_ancestors_and_siblings_alone(self, forest):
        child = by_name(forest, "Child")

        updated = forest_ops.set_strategy(forest, child.id, Strategy.FAKE)

        assert by_name(updated, "Root").strategy == Strategy.MOCK
        assert by_name(updated, "Sibling").strategy == Strategy.MOCK
        assert by_name(updated, "Other").strategy == Strategy.MOCK

    def test_original_forest_is_untouched(self, forest):
        child = by_name(forest, "Child")

        forest_ops.set_strategy(forest, child.id, Strategy.FAKE)

        assert all(n.strategy == Strategy.MOCK for n in forest_ops.iter_nodes(forest))

    def test_unchanged_subtrees_are_shared(self, forest):
        child = by_name(forest, "Child")

        updated = forest_ops.set_strategy(forest, child.id, Strategy.FAKE)

        assert updated[1] is forest[1]
        assert by_name(updated, "Sibling") is by_name(forest, "Sibling")

    def test_ids_survive_updates(self, forest):
        child = by_name(forest, "Child")

        updated = forest_ops.set_strategy(forest, child.id, Strategy.FAKE)

        assert by_name(updated, "Child").id == child.id

    def test_unknown_id_is_noop(self, forest):
        assert forest_ops.set_strategy(forest, "missing", Strategy.FAKE) is forest


class TestRemove:
    def test_remove_nested_node_with_subtree(self, forest):
        child = by_name(forest, "Child")

        updated = forest_ops.remove(forest, child.id)

        names = [n.name for n in forest_ops.iter_nodes(updated)]
        assert names == ["Root", "Sibling", "Other"]

    def test_remove_depth_two(self, forest):
        leaf = by_name(forest, "Leaf1")

        updated = forest_ops.remove(forest, leaf.id)

        root = updated[0]
        assert root.id == forest[0].id
        assert [c.name for c in root.children] == ["Child", "Sibling"]
        assert [c.name for c in root.children[0].children] == ["Leaf2"]
        assert root.children[1] is forest[0].children[1]
        assert updated[1] is forest[1]

    def test_remove_root(self, forest):
        updated = forest_ops.remove(forest, forest[1].id)

        assert [n.name for n in updated] == ["Root"]

    def test_original_forest_is_untouched(self, forest):
        leaf = by_name(forest, "Leaf1")

        forest_ops.remove(forest, leaf.id)

        assert forest_ops.find_node(forest, leaf.id) is leaf

    def test_unknown_id_is_noop(self, forest):
        assert forest_ops.remove(forest, "missing") is forest


class TestSnapshot:
    def test_snapshot_is_json_ready(self):
        leaf = DependencyNode(
            name="Leaf",
            location=SourceLocation(file_path="a.py", start_line=3, end_line=9),
            origin_id="1.h==.Root.Leaf",
        )
        root = DependencyNode(name="Root", children=(leaf,))

        snapshot = forest_ops.forest_snapshot((root,))

        assert snapshot[0]["name"] == "Root"
        assert snapshot[0]["implementation"] == "Mock"
        child = snapshot[0]["children"][0]
        assert child["filePath"] == "a.py"
        assert child["startLine"] == 3
        assert child["nodeId"] == "1.h==.Root.Leaf"
        assert child["children"] == []
