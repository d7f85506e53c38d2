"""Unit tests for planroom.hierarchy.index and planroom.hierarchy.paths."""

import json

import pytest
from sqlalchemy import update

from planroom.db.models import NodeRow
from planroom.db.session import session_scope
from planroom.engine.errors import CorruptHierarchyError, NotFoundError
from planroom.engine.logging import init_logging, shutdown_logging
from planroom.hierarchy.index import HierarchyIndex
from planroom.hierarchy.models import NodeRecord


def _node(node_id, parent_id=None, sort_order=0, name=None, owner_id="proj-1"):
    return NodeRecord(id=node_id, owner_id=owner_id, name=name or node_id, parent_id=parent_id, sort_order=sort_order)


def _set_parent(node_id, parent_id):
    with session_scope() as session:
        session.execute(update(NodeRow).where(NodeRow.id == node_id).values(parent_id=parent_id))


def _set_parent_unchecked(engine, node_id, parent_id):
    """Write a parent id that does not exist, bypassing the foreign key."""
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        conn.execute(update(NodeRow).where(NodeRow.id == node_id).values(parent_id=parent_id))
        conn.commit()
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")


class TestHierarchyIndex:
    def test_children_sorted(self):
        index = HierarchyIndex("proj-1", [
            _node("b", sort_order=1), _node("c", sort_order=0), _node("a", sort_order=1),
        ])
        assert [n.id for n in index.children_of(None)] == ["c", "a", "b"]

    def test_chain_and_depth(self):
        index = HierarchyIndex("proj-1", [_node("r"), _node("m", "r"), _node("l", "m")])
        assert [n.id for n in index.chain_to_root("l")] == ["l", "m", "r"]
        assert [n.id for n in index.path("l")] == ["r", "m", "l"]
        assert index.depth("r") == 0
        assert index.depth("l") == 2
        assert index.has_children("m")
        assert not index.has_children("l")

    def test_chain_on_loop_terminates(self):
        index = HierarchyIndex("proj-1", [_node("x", "y"), _node("y", "x")])
        with pytest.raises(CorruptHierarchyError):
            index.chain_to_root("x")

    def test_chain_to_foreign_parent(self):
        index = HierarchyIndex("proj-1", [_node("x", "elsewhere")])
        with pytest.raises(CorruptHierarchyError) as exc_info:
            index.chain_to_root("x")
        assert exc_info.value.context["parent_id"] == "elsewhere"

    def test_chain_unknown_node(self):
        with pytest.raises(CorruptHierarchyError):
            HierarchyIndex("proj-1", []).chain_to_root("nope")

    def test_walk_depth_first(self):
        index = HierarchyIndex("proj-1", [
            _node("r1", sort_order=0),
            _node("r2", sort_order=1),
            _node("c2", "r1", sort_order=1),
            _node("c1", "r1", sort_order=0),
            _node("g1", "c1"),
        ])
        walked = [(n.id, depth) for n, depth, _ in index.walk()]
        assert walked == [("r1", 0), ("c1", 1), ("g1", 2), ("c2", 1), ("r2", 0)]

    def test_walk_reports_unreachable(self):
        index = HierarchyIndex("proj-1", [_node("r"), _node("x", "y"), _node("y", "x")])
        with pytest.raises(CorruptHierarchyError) as exc_info:
            list(index.walk())
        assert exc_info.value.context["unreachable"] == ["x", "y"]

    def test_termination_within_node_count(self):
        nodes = [_node("n0")] + [_node(f"n{i}", f"n{i - 1}") for i in range(1, 25)]
        index = HierarchyIndex("proj-1", nodes)
        for node in nodes:
            chain = index.chain_to_root(node.id)
            assert len(chain) <= len(index)
            assert chain[-1].parent_id is None

    def test_find_cycles_and_foreign(self):
        index = HierarchyIndex("proj-1", [
            _node("r"), _node("x", "y"), _node("y", "x"), _node("z", "gone"),
        ])
        assert index.find_cycles() == [["x", "y"]]
        assert index.foreign_parents() == {"z": "gone"}


class TestPathResolver:
    def test_resolve_path(self, paths, building):
        path = paths.resolve_path(building["room"].id)
        assert [n.name for n in path] == ["Building A", "Floor 2", "Room 201"]
        assert paths.display_label(building["room"].id) == "Building A > Floor 2 > Room 201"
        assert paths.depth(building["room"].id) == 2
        assert paths.depth(building["a"].id) == 0

    def test_unknown_node(self, paths, db):
        with pytest.raises(NotFoundError):
            paths.resolve_path("no-such-node")

    def test_flatten(self, store, paths, building):
        store.create("proj-1", "Floor 1", parent_id=building["a"].id, sort_order=-1)
        store.create("proj-1", "Building B")
        rows = paths.flatten("proj-1")
        assert [(r.node.name, r.depth) for r in rows] == [
            ("Building A", 0),
            ("Floor 1", 1),
            ("Floor 2", 1),
            ("Room 201", 2),
            ("Building B", 0),
        ]
        assert rows[3].display_label == "Building A > Floor 2 > Room 201"

    def test_flatten_empty_owner(self, paths, db):
        assert paths.flatten("proj-empty") == []

    def test_audit_clean(self, paths, building):
        report = paths.audit("proj-1")
        assert report.is_clean
        assert report.node_count == 3


class TestCorruptedHierarchy:
    def test_cycle(self, paths, building):
        _set_parent(building["a"].id, building["room"].id)

        with pytest.raises(CorruptHierarchyError):
            paths.resolve_path(building["room"].id)
        with pytest.raises(CorruptHierarchyError):
            paths.flatten("proj-1")

        report = paths.audit("proj-1")
        assert report.cycles == [sorted(n.id for n in building.values())]
        assert not report.is_clean

    def test_cross_owner_parent(self, store, paths, building):
        other = store.create("proj-2", "Elsewhere")
        _set_parent(building["floor"].id, other.id)

        report = paths.audit("proj-1")
        assert report.cross_owner_parents == [building["floor"].id]
        assert report.dangling_parents == []
        with pytest.raises(CorruptHierarchyError):
            paths.resolve_path(building["room"].id)

    def test_dangling_parent(self, db, paths, building):
        _set_parent_unchecked(db, building["room"].id, "ghost")

        report = paths.audit("proj-1")
        assert report.dangling_parents == [building["room"].id]
        assert report.cross_owner_parents == []

    def test_defect_logged_to_integrity_trail(self, tmp_path, paths, building):
        _set_parent(building["a"].id, building["room"].id)
        init_logging(log_dir=str(tmp_path))
        with pytest.raises(CorruptHierarchyError):
            paths.flatten("proj-1")
        shutdown_logging()

        files = list((tmp_path / "nodes" / "integrity").glob("*.jsonl"))
        entry = json.loads(files[0].read_text().splitlines()[0])
        assert entry["kind"] == "CorruptHierarchy"
        assert entry["owner_id"] == "proj-1"
