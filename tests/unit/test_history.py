import pytest

from cmdflow.core.history import HistoryManager
from cmdflow.core.models import Edge, Node


def _node(node_id: str, ms: int = 1) -> Node:
    return Node(id=node_id, kind="delay", params={"ms": ms})


def test_empty_stacks_return_none():
    h = HistoryManager()
    assert h.undo([], []) is None
    assert h.redo([], []) is None
    assert not h.can_undo and not h.can_redo


def test_snapshots_are_deep_copies():
    h = HistoryManager()
    live = [_node("a", 5)]
    h.record(live, [])
    live[0].params["ms"] = 99
    snap = h.undo(live, [])
    nodes, _ = snap.restore()
    assert nodes[0].params["ms"] == 5
    # restoring twice never hands out the same objects
    again, _ = snap.restore()
    assert again[0] is not nodes[0]


def test_undo_then_redo_round_trip():
    h = HistoryManager()
    before = [_node("a")]
    after = [_node("a"), _node("b")]
    h.record(before, [])
    snap = h.undo(after, [])
    assert [n.id for n in snap.nodes] == ["a"]
    assert h.can_redo
    snap = h.redo(before, [])
    assert [n.id for n in snap.nodes] == ["a", "b"]
    assert not h.can_redo and h.can_undo


def test_record_clears_future():
    h = HistoryManager()
    h.record([], [])
    h.undo([_node("a")], [])
    assert h.can_redo
    h.record([], [])
    assert not h.can_redo


def test_capacity_drops_oldest():
    h = HistoryManager(capacity=2)
    for i in range(3):
        h.record([_node(f"n{i}")], [])
    assert len(h) == 2
    first = h.undo([], [])
    second = h.undo([], [])
    assert [n.id for n in first.nodes] == ["n2"]
    assert [n.id for n in second.nodes] == ["n1"]
    assert h.undo([], []) is None


def test_edges_are_snapshotted_too():
    h = HistoryManager()
    e = Edge(id="e", source="a", target="b", sourceHandle="next", targetHandle="in")
    h.record([], [e])
    snap = h.undo([], [])
    assert snap.edges[0].source_handle == "next"


def test_invalid_capacity():
    with pytest.raises(ValueError):
        HistoryManager(capacity=0)
