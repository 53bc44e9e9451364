import pytest

from cmdflow.core.catalog import NodeKind
from cmdflow.core.models import Connection
from cmdflow.core.store import GraphStore
from cmdflow.core.workflow_file import WorkflowFileError
from cmdflow.utils.config import Settings

from wf_docs import canvas_node, edge, workflow_doc


def _link(store, source, target, sh=None, th="in"):
    return store.connect(Connection(source=source, target=target, source_handle=sh, target_handle=th))


def test_fresh_store_has_single_manual_trigger(store):
    nodes = store.nodes
    assert len(nodes) == 1 and nodes[0].kind is NodeKind.manual_trigger
    assert store.edges == ()
    assert not store.history.can_undo


def test_add_node_uses_private_copy_of_defaults(store):
    nid = store.add_node("shortcut", (10, 20))
    node = store.get_node(nid)
    assert node.params == {"modifiers": ["Ctrl"], "key": "S"}
    assert (node.position.x, node.position.y) == (10, 20)
    node.params["modifiers"].append("Alt")
    assert store.get_node(nid).params["modifiers"] == ["Ctrl"]
    assert store.history.can_undo


def test_connect_normalizes_unambiguous_source_handle(store, trigger_id):
    d = store.add_node("delay", (0, 0))
    e = _link(store, trigger_id, d)
    assert e is not None
    assert (e.source_handle, e.target_handle) == ("next", "in")


def test_connect_drops_ambiguous_or_illegal_requests(store, trigger_id):
    d = store.add_node("delay", (0, 0))
    c = store.add_node("condition", (0, 0))
    depth = len(store.history)
    assert _link(store, trigger_id, d, th=None) is None       # delay has `in` + param handles
    assert _link(store, c, d) is None                          # condition has true/false
    assert _link(store, d, d) is None                          # self loop
    assert _link(store, trigger_id, "ghost") is None           # unknown node
    assert _link(store, trigger_id, d, th="param:ms:in") is None  # control into a value
    assert store.edges == ()
    assert len(store.history) == depth


def test_connect_checks_value_types(store):
    const = store.add_node("constValue", (0, 0))
    d = store.add_node("delay", (0, 0))
    store.update_params(const, {**store.get_node(const).params, "valueType": "string"})
    assert _link(store, const, d, sh="value", th="param:ms:in") is None
    store.update_params(const, {**store.get_node(const).params, "valueType": "number"})
    assert _link(store, const, d, sh="value", th="param:ms:in") is not None


def test_full_source_handle_evicts_oldest(store, trigger_id):
    a = store.add_node("delay", (0, 0))
    b = store.add_node("delay", (0, 0))
    _link(store, trigger_id, a)
    _link(store, trigger_id, b)
    assert [(e.source, e.target) for e in store.edges] == [(trigger_id, b)]


def test_full_target_handle_evicts_oldest(store, trigger_id):
    a = store.add_node("delay", (0, 0))
    b = store.add_node("delay", (0, 0))
    _link(store, trigger_id, a)
    _link(store, b, a, sh="next")
    assert [(e.source, e.target) for e in store.edges] == [(b, a)]


def test_many_output_keeps_eight_newest(store):
    click = store.add_node("mouseClick", (0, 0))
    targets = [store.add_node("delay", (0, i)) for i in range(9)]
    for t in targets:
        assert _link(store, click, t, sh="x", th="param:ms:in") is not None
    kept = [e.target for e in store.edges_on(click, "source", "x")]
    assert kept == targets[1:]


def test_identical_connect_replaces_single_capacity_edge(store, trigger_id):
    d = store.add_node("delay", (0, 0))
    first = _link(store, trigger_id, d)
    depth = len(store.history)
    again = _link(store, trigger_id, d, sh="next")
    assert [e.id for e in store.edges] == [again.id]
    assert (again.source, again.target) == (first.source, first.target)
    assert len(store.history) == depth + 1


def test_repeated_connect_on_full_value_output_evicts_oldest(store):
    click = store.add_node("mouseClick", (0, 0))
    targets = [store.add_node("delay", (0, i)) for i in range(8)]
    for t in targets:
        _link(store, click, t, sh="x", th="param:ms:in")
    again = _link(store, click, targets[3], sh="x", th="param:ms:in")
    assert again is not None
    kept = [e.target for e in store.edges_on(click, "source", "x")]
    assert kept == targets[1:3] + targets[4:] + [targets[3]]


def test_reconnect_illegal_target_still_removes_old_edge(store, trigger_id):
    d = store.add_node("delay", (0, 0))
    old = _link(store, trigger_id, d)
    assert store.reconnect(old.id, Connection(source=trigger_id, target=trigger_id)) is None
    assert store.edges == ()


def test_reconnect_unknown_edge_still_connects(store, trigger_id):
    d = store.add_node("delay", (0, 0))
    depth = len(store.history)
    edge = store.reconnect("no-such-edge", Connection(source=trigger_id, target=d, target_handle="in"))
    assert edge is not None
    assert [(e.source, e.target) for e in store.edges] == [(trigger_id, d)]
    assert len(store.history) == depth + 1


def test_reconnect_unknown_edge_and_illegal_target_is_noop(store, trigger_id):
    depth = len(store.history)
    assert store.reconnect("no-such-edge", Connection(source=trigger_id, target=trigger_id)) is None
    assert len(store.history) == depth


def test_reconnect_moves_edge(store, trigger_id):
    a = store.add_node("delay", (0, 0))
    b = store.add_node("delay", (0, 0))
    old = _link(store, trigger_id, a)
    new = store.reconnect(old.id, {"source": trigger_id, "target": b, "targetHandle": "in"})
    assert new is not None and new.target == b
    assert [e.id for e in store.edges] == [new.id]


def test_disconnect_handle_and_remove_edge(store, trigger_id):
    c = store.add_node("condition", (0, 0))
    a = store.add_node("delay", (0, 0))
    b = store.add_node("delay", (0, 0))
    _link(store, trigger_id, c)
    _link(store, c, a, sh="true")
    f = _link(store, c, b, sh="false")
    assert store.disconnect_handle(c, "source", "true") == 1
    assert store.disconnect_handle(c, "source", None) == 0   # ambiguous
    assert store.remove_edge(f.id)
    assert not store.remove_edge(f.id)
    assert [e.target for e in store.edges] == [c]


def test_delete_selected_removes_touching_edges(store, trigger_id):
    d = store.add_node("delay", (0, 0))
    _link(store, trigger_id, d)
    store.select([d])
    store.delete_selected()
    assert not store.has_node(d)
    assert store.edges == ()
    assert store.selected_ids == ()


def test_delete_with_empty_selection_is_noop(store):
    depth = len(store.history)
    store.delete_selected()
    assert len(store.history) == depth
    assert len(store.nodes) == 1


def test_duplicate_offsets_and_skips_edges(store, trigger_id):
    d = store.add_node("delay", (100, 50))
    _link(store, trigger_id, d)
    store.select([d])
    (copy_id,) = store.duplicate_selected()
    dup = store.get_node(copy_id)
    assert copy_id != d
    assert (dup.position.x, dup.position.y) == (140, 90)
    assert dup.params == store.get_node(d).params
    assert store.selected_ids == (copy_id,)
    assert len(store.edges) == 1


def test_copy_paste_can_repeat(store):
    d = store.add_node("delay", (0, 0))
    assert not store.paste()
    store.select_node(d)
    assert store.copy_selected()
    assert store.paste() and store.paste()
    delays = [n for n in store.nodes if n.kind is NodeKind.delay]
    assert len({n.id for n in delays}) == 3
    assert {(n.position.x, n.position.y) for n in delays} == {(0, 0), (40, 40)}


def test_param_update_and_move_skip_history(store, trigger_id):
    d = store.add_node("delay", (0, 0))
    depth = len(store.history)
    store.update_params(d, {"ms": 5})
    store.move_node(d, {"x": 3, "y": 4})
    store.set_graph_name("Renamed")
    assert len(store.history) == depth
    node = store.get_node(d)
    assert node.params == {"ms": 5}
    assert node.position.x == 3
    assert store.name == "Renamed"


def test_add_undo_redo_restores_same_node(store):
    nid = store.add_node("delay", (0, 0))
    assert store.undo()
    assert not store.has_node(nid)
    assert store.redo()
    assert store.has_node(nid)
    assert not store.redo()


def test_undo_prunes_selection(store):
    nid = store.add_node("delay", (0, 0))
    store.select([nid])
    store.undo()
    assert store.selected_ids == ()


def test_new_mutation_clears_redo(store):
    store.add_node("delay", (0, 0))
    store.undo()
    store.add_node("loop", (0, 0))
    assert not store.redo()


def test_history_limit_from_settings():
    s = GraphStore(settings=Settings(HISTORY_LIMIT=3))
    for _ in range(5):
        s.add_node("delay", (0, 0))
    assert sum(1 for _ in range(10) if s.undo()) == 3
    assert len(s.nodes) == 3


def test_reset_installs_single_trigger(store):
    old_id = store.graph_id
    store.add_node("delay", (0, 0))
    store.reset()
    assert store.graph_id != old_id
    assert [n.kind for n in store.nodes] == [NodeKind.manual_trigger]
    assert store.undo()
    assert len(store.nodes) == 2


def test_export_import_round_trip(store, trigger_id):
    c = store.add_node("condition", (0, 0))
    a = store.add_node("varSet", (0, 0))
    store.update_params(a, {**store.get_node(a).params, "valueNumber": 7})
    _link(store, trigger_id, c)
    _link(store, c, a, sh="true")
    exported = store.export_graph()

    other = GraphStore(settings=store.settings)
    other.import_graph(exported)
    assert other.graph_id == store.graph_id
    assert {(n.id, n.kind, repr(n.params)) for n in other.nodes} == {
        (n.id, n.kind, repr(n.params)) for n in store.nodes
    }
    key = lambda e: (e.id, e.source, e.source_handle, e.target, e.target_handle)
    assert sorted(map(key, other.edges)) == sorted(map(key, store.edges))
    assert other.selected_ids == ()


def test_import_merges_defaults_and_takes_name_override(store):
    doc = workflow_doc([canvas_node("t", "manualTrigger"), canvas_node("d", "delay", {"ms": 10})],
                       [edge("e1", "t", "d", sh=None, th="in")])
    store.import_graph(doc, name="From file")
    assert store.name == "From file"
    d = store.get_node("d")
    assert d.params == {"ms": 10} and d.label == "Delay"
    assert store.edges[0].source_handle == "next"


@pytest.mark.parametrize("mutate", [
    lambda doc: doc.update(version="2.0.0"),
    lambda doc: doc["graph"].pop("name"),
    lambda doc: doc["graph"].update(nodes="nope"),
    lambda doc: doc["graph"]["nodes"].append(canvas_node("x", "teleport")),
    lambda doc: doc["graph"]["edges"].append(edge("e9", "t", "missing")),
])
def test_bad_import_leaves_graph_untouched(store, mutate):
    doc = workflow_doc([canvas_node("t", "manualTrigger")])
    mutate(doc)
    before = [n.id for n in store.nodes]
    depth = len(store.history)
    with pytest.raises(WorkflowFileError):
        store.import_graph(doc)
    assert [n.id for n in store.nodes] == before
    assert len(store.history) == depth


def test_quick_insert_wires_first_compatible_input(store, trigger_id):
    nid = store.quick_insert(trigger_id, "next", "delay", (300, 0))
    (e,) = store.edges
    assert (e.source, e.target, e.target_handle) == (trigger_id, nid, "in")
    # node + edge are one undo step
    store.undo()
    assert not store.has_node(nid) and store.edges == ()


def test_quick_insert_from_value_output(store):
    click = store.add_node("mouseClick", (0, 0))
    nid = store.quick_insert(click, "y", "delay", (0, 0))
    (e,) = store.edges
    assert (e.target, e.target_handle) == (nid, "param:ms:in")
    assert store.quick_insert("ghost", "next", "delay", (0, 0)) is None


def test_invalid_edges_after_type_change(store):
    const = store.add_node("constValue", (0, 0))
    d = store.add_node("delay", (0, 0))
    _link(store, const, d, sh="value", th="param:ms:in")
    assert store.invalid_edges() == []
    store.update_params(const, {**store.get_node(const).params, "valueType": "string"})
    ((bad, reason),) = store.invalid_edges()
    assert bad.target == d and "incompatible" in reason
