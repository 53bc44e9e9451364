from cmdflow.core.catalog import NodeKind, all_kinds, is_trigger
from cmdflow.core.ports import (
    HandleValueType as T,
    first_compatible_input,
    get_port_spec,
    is_compatible,
    max_connections,
    normalize_source_handle,
    normalize_target_handle,
    param_input_handle_id,
    param_key_from_handle,
    quick_insert_candidates,
    resolve_source_type,
    resolve_target_type,
)


def test_port_spec_is_memoized_per_kind():
    assert get_port_spec("loop") is get_port_spec(NodeKind.loop)
    assert get_port_spec("loop") == get_port_spec("loop")


def test_loop_ports_merge_flow_and_param_handles():
    spec = get_port_spec(NodeKind.loop)
    assert [p.id for p in spec.outputs] == ["loop", "done"]
    assert [p.id for p in spec.inputs] == ["in", "param:times:in"]
    times = spec.find("target", "param:times:in")
    assert times.max_connections == 1 and times.value_type is T.number


def test_boolean_fields_never_get_handles():
    ids = {p.id for p in get_port_spec("keyboardDown").inputs}
    assert "param:simulateRepeat:in" not in ids
    assert "param:repeatCount:in" in ids


def test_manual_trigger_has_no_inputs():
    assert get_port_spec("manualTrigger").inputs == ()
    assert [p.id for p in get_port_spec("hotkeyTrigger").inputs] == ["param:hotkey:in"]


def test_normalize_handle_rules():
    assert normalize_source_handle("manualTrigger", None) == "next"
    assert normalize_source_handle("manualTrigger", "bogus") == "next"
    assert normalize_source_handle("condition", None) is None
    assert normalize_source_handle("condition", "false") == "false"
    # `in` plus parameter handles: ambiguous without an id
    assert normalize_target_handle("delay", None) is None
    assert normalize_target_handle("delay", "in") == "in"
    assert normalize_target_handle("manualTrigger", "in") is None
    assert normalize_target_handle("pythonCode", "param:code:in") == "param:code:in"


def test_max_connections():
    assert max_connections("manualTrigger", "source", "next") == 1
    assert max_connections("mouseClick", "source", "x") == 8
    assert max_connections("mouseClick", "target", "param:x:in") == 1
    assert max_connections("mouseClick", "source", "nope") == 0


def test_resolve_source_type():
    assert resolve_source_type("condition", {}, "true") is T.control
    assert resolve_source_type("mouseClick", {}, "x") is T.number
    assert resolve_source_type("varGet", {}, "value") is T.any
    assert resolve_source_type("constValue", {"valueType": "number"}, "value") is T.number
    assert resolve_source_type("constValue", {"valueType": "json"}, "value") is T.json
    assert resolve_source_type("varSet", {"valueType": "string"}, "value") is T.string
    assert resolve_source_type("varDefine", {"valueType": "boolean"}, "value") is T.any
    assert resolve_source_type("constValue", {}, "value") is T.any
    assert resolve_source_type("condition", {}, None) is None


def test_resolve_target_type():
    assert resolve_target_type("delay", "in") is T.control
    assert resolve_target_type("delay", "param:ms:in") is T.number
    assert resolve_target_type("shortcut", "param:modifiers:in") is T.json
    assert resolve_target_type("keyboardInput", "param:text:in") is T.string
    assert resolve_target_type("condition", "param:operator:in") is T.string
    assert resolve_target_type("delay", None) is None


def test_compatibility_matrix():
    assert is_compatible(T.control, T.control)
    assert not is_compatible(T.control, T.any)
    assert not is_compatible(T.any, T.control)
    assert is_compatible(T.any, T.number)
    assert is_compatible(T.json, T.any)
    assert is_compatible(T.string, T.string)
    assert not is_compatible(T.string, T.number)


def test_param_handle_ids():
    assert param_input_handle_id("ms") == "param:ms:in"
    assert param_key_from_handle("param:ms:in") == "ms"
    assert param_key_from_handle("param:a:b:in") == "a:b"
    assert param_key_from_handle("next") is None
    assert param_key_from_handle(None) is None


def test_first_compatible_input():
    assert first_compatible_input("delay", T.control) == "in"
    assert first_compatible_input("delay", T.number) == "param:ms:in"
    assert first_compatible_input("keyboardInput", T.any) == "param:text:in"
    assert first_compatible_input("manualTrigger", T.control) is None


def test_quick_insert_candidates_for_control_source():
    found = quick_insert_candidates("manualTrigger", "next")
    assert set(found) == {k for k in all_kinds() if not is_trigger(k)}


def test_quick_insert_candidates_keyword_and_type():
    assert quick_insert_candidates("mouseClick", "x", keyword="DELAY") == [NodeKind.delay]
    # numbers never land on string-only kinds
    assert NodeKind.keyboard_input not in quick_insert_candidates("mouseClick", "x")
    assert quick_insert_candidates("condition", None) == []
