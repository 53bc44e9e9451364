from cmdflow.core.catalog import FieldType, NodeKind, all_kinds, get_meta, is_manual_trigger, is_trigger


def test_every_kind_has_metadata():
    kinds = all_kinds()
    assert set(kinds) == set(NodeKind)
    for kind in kinds:
        meta = get_meta(kind)
        assert meta.label and meta.description


def test_every_field_has_a_default_value():
    for kind in all_kinds():
        meta = get_meta(kind)
        missing = [f.key for f in meta.fields if f.key not in meta.default_params]
        assert not missing, f"{kind.value}: {missing}"


def test_defaults_are_independent_copies():
    a = get_meta("shortcut").defaults()
    a["modifiers"].append("Alt")
    assert get_meta(NodeKind.shortcut).defaults()["modifiers"] == ["Ctrl"]


def test_lookup_accepts_wire_names():
    assert get_meta("whileLoop") is get_meta(NodeKind.while_loop)
    assert get_meta("loop").field("times").type is FieldType.number


def test_trigger_helpers():
    assert is_trigger("hotkeyTrigger") and is_trigger(NodeKind.manual_trigger)
    assert not is_trigger("delay")
    assert is_manual_trigger("manualTrigger")
    assert not is_manual_trigger("timerTrigger")
