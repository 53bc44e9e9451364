# cmdflow/core/ports.py
from __future__ import annotations

"""Port and value-type model
----------------------------
Derives the connectable inputs/outputs of every node kind: flow handles
(`in`, `next`, `true`, `false`, `loop`, `done`) carrying control, value
outputs, and one `param:<key>:in` input per non-boolean catalog field.
Also resolves handle ids and value types used to decide whether an edge
is legal.
"""

import functools
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Mapping, Optional

from cmdflow.core.catalog import FieldType, NodeKind, all_kinds, get_meta


Direction = Literal["source", "target"]

ONE = 1
MANY = 8

FLOW_HANDLES = frozenset({"in", "next", "true", "false", "loop", "done"})

PARAM_HANDLE_PREFIX = "param:"
PARAM_INPUT_SUFFIX = ":in"


class HandleValueType(str, Enum):
    control = "control"
    string = "string"
    number = "number"
    json = "json"
    any = "any"


@dataclass(frozen=True)
class NodePort:
    id: str
    max_connections: int
    value_type: HandleValueType
    label: Optional[str] = None


@dataclass(frozen=True)
class PortSpec:
    inputs: tuple[NodePort, ...]
    outputs: tuple[NodePort, ...]

    def ports(self, direction: Direction) -> tuple[NodePort, ...]:
        return self.outputs if direction == "source" else self.inputs

    def find(self, direction: Direction, handle_id: Optional[str]) -> Optional[NodePort]:
        for port in self.ports(direction):
            if port.id == handle_id:
                return port
        return None


# ---------- Static flow/value ports ----------


def _flow(handle_id: str, label: Optional[str] = None) -> NodePort:
    return NodePort(handle_id, ONE, HandleValueType.control, label)


def _value(handle_id: str, value_type: HandleValueType, label: Optional[str] = None) -> NodePort:
    return NodePort(handle_id, MANY, value_type, label or handle_id)


_IN = (_flow("in"),)
_NEXT = (_flow("next"),)
_BRANCH = (_flow("true", "true"), _flow("false", "false"))
_LOOP = (_flow("loop", "loop"), _flow("done", "done"))

_S = HandleValueType.string
_N = HandleValueType.number
_ANY = HandleValueType.any


def _acting(*outputs: NodePort) -> tuple[tuple[NodePort, ...], tuple[NodePort, ...]]:
    return _IN, _NEXT + outputs


_STATIC: dict[NodeKind, tuple[tuple[NodePort, ...], tuple[NodePort, ...]]] = {
    NodeKind.hotkey_trigger: ((), _NEXT),
    NodeKind.timer_trigger: ((), _NEXT),
    NodeKind.manual_trigger: ((), _NEXT),
    NodeKind.window_trigger: ((), _NEXT + (_value("title", _S),)),
    NodeKind.mouse_click: _acting(_value("x", _N), _value("y", _N)),
    NodeKind.mouse_move: _acting(_value("x", _N), _value("y", _N)),
    NodeKind.mouse_drag: _acting(_value("toX", _N), _value("toY", _N)),
    NodeKind.mouse_wheel: _acting(_value("vertical", _N)),
    NodeKind.mouse_down: _acting(_value("x", _N), _value("y", _N), _value("button", _S)),
    NodeKind.mouse_up: _acting(_value("x", _N), _value("y", _N), _value("button", _S)),
    NodeKind.keyboard_key: _acting(_value("key", _S)),
    NodeKind.keyboard_input: _acting(_value("text", _S)),
    NodeKind.keyboard_down: _acting(_value("key", _S)),
    NodeKind.keyboard_up: _acting(_value("key", _S)),
    NodeKind.shortcut: _acting(_value("key", _S)),
    NodeKind.screenshot: _acting(_value("path", _S), _value("screenshot", _S)),
    NodeKind.gui_agent: _acting(),
    NodeKind.window_activate: _acting(_value("title", _S)),
    NodeKind.file_copy: _acting(_value("targetPath", _S)),
    NodeKind.file_move: _acting(_value("targetPath", _S)),
    NodeKind.file_delete: _acting(_value("path", _S)),
    NodeKind.run_command: _acting(_value("command", _S)),
    NodeKind.python_code: _acting(),
    NodeKind.clipboard_read: _acting(_value("text", _S)),
    NodeKind.clipboard_write: _acting(),
    NodeKind.file_read_text: _acting(_value("text", _S)),
    NodeKind.file_write_text: _acting(_value("path", _S)),
    NodeKind.show_message: _acting(_value("message", _S)),
    NodeKind.delay: _acting(_value("ms", _N)),
    NodeKind.condition: (_IN, _BRANCH),
    NodeKind.loop: (_IN, _LOOP),
    NodeKind.while_loop: (_IN, _LOOP),
    NodeKind.image_match: (_IN, _BRANCH + (
        _value("matchX", _N), _value("matchY", _N), _value("similarity", _N),
    )),
    NodeKind.var_define: _acting(_value("value", _ANY)),
    NodeKind.var_set: _acting(_value("value", _ANY)),
    NodeKind.var_math: _acting(_value("result", _N)),
    NodeKind.var_get: _acting(_value("value", _ANY)),
    NodeKind.const_value: _acting(_value("value", _ANY)),
}

# value outputs whose type follows params["valueType"]
_TYPED_VALUE_OUTPUTS = frozenset({
    (NodeKind.const_value, "value"),
    (NodeKind.var_define, "value"),
    (NodeKind.var_set, "value"),
})


# ---------- Parameter handles ----------


def param_input_handle_id(field_key: str) -> str:
    return f"{PARAM_HANDLE_PREFIX}{field_key}{PARAM_INPUT_SUFFIX}"


def is_param_input_handle(handle_id: Optional[str]) -> bool:
    return (
        isinstance(handle_id, str)
        and handle_id.startswith(PARAM_HANDLE_PREFIX)
        and handle_id.endswith(PARAM_INPUT_SUFFIX)
    )


def param_key_from_handle(handle_id: Optional[str]) -> Optional[str]:
    if not is_param_input_handle(handle_id):
        return None
    return handle_id[len(PARAM_HANDLE_PREFIX):-len(PARAM_INPUT_SUFFIX)]


def _field_value_type(field_type: FieldType) -> HandleValueType:
    if field_type is FieldType.number:
        return HandleValueType.number
    if field_type is FieldType.json:
        return HandleValueType.json
    return HandleValueType.string


# ---------- Port specs ----------


@functools.lru_cache(maxsize=None)
def _port_spec(kind: NodeKind) -> PortSpec:
    inputs, outputs = _STATIC[kind]
    params = tuple(
        NodePort(param_input_handle_id(f.key), ONE, _field_value_type(f.type), f.label)
        for f in get_meta(kind).fields
        if f.type is not FieldType.boolean
    )
    return PortSpec(inputs=inputs + params, outputs=outputs)


def get_port_spec(kind: NodeKind | str) -> PortSpec:
    """Port spec for a kind; memoized, so repeated calls return the same object."""
    return _port_spec(NodeKind(kind))


def normalize_handle(ports: tuple[NodePort, ...], handle_id: Optional[str]) -> Optional[str]:
    """
    Exact match wins; otherwise a lone port absorbs an omitted or unknown id.
    Returns None when the handle cannot be resolved unambiguously.
    """
    if not ports:
        return None
    if handle_id and any(p.id == handle_id for p in ports):
        return handle_id
    if len(ports) == 1:
        return ports[0].id
    return None


def normalize_source_handle(kind: NodeKind | str, handle_id: Optional[str]) -> Optional[str]:
    return normalize_handle(get_port_spec(kind).outputs, handle_id)


def normalize_target_handle(kind: NodeKind | str, handle_id: Optional[str]) -> Optional[str]:
    return normalize_handle(get_port_spec(kind).inputs, handle_id)


def max_connections(kind: NodeKind | str, direction: Direction, handle_id: Optional[str]) -> int:
    port = get_port_spec(kind).find(direction, handle_id)
    return port.max_connections if port else 0


# ---------- Value types ----------


def _typed_value_type(raw: Any) -> HandleValueType:
    value = str(raw if raw is not None else "").lower()
    if value in ("number", "json", "string"):
        return HandleValueType(value)
    return HandleValueType.any


def resolve_source_type(
    kind: NodeKind | str,
    params: Optional[Mapping[str, Any]],
    handle_id: Optional[str],
) -> Optional[HandleValueType]:
    kind = NodeKind(kind)
    normalized = normalize_source_handle(kind, handle_id)
    if normalized is None:
        return None
    if normalized in FLOW_HANDLES:
        return HandleValueType.control
    if (kind, normalized) in _TYPED_VALUE_OUTPUTS:
        return _typed_value_type((params or {}).get("valueType"))
    port = get_port_spec(kind).find("source", normalized)
    return port.value_type if port else HandleValueType.any


def resolve_target_type(kind: NodeKind | str, handle_id: Optional[str]) -> Optional[HandleValueType]:
    normalized = normalize_target_handle(kind, handle_id)
    if normalized is None:
        return None
    if normalized in FLOW_HANDLES:
        return HandleValueType.control
    port = get_port_spec(kind).find("target", normalized)
    return port.value_type if port else None


def is_compatible(source_type: HandleValueType, target_type: HandleValueType) -> bool:
    if HandleValueType.control in (source_type, target_type):
        return source_type == target_type
    if HandleValueType.any in (source_type, target_type):
        return True
    return source_type == target_type


# ---------- Quick insert ----------


def first_compatible_input(kind: NodeKind | str, source_type: HandleValueType) -> Optional[str]:
    """First input of `kind` that accepts a value of `source_type` (flow `in` comes first)."""
    for port in get_port_spec(kind).inputs:
        if is_compatible(source_type, port.value_type):
            return port.id
    return None


def quick_insert_candidates(
    source_kind: NodeKind | str,
    source_handle: Optional[str],
    params: Optional[Mapping[str, Any]] = None,
    keyword: str = "",
) -> list[NodeKind]:
    """
    Kinds that could be dropped at the end of a wire dragged from
    `source_handle`, filtered by a case-insensitive keyword over the
    display label and the kind name.
    """
    source_type = resolve_source_type(source_kind, params, source_handle)
    if source_type is None:
        return []
    needle = keyword.strip().lower()
    out: list[NodeKind] = []
    for kind in all_kinds():
        if first_compatible_input(kind, source_type) is None:
            continue
        if needle and needle not in f"{get_meta(kind).label} {kind.value}".lower():
            continue
        out.append(kind)
    return out
