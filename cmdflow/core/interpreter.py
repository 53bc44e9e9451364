# cmdflow/core/interpreter.py
from __future__ import annotations

"""Step interpreter
-------------------
Client-side replay of the engine's control flow, used by the step debugger
to decide which node runs next without asking the engine. Covers condition
branches, counted and conditional loops, loop-body returns and the local
variable table that conditions read from.

The engine evaluates the same constructs on its side; the two are kept in
line by tests and surfaced at runtime by `StepSession.divergence()`.
"""

import json
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from cmdflow.core.catalog import NodeKind, is_manual_trigger, is_trigger
from cmdflow.core.models import Edge, Node
from cmdflow.utils.logger import get_logger


log = get_logger(__name__)

DEFAULT_WHILE_MAX_ITERATIONS = 1000


class StepError(RuntimeError):
    """The step debugger cannot continue (no usable start, bad node effect)."""


class StepState(str, Enum):
    idle = "idle"
    positioned = "positioned"
    awaiting = "awaiting"


@dataclass
class StepContext:
    variables: dict[str, Any] = field(default_factory=dict)
    loop_remaining: dict[str, int] = field(default_factory=dict)
    while_iterations: dict[str, int] = field(default_factory=dict)
    loop_stack: list[str] = field(default_factory=list)
    start_queue: deque[str] = field(default_factory=deque)

    def innermost_loop(self) -> Optional[str]:
        return self.loop_stack[-1] if self.loop_stack else None

    def enter_loop(self, node_id: str) -> None:
        if self.innermost_loop() != node_id:
            self.loop_stack.append(node_id)

    def leave_loop(self, node_id: str) -> None:
        if self.innermost_loop() == node_id:
            self.loop_stack.pop()


# ---------- Parameter access ----------


def _param_str(node: Node, key: str, fallback: str = "") -> str:
    value = node.param(key)
    return value if isinstance(value, str) else fallback


def _param_number(node: Node, key: str, fallback: float = 0) -> float:
    value = node.param(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    return value if math.isfinite(value) else fallback


def _param_bool(node: Node, key: str, fallback: bool) -> bool:
    value = node.param(key)
    return value if isinstance(value, bool) else fallback


# ---------- Operands / conditions ----------


def parse_number(raw: str) -> Optional[float]:
    """Finite float for a plain numeric string, else None."""
    s = raw.strip()
    if not s or "_" in s:
        return None
    try:
        value = float(s)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_operand(operand_type: str, raw: str, variables: Mapping[str, Any]) -> Any:
    if operand_type == "var":
        return variables.get(raw)
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    number = parse_number(raw)
    return number if number is not None else raw


def to_numeric(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    if isinstance(value, str):
        number = parse_number(value)
        return number if number is not None else 0.0
    return 0.0


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion: a bool never equals a number."""
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    numeric = (int, float)
    if isinstance(left, numeric) and isinstance(right, numeric):
        return left == right
    return type(left) is type(right) and left == right


_ORDERING: dict[str, Callable[[float, float], bool]] = {
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
}


def compare(left: Any, operator: str, right: Any) -> bool:
    if operator == "==":
        return strict_equals(left, right)
    if operator == "!=":
        return not strict_equals(left, right)
    op = _ORDERING.get(operator)
    if op is None:
        return False
    return op(to_numeric(left), to_numeric(right))


def evaluate_condition(node: Node, variables: Mapping[str, Any]) -> bool:
    left = parse_operand(_param_str(node, "leftType", "var"), _param_str(node, "left"), variables)
    right = parse_operand(_param_str(node, "rightType", "literal"), _param_str(node, "right"), variables)
    return compare(left, _param_str(node, "operator", "=="), right)


# ---------- Variable effects ----------


def resolve_typed_param_value(params: Mapping[str, Any], base_key: str) -> Any:
    """
    Value of a typed parameter group (`value` + `valueType` + `valueString`,
    `valueNumber`, ...). Without a selected type the plain `base_key` is used.
    """
    selected = params.get(f"{base_key}Type")
    selected = selected if isinstance(selected, str) else ""
    if not selected:
        return params.get(base_key)

    if selected == "string":
        raw = params.get(f"{base_key}String")
        return raw if isinstance(raw, str) else ""
    if selected == "number":
        raw = params.get(f"{base_key}Number")
        if isinstance(raw, str):
            raw = parse_number(raw)
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not math.isfinite(raw):
            return 0.0
        return float(raw)
    if selected == "boolean":
        raw = params.get(f"{base_key}Boolean")
        return isinstance(raw, str) and raw.lower() == "true"
    if selected == "json":
        raw = params.get(f"{base_key}Json")
        if not isinstance(raw, str):
            raw = "null"
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None
    return params.get(base_key)


def _bool_num(flag: bool) -> float:
    return 1.0 if flag else 0.0


def _truthy(v: float) -> bool:
    return abs(v) > 2.220446049250313e-16


def _nonzero(node: Node, v: float, what: str) -> float:
    if not _truthy(v):
        raise StepError(f"node '{node.id}' {what} by zero")
    return v


def _shift(v: float) -> int:
    return max(0, int(v)) % 64


def _to_i64(v: int) -> int:
    v &= 0xFFFFFFFFFFFFFFFF
    return v - (1 << 64) if v >= (1 << 63) else v


_BINARY: dict[str, Callable[[Node, float, float], float]] = {
    "add": lambda n, c, o: c + o,
    "sub": lambda n, c, o: c - o,
    "mul": lambda n, c, o: c * o,
    "div": lambda n, c, o: c / _nonzero(n, o, "division"),
    "mod": lambda n, c, o: c % abs(_nonzero(n, o, "modulo")),
    "rem": lambda n, c, o: math.fmod(c, _nonzero(n, o, "remainder")),
    "floordiv": lambda n, c, o: float(math.floor(c / _nonzero(n, o, "floor division"))),
    "pow": lambda n, c, o: math.pow(c, o),
    "max": lambda n, c, o: max(c, o),
    "min": lambda n, c, o: min(c, o),
    "hypot": lambda n, c, o: math.hypot(c, o),
    "atan2": lambda n, c, o: math.atan2(c, o),
    "eq": lambda n, c, o: _bool_num(abs(c - o) < 2.220446049250313e-16),
    "ne": lambda n, c, o: _bool_num(abs(c - o) >= 2.220446049250313e-16),
    "gt": lambda n, c, o: _bool_num(c > o),
    "ge": lambda n, c, o: _bool_num(c >= o),
    "lt": lambda n, c, o: _bool_num(c < o),
    "le": lambda n, c, o: _bool_num(c <= o),
    "land": lambda n, c, o: _bool_num(_truthy(c) and _truthy(o)),
    "lor": lambda n, c, o: _bool_num(_truthy(c) or _truthy(o)),
    "lxor": lambda n, c, o: _bool_num(_truthy(c) != _truthy(o)),
    "band": lambda n, c, o: float(int(c) & int(o)),
    "bor": lambda n, c, o: float(int(c) | int(o)),
    "bxor": lambda n, c, o: float(int(c) ^ int(o)),
    "shl": lambda n, c, o: float(_to_i64(int(c) << _shift(o))),
    "shr": lambda n, c, o: float(int(c) >> _shift(o)),
    "ushr": lambda n, c, o: float((int(c) & 0xFFFFFFFFFFFFFFFF) >> _shift(o)),
    "set": lambda n, c, o: o,
}

_UNARY: dict[str, Callable[[Node, float], float]] = {
    "neg": lambda n, c: -c,
    "abs": lambda n, c: abs(c),
    "sign": lambda n, c: math.copysign(1.0, c),
    "square": lambda n, c: c * c,
    "cube": lambda n, c: c * c * c,
    "sqrt": lambda n, c: math.sqrt(c),
    "cbrt": lambda n, c: math.copysign(abs(c) ** (1.0 / 3.0), c),
    "exp": lambda n, c: math.exp(c),
    "ln": lambda n, c: math.log(c),
    "log2": lambda n, c: math.log2(c),
    "log10": lambda n, c: math.log10(c),
    "sin": lambda n, c: math.sin(c),
    "cos": lambda n, c: math.cos(c),
    "tan": lambda n, c: math.tan(c),
    "asin": lambda n, c: math.asin(c),
    "acos": lambda n, c: math.acos(c),
    "atan": lambda n, c: math.atan(c),
    "ceil": lambda n, c: float(math.ceil(c)),
    "floor": lambda n, c: float(math.floor(c)),
    "round": lambda n, c: float(math.floor(abs(c) + 0.5)) * (1 if c >= 0 else -1),
    "trunc": lambda n, c: float(math.trunc(c)),
    "frac": lambda n, c: c - math.trunc(c),
    "recip": lambda n, c: 1.0 / _nonzero(n, c, "reciprocal of"),
    "lnot": lambda n, c: _bool_num(not _truthy(c)),
    "bnot": lambda n, c: float(~int(c)),
}

_OPERATION_ALIASES = {
    "+": "add", "-": "sub", "*": "mul", "/": "div", "%": "mod",
    "==": "eq", "!=": "ne", ">": "gt", ">=": "ge", "<": "lt", "<=": "le",
    "&&": "land", "||": "lor", "&": "band", "|": "bor", "^": "bxor",
    "<<": "shl", ">>": "shr", ">>>": "ushr", "!": "lnot", "~": "bnot", "=": "set",
}


def apply_var_math(node: Node, current: float, operand: float) -> float:
    operation = _param_str(node, "operation", "add").lower()
    operation = _OPERATION_ALIASES.get(operation, operation)
    try:
        if operation in _BINARY:
            result = _BINARY[operation](node, current, operand)
        elif operation in _UNARY:
            result = _UNARY[operation](node, current)
        else:
            raise StepError(f"node '{node.id}' has unsupported varMath operation '{operation}'")
    except (ValueError, OverflowError) as e:
        raise StepError(f"node '{node.id}' varMath {operation} failed: {e}") from e
    if not math.isfinite(result):
        raise StepError(f"node '{node.id}' varMath result is not finite")
    return result


def apply_node_effects(node: Node, ctx: StepContext) -> None:
    """Mirror the variable writes the engine performs for data nodes."""
    if node.kind not in (NodeKind.var_define, NodeKind.var_set, NodeKind.var_math):
        return
    name = _param_str(node, "name")
    if not name.strip():
        if node.kind is NodeKind.var_math:
            raise StepError(f"node '{node.id}' variable name cannot be empty")
        return
    params = {**node.with_defaults().params}

    if node.kind is NodeKind.var_define:
        ctx.variables.setdefault(name, resolve_typed_param_value(params, "value"))
    elif node.kind is NodeKind.var_set:
        ctx.variables[name] = resolve_typed_param_value(params, "value")
    else:
        operand = to_numeric(resolve_typed_param_value(params, "operand"))
        current = to_numeric(ctx.variables.get(name, 0.0))
        result = apply_var_math(node, current, operand)
        if _param_bool(node, "assignToVariable", True):
            ctx.variables[name] = result
        log.debug(f"varMath '{name}': {current} -> {result}")


# ---------- Next-node selection ----------


def _outgoing(node: Node, edges: Iterable[Edge]) -> list[Edge]:
    return [e for e in edges if e.source == node.id]


def _by_handle(outgoing: Sequence[Edge], handle: str) -> Optional[Edge]:
    for e in outgoing:
        if e.source_handle == handle:
            return e
    return None


def _loop_edges(outgoing: Sequence[Edge]) -> tuple[Optional[Edge], Optional[Edge]]:
    loop_edge = _by_handle(outgoing, "loop") or (outgoing[0] if outgoing else None)
    done_edge = _by_handle(outgoing, "done") or next((e for e in outgoing if e.source_handle != "loop"), None)
    return loop_edge, done_edge


def _exit_loop(node: Node, done_edge: Optional[Edge], ctx: StepContext) -> Optional[str]:
    ctx.leave_loop(node.id)
    if done_edge is not None:
        return done_edge.target
    return ctx.innermost_loop()


def _pick_counted_loop(node: Node, outgoing: Sequence[Edge], ctx: StepContext) -> Optional[str]:
    loop_edge, done_edge = _loop_edges(outgoing)
    times = max(0, math.floor(_param_number(node, "times", 1)))
    remaining = ctx.loop_remaining.get(node.id, times)
    if remaining > 0 and loop_edge is not None:
        ctx.loop_remaining[node.id] = remaining - 1
        ctx.enter_loop(node.id)
        return loop_edge.target
    ctx.loop_remaining.pop(node.id, None)
    return _exit_loop(node, done_edge, ctx)


def _pick_while_loop(node: Node, outgoing: Sequence[Edge], ctx: StepContext) -> Optional[str]:
    loop_edge, done_edge = _loop_edges(outgoing)
    cap = max(1, math.floor(_param_number(node, "maxIterations", DEFAULT_WHILE_MAX_ITERATIONS)))
    done_so_far = ctx.while_iterations.get(node.id, 0)
    holds = evaluate_condition(node, ctx.variables)
    if holds and done_so_far < cap and loop_edge is not None:
        ctx.while_iterations[node.id] = done_so_far + 1
        ctx.enter_loop(node.id)
        return loop_edge.target
    if holds and done_so_far >= cap:
        log.warning(f"While loop '{node.label or node.id}' hit its {cap} iteration cap; taking 'done'")
    ctx.while_iterations.pop(node.id, None)
    return _exit_loop(node, done_edge, ctx)


def pick_next(node: Node, edges: Iterable[Edge], ctx: StepContext) -> Optional[str]:
    """
    Id of the node to run after `node`, or None at the end of the flow.
    Mutates loop bookkeeping in `ctx`.
    """
    outgoing = _outgoing(node, edges)

    if node.kind is NodeKind.loop:
        return _pick_counted_loop(node, outgoing, ctx)
    if node.kind is NodeKind.while_loop:
        return _pick_while_loop(node, outgoing, ctx)
    if node.kind is NodeKind.condition:
        handle = "true" if evaluate_condition(node, ctx.variables) else "false"
        chosen = _by_handle(outgoing, handle) or (outgoing[0] if outgoing else None)
        return chosen.target if chosen else None

    if outgoing:
        return outgoing[0].target
    # dead end inside a loop body returns to the loop head
    return ctx.innermost_loop()


def pick_start_queue(nodes: Sequence[Node], edges: Iterable[Edge]) -> list[str]:
    """
    Entry points for a step session, in the order they should run:
    manual triggers, else the one automatic trigger, else root nodes,
    else the first node.
    """
    if not nodes:
        return []
    manual = [n.id for n in nodes if is_manual_trigger(n.kind)]
    if manual:
        return manual
    auto = [n.id for n in nodes if is_trigger(n.kind)]
    if len(auto) > 1:
        raise StepError(
            "The workflow has several automatic triggers; stepping needs exactly one, or a manual trigger."
        )
    if auto:
        return auto
    targets = {e.target for e in edges}
    roots = [n.id for n in nodes if n.id not in targets]
    return roots or [nodes[0].id]


# ---------- Interpreter ----------


class StepInterpreter:
    """Tracks where a step session is and what it has seen so far."""

    def __init__(self, store) -> None:
        self.store = store
        self.current_id: Optional[str] = None
        self.state = StepState.idle
        self.context = StepContext()

    @property
    def active(self) -> bool:
        return self.state is not StepState.idle

    def reset(self) -> None:
        self.current_id = None
        self.state = StepState.idle
        self.context = StepContext()

    def begin(self, start_node_id: Optional[str] = None) -> Optional[str]:
        """Fresh context positioned on the first start node (None if nothing to run)."""
        if start_node_id is not None:
            queue = [start_node_id] if self.store.has_node(start_node_id) else []
        else:
            queue = pick_start_queue(self.store.nodes, self.store.edges)
        self.reset()
        if not queue:
            return None
        self.context.start_queue.extend(queue)
        self.current_id = self.context.start_queue.popleft()
        self.state = StepState.positioned
        return self.current_id

    def current_node(self) -> Optional[Node]:
        return self.store.get_node(self.current_id) if self.current_id else None

    def mark_awaiting(self) -> None:
        self.state = StepState.awaiting

    def advance(self, executed: Node) -> Optional[str]:
        """
        Record that `executed` ran and move to the next node, falling back to
        the next queued start. Returns the new current id, or None when the
        flow is exhausted (the interpreter is then idle, context kept for
        the caller to read).
        """
        apply_node_effects(executed, self.context)
        nxt = pick_next(executed, self.store.edges, self.context)
        if nxt is None and self.context.start_queue:
            self.context.loop_stack.clear()
            nxt = self.context.start_queue.popleft()
        self.current_id = nxt
        self.state = StepState.positioned if nxt else StepState.idle
        return nxt
