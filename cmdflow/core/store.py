# cmdflow/core/store.py
from __future__ import annotations

"""Graph store
--------------
Single owner of the editable graph: nodes, edges, selection, clipboard and
undo/redo history. Every mutation goes through a method here, and every
connection attempt is checked against the port model. Illegal edits are
silent no-ops (logged at DEBUG only).

Reads return copies; callers never hold references into live state.
"""

import uuid
from typing import Any, Iterable, Optional, Union

from cmdflow.core.catalog import NodeKind, get_meta
from cmdflow.core.history import HistoryManager
from cmdflow.core.models import Connection, Edge, Node, Position, WorkflowFile, WorkflowGraph
from cmdflow.core.ports import (
    Direction,
    first_compatible_input,
    is_compatible,
    max_connections,
    normalize_source_handle,
    normalize_target_handle,
    resolve_source_type,
    resolve_target_type,
)
from cmdflow.core.workflow_file import new_workflow_file, parse_workflow_file
from cmdflow.utils.config import Settings, get_settings
from cmdflow.utils.logger import get_logger


log = get_logger(__name__)

INITIAL_TRIGGER_POSITION = Position(x=200, y=120)


def _new_id() -> str:
    return str(uuid.uuid4())


def _as_position(position: Union[Position, tuple[float, float], dict]) -> Position:
    if isinstance(position, Position):
        return position.model_copy()
    if isinstance(position, dict):
        return Position.model_validate(position)
    x, y = position
    return Position(x=x, y=y)


def make_node(kind: NodeKind | str, position: Union[Position, tuple[float, float], dict]) -> Node:
    """New node of `kind` carrying a private copy of the catalog defaults."""
    meta = get_meta(kind)
    return Node(
        id=_new_id(),
        kind=NodeKind(kind),
        position=_as_position(position),
        label=meta.label,
        description=meta.description,
        params=meta.defaults(),
    )


class GraphStore:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.history = HistoryManager(self.settings.HISTORY_LIMIT)
        self._nodes: list[Node] = []
        self._edges: list[Edge] = []
        self._selected: list[str] = []
        self._clipboard: list[Node] = []
        self.graph_id = _new_id()
        self.name = self.settings.DEFAULT_GRAPH_NAME
        self.created_at: Optional[str] = None
        self._install_initial_graph()

    # ---------- Read access ----------

    @property
    def nodes(self) -> tuple[Node, ...]:
        return tuple(n.model_copy(deep=True) for n in self._nodes)

    @property
    def edges(self) -> tuple[Edge, ...]:
        return tuple(e.model_copy() for e in self._edges)

    @property
    def selected_ids(self) -> tuple[str, ...]:
        return tuple(self._selected)

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected[0] if self._selected else None

    @property
    def has_clipboard(self) -> bool:
        return bool(self._clipboard)

    def get_node(self, node_id: str) -> Optional[Node]:
        node = self._find(node_id)
        return node.model_copy(deep=True) if node else None

    def has_node(self, node_id: str) -> bool:
        return self._find(node_id) is not None

    def outgoing(self, node_id: str) -> list[Edge]:
        return [e.model_copy() for e in self._edges if e.source == node_id]

    def incoming(self, node_id: str) -> list[Edge]:
        return [e.model_copy() for e in self._edges if e.target == node_id]

    def edges_on(self, node_id: str, direction: Direction, handle_id: Optional[str]) -> list[Edge]:
        return [e.model_copy() for e in self._on_handle(self._edges, node_id, direction, handle_id)]

    def invalid_edges(self) -> list[tuple[Edge, str]]:
        """Edges that would not be accepted by `connect` today, with the reason."""
        out: list[tuple[Edge, str]] = []
        for e in self._edges:
            reason = self._edge_problem(e)
            if reason:
                out.append((e.model_copy(), reason))
        return out

    # ---------- Node operations ----------

    def add_node(self, kind: NodeKind | str, position: Union[Position, tuple[float, float], dict]) -> str:
        node = make_node(kind, position)
        self._record()
        self._nodes.append(node)
        log.debug(f"add_node {node.kind.value} -> {node.id}")
        return node.id

    def delete_selected(self) -> None:
        doomed = set(self._selected)
        if not doomed:
            return
        self._record()
        self._nodes = [n for n in self._nodes if n.id not in doomed]
        self._edges = [e for e in self._edges if e.source not in doomed and e.target not in doomed]
        self._selected = []

    def duplicate_selected(self) -> list[str]:
        originals = self._selected_nodes()
        if not originals:
            return []
        self._record()
        return self._place_copies(originals)

    def copy_selected(self) -> bool:
        originals = self._selected_nodes()
        if not originals:
            return False
        self._clipboard = [n.model_copy(deep=True) for n in originals]
        return True

    def paste(self) -> bool:
        if not self._clipboard:
            return False
        self._record()
        self._place_copies(self._clipboard)
        return True

    def update_params(self, node_id: str, params: dict[str, Any]) -> None:
        """Replace a node's params wholesale. Not recorded in history."""
        node = self._find(node_id)
        if node is None:
            log.debug(f"update_params: unknown node {node_id}")
            return
        node.params = dict(params)

    def move_node(self, node_id: str, position: Union[Position, tuple[float, float], dict]) -> None:
        # drag input arrives continuously; not recorded in history
        node = self._find(node_id)
        if node is not None:
            node.position = _as_position(position)

    def set_graph_name(self, name: str) -> None:
        self.name = name

    # ---------- Selection ----------

    def select(self, ids: Iterable[str]) -> None:
        live = {n.id for n in self._nodes}
        picked: list[str] = []
        for node_id in ids:
            if node_id in live and node_id not in picked:
                picked.append(node_id)
        self._selected = picked

    def select_node(self, node_id: Optional[str]) -> None:
        self.select([node_id] if node_id else [])

    # ---------- Edge operations ----------

    def connect(self, connection: Union[Connection, dict]) -> Optional[Edge]:
        """
        Add an edge if it is legal, evicting the oldest edges on a full
        source/target handle first. Returns the resulting edge, or None when
        the request was dropped.
        """
        conn = connection if isinstance(connection, Connection) else Connection.model_validate(connection)
        result = self._plan_connection(self._edges, conn)
        if result is None:
            return None
        new_edges, edge = result
        if new_edges is not self._edges:
            self._record()
            self._edges = new_edges
        return edge.model_copy()

    def reconnect(self, old_edge_id: str, connection: Union[Connection, dict]) -> Optional[Edge]:
        """Move an existing edge; the old edge is gone even when the new one is refused."""
        conn = connection if isinstance(connection, Connection) else Connection.model_validate(connection)
        remaining = [e for e in self._edges if e.id != old_edge_id]
        result = self._plan_connection(remaining, conn)
        new_edges, edge = (remaining, None) if result is None else result
        if [e.id for e in new_edges] != [e.id for e in self._edges]:
            self._record()
            self._edges = new_edges
        return edge.model_copy() if edge is not None else None

    def disconnect_handle(self, node_id: str, direction: Direction, handle_id: Optional[str]) -> int:
        node = self._find(node_id)
        if node is None:
            return 0
        if direction == "source":
            normalized = normalize_source_handle(node.kind, handle_id)
        else:
            normalized = normalize_target_handle(node.kind, handle_id)
        if normalized is None:
            return 0
        doomed = {e.id for e in self._on_handle(self._edges, node_id, direction, normalized)}
        if not doomed:
            return 0
        self._record()
        self._edges = [e for e in self._edges if e.id not in doomed]
        return len(doomed)

    def remove_edge(self, edge_id: str) -> bool:
        if not any(e.id == edge_id for e in self._edges):
            return False
        self._record()
        self._edges = [e for e in self._edges if e.id != edge_id]
        return True

    def quick_insert(
        self,
        source_node_id: str,
        source_handle: Optional[str],
        kind: NodeKind | str,
        position: Union[Position, tuple[float, float], dict],
    ) -> Optional[str]:
        """
        Drop a new node at the end of a dangling wire and connect it to its
        first compatible input. One history entry covers both steps.
        """
        source = self._find(source_node_id)
        if source is None:
            return None
        node = make_node(kind, position)
        self._record()
        self._nodes.append(node)

        source_type = resolve_source_type(source.kind, source.params, source_handle)
        target_handle = first_compatible_input(node.kind, source_type) if source_type else None
        if target_handle is not None:
            conn = Connection(source=source.id, source_handle=source_handle, target=node.id, target_handle=target_handle)
            result = self._plan_connection(self._edges, conn)
            if result is not None:
                self._edges = result[0]
        return node.id

    # ---------- Whole-graph operations ----------

    def export_graph(self) -> WorkflowFile:
        graph = WorkflowGraph(id=self.graph_id, name=self.name, nodes=list(self.nodes), edges=list(self.edges))
        return new_workflow_file(graph, created_at=self.created_at)

    def import_graph(self, file: Union[WorkflowFile, dict], name: Optional[str] = None) -> None:
        """Replace the whole graph. Validation errors propagate before anything changes."""
        data = file.to_dict() if isinstance(file, WorkflowFile) else file
        wf = parse_workflow_file(data)
        self._record()
        self.graph_id = wf.graph.id
        self.name = name or wf.graph.name
        self.created_at = wf.created_at
        self._nodes = list(wf.graph.nodes)
        self._edges = list(wf.graph.edges)
        self._selected = []
        log.info(f"Imported graph '{self.name}' ({len(self._nodes)} nodes, {len(self._edges)} edges)")

    def reset(self) -> None:
        self._record()
        self.graph_id = _new_id()
        self.name = self.settings.DEFAULT_GRAPH_NAME
        self.created_at = None
        self._install_initial_graph()

    def undo(self) -> bool:
        snap = self.history.undo(self._nodes, self._edges)
        if snap is None:
            return False
        self._nodes, self._edges = snap.restore()
        self._prune_selection()
        return True

    def redo(self) -> bool:
        snap = self.history.redo(self._nodes, self._edges)
        if snap is None:
            return False
        self._nodes, self._edges = snap.restore()
        self._prune_selection()
        return True

    # ---------- Internals ----------

    def _install_initial_graph(self) -> None:
        self._nodes = [make_node(NodeKind.manual_trigger, INITIAL_TRIGGER_POSITION)]
        self._edges = []
        self._selected = []

    def _record(self) -> None:
        self.history.record(self._nodes, self._edges)

    def _find(self, node_id: Optional[str]) -> Optional[Node]:
        for n in self._nodes:
            if n.id == node_id:
                return n
        return None

    def _selected_nodes(self) -> list[Node]:
        chosen = set(self._selected)
        return [n for n in self._nodes if n.id in chosen]

    def _prune_selection(self) -> None:
        self.select(self._selected)

    def _place_copies(self, originals: Iterable[Node]) -> list[str]:
        offset = self.settings.PASTE_OFFSET
        copies = [
            n.model_copy(update={"id": _new_id(), "position": n.position.offset(offset, offset)}, deep=True)
            for n in originals
        ]
        self._nodes.extend(copies)
        self._selected = [c.id for c in copies]
        return list(self._selected)

    @staticmethod
    def _on_handle(edges: Iterable[Edge], node_id: str, direction: Direction, handle_id: Optional[str]) -> list[Edge]:
        if direction == "source":
            return [e for e in edges if e.source == node_id and e.source_handle == handle_id]
        return [e for e in edges if e.target == node_id and e.target_handle == handle_id]

    def _plan_connection(self, edges: list[Edge], conn: Connection) -> Optional[tuple[list[Edge], Edge]]:
        """
        Compute the edge list after applying `conn` without touching state.
        Full handles are trimmed first (source, then target). Returns None when
        the connection is illegal; returns `edges` itself (same object) when an
        identical edge survives the trimming and nothing was evicted.
        """
        if not conn.source or not conn.target or conn.source == conn.target:
            log.debug(f"connect dropped: bad endpoints {conn.source!r} -> {conn.target!r}")
            return None
        source, target = self._find(conn.source), self._find(conn.target)
        if source is None or target is None:
            log.debug("connect dropped: unknown node")
            return None

        sh = normalize_source_handle(source.kind, conn.source_handle)
        th = normalize_target_handle(target.kind, conn.target_handle)
        if sh is None or th is None:
            log.debug(f"connect dropped: unresolvable handle {conn.source_handle!r} -> {conn.target_handle!r}")
            return None

        st = resolve_source_type(source.kind, source.params, sh)
        tt = resolve_target_type(target.kind, th)
        if st is None or tt is None or not is_compatible(st, tt):
            log.debug(f"connect dropped: incompatible types {st} -> {tt}")
            return None

        src_max = max_connections(source.kind, "source", sh)
        tgt_max = max_connections(target.kind, "target", th)
        if src_max <= 0 or tgt_max <= 0:
            return None

        out = list(edges)
        for node_id, direction, handle, limit in (
            (source.id, "source", sh, src_max),
            (target.id, "target", th, tgt_max),
        ):
            current = self._on_handle(out, node_id, direction, handle)
            if len(current) >= limit:
                evict = {e.id for e in current[: len(current) - limit + 1]}
                out = [e for e in out if e.id not in evict]

        for e in out:
            if e.source == source.id and e.target == target.id and e.source_handle == sh and e.target_handle == th:
                return (edges if len(out) == len(edges) else out), e

        edge = Edge(id=_new_id(), source=source.id, source_handle=sh, target=target.id, target_handle=th)
        out.append(edge)
        return out, edge

    def _edge_problem(self, e: Edge) -> Optional[str]:
        source, target = self._find(e.source), self._find(e.target)
        if source is None or target is None:
            return "dangling endpoint"
        if normalize_source_handle(source.kind, e.source_handle) != e.source_handle:
            return f"unknown source handle {e.source_handle!r} on {source.kind.value}"
        if normalize_target_handle(target.kind, e.target_handle) != e.target_handle:
            return f"unknown target handle {e.target_handle!r} on {target.kind.value}"
        st = resolve_source_type(source.kind, source.params, e.source_handle)
        tt = resolve_target_type(target.kind, e.target_handle)
        if st is None or tt is None or not is_compatible(st, tt):
            return f"incompatible types {getattr(st, 'value', st)} -> {getattr(tt, 'value', tt)}"
        return None
