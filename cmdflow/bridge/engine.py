# cmdflow/bridge/engine.py
from __future__ import annotations

"""Execution engine contract
----------------------------
What the graph engine needs from whatever actually performs automation:
a reduced, snake_case graph handed to `run_workflow`, a `stop` call, and a
stream of notifications (node started, variable snapshot, log line).
`PreviewEngine` satisfies the contract without executing anything.
"""

from typing import Annotated, Any, Literal, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, Field, TypeAdapter

from cmdflow.core.models import WorkflowFile, WorkflowGraph
from cmdflow.utils.logger import get_logger


log = get_logger(__name__)

PREVIEW_RUN_MESSAGE = "Preview mode: no execution engine attached, skipped real execution."
PREVIEW_STOP_MESSAGE = "Preview mode: no execution engine attached."


class EngineError(RuntimeError):
    """The execution engine rejected or failed a request."""


# ---------- Reduced graph ----------


class BackendNode(BaseModel):
    id: str
    label: str
    kind: str
    position_x: float
    position_y: float
    params: dict[str, Any] = Field(default_factory=dict)


class BackendEdge(BaseModel):
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


class BackendGraph(BaseModel):
    id: str
    name: str
    nodes: list[BackendNode] = Field(default_factory=list)
    edges: list[BackendEdge] = Field(default_factory=list)


def to_backend_graph(source: Union[WorkflowFile, WorkflowGraph]) -> BackendGraph:
    graph = source.graph if isinstance(source, WorkflowFile) else source
    return BackendGraph(
        id=graph.id,
        name=graph.name,
        nodes=[
            BackendNode(
                id=n.id,
                label=n.label,
                kind=n.kind.value,
                position_x=n.position.x,
                position_y=n.position.y,
                params=n.params,
            )
            for n in graph.nodes
        ],
        edges=[
            BackendEdge(
                id=e.id,
                source=e.source,
                target=e.target,
                source_handle=e.source_handle,
                target_handle=e.target_handle,
            )
            for e in graph.edges
        ],
    )


# ---------- Events ----------


class NodeStarted(BaseModel):
    type: Literal["node_started"] = "node_started"
    node_id: str


class VariablesUpdated(BaseModel):
    type: Literal["variables"] = "variables"
    variables: dict[str, Any] = Field(default_factory=dict)


class LogEvent(BaseModel):
    type: Literal["log"] = "log"
    level: str = "info"
    message: str


EngineEvent = Annotated[Union[NodeStarted, VariablesUpdated, LogEvent], Field(discriminator="type")]

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(EngineEvent)


def parse_event(payload: dict[str, Any]) -> Union[NodeStarted, VariablesUpdated, LogEvent]:
    """Decode a raw notification payload; raises pydantic.ValidationError on junk."""
    return _EVENT_ADAPTER.validate_python(payload)


# ---------- Contract ----------


@runtime_checkable
class ExecutionEngine(Protocol):
    async def run_workflow(self, graph: BackendGraph) -> str: ...

    async def stop(self) -> str: ...


class PreviewEngine:
    """Stand-in engine: records requests, executes nothing."""

    def __init__(self) -> None:
        self.requests: list[BackendGraph] = []
        self.stop_calls = 0

    async def run_workflow(self, graph: BackendGraph) -> str:
        self.requests.append(graph)
        log.debug(f"preview run: {[n.kind for n in graph.nodes]}")
        return PREVIEW_RUN_MESSAGE

    async def stop(self) -> str:
        self.stop_calls += 1
        return PREVIEW_STOP_MESSAGE


__all__ = [
    "EngineError",
    "BackendNode",
    "BackendEdge",
    "BackendGraph",
    "to_backend_graph",
    "NodeStarted",
    "VariablesUpdated",
    "LogEvent",
    "EngineEvent",
    "parse_event",
    "ExecutionEngine",
    "PreviewEngine",
]
