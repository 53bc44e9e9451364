# cmdflow/core/models.py
from __future__ import annotations

"""Graph data model
-------------------
Pydantic models for nodes, edges, connection requests and the versioned
workflow file. Nodes are stored flat (`kind`, `label`, `params`, ...) and
serialized in the canvas shape `{id, type, position, data: {...}}` so files
stay interchangeable with the editor.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cmdflow.core.catalog import NodeKind, get_meta


WORKFLOW_FILE_VERSION = "1.0.0"


# ---------- Geometry ----------


class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0

    def offset(self, dx: float, dy: float) -> "Position":
        return Position(x=self.x + dx, y=self.y + dy)


# ---------- Nodes ----------


class Node(BaseModel):
    id: str
    kind: NodeKind
    position: Position = Field(default_factory=Position)
    label: str = ""
    description: Optional[str] = None
    params: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _lift_canvas_shape(cls, data: Any) -> Any:
        # {id, type, position, data: {kind, label, params, description}}
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            inner = data["data"]
            flat = {k: v for k, v in data.items() if k not in ("data", "type")}
            flat["kind"] = inner.get("kind", data.get("type"))
            for key in ("label", "description", "params"):
                if key in inner:
                    flat[key] = inner[key]
            return flat
        return data

    @field_validator("params", mode="before")
    @classmethod
    def _params_mapping(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}

    @field_validator("id")
    @classmethod
    def _id_non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("node id cannot be empty")
        return v

    def param(self, key: str, default: Any = None) -> Any:
        """Parameter value, falling back to the catalog default for this kind."""
        if key in self.params:
            return self.params[key]
        return get_meta(self.kind).default_params.get(key, default)

    def with_defaults(self) -> "Node":
        """Copy whose params are the catalog defaults overlaid with this node's params."""
        meta = get_meta(self.kind)
        return self.model_copy(update={
            "label": self.label or meta.label,
            "description": self.description or meta.description,
            "params": {**meta.defaults(), **self.params},
        }, deep=True)

    def to_canvas(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "label": self.label, "params": self.params}
        if self.description is not None:
            data["description"] = self.description
        return {
            "id": self.id,
            "type": self.kind.value,
            "position": self.position.model_dump(),
            "data": data,
        }


# ---------- Edges ----------


class Edge(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id

    def same_link(self, other: "Edge") -> bool:
        return (
            self.source == other.source
            and self.target == other.target
            and self.source_handle == other.source_handle
            and self.target_handle == other.target_handle
        )

    def to_canvas(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class Connection(BaseModel):
    """A requested edge; handles may be omitted when unambiguous."""

    model_config = ConfigDict(populate_by_name=True)

    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")


# ---------- Graph / file ----------


class WorkflowGraph(BaseModel):
    id: str
    name: str
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def to_canvas(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "nodes": [n.to_canvas() for n in self.nodes],
            "edges": [e.to_canvas() for e in self.edges],
        }


class WorkflowFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: str = WORKFLOW_FILE_VERSION
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")
    graph: WorkflowGraph

    @field_validator("version")
    @classmethod
    def _supported_version(cls, v: str) -> str:
        if v != WORKFLOW_FILE_VERSION:
            raise ValueError(f"unsupported workflow file version {v!r} (expected {WORKFLOW_FILE_VERSION!r})")
        return v

    @model_validator(mode="after")
    def _edges_reference_nodes(self) -> "WorkflowFile":
        ids = self.graph.node_ids()
        for edge in self.graph.edges:
            missing = [end for end in (edge.source, edge.target) if end not in ids]
            if missing:
                raise ValueError(f"edge {edge.id!r} references missing node(s): {', '.join(missing)}")
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "graph": self.graph.to_canvas(),
        }


__all__ = [
    "WORKFLOW_FILE_VERSION",
    "Position",
    "Node",
    "Edge",
    "Connection",
    "WorkflowGraph",
    "WorkflowFile",
]
