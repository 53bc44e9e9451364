# cmdflow/core/workflow_file.py
from __future__ import annotations

"""Workflow file I/O
--------------------
Validates the versioned workflow envelope, normalizes nodes (canvas or flat
shape, params merged over catalog defaults, resolvable handles filled in)
and reads/writes JSON or YAML files. Everything is rejected before it can
reach the graph store.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional
import json

import yaml
from pydantic import ValidationError

from cmdflow.core.models import WORKFLOW_FILE_VERSION, Edge, Node, WorkflowFile, WorkflowGraph
from cmdflow.core.ports import normalize_source_handle, normalize_target_handle


YAML_SUFFIXES = (".yaml", ".yml")
WORKFLOW_SUFFIXES = (".json",) + YAML_SUFFIXES


class WorkflowFileError(ValueError):
    """Raised when a workflow file cannot be accepted for import."""


# ---------- Helpers ----------


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _format_validation_error(ve: ValidationError, source: str) -> str:
    lines = [f"Invalid workflow '{source}':"]
    for e in ve.errors():
        loc = ".".join(str(p) for p in e.get("loc", []))
        msg = e.get("msg", "invalid value")
        lines.append(f"  - {loc}: {msg}" if loc else f"  - {msg}")
    return "\n".join(lines)


def _check_envelope(data: Any, source: str) -> None:
    # cheap shape check so messages name the envelope field, not a pydantic loc
    if not isinstance(data, dict):
        raise WorkflowFileError(f"Workflow '{source}' must be a mapping/object at the top level.")
    version = data.get("version")
    if version != WORKFLOW_FILE_VERSION:
        raise WorkflowFileError(
            f"Workflow '{source}' has unsupported version {version!r} (expected {WORKFLOW_FILE_VERSION!r})."
        )
    graph = data.get("graph")
    if not isinstance(graph, dict):
        raise WorkflowFileError(f"Workflow '{source}' is missing the 'graph' object.")
    problems = []
    for key in ("id", "name"):
        if not isinstance(graph.get(key), str):
            problems.append(f"graph.{key} must be a string")
    for key in ("nodes", "edges"):
        if not isinstance(graph.get(key), list):
            problems.append(f"graph.{key} must be a list")
    if problems:
        raise WorkflowFileError(f"Invalid workflow '{source}':\n" + "\n".join(f"  - {p}" for p in problems))


def _normalize_edges(nodes: list[Node], edges: list[Edge]) -> list[Edge]:
    kinds = {n.id: n.kind for n in nodes}
    out: list[Edge] = []
    for e in edges:
        update: dict[str, Optional[str]] = {}
        if e.source_handle is None and e.source in kinds:
            update["source_handle"] = normalize_source_handle(kinds[e.source], None)
        if e.target_handle is None and e.target in kinds:
            update["target_handle"] = normalize_target_handle(kinds[e.target], None)
        out.append(e.model_copy(update=update) if update else e)
    return out


# ---------- Public API ----------


def parse_workflow_file(data: Any, source: str = "<memory>") -> WorkflowFile:
    """
    Validate a decoded workflow document and return a normalized WorkflowFile.
    Raises WorkflowFileError listing every problem found.
    """
    _check_envelope(data, source)
    try:
        wf = WorkflowFile.model_validate(data)
    except ValidationError as ve:
        raise WorkflowFileError(_format_validation_error(ve, source)) from ve

    nodes = [n.with_defaults() for n in wf.graph.nodes]
    seen: set[str] = set()
    dupes: list[str] = []
    for n in nodes:
        if n.id in seen:
            dupes.append(n.id)
        seen.add(n.id)
    if dupes:
        raise WorkflowFileError(f"Invalid workflow '{source}':\n  - duplicate node ids: {', '.join(dupes)}")

    graph = wf.graph.model_copy(update={"nodes": nodes, "edges": _normalize_edges(nodes, wf.graph.edges)})
    return wf.model_copy(update={"graph": graph})


def new_workflow_file(graph: WorkflowGraph, created_at: Optional[str] = None) -> WorkflowFile:
    now = utc_timestamp()
    return WorkflowFile(version=WORKFLOW_FILE_VERSION, created_at=created_at or now, updated_at=now, graph=graph)


def loads_workflow(text: str, *, yaml_format: bool = False, source: str = "<memory>") -> WorkflowFile:
    try:
        data = yaml.safe_load(text) if yaml_format else json.loads(text)
    except yaml.YAMLError as ye:
        raise WorkflowFileError(f"YAML parse error in {source}: {ye}") from ye
    except json.JSONDecodeError as je:
        raise WorkflowFileError(f"JSON parse error in {source}: {je}") from je
    return parse_workflow_file(data, source)


def dumps_workflow(wf: WorkflowFile, *, yaml_format: bool = False) -> str:
    data = wf.to_dict()
    if yaml_format:
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    return json.dumps(data, ensure_ascii=False, indent=2)


def load_workflow_file(path: Path | str) -> WorkflowFile:
    wf_path = Path(path)
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    raw = wf_path.read_text(encoding="utf-8")
    return loads_workflow(raw, yaml_format=wf_path.suffix.lower() in YAML_SUFFIXES, source=str(wf_path))


def save_workflow_file(wf: WorkflowFile, path: Path | str) -> Path:
    wf_path = Path(path)
    wf_path.parent.mkdir(parents=True, exist_ok=True)
    text = dumps_workflow(wf, yaml_format=wf_path.suffix.lower() in YAML_SUFFIXES)
    wf_path.write_text(text, encoding="utf-8")
    return wf_path


def find_workflow_files(root: Path | str, *, recursive: bool = True) -> list[Path]:
    r = Path(root)
    if r.is_file():
        return [r]
    pattern = "**/*" if recursive else "*"
    return sorted(p for p in r.glob(pattern) if p.is_file() and p.suffix.lower() in WORKFLOW_SUFFIXES)


def load_workflow_files(paths: Iterable[Path]) -> tuple[list[tuple[Path, WorkflowFile]], list[tuple[Path, str]]]:
    """Load many files; returns (loaded, failures) instead of stopping at the first bad one."""
    loaded: list[tuple[Path, WorkflowFile]] = []
    failures: list[tuple[Path, str]] = []
    for p in paths:
        try:
            loaded.append((p, load_workflow_file(p)))
        except (WorkflowFileError, OSError) as e:
            failures.append((p, str(e)))
    return loaded, failures


__all__ = [
    "WorkflowFileError",
    "utc_timestamp",
    "parse_workflow_file",
    "new_workflow_file",
    "loads_workflow",
    "dumps_workflow",
    "load_workflow_file",
    "save_workflow_file",
    "find_workflow_files",
    "load_workflow_files",
]
