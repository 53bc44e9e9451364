# cmdflow/cli.py
from __future__ import annotations

"""Command-line interface
------------------------
Inspect the node catalog and port model, validate and lint workflow files,
emit the reduced engine graph, and drive the step debugger against the
preview engine. Thin wrapper around the core modules.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import click

from cmdflow import __version__
from cmdflow.bridge.engine import PreviewEngine, to_backend_graph
from cmdflow.core.catalog import NodeKind, all_kinds, get_meta
from cmdflow.core.ports import get_port_spec
from cmdflow.core.session import StepOutcome, StepSession, StepStatus
from cmdflow.core.store import GraphStore
from cmdflow.core.workflow_file import (
    WorkflowFileError,
    find_workflow_files,
    load_workflow_file,
    load_workflow_files,
)
from cmdflow.utils.config import get_settings
from cmdflow.utils.logger import bind, get_logger, set_log_level, unbind


# -------- helpers --------


def _echo_json(obj) -> None:
    click.echo(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


def _resolve_paths(paths: List[str]) -> List[Path]:
    return [Path(p).resolve() for p in paths]


def _load_store(path: str) -> GraphStore:
    store = GraphStore()
    try:
        store.import_graph(load_workflow_file(path).to_dict())
    except (WorkflowFileError, FileNotFoundError) as e:
        click.echo(f"ERR {path}  ->  {e}")
        sys.exit(1)
    return store


def _outcome_line(store: GraphStore, outcome: StepOutcome) -> str:
    def _label(node_id: Optional[str]) -> str:
        if not node_id:
            return "-"
        node = store.get_node(node_id)
        return f"{node.label} [{node_id[:8]}]" if node else node_id[:8]

    ok = outcome.status in (StepStatus.advanced, StepStatus.finished)
    prefix = "OK  " if ok else "ERR "
    line = f"{prefix}{outcome.status.value:<11} {_label(outcome.node_id)} -> {_label(outcome.next_node_id)}"
    if outcome.message:
        line += f"  ({outcome.message})"
    return line


# -------- CLI root --------


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL from settings",
)
@click.version_option(version=__version__, prog_name="cmdflow")
def cli(log_level: Optional[str]):
    # Initialize settings + logger once at process start
    _ = get_settings()
    if log_level:
        set_log_level(log_level.upper())


# -------- commands --------


@cli.command("config")
def cmd_config():
    """Print effective configuration (after .env & env vars)."""
    _echo_json(get_settings().model_dump(mode="json"))


@cli.command("kinds")
@click.option("--filter", "keyword", type=str, default="", help="Case-insensitive match on label or kind")
def cmd_kinds(keyword: str):
    """List node kinds in the catalog."""
    needle = keyword.strip().lower()
    rows = []
    for kind in all_kinds():
        meta = get_meta(kind)
        if needle and needle not in f"{meta.label} {kind.value}".lower():
            continue
        rows.append((kind, meta))
    if not rows:
        click.echo("No node kinds matched.")
        return
    for kind, meta in rows:
        click.echo(f" - {kind.value:<16} {meta.label}  ({len(meta.fields)} fields)")


@cli.command("ports")
@click.argument("kind", type=click.Choice([k.value for k in NodeKind]))
def cmd_ports(kind: str):
    """Print the input/output ports of a node kind."""
    spec = get_port_spec(kind)

    def _rows(ports):
        return [
            {"id": p.id, "label": p.label, "maxConnections": p.max_connections, "valueType": p.value_type.value}
            for p in ports
        ]

    _echo_json({"kind": kind, "inputs": _rows(spec.inputs), "outputs": _rows(spec.outputs)})


@cli.command("validate")
@click.argument("targets", nargs=-1, required=False)
@click.option("--dir", "workflows_dir", type=click.Path(file_okay=False, dir_okay=True, exists=True),
              help="Validate all workflow files under this directory")
@click.option("--recursive/--no-recursive", default=True, show_default=True)
def cmd_validate(targets: List[str], workflows_dir: Optional[str], recursive: bool):
    """Validate workflow files (JSON or YAML)."""
    paths: list[Path] = []
    if targets:
        for p in _resolve_paths(targets):
            paths.extend(find_workflow_files(p, recursive=True) if p.is_dir() else [p])
    elif workflows_dir:
        paths.extend(find_workflow_files(workflows_dir, recursive=recursive))
    elif get_settings().WORKFLOWS_DIR.is_dir():
        paths.extend(find_workflow_files(get_settings().WORKFLOWS_DIR, recursive=recursive))
    else:
        click.echo("Provide file(s) or --dir to validate (WORKFLOWS_DIR does not exist).")
        sys.exit(2)

    loaded, failures = load_workflow_files(paths)
    for fp, wf in loaded:
        g = wf.graph
        click.echo(f"OK  {fp}  ->  {g.name} ({len(g.nodes)} nodes, {len(g.edges)} edges)")
    for fp, err in failures:
        click.echo(f"ERR {fp}  ->  {err}")

    sys.exit(0 if not failures else 1)


@cli.command("lint")
@click.argument("target", type=click.Path(dir_okay=False, exists=True))
def cmd_lint(target: str):
    """Report edges the editor would refuse today (bad handles, type mismatches)."""
    store = _load_store(target)
    problems = store.invalid_edges()
    if not problems:
        click.echo(f"OK  {target}  ->  {len(store.edges)} edge(s) valid")
        return
    for edge, reason in problems:
        click.echo(f"ERR edge {edge.id}  {edge.source}:{edge.source_handle} -> "
                   f"{edge.target}:{edge.target_handle}  ->  {reason}")
    sys.exit(1)


@cli.command("export-backend")
@click.argument("target", type=click.Path(dir_okay=False, exists=True))
@click.option("--out", "out_path", type=click.Path(dir_okay=False), default=None, help="Write to this file")
def cmd_export_backend(target: str, out_path: Optional[str]):
    """Print the reduced graph sent to the execution engine."""
    store = _load_store(target)
    graph = to_backend_graph(store.export_graph()).model_dump(mode="json")
    if out_path:
        outp = Path(out_path).resolve()
        outp.parent.mkdir(parents=True, exist_ok=True)
        outp.write_text(json.dumps(graph, indent=2, ensure_ascii=False), encoding="utf-8")
        click.echo(f"Wrote backend graph: {outp}")
        return
    _echo_json(graph)


@cli.command("step")
@click.argument("target", type=click.Path(dir_okay=False, exists=True))
@click.option("--steps", "max_steps", type=int, default=1, show_default=True,
              help="Single steps to take (ignored with --continuous)")
@click.option("--continuous", is_flag=True, default=False, help="Step until the flow ends or a guard trips")
@click.option("--start", "start_node", type=str, default=None, help="Start node id for --continuous")
@click.option("--delay-ms", type=int, default=None, help="Override STEP_DELAY_MS for --continuous")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Also write a JSON session log")
def cmd_step(target: str, max_steps: int, continuous: bool, start_node: Optional[str],
             delay_ms: Optional[int], log_file: Optional[str]):
    """
    Step through a workflow with the preview engine (nothing is executed).

    Examples:
      cmdflow step workflows/login.json --steps 5
      cmdflow step workflows/login.json --continuous --delay-ms 0
    """
    settings = get_settings()
    if delay_ms is not None:
        settings = settings.model_copy(update={"STEP_DELAY_MS": max(0, delay_ms)})
    log = get_logger(__name__)

    store = _load_store(target)
    session = StepSession(store, PreviewEngine(), settings=settings, log_file=log_file)
    bind(graph_id=store.graph_id)

    async def _run() -> list[StepOutcome]:
        if continuous:
            return [await session.run_continuous(start_node)]
        out: list[StepOutcome] = []
        for _ in range(max(1, max_steps)):
            outcome = await session.step_once()
            out.append(outcome)
            if outcome.status is not StepStatus.advanced:
                break
        return out

    try:
        outcomes = asyncio.run(_run())
    finally:
        unbind("graph_id")

    for outcome in outcomes:
        click.echo(_outcome_line(store, outcome))
    last = outcomes[-1]
    if last.variables:
        click.echo("Variables:")
        for name, value in sorted(last.variables.items()):
            click.echo(f"  {name} = {json.dumps(value, ensure_ascii=False, default=str)}")
    log.debug(f"step command finished with {last.status.value}")
    sys.exit(0 if last.status in (StepStatus.advanced, StepStatus.finished) else 1)


def main() -> None:
    cli(prog_name="cmdflow")


if __name__ == "__main__":
    main()
