# cmdflow/core/session.py
from __future__ import annotations

"""Step session
---------------
Async driver for the step debugger. Each step sends a single-node graph to
the execution engine, then lets the interpreter pick the next node. In
continuous mode it repeats with a short pause, honoring a stop flag after
every await and a hard cap on visited nodes.

Failures never escape as exceptions: they come back as a StepOutcome and
leave the session reset, so the next step starts clean.
"""

import os
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from pydantic import ValidationError

from cmdflow.bridge.engine import (
    ExecutionEngine,
    LogEvent,
    NodeStarted,
    VariablesUpdated,
    parse_event,
    to_backend_graph,
)
from cmdflow.core.interpreter import StepError, StepInterpreter, strict_equals
from cmdflow.core.models import Node, WorkflowGraph
from cmdflow.core.store import GraphStore
from cmdflow.utils.config import Settings, get_settings
from cmdflow.utils.logger import attach_file_logger, detach_file_logger, get_logger, log_with_context
from cmdflow.utils.timing import Stopwatch, async_sleep_ms, format_elapsed


class StepStatus(str, Enum):
    advanced = "advanced"
    finished = "finished"
    stale = "stale"
    failed = "failed"
    stopped = "stopped"
    guard_limit = "guard_limit"
    no_start = "no_start"
    busy = "busy"


@dataclass
class StepOutcome:
    status: StepStatus
    node_id: Optional[str] = None
    next_node_id: Optional[str] = None
    message: str = ""
    variables: dict[str, Any] = field(default_factory=dict)
    steps: int = 0

    @property
    def ok(self) -> bool:
        return self.status in (StepStatus.advanced, StepStatus.finished)


_LOG_LEVELS = {"debug": 10, "info": 20, "success": 20, "warn": 30, "warning": 30, "error": 40}


class StepSession:
    def __init__(
        self,
        store: GraphStore,
        engine: ExecutionEngine,
        settings: Optional[Settings] = None,
        log_file: Optional[os.PathLike | str] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.engine = engine
        self.interpreter = StepInterpreter(store)
        self.session_id = uuid.uuid4().hex[:8]
        self.log = log_with_context(get_logger(__name__), session=self.session_id)
        self.log_file = log_file

        self.last_variables: dict[str, Any] = {}
        self.engine_variables: Optional[dict[str, Any]] = None
        self.last_started_node_id: Optional[str] = None
        self.engine_logs: list[LogEvent] = []

        self._busy = False
        self._stop_requested = False
        self._positioned_on: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def current_node_id(self) -> Optional[str]:
        return self.interpreter.current_id

    # ---------- Public API ----------

    async def step_once(self) -> StepOutcome:
        """
        Run exactly one node and position on the next one. Selecting a
        different node between steps discards the context and restarts there.
        """
        if self._busy:
            return StepOutcome(StepStatus.busy, message="A step is already in flight.")
        self._busy = True
        self._stop_requested = False
        try:
            start = None
            selected = self.store.selected_id
            if self.interpreter.active and selected is not None and selected != self._positioned_on:
                self.log.info(f"Selection moved to {selected}; step context discarded")
                self.reset()
                start = selected
            if not self.interpreter.active:
                outcome = self._begin(start)
                if outcome is not None:
                    return outcome
            node = self._current_or_stale()
            if isinstance(node, StepOutcome):
                return node
            outcome = await self._execute(node)
            outcome.steps = 1
            return outcome
        finally:
            self._busy = False

    async def run_continuous(self, start_node_id: Optional[str] = None) -> StepOutcome:
        """
        Step repeatedly from `start_node_id` (default: the primary selection,
        else the regular start nodes) until the flow ends, something fails,
        stop() is called or the guard limit is reached.
        """
        if self._busy:
            return StepOutcome(StepStatus.busy, message="A step is already in flight.")
        self._busy = True
        self._stop_requested = False
        handler = attach_file_logger(self.log_file) if self.log_file else None
        guard = self.settings.STEP_GUARD_LIMIT
        visited = 0
        try:
            with Stopwatch() as sw:
                outcome = self._begin(start_node_id or self.store.selected_id)
                if outcome is not None:
                    return outcome
                while visited < guard:
                    if self._stop_requested:
                        return self._stopped(visited)
                    node = self._current_or_stale()
                    if isinstance(node, StepOutcome):
                        node.steps = visited
                        return node
                    visited += 1
                    outcome = await self._execute(node)
                    outcome.steps = visited
                    if outcome.status is not StepStatus.advanced:
                        self.log.info(f"Continuous stepping ended ({outcome.status.value}) after "
                                      f"{visited} node(s) in {format_elapsed(sw.elapsed_ms())}")
                        return outcome
                    if self._stop_requested:
                        return self._stopped(visited)
                    await async_sleep_ms(self.settings.STEP_DELAY_MS)

                self.log.warning(f"Continuous stepping hit the guard limit of {guard} nodes; stopped")
                self.interpreter.reset()
                return StepOutcome(StepStatus.guard_limit, message=f"Guard limit of {guard} nodes reached.",
                                   variables=dict(self.last_variables), steps=visited)
        finally:
            self._busy = False
            self._stop_requested = False
            if handler is not None:
                detach_file_logger(handler)

    async def stop(self) -> str:
        """Ask any running loop to stop, drop the step context and tell the engine."""
        self._stop_requested = True
        self.interpreter.reset()
        try:
            return await self.engine.stop()
        except Exception as e:
            self.log.error(f"Engine stop failed: {e}")
            return f"Stop failed: {e}"

    def reset(self) -> None:
        self.interpreter.reset()
        self.last_variables = {}

    def handle_event(self, event: Union[NodeStarted, VariablesUpdated, LogEvent, dict]) -> None:
        """Relay an engine notification into display state. Never steers stepping."""
        if isinstance(event, dict):
            try:
                event = parse_event(event)
            except ValidationError as ve:
                self.log.debug(f"ignoring malformed engine event: {ve.error_count()} error(s)")
                return
        if isinstance(event, NodeStarted):
            self.last_started_node_id = event.node_id
        elif isinstance(event, VariablesUpdated):
            self.engine_variables = dict(event.variables)
        elif isinstance(event, LogEvent):
            self.engine_logs.append(event)
            self.log.log(_LOG_LEVELS.get(event.level.lower(), 20), f"[engine] {event.message}")

    def divergence(self) -> list[str]:
        """
        Variable names whose locally re-derived value disagrees with the
        last snapshot the engine reported. Empty until the engine reports.
        """
        if self.engine_variables is None:
            return []
        names = set(self.last_variables) | set(self.engine_variables)
        return sorted(
            name for name in names
            if name not in self.last_variables
            or name not in self.engine_variables
            or not strict_equals(self.last_variables[name], self.engine_variables[name])
        )

    # ---------- Internals ----------

    def _begin(self, start_node_id: Optional[str]) -> Optional[StepOutcome]:
        try:
            start = self.interpreter.begin(start_node_id)
        except StepError as e:
            self.log.error(str(e))
            return StepOutcome(StepStatus.no_start, message=str(e))
        if start is None:
            self.log.warning("Nothing to step: the workflow has no runnable start node")
            return StepOutcome(StepStatus.no_start, message="No runnable start node.")
        self.last_variables = {}
        node = self.store.get_node(start)
        self._positioned_on = self.store.selected_id
        self.log.info(f"Step session started at '{node.label if node else start}'")
        return None

    def _current_or_stale(self) -> Union[Node, StepOutcome]:
        node = self.interpreter.current_node()
        if node is not None:
            return node
        missing = self.interpreter.current_id
        self.log.warning(f"Step context is stale: node {missing} no longer exists; session reset")
        self.interpreter.reset()
        return StepOutcome(StepStatus.stale, node_id=missing,
                           message="The current node no longer exists; pick a start again.")

    def _single_node_graph(self, node: Node) -> WorkflowGraph:
        return WorkflowGraph(id=self.store.graph_id, name=self.store.name, nodes=[node], edges=[])

    async def _execute(self, node: Node) -> StepOutcome:
        node_log = log_with_context(self.log, node_id=node.id, kind=node.kind.value)
        node_log.info(f"Stepping node '{node.label}'")
        self.interpreter.mark_awaiting()
        try:
            message = await self.engine.run_workflow(to_backend_graph(self._single_node_graph(node)))
            if self._stop_requested:
                return self._stopped(0, node.id)
            nxt = self.interpreter.advance(node)
        except Exception as e:  # EngineError, StepError, or anything the engine leaks
            node_log.error(f"Step failed at '{node.label}': {e}", exc_info=self.settings.DEBUG_MODE)
            self.interpreter.reset()
            return StepOutcome(StepStatus.failed, node_id=node.id, message=str(e),
                               variables=dict(self.last_variables))

        self.last_variables = dict(self.interpreter.context.variables)
        if nxt is None:
            node_log.info(f"Step complete: {message} (end of flow)")
            self.interpreter.reset()
            return StepOutcome(StepStatus.finished, node_id=node.id, message=message,
                               variables=dict(self.last_variables))

        if not self.store.has_node(nxt):
            node_log.warning(f"Step complete, but next node {nxt} does not exist; session reset")
            self.interpreter.reset()
            return StepOutcome(StepStatus.stale, node_id=node.id, next_node_id=nxt, message=message,
                               variables=dict(self.last_variables))

        self.store.select_node(nxt)
        self._positioned_on = nxt
        return StepOutcome(StepStatus.advanced, node_id=node.id, next_node_id=nxt, message=message,
                           variables=dict(self.last_variables))

    def _stopped(self, visited: int, node_id: Optional[str] = None) -> StepOutcome:
        self.log.warning("Stepping stopped")
        self.interpreter.reset()
        return StepOutcome(StepStatus.stopped, node_id=node_id, message="Stopped.",
                           variables=dict(self.last_variables), steps=visited)
