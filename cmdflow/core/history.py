# cmdflow/core/history.py
from __future__ import annotations

"""Undo/redo history
--------------------
Bounded snapshot stacks over (nodes, edges). Snapshots are deep copies, so
later edits to the live graph never leak into recorded history.
"""

from collections import deque
from dataclasses import dataclass
from typing import Optional, Sequence

from cmdflow.core.models import Edge, Node


@dataclass(frozen=True)
class Snapshot:
    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...]

    @classmethod
    def capture(cls, nodes: Sequence[Node], edges: Sequence[Edge]) -> "Snapshot":
        return cls(
            nodes=tuple(n.model_copy(deep=True) for n in nodes),
            edges=tuple(e.model_copy(deep=True) for e in edges),
        )

    def restore(self) -> tuple[list[Node], list[Edge]]:
        """Fresh mutable copies; the snapshot itself stays untouched."""
        return (
            [n.model_copy(deep=True) for n in self.nodes],
            [e.model_copy(deep=True) for e in self.edges],
        )


class HistoryManager:
    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError("history capacity must be >= 1")
        self.capacity = capacity
        # rightmost = most recent on both stacks
        self._past: deque[Snapshot] = deque(maxlen=capacity)
        self._future: deque[Snapshot] = deque(maxlen=capacity)

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def __len__(self) -> int:
        return len(self._past)

    def record(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> None:
        """Push the pre-mutation state; any pending redo branch is discarded."""
        self._past.append(Snapshot.capture(nodes, edges))
        self._future.clear()

    def undo(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> Optional[Snapshot]:
        if not self._past:
            return None
        target = self._past.pop()
        self._future.append(Snapshot.capture(nodes, edges))
        return target

    def redo(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> Optional[Snapshot]:
        if not self._future:
            return None
        target = self._future.pop()
        self._past.append(Snapshot.capture(nodes, edges))
        return target

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()
