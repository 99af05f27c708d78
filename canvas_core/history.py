"""
Snapshot-based undo/redo history.

The history system works via snapshots:
- Before each mutation the current (nodes, edges, title) is recorded
- Undo restores the previous snapshot and moves the current state to redo
- Redo is the mirror image
- Recording a new snapshot discards the redo stack (linear history)

Snapshots hold references to frozen node/edge tuples, so recording one is
cheap and can never alias mutable state.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from .models import Canvas, Edge, Node


class Snapshot(BaseModel):
    """One undo/redo unit."""
    model_config = ConfigDict(frozen=True)

    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()
    title: str = ""

    @classmethod
    def of(cls, canvas: Canvas) -> "Snapshot":
        return cls(nodes=canvas.nodes, edges=canvas.edges, title=canvas.title)

    def apply_to(self, canvas: Canvas) -> Canvas:
        return canvas.model_copy(update={"nodes": self.nodes, "edges": self.edges, "title": self.title})


class HistoryManager:
    """Two bounded stacks of snapshots."""

    def __init__(self, max_history: int = 100):
        self._undo_stack: list[Snapshot] = []
        self._redo_stack: list[Snapshot] = []
        self._max_history = max_history

    @property
    def can_undo(self) -> bool:
        return len(self._undo_stack) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._redo_stack) > 0

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    @property
    def redo_depth(self) -> int:
        return len(self._redo_stack)

    def record(self, current: Snapshot) -> None:
        """Push the pre-mutation state. Must be called before the mutation."""
        self._redo_stack.clear()
        self._undo_stack.append(current)
        # Trim history if too long
        if len(self._undo_stack) > self._max_history:
            self._undo_stack.pop(0)

    def undo(self, current: Snapshot) -> Optional[Snapshot]:
        """Return the state to restore, or None if there is nothing to undo."""
        if not self._undo_stack:
            return None
        self._redo_stack.append(current)
        return self._undo_stack.pop()

    def redo(self, current: Snapshot) -> Optional[Snapshot]:
        """Return the state to restore, or None if there is nothing to redo."""
        if not self._redo_stack:
            return None
        self._undo_stack.append(current)
        return self._redo_stack.pop()

    def clear(self) -> None:
        self._undo_stack.clear()
        self._redo_stack.clear()
