"""
Canvas Session - Editing state, history, clipboard and sync for one canvas.

This module implements:
- Single canvas state management (one canvas open per session)
- Selection state and selection-scoped bulk edits
- Linear undo/redo history using snapshots
- Copy / cut / duplicate / paste
- Layout operations delegated to canvas_core.layout
- Load and full-replace save against the external store

Every mutating command records exactly one history snapshot before its
effect is applied. Commands that are rejected raise a ValidationError and
leave both the document and the history untouched.

Network calls never block local editing: the document can be changed while
a save is in flight; the save writes the state it captured when it started.
Saves are serialised; a queued save whose state is already stored is skipped.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, Callable, Optional

from canvas_core import graph as ops
from canvas_core.clipboard import ClipboardService
from canvas_core.errors import (
    LoadError,
    SaveError,
    StoreError,
    UnknownNodeError,
    ValidationError,
)
from canvas_core.history import HistoryManager, Snapshot
from canvas_core.layout import align_nodes, apply_layout, distribute_nodes
from canvas_core.models import Canvas, CanvasDraft, Edge, Graph, Node, NodeKind, Visibility, replace_model

from .persistence import CanvasRepository
from .store import CanvasStore

logger = logging.getLogger(__name__)

ALIGNMENTS = ("left", "right", "top", "bottom", "center_h", "center_v")
AXES = ("horizontal", "vertical")

# new nodes without an explicit position cascade from here
NEW_NODE_ORIGIN = (100.0, 100.0)
NEW_NODE_STEP = 20.0


class CanvasSession:
    """
    Manages a single canvas's editing state, history and persistence.

    Features:
    - Snapshot-based undo/redo history
    - Selection owned by the session (never stored on the document)
    - Change callbacks for re-rendering, save callbacks for the host app
    """

    def __init__(
        self,
        store: CanvasStore,
        *,
        draft: Optional[CanvasDraft] = None,
        workspace_id: Optional[str] = None,
        max_history: int = 100,
    ):
        self._repository = CanvasRepository(store)
        self._canvas = Canvas(workspace_id=workspace_id)
        self._history = HistoryManager(max_history=max_history)
        self._clipboard = ClipboardService()
        self._selected_nodes: set[str] = set()
        self._selected_edges: set[str] = set()
        self._dirty = False
        self._revision = 0
        self._saved_revision: Optional[int] = None
        self._load_generation = 0
        # bumped whenever the session switches to a different document
        self._document = 0
        self._closed = False
        self._saving = False
        self._save_lock = asyncio.Lock()
        self._on_change_callbacks: list[Callable[[], None]] = []
        self._on_save_callbacks: list[Callable[[str], None]] = []

        if draft is not None:
            self._hydrate(draft, workspace_id)

    def _hydrate(self, draft: CanvasDraft, workspace_id: Optional[str]) -> None:
        """Start from a graph staged elsewhere in the app (not yet saved)."""
        edges, dropped = ops.drop_dangling_edges(draft.nodes, draft.edges)
        if dropped:
            logger.warning("Dropped %d dangling edge(s) from draft: %s",
                           len(dropped), ", ".join(e.id for e in dropped))
        self._canvas = Canvas(
            title=draft.title,
            nodes=tuple(n.model_copy(update={"selected": False}) for n in draft.nodes),
            edges=edges,
            workspace_id=workspace_id,
        )
        self._dirty = bool(self._canvas.nodes)

    # --- Properties ---

    @property
    def canvas(self) -> Canvas:
        """Get the current canvas."""
        return self._canvas

    @property
    def repository(self) -> CanvasRepository:
        return self._repository

    @property
    def is_dirty(self) -> bool:
        """Check if there are unsaved changes."""
        return self._dirty

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def revision(self) -> int:
        """Counter bumped by every change to the document."""
        return self._revision

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def selected_node_ids(self) -> frozenset[str]:
        return frozenset(self._selected_nodes)

    @property
    def selected_edge_ids(self) -> frozenset[str]:
        return frozenset(self._selected_edges)

    @property
    def clipboard(self) -> ClipboardService:
        return self._clipboard

    # --- Callbacks ---

    def on_change(self, callback: Callable[[], None]) -> None:
        """Register a callback for document or selection changes."""
        self._on_change_callbacks.append(callback)

    def on_save(self, callback: Callable[[str], None]) -> None:
        """Register a callback fired with the canvas id after each successful save."""
        self._on_save_callbacks.append(callback)

    def _notify_change(self) -> None:
        for callback in self._on_change_callbacks:
            callback()

    def _notify_save(self, canvas_id: str) -> None:
        for callback in self._on_save_callbacks:
            try:
                callback(canvas_id)
            except Exception:
                # a failing host callback must not turn a stored save into an error
                logger.exception("on_save callback failed for canvas %s", canvas_id)

    # --- Mutation plumbing ---

    def _commit(self, canvas: Canvas) -> None:
        """Record the current state, then switch to `canvas`."""
        self._history.record(Snapshot.of(self._canvas))
        self._canvas = canvas
        self._changed()

    def _commit_graph(self, graph: Graph) -> None:
        self._commit(self._canvas.with_graph(graph))

    def _changed(self) -> None:
        self._revision += 1
        self._dirty = True
        self._prune_selection()
        self._notify_change()

    def _prune_selection(self) -> None:
        self._selected_nodes &= {n.id for n in self._canvas.nodes}
        self._selected_edges &= {e.id for e in self._canvas.edges}

    def _require_node(self, node_id: str) -> Node:
        node = self._canvas.get_node(node_id)
        if node is None:
            raise UnknownNodeError(node_id)
        return node

    def _require_edge(self, edge_id: str) -> Edge:
        edge = self._canvas.get_edge(edge_id)
        if edge is None:
            raise ValidationError(f"Edge not found: {edge_id}")
        return edge

    def _reset(self, canvas: Canvas) -> None:
        self._canvas = canvas
        self._document += 1
        self._history.clear()
        self._selected_nodes.clear()
        self._selected_edges.clear()
        self._dirty = False
        self._revision += 1
        self._saved_revision = self._revision if canvas.id is not None else None
        self._notify_change()

    # --- Document lifecycle ---

    def new_canvas(self, title: str = "Untitled Canvas", workspace_id: Optional[str] = None) -> Canvas:
        """Discard the current document and start an empty one."""
        self._load_generation += 1
        self._reset(Canvas(title=title, workspace_id=workspace_id))
        return self._canvas

    def close(self) -> None:
        """Stop applying results of in-flight loads (e.g. the editor was closed)."""
        self._closed = True
        self._load_generation += 1

    # --- Node operations ---

    def add_node(self, kind: str = NodeKind.STICKY.value, **fields: Any) -> Node:
        """Add a new node; unset position cascades from the canvas origin."""
        fields = {k: v for k, v in fields.items() if v is not None}
        if "x" not in fields or "y" not in fields:
            step = (len(self._canvas.nodes) % 10) * NEW_NODE_STEP
            fields.setdefault("x", NEW_NODE_ORIGIN[0] + step)
            fields.setdefault("y", NEW_NODE_ORIGIN[1] + step)
        node = Node(kind=kind, **fields)
        graph = ops.add_node(self._canvas.graph, node)
        self._commit_graph(graph)
        return node

    def update_node(self, node_id: str, **changes: Any) -> Node:
        """Update only the provided (non-None) fields of a node."""
        self._require_node(node_id)
        changes = {k: v for k, v in changes.items() if v is not None}
        changes.pop("id", None)
        if not changes:
            return self._canvas.get_node(node_id)
        graph = ops.update_node(self._canvas.graph, node_id, **changes)
        self._commit_graph(graph)
        return self._canvas.get_node(node_id)

    def move_node(self, node_id: str, x: float, y: float) -> Node:
        self._require_node(node_id)
        graph = ops.update_node_position(self._canvas.graph, node_id, x, y)
        self._commit_graph(graph)
        return self._canvas.get_node(node_id)

    def delete_nodes(self, node_ids: Iterable[str]) -> int:
        """Delete nodes and all connected edges. Returns the number of nodes removed."""
        doomed = set(node_ids) & {n.id for n in self._canvas.nodes}
        if not doomed:
            return 0
        self._commit_graph(ops.remove_nodes(self._canvas.graph, doomed))
        return len(doomed)

    # --- Edge operations ---

    def connect(
        self,
        source: str,
        target: str,
        *,
        kind: Optional[str] = None,
        label: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Edge]:
        """
        Add an edge between two nodes.

        Returns None (and records nothing) for a self-loop. Parallel edges
        between the same nodes are allowed.
        """
        self._require_node(source)
        self._require_node(target)
        if source == target:
            return None
        fields = {k: v for k, v in {"kind": kind, "label": label, "color": color}.items() if v is not None}
        graph, edge = ops.add_edge(self._canvas.graph, source, target, **fields)
        if edge is None:
            return None
        self._commit_graph(graph)
        return edge

    def update_edge(self, edge_id: str, **changes: Any) -> Edge:
        self._require_edge(edge_id)
        changes = {k: v for k, v in changes.items() if v is not None and k not in ("id", "source", "target")}
        if not changes:
            return self._canvas.get_edge(edge_id)
        self._commit_graph(ops.update_edge(self._canvas.graph, edge_id, **changes))
        return self._canvas.get_edge(edge_id)

    def delete_edges(self, edge_ids: Iterable[str]) -> int:
        doomed = set(edge_ids) & {e.id for e in self._canvas.edges}
        if not doomed:
            return 0
        self._commit_graph(ops.remove_edges(self._canvas.graph, doomed))
        return len(doomed)

    # --- Canvas info ---

    def set_title(self, title: str) -> Canvas:
        if title == self._canvas.title:
            return self._canvas
        self._commit(self._canvas.model_copy(update={"title": title}))
        return self._canvas

    def set_visibility(self, visibility: str) -> Canvas:
        """Change visibility. Not part of undo history (it is not document content)."""
        visibility = Visibility(visibility)
        if visibility is not self._canvas.visibility:
            self._canvas = self._canvas.model_copy(update={"visibility": visibility})
            self._revision += 1
            self._dirty = True
            self._notify_change()
        return self._canvas

    # --- Selection ---

    def select(self, node_ids: Iterable[str] = (), edge_ids: Iterable[str] = (), additive: bool = False) -> None:
        """Select nodes and edges; unknown ids are ignored."""
        if not additive:
            self._selected_nodes.clear()
            self._selected_edges.clear()
        self._selected_nodes |= set(node_ids)
        self._selected_edges |= set(edge_ids)
        self._prune_selection()
        self._notify_change()

    def select_all(self) -> None:
        self.select([n.id for n in self._canvas.nodes], [e.id for e in self._canvas.edges])

    def clear_selection(self) -> None:
        self.select()

    def view_nodes(self) -> list[Node]:
        """Nodes with their transient `selected` flag set, for rendering."""
        return [
            n.model_copy(update={"selected": True}) if n.id in self._selected_nodes else n
            for n in self._canvas.nodes
        ]

    def view_edges(self) -> list[Edge]:
        return [
            e.model_copy(update={"selected": True}) if e.id in self._selected_edges else e
            for e in self._canvas.edges
        ]

    def _selected_in_order(self) -> list[Node]:
        return [n for n in self._canvas.nodes if n.id in self._selected_nodes]

    # --- Selection-scoped bulk edits ---

    def delete_selection(self) -> bool:
        """Delete selected nodes (with their edges) and selected edges."""
        if not self._selected_nodes and not self._selected_edges:
            return False
        graph = ops.remove_nodes(self._canvas.graph, self._selected_nodes)
        graph = ops.remove_edges(graph, self._selected_edges)
        self._commit_graph(graph)
        return True

    def restyle_selection(self, **style_changes: Optional[str]) -> list[Node]:
        """Set style colors (foreground/background/border) on every selected node."""
        style_changes = {k: v for k, v in style_changes.items() if v is not None}
        targets = self._selected_in_order()
        if not targets or not style_changes:
            return []
        updated = [
            replace_model(n, style=replace_model(n.style, **style_changes))
            for n in targets
        ]
        self._commit_graph(ops.replace_nodes(self._canvas.graph, updated))
        return updated

    def align_selection(self, alignment: str = "left") -> None:
        if alignment not in ALIGNMENTS:
            raise ValidationError(f"Unknown alignment: {alignment}")
        nodes = align_nodes(list(self._canvas.nodes), self._selected_nodes, alignment)
        if nodes is None:
            raise ValidationError("Need at least 2 nodes to align")
        self._commit(self._canvas.model_copy(update={"nodes": tuple(nodes)}))

    def distribute_selection(self, axis: str = "horizontal") -> None:
        if axis not in AXES:
            raise ValidationError(f"Unknown axis: {axis}")
        nodes = distribute_nodes(list(self._canvas.nodes), self._selected_nodes, axis)
        if nodes is None:
            raise ValidationError("Need at least 3 nodes to distribute")
        self._commit(self._canvas.model_copy(update={"nodes": tuple(nodes)}))

    # --- Layout ---

    def apply_layout(self, strategy: str = "grid", seed: Optional[int] = None) -> list[Node]:
        """
        Arrange all nodes with the given strategy.

        Raises NoNodesError on an empty canvas (nothing is recorded).
        """
        nodes = apply_layout(strategy, self._canvas.nodes, self._canvas.edges, seed=seed)
        self._commit(self._canvas.model_copy(update={"nodes": tuple(nodes)}))
        return nodes

    # --- Clipboard ---

    def copy_selection(self) -> int:
        """Copy selected nodes (and the edges among them). Returns the count copied."""
        return self._clipboard.copy(self._selected_in_order(), self._canvas.edges)

    def cut_selection(self) -> int:
        count = self.copy_selection()
        if count:
            self._commit_graph(ops.remove_nodes(self._canvas.graph, self._selected_nodes))
        return count

    def duplicate_selection(self) -> list[str]:
        """Duplicate selected nodes; the duplicates become the selection."""
        if not self._selected_nodes:
            return []
        graph, new_ids = self._clipboard.duplicate(self._canvas.graph, self._selected_nodes)
        self._commit_graph(graph)
        self.select(new_ids)
        return new_ids

    def paste(self) -> list[str]:
        """Paste the clipboard; the pasted nodes become the selection."""
        if self._clipboard.is_empty:
            return []
        graph, new_ids = self._clipboard.paste(self._canvas.graph)
        self._commit_graph(graph)
        self.select(new_ids)
        return new_ids

    # --- Undo/Redo ---

    def undo(self) -> bool:
        """Undo the last action. Returns False if there was nothing to undo."""
        snapshot = self._history.undo(Snapshot.of(self._canvas))
        if snapshot is None:
            return False
        self._canvas = snapshot.apply_to(self._canvas)
        self._changed()
        return True

    def redo(self) -> bool:
        """Redo the last undone action. Returns False if there was nothing to redo."""
        snapshot = self._history.redo(Snapshot.of(self._canvas))
        if snapshot is None:
            return False
        self._canvas = snapshot.apply_to(self._canvas)
        self._changed()
        return True

    # --- State ---

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        return {
            "canvas": self._canvas.to_json_dict(),
            "selected_node_ids": sorted(self._selected_nodes),
            "selected_edge_ids": sorted(self._selected_edges),
            "is_dirty": self._dirty,
            "is_saving": self._saving,
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
        }

    # --- Sync with the store ---

    def _is_stale(self, generation: int) -> bool:
        return self._closed or generation != self._load_generation

    async def load(self, canvas_id: str) -> Optional[Canvas]:
        """
        Replace the session document with a stored canvas.

        Returns None without applying anything if the load was superseded
        (a newer load, new_canvas or close) while it was in flight. On a store
        failure the session is reset to an empty canvas and LoadError raised.
        """
        self._load_generation += 1
        generation = self._load_generation
        try:
            result = await self._repository.load(canvas_id)
        except StoreError as e:
            if self._is_stale(generation):
                logger.debug("Ignoring failed load of %s: superseded", canvas_id)
                return None
            logger.error("Loading canvas %s failed: %s", canvas_id, e)
            self._reset(Canvas(workspace_id=self._canvas.workspace_id))
            raise LoadError(f"Could not load canvas {canvas_id}: {e}") from e

        if self._is_stale(generation):
            logger.debug("Discarding load of %s: superseded", canvas_id)
            return None
        self._reset(result.canvas)
        return self._canvas

    def _adopt_id(self, canvas_id: str, document: int) -> None:
        """Give the new id to the document that was saved, if it is still open."""
        if document != self._document:
            logger.debug("Not adopting id %s: the saved document is no longer open", canvas_id)
            return
        if self._canvas.id is None:
            self._canvas = self._canvas.model_copy(update={"id": canvas_id})

    async def save(self) -> str:
        """
        Save the current canvas (create if new, then full replace).

        Returns the canvas id. On failure raises SaveError; the local document,
        history and dirty flag are left as they were so the user can retry.
        If another document was opened while the save ran, the save completes
        for the document it captured and the open one is left untouched.
        """
        async with self._save_lock:
            canvas = self._canvas
            revision = self._revision
            document = self._document
            if canvas.id is not None and revision == self._saved_revision:
                logger.debug("Canvas %s already saved at revision %d", canvas.id, revision)
                return canvas.id

            self._saving = True
            try:
                canvas_id = await self._repository.save(
                    canvas, on_created=lambda new_id: self._adopt_id(new_id, document)
                )
            except StoreError as e:
                logger.error("Saving canvas %s failed: %s", canvas.id or "(new)", e)
                raise SaveError(f"Save failed: {e}") from e
            finally:
                self._saving = False

            if document == self._document:
                self._saved_revision = revision
                self._dirty = self._revision != revision
            self._notify_save(canvas_id)
            return canvas_id
