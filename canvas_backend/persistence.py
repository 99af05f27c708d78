"""
Persistence protocol between the in-memory canvas and the external store.

Row shapes (as stored by the notes app):
- canvas: {id, title, description, workspace_id, is_public}
- node:   {node_id, type, content, position_x, position_y, width, height,
           color, background_color, border_color, metadata}
- edge:   {edge_id, source_node_id, target_node_id, type, label, color,
           animated, metadata}

Saving is full-replace: every save deletes and re-inserts all node and edge
rows of the canvas. Saves to the same canvas id are serialised through one
asyncio.Lock per id. Two processes saving the same canvas are not
coordinated; the store keeps whichever save finished last.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from canvas_core.graph import drop_dangling_edges
from canvas_core.models import Canvas, Edge, EdgeKind, Node, NodeKind, NodeStyle, StickyPayload, Visibility

from .store import CanvasStore

logger = logging.getLogger(__name__)

# node types written by older editors, all of them plain notes
LEGACY_NODE_TYPES = {"default", "note", "input", "output"}


# --- Row mapping ---

def node_to_row(node: Node) -> dict:
    return {
        "node_id": node.id,
        "type": node.kind.value,
        "content": node.label,
        "position_x": node.x,
        "position_y": node.y,
        "width": node.width,
        "height": node.height,
        "color": node.style.foreground_color,
        "background_color": node.style.background_color,
        "border_color": node.style.border_color,
        "metadata": node.payload.model_dump(mode="json"),
    }


def row_to_node(row: dict) -> Node:
    """Build a Node from a store row. Raises ValueError on malformed rows."""
    node_type = row.get("type") or NodeKind.STICKY.value
    if node_type in LEGACY_NODE_TYPES:
        node_type = NodeKind.STICKY.value
    kind = NodeKind(node_type)

    payload = dict(row.get("metadata") or {})
    payload["kind"] = kind.value
    if kind is NodeKind.STICKY and "text" not in payload:
        payload["text"] = row.get("content") or StickyPayload().text

    defaults = NodeStyle()
    style = NodeStyle(
        foreground_color=row.get("color") or defaults.foreground_color,
        background_color=row.get("background_color") or defaults.background_color,
        border_color=row.get("border_color") or defaults.border_color,
    )
    return Node(
        id=row["node_id"],
        kind=kind,
        x=row.get("position_x", 0),
        y=row.get("position_y", 0),
        width=row.get("width"),
        height=row.get("height"),
        style=style,
        payload=payload,
    )


def edge_to_row(edge: Edge) -> dict:
    return {
        "edge_id": edge.id,
        "source_node_id": edge.source,
        "target_node_id": edge.target,
        "type": EdgeKind.DEFAULT.value,
        "label": edge.label,
        "color": edge.color,
        "animated": edge.kind is EdgeKind.ANIMATED,
        "metadata": {},
    }


def row_to_edge(row: dict) -> Edge:
    animated = bool(row.get("animated")) or row.get("type") == EdgeKind.ANIMATED.value
    return Edge(
        id=row["edge_id"],
        source=row["source_node_id"],
        target=row["target_node_id"],
        kind=EdgeKind.ANIMATED if animated else EdgeKind.DEFAULT,
        label=row.get("label") or None,
        color=row.get("color") or None,
    )


def canvas_metadata(canvas: Canvas) -> dict:
    return {
        "title": canvas.title,
        "workspace_id": canvas.workspace_id,
        "is_public": canvas.visibility is Visibility.PUBLIC,
    }


# --- Repository ---

@dataclass
class LoadResult:
    canvas: Canvas
    dropped_edges: list[Edge] = field(default_factory=list)
    skipped_rows: int = 0


class CanvasRepository:
    """Load and full-replace save of canvases against a CanvasStore."""

    def __init__(self, store: CanvasStore):
        self.store = store
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, canvas_id: str) -> asyncio.Lock:
        lock = self._locks.get(canvas_id)
        if lock is None:
            lock = self._locks[canvas_id] = asyncio.Lock()
        return lock

    async def load(self, canvas_id: str) -> LoadResult:
        """
        Fetch a canvas and map it to the document model.

        Malformed node rows are skipped and edges whose endpoints are missing
        are dropped; both are logged.
        """
        stored = await self.store.load_canvas(canvas_id)

        nodes: list[Node] = []
        skipped = 0
        for row in stored.nodes:
            try:
                nodes.append(row_to_node(row))
            except (KeyError, ValueError, PydanticValidationError) as e:
                skipped += 1
                logger.warning("Skipping malformed node row in canvas %s: %s", canvas_id, e)

        edges: list[Edge] = []
        for row in stored.edges:
            try:
                edges.append(row_to_edge(row))
            except (KeyError, ValueError, PydanticValidationError) as e:
                skipped += 1
                logger.warning("Skipping malformed edge row in canvas %s: %s", canvas_id, e)

        kept, dropped = drop_dangling_edges(nodes, edges)
        if dropped:
            logger.warning(
                "Dropped %d dangling edge(s) from canvas %s: %s",
                len(dropped), canvas_id, ", ".join(e.id for e in dropped),
            )

        meta = stored.metadata
        canvas = Canvas(
            id=meta.get("id", canvas_id),
            title=meta.get("title") or "Untitled Canvas",
            nodes=tuple(nodes),
            edges=kept,
            workspace_id=meta.get("workspace_id"),
            visibility=Visibility.PUBLIC if meta.get("is_public") else Visibility.PRIVATE,
        )
        return LoadResult(canvas=canvas, dropped_edges=list(dropped), skipped_rows=skipped)

    async def save(self, canvas: Canvas, on_created: Optional[Callable[[str], None]] = None) -> str:
        """
        Persist `canvas` and return its id.

        A canvas without an id is created first; `on_created` receives the new
        id before the contents are written, so a caller can keep it even if
        the write then fails. Existing canvases get a metadata update. Nodes
        and edges are then replaced wholesale.
        """
        kept, dropped = drop_dangling_edges(canvas.nodes, canvas.edges)
        if dropped:
            logger.warning("Not saving %d dangling edge(s): %s", len(dropped), ", ".join(e.id for e in dropped))

        created = False
        canvas_id = canvas.id
        if canvas_id is None:
            canvas_id = await self.store.create_canvas(canvas_metadata(canvas))
            created = True
            logger.info("Created canvas %s", canvas_id)
            if on_created is not None:
                on_created(canvas_id)

        async with self.lock_for(canvas_id):
            if not created:
                await self.store.update_canvas_metadata(canvas_id, canvas_metadata(canvas))
            await self.store.replace_canvas_contents(
                canvas_id,
                [node_to_row(n) for n in canvas.nodes],
                [edge_to_row(e) for e in kept],
            )
        logger.info("Saved canvas %s (%d nodes, %d edges)", canvas_id, len(canvas.nodes), len(kept))
        return canvas_id

