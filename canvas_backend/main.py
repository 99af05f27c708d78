"""
Canvas Tool Backend - FastAPI Application

It provides:
- REST API for the editing session (nodes, edges, selection, clipboard,
  layout, undo/redo)
- Load/save against the configured canvas store
- Exports of the current canvas as JSON, SVG and PNG
- CORS configuration for local frontend development
"""
from contextlib import asynccontextmanager
from typing import Any, Optional
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, model_validator

from canvas_core.errors import CanvasNotFoundError, LoadError, SaveError
from canvas_core.layout import LayoutStrategy
from canvas_core.models import EdgeKind, NodeKind, NodeStyle, Visibility
from canvas_core.validation import validate_canvas, validation_summary

from .config import Settings, configure_logging
from .export import ExportFormat, Viewport, export_file
from .session import CanvasSession
from .store import HttpCanvasStore, InMemoryCanvasStore


def build_session(settings: Settings) -> CanvasSession:
    """Session wired to the store named by the settings."""
    if settings.store_url:
        store = HttpCanvasStore(settings.store_url, token=settings.store_token, timeout=settings.store_timeout)
    else:
        store = InMemoryCanvasStore()
    return CanvasSession(store, max_history=settings.max_history)


def content_disposition(filename: str) -> str:
    """
    Attachment header for any title.

    Headers are latin-1 on the wire, so `filename` carries an ASCII stand-in
    and `filename*` (RFC 5987) carries the real UTF-8 name.
    """
    fallback = "".join(c if 32 <= ord(c) < 127 and c not in '"\\' else "_" for c in filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


# --- API Request Models ---

class CanvasInfoRequest(BaseModel):
    """Request to update canvas metadata."""
    title: Optional[str] = None
    visibility: Optional[Visibility] = None


class CreateNodeRequest(BaseModel):
    """Request to create a new node; size, style and payload default per kind."""
    kind: NodeKind = NodeKind.STICKY
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    style: Optional[NodeStyle] = None
    payload: Optional[dict[str, Any]] = None


class UpdateNodeRequest(BaseModel):
    """Request to update an existing node (partial update)."""
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    style: Optional[NodeStyle] = None
    payload: Optional[dict[str, Any]] = None


class CreateEdgeRequest(BaseModel):
    """Request to create a new edge."""
    source: str = ""
    target: str = ""
    kind: Optional[EdgeKind] = None
    label: Optional[str] = None
    color: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert legacy 'from'/'to' fields to 'source'/'target'."""
        if isinstance(data, dict):
            data = dict(data)
            if 'from' in data and 'source' not in data:
                data['source'] = data.pop('from')
            if 'to' in data and 'target' not in data:
                data['target'] = data.pop('to')
        return data


class UpdateEdgeRequest(BaseModel):
    """Request to update an existing edge."""
    kind: Optional[EdgeKind] = None
    label: Optional[str] = None
    color: Optional[str] = None


class SelectionRequest(BaseModel):
    node_ids: list[str] = Field(default_factory=list)
    edge_ids: list[str] = Field(default_factory=list)
    additive: bool = False


class StyleRequest(BaseModel):
    foreground_color: Optional[str] = None
    background_color: Optional[str] = None
    border_color: Optional[str] = None


class AutoLayoutRequest(BaseModel):
    strategy: LayoutStrategy = LayoutStrategy.GRID
    seed: Optional[int] = None


class AlignNodesRequest(BaseModel):
    alignment: str = "left"  # left, right, top, bottom, center_h, center_v


class DistributeNodesRequest(BaseModel):
    axis: str = "horizontal"  # horizontal, vertical


def create_app(session: Optional[CanvasSession] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    session = session or build_session(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan handler for startup/shutdown tasks."""
        yield
        store = session.repository.store
        if isinstance(store, HttpCanvasStore):
            await store.aclose()

    app = FastAPI(
        title="Canvas Tool API",
        description="Backend API for the canvas graph editor",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.session = session

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def state() -> dict:
        return {"success": True, **session.get_state()}

    # --- Health Check ---

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    # --- Canvas State ---

    @app.get("/api/canvas")
    async def get_canvas():
        """Get the current canvas and session state."""
        return state()

    @app.patch("/api/canvas")
    async def update_canvas(request: CanvasInfoRequest):
        """Update canvas title and/or visibility."""
        if request.title is not None:
            session.set_title(request.title)
        if request.visibility is not None:
            session.set_visibility(request.visibility)
        return state()

    @app.post("/api/canvas/new")
    async def new_canvas(title: str = Query(default="Untitled Canvas")):
        """Create a new empty canvas (not stored until saved)."""
        session.new_canvas(title=title)
        return state()

    # --- Load / Save ---

    @app.post("/api/canvas/load/{canvas_id}")
    async def load_canvas(canvas_id: str):
        """Load a canvas from the store."""
        try:
            await session.load(canvas_id)
        except LoadError as e:
            if isinstance(e.__cause__, CanvasNotFoundError):
                raise HTTPException(status_code=404, detail=str(e))
            raise HTTPException(status_code=502, detail=str(e))
        return state()

    @app.post("/api/canvas/save")
    async def save_canvas():
        """Save the canvas to the store (full replace)."""
        try:
            canvas_id = await session.save()
        except SaveError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return {"success": True, "canvas_id": canvas_id}

    # --- Undo/Redo ---

    @app.post("/api/undo")
    async def undo():
        """Undo the last action."""
        if session.undo():
            return state()
        return {"success": False, "message": "Nothing to undo"}

    @app.post("/api/redo")
    async def redo():
        """Redo the last undone action."""
        if session.redo():
            return state()
        return {"success": False, "message": "Nothing to redo"}

    # --- Node Operations ---

    @app.post("/api/nodes")
    async def create_node(request: CreateNodeRequest):
        """Create a new node."""
        try:
            node = session.add_node(**request.model_dump(exclude_none=True))
            return {"success": True, "node": node.model_dump(mode="json")}
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.patch("/api/nodes/{node_id}")
    async def update_node(node_id: str, request: UpdateNodeRequest):
        """Update a node."""
        if session.canvas.get_node(node_id) is None:
            raise HTTPException(status_code=404, detail="Node not found")
        changes = request.model_dump(exclude_none=True)
        if "payload" in changes:
            changes["payload"] = {**changes["payload"], "kind": session.canvas.get_node(node_id).kind.value}
        try:
            node = session.update_node(node_id, **changes)
            return {"success": True, "node": node.model_dump(mode="json")}
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.delete("/api/nodes/{node_id}")
    async def delete_node(node_id: str):
        """Delete a node and its connected edges."""
        if session.delete_nodes([node_id]):
            return {"success": True}
        raise HTTPException(status_code=404, detail="Node not found")

    # --- Edge Operations ---

    @app.post("/api/edges")
    async def create_edge(request: CreateEdgeRequest):
        """Create a new edge."""
        try:
            edge = session.connect(
                request.source,
                request.target,
                kind=request.kind,
                label=request.label,
                color=request.color
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if edge is None:
            raise HTTPException(status_code=400, detail="Cannot connect a node to itself")
        return {"success": True, "edge": edge.model_dump(mode="json")}

    @app.patch("/api/edges/{edge_id}")
    async def update_edge(edge_id: str, request: UpdateEdgeRequest):
        """Update an edge."""
        if session.canvas.get_edge(edge_id) is None:
            raise HTTPException(status_code=404, detail="Edge not found")
        try:
            edge = session.update_edge(edge_id, **request.model_dump(exclude_none=True))
            return {"success": True, "edge": edge.model_dump(mode="json")}
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.delete("/api/edges/{edge_id}")
    async def delete_edge(edge_id: str):
        """Delete an edge."""
        if session.delete_edges([edge_id]):
            return {"success": True}
        raise HTTPException(status_code=404, detail="Edge not found")

    # --- Selection & Bulk Operations ---

    @app.post("/api/selection")
    async def select(request: SelectionRequest):
        """Replace (or extend) the selection."""
        session.select(request.node_ids, request.edge_ids, additive=request.additive)
        return state()

    @app.post("/api/selection/delete")
    async def delete_selection():
        """Delete selected nodes (with their edges) and selected edges."""
        if not session.delete_selection():
            raise HTTPException(status_code=400, detail="Nothing selected")
        return state()

    @app.post("/api/selection/style")
    async def restyle_selection(request: StyleRequest):
        """Set colors on every selected node."""
        nodes = session.restyle_selection(**request.model_dump())
        return {"success": True, "updated": len(nodes)}

    @app.post("/api/selection/copy")
    async def copy_selection():
        return {"success": True, "copied": session.copy_selection()}

    @app.post("/api/selection/cut")
    async def cut_selection():
        return {"success": True, "cut": session.cut_selection()}

    @app.post("/api/selection/duplicate")
    async def duplicate_selection():
        return {"success": True, "node_ids": session.duplicate_selection()}

    @app.post("/api/clipboard/paste")
    async def paste():
        return {"success": True, "node_ids": session.paste()}

    # --- Layout ---

    @app.post("/api/layout/auto")
    async def auto_layout(request: AutoLayoutRequest):
        """Automatically arrange nodes."""
        try:
            session.apply_layout(request.strategy.value, seed=request.seed)
            return {"success": True, "strategy": request.strategy.value}
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.post("/api/layout/align")
    async def align_nodes(request: AlignNodesRequest):
        """Align the selected nodes along an edge."""
        try:
            session.align_selection(request.alignment)
            return {"success": True}
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.post("/api/layout/distribute")
    async def distribute_nodes(request: DistributeNodesRequest):
        """Distribute the selected nodes evenly along an axis."""
        try:
            session.distribute_selection(request.axis)
            return {"success": True}
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    # --- Validation ---

    @app.get("/api/canvas/validate")
    async def validate_current_canvas():
        """Validate the current canvas for structural issues."""
        issues = validate_canvas(session.canvas)
        return {
            "success": True,
            "issues": [issue.to_dict() for issue in issues],
            "summary": validation_summary(issues)
        }

    # --- Export ---

    @app.get("/api/export/{fmt}")
    async def export_canvas(
        fmt: ExportFormat,
        x: Optional[float] = None,
        y: Optional[float] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        zoom: float = 1.0,
    ):
        """Export the canvas; PNG accepts an optional viewport."""
        viewport = None
        if fmt is ExportFormat.PNG and width is not None and height is not None:
            try:
                viewport = Viewport(x=x or 0, y=y or 0, width=width, height=height, zoom=zoom)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
        exported = export_file(session.canvas, fmt.value, viewport)
        return Response(
            content=exported.content,
            media_type=exported.content_type,
            headers={"Content-Disposition": content_disposition(exported.filename)},
        )

    # --- Enums for Frontend ---

    @app.get("/api/enums/kinds")
    async def get_kinds():
        """Get available node kinds."""
        return {"kinds": [k.value for k in NodeKind]}

    @app.get("/api/enums/strategies")
    async def get_strategies():
        """Get available layout strategies."""
        return {"strategies": [s.value for s in LayoutStrategy]}

    return app


# --- Run with uvicorn ---

def main() -> None:
    import uvicorn

    settings = Settings.from_env()
    configure_logging(settings)
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
