"""
Core data models for canvases.

These models define the canonical schema for a canvas document:
- Nodes of a fixed set of kinds, each with a kind-specific payload
- Edges connecting nodes (using source/target naming convention)
- The Canvas itself: title, ordered nodes and edges, visibility

All models are frozen. Mutations build new values (see canvas_core.graph),
so a history snapshot only has to hold references.

Field Naming Convention:
- Edges use `source` and `target`
- For backward compatibility, `from`/`to` are accepted on input and converted
- `selected` is transient UI state and is excluded from every dump
"""

import itertools
import math
import time
import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class NodeKind(str, Enum):
    """Kinds of node that can live on a canvas."""
    STICKY = "sticky"
    IMAGE = "image"
    CHECKLIST = "checklist"
    LINK_PREVIEW = "linkPreview"
    CODE = "code"


class EdgeKind(str, Enum):
    """Rendering kinds for edges."""
    DEFAULT = "default"
    ANIMATED = "animated"


class Visibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


CODE_LANGUAGES = (
    "javascript", "typescript", "python", "java", "go", "rust", "sql",
    "html", "css", "json", "markdown", "bash", "yaml", "plaintext",
)

# (width, height) used when a node is created without an explicit size
DEFAULT_SIZES: dict[NodeKind, tuple[float, float]] = {
    NodeKind.STICKY: (200, 150),
    NodeKind.IMAGE: (240, 180),
    NodeKind.CHECKLIST: (220, 180),
    NodeKind.LINK_PREVIEW: (280, 140),
    NodeKind.CODE: (320, 200),
}


# --- Id generation ---

_id_counter = itertools.count()


def _generate_id(prefix: str) -> str:
    # timestamp alone collides under bursts; the counter keeps ids unique
    # within a process and the random suffix across processes
    millis = int(time.time() * 1000)
    return f"{prefix}-{millis}-{next(_id_counter)}-{uuid.uuid4().hex[:4]}"


def generate_node_id() -> str:
    """Generate a unique node ID."""
    return _generate_id("node")


def generate_edge_id() -> str:
    """Generate a unique edge ID."""
    return _generate_id("edge")


# --- Payloads ---

class StickyPayload(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["sticky"] = "sticky"
    text: str = "New Note"


class ImagePayload(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["image"] = "image"
    src: str = ""
    alt: str = ""


class ChecklistItem(BaseModel):
    model_config = ConfigDict(frozen=True)
    text: str
    done: bool = False


class ChecklistPayload(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["checklist"] = "checklist"
    title: str = ""
    items: tuple[ChecklistItem, ...] = ()


class LinkPreviewPayload(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["linkPreview"] = "linkPreview"
    url: str = ""
    title: str = ""
    description: str = ""
    image_url: Optional[str] = None


class CodePayload(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["code"] = "code"
    code: str = "// Enter your code here"
    language: str = "javascript"
    title: str = ""

    @field_validator("language")
    @classmethod
    def check_language(cls, value: str) -> str:
        if value not in CODE_LANGUAGES:
            raise ValueError(f"Unsupported code language: {value}")
        return value


NodePayload = Annotated[
    Union[StickyPayload, ImagePayload, ChecklistPayload, LinkPreviewPayload, CodePayload],
    Field(discriminator="kind"),
]

_PAYLOAD_TYPES: dict[NodeKind, type[BaseModel]] = {
    NodeKind.STICKY: StickyPayload,
    NodeKind.IMAGE: ImagePayload,
    NodeKind.CHECKLIST: ChecklistPayload,
    NodeKind.LINK_PREVIEW: LinkPreviewPayload,
    NodeKind.CODE: CodePayload,
}


class NodeStyle(BaseModel):
    """Colors for a node."""
    model_config = ConfigDict(frozen=True)
    foreground_color: str = "#000000"
    background_color: str = "#ffffff"
    border_color: str = "#94a3b8"


DEFAULT_STYLES: dict[NodeKind, NodeStyle] = {
    NodeKind.STICKY: NodeStyle(background_color="#fef3c7", border_color="#fbbf24"),
    NodeKind.IMAGE: NodeStyle(),
    NodeKind.CHECKLIST: NodeStyle(background_color="#ecfdf5", border_color="#34d399"),
    NodeKind.LINK_PREVIEW: NodeStyle(background_color="#eff6ff", border_color="#60a5fa"),
    NodeKind.CODE: NodeStyle(foreground_color="#e2e8f0", background_color="#1e293b", border_color="#475569"),
}


# --- Core models ---

class Node(BaseModel):
    """A node on the canvas."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_node_id)
    kind: NodeKind = NodeKind.STICKY
    x: float = 100
    y: float = 100
    width: float
    height: float
    style: NodeStyle
    payload: NodePayload
    selected: bool = Field(default=False, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def fill_kind_defaults(cls, data: Any) -> Any:
        """Fill size, style and payload defaults from the node kind."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        payload = data.get("payload")

        if data.get("kind") is None:
            payload_kind = payload.get("kind") if isinstance(payload, dict) else getattr(payload, "kind", None)
            data["kind"] = payload_kind or NodeKind.STICKY.value
        kind = NodeKind(data["kind"])

        width, height = DEFAULT_SIZES[kind]
        if data.get("width") is None:
            data["width"] = width
        if data.get("height") is None:
            data["height"] = height
        if data.get("style") is None:
            data["style"] = DEFAULT_STYLES[kind]
        if payload is None:
            data["payload"] = _PAYLOAD_TYPES[kind]()
        elif isinstance(payload, dict) and "kind" not in payload:
            data["payload"] = {**payload, "kind": kind.value}
        return data

    @field_validator("x", "y")
    @classmethod
    def check_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("Node position must be finite")
        return value

    @field_validator("width", "height")
    @classmethod
    def check_size(cls, value: float) -> float:
        if not math.isfinite(value) or value <= 0:
            raise ValueError("Node size must be finite and positive")
        return value

    @model_validator(mode="after")
    def check_payload_kind(self) -> "Node":
        if self.payload.kind != self.kind.value:
            raise ValueError(f"Payload kind {self.payload.kind!r} does not match node kind {self.kind.value!r}")
        return self

    @property
    def label(self) -> str:
        """Display text for the node, derived from its payload."""
        p = self.payload
        if isinstance(p, StickyPayload):
            return p.text
        if isinstance(p, ImagePayload):
            return p.alt or p.src
        if isinstance(p, ChecklistPayload):
            if p.title:
                return p.title
            return p.items[0].text if p.items else ""
        if isinstance(p, LinkPreviewPayload):
            return p.title or p.url
        return p.title or f"{p.language} snippet"

    def center(self) -> tuple[float, float]:
        """Get the center point of the node."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    def bounds(self) -> tuple[float, float, float, float]:
        """Get the bounding box (x, y, right, bottom)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


class Edge(BaseModel):
    """
    An edge connecting two nodes.

    Uses `source` and `target` as canonical field names.
    Accepts `from`/`to` on input for backward compatibility.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_edge_id)
    source: str
    target: str
    kind: EdgeKind = EdgeKind.DEFAULT
    label: Optional[str] = None
    color: Optional[str] = None
    selected: bool = Field(default=False, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert legacy 'from'/'to' fields to 'source'/'target'."""
        if isinstance(data, dict):
            data = dict(data)
            if "from" in data and "source" not in data:
                data["source"] = data.pop("from")
            if "to" in data and "target" not in data:
                data["target"] = data.pop("to")
        return data


class Graph(BaseModel):
    """The (nodes, edges) pair the pure mutation functions operate on."""
    model_config = ConfigDict(frozen=True)

    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None


class Canvas(BaseModel):
    """
    The complete canvas document.
    `id` stays None until the store assigns one on first save.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    title: str = "Untitled Canvas"
    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()
    workspace_id: Optional[str] = None
    visibility: Visibility = Visibility.PRIVATE

    @property
    def graph(self) -> Graph:
        return Graph(nodes=self.nodes, edges=self.edges)

    def with_graph(self, graph: Graph) -> "Canvas":
        return self.model_copy(update={"nodes": graph.nodes, "edges": graph.edges})

    def get_node(self, node_id: str) -> Optional[Node]:
        """Get a node by ID (O(n))."""
        return self.graph.get_node(node_id)

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        """Get an edge by ID (O(n))."""
        return self.graph.get_edge(edge_id)

    def to_json_dict(self) -> dict:
        """Convert to a JSON-serializable dict (transient flags excluded)."""
        return self.model_dump(mode="json")


class CanvasDraft(BaseModel):
    """A pre-built graph handed over by another part of the application."""
    title: str = "Untitled Canvas"
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


def replace_model(model: BaseModel, **changes: Any) -> Any:
    """Return a re-validated copy of a frozen model with `changes` applied.

    Unlike `model_copy(update=...)`, the result goes through validation, so
    a NaN position or a mismatched payload is rejected.
    """
    data = {name: getattr(model, name) for name in type(model).model_fields}
    data.update(changes)
    return type(model).model_validate(data)
