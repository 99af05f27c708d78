"""
Canvas Core - Document model, layout engine, history and clipboard.

This package holds everything about a canvas that does not touch the
network: the backend session, the HTTP API and the CLI all build on it.
"""

from .models import (
    # Enums
    NodeKind,
    EdgeKind,
    Visibility,
    # Payloads
    StickyPayload,
    ImagePayload,
    ChecklistItem,
    ChecklistPayload,
    LinkPreviewPayload,
    CodePayload,
    NodeStyle,
    # Core models
    Node,
    Edge,
    Graph,
    Canvas,
    CanvasDraft,
    generate_node_id,
    generate_edge_id,
)

from .errors import (
    CanvasError,
    ValidationError,
    NoNodesError,
    UnknownStrategyError,
    UnknownNodeError,
    DuplicateIdError,
    LayoutError,
    StoreError,
    CanvasNotFoundError,
    LoadError,
    SaveError,
)
from .layout import LayoutStrategy, apply_layout, align_nodes, distribute_nodes
from .history import HistoryManager, Snapshot
from .clipboard import ClipboardService
from .validation import validate_canvas, validation_summary, ValidationIssue, IssueSeverity

__all__ = [
    # Enums
    "NodeKind",
    "EdgeKind",
    "Visibility",
    # Payloads
    "StickyPayload",
    "ImagePayload",
    "ChecklistItem",
    "ChecklistPayload",
    "LinkPreviewPayload",
    "CodePayload",
    "NodeStyle",
    # Models
    "Node",
    "Edge",
    "Graph",
    "Canvas",
    "CanvasDraft",
    "generate_node_id",
    "generate_edge_id",
    # Errors
    "CanvasError",
    "ValidationError",
    "NoNodesError",
    "UnknownStrategyError",
    "UnknownNodeError",
    "DuplicateIdError",
    "LayoutError",
    "StoreError",
    "CanvasNotFoundError",
    "LoadError",
    "SaveError",
    # Layout
    "LayoutStrategy",
    "apply_layout",
    "align_nodes",
    "distribute_nodes",
    # History / clipboard
    "HistoryManager",
    "Snapshot",
    "ClipboardService",
    # Validation
    "validate_canvas",
    "validation_summary",
    "ValidationIssue",
    "IssueSeverity",
]
