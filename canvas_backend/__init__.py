"""
Canvas Backend - Editing session, store sync, exports and the HTTP API.
"""

from .config import Settings, configure_logging
from .export import (
    ExportFile,
    ExportFormat,
    Viewport,
    export_file,
    from_snapshot,
    to_png,
    to_snapshot,
    to_svg,
)
from .persistence import CanvasRepository, LoadResult
from .session import CanvasSession
from .store import CanvasStore, HttpCanvasStore, InMemoryCanvasStore, StoredCanvas

__all__ = [
    # Config
    "Settings",
    "configure_logging",
    # Store
    "CanvasStore",
    "StoredCanvas",
    "HttpCanvasStore",
    "InMemoryCanvasStore",
    # Persistence
    "CanvasRepository",
    "LoadResult",
    # Session
    "CanvasSession",
    # Export
    "ExportFormat",
    "ExportFile",
    "Viewport",
    "to_snapshot",
    "from_snapshot",
    "to_svg",
    "to_png",
    "export_file",
]
