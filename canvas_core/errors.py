"""
Exception hierarchy for canvas operations.

Validation errors subclass ValueError so API layers can keep mapping
`except ValueError` to a client error.
"""


class CanvasError(Exception):
    """Base class for all canvas errors."""


class ValidationError(CanvasError, ValueError):
    """A command was rejected; the document was not changed."""


class NoNodesError(ValidationError):
    """Layout was requested on a canvas without nodes."""

    def __init__(self, message: str = "Canvas has no nodes to lay out"):
        super().__init__(message)


class UnknownStrategyError(ValidationError):
    """Layout strategy name is not recognised."""


class UnknownNodeError(ValidationError):
    """A node id does not exist in the current document."""

    def __init__(self, node_id: str):
        super().__init__(f"Node not found: {node_id}")
        self.node_id = node_id


class DuplicateIdError(ValidationError):
    """A node or edge id is already in use."""


class LayoutError(CanvasError):
    """A layout pass produced an unusable result."""


class StoreError(CanvasError):
    """The external canvas store failed or was unreachable."""


class CanvasNotFoundError(StoreError):
    """The store has no canvas with the requested id."""

    def __init__(self, canvas_id: str):
        super().__init__(f"Canvas not found: {canvas_id}")
        self.canvas_id = canvas_id


class LoadError(CanvasError):
    """Loading a canvas failed; the session was reset to a new canvas."""


class SaveError(CanvasError):
    """Saving a canvas failed; local edits are kept for a retry."""
