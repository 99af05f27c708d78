"""
Canvas validation - Check canvases for structural issues.

Used by the `validate` CLI command and the HTTP validate endpoint.
"""

import math
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Canvas


class IssueSeverity(str, Enum):
    """How much a canvas issue matters."""
    ERROR = "error"      # broken structure, dangling edges are dropped on the next load
    WARNING = "warning"  # saves fine but probably not what the author meant
    INFO = "info"


@dataclass
class ValidationIssue:
    """One problem found on a canvas, pointing at the node or edge involved."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None
    edge_id: str | None = None

    @property
    def blocking(self) -> bool:
        return self.severity is IssueSeverity.ERROR

    def to_dict(self) -> dict:
        """JSON shape used by the validate endpoint and the CLI."""
        result = {"severity": self.severity.value, "message": self.message}
        result.update((key, value) for key, value in
                      (("node_id", self.node_id), ("edge_id", self.edge_id)) if value)
        return result


def validate_canvas(canvas: "Canvas") -> list[ValidationIssue]:
    """
    Validate a canvas and return a list of issues.

    Checks for:
    - Empty canvas - INFO
    - Duplicate node or edge ids - ERROR
    - Edges referencing missing nodes - ERROR
    - Non-finite geometry - ERROR
    - Self-referencing edges - WARNING
    - Orphan nodes (no connections) - WARNING, only when the canvas has edges
    """
    issues: list[ValidationIssue] = []

    nodes = canvas.nodes
    edges = canvas.edges

    if not nodes:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Canvas has no nodes"
        ))

    for node_id, count in Counter(n.id for n in nodes).items():
        if count > 1:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Node id used {count} times",
                node_id=node_id
            ))
    for edge_id, count in Counter(e.id for e in edges).items():
        if count > 1:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Edge id used {count} times",
                edge_id=edge_id
            ))

    for node in nodes:
        if not all(math.isfinite(v) for v in (node.x, node.y, node.width, node.height)):
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message="Node has non-finite position or size",
                node_id=node.id
            ))

    node_ids = {n.id for n in nodes}
    for edge in edges:
        if edge.source not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Edge references non-existent source node: {edge.source}",
                edge_id=edge.id
            ))
        if edge.target not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Edge references non-existent target node: {edge.target}",
                edge_id=edge.id
            ))
        if edge.source == edge.target:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Self-referencing edge (node points to itself)",
                edge_id=edge.id,
                node_id=edge.source
            ))

    if edges:
        connected = {e.source for e in edges} | {e.target for e in edges}
        for node in nodes:
            if node.id not in connected:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.WARNING,
                    message="Orphan node (no connections)",
                    node_id=node.id
                ))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """Create a summary of validation issues, with counts by severity."""
    errors = len([i for i in issues if i.blocking])
    return {
        "total": len(issues),
        "errors": errors,
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": errors == 0
    }
