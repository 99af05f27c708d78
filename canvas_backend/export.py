"""
Canvas exports: structural snapshot (JSON), vector image (SVG) and raster
image (PNG).

All three are derived from the Canvas value alone. Nodes are drawn in
document order, so later nodes paint over earlier ones; edges are drawn
underneath all nodes.
"""

import io
import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from xml.sax.saxutils import escape, quoteattr

from PIL import Image, ImageColor, ImageDraw, ImageFont
from pydantic import BaseModel, Field

from canvas_core.graph import drop_dangling_edges
from canvas_core.models import Canvas, Edge, EdgeKind, Node

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
DEFAULT_EDGE_COLOR = "#94a3b8"
EXPORT_PADDING = 40
MAX_LABEL_LINES = 4
MAX_RASTER_SIDE = 8192


class ExportFormat(str, Enum):
    JSON = "json"
    SVG = "svg"
    PNG = "png"


CONTENT_TYPES = {
    ExportFormat.JSON: "application/json",
    ExportFormat.SVG: "image/svg+xml",
    ExportFormat.PNG: "image/png",
}


class Viewport(BaseModel):
    """Visible region: top-left in document units, size in pixels."""
    x: float = 0
    y: float = 0
    width: int = Field(default=800, gt=0, le=MAX_RASTER_SIDE)
    height: int = Field(default=600, gt=0, le=MAX_RASTER_SIDE)
    zoom: float = Field(default=1.0, gt=0)


@dataclass
class ExportFile:
    filename: str
    content_type: str
    content: bytes


# --- Structural snapshot ---

def to_snapshot(canvas: Canvas) -> str:
    """Serialize a canvas losslessly (transient selection flags excluded)."""
    data = {"version": SNAPSHOT_VERSION, **canvas.to_json_dict()}
    return json.dumps(data, indent=2)


def from_snapshot(text: str) -> Canvas:
    """
    Re-import a snapshot produced by to_snapshot.

    Edges pointing at missing nodes are dropped and logged.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Snapshot must be a JSON object")
    data.pop("version", None)
    nodes = [Node.model_validate(n) for n in data.pop("nodes", [])]
    edges = [Edge.model_validate(e) for e in data.pop("edges", [])]
    kept, dropped = drop_dangling_edges(nodes, edges)
    if dropped:
        logger.warning("Dropped %d dangling edge(s) from snapshot: %s",
                       len(dropped), ", ".join(e.id for e in dropped))
    return Canvas.model_validate({**data, "nodes": nodes, "edges": kept})


# --- Geometry helpers ---

def document_bounds(canvas: Canvas) -> Optional[tuple[float, float, float, float]]:
    """(min_x, min_y, max_x, max_y) over all nodes, or None for an empty canvas."""
    if not canvas.nodes:
        return None
    boxes = [n.bounds() for n in canvas.nodes]
    return (
        min(b[0] for b in boxes),
        min(b[1] for b in boxes),
        max(b[2] for b in boxes),
        max(b[3] for b in boxes),
    )


def _border_point(node: Node, toward: tuple[float, float]) -> tuple[float, float]:
    """Where the line from the node centre towards `toward` leaves its rectangle."""
    cx, cy = node.center()
    dx, dy = toward[0] - cx, toward[1] - cy
    if dx == 0 and dy == 0:
        return cx, cy
    scales = []
    if dx:
        scales.append((node.width / 2) / abs(dx))
    if dy:
        scales.append((node.height / 2) / abs(dy))
    t = min(min(scales), 1.0)
    return cx + dx * t, cy + dy * t


def _edge_segments(canvas: Canvas) -> list[tuple[Edge, tuple[float, float], tuple[float, float]]]:
    by_id = {n.id: n for n in canvas.nodes}
    segments = []
    for edge in canvas.edges:
        source = by_id.get(edge.source)
        target = by_id.get(edge.target)
        if source is None or target is None:
            continue
        start = _border_point(source, target.center())
        end = _border_point(target, source.center())
        segments.append((edge, start, end))
    return segments


def _label_lines(node: Node) -> list[str]:
    lines = node.label.splitlines() or [""]
    if len(lines) > MAX_LABEL_LINES:
        lines = lines[:MAX_LABEL_LINES - 1] + ["..."]
    return lines


# --- SVG ---

def to_svg(canvas: Canvas, arrowheads: bool = True, padding: float = EXPORT_PADDING) -> str:
    """Render nodes as labelled rectangles and edges as lines."""
    bounds = document_bounds(canvas) or (0, 0, 0, 0)
    min_x, min_y = bounds[0] - padding, bounds[1] - padding
    width = bounds[2] - bounds[0] + 2 * padding
    height = bounds[3] - bounds[1] + 2 * padding

    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width:g}" height="{height:g}" '
        f'viewBox="{min_x:g} {min_y:g} {width:g} {height:g}">',
        f"<title>{escape(canvas.title)}</title>",
    ]
    if arrowheads:
        parts.append(
            '<defs><marker id="arrow" viewBox="0 0 10 10" refX="10" refY="5" '
            'markerWidth="8" markerHeight="8" orient="auto-start-reverse">'
            '<path d="M 0 0 L 10 5 L 0 10 z" fill="context-stroke"/></marker></defs>'
        )

    for edge, (x1, y1), (x2, y2) in _edge_segments(canvas):
        color = edge.color or DEFAULT_EDGE_COLOR
        attrs = [
            f'x1="{x1:g}" y1="{y1:g}" x2="{x2:g}" y2="{y2:g}"',
            f"stroke={quoteattr(color)}",
            'stroke-width="2"',
        ]
        if edge.kind is EdgeKind.ANIMATED:
            attrs.append('stroke-dasharray="6 4"')
        if arrowheads:
            attrs.append('marker-end="url(#arrow)"')
        parts.append(f'<line data-edge-id={quoteattr(edge.id)} {" ".join(attrs)}/>')
        if edge.label:
            parts.append(
                f'<text x="{(x1 + x2) / 2:g}" y="{(y1 + y2) / 2:g}" text-anchor="middle" '
                f'font-family="sans-serif" font-size="12" fill="#475569">{escape(edge.label)}</text>'
            )

    for node in canvas.nodes:
        style = node.style
        cx, cy = node.center()
        lines = _label_lines(node)
        first_dy = -(len(lines) - 1) * 0.6
        tspans = "".join(
            f'<tspan x="{cx:g}" dy="{(first_dy if i == 0 else 1.2):g}em">{escape(line)}</tspan>'
            for i, line in enumerate(lines)
        )
        parts.append(
            f'<g data-node-id={quoteattr(node.id)} data-kind={quoteattr(node.kind.value)}>'
            f'<rect x="{node.x:g}" y="{node.y:g}" width="{node.width:g}" height="{node.height:g}" rx="8" '
            f"fill={quoteattr(style.background_color)} stroke={quoteattr(style.border_color)} stroke-width=\"2\"/>"
            f'<text x="{cx:g}" y="{cy:g}" text-anchor="middle" dominant-baseline="middle" '
            f'font-family="sans-serif" font-size="14" fill={quoteattr(style.foreground_color)}>{tspans}</text>'
            f"</g>"
        )

    parts.append("</svg>")
    return "\n".join(parts)


# --- PNG ---

def fit_viewport(canvas: Canvas, padding: float = EXPORT_PADDING) -> Viewport:
    """Viewport showing the whole document, shrunk to fit the raster limit."""
    bounds = document_bounds(canvas)
    if bounds is None:
        return Viewport()
    doc_w = bounds[2] - bounds[0] + 2 * padding
    doc_h = bounds[3] - bounds[1] + 2 * padding
    zoom = min(1.0, MAX_RASTER_SIDE / doc_w, MAX_RASTER_SIDE / doc_h)
    return Viewport(
        x=bounds[0] - padding,
        y=bounds[1] - padding,
        width=max(1, min(MAX_RASTER_SIDE, math.ceil(doc_w * zoom))),
        height=max(1, min(MAX_RASTER_SIDE, math.ceil(doc_h * zoom))),
        zoom=zoom,
    )


def _rgb(value: Optional[str], fallback: str) -> tuple[int, ...]:
    try:
        return ImageColor.getrgb(value or fallback)
    except ValueError:
        return ImageColor.getrgb(fallback)


def _arrowhead(start: tuple[float, float], end: tuple[float, float], size: float) -> list[tuple[float, float]]:
    angle = math.atan2(end[1] - start[1], end[0] - start[0])
    left = (end[0] - size * math.cos(angle - math.pi / 7), end[1] - size * math.sin(angle - math.pi / 7))
    right = (end[0] - size * math.cos(angle + math.pi / 7), end[1] - size * math.sin(angle + math.pi / 7))
    return [end, left, right]


def to_png(
    canvas: Canvas,
    viewport: Optional[Viewport] = None,
    arrowheads: bool = True,
    background: str = "#ffffff",
) -> bytes:
    """Rasterize the canvas as seen through `viewport` (whole document by default)."""
    viewport = viewport or fit_viewport(canvas)
    zoom = viewport.zoom
    img = Image.new("RGB", (viewport.width, viewport.height), _rgb(background, "#ffffff"))
    draw = ImageDraw.Draw(img)
    font = ImageFont.load_default()

    def to_px(x: float, y: float) -> tuple[float, float]:
        return ((x - viewport.x) * zoom, (y - viewport.y) * zoom)

    line_width = max(1, round(2 * zoom))
    for edge, start, end in _edge_segments(canvas):
        color = _rgb(edge.color, DEFAULT_EDGE_COLOR)
        p1, p2 = to_px(*start), to_px(*end)
        draw.line([p1, p2], fill=color, width=line_width)
        if arrowheads and p1 != p2:
            draw.polygon(_arrowhead(p1, p2, 10 * zoom), fill=color)

    for node in canvas.nodes:
        x0, y0 = to_px(node.x, node.y)
        x1, y1 = to_px(node.x + node.width, node.y + node.height)
        draw.rounded_rectangle(
            [x0, y0, x1, y1],
            radius=8 * zoom,
            fill=_rgb(node.style.background_color, "#ffffff"),
            outline=_rgb(node.style.border_color, "#94a3b8"),
            width=line_width,
        )
        text = "\n".join(_label_lines(node))
        left, top, right, bottom = draw.multiline_textbbox((0, 0), text, font=font)
        cx, cy = (x0 + x1) / 2, (y0 + y1) / 2
        draw.multiline_text(
            (cx - (right - left) / 2, cy - (bottom - top) / 2),
            text,
            fill=_rgb(node.style.foreground_color, "#000000"),
            font=font,
            align="center",
        )

    buffer = io.BytesIO()
    img.save(buffer, "PNG")
    return buffer.getvalue()


# --- Files ---

def export_filename(title: str, fmt: ExportFormat) -> str:
    """`{title}.{ext}`, with path separators replaced so the name stays a single file."""
    stem = title.strip().replace("/", "-").replace("\\", "-") or "Untitled Canvas"
    return f"{stem}.{fmt.value}"


def export_file(canvas: Canvas, fmt: str, viewport: Optional[Viewport] = None) -> ExportFile:
    fmt = ExportFormat(fmt)
    if fmt is ExportFormat.JSON:
        content = to_snapshot(canvas).encode("utf-8")
    elif fmt is ExportFormat.SVG:
        content = to_svg(canvas).encode("utf-8")
    else:
        content = to_png(canvas, viewport)
    return ExportFile(
        filename=export_filename(canvas.title, fmt),
        content_type=CONTENT_TYPES[fmt],
        content=content,
    )
