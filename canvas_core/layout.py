"""
Layout algorithms for canvas nodes.

Provides the layout strategies that can be applied to a canvas:
- Grid: row-major grid, sorted by id
- Circular: evenly spaced on a circle, sorted by id
- Tree: rooted forest from edge directions, parents centred over children
- Hierarchical: tree layering plus barycenter crossing reduction
- Force: spring embedder with a linear cooling schedule

Every layout function is pure: it returns a new list of nodes with the same
ids, kinds, sizes and payloads in the same order, and only x/y changed.
Edges are read, never modified. All strategies are deterministic for a given
node/edge set; the force layout seeds its initial placement from a hash of
the sorted node ids (or an explicit seed), never from the clock.
"""

import hashlib
import math
import random
from collections import defaultdict
from enum import Enum
from typing import Iterable, Optional

from .errors import LayoutError, NoNodesError, UnknownStrategyError
from .models import Edge, Node


# Default layout parameters
DEFAULT_START_X = 100
DEFAULT_START_Y = 100
CELL_MARGIN = 40
LEVEL_GAP = 80
MIN_RADIUS = 150

HIERARCHY_PASSES = 4

FORCE_ITERATIONS = 200
FORCE_ATTRACTION = 0.05
FORCE_MIN_DISTANCE = 20.0


class LayoutStrategy(str, Enum):
    GRID = "grid"
    CIRCULAR = "circular"
    TREE = "tree"
    HIERARCHICAL = "hierarchical"
    FORCE = "force"


Positions = dict[str, tuple[float, float]]


def apply_layout(
    strategy: str,
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    *,
    seed: Optional[int] = None,
) -> list[Node]:
    """
    Compute new positions for `nodes` with the named strategy.

    Args:
        strategy: One of the LayoutStrategy values
        nodes: Nodes to arrange
        edges: Edges of the graph (edges with a missing endpoint are ignored)
        seed: Seed for the force layout's initial placement

    Returns:
        A new list of nodes, in input order, with updated positions

    Raises:
        NoNodesError: if `nodes` is empty
        UnknownStrategyError: if `strategy` is not recognised
    """
    nodes = list(nodes)
    if not nodes:
        raise NoNodesError()
    try:
        strategy = LayoutStrategy(strategy)
    except ValueError:
        raise UnknownStrategyError(f"Unknown layout strategy: {strategy}") from None

    ids = {n.id for n in nodes}
    edges = [e for e in edges if e.source in ids and e.target in ids]

    if strategy is LayoutStrategy.GRID:
        positions = grid_positions(nodes)
    elif strategy is LayoutStrategy.CIRCULAR:
        positions = circular_positions(nodes)
    elif strategy is LayoutStrategy.TREE:
        positions = tree_positions(nodes, edges)
    elif strategy is LayoutStrategy.HIERARCHICAL:
        positions = hierarchical_positions(nodes, edges)
    else:
        positions = force_positions(nodes, edges, seed=seed)

    return _place(nodes, positions)


def _place(nodes: list[Node], positions: Positions) -> list[Node]:
    placed = []
    for node in nodes:
        x, y = positions[node.id]
        if not (math.isfinite(x) and math.isfinite(y)):
            raise LayoutError(f"Layout produced a non-finite position for {node.id}")
        placed.append(node.model_copy(update={"x": float(x), "y": float(y)}))
    return placed


def _by_id(nodes: Iterable[Node]) -> list[Node]:
    return sorted(nodes, key=lambda n: n.id)


def _pitch(nodes: list[Node]) -> tuple[float, float]:
    """Cell pitch: largest node size plus margin."""
    return (
        max(n.width for n in nodes) + CELL_MARGIN,
        max(n.height for n in nodes) + CELL_MARGIN,
    )


# --- Grid ---

def grid_positions(
    nodes: list[Node],
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y,
) -> Positions:
    """
    Arrange nodes in a grid pattern.

    Nodes are sorted by id and placed row-major with ceil(sqrt(n)) columns.
    """
    ordered = _by_id(nodes)
    columns = math.ceil(math.sqrt(len(ordered)))
    pitch_x, pitch_y = _pitch(ordered)

    positions: Positions = {}
    for i, node in enumerate(ordered):
        row, col = divmod(i, columns)
        positions[node.id] = (start_x + col * pitch_x, start_y + row * pitch_y)
    return positions


# --- Circular ---

def circular_positions(
    nodes: list[Node],
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y,
) -> Positions:
    """Place node centres evenly on a circle, starting at angle 0."""
    ordered = _by_id(nodes)
    n = len(ordered)
    average_size = sum((node.width + node.height) / 2 for node in ordered) / n
    # circumference roughly fits every node plus a margin
    radius = max(MIN_RADIUS, n * (average_size + CELL_MARGIN) / (2 * math.pi))

    max_w = max(node.width for node in ordered)
    max_h = max(node.height for node in ordered)
    cx = start_x + radius + max_w / 2
    cy = start_y + radius + max_h / 2

    positions: Positions = {}
    for i, node in enumerate(ordered):
        angle = 2 * math.pi * i / n
        px = cx + radius * math.cos(angle)
        py = cy + radius * math.sin(angle)
        positions[node.id] = (px - node.width / 2, py - node.height / 2)
    return positions


# --- Tree ---

class _Forest:
    """Rooted forest over the graph: BFS tree edges and depths."""

    def __init__(self, nodes: list[Node], edges: list[Edge]):
        ids = sorted(n.id for n in nodes)
        successors: dict[str, set[str]] = {nid: set() for nid in ids}
        neighbours: dict[str, set[str]] = {nid: set() for nid in ids}
        indegree: dict[str, int] = defaultdict(int)
        for edge in edges:
            if edge.source == edge.target or edge.target in successors[edge.source]:
                continue
            successors[edge.source].add(edge.target)
            neighbours[edge.source].add(edge.target)
            neighbours[edge.target].add(edge.source)
            indegree[edge.target] += 1

        self.roots: list[str] = []
        self.children: dict[str, list[str]] = {nid: [] for nid in ids}
        self.depth: dict[str, int] = {}

        for component in self._components(ids, neighbours):
            while True:
                unvisited = [nid for nid in component if nid not in self.depth]
                if not unvisited:
                    break
                sources = [nid for nid in unvisited if indegree[nid] == 0]
                root = sources[0] if sources else unvisited[0]
                self._bfs(root, successors)

    @staticmethod
    def _components(ids: list[str], neighbours: dict[str, set[str]]) -> list[list[str]]:
        """Connected components (undirected), each sorted, ordered by smallest id."""
        seen: set[str] = set()
        components = []
        for start in ids:
            if start in seen:
                continue
            seen.add(start)
            component = [start]
            queue = [start]
            while queue:
                current = queue.pop(0)
                for other in sorted(neighbours[current]):
                    if other not in seen:
                        seen.add(other)
                        component.append(other)
                        queue.append(other)
            components.append(sorted(component))
        return components

    def _bfs(self, root: str, successors: dict[str, set[str]]) -> None:
        self.roots.append(root)
        self.depth[root] = 0
        queue = [root]
        while queue:
            current = queue.pop(0)
            for child in sorted(successors[current]):
                if child in self.depth:
                    continue
                self.depth[child] = self.depth[current] + 1
                self.children[current].append(child)
                queue.append(child)

    def slots(self) -> dict[str, float]:
        """
        Horizontal slot per node: leaves take consecutive slots, each parent
        sits midway between its first and last child.
        """
        slot: dict[str, float] = {}
        next_slot = 0
        for root in self.roots:
            stack = [(root, False)]
            while stack:
                nid, expanded = stack.pop()
                kids = self.children[nid]
                if not kids:
                    slot[nid] = next_slot
                    next_slot += 1
                elif expanded:
                    slot[nid] = (slot[kids[0]] + slot[kids[-1]]) / 2
                else:
                    stack.append((nid, True))
                    for kid in reversed(kids):
                        stack.append((kid, False))
        return slot


def _slot_positions(
    nodes: list[Node],
    slot: dict[str, float],
    depth: dict[str, int],
    start_x: float,
    start_y: float,
) -> Positions:
    """Convert (slot, depth) into top-left positions, centring each node on its slot."""
    sibling_width = max(n.width for n in nodes) + CELL_MARGIN
    level_height = max(n.height for n in nodes) + LEVEL_GAP
    max_w = max(n.width for n in nodes)

    positions: Positions = {}
    for node in nodes:
        center_x = start_x + max_w / 2 + slot[node.id] * sibling_width
        positions[node.id] = (center_x - node.width / 2, start_y + depth[node.id] * level_height)
    return positions


def tree_positions(
    nodes: list[Node],
    edges: list[Edge],
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y,
) -> Positions:
    """
    Arrange nodes as a top-down tree based on edge directions.

    Each connected component is rooted at its lowest-id node without incoming
    edges (lowest-id node if the component is cyclic). Depth comes from a
    breadth-first walk; children are ordered by id.
    """
    forest = _Forest(nodes, edges)
    return _slot_positions(nodes, forest.slots(), forest.depth, start_x, start_y)


# --- Hierarchical ---

def hierarchical_positions(
    nodes: list[Node],
    edges: list[Edge],
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y,
    passes: int = HIERARCHY_PASSES,
) -> Positions:
    """
    Layered layout: tree depths, then barycenter ordering within each layer,
    then each node placed at the mean x of its parents in the layer above.
    """
    forest = _Forest(nodes, edges)
    depth = forest.depth
    tree_slot = forest.slots()

    max_depth = max(depth.values())
    layers: list[list[str]] = [[] for _ in range(max_depth + 1)]
    for nid in sorted(depth, key=lambda i: (tree_slot[i], i)):
        layers[depth[nid]].append(nid)

    parents: dict[str, list[str]] = defaultdict(list)
    children: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        if depth[edge.target] == depth[edge.source] + 1:
            parents[edge.target].append(edge.source)
            children[edge.source].append(edge.target)

    def reorder(layer: list[str], neighbours: dict[str, list[str]], reference: list[str]) -> list[str]:
        index = {nid: i for i, nid in enumerate(reference)}
        current = {nid: i for i, nid in enumerate(layer)}

        def key(nid: str) -> tuple[float, int]:
            linked = [index[o] for o in neighbours[nid] if o in index]
            barycenter = sum(linked) / len(linked) if linked else current[nid]
            return (barycenter, current[nid])

        return sorted(layer, key=key)

    for p in range(passes):
        if p % 2 == 0:
            for d in range(1, max_depth + 1):
                layers[d] = reorder(layers[d], parents, layers[d - 1])
        else:
            for d in range(max_depth - 1, -1, -1):
                layers[d] = reorder(layers[d], children, layers[d + 1])

    # coordinate assignment in slot units
    slot: dict[str, float] = {}
    for i, nid in enumerate(layers[0]):
        slot[nid] = float(i)
    for d in range(1, max_depth + 1):
        previous: Optional[float] = None
        for nid in layers[d]:
            linked = [slot[o] for o in parents[nid] if o in slot]
            if linked:
                wanted = sum(linked) / len(linked)
            else:
                wanted = previous + 1 if previous is not None else 0.0
            if previous is not None:
                wanted = max(wanted, previous + 1)
            slot[nid] = wanted
            previous = wanted

    shift = min(slot.values())
    slot = {nid: s - shift for nid, s in slot.items()}
    return _slot_positions(nodes, slot, depth, start_x, start_y)


# --- Force-directed ---

def stable_seed(node_ids: Iterable[str]) -> int:
    """Seed derived from the sorted node ids, stable across runs and processes."""
    digest = hashlib.sha256("\0".join(sorted(node_ids)).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def force_positions(
    nodes: list[Node],
    edges: list[Edge],
    seed: Optional[int] = None,
    iterations: int = FORCE_ITERATIONS,
    attraction: float = FORCE_ATTRACTION,
    min_distance: float = FORCE_MIN_DISTANCE,
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y,
) -> Positions:
    """
    Arrange nodes using a force-directed layout algorithm.

    Simulates physical forces:
    - All nodes repel each other: repulsion / distance^2
    - Connected nodes are pulled towards a rest length: attraction * (distance - rest)

    The maximum per-step displacement starts at half the rest length and
    decays linearly to zero over `iterations` steps.
    """
    ordered = _by_id(nodes)
    n = len(ordered)
    if n == 1:
        return {ordered[0].id: (start_x, start_y)}

    rest_length = max(max(node.width, node.height) for node in ordered) + CELL_MARGIN
    repulsion = attraction * rest_length ** 3
    side = rest_length * math.ceil(math.sqrt(n))

    rng = random.Random(stable_seed(node.id for node in ordered) if seed is None else seed)
    pos = [[rng.uniform(0, side), rng.uniform(0, side)] for _ in ordered]
    index = {node.id: i for i, node in enumerate(ordered)}
    springs = sorted(
        ((index[e.source], index[e.target]) for e in edges if e.source != e.target),
    )

    max_step = rest_length / 2
    for step in range(iterations):
        temperature = max_step * (1 - step / iterations)
        disp = [[0.0, 0.0] for _ in ordered]

        for i in range(n):
            for j in range(i + 1, n):
                dx = pos[i][0] - pos[j][0]
                dy = pos[i][1] - pos[j][1]
                dist = math.hypot(dx, dy)
                if dist == 0:
                    # coincident nodes: separate along a fixed direction
                    angle = 2 * math.pi * (i + j) / n
                    ux, uy = math.cos(angle), math.sin(angle)
                else:
                    ux, uy = dx / dist, dy / dist
                dist = max(dist, min_distance)
                force = repulsion / (dist * dist)
                disp[i][0] += force * ux
                disp[i][1] += force * uy
                disp[j][0] -= force * ux
                disp[j][1] -= force * uy

        for s, t in springs:
            dx = pos[t][0] - pos[s][0]
            dy = pos[t][1] - pos[s][1]
            dist = math.hypot(dx, dy)
            if dist == 0:
                continue
            force = attraction * (dist - rest_length)
            fx = force * dx / dist
            fy = force * dy / dist
            disp[s][0] += fx
            disp[s][1] += fy
            disp[t][0] -= fx
            disp[t][1] -= fy

        for i in range(n):
            dx, dy = disp[i]
            magnitude = math.hypot(dx, dy)
            if magnitude == 0:
                continue
            scale = min(magnitude, temperature) / magnitude
            pos[i][0] += dx * scale
            pos[i][1] += dy * scale

    min_x = min(p[0] for p in pos)
    min_y = min(p[1] for p in pos)
    return {
        node.id: (start_x + pos[i][0] - min_x, start_y + pos[i][1] - min_y)
        for i, node in enumerate(ordered)
    }


# --- Selection-scoped arrangement ---

def align_nodes(
    nodes: list[Node],
    node_ids: Iterable[str],
    alignment: str = "left",
) -> Optional[list[Node]]:
    """
    Align selected nodes along an edge or center.

    Args:
        nodes: All nodes in the canvas
        node_ids: IDs of nodes to align
        alignment: One of "left", "right", "top", "bottom", "center_h", "center_v"

    Returns:
        The full node list with the targets moved, or None if fewer than two
        nodes were selected or the alignment is unknown
    """
    wanted = set(node_ids)
    targets = [n for n in nodes if n.id in wanted]
    if len(targets) < 2:
        return None

    if alignment == "left":
        min_x = min(n.x for n in targets)
        moves = {n.id: {"x": min_x} for n in targets}
    elif alignment == "right":
        max_x = max(n.x + n.width for n in targets)
        moves = {n.id: {"x": max_x - n.width} for n in targets}
    elif alignment == "top":
        min_y = min(n.y for n in targets)
        moves = {n.id: {"y": min_y} for n in targets}
    elif alignment == "bottom":
        max_y = max(n.y + n.height for n in targets)
        moves = {n.id: {"y": max_y - n.height} for n in targets}
    elif alignment == "center_h":
        center_x = sum(n.x + n.width / 2 for n in targets) / len(targets)
        moves = {n.id: {"x": center_x - n.width / 2} for n in targets}
    elif alignment == "center_v":
        center_y = sum(n.y + n.height / 2 for n in targets) / len(targets)
        moves = {n.id: {"y": center_y - n.height / 2} for n in targets}
    else:
        return None

    return [n.model_copy(update=moves[n.id]) if n.id in moves else n for n in nodes]


def distribute_nodes(
    nodes: list[Node],
    node_ids: Iterable[str],
    axis: str = "horizontal",
) -> Optional[list[Node]]:
    """
    Evenly distribute nodes along an axis.

    Returns:
        The full node list with the targets moved, or None if fewer than
        three nodes were selected or the axis is unknown
    """
    wanted = set(node_ids)
    targets = [n for n in nodes if n.id in wanted]
    if len(targets) < 3:
        return None

    if axis == "horizontal":
        field = "x"
    elif axis == "vertical":
        field = "y"
    else:
        return None

    targets.sort(key=lambda n: (getattr(n, field), n.id))
    low = getattr(targets[0], field)
    high = getattr(targets[-1], field)
    spacing = (high - low) / (len(targets) - 1)
    moves = {n.id: {field: low + i * spacing} for i, n in enumerate(targets)}

    return [n.model_copy(update=moves[n.id]) if n.id in moves else n for n in nodes]
