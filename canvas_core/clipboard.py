"""
Copy, duplicate and paste for node selections.

Edge policy: edges whose two endpoints are both inside the copied or
duplicated selection travel with it, remapped to the new node ids. Edges
that leave the selection are never copied. Duplicate and paste follow the
same rule.
"""

from collections.abc import Iterable

from .graph import add_nodes
from .models import Edge, Graph, Node, generate_edge_id, generate_node_id

DUPLICATE_OFFSET = (40.0, 40.0)
PASTE_OFFSET = (60.0, 60.0)


def _internal_edges(node_ids: set[str], edges: Iterable[Edge]) -> list[Edge]:
    return [e for e in edges if e.source in node_ids and e.target in node_ids]


def _clone(
    nodes: Iterable[Node], edges: Iterable[Edge], offset: tuple[float, float]
) -> tuple[list[Node], list[Edge]]:
    """Copy nodes and edges under fresh ids, shifting nodes by `offset`."""
    dx, dy = offset
    id_map: dict[str, str] = {}
    clones = []
    for node in nodes:
        new_id = generate_node_id()
        id_map[node.id] = new_id
        clones.append(node.model_copy(
            update={"id": new_id, "x": node.x + dx, "y": node.y + dy, "selected": False},
            deep=True,
        ))
    clone_edges = [
        e.model_copy(update={
            "id": generate_edge_id(),
            "source": id_map[e.source],
            "target": id_map[e.target],
            "selected": False,
        })
        for e in edges
    ]
    return clones, clone_edges


class ClipboardService:
    """Holds the copied selection between copy and paste."""

    def __init__(self):
        self._nodes: tuple[Node, ...] = ()
        self._edges: tuple[Edge, ...] = ()
        self._paste_count = 0

    @property
    def is_empty(self) -> bool:
        return not self._nodes

    @property
    def size(self) -> int:
        return len(self._nodes)

    def copy(self, nodes: Iterable[Node], edges: Iterable[Edge] = ()) -> int:
        """Store deep copies of `nodes` and the edges between them."""
        nodes = [n.model_copy(update={"selected": False}, deep=True) for n in nodes]
        ids = {n.id for n in nodes}
        self._nodes = tuple(nodes)
        self._edges = tuple(
            e.model_copy(update={"selected": False}) for e in _internal_edges(ids, edges)
        )
        self._paste_count = 0
        return len(self._nodes)

    def clear(self) -> None:
        self._nodes = ()
        self._edges = ()
        self._paste_count = 0

    def duplicate(self, graph: Graph, node_ids: Iterable[str]) -> tuple[Graph, list[str]]:
        """
        Clone the given nodes into `graph`, offset by DUPLICATE_OFFSET.

        Returns the new graph and the ids of the clones, in source order.
        The clipboard contents are not touched.
        """
        wanted = set(node_ids)
        sources = [n for n in graph.nodes if n.id in wanted]
        if not sources:
            return graph, []
        clones, clone_edges = _clone(sources, _internal_edges(wanted, graph.edges), DUPLICATE_OFFSET)
        return add_nodes(graph, clones, clone_edges), [n.id for n in clones]

    def paste(self, graph: Graph) -> tuple[Graph, list[str]]:
        """
        Insert the clipboard contents into `graph`.

        Each successive paste of the same clipboard lands one PASTE_OFFSET
        further from the copied nodes.
        """
        if self.is_empty:
            return graph, []
        self._paste_count += 1
        offset = (PASTE_OFFSET[0] * self._paste_count, PASTE_OFFSET[1] * self._paste_count)
        clones, clone_edges = _clone(self._nodes, self._edges, offset)
        return add_nodes(graph, clones, clone_edges), [n.id for n in clones]
