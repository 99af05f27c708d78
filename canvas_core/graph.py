"""
Pure mutation functions over a Graph.

Every function returns a new Graph and leaves its input untouched.
Unknown ids are no-ops rather than errors; callers that need to reject a
command check ids beforehand.

Edge policy: parallel edges between the same pair of nodes are allowed
(each has its own id), self-loops are not.
"""

from collections.abc import Iterable
from typing import Any, Optional

from .errors import DuplicateIdError
from .models import Edge, Graph, Node, replace_model


def add_node(graph: Graph, node: Node) -> Graph:
    """Append a node."""
    if node.id in graph.node_ids():
        raise DuplicateIdError(f"Node id already in use: {node.id}")
    return Graph(nodes=graph.nodes + (node,), edges=graph.edges)


def add_nodes(graph: Graph, nodes: Iterable[Node], edges: Iterable[Edge] = ()) -> Graph:
    """Append several nodes (and edges between them) in one step."""
    nodes = tuple(nodes)
    edges = tuple(edges)
    existing = graph.node_ids()
    for node in nodes:
        if node.id in existing:
            raise DuplicateIdError(f"Node id already in use: {node.id}")
        existing.add(node.id)
    edge_ids = {e.id for e in graph.edges}
    for edge in edges:
        if edge.id in edge_ids:
            raise DuplicateIdError(f"Edge id already in use: {edge.id}")
        edge_ids.add(edge.id)
    return Graph(nodes=graph.nodes + nodes, edges=graph.edges + edges)


def remove_nodes(graph: Graph, node_ids: Iterable[str]) -> Graph:
    """Remove nodes and every edge touching them."""
    doomed = set(node_ids)
    if not doomed:
        return graph
    return Graph(
        nodes=tuple(n for n in graph.nodes if n.id not in doomed),
        edges=tuple(e for e in graph.edges if e.source not in doomed and e.target not in doomed),
    )


def remove_edges(graph: Graph, edge_ids: Iterable[str]) -> Graph:
    doomed = set(edge_ids)
    if not doomed:
        return graph
    return Graph(nodes=graph.nodes, edges=tuple(e for e in graph.edges if e.id not in doomed))


def add_edge(graph: Graph, source: str, target: str, **fields: Any) -> tuple[Graph, Optional[Edge]]:
    """
    Connect two nodes.

    Returns the new graph and the created edge, or the unchanged graph and
    None when the edge would be a self-loop or would dangle.
    """
    if source == target:
        return graph, None
    ids = graph.node_ids()
    if source not in ids or target not in ids:
        return graph, None
    edge = Edge(source=source, target=target, **fields)
    if graph.get_edge(edge.id) is not None:
        raise DuplicateIdError(f"Edge id already in use: {edge.id}")
    return Graph(nodes=graph.nodes, edges=graph.edges + (edge,)), edge


def update_node(graph: Graph, node_id: str, **changes: Any) -> Graph:
    """Apply field changes to one node (validated)."""
    if not changes:
        return graph
    nodes = tuple(
        replace_model(n, **changes) if n.id == node_id else n
        for n in graph.nodes
    )
    return Graph(nodes=nodes, edges=graph.edges)


def update_node_position(graph: Graph, node_id: str, x: float, y: float) -> Graph:
    return update_node(graph, node_id, x=x, y=y)


def update_edge(graph: Graph, edge_id: str, **changes: Any) -> Graph:
    """Apply field changes to one edge. Endpoints cannot be changed here."""
    changes.pop("source", None)
    changes.pop("target", None)
    if not changes:
        return graph
    edges = tuple(
        replace_model(e, **changes) if e.id == edge_id else e
        for e in graph.edges
    )
    return Graph(nodes=graph.nodes, edges=edges)


def replace_nodes(graph: Graph, nodes: Iterable[Node]) -> Graph:
    """Swap in updated versions of existing nodes, matched by id."""
    updated = {n.id: n for n in nodes}
    return Graph(
        nodes=tuple(updated.get(n.id, n) for n in graph.nodes),
        edges=graph.edges,
    )


def drop_dangling_edges(
    nodes: Iterable[Node], edges: Iterable[Edge]
) -> tuple[tuple[Edge, ...], tuple[Edge, ...]]:
    """
    Split edges into (kept, dropped) by whether both endpoints exist.

    The dropped edges are returned rather than discarded so callers can
    report them.
    """
    ids = {n.id for n in nodes}
    kept: list[Edge] = []
    dropped: list[Edge] = []
    for edge in edges:
        if edge.source in ids and edge.target in ids:
            kept.append(edge)
        else:
            dropped.append(edge)
    return tuple(kept), tuple(dropped)
