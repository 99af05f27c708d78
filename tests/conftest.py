"""pytest fixtures for canvas tests."""

import pytest

from canvas_backend.session import CanvasSession
from canvas_backend.store import InMemoryCanvasStore
from canvas_core.models import Canvas, Edge, Graph, Node, StickyPayload


def sticky(node_id, x=0, y=0, text=None, **fields):
    """sticky note with a fixed id."""
    return Node(id=node_id, x=x, y=y, payload=StickyPayload(text=text or node_id), **fields)


def link(source, target, edge_id=None, **fields):
    return Edge(id=edge_id or f"{source}->{target}", source=source, target=target, **fields)


@pytest.fixture
def chain_graph():
    """a -> b -> c, plus an unconnected d."""
    nodes = (sticky("a"), sticky("b", 300), sticky("c", 600), sticky("d", 900))
    edges = (link("a", "b"), link("b", "c"))
    return Graph(nodes=nodes, edges=edges)


@pytest.fixture
def sample_canvas(chain_graph):
    return Canvas(title="Sample", nodes=chain_graph.nodes, edges=chain_graph.edges)


@pytest.fixture
def store():
    return InMemoryCanvasStore()


@pytest.fixture
def session(store):
    return CanvasSession(store)


@pytest.fixture
def populated_session(session):
    """session with three sticky notes and one edge a -> b."""
    for node_id, x in (("a", 0), ("b", 300), ("c", 600)):
        session.add_node(id=node_id, x=x, y=0)
    session.connect("a", "b")
    return session
