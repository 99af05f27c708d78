"""Tests for the canvas document model."""

import math

import pytest
from pydantic import ValidationError

from canvas_core.models import (
    Canvas,
    CodePayload,
    Edge,
    Node,
    NodeKind,
    NodeStyle,
    StickyPayload,
    generate_edge_id,
    generate_node_id,
    replace_model,
)


class TestIds:
    def test_node_ids_unique_under_burst(self):
        """ids generated in the same millisecond never collide."""
        ids = [generate_node_id() for _ in range(5000)]
        assert len(set(ids)) == len(ids)

    def test_prefixes(self):
        assert generate_node_id().startswith("node-")
        assert generate_edge_id().startswith("edge-")


class TestNodeDefaults:
    def test_sticky_defaults(self):
        node = Node()
        assert node.kind is NodeKind.STICKY
        assert (node.width, node.height) == (200, 150)
        assert node.style.background_color == "#fef3c7"
        assert node.payload == StickyPayload()
        assert node.label == "New Note"

    def test_kind_inferred_from_payload(self):
        node = Node(payload={"kind": "code", "code": "print(1)", "language": "python"})
        assert node.kind is NodeKind.CODE
        assert (node.width, node.height) == (320, 200)
        assert node.label == "python snippet"

    def test_payload_kind_filled_from_node_kind(self):
        node = Node(kind="checklist", payload={"title": "Todo", "items": [{"text": "one"}]})
        assert node.payload.kind == "checklist"
        assert node.payload.items[0].done is False
        assert node.label == "Todo"

    def test_mismatched_payload_rejected(self):
        with pytest.raises(ValidationError):
            Node(kind="image", payload=StickyPayload())

    def test_unknown_code_language_rejected(self):
        with pytest.raises(ValidationError):
            CodePayload(language="cobol")

    @pytest.mark.parametrize("field", ["x", "y"])
    def test_position_must_be_finite(self, field):
        with pytest.raises(ValidationError):
            Node(**{field: math.nan})
        with pytest.raises(ValidationError):
            Node(**{field: math.inf})

    def test_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            Node(width=0)
        with pytest.raises(ValidationError):
            Node(height=-5)

    def test_nodes_are_frozen(self):
        node = Node()
        with pytest.raises(ValidationError):
            node.x = 5

    def test_replace_model_revalidates(self):
        node = Node()
        moved = replace_model(node, x=40)
        assert moved.x == 40 and moved.id == node.id
        with pytest.raises(ValidationError):
            replace_model(node, x=math.nan)

    def test_geometry_helpers(self):
        node = Node(x=10, y=20, width=100, height=50)
        assert node.center() == (60, 45)
        assert node.bounds() == (10, 20, 110, 70)


class TestEdge:
    def test_legacy_from_to(self):
        edge = Edge.model_validate({"from": "a", "to": "b"})
        assert (edge.source, edge.target) == ("a", "b")

    def test_optional_label_and_color(self):
        edge = Edge(source="a", target="b")
        assert edge.label is None and edge.color is None


class TestCanvas:
    def test_selected_flag_not_serialized(self):
        node = Node(id="n1").model_copy(update={"selected": True})
        canvas = Canvas(nodes=(node,))
        data = canvas.to_json_dict()
        assert "selected" not in data["nodes"][0]

    def test_json_round_trip(self):
        canvas = Canvas(
            title="T",
            nodes=(Node(id="n1", style=NodeStyle(border_color="#ff0000")),),
            edges=(Edge(id="e1", source="n1", target="n1", label="self"),),
        )
        assert Canvas.model_validate(canvas.to_json_dict()) == canvas

    def test_lookup(self):
        canvas = Canvas(nodes=(Node(id="n1"),), edges=(Edge(id="e1", source="n1", target="n1"),))
        assert canvas.get_node("n1").id == "n1"
        assert canvas.get_node("missing") is None
        assert canvas.get_edge("e1").source == "n1"
