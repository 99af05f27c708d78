"""Tests for copy, duplicate and paste."""

from canvas_core.clipboard import DUPLICATE_OFFSET, PASTE_OFFSET, ClipboardService


class TestDuplicate:
    def test_new_ids_and_offset(self, chain_graph):
        clipboard = ClipboardService()
        graph, new_ids = clipboard.duplicate(chain_graph, ["a", "b"])

        assert len(new_ids) == 2
        assert not set(new_ids) & chain_graph.node_ids()
        for original_id, new_id in zip(["a", "b"], new_ids):
            original, clone = graph.get_node(original_id), graph.get_node(new_id)
            assert clone.x == original.x + DUPLICATE_OFFSET[0]
            assert clone.y == original.y + DUPLICATE_OFFSET[1]
            assert clone.payload == original.payload

    def test_internal_edges_remapped(self, chain_graph):
        graph, new_ids = ClipboardService().duplicate(chain_graph, ["a", "b"])
        new_edges = graph.edges[len(chain_graph.edges):]
        # a->b travels with the selection, b->c leaves it and does not
        assert len(new_edges) == 1
        assert (new_edges[0].source, new_edges[0].target) == tuple(new_ids)

    def test_unknown_ids(self, chain_graph):
        graph, new_ids = ClipboardService().duplicate(chain_graph, ["nope"])
        assert graph is chain_graph and new_ids == []


class TestCopyPaste:
    def test_paste_empty(self, chain_graph):
        graph, new_ids = ClipboardService().paste(chain_graph)
        assert graph is chain_graph and new_ids == []

    def test_copy_counts_and_edges(self, chain_graph):
        clipboard = ClipboardService()
        assert clipboard.copy([chain_graph.get_node("b"), chain_graph.get_node("c")], chain_graph.edges) == 2
        assert clipboard.size == 2

    def test_paste_twice_never_collides(self, chain_graph):
        clipboard = ClipboardService()
        clipboard.copy([chain_graph.get_node("a"), chain_graph.get_node("b")], chain_graph.edges)
        graph, first = clipboard.paste(chain_graph)
        graph, second = clipboard.paste(graph)

        all_ids = [n.id for n in graph.nodes]
        assert len(all_ids) == len(set(all_ids)) == 8
        assert len({e.id for e in graph.edges}) == len(graph.edges) == 4

        a = chain_graph.get_node("a")
        assert graph.get_node(first[0]).x == a.x + PASTE_OFFSET[0]
        assert graph.get_node(second[0]).x == a.x + 2 * PASTE_OFFSET[0]

    def test_copy_resets_offset(self, chain_graph):
        clipboard = ClipboardService()
        a = chain_graph.get_node("a")
        clipboard.copy([a])
        graph, _ = clipboard.paste(chain_graph)
        clipboard.copy([a])
        graph, again = clipboard.paste(graph)
        assert graph.get_node(again[0]).y == a.y + PASTE_OFFSET[1]

    def test_clipboard_isolated_from_later_edits(self, chain_graph):
        clipboard = ClipboardService()
        clipboard.copy([chain_graph.get_node("a")])
        clipboard.clear()
        assert clipboard.is_empty
