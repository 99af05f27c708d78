"""Tests for the HTTP API."""

from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from canvas_backend.config import Settings
from canvas_backend.main import build_session, create_app
from canvas_backend.session import CanvasSession
from canvas_backend.store import HttpCanvasStore, InMemoryCanvasStore


@pytest.fixture
def client(session):
    return TestClient(create_app(session=session, settings=Settings()))


def add(client, **body):
    response = client.post("/api/nodes", json=body)
    assert response.status_code == 200
    return response.json()["node"]


class TestCanvasEndpoints:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_state(self, client):
        state = client.get("/api/canvas").json()
        assert state["canvas"]["title"] == "Untitled Canvas"
        assert state["success"] is True
        assert state["can_undo"] is False

    def test_rename_and_visibility(self, client, session):
        response = client.patch("/api/canvas", json={"title": "Plan", "visibility": "public"})
        assert response.json()["canvas"]["title"] == "Plan"
        assert session.canvas.visibility.value == "public"

    def test_new(self, client):
        add(client)
        state = client.post("/api/canvas/new", params={"title": "Fresh"}).json()
        assert state["canvas"]["nodes"] == []
        assert state["canvas"]["title"] == "Fresh"


class TestNodeAndEdgeEndpoints:
    def test_create_node(self, client):
        node = add(client, kind="code", payload={"code": "ls", "language": "bash"})
        assert node["kind"] == "code"
        assert node["payload"]["language"] == "bash"
        assert "selected" not in node

    def test_invalid_node_is_400(self, client):
        response = client.post("/api/nodes", json={"kind": "code", "payload": {"language": "cobol"}})
        assert response.status_code == 400

    def test_update_node_payload(self, client):
        node = add(client)
        response = client.patch(f"/api/nodes/{node['id']}", json={"x": 5, "payload": {"text": "changed"}})
        assert response.json()["node"]["payload"]["text"] == "changed"
        assert response.json()["node"]["x"] == 5

    def test_update_missing_node_is_404(self, client):
        assert client.patch("/api/nodes/ghost", json={"x": 1}).status_code == 404

    def test_edges(self, client):
        a, b = add(client), add(client)
        response = client.post("/api/edges", json={"from": a["id"], "to": b["id"], "label": "next"})
        edge = response.json()["edge"]
        assert (edge["source"], edge["target"], edge["label"]) == (a["id"], b["id"], "next")

        updated = client.patch(f"/api/edges/{edge['id']}", json={"kind": "animated"}).json()["edge"]
        assert updated["kind"] == "animated"

        assert client.delete(f"/api/edges/{edge['id']}").json() == {"success": True}
        assert client.delete(f"/api/edges/{edge['id']}").status_code == 404

    def test_edge_to_unknown_node_is_400(self, client):
        a = add(client)
        response = client.post("/api/edges", json={"source": a["id"], "target": "ghost"})
        assert response.status_code == 400
        assert "ghost" in response.json()["detail"]

    def test_self_loop_is_400(self, client):
        a = add(client)
        assert client.post("/api/edges", json={"source": a["id"], "target": a["id"]}).status_code == 400

    def test_delete_node_cascades(self, client, session):
        a, b = add(client), add(client)
        client.post("/api/edges", json={"source": a["id"], "target": b["id"]})
        assert client.delete(f"/api/nodes/{a['id']}").json() == {"success": True}
        assert session.canvas.edges == ()


class TestSelectionEndpoints:
    def test_duplicate_and_paste(self, client, session):
        a = add(client)
        client.post("/api/selection", json={"node_ids": [a["id"]]})
        duplicated = client.post("/api/selection/duplicate").json()["node_ids"]
        assert len(duplicated) == 1

        assert client.post("/api/selection/copy").json()["copied"] == 1
        pasted = client.post("/api/clipboard/paste").json()["node_ids"]
        assert len(pasted) == 1
        assert len(session.canvas.nodes) == 3

    def test_delete_nothing_selected(self, client):
        assert client.post("/api/selection/delete").status_code == 400

    def test_style(self, client, session):
        a = add(client)
        client.post("/api/selection", json={"node_ids": [a["id"]]})
        response = client.post("/api/selection/style", json={"border_color": "#123456"})
        assert response.json()["updated"] == 1
        assert session.canvas.get_node(a["id"]).style.border_color == "#123456"

    def test_align_needs_selection(self, client):
        assert client.post("/api/layout/align", json={"alignment": "left"}).status_code == 400


class TestLayoutAndHistory:
    def test_layout_empty_canvas_is_400(self, client):
        response = client.post("/api/layout/auto", json={"strategy": "grid"})
        assert response.status_code == 400

    def test_unknown_strategy_is_422(self, client):
        add(client)
        assert client.post("/api/layout/auto", json={"strategy": "spiral"}).status_code == 422

    def test_layout_then_undo(self, client, session):
        add(client, x=0, y=0)
        add(client, x=0, y=0)
        assert client.post("/api/layout/auto", json={"strategy": "grid"}).json()["success"]
        moved = session.canvas.nodes
        assert client.post("/api/undo").json()["success"]
        assert session.canvas.nodes != moved
        assert client.post("/api/redo").json()["success"]
        assert session.canvas.nodes == moved

    def test_nothing_to_undo(self, client):
        assert client.post("/api/undo").json() == {"success": False, "message": "Nothing to undo"}


class TestSyncEndpoints:
    def test_save_then_load(self, client, session, store):
        add(client)
        canvas_id = client.post("/api/canvas/save").json()["canvas_id"]
        assert canvas_id in store.canvases

        client.post("/api/canvas/new")
        state = client.post(f"/api/canvas/load/{canvas_id}").json()
        assert state["canvas"]["id"] == canvas_id
        assert len(state["canvas"]["nodes"]) == 1

    def test_load_missing_is_404(self, client):
        assert client.post("/api/canvas/load/ghost").status_code == 404

    def test_save_failure_is_502(self, client, store):
        add(client)
        store.fail_on.add("create_canvas")
        assert client.post("/api/canvas/save").status_code == 502


class TestExportAndValidate:
    @pytest.mark.parametrize("fmt,content_type", [
        ("json", "application/json"),
        ("svg", "image/svg+xml"),
        ("png", "image/png"),
    ])
    def test_export(self, client, fmt, content_type):
        add(client)
        response = client.get(f"/api/export/{fmt}")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith(content_type)
        assert f'filename="Untitled Canvas.{fmt}"' in response.headers["content-disposition"]

    @pytest.mark.parametrize("title", ["计划 ✓", 'say "hi"'])
    def test_export_filename_outside_latin1(self, client, title):
        client.patch("/api/canvas", json={"title": title})
        response = client.get("/api/export/json")
        assert response.status_code == 200
        disposition = response.headers["content-disposition"]
        assert f"filename*=UTF-8''{quote(title + '.json', safe='')}" in disposition
        assert disposition.isascii()
        assert disposition.count('"') == 2

    def test_png_viewport(self, client):
        add(client)
        response = client.get("/api/export/png", params={"width": 64, "height": 32})
        assert response.content[:4] == b"\x89PNG"

    def test_unknown_format(self, client):
        assert client.get("/api/export/gif").status_code == 422

    def test_validate(self, client):
        result = client.get("/api/canvas/validate").json()
        assert result["summary"]["valid"] is True
        assert result["summary"]["info"] == 1


class TestBuildSession:
    def test_in_memory_without_url(self):
        session = build_session(Settings())
        assert isinstance(session.repository.store, InMemoryCanvasStore)

    def test_http_with_url(self):
        session = build_session(Settings(store_url="http://store.test", max_history=5))
        assert isinstance(session.repository.store, HttpCanvasStore)
        assert isinstance(session, CanvasSession)
