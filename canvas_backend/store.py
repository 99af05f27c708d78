"""
External canvas store boundary.

The store is an opaque collaborator keyed by canvas id. It exchanges plain
row dicts (see canvas_backend.persistence for the row shape) and offers
four operations: load, create, replace-all contents, update metadata.

Two implementations:
- HttpCanvasStore talks to the notes app REST API with httpx
- InMemoryCanvasStore keeps rows in a dict (development and tests)
"""

import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import httpx

from canvas_core.errors import CanvasNotFoundError, StoreError

logger = logging.getLogger(__name__)


@dataclass
class StoredCanvas:
    """Raw rows for one canvas as the store returns them."""
    metadata: dict
    nodes: list[dict] = field(default_factory=list)
    edges: list[dict] = field(default_factory=list)


class CanvasStore(Protocol):
    async def load_canvas(self, canvas_id: str) -> StoredCanvas: ...

    async def create_canvas(self, metadata: dict) -> str: ...

    async def replace_canvas_contents(self, canvas_id: str, nodes: list[dict], edges: list[dict]) -> None: ...

    async def update_canvas_metadata(self, canvas_id: str, metadata: dict) -> None: ...


class HttpCanvasStore:
    """
    Canvas store backed by the notes app REST API.

    Endpoints:
    - GET    /canvases/{id}   -> {"canvas": {...}, "nodes": [...], "edges": [...]}
    - POST   /canvases        -> {"canvas": {"id": ...}}
    - PATCH  /canvases/{id}   with metadata fields and/or {"nodes", "edges"}
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, endpoint: str, json: Optional[dict] = None,
                       canvas_id: Optional[str] = None) -> dict:
        """Make a request to the store and decode the JSON body."""
        try:
            response = await self._client.request(method, endpoint, json=json)
        except httpx.HTTPError as e:
            raise StoreError(f"Connection to canvas store failed: {e}") from e

        if response.status_code == 404 and canvas_id is not None:
            raise CanvasNotFoundError(canvas_id)
        if response.status_code >= 400:
            try:
                error = response.json().get("error", "Unknown error")
            except ValueError:
                error = response.text
            raise StoreError(f"Canvas store error ({response.status_code}): {error}")

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise StoreError("Canvas store returned invalid JSON") from e

    async def load_canvas(self, canvas_id: str) -> StoredCanvas:
        data = await self._request("GET", f"/canvases/{canvas_id}", canvas_id=canvas_id)
        if "canvas" not in data:
            raise StoreError(f"Malformed canvas response for {canvas_id}")
        return StoredCanvas(
            metadata=data["canvas"],
            nodes=data.get("nodes") or [],
            edges=data.get("edges") or [],
        )

    async def create_canvas(self, metadata: dict) -> str:
        data = await self._request("POST", "/canvases", json=metadata)
        try:
            return data["canvas"]["id"]
        except (KeyError, TypeError) as e:
            raise StoreError("Canvas store did not return an id for the new canvas") from e

    async def replace_canvas_contents(self, canvas_id: str, nodes: list[dict], edges: list[dict]) -> None:
        await self._request("PATCH", f"/canvases/{canvas_id}",
                            json={"nodes": nodes, "edges": edges}, canvas_id=canvas_id)

    async def update_canvas_metadata(self, canvas_id: str, metadata: dict) -> None:
        if not metadata:
            return
        await self._request("PATCH", f"/canvases/{canvas_id}", json=metadata, canvas_id=canvas_id)


class InMemoryCanvasStore:
    """
    Dict-backed store.

    Rows are deep-copied on the way in and out, like a network boundary.
    `calls` records (operation, canvas_id) for every request; operations
    named in `fail_on` raise StoreError; `delay` makes every call yield to
    the event loop for that many seconds first.
    """

    def __init__(self, delay: float = 0.0):
        self.canvases: dict[str, StoredCanvas] = {}
        self.calls: list[tuple[str, Optional[str]]] = []
        self.fail_on: set[str] = set()
        self.delay = delay

    async def _enter(self, operation: str, canvas_id: Optional[str]) -> None:
        self.calls.append((operation, canvas_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        if operation in self.fail_on:
            raise StoreError(f"Simulated failure in {operation}")

    def _get(self, canvas_id: str) -> StoredCanvas:
        try:
            return self.canvases[canvas_id]
        except KeyError:
            raise CanvasNotFoundError(canvas_id) from None

    async def load_canvas(self, canvas_id: str) -> StoredCanvas:
        await self._enter("load_canvas", canvas_id)
        return copy.deepcopy(self._get(canvas_id))

    async def create_canvas(self, metadata: dict) -> str:
        await self._enter("create_canvas", None)
        canvas_id = str(uuid.uuid4())
        self.canvases[canvas_id] = StoredCanvas(metadata={**copy.deepcopy(metadata), "id": canvas_id})
        logger.debug("Created canvas %s", canvas_id)
        return canvas_id

    async def replace_canvas_contents(self, canvas_id: str, nodes: list[dict], edges: list[dict]) -> None:
        await self._enter("replace_canvas_contents", canvas_id)
        stored = self._get(canvas_id)
        stored.nodes = copy.deepcopy(nodes)
        stored.edges = copy.deepcopy(edges)

    async def update_canvas_metadata(self, canvas_id: str, metadata: dict) -> None:
        await self._enter("update_canvas_metadata", canvas_id)
        stored = self._get(canvas_id)
        stored.metadata.update(copy.deepcopy(metadata))
