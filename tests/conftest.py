"""Shared test fixtures and an in-memory fake of the remote search service."""

from __future__ import annotations

import asyncio
import copy
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest

from indexsync.backend.processor import BackendRequestProcessor
from indexsync.client.client import SearchServiceClient
from indexsync.config.settings import SchemaSettings
from indexsync.core.services import IndexSyncServices
from indexsync.models.descriptor import EntityMappingDescriptor, FieldDescriptor
from indexsync.models.schema import ExecutionOptions, IndexStatus
from indexsync.schema.accessor import SchemaAccessor

_STATUS_RANK = {"green": 0, "yellow": 1, "red": 2}


def _error(status: int, error_type: str, reason: str) -> httpx.Response:
    return httpx.Response(status, json={"error": {"type": error_type, "reason": reason}, "status": status})


class FakeSearchService:
    """Minimal Elasticsearch-like service backing ``httpx.MockTransport``.

    Records every request (``requests``) and every document write in the
    order the service applied it (``operations``).  Documents only become
    visible to ``_search`` after a refresh.
    """

    def __init__(self) -> None:
        self.indexes: dict[str, dict[str, Any]] = {}
        self.requests: list[tuple[str, str]] = []
        self.operations: list[tuple[str, str, str]] = []
        self.health_status = "green"
        self.forcemerge_supported = True
        self.rejected_ids: set[str] = set()
        self.bulk_delay = 0.0
        self.reject_mapping_updates = False

    # ── Test helpers ──

    def add_index(self, name: str, mappings: dict[str, Any] | None = None) -> None:
        self.indexes[name] = {"mappings": copy.deepcopy(mappings or {}), "docs": {}, "visible": {}}

    def calls(self, method: str | None = None) -> list[tuple[str, str]]:
        return [c for c in self.requests if method is None or c[0] == method]

    # ── Transport handler ──

    async def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        self.requests.append((method, path))
        parts = [p for p in path.split("/") if p]

        if parts[:2] == ["_cluster", "health"]:
            return self._health(parts[2], request)
        if parts == ["_bulk"]:
            if self.bulk_delay:
                await asyncio.sleep(self.bulk_delay)
            return self._bulk(request.content.decode("utf-8"))

        index = parts[0]
        rest = parts[1:]
        if rest == ["_refresh"] and method == "POST":
            return self._refresh(index.split(","))
        if not rest:
            return self._index_level(method, index, request)
        if index not in self.indexes:
            return _error(404, "index_not_found_exception", f"no such index [{index}]")
        if rest == ["_mapping"] and method == "GET":
            return httpx.Response(200, json={index: {"mappings": self.indexes[index]["mappings"]}})
        if rest[0] == "_mapping" and method == "PUT":
            return self._put_mapping(index, rest[1], json.loads(request.content))
        if rest == ["_forcemerge"]:
            if not self.forcemerge_supported:
                return _error(405, "method_not_allowed", "force merge unsupported")
            return httpx.Response(200, json={"_shards": {"failed": 0}})
        if rest == ["_search"]:
            visible = self.indexes[index]["visible"]
            hits = [{"_id": doc_id, "_type": t, "_source": d} for (t, doc_id), d in visible.items()]
            return httpx.Response(200, json={"hits": {"total": {"value": len(hits)}, "hits": hits}})
        if len(rest) == 2 and rest[1] == "_delete_by_query":
            docs = self.indexes[index]["docs"]
            deleted = [key for key in docs if key[0] == rest[0]]
            for key in deleted:
                del docs[key]
                self.operations.append(("delete", index, key[1]))
            return httpx.Response(200, json={"deleted": len(deleted)})
        if len(rest) == 2 and method == "PUT":
            self._write_doc(index, rest[0], rest[1], json.loads(request.content))
            return httpx.Response(201, json={"result": "created"})
        if len(rest) == 2 and method == "DELETE":
            found = self.indexes[index]["docs"].pop((rest[0], rest[1]), None)
            self.operations.append(("delete", index, rest[1]))
            return httpx.Response(200 if found is not None else 404, json={"result": "deleted"})
        return _error(400, "unsupported", f"{method} {path}")

    def _health(self, index: str, request: httpx.Request) -> httpx.Response:
        wanted = request.url.params.get("wait_for_status", "red")
        if index not in self.indexes or _STATUS_RANK[self.health_status] > _STATUS_RANK[wanted]:
            return httpx.Response(408, json={"status": "red" if index not in self.indexes else self.health_status,
                                             "timed_out": True})
        return httpx.Response(200, json={"status": self.health_status, "timed_out": False})

    def _index_level(self, method: str, index: str, request: httpx.Request) -> httpx.Response:
        exists = index in self.indexes
        if method == "HEAD":
            return httpx.Response(200 if exists else 404)
        if method == "PUT":
            if exists:
                return _error(400, "resource_already_exists_exception", f"index [{index}] already exists")
            body = json.loads(request.content) if request.content else {}
            self.add_index(index, body.get("mappings", {}))
            return httpx.Response(200, json={"acknowledged": True})
        if method == "DELETE":
            if not exists:
                return _error(404, "index_not_found_exception", f"no such index [{index}]")
            del self.indexes[index]
            return httpx.Response(200, json={"acknowledged": True})
        return _error(405, "method_not_allowed", method)

    def _put_mapping(self, index: str, entity_type: str, mapping: dict[str, Any]) -> httpx.Response:
        if self.reject_mapping_updates:
            return _error(400, "illegal_argument_exception", "mapping update rejected")
        existing = self.indexes[index]["mappings"].setdefault(entity_type, {"properties": {}})
        for name, field in mapping.get("properties", {}).items():
            current = existing["properties"].get(name)
            if current is not None and current.get("type") != field.get("type"):
                return _error(400, "illegal_argument_exception", f"mapper [{name}] cannot be changed")
        for name, field in mapping.get("properties", {}).items():
            existing["properties"].setdefault(name, field)
        existing["dynamic"] = mapping.get("dynamic", existing.get("dynamic"))
        return httpx.Response(200, json={"acknowledged": True})

    def _write_doc(self, index: str, entity_type: str, doc_id: str, source: dict[str, Any]) -> None:
        self.indexes[index]["docs"][(entity_type, doc_id)] = source
        self.operations.append(("index", index, doc_id))

    def _bulk(self, payload: str) -> httpx.Response:
        lines = [json.loads(line) for line in payload.splitlines() if line.strip()]
        items: list[dict[str, Any]] = []
        i = 0
        while i < len(lines):
            action, meta = next(iter(lines[i].items()))
            i += 1
            index, entity_type, doc_id = meta["_index"], meta["_type"], meta["_id"]
            if action == "index":
                source = lines[i]
                i += 1
                if doc_id in self.rejected_ids or index not in self.indexes:
                    items.append({action: {"_id": doc_id, "status": 400,
                                           "error": {"type": "mapper_parsing_exception", "reason": "rejected"}}})
                    continue
                self._write_doc(index, entity_type, doc_id, source)
                items.append({action: {"_id": doc_id, "status": 201}})
            else:
                found = self.indexes.get(index, {}).get("docs", {}).pop((entity_type, doc_id), None)
                self.operations.append(("delete", index, doc_id))
                items.append({action: {"_id": doc_id, "status": 200 if found is not None else 404}})
        errors = any(next(iter(item.values()))["status"] >= 400 for item in items)
        return httpx.Response(200, json={"errors": errors, "items": items})

    def _refresh(self, names: list[str]) -> httpx.Response:
        for name in names:
            if name in self.indexes:
                self.indexes[name]["visible"] = dict(self.indexes[name]["docs"])
        return httpx.Response(200, json={"_shards": {"failed": 0}})


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def fake_service() -> FakeSearchService:
    return FakeSearchService()


@pytest.fixture
async def client(fake_service: FakeSearchService) -> AsyncIterator[SearchServiceClient]:
    service_client = SearchServiceClient(
        ["http://search.test"],
        transport=httpx.MockTransport(fake_service.handler),
    )
    yield service_client
    await service_client.close()


@pytest.fixture
def accessor(client: SearchServiceClient) -> SchemaAccessor:
    return SchemaAccessor(client)


@pytest.fixture
def options() -> ExecutionOptions:
    return ExecutionOptions(required_index_status=IndexStatus.YELLOW, index_management_timeout_ms=500)


@pytest.fixture
async def processor(client: SearchServiceClient) -> AsyncIterator[BackendRequestProcessor]:
    proc = BackendRequestProcessor(client, workers=2, max_bulk_size=50)
    yield proc
    await proc.shutdown()


@pytest.fixture
def services(client: SearchServiceClient, processor: BackendRequestProcessor) -> IndexSyncServices:
    return IndexSyncServices(client, processor, SchemaSettings())


@pytest.fixture
def book_descriptor() -> EntityMappingDescriptor:
    return EntityMappingDescriptor(
        entity_type="book",
        fields=[
            FieldDescriptor(name="title", type="string", analyzer="english"),
            FieldDescriptor(name="isbn", type="string", analyzed=False, sortable=True),
            FieldDescriptor(name="pages", type="integer"),
            FieldDescriptor(name="published", type="date"),
            FieldDescriptor(
                name="publisher",
                type="object",
                children=[FieldDescriptor(name="name", type="keyword")],
            ),
        ],
    )


@pytest.fixture
def author_descriptor() -> EntityMappingDescriptor:
    return EntityMappingDescriptor(
        entity_type="author",
        fields=[
            FieldDescriptor(name="name", type="text"),
            FieldDescriptor(name="rating", type="float"),
        ],
    )


@pytest.fixture
def descriptors(
    book_descriptor: EntityMappingDescriptor,
    author_descriptor: EntityMappingDescriptor,
) -> dict[str, EntityMappingDescriptor]:
    return {"book": book_descriptor, "author": author_descriptor}
