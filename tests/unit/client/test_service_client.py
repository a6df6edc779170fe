"""Tests for the search service HTTP client."""

from __future__ import annotations

import json

import httpx
import pytest

from indexsync.client.client import SearchServiceClient, ServiceResponse
from indexsync.config.settings import ServiceSettings
from indexsync.exceptions import RemoteServiceError, TransportError


def _client(handler, **kwargs) -> SearchServiceClient:
    hosts = kwargs.pop("hosts", ["http://search.test"])
    return SearchServiceClient(hosts, transport=httpx.MockTransport(handler), **kwargs)


class TestServiceResponse:
    def test_ok(self) -> None:
        assert ServiceResponse(status_code=200).ok
        assert not ServiceResponse(status_code=404).ok


class TestSearchServiceClient:
    async def test_json_request(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"acknowledged": True})

        async with _client(handler) as client:
            response = await client.request("PUT", "/library", params={"timeout": "5ms"}, body={"mappings": {}})

        assert response.body == {"acknowledged": True}
        assert seen[0].url.path == "/library"
        assert seen[0].url.params["timeout"] == "5ms"
        assert json.loads(seen[0].content) == {"mappings": {}}

    async def test_ndjson_request(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"errors": False, "items": []})

        async with _client(handler) as client:
            await client.request("POST", "/_bulk", ndjson=[{"delete": {"_id": "1"}}, {"delete": {"_id": "2"}}])

        assert seen[0].headers["content-type"] == "application/x-ndjson"
        lines = seen[0].content.decode().splitlines()
        assert [json.loads(line) for line in lines] == [{"delete": {"_id": "1"}}, {"delete": {"_id": "2"}}]
        assert seen[0].content.endswith(b"\n")

    async def test_error_status_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"type": "illegal_argument_exception", "reason": "bad"}})

        async with _client(handler) as client:
            with pytest.raises(RemoteServiceError, match="illegal_argument_exception: bad") as exc_info:
                await client.request("PUT", "/library/_mapping/book", body={})

        assert exc_info.value.status_code == 400
        assert exc_info.value.body["error"]["reason"] == "bad"

    async def test_ignored_status_is_returned(self) -> None:
        async with _client(lambda request: httpx.Response(404)) as client:
            response = await client.request("HEAD", "/library", ignore=(404,))

        assert response.status_code == 404
        assert response.body is None

    async def test_connection_failure_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(TransportError, match="connection refused"):
                await client.request("GET", "/_cluster/health")

    async def test_hosts_are_used_round_robin(self) -> None:
        hosts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            return httpx.Response(200, json={})

        async with _client(handler, hosts=["http://es1:9200/", "http://es2:9200"]) as client:
            for _ in range(3):
                await client.request("GET", "/")
            assert client.hosts == ["http://es1:9200", "http://es2:9200"]

        assert hosts == ["es1", "es2", "es1"]

    async def test_api_key_header(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        async with _client(handler, api_key="c2VjcmV0") as client:
            await client.request("GET", "/")

        assert seen[0].headers["authorization"] == "ApiKey c2VjcmV0"

    async def test_from_settings(self) -> None:
        settings = ServiceSettings(hosts=["http://es:9200"], username="elastic", password="changeme")
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        client = SearchServiceClient.from_settings(settings, transport=transport)
        try:
            assert client.hosts == ["http://es:9200"]
        finally:
            await client.close()
