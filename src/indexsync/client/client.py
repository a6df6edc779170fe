"""Search service client — Thin async HTTP/JSON transport for the remote search service.

Everything above this module talks to the service through
``SearchServiceClient.request()``: submit a request, get a parsed response or
an exception.  Connection pooling is left to ``httpx``.

Usage::

    async with SearchServiceClient(["http://localhost:9200"]) as client:
        response = await client.request("GET", "/_cluster/health")
        print(response.body["status"])
"""

from __future__ import annotations

import itertools
import json
import logging
from collections.abc import Collection
from typing import Any

import httpx
from pydantic import BaseModel, Field

from indexsync.exceptions import RemoteServiceError, TransportError

logger = logging.getLogger(__name__)


class ServiceResponse(BaseModel):
    """A parsed response from the search service."""

    status_code: int = Field(description="HTTP status code")
    body: Any = Field(default=None, description="Decoded JSON body (None when empty)")

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def _error_reason(body: Any) -> str:
    """Extract the most useful error description from an error body."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return f"{error.get('type', 'error')}: {error.get('reason', '')}".strip()
        if error:
            return str(error)
    return str(body)[:500] if body else "no response body"


class SearchServiceClient:
    """Async client for an Elasticsearch-compatible search service.

    Requests are spread round-robin over the configured hosts.

    Args:
        hosts: Service node URLs.
        username: Optional HTTP basic-auth username.
        password: Optional HTTP basic-auth password.
        api_key: Optional encoded API key.
        verify_certs: Whether to verify TLS certificates.
        timeout: Request timeout in seconds.
        max_connections: Connection pool size.
        **httpx_kwargs: Additional keyword arguments passed to ``httpx.AsyncClient``
            (e.g. ``transport=`` in tests).
    """

    def __init__(
        self,
        hosts: list[str] | None = None,
        *,
        username: str | None = None,
        password: str | None = None,
        api_key: str | None = None,
        verify_certs: bool = True,
        timeout: float = 60.0,
        max_connections: int = 20,
        **httpx_kwargs: Any,
    ) -> None:
        self._hosts = [h.rstrip("/") for h in (hosts or ["http://localhost:9200"])]
        self._host_cycle = itertools.cycle(self._hosts)

        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"ApiKey {api_key}"
        auth = (username, password) if username and password else None

        self._client = httpx.AsyncClient(
            headers=headers,
            auth=auth,
            verify=verify_certs,
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_connections=max_connections),
            **httpx_kwargs,
        )

    @classmethod
    def from_settings(cls, settings: Any, **httpx_kwargs: Any) -> SearchServiceClient:
        """Build a client from ``ServiceSettings``."""
        return cls(
            settings.hosts,
            username=settings.username,
            password=settings.password,
            api_key=settings.api_key,
            verify_certs=settings.verify_certs,
            timeout=settings.request_timeout,
            max_connections=settings.max_connections,
            **httpx_kwargs,
        )

    async def __aenter__(self) -> SearchServiceClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    @property
    def hosts(self) -> list[str]:
        return list(self._hosts)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
        ndjson: list[dict[str, Any]] | None = None,
        ignore: Collection[int] = (),
    ) -> ServiceResponse:
        """Send one request to the service.

        Args:
            method: HTTP method.
            path: Path relative to the host, e.g. ``/my-index/_mapping``.
            params: Query string parameters.
            body: JSON body.
            ndjson: Lines of a newline-delimited JSON body (bulk API).
            ignore: Error status codes to return instead of raising.

        Returns:
            The parsed response.

        Raises:
            TransportError: If the service cannot be reached.
            RemoteServiceError: If the service answers with an error status not in ``ignore``.
        """
        url = f"{next(self._host_cycle)}{path}"
        kwargs: dict[str, Any] = {"params": params}
        if ndjson is not None:
            kwargs["content"] = "".join(json.dumps(line) + "\n" for line in ndjson).encode("utf-8")
            kwargs["headers"] = {"Content-Type": "application/x-ndjson"}
        elif body is not None:
            kwargs["json"] = body

        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        parsed = ServiceResponse(status_code=response.status_code, body=_decode(response))
        logger.debug("%s %s -> %d", method, path, response.status_code)

        if not parsed.ok and response.status_code not in ignore:
            raise RemoteServiceError(
                f"{method} {path} returned {response.status_code}: {_error_reason(parsed.body)}",
                status_code=response.status_code,
                body=parsed.body,
            )
        return parsed


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
