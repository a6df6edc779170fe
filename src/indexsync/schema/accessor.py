"""Schema accessor — Remote schema calls shared by the schema operations."""

from __future__ import annotations

import logging

from indexsync.client.client import SearchServiceClient
from indexsync.exceptions import IndexStatusTimeoutError, RemoteServiceError
from indexsync.models.schema import ExecutionOptions, IndexMetadata, TypeMapping

logger = logging.getLogger(__name__)

_ALREADY_EXISTS_ERRORS = {"resource_already_exists_exception", "index_already_exists_exception"}


def is_already_exists(error: RemoteServiceError) -> bool:
    """Whether a remote error reports that an index already exists."""
    body = error.body if isinstance(error.body, dict) else {}
    err = body.get("error")
    return error.status_code == 400 and isinstance(err, dict) and err.get("type") in _ALREADY_EXISTS_ERRORS


class SchemaAccessor:
    """Wraps the index-level endpoints of the search service.

    Args:
        client: Transport to the search service.
    """

    def __init__(self, client: SearchServiceClient) -> None:
        self._client = client

    async def index_exists(self, index_name: str) -> bool:
        response = await self._client.request("HEAD", f"/{index_name}", ignore=(404,))
        return response.status_code != 404

    async def create_index(self, metadata: IndexMetadata, *, if_absent: bool = False) -> bool:
        """Create an index with its full mapping.

        Args:
            metadata: Target index schema.
            if_absent: Treat "already exists" as success instead of an error.

        Returns:
            True if this call created the index.
        """
        try:
            await self._client.request("PUT", f"/{metadata.name}", body=metadata.to_remote())
        except RemoteServiceError as e:
            if if_absent and is_already_exists(e):
                logger.info("Index '%s' was created concurrently, leaving it as is", metadata.name)
                return False
            raise
        logger.info("Created index '%s' with %d type mapping(s)", metadata.name, len(metadata.mappings))
        return True

    async def drop_index(self, index_name: str, options: ExecutionOptions) -> bool:
        """Delete an index and its contents.

        Returns:
            True if this call deleted the index, False if it was already gone.
        """
        response = await self._client.request(
            "DELETE",
            f"/{index_name}",
            params={"timeout": f"{options.index_management_timeout_ms}ms"},
            ignore=(404,),
        )
        if response.status_code == 404:
            return False
        logger.info("Dropped index '%s'", index_name)
        return True

    async def get_mappings(self, index_name: str) -> dict[str, TypeMapping] | None:
        """Fetch the actual mapping of every type of an index.

        Returns:
            Entity type -> mapping, or None if the index does not exist.
        """
        response = await self._client.request("GET", f"/{index_name}/_mapping", ignore=(404,))
        if response.status_code == 404:
            return None
        body = response.body or {}
        # Keyed by the concrete index name, which differs when index_name is an alias.
        index_body = body.get(index_name) or next(iter(body.values()), {})
        raw_mappings = index_body.get("mappings", {})
        return {entity_type: TypeMapping.from_remote(m) for entity_type, m in raw_mappings.items()}

    async def put_mapping(self, index_name: str, entity_type: str, mapping: TypeMapping) -> None:
        await self._client.request("PUT", f"/{index_name}/_mapping/{entity_type}", body=mapping.to_remote())
        logger.info("Updated mapping of type '%s' in index '%s'", entity_type, index_name)

    async def wait_for_index_status(self, index_name: str, options: ExecutionOptions) -> None:
        """Block until the index reaches the required health status.

        Raises:
            IndexStatusTimeoutError: If the status is not reached within the timeout.
        """
        required = options.required_index_status.value
        timeout_ms = options.index_management_timeout_ms
        response = await self._client.request(
            "GET",
            f"/_cluster/health/{index_name}",
            params={"wait_for_status": required, "timeout": f"{timeout_ms}ms"},
            ignore=(408,),
        )
        body = response.body or {}
        if response.status_code == 408 or body.get("timed_out"):
            raise IndexStatusTimeoutError(
                f"Index '{index_name}' did not reach status '{required}' within {timeout_ms} ms "
                f"(current status: '{body.get('status', 'unknown')}')"
            )
        logger.debug("Index '%s' reached status '%s'", index_name, body.get("status", required))
