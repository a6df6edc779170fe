"""Schema creator — Creates remote indexes from target metadata."""

from __future__ import annotations

import logging

from indexsync.models.schema import ExecutionOptions, IndexMetadata
from indexsync.schema.accessor import SchemaAccessor

logger = logging.getLogger(__name__)


class SchemaCreator:
    """Creates indexes and waits for them to become usable."""

    def __init__(self, accessor: SchemaAccessor) -> None:
        self._accessor = accessor

    async def create(self, metadata: IndexMetadata, options: ExecutionOptions) -> None:
        """Create the index, failing if it already exists.

        Raises:
            RemoteServiceError: If the index exists or the service rejects the mapping.
            IndexStatusTimeoutError: If the new index does not reach the required status.
        """
        await self._accessor.create_index(metadata)
        await self._accessor.wait_for_index_status(metadata.name, options)

    async def create_if_absent(self, metadata: IndexMetadata, options: ExecutionOptions) -> bool:
        """Create the index unless it exists, then wait for the required status.

        Returns:
            True if the index was created by this call.
        """
        created = False
        if await self._accessor.index_exists(metadata.name):
            logger.info("Index '%s' already exists, not creating it", metadata.name)
        else:
            created = await self._accessor.create_index(metadata, if_absent=True)
        await self._accessor.wait_for_index_status(metadata.name, options)
        return created
