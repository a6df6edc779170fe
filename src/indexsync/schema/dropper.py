"""Schema dropper — Deletes remote indexes."""

from __future__ import annotations

import logging

from indexsync.models.schema import ExecutionOptions
from indexsync.schema.accessor import SchemaAccessor

logger = logging.getLogger(__name__)


class SchemaDropper:
    """Deletes indexes, tolerating indexes that are already gone."""

    def __init__(self, accessor: SchemaAccessor) -> None:
        self._accessor = accessor

    async def drop_if_existing(self, index_name: str, options: ExecutionOptions) -> bool:
        """Delete the index and all its contents if it exists.

        A concurrent deletion between the existence check and the delete
        call counts as success.

        Returns:
            True if the index was deleted by this call.
        """
        if not await self._accessor.index_exists(index_name):
            logger.debug("Index '%s' does not exist, nothing to drop", index_name)
            return False
        return await self._accessor.drop_index(index_name, options)
