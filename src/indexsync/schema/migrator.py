"""Schema migrator — Merges target mappings into an existing remote index.

New types and new fields are added.  Existing fields are never changed: an
existing field whose type is accepted by the compatibility policy keeps its
remote type in the merged mapping, any other divergence is a conflict.
"""

from __future__ import annotations

import logging

from indexsync.exceptions import MergeConflictError, RemoteServiceError
from indexsync.models.schema import ExecutionOptions, IndexMetadata, PropertyMapping, TypeMapping
from indexsync.schema.accessor import SchemaAccessor
from indexsync.schema.compatibility import TypeCompatibility

logger = logging.getLogger(__name__)


class SchemaMigrator:
    """Merges target index metadata into the remote schema.

    Args:
        accessor: Remote schema access.
        compatibility: Which remote types are accepted for an expected type.
    """

    def __init__(self, accessor: SchemaAccessor, compatibility: TypeCompatibility | None = None) -> None:
        self._accessor = accessor
        self._compatibility = compatibility or TypeCompatibility()

    async def merge(self, metadata: IndexMetadata, options: ExecutionOptions) -> None:
        """Create missing parts of the schema and merge the rest.

        Raises:
            MergeConflictError: Naming every conflicting entity type and field.
            IndexStatusTimeoutError: If the index does not reach the required status.
        """
        if not await self._accessor.index_exists(metadata.name):
            logger.info("Index '%s' does not exist, creating it with the full mapping", metadata.name)
            await self._accessor.create_index(metadata, if_absent=True)
            await self._accessor.wait_for_index_status(metadata.name, options)
            return

        await self._accessor.wait_for_index_status(metadata.name, options)
        actual = await self._accessor.get_mappings(metadata.name) or {}

        conflicts: list[str] = []
        merged: dict[str, TypeMapping] = {}
        for entity_type in sorted(metadata.mappings):
            target = metadata.mappings[entity_type]
            existing = actual.get(entity_type)
            if existing is None:
                merged[entity_type] = target
                continue
            properties = self._merge_properties(entity_type, "", target.properties, existing.properties, conflicts)
            merged[entity_type] = target.model_copy(update={"properties": properties})

        if conflicts:
            raise MergeConflictError(metadata.name, conflicts)

        for entity_type, mapping in merged.items():
            try:
                await self._accessor.put_mapping(metadata.name, entity_type, mapping)
            except RemoteServiceError as e:
                if e.status_code != 400:
                    raise
                raise MergeConflictError(metadata.name, [f"type '{entity_type}': rejected by the service: {e}"]) from e

    def _merge_properties(
        self,
        entity_type: str,
        prefix: str,
        target: dict[str, PropertyMapping],
        existing: dict[str, PropertyMapping],
        conflicts: list[str],
    ) -> dict[str, PropertyMapping]:
        merged: dict[str, PropertyMapping] = {}
        for name, wanted in target.items():
            path = f"{prefix}{name}"
            current = existing.get(name)
            if current is None:
                merged[name] = wanted
                continue

            if not self._compatibility.is_compatible(wanted.type, current.type):
                conflicts.append(
                    f"type '{entity_type}', field '{path}': existing type '{current.type_name}' "
                    f"is incompatible with '{wanted.type_name}'"
                )
                continue
            if wanted.analyzer is not None and wanted.analyzer != (current.analyzer or "standard"):
                conflicts.append(
                    f"type '{entity_type}', field '{path}': existing analyzer '{current.analyzer}' "
                    f"cannot be changed to '{wanted.analyzer}'"
                )
                continue

            update: dict[str, object] = {"type": current.type}
            if wanted.properties:
                update["properties"] = self._merge_properties(
                    entity_type, f"{path}.", wanted.properties, current.properties, conflicts
                )
            merged[name] = wanted.model_copy(update=update)
        return merged
