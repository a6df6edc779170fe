"""Schema validator — Checks the remote schema against the expected one.

Validation is exhaustive: every missing type, missing field and diverging
attribute is collected and reported in a single ``SchemaValidationError``, so
an operator sees the whole divergence in one run.
"""

from __future__ import annotations

import logging
from typing import Any

from indexsync.exceptions import SchemaValidationError
from indexsync.models.schema import DataType, ExecutionOptions, IndexMetadata, PropertyMapping, TypeMapping
from indexsync.schema.accessor import SchemaAccessor
from indexsync.schema.compatibility import TypeCompatibility

logger = logging.getLogger(__name__)


def _effective(mapping: PropertyMapping, attr: str) -> Any:
    """Attribute value with the service's defaults applied for omitted values."""
    value = getattr(mapping, attr)
    if value is not None:
        return value
    if attr == "index":
        return True
    if attr == "store":
        return False
    if attr == "doc_values":
        return mapping.type != DataType.TEXT
    if attr == "analyzer" and mapping.type == DataType.TEXT:
        return "standard"
    return None


class SchemaValidator:
    """Validates actual remote mappings against target index metadata.

    Args:
        accessor: Remote schema access.
        compatibility: Which remote types are accepted for an expected type.
    """

    _CHECKED_ATTRIBUTES = ("index", "store", "doc_values", "analyzer", "format")

    def __init__(self, accessor: SchemaAccessor, compatibility: TypeCompatibility | None = None) -> None:
        self._accessor = accessor
        self._compatibility = compatibility or TypeCompatibility()

    async def validate(self, metadata: IndexMetadata, options: ExecutionOptions) -> None:
        """Fetch the actual schema and validate it.

        Raises:
            SchemaValidationError: Listing every mismatch found.
            IndexStatusTimeoutError: If the index does not reach the required status.
        """
        if not await self._accessor.index_exists(metadata.name):
            raise SchemaValidationError(metadata.name, [f"index '{metadata.name}' does not exist"])

        await self._accessor.wait_for_index_status(metadata.name, options)
        actual = await self._accessor.get_mappings(metadata.name) or {}

        errors = self.compare(metadata, actual)
        if errors:
            logger.error("Schema validation of index '%s' found %d mismatch(es)", metadata.name, len(errors))
            raise SchemaValidationError(metadata.name, errors)
        logger.info("Schema of index '%s' is valid", metadata.name)

    def compare(self, metadata: IndexMetadata, actual: dict[str, TypeMapping]) -> list[str]:
        """Return every mismatch between the expected and the actual mappings."""
        errors: list[str] = []
        for entity_type in sorted(metadata.mappings):
            actual_mapping = actual.get(entity_type)
            if actual_mapping is None:
                errors.append(f"type '{entity_type}': mapping is missing")
                continue
            self._compare_properties(
                entity_type,
                "",
                metadata.mappings[entity_type].properties,
                actual_mapping.properties,
                errors,
            )
        return errors

    def _compare_properties(
        self,
        entity_type: str,
        prefix: str,
        expected: dict[str, PropertyMapping],
        actual: dict[str, PropertyMapping],
        errors: list[str],
    ) -> None:
        for name in sorted(expected):
            path = f"{prefix}{name}"
            where = f"type '{entity_type}', field '{path}'"
            expected_field = expected[name]
            actual_field = actual.get(name)

            if actual_field is None:
                errors.append(f"{where}: field is missing")
                continue

            if not self._compatibility.is_compatible(expected_field.type, actual_field.type):
                accepted = ", ".join(t.value for t in self._compatibility.accepted(expected_field.type))
                errors.append(f"{where}: invalid type '{actual_field.type_name}', expected one of [{accepted}]")
                continue

            for attr in self._CHECKED_ATTRIBUTES:
                if getattr(expected_field, attr) is None:
                    continue
                wanted, found = _effective(expected_field, attr), _effective(actual_field, attr)
                if wanted != found:
                    errors.append(f"{where}: invalid {attr} '{found}', expected '{wanted}'")

            if expected_field.properties:
                self._compare_properties(
                    entity_type, f"{path}.", expected_field.properties, actual_field.properties, errors
                )
