"""Schema translator — Turns a mapping descriptor into a remote type mapping.

Translation is a pure function of the descriptor and the execution options,
so translating the same descriptor twice gives equal mappings and the
validator/migrator compare stable targets across runs.
"""

from __future__ import annotations

import logging

from indexsync.exceptions import TranslationError
from indexsync.models.descriptor import EntityMappingDescriptor, FieldDescriptor
from indexsync.models.schema import DataType, ExecutionOptions, PropertyMapping, TypeMapping

logger = logging.getLogger(__name__)

TENANT_ID_FIELD = "__tenant_id"
"""Field holding the tenant identifier when multitenancy is enabled."""

DEFAULT_DATE_FORMAT = "strict_date_optional_time||epoch_millis"

_LOGICAL_TYPES: dict[str, DataType] = {
    "text": DataType.TEXT,
    "keyword": DataType.KEYWORD,
    "integer": DataType.INTEGER,
    "int": DataType.INTEGER,
    "long": DataType.LONG,
    "float": DataType.FLOAT,
    "double": DataType.DOUBLE,
    "boolean": DataType.BOOLEAN,
    "date": DataType.DATE,
    "object": DataType.OBJECT,
    "nested": DataType.NESTED,
    "geo_point": DataType.GEO_POINT,
}

_CONTAINER_TYPES = {DataType.OBJECT, DataType.NESTED}


class SchemaTranslator:
    """Translates ``EntityMappingDescriptor`` instances to ``TypeMapping``."""

    def translate(self, descriptor: EntityMappingDescriptor, options: ExecutionOptions) -> TypeMapping:
        """Translate one entity descriptor.

        Args:
            descriptor: Logical mapping of the entity type.
            options: Execution options of the owning index manager.

        Returns:
            The remote mapping of the entity type.

        Raises:
            TranslationError: If a field has no remote equivalent or is declared twice.
        """
        properties: dict[str, PropertyMapping] = {
            descriptor.id_field: PropertyMapping(type=DataType.KEYWORD, store=True),
        }
        self._translate_fields(descriptor.entity_type, descriptor.fields, "", properties)

        if options.multitenancy_enabled:
            if TENANT_ID_FIELD in properties:
                raise TranslationError(
                    f"Entity '{descriptor.entity_type}': field name '{TENANT_ID_FIELD}' is reserved for tenant ids"
                )
            properties[TENANT_ID_FIELD] = PropertyMapping(type=DataType.KEYWORD)

        logger.debug("Translated entity '%s' into %d top-level fields", descriptor.entity_type, len(properties))
        return TypeMapping(properties=properties)

    def _translate_fields(
        self,
        entity_type: str,
        fields: list[FieldDescriptor],
        prefix: str,
        into: dict[str, PropertyMapping],
    ) -> None:
        for field in fields:
            path = f"{prefix}{field.name}"
            if field.name in into:
                raise TranslationError(f"Entity '{entity_type}': field '{path}' is declared more than once")
            into[field.name] = self._translate_field(entity_type, field, path)

    def _translate_field(self, entity_type: str, field: FieldDescriptor, path: str) -> PropertyMapping:
        logical = field.type.lower()
        if logical == "string":
            data_type = DataType.TEXT if field.analyzed else DataType.KEYWORD
        elif logical in _LOGICAL_TYPES:
            data_type = _LOGICAL_TYPES[logical]
        else:
            raise TranslationError(
                f"Entity '{entity_type}': field '{path}' has type '{field.type}' "
                f"which has no equivalent in the search service"
            )

        if data_type in _CONTAINER_TYPES:
            children: dict[str, PropertyMapping] = {}
            self._translate_fields(entity_type, field.children, f"{path}.", children)
            return PropertyMapping(type=data_type, properties=children)

        if field.children:
            raise TranslationError(
                f"Entity '{entity_type}': field '{path}' of type '{field.type}' cannot have embedded fields"
            )
        if field.sortable and data_type == DataType.TEXT:
            raise TranslationError(
                f"Entity '{entity_type}': analyzed field '{path}' cannot be sortable; declare it as a keyword"
            )

        return PropertyMapping(
            type=data_type,
            index=None if field.indexed else False,
            store=True if field.stored else None,
            doc_values=True if field.sortable else None,
            analyzer=field.analyzer if data_type == DataType.TEXT else None,
            format=(field.date_format or DEFAULT_DATE_FORMAT) if data_type == DataType.DATE else None,
            null_value=field.null_marker if data_type != DataType.TEXT else None,
        )
