"""Schema models — Target index schema and schema-management execution options.

These are the values the schema operations compare and apply against the
remote search service.  All of them are frozen: an ``IndexMetadata`` is built
fresh for every strategy evaluation and then only read.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class IndexStatus(str, Enum):
    """Health status reported by the search service for an index."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class DataType(str, Enum):
    """Field types understood by the remote search service."""

    TEXT = "text"
    KEYWORD = "keyword"
    INTEGER = "integer"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT = "object"
    NESTED = "nested"
    GEO_POINT = "geo_point"


class PropertyMapping(BaseModel):
    """Mapping of a single field, possibly with sub-properties."""

    model_config = ConfigDict(frozen=True)

    type: DataType | str = Field(
        union_mode="left_to_right",
        description="Remote field type; type names outside DataType are kept as reported",
    )
    index: bool | None = Field(default=None, description="Whether the field is searchable")
    store: bool | None = Field(default=None, description="Whether the raw value is stored")
    doc_values: bool | None = Field(default=None, description="Whether the field is sortable/aggregatable")
    analyzer: str | None = Field(default=None, description="Analyzer name for text fields")
    format: str | None = Field(default=None, description="Date format")
    null_value: Any = Field(default=None, description="Value indexed in place of null")
    properties: dict[str, PropertyMapping] = Field(default_factory=dict, description="Sub-properties")

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, DataType) else self.type

    def to_remote(self) -> dict[str, Any]:
        """Serialize to the remote JSON form (``None`` omitted, properties sorted)."""
        body: dict[str, Any] = {"type": self.type_name}
        for attr in ("index", "store", "doc_values", "analyzer", "format", "null_value"):
            value = getattr(self, attr)
            if value is not None:
                body[attr] = value
        if self.properties:
            body["properties"] = {name: self.properties[name].to_remote() for name in sorted(self.properties)}
        return body

    @classmethod
    def from_remote(cls, data: dict[str, Any]) -> PropertyMapping:
        """Parse a remote field mapping.

        Fields with sub-properties but no explicit type are objects, as the
        service reports them that way.
        """
        return cls(
            type=data.get("type", DataType.OBJECT.value),
            index=data.get("index"),
            store=data.get("store"),
            doc_values=data.get("doc_values"),
            analyzer=data.get("analyzer"),
            format=data.get("format"),
            null_value=data.get("null_value"),
            properties={name: cls.from_remote(sub) for name, sub in data.get("properties", {}).items()},
        )


class TypeMapping(BaseModel):
    """Mapping of one entity type."""

    model_config = ConfigDict(frozen=True)

    dynamic: str = Field(default="strict", description="Dynamic mapping policy")
    properties: dict[str, PropertyMapping] = Field(default_factory=dict, description="Top-level fields")

    def to_remote(self) -> dict[str, Any]:
        return {
            "dynamic": self.dynamic,
            "properties": {name: self.properties[name].to_remote() for name in sorted(self.properties)},
        }

    @classmethod
    def from_remote(cls, data: dict[str, Any]) -> TypeMapping:
        return cls(
            dynamic=str(data.get("dynamic", "true")),
            properties={name: PropertyMapping.from_remote(p) for name, p in data.get("properties", {}).items()},
        )


class IndexMetadata(BaseModel):
    """Target schema of one physical index: its name plus a mapping per entity type."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Physical index name")
    mappings: dict[str, TypeMapping] = Field(default_factory=dict, description="Entity type -> mapping")

    def to_remote(self) -> dict[str, Any]:
        """Body of the index creation request."""
        return {"mappings": {t: self.mappings[t].to_remote() for t in sorted(self.mappings)}}


class ExecutionOptions(BaseModel):
    """Options shared by every schema operation of one index manager.

    Captured once at initialization and only read afterwards.
    """

    model_config = ConfigDict(frozen=True)

    required_index_status: IndexStatus = Field(default=IndexStatus.GREEN, description="Health status to wait for")
    index_management_timeout_ms: int = Field(default=10_000, ge=0, description="Health wait timeout in ms")
    multitenancy_enabled: bool = Field(default=False, description="Whether documents carry a tenant id")
