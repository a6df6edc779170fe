"""Mapping descriptors — Logical description of how an entity type maps to index fields.

Descriptors are produced by the application's domain-model layer and handed
to the index manager at bind time.  IndexSync never inspects the domain model
itself.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class FieldDescriptor(BaseModel):
    """Logical description of one indexed field."""

    name: str = Field(description="Field name in the index")
    type: str = Field(description="Logical type: string, text, keyword, integer, long, float, double, ...")
    analyzed: bool = Field(default=True, description="Whether string values are tokenized")
    indexed: bool = Field(default=True, description="Whether the field is searchable")
    stored: bool = Field(default=False, description="Whether the raw value is stored")
    sortable: bool = Field(default=False, description="Whether the field supports sorting/aggregations")
    analyzer: str | None = Field(default=None, description="Analyzer for analyzed text")
    date_format: str | None = Field(default=None, description="Date format for date fields")
    null_marker: str | int | float | bool | None = Field(default=None, description="Value indexed for nulls")
    children: list[FieldDescriptor] = Field(default_factory=list, description="Embedded fields (object/nested)")


class EntityMappingDescriptor(BaseModel):
    """Logical mapping of one entity type."""

    entity_type: str = Field(description="Entity type identifier")
    id_field: str = Field(default="id", description="Name of the document identifier field")
    fields: list[FieldDescriptor] = Field(default_factory=list, description="Indexed fields")
