"""Indexing operations — The abstract work an index manager applies to its index.

``IndexingOperation`` is a closed union; the work visitor matches on the
concrete class to build backend requests.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Operation(BaseModel):
    model_config = ConfigDict(frozen=True)


class AddOperation(_Operation):
    """Index a new document."""

    kind: Literal["add"] = "add"
    entity_type: str = Field(description="Entity type of the document")
    id: str = Field(description="Entity identifier, used as document id")
    document: dict[str, Any] = Field(default_factory=dict, description="Serialized document")
    tenant_id: str | None = Field(default=None, description="Tenant owning the document")


class UpdateOperation(_Operation):
    """Replace an existing document (or create it)."""

    kind: Literal["update"] = "update"
    entity_type: str
    id: str
    document: dict[str, Any] = Field(default_factory=dict)
    tenant_id: str | None = None


class DeleteOperation(_Operation):
    """Delete a document by id."""

    kind: Literal["delete"] = "delete"
    entity_type: str
    id: str
    tenant_id: str | None = None


class PurgeAllOperation(_Operation):
    """Delete every document of an entity type."""

    kind: Literal["purge_all"] = "purge_all"
    entity_type: str
    tenant_id: str | None = None


class FlushOperation(_Operation):
    """Wait until previously submitted asynchronous work is durable."""

    kind: Literal["flush"] = "flush"


class OptimizeOperation(_Operation):
    """Best-effort segment merge of the index."""

    kind: Literal["optimize"] = "optimize"


IndexingOperation = (
    AddOperation | UpdateOperation | DeleteOperation | PurgeAllOperation | FlushOperation | OptimizeOperation
)
