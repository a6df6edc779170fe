"""Backend requests — Units of work sent to the search service for one physical index."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from indexsync.backend.monitor import IndexingMonitor


class BackendRequest(BaseModel):
    """One request against one physical index.

    Bulkable requests carry the action line (and optional source line) used
    when the processor groups them into a single bulk call; they can also be
    sent on their own through ``method``/``path``/``body``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    index_name: str = Field(description="Physical index the request targets")
    method: str = Field(description="HTTP method")
    path: str = Field(description="Request path")
    params: dict[str, Any] | None = Field(default=None, description="Query string parameters")
    body: dict[str, Any] | None = Field(default=None, description="JSON body / bulk source line")
    bulk_action: dict[str, Any] | None = Field(default=None, description="Bulk action line, if bulkable")
    ignored_statuses: frozenset[int] = Field(default=frozenset(), description="Error statuses treated as success")
    refresh_after_write: bool = Field(default=False, description="Refresh the index once the request completed")
    monitor: IndexingMonitor | None = Field(default=None, exclude=True, description="Progress monitor")

    @property
    def bulkable(self) -> bool:
        return self.bulk_action is not None

    def describe(self) -> str:
        return f"{self.method} {self.path}"
