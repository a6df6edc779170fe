"""Index work visitor — Turns indexing operations into backend requests for one index."""

from __future__ import annotations

import logging

from indexsync.backend.monitor import IndexingMonitor
from indexsync.backend.requests import BackendRequest
from indexsync.models.operations import (
    AddOperation,
    DeleteOperation,
    FlushOperation,
    IndexingOperation,
    OptimizeOperation,
    PurgeAllOperation,
    UpdateOperation,
)
from indexsync.schema.translator import TENANT_ID_FIELD

logger = logging.getLogger(__name__)

# Services without force-merge support answer with one of these.
_UNSUPPORTED_STATUSES = frozenset({404, 405, 501})


def document_id(entity_id: str, tenant_id: str | None) -> str:
    """Physical document id: the entity id, prefixed with the tenant id when there is one."""
    return f"{tenant_id}_{entity_id}" if tenant_id else entity_id


class IndexWorkVisitor:
    """Builds backend requests scoped to one physical index.

    Args:
        index_name: Physical index name.
        refresh_after_write: Whether write requests ask for an index refresh.
    """

    def __init__(self, index_name: str, refresh_after_write: bool = False) -> None:
        self.index_name = index_name
        self.refresh_after_write = refresh_after_write

    def visit(self, operation: IndexingOperation, monitor: IndexingMonitor | None = None) -> BackendRequest | None:
        """Build the request for ``operation``.

        Flush produces no request: it is handled by waiting for outstanding
        asynchronous work instead.
        """
        request = self._build(operation, monitor)
        if request is not None and monitor is not None:
            monitor.request_produced(request)
        return request

    def _build(self, operation: IndexingOperation, monitor: IndexingMonitor | None) -> BackendRequest | None:
        index = self.index_name
        match operation:
            case AddOperation() | UpdateOperation():
                doc_id = document_id(operation.id, operation.tenant_id)
                source = dict(operation.document)
                if operation.tenant_id:
                    source[TENANT_ID_FIELD] = operation.tenant_id
                return BackendRequest(
                    index_name=index,
                    method="PUT",
                    path=f"/{index}/{operation.entity_type}/{doc_id}",
                    body=source,
                    bulk_action={"index": {"_index": index, "_type": operation.entity_type, "_id": doc_id}},
                    refresh_after_write=self.refresh_after_write,
                    monitor=monitor,
                )
            case DeleteOperation():
                doc_id = document_id(operation.id, operation.tenant_id)
                return BackendRequest(
                    index_name=index,
                    method="DELETE",
                    path=f"/{index}/{operation.entity_type}/{doc_id}",
                    bulk_action={"delete": {"_index": index, "_type": operation.entity_type, "_id": doc_id}},
                    # Deleting a document that is not there is not an error.
                    ignored_statuses=frozenset({404}),
                    refresh_after_write=self.refresh_after_write,
                    monitor=monitor,
                )
            case PurgeAllOperation():
                query: dict = {"match_all": {}}
                if operation.tenant_id:
                    query = {"term": {TENANT_ID_FIELD: operation.tenant_id}}
                return BackendRequest(
                    index_name=index,
                    method="POST",
                    path=f"/{index}/{operation.entity_type}/_delete_by_query",
                    params={"conflicts": "proceed"},
                    body={"query": query},
                    ignored_statuses=frozenset({404}),
                    refresh_after_write=self.refresh_after_write,
                    monitor=monitor,
                )
            case FlushOperation():
                return None
            case OptimizeOperation():
                return BackendRequest(
                    index_name=index,
                    method="POST",
                    path=f"/{index}/_forcemerge",
                    ignored_statuses=_UNSUPPORTED_STATUSES,
                    monitor=monitor,
                )
            case _:
                raise TypeError(f"Unsupported indexing operation: {type(operation).__name__}")
