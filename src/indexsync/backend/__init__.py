"""Indexing backend — Request building and execution against the search service."""

from indexsync.backend.monitor import CountingIndexingMonitor, IndexingMonitor
from indexsync.backend.processor import BackendRequestProcessor
from indexsync.backend.requests import BackendRequest
from indexsync.backend.visitor import IndexWorkVisitor

__all__ = [
    "BackendRequest",
    "BackendRequestProcessor",
    "CountingIndexingMonitor",
    "IndexWorkVisitor",
    "IndexingMonitor",
]
