"""Indexing monitor — Optional observability hook for produced and failed requests."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from indexsync.backend.requests import BackendRequest


class IndexingMonitor:
    """Receives one notification per produced request and per failed request.

    The default implementation ignores everything; override what you need.
    """

    def request_produced(self, request: BackendRequest) -> None:
        """Called once per request, before it is submitted."""

    def request_failed(self, request: BackendRequest, error: BaseException) -> None:
        """Called when the service rejected the request or could not be reached."""


class CountingIndexingMonitor(IndexingMonitor):
    """Monitor keeping simple counters, safe to share between tasks and threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.produced = 0
        self.failed = 0
        self.errors: list[BaseException] = []

    def request_produced(self, request: BackendRequest) -> None:
        with self._lock:
            self.produced += 1

    def request_failed(self, request: BackendRequest, error: BaseException) -> None:
        with self._lock:
            self.failed += 1
            self.errors.append(error)
