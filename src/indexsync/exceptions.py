"""IndexSync exceptions — Error taxonomy for schema management and indexing."""

from __future__ import annotations

from typing import Any


class IndexSyncError(Exception):
    """Base exception for IndexSync errors."""


class ConfigurationError(IndexSyncError):
    """Raised when index manager configuration is invalid."""


class LifecycleError(IndexSyncError):
    """Raised when an index manager is used outside of its bound state."""


class TransportError(IndexSyncError):
    """Raised when the search service cannot be reached."""


class RemoteServiceError(IndexSyncError):
    """Raised when the search service answers with an error status."""

    def __init__(self, message: str, status_code: int, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TranslationError(IndexSyncError):
    """Raised when a mapping descriptor cannot be translated to a remote mapping."""


class IndexStatusTimeoutError(IndexSyncError):
    """Raised when an index does not reach the required health status in time."""


class SchemaValidationError(IndexSyncError):
    """Raised when the remote schema diverges from the expected one.

    Carries every mismatch found, not just the first one.
    """

    def __init__(self, index_name: str, errors: list[str]) -> None:
        self.index_name = index_name
        self.errors = list(errors)
        details = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(
            f"Schema validation failed for index '{index_name}' ({len(self.errors)} mismatches):\n{details}"
        )


class MergeConflictError(IndexSyncError):
    """Raised when a target mapping cannot be merged into the remote one."""

    def __init__(self, index_name: str, conflicts: list[str]) -> None:
        self.index_name = index_name
        self.conflicts = list(conflicts)
        details = "\n".join(f"  - {c}" for c in self.conflicts)
        super().__init__(f"Cannot merge mappings into index '{index_name}':\n{details}")


class BulkRequestError(IndexSyncError):
    """Raised when some items of a bulk request were rejected."""

    def __init__(self, failures: list[dict[str, Any]]) -> None:
        self.failures = failures
        super().__init__(f"{len(failures)} bulk item(s) failed: {failures[:3]}")


class AsyncProcessingError(IndexSyncError):
    """Raised on flush when asynchronously submitted requests have failed."""

    def __init__(self, index_name: str | None, errors: list[BaseException]) -> None:
        self.index_name = index_name
        self.errors = list(errors)
        scope = f"index '{index_name}'" if index_name else "all indexes"
        super().__init__(f"{len(self.errors)} asynchronous request(s) failed for {scope}: {self.errors[0]}")
