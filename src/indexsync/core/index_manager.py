"""Index manager — Schema lifecycle and indexing execution for one logical index.

Lifecycle::

    UNINITIALIZED --initialize()--> INITIALIZED --bind()--> BOUND --destroy()--> DESTROYED

  1. ``initialize`` parses the index configuration (no network call).
  2. ``add_contained_entity`` registers every entity type stored in the index.
  3. ``bind`` builds the target schema from the mapping descriptors and runs
     the strategy's bind actions.  Runs once; failure is fatal.
  4. ``perform_operations`` / ``perform_stream_operation`` serve indexing work.
  5. ``destroy`` waits for outstanding asynchronous work, runs the strategy's
     destroy actions and releases the shared request processor.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from pydantic import ValidationError

from indexsync.backend.monitor import IndexingMonitor
from indexsync.backend.processor import BackendRequestProcessor
from indexsync.backend.visitor import IndexWorkVisitor
from indexsync.config.settings import IndexSettings
from indexsync.exceptions import AsyncProcessingError, ConfigurationError, LifecycleError
from indexsync.models.descriptor import EntityMappingDescriptor
from indexsync.models.operations import FlushOperation, IndexingOperation, OptimizeOperation
from indexsync.models.schema import ExecutionOptions, IndexMetadata
from indexsync.schema.strategy import SchemaManagementStrategy, SchemaStrategyRunner
from indexsync.schema.translator import SchemaTranslator

logger = logging.getLogger(__name__)


class IndexManagerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    BOUND = "bound"
    DESTROYED = "destroyed"


def normalize_index_name(name: str) -> str:
    """Physical index name: the search service only accepts lower-case names."""
    return name.lower()


class IndexManager:
    """Applies schema management and indexing work to one remote index.

    Collaborators are injected; the processor is shared with other managers
    and only released, never stopped, by ``destroy``.

    Args:
        processor: Shared backend request processor.
        translator: Descriptor to mapping translation.
        strategy_runner: Executes the schema strategy actions.
    """

    def __init__(
        self,
        *,
        processor: BackendRequestProcessor,
        translator: SchemaTranslator,
        strategy_runner: SchemaStrategyRunner,
    ) -> None:
        self._processor_ref = processor
        self._processor: BackendRequestProcessor | None = None
        self._translator = translator
        self._strategy_runner = strategy_runner

        self._state = IndexManagerState.UNINITIALIZED
        self._contained_types: set[str] = set()
        self.index_name: str | None = None
        self.actual_index_name: str | None = None
        self.strategy: SchemaManagementStrategy | None = None
        self.execution_options: ExecutionOptions | None = None
        self.refresh_after_write = False
        self._visitor: IndexWorkVisitor | None = None

    # ──────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> IndexManagerState:
        return self._state

    def initialize(
        self,
        index_name: str,
        properties: IndexSettings | Mapping[str, Any] | None = None,
        *,
        multitenancy_enabled: bool = False,
    ) -> None:
        """Parse the index configuration.

        Args:
            index_name: Default index name (overridden by ``properties.name``).
            properties: Index settings, as a model or raw mapping.
            multitenancy_enabled: Whether documents carry a tenant id.

        Raises:
            ConfigurationError: On a malformed strategy, unknown status or negative timeout.
        """
        self._require(IndexManagerState.UNINITIALIZED, "initialize")
        try:
            if isinstance(properties, IndexSettings):
                settings = properties
            else:
                settings = IndexSettings.model_validate(dict(properties or {}))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration for index '{index_name}': {e}") from e

        self.index_name = settings.name or index_name
        self.actual_index_name = normalize_index_name(self.index_name)
        self.strategy = settings.schema_management_strategy
        self.refresh_after_write = settings.refresh_after_write
        self.execution_options = ExecutionOptions(
            required_index_status=settings.required_index_status,
            index_management_timeout_ms=settings.index_management_wait_timeout,
            multitenancy_enabled=multitenancy_enabled,
        )
        self._visitor = IndexWorkVisitor(self.actual_index_name, self.refresh_after_write)
        self._processor = self._processor_ref.acquire()
        self._state = IndexManagerState.INITIALIZED

        logger.info(
            "Index manager initialized: index=%s, strategy=%s, refresh_after_write=%s",
            self.actual_index_name,
            self.strategy.value,
            self.refresh_after_write,
        )

    def add_contained_entity(self, entity_type: str) -> None:
        """Register an entity type stored in this index. Only allowed before ``bind``."""
        self._require(IndexManagerState.INITIALIZED, "add_contained_entity")
        self._contained_types.add(entity_type)

    @property
    def contained_types(self) -> frozenset[str]:
        return frozenset(self._contained_types)

    async def bind(self, descriptors: Mapping[str, EntityMappingDescriptor]) -> None:
        """Run the strategy's bind actions against the registered entity types.

        Args:
            descriptors: Mapping descriptor of (at least) every contained entity type.

        Raises:
            ConfigurationError: If a contained entity type has no descriptor.
            TranslationError, SchemaValidationError, MergeConflictError,
            IndexStatusTimeoutError: Any failure of the bind actions.
        """
        self._require(IndexManagerState.INITIALIZED, "bind")
        assert self.strategy is not None and self.execution_options is not None

        await self._strategy_runner.on_bind(
            self.strategy,
            self.actual_index_name or "",
            lambda: self.create_index_metadata(descriptors),
            self.execution_options,
        )
        self._state = IndexManagerState.BOUND
        logger.info("Index manager bound: index=%s, types=%s", self.actual_index_name, sorted(self._contained_types))

    def create_index_metadata(self, descriptors: Mapping[str, EntityMappingDescriptor]) -> IndexMetadata:
        """Build the target schema from the descriptors of the contained types."""
        assert self.execution_options is not None
        mappings = {}
        for entity_type in sorted(self._contained_types):
            descriptor = descriptors.get(entity_type)
            if descriptor is None:
                raise ConfigurationError(
                    f"Index '{self.actual_index_name}': no mapping descriptor for entity type '{entity_type}'"
                )
            mappings[entity_type] = self._translator.translate(descriptor, self.execution_options)
        return IndexMetadata(name=self.actual_index_name or "", mappings=mappings)

    async def destroy(self) -> None:
        """Wait for outstanding async work, run the strategy's destroy actions
        and release the shared processor.

        Raises:
            AsyncProcessingError: If asynchronous work of this index failed since
                the last flush.  Raised after the destroy actions ran and the
                processor was released.
        """
        if self._state in (IndexManagerState.UNINITIALIZED, IndexManagerState.DESTROYED):
            raise LifecycleError(f"Cannot destroy an index manager in state '{self._state.value}'")
        assert self.strategy is not None and self.execution_options is not None

        pending_error: AsyncProcessingError | None = None
        try:
            if self._processor is not None:
                try:
                    await self._processor.await_async_processing_completion(self.actual_index_name)
                except AsyncProcessingError as e:
                    logger.error(
                        "Index '%s': %d asynchronous request(s) failed before destroy",
                        self.actual_index_name,
                        len(e.errors),
                    )
                    pending_error = e
            await self._strategy_runner.on_destroy(
                self.strategy, self.actual_index_name or "", self.execution_options
            )
        finally:
            processor, self._processor = self._processor, None
            self._state = IndexManagerState.DESTROYED
            if processor is not None:
                await processor.release()
            logger.info("Index manager destroyed: index=%s", self.actual_index_name)

        if pending_error is not None:
            raise pending_error

    # ──────────────────────────────────────────────────────────────────────
    # Indexing
    # ──────────────────────────────────────────────────────────────────────

    async def perform_operations(
        self,
        operations: Iterable[IndexingOperation],
        monitor: IndexingMonitor | None = None,
    ) -> None:
        """Apply a unit of work synchronously, in order."""
        processor, visitor = self._serving("perform_operations")
        requests = [visitor.visit(operation, monitor) for operation in operations]
        await processor.execute_sync(requests)

    async def perform_stream_operation(
        self,
        operation: IndexingOperation,
        monitor: IndexingMonitor | None = None,
    ) -> None:
        """Apply a single operation asynchronously.

        A flush waits for every asynchronous request previously submitted for
        this index and raises their failures, if any.
        """
        processor, visitor = self._serving("perform_stream_operation")
        if isinstance(operation, FlushOperation):
            await processor.await_async_processing_completion(visitor.index_name)
            return
        request = visitor.visit(operation, monitor)
        if request is not None:
            await processor.execute_async(request)

    async def flush(self) -> None:
        await self.perform_stream_operation(FlushOperation())

    async def optimize(self) -> None:
        await self.perform_stream_operation(OptimizeOperation())

    # ──────────────────────────────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────────────────────────────

    def _require(self, state: IndexManagerState, action: str) -> None:
        if self._state != state:
            raise LifecycleError(
                f"Cannot {action} index manager for '{self.actual_index_name or '?'}' "
                f"in state '{self._state.value}' (expected '{state.value}')"
            )

    def _serving(self, action: str) -> tuple[BackendRequestProcessor, IndexWorkVisitor]:
        self._require(IndexManagerState.BOUND, action)
        assert self._processor is not None and self._visitor is not None
        return self._processor, self._visitor

    def __repr__(self) -> str:
        return f"IndexManager(actual_index_name={self.actual_index_name!r}, state={self._state.value!r})"
