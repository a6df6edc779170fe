"""Service wiring — Builds the shared services once and injects them into index managers.

Usage::

    async with IndexSyncServices.from_settings(settings) as services:
        manager = services.create_index_manager("Books")
        manager.add_contained_entity("book")
        await manager.bind({"book": book_descriptor})
"""

from __future__ import annotations

import logging
from typing import Any

from indexsync.backend.processor import BackendRequestProcessor
from indexsync.client.client import SearchServiceClient
from indexsync.config.settings import SchemaSettings, Settings
from indexsync.core.index_manager import IndexManager
from indexsync.schema.accessor import SchemaAccessor
from indexsync.schema.compatibility import TypeCompatibility
from indexsync.schema.creator import SchemaCreator
from indexsync.schema.dropper import SchemaDropper
from indexsync.schema.migrator import SchemaMigrator
from indexsync.schema.strategy import SchemaStrategyRunner
from indexsync.schema.translator import SchemaTranslator
from indexsync.schema.validator import SchemaValidator

logger = logging.getLogger(__name__)


class IndexSyncServices:
    """Process-wide services shared by every index manager.

    Attributes:
        client: Transport to the search service.
        processor: Shared backend request processor.
        accessor: Remote schema access.
        translator: Descriptor translation.
        strategy_runner: Schema strategy execution.
        schema_settings: Default and per-index schema settings.
    """

    def __init__(
        self,
        client: SearchServiceClient,
        processor: BackendRequestProcessor,
        schema_settings: SchemaSettings | None = None,
    ) -> None:
        self.client = client
        self.processor = processor
        self.schema_settings = schema_settings or SchemaSettings()

        compatibility = TypeCompatibility.from_config(self.schema_settings.compatible_types)
        self.accessor = SchemaAccessor(client)
        self.translator = SchemaTranslator()
        self.creator = SchemaCreator(self.accessor)
        self.dropper = SchemaDropper(self.accessor)
        self.migrator = SchemaMigrator(self.accessor, compatibility)
        self.validator = SchemaValidator(self.accessor, compatibility)
        self.strategy_runner = SchemaStrategyRunner(self.creator, self.dropper, self.migrator, self.validator)

    @classmethod
    def from_settings(cls, settings: Settings, **httpx_kwargs: Any) -> IndexSyncServices:
        """Build every service from application settings.

        Args:
            settings: Application settings.
            **httpx_kwargs: Passed to the HTTP client (e.g. ``transport=`` in tests).
        """
        client = SearchServiceClient.from_settings(settings.service, **httpx_kwargs)
        processor = BackendRequestProcessor.from_settings(client, settings.processor)
        return cls(client, processor, settings.schema_management)

    def create_index_manager(self, index_name: str, *, multitenancy_enabled: bool = False) -> IndexManager:
        """Create and initialize an index manager with this index's configuration."""
        manager = IndexManager(
            processor=self.processor,
            translator=self.translator,
            strategy_runner=self.strategy_runner,
        )
        manager.initialize(
            index_name,
            self.schema_settings.properties_for(index_name),
            multitenancy_enabled=multitenancy_enabled,
        )
        return manager

    async def __aenter__(self) -> IndexSyncServices:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop the processor if no manager holds it anymore, then close the client."""
        if self.processor.refcount == 0:
            await self.processor.shutdown()
        else:
            logger.warning(
                "Closing services while %d index manager(s) still hold the processor",
                self.processor.refcount,
            )
        await self.client.close()
