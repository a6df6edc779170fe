"""Schema management strategy — Which schema operations run on bind and on destroy.

The transition table below is the single source of truth: each strategy maps
to the ordered actions run when the index manager binds, and those run when
it is destroyed.

  Strategy          on bind                               on destroy
  ───────────────   ───────────────────────────────────   ─────────────────
  NONE              -                                     -
  VALIDATE          validate                              -
  MERGE             merge                                 -
  CREATE            create_if_absent                      -
  RECREATE          drop_if_existing, create              -
  RECREATE_DELETE   drop_if_existing, create              drop_if_existing
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from indexsync.models.schema import ExecutionOptions, IndexMetadata
    from indexsync.schema.creator import SchemaCreator
    from indexsync.schema.dropper import SchemaDropper
    from indexsync.schema.migrator import SchemaMigrator
    from indexsync.schema.validator import SchemaValidator

logger = logging.getLogger(__name__)


class SchemaManagementStrategy(str, Enum):
    """How the remote schema of an index is managed. Values match names exactly."""

    NONE = "NONE"
    VALIDATE = "VALIDATE"
    MERGE = "MERGE"
    CREATE = "CREATE"
    RECREATE = "RECREATE"
    RECREATE_DELETE = "RECREATE_DELETE"


class SchemaAction(str, Enum):
    """A single schema operation."""

    VALIDATE = "validate"
    MERGE = "merge"
    CREATE_IF_ABSENT = "create_if_absent"
    CREATE = "create"
    DROP_IF_EXISTING = "drop_if_existing"


class StrategyActions(NamedTuple):
    on_bind: tuple[SchemaAction, ...]
    on_destroy: tuple[SchemaAction, ...]


TRANSITIONS: dict[SchemaManagementStrategy, StrategyActions] = {
    SchemaManagementStrategy.NONE: StrategyActions((), ()),
    SchemaManagementStrategy.VALIDATE: StrategyActions((SchemaAction.VALIDATE,), ()),
    SchemaManagementStrategy.MERGE: StrategyActions((SchemaAction.MERGE,), ()),
    SchemaManagementStrategy.CREATE: StrategyActions((SchemaAction.CREATE_IF_ABSENT,), ()),
    SchemaManagementStrategy.RECREATE: StrategyActions(
        (SchemaAction.DROP_IF_EXISTING, SchemaAction.CREATE),
        (),
    ),
    SchemaManagementStrategy.RECREATE_DELETE: StrategyActions(
        (SchemaAction.DROP_IF_EXISTING, SchemaAction.CREATE),
        (SchemaAction.DROP_IF_EXISTING,),
    ),
}


def actions_for(strategy: SchemaManagementStrategy) -> StrategyActions:
    """Row of the transition table for ``strategy``."""
    return TRANSITIONS[strategy]


class SchemaStrategyRunner:
    """Runs the schema actions a strategy prescribes for a lifecycle event.

    Args:
        creator: Index creation.
        dropper: Index deletion.
        migrator: Mapping merge.
        validator: Mapping validation.
    """

    def __init__(
        self,
        creator: SchemaCreator,
        dropper: SchemaDropper,
        migrator: SchemaMigrator,
        validator: SchemaValidator,
    ) -> None:
        self._creator = creator
        self._dropper = dropper
        self._migrator = migrator
        self._validator = validator

    async def on_bind(
        self,
        strategy: SchemaManagementStrategy,
        index_name: str,
        metadata_factory: Callable[[], IndexMetadata],
        options: ExecutionOptions,
    ) -> None:
        """Run the bind actions. Any failure propagates.

        ``metadata_factory`` is called at most once, and only if an action
        needs the target schema.
        """
        await self._run(actions_for(strategy).on_bind, strategy, index_name, metadata_factory, options)

    async def on_destroy(
        self,
        strategy: SchemaManagementStrategy,
        index_name: str,
        options: ExecutionOptions,
    ) -> None:
        await self._run(actions_for(strategy).on_destroy, strategy, index_name, None, options)

    async def _run(
        self,
        actions: tuple[SchemaAction, ...],
        strategy: SchemaManagementStrategy,
        index_name: str,
        metadata_factory: Callable[[], IndexMetadata] | None,
        options: ExecutionOptions,
    ) -> None:
        metadata: IndexMetadata | None = None

        def target() -> IndexMetadata:
            nonlocal metadata
            if metadata is None:
                if metadata_factory is None:
                    raise ValueError(f"Strategy {strategy.value} needs target metadata for this event")
                metadata = metadata_factory()
            return metadata

        for action in actions:
            logger.info("Index '%s': running %s (strategy %s)", index_name, action.value, strategy.value)
            match action:
                case SchemaAction.VALIDATE:
                    await self._validator.validate(target(), options)
                case SchemaAction.MERGE:
                    await self._migrator.merge(target(), options)
                case SchemaAction.CREATE_IF_ABSENT:
                    await self._creator.create_if_absent(target(), options)
                case SchemaAction.CREATE:
                    await self._creator.create(target(), options)
                case SchemaAction.DROP_IF_EXISTING:
                    await self._dropper.drop_if_existing(index_name, options)
