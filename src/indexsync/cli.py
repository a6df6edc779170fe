"""CLI entry point for IndexSync schema management."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from indexsync.config.settings import Settings
    from indexsync.models.descriptor import EntityMappingDescriptor

# RECREATE_DELETE is left out: the CLI destroys its manager right after binding.
_CLI_STRATEGIES = ["NONE", "VALIDATE", "MERGE", "CREATE", "RECREATE"]


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="indexsync",
        description="IndexSync — Search index schema synchronization",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        default=None,
        help="Log level (overrides config)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"IndexSync {_get_version()}",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    apply_parser = subparsers.add_parser("apply", help="Reconcile an index schema with mapping descriptors")
    apply_parser.add_argument("--index", "-i", required=True, help="Logical index name")
    apply_parser.add_argument(
        "--mappings",
        "-m",
        required=True,
        help="YAML/JSON file: entity type -> mapping descriptor",
    )
    apply_parser.add_argument(
        "--strategy",
        "-s",
        choices=_CLI_STRATEGIES,
        default=None,
        help="Schema management strategy (overrides config)",
    )
    apply_parser.add_argument(
        "--multitenancy",
        action="store_true",
        help="Include the tenant id field in the mappings",
    )

    drop_parser = subparsers.add_parser("drop", help="Drop an index and all its documents")
    drop_parser.add_argument("--index", "-i", required=True, help="Logical index name")

    args = parser.parse_args(argv)

    from indexsync.config.settings import Settings
    from indexsync.exceptions import IndexSyncError
    from indexsync.observability.logging import setup_logging

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: Config file not found: {config_path}", file=sys.stderr)
            return 1
        settings = Settings.from_yaml(config_path)
    else:
        settings = Settings()

    if args.log_level:
        settings.observability.log_level = args.log_level
    setup_logging(settings.observability)

    try:
        if args.command == "apply":
            descriptors = _load_descriptors(Path(args.mappings))
            if args.strategy:
                overrides = settings.schema_management.indexes.setdefault(args.index, {})
                overrides["schema_management_strategy"] = args.strategy
            asyncio.run(_apply(settings, args.index, descriptors, args.multitenancy))
        else:
            asyncio.run(_drop(settings, args.index))
    except (IndexSyncError, OSError, ValueError) as e:
        logging.getLogger(__name__).debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


async def _apply(
    settings: Settings,
    index_name: str,
    descriptors: dict[str, EntityMappingDescriptor],
    multitenancy: bool,
) -> None:
    from indexsync.core.services import IndexSyncServices

    async with IndexSyncServices.from_settings(settings) as services:
        manager = services.create_index_manager(index_name, multitenancy_enabled=multitenancy)
        for entity_type in descriptors:
            manager.add_contained_entity(entity_type)
        try:
            await manager.bind(descriptors)
            print(
                f"Index '{manager.actual_index_name}': strategy {manager.strategy.value} "  # type: ignore[union-attr]
                f"applied for {len(descriptors)} type(s)"
            )
        finally:
            await manager.destroy()


async def _drop(settings: Settings, index_name: str) -> None:
    from indexsync.core.services import IndexSyncServices

    async with IndexSyncServices.from_settings(settings) as services:
        manager = services.create_index_manager(index_name)
        try:
            dropped = await services.dropper.drop_if_existing(
                manager.actual_index_name or index_name,
                manager.execution_options,  # type: ignore[arg-type]
            )
        finally:
            await manager.destroy()
        state = "dropped" if dropped else "did not exist"
        print(f"Index '{manager.actual_index_name}' {state}")


def _load_descriptors(path: Path) -> dict[str, EntityMappingDescriptor]:
    """Load mapping descriptors keyed by entity type from a YAML or JSON file."""
    import yaml  # type: ignore[import-untyped]

    from indexsync.models.descriptor import EntityMappingDescriptor

    if not path.exists():
        raise FileNotFoundError(f"Mappings file not found: {path}")
    with open(path) as f:
        data: Any = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Mappings file must contain a mapping of entity type -> descriptor: {path}")

    return {
        entity_type: EntityMappingDescriptor.model_validate({"entity_type": entity_type, **(body or {})})
        for entity_type, body in data.items()
    }


def _get_version() -> str:
    """Get the package version."""
    try:
        from indexsync import __version__

        return __version__
    except ImportError:
        return "unknown"


if __name__ == "__main__":
    sys.exit(main())
