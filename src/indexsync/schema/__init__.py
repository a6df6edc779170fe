"""Schema management — Translation, remote schema operations and strategies."""

from indexsync.schema.strategy import SchemaManagementStrategy, SchemaStrategyRunner, actions_for

__all__ = ["SchemaManagementStrategy", "SchemaStrategyRunner", "actions_for"]
