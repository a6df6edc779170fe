"""Type compatibility policy — Which remote field types may stand in for an expected one.

Used by the validator (is the remote field good enough?) and the migrator
(can the target be merged without changing an existing field?).  The table
is configuration, not a property of any one service version.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from indexsync.exceptions import ConfigurationError
from indexsync.models.schema import DataType

DEFAULT_COMPATIBLE_TYPES: dict[DataType, frozenset[DataType]] = {
    DataType.INTEGER: frozenset({DataType.LONG}),
    DataType.FLOAT: frozenset({DataType.DOUBLE}),
}
"""Expected type -> wider remote types accepted in its place."""


class TypeCompatibility:
    """Explicit compatibility table between expected and remote field types.

    Identical types are always compatible; anything else must be listed.

    Example:
        >>> policy = TypeCompatibility.from_config({"integer": ["long"], "keyword": ["text"]})
        >>> policy.is_compatible(DataType.INTEGER, DataType.LONG)
        True
    """

    def __init__(self, table: Mapping[DataType, Iterable[DataType]] | None = None) -> None:
        source = DEFAULT_COMPATIBLE_TYPES if table is None else table
        self._table: dict[DataType, frozenset[DataType]] = {k: frozenset(v) for k, v in source.items()}

    @classmethod
    def from_config(cls, raw: Mapping[str, Iterable[str]] | None) -> TypeCompatibility:
        """Build a policy from the ``schema_management.compatible_types`` setting.

        Raises:
            ConfigurationError: If the table names an unknown field type.
        """
        if raw is None:
            return cls()
        try:
            table = {DataType(expected): [DataType(a) for a in accepted] for expected, accepted in raw.items()}
        except ValueError as e:
            raise ConfigurationError(f"Invalid compatible_types table: {e}") from e
        return cls(table)

    def is_compatible(self, expected: DataType, actual: DataType | str) -> bool:
        return expected == actual or actual in self._table.get(expected, frozenset())

    def accepted(self, expected: DataType) -> list[DataType]:
        """All remote types accepted for ``expected``, the type itself first."""
        return [expected, *sorted(self._table.get(expected, frozenset()), key=lambda t: t.value)]
