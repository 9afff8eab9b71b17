from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final, Literal, cast, get_args

from .datastructures import frozendict
from .exceptions import PrimaryKeyFieldNotFoundError
from .tools import flat_name


JoinType = Literal["inner", "left", "right"]
JOIN_TYPES: Final[frozenset[str]] = frozenset(get_args(JoinType))
DEFAULT_JOIN_TYPE: Final[JoinType] = "left"


class JoinKind(enum.Enum):
    """How joined rows are attached to their parent entity."""

    SINGLE = "single"
    MULTIPLE = "multiple"


@dataclass(slots=True, frozen=True)
class TableSpec:
    """One table taking part in a query, seen through its alias.

    ``field_map`` maps every field to its flat result column
    (``"{alias}_{field}"``).  ``pk_field_chain`` is empty until the owning
    graph is prepared; it then holds the primary-key flat columns of every
    table from the root down to this one, which is the identity of a row at
    this position of the graph.
    """

    alias: str
    name: str
    fields: Sequence[str]
    primary_key: Sequence[str]
    container_field: str | None = None
    entity: Any = field(default=None, compare=False, repr=False)
    field_map: frozendict[str, str] = field(init=False, compare=False, repr=False)
    reverse_field_map: frozendict[str, str] = field(init=False, compare=False, repr=False)
    pk_field_chain: tuple[str, ...] = field(default=(), init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.alias:
            raise ValueError("Table alias must not be empty")

        fields = tuple(self.fields)
        if not fields:
            raise ValueError(f"Table {self.alias!r} has no fields")
        if len(set(fields)) != len(fields):
            raise ValueError(f"Table {self.alias!r} has duplicate fields: {list(fields)}")

        primary_key = tuple(self.primary_key)
        if not primary_key:
            raise ValueError(f"Table {self.alias!r} has no primary key")
        for pk in primary_key:
            if pk not in fields:
                raise PrimaryKeyFieldNotFoundError(self.alias, pk)

        field_map = frozendict({f: flat_name(self.alias, f) for f in fields})
        object.__setattr__(self, "fields", fields)
        object.__setattr__(self, "primary_key", primary_key)
        object.__setattr__(self, "field_map", field_map)
        object.__setattr__(
            self, "reverse_field_map", frozendict({v: k for k, v in field_map.items()})
        )

    @property
    def is_root(self) -> bool:
        return self.container_field is None

    @property
    def pk_columns(self) -> tuple[str, ...]:
        """Flat result columns of this table's own primary key."""
        return tuple(self.field_map[pk] for pk in self.primary_key)

    def set_pk_field_chain(self, chain: Sequence[str]) -> None:
        """Store the composite key columns computed by ``JoinGraph.prepare``."""
        object.__setattr__(self, "pk_field_chain", tuple(chain))

    def is_present(self, row: Mapping[str, Any]) -> bool:
        """Whether *row* carries data for this table.

        An outer join that found no match fills every column of the table
        with NULL, so at least one non-null primary-key column is required.
        """
        return any(row.get(column) is not None for column in self.pk_columns)

    def extract(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Build a fragment of this table's fields from a flat *row*."""
        return {
            field_name: row[column]
            for column, field_name in self.reverse_field_map.items()
            if column in row
        }


@dataclass(slots=True, frozen=True)
class JoinEdge:
    """A relation from ``join_to`` (parent) to ``table`` (joined side).

    ``on_columns`` maps joined-table fields to parent-table fields; the pairs
    are AND-ed into the join predicate, followed by ``extra_condition``
    whose named parameters live in ``extra_params``.
    """

    kind: JoinKind
    table: TableSpec
    join_to: TableSpec
    on_columns: Mapping[str, str]
    join_type: JoinType = DEFAULT_JOIN_TYPE
    extra_condition: str | None = None
    extra_params: Mapping[str, Any] = field(default_factory=frozendict)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, JoinKind):
            object.__setattr__(self, "kind", JoinKind(self.kind))
        if self.table.container_field is None:
            raise ValueError(f"Joined table {self.table.alias!r} needs a container field")

        join_type = str(self.join_type).lower()
        if join_type not in JOIN_TYPES:
            raise ValueError(
                f"Unknown join type {self.join_type!r} for {self.table.alias!r}. "
                f"Expected one of {sorted(JOIN_TYPES)}"
            )

        if not self.on_columns:
            raise ValueError(f"Join of {self.table.alias!r} has no join columns")
        for own, parent in self.on_columns.items():
            if own not in self.table.fields:
                raise ValueError(f"Join column {own!r} not found in {self.table.alias!r}")
            if parent not in self.join_to.fields:
                raise ValueError(f"Join column {parent!r} not found in {self.join_to.alias!r}")

        object.__setattr__(self, "join_type", join_type)
        object.__setattr__(self, "on_columns", frozendict(self.on_columns))
        object.__setattr__(
            self,
            "extra_params",
            frozendict({key.lstrip(":"): value for key, value in self.extra_params.items()}),
        )

    @property
    def alias(self) -> str:
        return self.table.alias

    @property
    def container_field(self) -> str:
        return cast(str, self.table.container_field)

    def predicate_text(self) -> str:
        """Render the ON predicate as plain text, e.g. for error messages and logs."""
        predicate = " AND ".join(
            f"{self.table.alias}.{own} = {self.join_to.alias}.{parent}"
            for own, parent in self.on_columns.items()
        )
        if self.extra_condition:
            predicate = f"{predicate} {self.extra_condition}"

        return predicate
