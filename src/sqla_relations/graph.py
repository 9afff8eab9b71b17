from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any

from .exceptions import (
    ColumnNameClashError,
    DuplicateAliasError,
    NoRootTableError,
    UnknownAliasError,
    UnknownEntityError,
)
from .structs import JoinEdge, TableSpec


class JoinGraph:
    """Tree of tables joined to one root table.

    Tables are kept in insertion order (root first, then joined tables in
    the order their edges were added).  That order fixes the select-list
    and join-clause order of the compiled statement.  Every non-root table
    has exactly one inbound edge, and an edge may only join to an alias
    that is already known, so the graph is always a tree.
    """

    __slots__ = ("_edges", "_edges_into", "_root", "_tables")

    def __init__(self, root: TableSpec | None = None) -> None:
        self._root: TableSpec | None = None
        self._tables: dict[str, TableSpec] = {}
        self._edges: dict[str, JoinEdge] = {}
        self._edges_into: dict[str, list[JoinEdge]] = {}
        if root is not None:
            self.add_root(root)

    def __iter__(self) -> Iterator[TableSpec]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, alias: object) -> bool:
        return alias in self._tables

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {list(self._tables)!r}>"

    @property
    def root(self) -> TableSpec:
        if self._root is None:
            raise NoRootTableError()

        return self._root

    @property
    def has_root(self) -> bool:
        return self._root is not None

    @property
    def aliases(self) -> tuple[str, ...]:
        return tuple(self._tables)

    @property
    def edges(self) -> tuple[JoinEdge, ...]:
        """All edges, in the order they were added."""
        return tuple(self._edges.values())

    def add_root(self, table: TableSpec) -> JoinGraph:
        """Register *table* as the root; ignored when a root already exists."""
        if self._root is not None:
            return self
        if table.alias in self._tables:
            raise DuplicateAliasError(table.alias)

        self._root = table
        self._tables[table.alias] = table
        return self

    def add_edge(self, edge: JoinEdge) -> JoinGraph:
        """Register the joined table of *edge* and the edge itself.

        Raises:
            NoRootTableError: If the graph has no root yet.
            DuplicateAliasError: If the joined alias is already taken.
            UnknownAliasError: If the parent alias is not part of the graph.
            ColumnNameClashError: If a result column of the joined table is
                already produced by another table.
        """
        if self._root is None:
            raise NoRootTableError()

        alias = edge.table.alias
        if alias in self._tables:
            raise DuplicateAliasError(alias)
        if edge.join_to.alias not in self._tables:
            raise UnknownAliasError(edge.join_to.alias, self.aliases)
        for column in edge.table.field_map.values():
            if (owner := self._column_owner(column)) is not None:
                raise ColumnNameClashError(column, alias, owner)

        self._tables[alias] = edge.table
        self._edges[alias] = edge
        self._edges_into.setdefault(edge.join_to.alias, []).append(edge)
        return self

    def _column_owner(self, column: str) -> str | None:
        for table in self._tables.values():
            if column in table.reverse_field_map:
                return table.alias

        return None

    def by_alias(self, alias: str) -> TableSpec:
        try:
            return self._tables[alias]
        except KeyError:
            raise UnknownAliasError(alias, self.aliases) from None

    def by_entity(self, entity: Any) -> TableSpec:
        """Return the first table added for *entity* (a table name or model)."""
        for table in self._tables.values():
            if table.entity is entity or table.entity == entity or table.name == entity:
                return table

        raise UnknownEntityError(entity)

    def edge_for(self, alias: str) -> JoinEdge:
        """Return the edge through which *alias* is joined."""
        try:
            return self._edges[alias]
        except KeyError:
            raise UnknownAliasError(alias, tuple(self._edges)) from None

    def has_edge_for(self, alias: str) -> bool:
        return alias in self._edges

    def edges_into(self, alias: str) -> Sequence[JoinEdge]:
        """Return the edges joining other tables onto *alias*, or ``()``."""
        return tuple(self._edges_into.get(alias, ()))

    def alias_chain(self, alias: str) -> list[str]:
        """Return aliases from the root down to *alias*, both included."""
        chain = [self.by_alias(alias).alias]
        while (edge := self._edges.get(chain[-1])) is not None:
            chain.append(edge.join_to.alias)

        chain.reverse()
        return chain

    def pk_field_chain(self, alias: str) -> list[str]:
        """Composite key columns of *alias*: every ancestor's pk columns, root first."""
        return [
            column
            for chain_alias in self.alias_chain(alias)
            for column in self._tables[chain_alias].pk_columns
        ]

    def prepare(self) -> JoinGraph:
        """Compute and store ``pk_field_chain`` on every table (idempotent)."""
        if self._root is None:
            raise NoRootTableError()

        for table in self._tables.values():
            table.set_pk_field_chain(self.pk_field_chain(table.alias))

        return self

    def clone(self) -> JoinGraph:
        """Return a graph with independent collections.

        Tables and edges are immutable apart from ``pk_field_chain``, which
        is a pure function of the (append-only) ancestor chain, so they are
        shared between the copies.
        """
        other = type(self)()
        other._root = self._root
        other._tables = dict(self._tables)
        other._edges = dict(self._edges)
        other._edges_into = {alias: list(edges) for alias, edges in self._edges_into.items()}
        return other
