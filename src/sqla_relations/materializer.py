from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Final

from .exceptions import PrimaryKeyValueMissingInRowError, UnknownConditionTypeError
from .graph import JoinGraph
from .structs import JoinKind, TableSpec


logger = logging.getLogger(__name__)

KEY_SEPARATOR: Final[str] = "-"

Fragment = dict[str, Any]
Modifier = Callable[[Fragment], None]


NodeKey = tuple[Any, ...]


def node_key(table: TableSpec, row: Mapping[str, Any]) -> NodeKey:
    """Return the raw values of *table*'s ``pk_field_chain`` found in *row*.

    Raises:
        PrimaryKeyValueMissingInRowError: If a chain column is not in *row*.
    """
    values: list[Any] = []
    for column in table.pk_field_chain:
        try:
            values.append(row[column])
        except KeyError:
            raise PrimaryKeyValueMissingInRowError(table.alias, column) from None

    return tuple(values)


def composite_key(table: TableSpec, row: Mapping[str, Any]) -> str:
    """Printable form of ``node_key``: the values joined with ``KEY_SEPARATOR``."""
    return KEY_SEPARATOR.join(str(value) for value in node_key(table, row))


class ResultMaterializer:
    """Rebuilds nested entities from the flat rows of a compiled join graph.

    One fragment (a plain ``dict``) is kept per table alias and composite
    key, the tuple of raw ``pk_field_chain`` values.  The first row that
    mentions a key creates its fragment; later rows reuse it, so children
    collected from different rows end up in the same container.  A child is attached to a given parent container at most
    once, no matter how many times the join repeats the pair.

    The graph must be prepared (``JoinGraph.prepare``) before use.
    """

    __slots__ = ("_linked", "_nodes", "graph", "modifiers")

    def __init__(self, graph: JoinGraph, modifiers: Mapping[str, Modifier] | None = None) -> None:
        self.graph = graph
        self.modifiers: Mapping[str, Modifier] = modifiers or {}
        self._nodes: dict[str, dict[NodeKey, Fragment]] = {}
        self._linked: set[tuple[str, NodeKey, str, NodeKey]] = set()

    def materialize(self, rows: Iterable[Mapping[str, Any]]) -> list[Fragment]:
        """Consume *rows* and return the root entities in first-seen order."""
        self._nodes = {table.alias: {} for table in self.graph}
        self._linked = set()

        count = 0
        for row in rows:
            for table in self.graph:
                self._consume(table, row)
            count += 1

        for alias, modifier in self.modifiers.items():
            for fragment in self._nodes[alias].values():
                modifier(fragment)

        roots = list(self._nodes[self.graph.root.alias].values())
        logger.debug(
            "Materialized %d rows into %d root entities (%s)",
            count,
            len(roots),
            ", ".join(f"{alias}={len(nodes)}" for alias, nodes in self._nodes.items()),
        )
        return roots

    def _consume(self, table: TableSpec, row: Mapping[str, Any]) -> None:
        if not table.is_present(row):
            return

        fragment = table.extract(row)
        for edge in self.graph.edges_into(table.alias):
            fragment[edge.container_field] = [] if edge.kind is JoinKind.MULTIPLE else None

        key = node_key(table, row)
        fragment = self._nodes[table.alias].setdefault(key, fragment)

        if not self.graph.has_edge_for(table.alias):
            return

        edge = self.graph.edge_for(table.alias)
        parent_key = node_key(edge.join_to, row)
        parent = self._nodes[edge.join_to.alias].get(parent_key)
        if parent is None:
            # parent row absent (e.g. right join without a match): nothing to attach to
            return

        token = (edge.join_to.alias, parent_key, edge.container_field, key)
        if token in self._linked:
            return

        match edge.kind:
            case JoinKind.SINGLE:
                parent[edge.container_field] = fragment
            case JoinKind.MULTIPLE:
                parent[edge.container_field].append(fragment)
            case _:
                raise UnknownConditionTypeError(edge.kind)

        self._linked.add(token)
