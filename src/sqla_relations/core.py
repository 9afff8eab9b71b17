from __future__ import annotations

import logging
import sys
from collections.abc import Mapping, Sequence
from typing import Any, Union

import sqlalchemy as sa
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

from .compiler import CompiledQuery, Filter, QueryCompiler
from .exceptions import NoConnectionAvailableError
from .graph import JoinGraph
from .materializer import Fragment, Modifier, ResultMaterializer
from .registry import Bind, Registry
from .schema import SchemaSource
from .structs import DEFAULT_JOIN_TYPE, JoinEdge, JoinKind, JoinType, TableSpec


logger = logging.getLogger(__name__)

AsyncBind = Union[AsyncEngine, AsyncConnection, AsyncSession]


class RelationManager:
    """Fluent builder for a join graph, its SQL and its nested result.

    Start with ``select`` and chain ``with_single``/``with_multiple`` to join
    related tables; every call returns the same builder.  ``all`` compiles
    the graph into one flat SELECT, runs it and folds the rows back into
    nested dicts::

        addresses = (
            RelationManager.select("address", "a")
            .with_single("city", "city", "c", "a", {"id": "city_id"})
            .with_multiple("places", "place", "p", "a", {"address_id": "id"})
            .with_multiple("comments", "comment", "cm", "p", {"place_id": "id"})
            .all(connection)
        )

    Each address comes back with a ``city`` dict (or ``None``) and a
    ``places`` list, each place with its own ``comments`` list.
    """

    __slots__ = ("_filters", "_graph", "_modifiers", "schema")

    def __init__(self, root: TableSpec, schema: SchemaSource) -> None:
        self.schema = schema
        self._graph = JoinGraph(root)
        self._filters: list[Filter] = []
        self._modifiers: dict[str, Modifier] = {}

    @classmethod
    def select(cls, entity: Any, alias: str, *, schema: SchemaSource | None = None) -> Self:
        """Start a builder whose root is *entity*, aliased *alias*.

        Args:
            entity: Table name or declarative model understood by the schema source.
            alias: Alias of the root table in the query.
            schema: Schema source; defaults to the one in the global ``Registry``.
        """
        schema = schema if schema is not None else Registry().schema
        return cls(_describe(schema, entity, alias), schema)

    def with_single(
        self,
        container_field: str,
        entity: Any,
        join_as: str,
        join_to: str,
        on: Mapping[str, str],
        join_type: JoinType = DEFAULT_JOIN_TYPE,
        extra_condition: str | None = None,
        extra_params: Mapping[str, Any] | None = None,
    ) -> Self:
        """Join one related *entity* under ``container_field`` of *join_to* rows.

        Args:
            container_field: Key receiving the related dict (or ``None``).
            entity: Table name or model to join.
            join_as: Alias of the joined table.
            join_to: Alias of the already joined parent table.
            on: Joined field -> parent field equality pairs.
            join_type: ``"left"`` (default), ``"inner"`` or ``"right"``.
            extra_condition: Raw SQL appended to the ON clause, e.g.
                ``"AND c.active = :active"``.
            extra_params: Values for the named parameters of *extra_condition*.
        """
        return self._with(
            JoinKind.SINGLE,
            container_field,
            entity,
            join_as,
            join_to,
            on,
            join_type,
            extra_condition,
            extra_params,
        )

    def with_multiple(
        self,
        container_field: str,
        entity: Any,
        join_as: str,
        join_to: str,
        on: Mapping[str, str],
        join_type: JoinType = DEFAULT_JOIN_TYPE,
        extra_condition: str | None = None,
        extra_params: Mapping[str, Any] | None = None,
    ) -> Self:
        """Join a collection of related *entity* rows as a list under ``container_field``.

        Takes the same arguments as ``with_single``.
        """
        return self._with(
            JoinKind.MULTIPLE,
            container_field,
            entity,
            join_as,
            join_to,
            on,
            join_type,
            extra_condition,
            extra_params,
        )

    def _with(
        self,
        kind: JoinKind,
        container_field: str,
        entity: Any,
        join_as: str,
        join_to: str,
        on: Mapping[str, str],
        join_type: JoinType,
        extra_condition: str | None,
        extra_params: Mapping[str, Any] | None,
    ) -> Self:
        table = _describe(self.schema, entity, join_as, container_field)
        self._graph.add_edge(
            JoinEdge(
                kind=kind,
                table=table,
                join_to=self._graph.by_alias(join_to),
                on_columns=on,
                join_type=join_type,
                extra_condition=extra_condition,
                extra_params=extra_params or {},
            )
        )
        return self

    def filter(self, callback: Filter) -> Self:
        """Register a callback receiving the compiled ``sa.Select`` and returning it extended.

        Callbacks run after all joins, in registration order; use
        ``resolve_col(query, "alias.field")`` to reach aliased columns.
        """
        self._filters.append(callback)
        return self

    def modify(self, alias: str, callback: Modifier) -> Self:
        """Register a callback run once on every finished entity of *alias*.

        The callback mutates the entity dict in place.  A later registration
        for the same alias replaces the earlier one.
        """
        self._graph.by_alias(alias)
        self._modifiers[alias] = callback
        return self

    @property
    def graph(self) -> JoinGraph:
        return self._graph

    def get_table_collection(self) -> JoinGraph:
        """Return the join graph, e.g. to look up the root table."""
        return self._graph

    def prepare(self) -> CompiledQuery:
        """Compile the graph and filters into a ``CompiledQuery``."""
        return QueryCompiler(self._graph, self._filters).compile()

    def raw_sql(self, dialect: Dialect | None = None) -> str:
        """Return the SQL with parameters inlined, for debugging only."""
        return self.prepare().literal_sql(dialect)

    def materialize(self, rows: Sequence[Mapping[str, Any]]) -> list[Fragment]:
        """Fold flat *rows* of this builder's statement into nested entities."""
        self._graph.prepare()
        return ResultMaterializer(self._graph, self._modifiers).materialize(rows)

    def all(self, connection: Bind | None = None) -> list[Fragment]:
        """Compile, execute and materialize.

        Args:
            connection: Engine, connection or session; defaults to the
                ``Registry`` bind.

        Raises:
            NoConnectionAvailableError: If no connection is passed nor configured.
        """
        if connection is None and Registry.is_initialized():
            connection = Registry().bind
        if connection is None:
            raise NoConnectionAvailableError()

        compiled = self.prepare()
        logger.debug("Executing %s", compiled)
        if isinstance(connection, sa.Engine):
            with connection.connect() as conn:
                rows = compiled.execute(conn)
        else:
            rows = compiled.execute(connection)

        return self.materialize(rows)

    async def all_async(self, connection: AsyncBind | None = None) -> list[Fragment]:
        """Async counterpart of ``all`` for asyncio engines, connections and sessions."""
        if connection is None:
            raise NoConnectionAvailableError()

        compiled = self.prepare()
        logger.debug("Executing %s", compiled)
        if isinstance(connection, AsyncEngine):
            async with connection.connect() as conn:
                rows = await compiled.execute_async(conn)
        else:
            rows = await compiled.execute_async(connection)

        return self.materialize(rows)

    def clone(self) -> Self:
        """Return an independent builder with the same graph, filters and modifiers."""
        other = type(self).__new__(type(self))
        other.schema = self.schema
        other._graph = self._graph.clone()
        other._filters = list(self._filters)
        other._modifiers = dict(self._modifiers)
        return other

    __copy__ = clone


def _describe(
    schema: SchemaSource,
    entity: Any,
    alias: str,
    container_field: str | None = None,
) -> TableSpec:
    """Build the ``TableSpec`` of *entity* from the schema source."""
    return TableSpec(
        alias=alias,
        name=schema.table_name(entity),
        fields=schema.fields(entity),
        primary_key=schema.primary_key(entity),
        container_field=container_field,
        entity=entity,
    )
