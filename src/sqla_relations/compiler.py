from __future__ import annotations

import logging
import re
import warnings
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final, Protocol

import sqlalchemy as sa
from sqlalchemy.engine import Dialect

from .datastructures import frozendict
from .exceptions import NoRootTableError, ParameterCollisionWarning
from .graph import JoinGraph
from .structs import JoinEdge


logger = logging.getLogger(__name__)

Filter = Callable[[sa.Select[Any]], sa.Select[Any]]

# same rule sa.text() applies to spot ``:name`` placeholders
_BIND_PARAM_RE: Final[re.Pattern[str]] = re.compile(r"(?<![:\w\\]):(\w+)(?!:)")
_LEADING_AND_RE: Final[re.Pattern[str]] = re.compile(r"^\s*and\s+", re.IGNORECASE)


class _Executes(Protocol):
    def execute(self, statement: Any, /) -> sa.Result[Any]: ...


class _ExecutesAsync(Protocol):
    async def execute(self, statement: Any, /) -> sa.Result[Any]: ...


@dataclass(slots=True, frozen=True)
class CompiledQuery:
    """A compiled join-graph statement.

    Extra join parameters are bound into ``statement`` already; ``params``
    is the merged parameter map kept for inspection.
    """

    statement: sa.Select[Any]
    params: Mapping[str, Any] = field(default_factory=frozendict)
    columns: tuple[str, ...] = ()

    def __str__(self) -> str:
        return str(self.statement)

    def execute(self, connection: _Executes) -> Sequence[Mapping[str, Any]]:
        """Run the statement on a ``Connection`` or ``Session`` and return every row."""
        return connection.execute(self.statement).mappings().all()

    async def execute_async(self, connection: _ExecutesAsync) -> Sequence[Mapping[str, Any]]:
        """Run the statement on an ``AsyncConnection`` or ``AsyncSession``."""
        result = await connection.execute(self.statement)
        return result.mappings().all()

    def literal_sql(self, dialect: Dialect | None = None) -> str:
        """Render the statement with parameters inlined as literals.

        For logs and debugging only, never execute the output.
        """
        compiled = self.statement.compile(
            dialect=dialect, compile_kwargs={"literal_binds": True}
        )
        return str(compiled)


class QueryCompiler:
    """Turns a ``JoinGraph`` and filter callbacks into one flat SELECT.

    Every field of every table is selected as ``alias.field AS alias_field``
    in graph order, the root table is the FROM, and each edge adds one join
    in the order it was added.  Filters run last, in registration order,
    and get the finished ``sa.Select`` to extend.
    """

    __slots__ = ("filters", "graph")

    def __init__(self, graph: JoinGraph, filters: Sequence[Filter] = ()) -> None:
        self.graph = graph
        self.filters = tuple(filters)

    def compile(self) -> CompiledQuery:
        """Build the statement.

        Raises:
            NoRootTableError: If the graph has no root table.
        """
        if not self.graph.has_root:
            raise NoRootTableError()

        graph = self.graph.prepare()
        froms = {
            table.alias: sa.table(table.name, *(sa.column(f) for f in table.fields)).alias(
                table.alias
            )
            for table in graph
        }
        columns = [
            froms[table.alias].c[field_name].label(column)
            for table in graph
            for field_name, column in table.field_map.items()
        ]

        params = self._collect_params()
        binds = {name: sa.bindparam(name, value) for name, value in params.items()}

        from_clause: sa.FromClause = froms[graph.root.alias]
        for edge in graph.edges:
            joined = froms[edge.alias]
            onclause = self._on_clause(edge, froms, binds)
            match edge.join_type:
                case "inner":
                    from_clause = from_clause.join(joined, onclause)
                case "left":
                    from_clause = from_clause.outerjoin(joined, onclause)
                case "right":
                    # X RIGHT JOIN t ON c  ==  t LEFT JOIN X ON c
                    from_clause = joined.outerjoin(from_clause, onclause)

        query: sa.Select[Any] = sa.select(*columns).select_from(from_clause)
        for apply_filter in self.filters:
            query = apply_filter(query)

        logger.debug(
            "Compiled join graph %s: %d columns, %d joins, %d filters",
            graph.aliases,
            len(columns),
            len(graph.edges),
            len(self.filters),
        )

        return CompiledQuery(
            statement=query,
            params=frozendict(params),
            columns=tuple(column.name for column in columns),
        )

    def _collect_params(self) -> dict[str, Any]:
        """Merge extra join parameters of all edges; a later edge wins."""
        params: dict[str, Any] = {}
        for edge in self.graph.edges:
            for name, value in edge.extra_params.items():
                if name in params and params[name] is not value and params[name] != value:
                    warnings.warn(
                        f"Join parameter {name!r} of {edge.alias!r} overrides the value "
                        f"{params[name]!r} bound by an earlier join with {value!r}",
                        ParameterCollisionWarning,
                        stacklevel=4,
                    )
                params[name] = value

        return params

    @staticmethod
    def _on_clause(
        edge: JoinEdge,
        froms: Mapping[str, sa.FromClause],
        binds: Mapping[str, sa.BindParameter[Any]],
    ) -> sa.ColumnElement[bool]:
        table, parent = froms[edge.alias], froms[edge.join_to.alias]
        clauses: list[sa.ColumnElement[bool]] = [
            table.c[own] == parent.c[ref] for own, ref in edge.on_columns.items()
        ]

        if edge.extra_condition and (
            text := _LEADING_AND_RE.sub("", edge.extra_condition, count=1).strip()
        ):
            extra = sa.text(text)
            names = dict.fromkeys(_BIND_PARAM_RE.findall(text))
            if bound := [binds[name] for name in names if name in binds]:
                extra = extra.bindparams(*bound)
            clauses.append(extra)  # type: ignore[arg-type]

        return sa.and_(*clauses)
