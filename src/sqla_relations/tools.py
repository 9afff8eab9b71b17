from __future__ import annotations

from collections.abc import Callable, Sequence
from functools import lru_cache
from typing import Any, TypeVar

import sqlalchemy as sa
from sqlalchemy import orm


T = TypeVar("T", bound=orm.DeclarativeBase)


def flat_name(alias: str, field: str) -> str:
    """Name of the flat result column carrying *field* of the table aliased *alias*."""
    return f"{alias}_{field}"


@lru_cache
def _get_table_name(model: type[T]) -> str:
    """Return the table name for *model*, preferring ``__tablename__`` (cached)."""
    result = getattr(
        model,
        "__tablename__",
        model.__table__.description,
    )
    if not result:
        raise ValueError(f"Cannot determine tablename for {model}")

    return result


def get_table_name(entity: str | type[T] | sa.Table) -> str:
    """Get the physical table name for an entity reference.

    Args:
        entity: A table name, a ``sa.Table`` or a SQLAlchemy declarative model class.

    Returns:
        The table name as a string.

    Raises:
        ValueError: If the table name cannot be determined.
    """
    if isinstance(entity, str):
        return entity
    if isinstance(entity, sa.Table):
        return entity.name

    return _get_table_name(entity)


def get_table_names(query: sa.Select[Any]) -> Sequence[str]:
    """Extract all table names from a select query, aliased tables included.

    Args:
        query: SQLAlchemy select query.

    Returns:
        Sequence of table names found in the query.
    """
    seen: set[str] = set()
    out: list[str] = []

    def add(name: str | None) -> None:
        if name and name not in seen:
            seen.add(name)
            out.append(name)

    for root in query.get_final_froms():
        stack: list[Any] = [root]
        while stack:
            node = stack.pop()

            if isinstance(node, sa.TableClause):
                add(node.name)
                continue

            if isinstance(node, sa.Join):
                stack.extend([node.right, node.left])
                continue

            if hasattr(node, "element"):
                stack.append(node.element)

    return out


def add_conditions(
    *conditions: sa.ColumnExpressionArgument[bool],
) -> Callable[[sa.Select[Any]], sa.Select[Any]]:
    """Create a filter that adds WHERE conditions to the compiled query.

    Args:
        *conditions: SQLAlchemy column expressions that evaluate to boolean.

    Returns:
        A function that takes a select query and returns it with added conditions.

    Example:
        >>> manager = RelationManager.select("city", "c").filter(
        ...     add_conditions(sa.literal_column("c.id").in_([2, 3]))
        ... )
    """

    def _add(query: sa.Select[Any]) -> sa.Select[Any]:
        return query.where(*conditions)

    return _add


def _find_from_by_name(
    root: sa.FromClause, name: str
) -> sa.FromClause | None:
    """Find an alias/table with *name* in the FROM tree (iterative).

    Aliases are matched by alias name only, never by the table behind them.
    """
    stack: list[sa.FromClause] = [root]
    while stack:
        node = stack.pop()
        if isinstance(node, sa.Join):
            stack.append(node.left)
            stack.append(node.right)
            continue
        if getattr(node, "name", None) == name:
            return node
    return None


def resolve_col(query: sa.Select[Any], ref: str) -> sa.ColumnElement[Any]:
    """Resolve ``'alias.field'`` to a bound ColumnElement from *query*.

    Works on statements compiled from a join graph, inside a filter
    callback.  The *ref* format is ``table_alias.field_name``, the same
    spelling used in join conditions::

        def only_big_cities(query: sa.Select) -> sa.Select:
            return query.where(resolve_col(query, "c.population") > 1_000_000)

    Raises ``ValueError`` if alias or column not found.
    """
    alias_name, sep, col_name = ref.partition(".")
    if not sep:
        raise ValueError(f"Expected 'alias.column' format, got {ref!r}")
    for root in query.get_final_froms():
        found = _find_from_by_name(root, alias_name)
        if found is not None and hasattr(found, "c"):
            try:
                return found.c[col_name]
            except KeyError:
                raise ValueError(
                    f"Column {col_name!r} not found in alias {alias_name!r}. "
                    f"Available: {[c.key for c in found.c]}"
                ) from None
    raise ValueError(
        f"Alias {alias_name!r} not found in query. "
        f"Available: {get_table_aliases(query)}"
    )


def get_table_aliases(query: sa.Select[Any]) -> Sequence[str]:
    """Return the alias names of every aliased table in *query*'s FROM tree."""
    out: list[str] = []
    for root in query.get_final_froms():
        stack: list[sa.FromClause] = [root]
        while stack:
            node = stack.pop()
            if isinstance(node, sa.Join):
                stack.append(node.right)
                stack.append(node.left)
                continue
            if isinstance(node, sa.Alias) and node.name not in out:
                out.append(node.name)
    return out


def tools_cache_clear() -> None:
    """Clear the table-name cache."""
    _get_table_name.cache_clear()
