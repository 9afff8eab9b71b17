"""Table descriptions for the builder: field names and primary keys.

A ``SchemaSource`` answers three questions about an entity: the physical
table name, its ordered column names and its ordered primary-key columns.
``MetadataSchema`` answers them from declared ``sa.MetaData`` (for example
``Base.metadata`` of a declarative base); ``InspectorSchema`` reflects a live
database.
"""

from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache
from typing import Any, Protocol, runtime_checkable

import sqlalchemy as sa
from sqlalchemy import exc, orm

from .exceptions import UnknownEntityError
from .tools import get_table_name


@runtime_checkable
class SchemaSource(Protocol):
    def table_name(self, entity: Any) -> str: ...

    def fields(self, entity: Any) -> Sequence[str]: ...

    def primary_key(self, entity: Any) -> Sequence[str]: ...


class MetadataSchema:
    """Describe entities from the tables declared in a ``sa.MetaData``.

    Entities may be table names (``"address"``), ``sa.Table`` objects or
    declarative model classes.
    """

    __slots__ = ("metadata",)

    def __init__(self, metadata: sa.MetaData) -> None:
        self.metadata = metadata

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {sorted(self.metadata.tables)!r}>"

    def _table(self, entity: Any) -> sa.Table:
        if isinstance(entity, sa.Table):
            return entity

        table = self.metadata.tables.get(get_table_name(entity))
        if table is None:
            raise UnknownEntityError(entity)

        return table

    def table_name(self, entity: Any) -> str:
        return self._table(entity).name

    def fields(self, entity: Any) -> Sequence[str]:
        return tuple(column.name for column in self._table(entity).columns)

    def primary_key(self, entity: Any) -> Sequence[str]:
        return tuple(column.name for column in self._table(entity).primary_key)


class InspectorSchema:
    """Describe entities by reflecting a live database through ``sa.inspect``.

    Lookups are cached per instance; call ``cache_clear`` after migrations.
    """

    __slots__ = ("_describe", "bind", "schema")

    def __init__(self, bind: sa.Engine | sa.Connection, schema: str | None = None) -> None:
        self.bind = bind
        self.schema = schema
        self._describe = lru_cache(maxsize=256)(self._reflect)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.bind!r}>"

    def _reflect(self, name: str) -> tuple[tuple[str, ...], tuple[str, ...]]:
        inspector = sa.inspect(self.bind)
        try:
            columns = inspector.get_columns(name, schema=self.schema)
            pk = inspector.get_pk_constraint(name, schema=self.schema)
        except exc.NoSuchTableError:
            raise UnknownEntityError(name) from None

        if not columns:
            raise UnknownEntityError(name)

        return (
            tuple(column["name"] for column in columns),
            tuple(pk.get("constrained_columns") or ()),
        )

    def table_name(self, entity: Any) -> str:
        return get_table_name(entity)

    def fields(self, entity: Any) -> Sequence[str]:
        return self._describe(self.table_name(entity))[0]

    def primary_key(self, entity: Any) -> Sequence[str]:
        return self._describe(self.table_name(entity))[1]

    def cache_clear(self) -> None:
        self._describe.cache_clear()


def get_schema(base: type[orm.DeclarativeBase] | sa.MetaData) -> MetadataSchema:
    """Build a ``MetadataSchema`` from a declarative base or a ``sa.MetaData``.

    Raises:
        AssertionError: If *base* is neither.
    """
    if isinstance(base, sa.MetaData):
        return MetadataSchema(base)

    assert orm.DeclarativeBase in getattr(base, "__bases__", ()), (
        "base must be a subclass of orm.DeclarativeBase or a sa.MetaData"
    )

    return MetadataSchema(base.metadata)
