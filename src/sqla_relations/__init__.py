"""Nested results from one flat SQL join, on top of SQLAlchemy Core.

sqla_relations compiles a small join graph (a root table plus single- and
collection-valued relations) into a single SELECT with ``alias_field``
columns, then folds the flat rows back into nested dicts, de-duplicating
parents repeated by the join.  Initialize a ``Registry`` at startup with a
schema source, then call ``RelationManager.select(...)``.
"""

from ._version import __version__, __version_tuple__
from .compiler import CompiledQuery, QueryCompiler
from .core import RelationManager
from .datastructures import frozendict
from .exceptions import (
    ColumnNameClashError,
    DuplicateAliasError,
    NoConnectionAvailableError,
    NoRootTableError,
    ParameterCollisionWarning,
    PrimaryKeyFieldNotFoundError,
    PrimaryKeyValueMissingInRowError,
    RelationsError,
    UnknownAliasError,
    UnknownConditionTypeError,
    UnknownEntityError,
)
from .graph import JoinGraph
from .materializer import ResultMaterializer
from .registry import Registry, init_registry
from .schema import InspectorSchema, MetadataSchema, SchemaSource, get_schema
from .structs import JoinEdge, JoinKind, JoinType, TableSpec
from .tools import add_conditions, flat_name, get_table_name, get_table_names, resolve_col


__all__ = (
    "ColumnNameClashError",
    "CompiledQuery",
    "DuplicateAliasError",
    "InspectorSchema",
    "JoinEdge",
    "JoinGraph",
    "JoinKind",
    "JoinType",
    "MetadataSchema",
    "NoConnectionAvailableError",
    "NoRootTableError",
    "ParameterCollisionWarning",
    "PrimaryKeyFieldNotFoundError",
    "PrimaryKeyValueMissingInRowError",
    "QueryCompiler",
    "Registry",
    "RelationManager",
    "RelationsError",
    "ResultMaterializer",
    "SchemaSource",
    "TableSpec",
    "UnknownAliasError",
    "UnknownConditionTypeError",
    "UnknownEntityError",
    "__version__",
    "__version_tuple__",
    "add_conditions",
    "flat_name",
    "frozendict",
    "get_schema",
    "get_table_name",
    "get_table_names",
    "init_registry",
    "resolve_col",
)
