"""Errors raised while building, compiling and materializing a join graph.

Each error also derives from the builtin exception a plain Python lookup or
check would raise, so callers may catch either the specific class or the
builtin one.
"""

from __future__ import annotations


class RelationsError(Exception):
    """Base class for every error raised by sqla_relations."""


class DuplicateAliasError(RelationsError, ValueError):
    def __init__(self, alias: str) -> None:
        self.alias = alias
        super().__init__(f"Duplicate table alias {alias!r}")


class UnknownAliasError(RelationsError, LookupError):
    def __init__(self, alias: str, available: tuple[str, ...] = ()) -> None:
        self.alias = alias
        message = f"Unknown table alias {alias!r}"
        if available:
            message = f"{message}. Available: {list(available)}"
        super().__init__(message)

    def __str__(self) -> str:
        # LookupError.__str__ would repr() the message like KeyError does
        return str(self.args[0])


class UnknownEntityError(RelationsError, LookupError):
    def __init__(self, entity: object) -> None:
        self.entity = entity
        super().__init__(f"Cannot describe entity {entity!r}: no such table")

    def __str__(self) -> str:
        return str(self.args[0])


class ColumnNameClashError(RelationsError, ValueError):
    def __init__(self, column: str, alias: str, other_alias: str) -> None:
        self.column = column
        self.alias = alias
        self.other_alias = other_alias
        super().__init__(
            f"Result column {column!r} of {alias!r} clashes with a column of {other_alias!r}"
        )


class NoRootTableError(RelationsError, RuntimeError):
    def __init__(self) -> None:
        super().__init__("Join graph has no root table")


class PrimaryKeyFieldNotFoundError(RelationsError, ValueError):
    def __init__(self, alias: str, field: str) -> None:
        self.alias = alias
        self.field = field
        super().__init__(f"Primary key field {field!r} of {alias!r} not found in field list")


class PrimaryKeyValueMissingInRowError(RelationsError, LookupError):
    def __init__(self, alias: str, column: str) -> None:
        self.alias = alias
        self.column = column
        super().__init__(f"No primary key column {column!r} found in row for {alias!r}")

    def __str__(self) -> str:
        return str(self.args[0])


class UnknownConditionTypeError(RelationsError, TypeError):
    def __init__(self, kind: object) -> None:
        self.kind = kind
        super().__init__(f"Unknown relation kind {kind!r}")


class NoConnectionAvailableError(RelationsError, RuntimeError):
    def __init__(self) -> None:
        super().__init__(
            "No connection available: pass one to all() or set a default bind "
            "with init_registry(schema, bind=...)"
        )


class ParameterCollisionWarning(UserWarning):
    """Two join edges bind the same parameter name with different values."""
