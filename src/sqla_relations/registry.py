from __future__ import annotations

from typing import ClassVar, Union, final

import sqlalchemy as sa
from sqlalchemy import orm

from .schema import SchemaSource


Bind = Union[sa.Engine, sa.Connection, orm.Session]


@final
class Registry:
    """Singleton holding the defaults used by ``RelationManager``.

    ``schema`` describes entities named in ``select``/``with_*`` calls when
    no schema source is passed explicitly; ``bind`` is the connection used by
    ``all()`` when none is passed.  Initialize it once at startup with
    ``init_registry``.
    """

    __instance: ClassVar[Registry | None] = None
    _schema: SchemaSource | None
    _bind: Bind | None

    def __new__(
        cls,
        schema: SchemaSource | None = None,
        bind: Bind | None = None,
    ) -> Registry:
        if cls.__instance is None:
            instance = super().__new__(cls)
            instance._schema = None
            instance._bind = None
            if schema is not None:
                instance.configure(schema, bind)

            cls.__instance = instance

        if getattr(cls.__instance, "_schema", None) is None:
            raise RuntimeError("Registry is not initialized: call init_registry() first")

        return cls.__instance

    @property
    def schema(self) -> SchemaSource:
        """The default schema source (read-only)."""
        assert self._schema is not None
        return self._schema

    @property
    def bind(self) -> Bind | None:
        """The default bind, or ``None`` when every call must pass a connection."""
        return self._bind

    def configure(self, schema: SchemaSource, bind: Bind | None = None) -> None:
        """Replace the default schema source and bind.

        Args:
            schema: Schema source used to describe entities.
            bind: Engine, connection or session used by ``all()`` by default.
        """
        self._schema = schema
        self._bind = bind

    @classmethod
    def reset(cls) -> None:
        """Destroy the singleton, allowing re-initialization (primarily for tests)."""
        cls.__instance = None

    @classmethod
    def is_initialized(cls) -> bool:
        return cls.__instance is not None and cls.__instance._schema is not None


def init_registry(schema: SchemaSource, bind: Bind | None = None) -> Registry:
    """Initialize (or reconfigure) the global ``Registry``.

    Example:
        >>> from myapp.models import Base
        >>> engine = sa.create_engine("sqlite:///app.db")
        >>> init_registry(get_schema(Base), bind=engine)
    """
    if Registry.is_initialized():
        registry = Registry()
        registry.configure(schema, bind)
        return registry

    Registry.reset()
    return Registry(schema, bind)
