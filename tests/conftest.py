from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from sqla_relations import Registry, get_schema, init_registry
from sqla_relations.tools import tools_cache_clear

from .models import Base, seed_batches


pytestmark = pytest.mark.anyio


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["sqlite", "postgres"],
        help="Database backend for the async end-to-end tests",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
def _init_registry() -> None:
    """Point the Registry at the test models.

    Sync, no DB needed -- safe to run for all tests including unit tests.
    """
    init_registry(get_schema(Base))


@pytest.fixture
def reset_registry() -> Iterator[None]:
    saved = Registry._Registry__instance  # type: ignore[attr-defined]
    saved_state = (saved._schema, saved._bind) if saved is not None else None
    yield
    Registry._Registry__instance = saved  # type: ignore[attr-defined]
    if saved is not None and saved_state is not None:
        saved._schema, saved._bind = saved_state


@pytest.fixture(autouse=True)
def clear_lru_caches() -> Iterator[None]:
    yield
    tools_cache_clear()


# Sync: in-memory SQLite shared by every connection of the session


@pytest.fixture(scope="session")
def sync_engine() -> Iterator[sa.Engine]:
    engine = sa.create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    with engine.begin() as conn:
        for table, rows in seed_batches():
            conn.execute(table.insert(), rows)
    yield engine
    engine.dispose()


@pytest.fixture
def sync_connection(sync_engine: sa.Engine) -> Iterator[sa.Connection]:
    with sync_engine.connect() as conn:
        trans = conn.begin()
        yield conn
        trans.rollback()


# Async: aiosqlite by default, PostgreSQL in a container with --db postgres


@pytest.fixture(scope="session")
def db_config(db_backend: str, tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    match db_backend:
        case "postgres":
            from testcontainers.postgres import PostgresContainer

            pg = PostgresContainer(image="postgres:latest")
            if os.name == "nt":
                pg.get_container_host_ip = lambda: "127.0.0.1"
            with pg:
                host = pg.get_container_host_ip()
                dsn = (
                    f"postgresql+asyncpg://{pg.username}:{pg.password}"
                    f"@{host}:{pg.get_exposed_port(pg.port)}/{pg.dbname}"
                )
                yield dsn

        case "sqlite":
            tmp = tmp_path_factory.mktemp("db")
            yield f"sqlite+aiosqlite:///{tmp}/test.db"


@pytest.fixture(scope="session")
def engine(db_config: str) -> AsyncEngine:
    return create_async_engine(db_config, echo=False)


@pytest.fixture(scope="session")
async def _create_tables(engine: AsyncEngine) -> AsyncIterator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        for table, rows in seed_batches():
            await conn.execute(table.insert(), rows)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def connection(
    engine: AsyncEngine, _create_tables: None
) -> AsyncIterator[AsyncConnection]:
    async with engine.connect() as conn:
        trans = await conn.begin()
        yield conn
        await trans.rollback()
