"""Basic sqla-relations usage examples.

Demonstrates initialization, single and multiple joins, extra join
conditions, filters, modifiers and raw SQL output.

NOTE: This file is illustrative, it won't run standalone
without a database and seeded data.
"""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from sqla_relations import RelationManager, get_schema, init_registry, resolve_col

from .models import Address, Base, City, Comment, Place


# ── 1. Initialize once at startup ────────────────────────────────────

engine = sa.create_engine("sqlite:///places.db")


def setup() -> None:
    Base.metadata.create_all(engine)

    # Describe tables from the declared models, run queries on `engine` by default
    init_registry(get_schema(Base), bind=engine)


# ── 2. Nested joins ──────────────────────────────────────────────────


def get_addresses() -> list[dict[str, Any]]:
    # [{"id": 1, "name": ..., "city": {...}, "places": [{..., "comments": [...]}]}, ...]
    return (
        RelationManager.select(Address, "a")
        .with_single("city", City, "c", "a", {"id": "city_id"})
        .with_multiple("places", Place, "p", "a", {"address_id": "id"})
        .with_multiple("comments", Comment, "cm", "p", {"place_id": "id"})
        .all()
    )


# ── 3. Extra join conditions and modifiers ──────────────────────────


def _rate(place: dict[str, Any]) -> None:
    marks = [comment["mark"] for comment in place["comments"]]
    place["mark_average"] = sum(marks) / len(marks) if marks else None


def get_well_rated_places(min_mark: int = 3) -> list[dict[str, Any]]:
    return (
        RelationManager.select(Place, "p")
        .with_single("address", Address, "a", "p", {"id": "address_id"})
        .with_multiple(
            "comments",
            Comment,
            "cm",
            "p",
            {"place_id": "id"},
            join_type="inner",
            extra_condition="AND cm.mark >= :mark",
            extra_params={"mark": min_mark},
        )
        .modify("p", _rate)
        .all()
    )


# ── 4. Filters ───────────────────────────────────────────────────────


def get_cities(city_ids: list[int]) -> list[dict[str, Any]]:
    return (
        RelationManager.select(City, "c")
        .with_multiple("addresses", Address, "a", "c", {"city_id": "id"})
        .filter(lambda q: q.where(resolve_col(q, "c.id").in_(city_ids)))
        .filter(lambda q: q.order_by(resolve_col(q, "a.id")))
        .all()
    )


# ── 5. Async ─────────────────────────────────────────────────────────


async def get_addresses_async(session: AsyncSession) -> list[dict[str, Any]]:
    return await (
        RelationManager.select(Address, "a")
        .with_single("city", City, "c", "a", {"id": "city_id"})
        .all_async(session)
    )


# ── 6. Debugging ─────────────────────────────────────────────────────


def print_sql() -> None:
    print(
        RelationManager.select(Address, "a")
        .with_single("city", City, "c", "a", {"id": "city_id"})
        .raw_sql()
    )
