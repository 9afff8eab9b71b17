from __future__ import annotations

import warnings
from typing import Any

import pytest
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from sqla_relations import (
    JoinEdge,
    JoinGraph,
    JoinKind,
    NoRootTableError,
    ParameterCollisionWarning,
    QueryCompiler,
    TableSpec,
    add_conditions,
    resolve_col,
)


def _person() -> TableSpec:
    return TableSpec(alias="p", name="person", fields=["id", "name"], primary_key=["id"])


def _address_graph(**comment_join: Any) -> JoinGraph:
    a = TableSpec(alias="a", name="address", fields=["id", "city_id", "name"], primary_key=["id"])
    c = TableSpec(alias="c", name="city", fields=["id", "name"], primary_key=["id"], container_field="city")
    p = TableSpec(alias="p", name="place", fields=["id", "address_id"], primary_key=["id"], container_field="places")
    cm = TableSpec(
        alias="cm",
        name="comment",
        fields=["id", "place_id", "mark"],
        primary_key=["id"],
        container_field="comments",
    )
    graph = JoinGraph(a)
    graph.add_edge(JoinEdge(kind=JoinKind.SINGLE, table=c, join_to=a, on_columns={"id": "city_id"}))
    graph.add_edge(JoinEdge(kind=JoinKind.MULTIPLE, table=p, join_to=a, on_columns={"address_id": "id"}))
    graph.add_edge(
        JoinEdge(kind=JoinKind.MULTIPLE, table=cm, join_to=p, on_columns={"place_id": "id"}, **comment_join)
    )
    return graph


def _sql(graph: JoinGraph, *filters: Any) -> str:
    return QueryCompiler(graph, filters).compile().literal_sql()


class TestSelectList:
    def test_root_only(self) -> None:
        compiled = QueryCompiler(JoinGraph(_person())).compile()
        sql = str(compiled)

        assert "SELECT p.id AS p_id, p.name AS p_name" in sql
        assert "FROM person AS p" in sql
        assert "JOIN" not in sql
        assert compiled.columns == ("p_id", "p_name")

    def test_reproducible(self) -> None:
        graph = JoinGraph(_person())

        assert _sql(graph) == _sql(graph)
        assert _sql(graph) == _sql(JoinGraph(_person()))

    def test_columns_follow_graph_order(self) -> None:
        compiled = QueryCompiler(_address_graph()).compile()

        assert compiled.columns == (
            "a_id",
            "a_city_id",
            "a_name",
            "c_id",
            "c_name",
            "p_id",
            "p_address_id",
            "cm_id",
            "cm_place_id",
            "cm_mark",
        )

    def test_no_root_raises(self) -> None:
        with pytest.raises(NoRootTableError):
            QueryCompiler(JoinGraph()).compile()

    def test_compile_prepares_graph(self) -> None:
        graph = _address_graph()
        QueryCompiler(graph).compile()

        assert graph.by_alias("cm").pk_field_chain == ("a_id", "p_id", "cm_id")


class TestJoins:
    def test_left_joins_in_order(self) -> None:
        sql = _sql(_address_graph())

        city = sql.index("LEFT OUTER JOIN city AS c ON c.id = a.city_id")
        place = sql.index("LEFT OUTER JOIN place AS p ON p.address_id = a.id")
        comment = sql.index("LEFT OUTER JOIN comment AS cm ON cm.place_id = p.id")
        assert sql.index("FROM address AS a") < city < place < comment

    def test_inner_join(self) -> None:
        sql = _sql(_address_graph(join_type="inner"))

        assert "JOIN comment AS cm ON cm.place_id = p.id" in sql
        assert "OUTER JOIN comment" not in sql

    def test_right_join_keeps_joined_rows(self) -> None:
        a = TableSpec(alias="a", name="address", fields=["id"], primary_key=["id"])
        p = TableSpec(
            alias="p", name="place", fields=["id", "address_id"], primary_key=["id"], container_field="places"
        )
        graph = JoinGraph(a).add_edge(
            JoinEdge(kind=JoinKind.MULTIPLE, table=p, join_to=a, on_columns={"address_id": "id"}, join_type="right")
        )

        assert "FROM place AS p LEFT OUTER JOIN address AS a ON p.address_id = a.id" in _sql(graph)

    def test_multi_column_join(self) -> None:
        a = TableSpec(alias="a", name="address", fields=["id", "city_id"], primary_key=["id"])
        p = TableSpec(
            alias="p",
            name="place",
            fields=["id", "address_id", "city_id"],
            primary_key=["id"],
            container_field="places",
        )
        graph = JoinGraph(a).add_edge(
            JoinEdge(
                kind=JoinKind.MULTIPLE,
                table=p,
                join_to=a,
                on_columns={"address_id": "id", "city_id": "city_id"},
            )
        )

        assert "ON p.address_id = a.id AND p.city_id = a.city_id" in _sql(graph)


class TestExtraCondition:
    def test_leading_and_is_dropped(self) -> None:
        graph = _address_graph(join_type="inner", extra_condition="and cm.mark >= :mark", extra_params={":mark": 3})
        compiled = QueryCompiler(graph).compile()

        assert "ON cm.place_id = p.id AND cm.mark >= :mark" in str(compiled)
        assert dict(compiled.params) == {"mark": 3}

    def test_literal_rendering(self) -> None:
        graph = _address_graph(extra_condition="AND cm.mark >= :mark", extra_params={"mark": 3})

        assert "cm.mark >= 3" in _sql(graph)

    def test_string_literal_is_quoted(self) -> None:
        graph = _address_graph(extra_condition="AND cm.author = :author", extra_params={"author": "Ann"})

        assert "cm.author = 'Ann'" in _sql(graph)

    def test_literal_rendering_with_dialect(self) -> None:
        graph = _address_graph(extra_condition="AND cm.mark >= :mark", extra_params={"mark": 3})
        sql = QueryCompiler(graph).compile().literal_sql(postgresql.dialect())

        assert "cm.mark >= 3" in sql

    def test_collision_last_write_wins(self) -> None:
        graph = _address_graph(extra_condition="AND cm.mark >= :mark", extra_params={"mark": 3})
        extra = TableSpec(
            alias="cm2",
            name="comment",
            fields=["id", "place_id", "mark"],
            primary_key=["id"],
            container_field="good_comments",
        )
        graph.add_edge(
            JoinEdge(
                kind=JoinKind.MULTIPLE,
                table=extra,
                join_to=graph.by_alias("p"),
                on_columns={"place_id": "id"},
                extra_condition="AND cm2.mark >= :mark",
                extra_params={"mark": 5},
            )
        )

        with pytest.warns(ParameterCollisionWarning, match="'mark'"):
            compiled = QueryCompiler(graph).compile()

        sql = compiled.literal_sql()
        assert compiled.params["mark"] == 5
        assert "cm.mark >= 5" in sql
        assert "cm2.mark >= 5" in sql

    def test_same_value_does_not_warn(self) -> None:
        graph = _address_graph(extra_condition="AND cm.mark >= :mark", extra_params={"mark": 3})
        extra = TableSpec(
            alias="cm2",
            name="comment",
            fields=["id", "place_id", "mark"],
            primary_key=["id"],
            container_field="good_comments",
        )
        graph.add_edge(
            JoinEdge(
                kind=JoinKind.MULTIPLE,
                table=extra,
                join_to=graph.by_alias("p"),
                on_columns={"place_id": "id"},
                extra_condition="AND cm2.mark >= :mark",
                extra_params={"mark": 3},
            )
        )

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            sql = _sql(graph)

        assert "cm2.mark >= 3" in sql


class TestFilters:
    def test_filters_run_in_order(self) -> None:
        calls: list[str] = []

        def first(query: sa.Select[Any]) -> sa.Select[Any]:
            calls.append("first")
            return query.where(resolve_col(query, "c.id").in_([2, 3]))

        def second(query: sa.Select[Any]) -> sa.Select[Any]:
            calls.append("second")
            return query.order_by(resolve_col(query, "a.id"))

        sql = _sql(_address_graph(), first, second)

        assert calls == ["first", "second"]
        assert "WHERE c.id IN (2, 3)" in sql
        assert sql.index("WHERE") < sql.index("ORDER BY a.id")

    def test_add_conditions(self) -> None:
        sql = _sql(_address_graph(), add_conditions(sa.literal_column("cm.mark") > 2))

        assert "WHERE cm.mark > 2" in sql

    def test_filter_does_not_add_from(self) -> None:
        sql = _sql(
            _address_graph(),
            lambda query: query.where(resolve_col(query, "cm.mark") == 5),
        )

        assert sql.count("comment AS cm") == 1
