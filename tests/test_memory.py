"""Tests for the in-memory adapter (dataclasses, pydantic models, dicts)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest

from cqrs_ddd_cql import OrderCompiler, QueryCompiler
from cqrs_ddd_cql.adapters import MemoryAdapter, MemoryQuery
from cqrs_ddd_cql.exceptions import (
    InvalidValueError,
    NotOrderableError,
    UnsupportedOperatorError,
)
from cqrs_ddd_cql.fields import Cardinality
from cqrs_ddd_cql.operators import SemanticType
from sample_models import Article, Member, Product

BERLIN = {"lat": 52.52, "lng": 13.405}


def ids(items: list[Any]) -> list[int]:
    return [item.id for item in items]


def run(
    compiler: QueryCompiler, members: list[Member], where: dict[str, Any], **kwargs: Any
) -> list[int]:
    query = compiler.compile(MemoryQuery(Member), where, Member, **kwargs)
    return ids(query.apply(members))


def ordered(
    order_compiler: OrderCompiler, members: list[Member], order: Any, **kwargs: Any
) -> list[int]:
    query = order_compiler.compile(MemoryQuery(Member), order, Member, **kwargs)
    return ids(query.apply(members))


# -- introspection -------------------------------------------------------------


def test_dataclass_field_map() -> None:
    fields = MemoryAdapter().queryable_fields(Member)
    assert fields["id"].semantic_type is SemanticType.ID
    assert fields["age"].semantic_type is SemanticType.INTEGER
    assert fields["age"].nullable
    assert fields["status"].semantic_type is SemanticType.ENUM
    assert fields["status"].enum_values == ("active", "pending", "banned")
    assert fields["location"].semantic_type is SemanticType.COORDINATES
    assert fields["team"].cardinality is Cardinality.ONE
    assert fields["articles"].is_to_many
    assert fields["articles"].related is Article
    assert [f.name for f in fields.associations] == ["team", "articles"]
    assert "team" not in [f.name for f in fields.scalars]


def test_pydantic_field_map() -> None:
    fields = MemoryAdapter().queryable_fields(Product)
    assert fields["category_id"].semantic_type is SemanticType.ID
    assert fields["price"].semantic_type is SemanticType.FLOAT
    assert fields["tags"].semantic_type is SemanticType.ARRAY_STRING


def test_field_map_is_cached() -> None:
    adapter = MemoryAdapter()
    assert adapter.queryable_fields(Member) is adapter.queryable_fields(Member)


# -- scalar filters ------------------------------------------------------------


def test_comparisons_skip_missing_values(
    compiler: QueryCompiler, members: list[Member]
) -> None:
    assert run(compiler, members, {"age": {"_gte": 18}}) == [1, 4]
    assert run(compiler, members, {"age": {"_lt": 18}}) == [2]


def test_not_is_plain_negation(compiler: QueryCompiler, members: list[Member]) -> None:
    assert run(compiler, members, {"_not": {"age": {"_gte": 18}}}) == [2, 3]


def test_enum_values_compare_by_value(
    compiler: QueryCompiler, members: list[Member]
) -> None:
    assert run(compiler, members, {"status": {"_eq": "active"}}) == [1, 4]
    assert run(compiler, members, {"status": {"_in": ["pending", "banned"]}}) == [2, 3]
    assert run(compiler, members, {"status": {"_nin": ["active"]}}) == [2, 3]


def test_empty_sets(compiler: QueryCompiler, members: list[Member]) -> None:
    assert run(compiler, members, {"status": {"_in": []}}) == []
    assert run(compiler, members, {"status": {"_nin": []}}) == [1, 2, 3, 4]


def test_patterns(compiler: QueryCompiler, members: list[Member]) -> None:
    assert run(compiler, members, {"name": {"_like": "A%"}}) == [1]
    assert run(compiler, members, {"name": {"_ilike": "%e"}}) == [1, 4]
    assert run(compiler, members, {"name": {"_istarts_with": "c"}}) == [3]
    assert run(compiler, members, {"name": {"_nilike": "%o%"}}) == [1, 4]
    assert run(compiler, members, {"email": {"_ends_with": "corp.io"}}) == [3]


def test_pattern_metacharacters_are_literal(compiler: QueryCompiler) -> None:
    query = compiler.compile(MemoryQuery(Article), {"title": {"_contains": "5%"}}, Article)
    articles = [Article(id=1, title="Save 5% today"), Article(id=2, title="Save 50")]
    assert ids(query.apply(articles)) == [1]


def test_null_tests(compiler: QueryCompiler, members: list[Member]) -> None:
    assert run(compiler, members, {"email": {"_is_null": True}}) == [2, 4]
    assert run(compiler, members, {"email": {"_eq": None}}) == [2, 4]
    assert run(compiler, members, {"email": {"_ne": None}}) == [1, 3]


def test_combinators(compiler: QueryCompiler, members: list[Member]) -> None:
    where = {
        "_or": [
            {"age": {"_gt": 50}},
            {"_and": [{"status": {"_eq": "pending"}}, {"name": {"_eq": "bob"}}]},
        ]
    }
    assert run(compiler, members, where) == [2, 4]


def test_unsupported_operator_is_rejected(compiler: QueryCompiler) -> None:
    with pytest.raises(UnsupportedOperatorError) as exc_info:
        compiler.compile(MemoryQuery(Member), {"age": {"_ilike": "3%"}}, Member)
    assert exc_info.value.adapter == "memory"


def test_relative_periods_are_not_evaluated_in_memory(compiler: QueryCompiler) -> None:
    with pytest.raises(UnsupportedOperatorError):
        compiler.compile(
            MemoryQuery(Article),
            {"published_at": {"_period": {"direction": "last", "unit": "day"}}},
            Article,
        )


def test_between(compiler: QueryCompiler) -> None:
    articles = [
        Article(id=1, title="a", published_at=datetime(2024, 1, 5)),
        Article(id=2, title="b", published_at=datetime(2024, 3, 1)),
        Article(id=3, title="c"),
    ]
    query = compiler.compile(
        MemoryQuery(Article),
        {"published_at": {"_between": [datetime(2024, 1, 1), datetime(2024, 2, 1)]}},
        Article,
    )
    assert ids(query.apply(articles)) == [1]


def test_iso_string_operands_compare_as_datetimes(compiler: QueryCompiler) -> None:
    articles = [
        Article(id=1, title="a", published_at=datetime(2024, 1, 5)),
        Article(id=2, title="b", published_at=datetime(2024, 3, 1)),
        Article(id=3, title="c"),
    ]
    after = compiler.compile(
        MemoryQuery(Article),
        {"published_at": {"_gte": "2024-02-01T00:00:00"}},
        Article,
    )
    assert ids(after.apply(articles)) == [2]
    within = compiler.compile(
        MemoryQuery(Article),
        {"published_at": {"_between": ["2024-01-01", "2024-02-01T00:00:00"]}},
        Article,
    )
    assert ids(within.apply(articles)) == [1]


def test_numeric_operand_strings_are_converted(
    compiler: QueryCompiler, members: list[Member]
) -> None:
    assert run(compiler, members, {"age": {"_gte": "18"}}) == [1, 4]


def test_unconvertible_range_operand_is_rejected(compiler: QueryCompiler) -> None:
    with pytest.raises(InvalidValueError) as exc_info:
        compiler.compile(MemoryQuery(Member), {"age": {"_gt": "abc"}}, Member)
    assert exc_info.value.path == "where.age"
    assert exc_info.value.operator == "_gt"


def test_dict_items_are_filtered_by_key(compiler: QueryCompiler) -> None:
    query = compiler.compile(MemoryQuery(Member), {"age": {"_gt": 18}}, Member)
    rows = [{"id": 1, "age": 30}, {"id": 2, "age": None}, {"id": 3}]
    assert query.apply(rows) == [{"id": 1, "age": 30}]


def test_pydantic_models(compiler: QueryCompiler) -> None:
    products = [
        Product(id=1, name="pen", price=1.5, tags=["office"]),
        Product(id=2, name="desk", price=120.0, category_id=7),
    ]
    query = compiler.compile(
        MemoryQuery(Product), {"price": {"_lt": 10}, "tags": {"_includes": "office"}}, Product
    )
    assert ids(query.apply(products)) == [1]


# -- arrays --------------------------------------------------------------------


@pytest.mark.parametrize(
    ("where", "expected"),
    [
        ({"tags": {"_includes": "python"}}, [1, 2]),
        ({"tags": {"_excludes": "python"}}, [3, 4]),
        ({"tags": {"_includes_all": ["python", "tips"]}}, [1]),
        ({"tags": {"_includes_any": ["sql", "tips"]}}, [1, 3]),
        ({"tags": {"_excludes_all": ["sql", "tips"]}}, [2, 4]),
        ({"tags": {"_excludes_any": ["python", "tips"]}}, [2, 3, 4]),
        ({"tags": {"_includes_all": []}}, [1, 2, 3, 4]),
        ({"tags": {"_is_empty": True}}, [4]),
    ],
)
def test_array_operators(
    compiler: QueryCompiler, where: dict[str, Any], expected: list[int]
) -> None:
    articles = [
        Article(id=1, title="a", tags=["python", "tips"]),
        Article(id=2, title="b", tags=["python"]),
        Article(id=3, title="c", tags=["sql"]),
        Article(id=4, title="d"),
    ]
    query = compiler.compile(MemoryQuery(Article), where, Article)
    assert ids(query.apply(articles)) == expected


# -- associations --------------------------------------------------------------


def test_to_one_association(compiler: QueryCompiler, members: list[Member]) -> None:
    assert run(compiler, members, {"team": {"name": {"_eq": "Acme"}}}) == [2, 4]
    assert run(compiler, members, {"team": {"parent": {"name": {"_eq": "Acme"}}}}) == [1]


def test_to_one_negation_keeps_rows_without_a_related_object(
    compiler: QueryCompiler, members: list[Member]
) -> None:
    # no team: the inner filter is false, so its negation holds
    assert run(compiler, members, {"_not": {"team": {"name": {"_eq": "Acme"}}}}) == [1, 3]


def test_to_many_association_matches_any(
    compiler: QueryCompiler, members: list[Member]
) -> None:
    assert run(compiler, members, {"articles": {"title": {"_eq": "Python tips"}}}) == [1, 2]
    assert run(compiler, members, {"articles": {"tags": {"_includes": "sql"}}}) == [1]


def test_to_many_match_all_is_vacuous_on_empty(
    compiler: QueryCompiler, members: list[Member]
) -> None:
    result = run(
        compiler,
        members,
        {"articles": {"title": {"_eq": "Python tips"}}},
        match_all=["articles"],
    )
    assert result == [2, 3, 4]


def test_exists(compiler: QueryCompiler, members: list[Member]) -> None:
    assert run(compiler, members, {"articles": {"_exists": True}}) == [1, 2]
    assert run(compiler, members, {"articles": {"_exists": False}}) == [3, 4]
    assert run(compiler, members, {"team": {"_exists": False}}) == [3]


# -- coordinates ---------------------------------------------------------------


def test_distance(compiler: QueryCompiler, members: list[Member]) -> None:
    where = {"location": {"_st_dwithin": {"point": BERLIN, "distance": 50, "unit": "km"}}}
    assert run(compiler, members, where) == [1, 4]


def test_bounding_box(compiler: QueryCompiler, members: list[Member]) -> None:
    where = {
        "location": {
            "_st_within_bounding_box": {
                "sw": {"lat": 52, "lng": 13},
                "ne": {"lat": 53, "lng": 14},
            }
        }
    }
    assert run(compiler, members, where) == [1, 4]


def test_point_equality(compiler: QueryCompiler, members: list[Member]) -> None:
    assert run(compiler, members, {"location": {"_eq": BERLIN}}) == [1]
    assert run(compiler, members, {"location": {"_ne": BERLIN}}) == [2, 4]


def test_malformed_point_fails_at_compile_time(compiler: QueryCompiler) -> None:
    with pytest.raises(InvalidValueError) as exc_info:
        compiler.compile(
            MemoryQuery(Member),
            {"location": {"_st_dwithin": {"point": {"lat": 91, "lng": 0}, "distance": 1}}},
            Member,
        )
    assert exc_info.value.path == "where.location"


# -- ordering ------------------------------------------------------------------


def test_default_null_placement(
    order_compiler: OrderCompiler, members: list[Member]
) -> None:
    assert ordered(order_compiler, members, [{"age": "asc"}]) == [2, 1, 4, 3]
    assert ordered(order_compiler, members, [{"age": "desc"}]) == [3, 4, 1, 2]
    assert ordered(order_compiler, members, [{"age": "desc_nulls_last"}]) == [4, 1, 2, 3]
    assert ordered(order_compiler, members, [{"age": "asc_nulls_first"}]) == [3, 2, 1, 4]


def test_multiple_keys_are_stable(
    order_compiler: OrderCompiler, members: list[Member]
) -> None:
    order = [{"status": "asc"}, {"name": "desc"}]
    assert ordered(order_compiler, members, order) == [4, 1, 3, 2]


def test_priority_ordering(order_compiler: OrderCompiler, members: list[Member]) -> None:
    order = {"status": {"priority": ["banned", "active"]}}
    assert ordered(order_compiler, members, order) == [3, 1, 4, 2]


def test_geo_distance_ordering(
    order_compiler: OrderCompiler, members: list[Member]
) -> None:
    order = {"location": {"center": BERLIN}}
    assert ordered(order_compiler, members, order) == [1, 4, 2, 3]


def test_ordering_through_associations(
    order_compiler: OrderCompiler, members: list[Member]
) -> None:
    assert ordered(order_compiler, members, {"team": {"name": "asc"}}) == [2, 4, 1, 3]
    assert ordered(
        order_compiler, members, {"articles": {"title": "desc"}}, allow_to_many=["articles"]
    ) == [3, 4, 1, 2]
    with pytest.raises(NotOrderableError):
        ordered(order_compiler, members, {"articles": {"title": "desc"}})


def test_filter_then_order(
    compiler: QueryCompiler, order_compiler: OrderCompiler, members: list[Member]
) -> None:
    query = compiler.compile(MemoryQuery(Member), {"status": {"_eq": "active"}}, Member)
    query = order_compiler.compile(query, [{"age": "desc"}], Member)
    assert ids(query.apply(members)) == [4, 1]
