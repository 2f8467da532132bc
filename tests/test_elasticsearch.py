"""Tests for the Elasticsearch query DSL adapter."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from cqrs_ddd_cql import OrderCompiler, QueryCompiler
from cqrs_ddd_cql.adapters import ElasticsearchAdapter, SearchQuery
from cqrs_ddd_cql.adapters.elasticsearch import MATCH_ALL, MATCH_NONE
from cqrs_ddd_cql.adapters.elasticsearch.operators import (
    current_period_bounds,
    like_to_wildcard,
)
from cqrs_ddd_cql.exceptions import NotOrderableError, UnsupportedOperatorError
from cqrs_ddd_cql.values import PeriodUnit
from sample_models import UserDoc


def search(compiler: QueryCompiler, where: dict[str, Any], **kwargs: Any) -> SearchQuery:
    return compiler.compile(SearchQuery.for_document(UserDoc), where, UserDoc, **kwargs)


def filters(compiler: QueryCompiler, where: dict[str, Any], **kwargs: Any) -> list[Any]:
    return search(compiler, where, **kwargs).filters


def fixed_clock(month: int) -> ElasticsearchAdapter:
    return ElasticsearchAdapter(
        clock=lambda: datetime(2024, month, 10, 12, 0, tzinfo=timezone.utc)
    )


# -- search body ---------------------------------------------------------------


def test_empty_search_body() -> None:
    query = SearchQuery.for_document(UserDoc)
    assert query.index == "users"
    assert query.body == {
        "query": {"bool": {"must": [], "must_not": [], "should": [], "filter": []}}
    }
    assert query.sort == []


def test_compile_does_not_mutate_the_input(compiler: QueryCompiler) -> None:
    original = SearchQuery.for_document(UserDoc)
    compiled = compiler.compile(original, {"name": {"_eq": "x"}}, UserDoc)
    assert original.filters == []
    assert compiled.to_dict() == {
        "index": "users",
        "body": {
            "query": {
                "bool": {
                    "must": [],
                    "must_not": [],
                    "should": [],
                    "filter": [{"term": {"name": "x"}}],
                }
            }
        },
    }


# -- standard, set and null ---------------------------------------------------


def test_equality(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"name": {"_eq": "x"}}) == [{"term": {"name": "x"}}]
    assert filters(compiler, {"name": {"_ne": "x"}}) == [
        {"bool": {"must_not": [{"term": {"name": "x"}}]}}
    ]
    assert filters(compiler, {"email": {"_eq": None}}) == [
        {"bool": {"must_not": [{"exists": {"field": "email"}}]}}
    ]


def test_ranges_are_anded(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"age": {"_gte": 18, "_lt": 65}}) == [
        {
            "bool": {
                "filter": [
                    {"range": {"age": {"gte": 18}}},
                    {"range": {"age": {"lt": 65}}},
                ]
            }
        }
    ]


def test_sets(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"status": {"_in": ["active", "banned"]}}) == [
        {"terms": {"status": ["active", "banned"]}}
    ]
    assert filters(compiler, {"status": {"_nin": ["banned"]}}) == [
        {"bool": {"must_not": [{"terms": {"status": ["banned"]}}]}}
    ]


def test_empty_sets(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"status": {"_in": []}}) == [MATCH_NONE]
    assert filters(compiler, {"status": {"_nin": []}}) == []


def test_is_null(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"email": {"_is_null": False}}) == [
        {"exists": {"field": "email"}}
    ]


# -- strings -------------------------------------------------------------------


def test_like_patterns_become_wildcards(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"name": {"_ilike": "Al%"}}) == [
        {"wildcard": {"name": {"value": "Al*", "case_insensitive": True}}}
    ]
    assert filters(compiler, {"name": {"_like": "a_c"}}) == [
        {"wildcard": {"name": {"value": "a?c"}}}
    ]


def test_wildcard_metacharacters_are_escaped() -> None:
    assert like_to_wildcard("what?%") == "what\\?*"


def test_substring_operators(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"name": {"_starts_with": "Al"}}) == [
        {"prefix": {"name": {"value": "Al"}}}
    ]
    assert filters(compiler, {"name": {"_icontains": "li"}}) == [
        {"wildcard": {"name": {"value": "*li*", "case_insensitive": True}}}
    ]


def test_full_text(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"name": {"_match": "alice smith"}}) == [
        {"match": {"name": {"query": "alice smith"}}}
    ]
    assert filters(compiler, {"name": {"_fuzzy": "alise"}}) == [
        {"fuzzy": {"name": {"value": "alise", "fuzziness": "AUTO"}}}
    ]


def test_full_text_is_search_engine_only(compiler: QueryCompiler) -> None:
    from sqlalchemy import select

    from sample_models import User

    with pytest.raises(UnsupportedOperatorError):
        compiler.compile(select(User), {"name": {"_match": "x"}}, User)


# -- temporal ------------------------------------------------------------------


def test_relative_period_uses_date_math(compiler: QueryCompiler) -> None:
    assert filters(
        compiler,
        {"created_at": {"_period": {"direction": "last", "unit": "day", "count": 2}}},
    ) == [{"range": {"created_at": {"gte": "now-2d", "lte": "now"}}}]
    assert filters(
        compiler,
        {"created_at": {"_period": {"direction": "next", "unit": "quarter"}}},
    ) == [{"range": {"created_at": {"gte": "now", "lte": "now+3M"}}}]


def test_between(compiler: QueryCompiler) -> None:
    assert filters(
        compiler, {"created_at": {"_between": ["2024-01-01", "2024-02-01"]}}
    ) == [{"range": {"created_at": {"gte": "2024-01-01", "lte": "2024-02-01"}}}]


@pytest.mark.parametrize(
    ("month", "bounds"),
    [
        (1, ("now/M", "now/M+3M")),
        (5, ("now/M-1M", "now/M-1M+3M")),
        (9, ("now/M-2M", "now/M-2M+3M")),
    ],
)
def test_current_quarter_uses_the_clock(
    compiler: QueryCompiler, month: int, bounds: tuple[str, str]
) -> None:
    result = filters(
        compiler,
        {"created_at": {"_current_period": {"unit": "quarter"}}},
        adapter=fixed_clock(month),
    )
    assert result == [{"range": {"created_at": {"gte": bounds[0], "lt": bounds[1]}}}]


def test_current_period_bounds() -> None:
    now = datetime(2024, 5, 10, tzinfo=timezone.utc)
    assert current_period_bounds(PeriodUnit.MONTH, now) == ("now/M", "now+1M/M")
    assert current_period_bounds(PeriodUnit.DAY, now) == ("now/d", "now+1d/d")


# -- arrays --------------------------------------------------------------------


def test_arrays(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"tags": {"_includes": "a"}}) == [{"term": {"tags": "a"}}]
    assert filters(compiler, {"tags": {"_includes_all": ["a", "b"]}}) == [
        {"bool": {"filter": [{"term": {"tags": "a"}}, {"term": {"tags": "b"}}]}}
    ]
    assert filters(compiler, {"tags": {"_includes_any": ["a", "b"]}}) == [
        {"terms": {"tags": ["a", "b"]}}
    ]
    assert filters(compiler, {"tags": {"_is_empty": True}}) == [
        {"bool": {"must_not": [{"exists": {"field": "tags"}}]}}
    ]


def test_empty_array_operands(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"tags": {"_includes_all": []}}) == []
    assert filters(compiler, {"tags": {"_excludes_all": []}}) == []
    assert filters(compiler, {"tags": {"_includes_any": []}}) == [MATCH_NONE]


# -- geo -----------------------------------------------------------------------


def test_geo_distance(compiler: QueryCompiler) -> None:
    assert filters(
        compiler,
        {
            "location": {
                "_st_dwithin": {"point": {"lat": 1, "lng": 2}, "distance": 5, "unit": "km"}
            }
        },
    ) == [{"geo_distance": {"distance": "5000.0m", "location": {"lat": 1.0, "lon": 2.0}}}]


def test_point_equality_is_a_degenerate_box(compiler: QueryCompiler) -> None:
    point = {"lat": 1.0, "lon": 2.0}
    assert filters(compiler, {"location": {"_eq": {"lat": 1, "lng": 2}}}) == [
        {"geo_bounding_box": {"location": {"top_left": point, "bottom_right": point}}}
    ]


def test_bounding_box(compiler: QueryCompiler) -> None:
    assert filters(
        compiler,
        {
            "location": {
                "_st_within_bounding_box": {
                    "sw": {"lat": 10, "lng": 20},
                    "ne": {"lat": 30, "lng": 40},
                }
            }
        },
    ) == [
        {
            "geo_bounding_box": {
                "location": {
                    "top_left": {"lat": 30.0, "lon": 20.0},
                    "bottom_right": {"lat": 10.0, "lon": 40.0},
                }
            }
        }
    ]


# -- composition ---------------------------------------------------------------


def test_or_and_not(compiler: QueryCompiler) -> None:
    assert filters(
        compiler,
        {"_or": [{"name": {"_eq": "a"}}, {"name": {"_eq": "b"}}]},
    ) == [
        {
            "bool": {
                "should": [{"term": {"name": "a"}}, {"term": {"name": "b"}}],
                "minimum_should_match": 1,
            }
        }
    ]
    assert filters(compiler, {"_not": {"age": {"_gt": 3}}}) == [
        {"bool": {"must_not": [{"range": {"age": {"gt": 3}}}]}}
    ]


def test_identity_clauses_simplify(compiler: QueryCompiler) -> None:
    assert filters(
        compiler, {"_or": [{"status": {"_in": []}}, {"name": {"_eq": "a"}}]}
    ) == [{"term": {"name": "a"}}]
    assert filters(compiler, {"_not": {"status": {"_in": []}}}) == []
    assert filters(
        compiler, {"status": {"_in": []}, "name": {"_eq": "a"}}
    ) == [MATCH_NONE]


# -- associations --------------------------------------------------------------


def test_object_field_is_prefixed(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"organization": {"name": {"_eq": "Acme"}}}) == [
        {"term": {"organization.name": "Acme"}}
    ]


def test_nested_field_is_wrapped(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"posts": {"title": {"_eq": "x"}}}) == [
        {"nested": {"path": "posts", "query": {"term": {"posts.title": "x"}}}}
    ]


def test_nested_match_all(compiler: QueryCompiler) -> None:
    assert filters(
        compiler, {"posts": {"title": {"_eq": "x"}}}, match_all=["posts"]
    ) == [
        {
            "bool": {
                "must_not": [
                    {
                        "nested": {
                            "path": "posts",
                            "query": {
                                "bool": {"must_not": [{"term": {"posts.title": "x"}}]}
                            },
                        }
                    }
                ]
            }
        }
    ]


def test_exists_filters(compiler: QueryCompiler) -> None:
    assert filters(compiler, {"posts": {"_exists": True}}) == [
        {"nested": {"path": "posts", "query": MATCH_ALL}}
    ]
    assert filters(compiler, {"posts": {"_exists": False}}) == [
        {"bool": {"must_not": [{"nested": {"path": "posts", "query": MATCH_ALL}}]}}
    ]
    assert filters(compiler, {"organization": {"_exists": True}}) == [
        {"exists": {"field": "organization"}}
    ]


# -- sorting -------------------------------------------------------------------


def sort_of(order_compiler: OrderCompiler, order: Any, **kwargs: Any) -> list[Any]:
    query = order_compiler.compile(SearchQuery.for_document(UserDoc), order, UserDoc, **kwargs)
    return query.sort


def test_plain_sort(order_compiler: OrderCompiler) -> None:
    assert sort_of(order_compiler, [{"name": "asc"}, {"age": "desc_nulls_last"}]) == [
        {"name": {"order": "asc"}},
        {"age": {"order": "desc", "missing": "_last"}},
    ]


def test_sort_through_object_and_nested_fields(order_compiler: OrderCompiler) -> None:
    assert sort_of(order_compiler, {"organization": {"name": "desc"}}) == [
        {"organization.name": {"order": "desc"}}
    ]
    assert sort_of(
        order_compiler, {"posts": {"title": "asc"}}, allow_to_many=["posts"]
    ) == [{"posts.title": {"order": "asc", "nested": {"path": "posts"}}}]
    with pytest.raises(NotOrderableError):
        sort_of(order_compiler, {"posts": {"title": "asc"}})


def test_geo_distance_sort(order_compiler: OrderCompiler) -> None:
    assert sort_of(
        order_compiler, {"location": {"center": {"lat": 1, "lng": 2}, "direction": "asc"}}
    ) == [
        {
            "_geo_distance": {
                "location": {"lat": 1.0, "lon": 2.0},
                "order": "asc",
                "unit": "m",
            }
        }
    ]


def test_priority_sort_uses_a_script(order_compiler: OrderCompiler) -> None:
    (term,) = sort_of(
        order_compiler, {"status": {"priority": ["active", "pending"], "direction": "asc"}}
    )
    script = term["_script"]
    assert script["type"] == "number"
    assert script["script"]["params"] == {
        "field": "status",
        "priority": ["active", "pending"],
    }
