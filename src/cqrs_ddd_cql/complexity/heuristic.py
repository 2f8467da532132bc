"""
Heuristic analysis for backends without a usable planner.

Every query shape (SQLAlchemy ``Select``, Elasticsearch search body, memory
query) is reduced to a :class:`QueryShape` and scored with fixed
per-feature penalties:

=========================  ==========================================
where                      5 per top-level predicate, plus OR +5,
                           AND +2, IN +3, raw text +10, subquery +15,
                           anything else +1
joins                      10 each
order by                   5 per term, +20 without a limit
pagination                 +30 offset over the threshold without limit,
                           +15 large offset with limit, +20 no limit
select                     +5 whole entities, +2 explicit columns
=========================  ==========================================

The total is capped at 100.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.sql import operators as sql_operators
from sqlalchemy.sql import visitors
from sqlalchemy.sql.elements import BinaryExpression, BooleanClauseList, Grouping, TextClause
from sqlalchemy.sql.selectable import Exists, Select

from ..adapters.elasticsearch import SearchQuery
from ..adapters.memory import MemoryQuery
from ..adapters.sql.utils import count_joins
from .analysis import AnalysisMethod, ComplexityAnalysis

logger = logging.getLogger("cqrs_ddd.cql.complexity")

OR_PENALTY = 5
AND_PENALTY = 2
IN_PENALTY = 3
TEXT_PENALTY = 10
SUBQUERY_PENALTY = 15
JOIN_PENALTY = 10
ORDER_TERM_PENALTY = 5
UNLIMITED_ORDER_PENALTY = 20
NO_LIMIT_PENALTY = 20
LARGE_OFFSET_NO_LIMIT_PENALTY = 30
LARGE_OFFSET_PENALTY = 15


@dataclass(frozen=True)
class QueryShape:
    """Backend-independent structural summary of a query."""

    predicates: tuple[int, ...] = ()
    joins: int = 0
    order_terms: int = 0
    limit: int | None = None
    offset: int | None = None
    whole_entity: bool = True


def score_shape(shape: QueryShape, *, large_offset: int = 1000) -> float:
    where = len(shape.predicates) * 5 + sum(shape.predicates)
    joins = shape.joins * JOIN_PENALTY
    order = shape.order_terms * ORDER_TERM_PENALTY
    if shape.limit is None and shape.order_terms:
        order += UNLIMITED_ORDER_PENALTY
    has_large_offset = shape.offset is not None and shape.offset > large_offset
    if has_large_offset and shape.limit is None:
        pagination = LARGE_OFFSET_NO_LIMIT_PENALTY
    elif has_large_offset:
        pagination = LARGE_OFFSET_PENALTY
    elif shape.limit is None:
        pagination = NO_LIMIT_PENALTY
    else:
        pagination = 0
    select = 5 if shape.whole_entity else 2
    return float(where + joins + order + pagination + select)


def _suggestions(shape: QueryShape) -> tuple[str, ...]:
    suggestions: list[str] = []
    if shape.limit is None:
        suggestions.append("Add a LIMIT clause to restrict the number of rows returned")
    if shape.joins > 2:
        suggestions.append(
            "Consider adding indexes on JOIN columns for better performance"
        )
    if shape.order_terms and shape.limit is None:
        suggestions.append(
            "Add a LIMIT clause when using ORDER BY, or add indexes on sort columns"
        )
    if len(shape.predicates) > 5:
        suggestions.append(
            "Complex WHERE conditions detected. Consider simplifying or adding indexes"
        )
    return tuple(suggestions)


def analyze_shape(shape: QueryShape, *, large_offset: int = 1000) -> ComplexityAnalysis:
    score = score_shape(shape, large_offset=large_offset)
    return ComplexityAnalysis(
        cost=score * 100.0,
        estimated_rows=min(shape.limit, 1000) if shape.limit is not None else 1000,
        complexity_score=min(score, 100.0),
        method=AnalysisMethod.HEURISTIC,
        suggestions=_suggestions(shape),
        details={
            "where_conditions": len(shape.predicates),
            "joins": shape.joins,
            "order_by_fields": shape.order_terms,
            "has_limit": shape.limit is not None,
            "has_offset": shape.offset is not None,
        },
    )


def analyze_heuristic(query: Any, *, large_offset: int = 1000) -> ComplexityAnalysis:
    """Heuristic analysis; fails open with a zero score when the query can't be read."""
    try:
        analysis = analyze_shape(shape_of(query), large_offset=large_offset)
    except Exception:
        logger.error("Failed heuristic analysis", exc_info=True)
        return ComplexityAnalysis.failed()
    logger.debug("Heuristic complexity analysis: %s", analysis)
    return analysis


def shape_of(query: Any) -> QueryShape:
    if isinstance(query, Select):
        return sql_shape(query)
    if isinstance(query, SearchQuery):
        return search_shape(query.body)
    if isinstance(query, MemoryQuery):
        return QueryShape(
            predicates=(1,) * len(query.predicates),
            order_terms=len(query.sort_keys),
        )
    if isinstance(query, Mapping):
        return search_shape(query)
    raise TypeError(f"Cannot analyze query of type {type(query).__name__}")


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------


def _int_or_none(value: Any) -> int | None:
    return value if isinstance(value, int) else None


def _sql_predicate_penalty(expr: Any) -> int:
    while isinstance(expr, Grouping):
        expr = expr.element
    if any(isinstance(e, Exists) for e in visitors.iterate(expr)):
        return SUBQUERY_PENALTY
    if isinstance(expr, TextClause):
        return TEXT_PENALTY
    if isinstance(expr, BooleanClauseList):
        return OR_PENALTY if expr.operator is sql_operators.or_ else AND_PENALTY
    if isinstance(expr, BinaryExpression) and expr.operator in (
        sql_operators.in_op,
        sql_operators.not_in_op,
    ):
        return IN_PENALTY
    return 1


def sql_shape(stmt: Select[Any]) -> QueryShape:
    clause = stmt.whereclause
    if clause is None:
        predicates: tuple[Any, ...] = ()
    elif isinstance(clause, BooleanClauseList) and clause.operator is sql_operators.and_:
        predicates = tuple(clause.clauses)
    else:
        predicates = (clause,)
    descriptions = stmt.column_descriptions
    whole_entity = bool(descriptions) and all(
        d.get("entity") is not None and d.get("expr") is d.get("entity")
        for d in descriptions
    )
    return QueryShape(
        predicates=tuple(_sql_predicate_penalty(p) for p in predicates),
        joins=count_joins(stmt),
        order_terms=len(stmt._order_by_clauses),
        limit=_int_or_none(stmt._limit),
        offset=_int_or_none(stmt._offset),
        whole_entity=whole_entity,
    )


# ---------------------------------------------------------------------------
# Search bodies
# ---------------------------------------------------------------------------

_TEXT_QUERIES = frozenset({"wildcard", "regexp", "fuzzy", "script"})


def _search_clause_penalty(clause: Mapping[str, Any]) -> int:
    kind = next(iter(clause), None)
    if kind in ("nested", "has_child", "has_parent"):
        return SUBQUERY_PENALTY
    if kind in _TEXT_QUERIES:
        return TEXT_PENALTY
    if kind == "bool":
        inner = clause["bool"]
        if inner.get("should"):
            return OR_PENALTY
        nested = [
            c
            for key in ("filter", "must", "must_not")
            for c in inner.get(key, ())
            if isinstance(c, Mapping)
        ]
        return max([AND_PENALTY, *(_search_clause_penalty(c) for c in nested)])
    if kind == "terms":
        return IN_PENALTY
    return 1


def search_shape(body: Mapping[str, Any]) -> QueryShape:
    root = body.get("query", {}).get("bool", {})
    clauses = [
        c
        for key in ("must", "must_not", "should", "filter")
        for c in root.get(key, ())
        if isinstance(c, Mapping)
    ]
    return QueryShape(
        predicates=tuple(_search_clause_penalty(c) for c in clauses),
        order_terms=len(body.get("sort", ())),
        limit=_int_or_none(body.get("size")),
        offset=_int_or_none(body.get("from")),
        whole_entity="_source" not in body,
    )
