"""Tests for the QueryBuilder facade."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.dialects import postgresql

from cqrs_ddd_cql import QueryBuilder
from cqrs_ddd_cql.adapters import MemoryQuery
from cqrs_ddd_cql.complexity import AnalysisMethod, ComplexityOutcome
from cqrs_ddd_cql.config import ComplexitySettings, CQLSettings
from cqrs_ddd_cql.exceptions import QueryTooComplexError, UnauthorizedFieldError
from sample_models import Member, User


def pg(stmt: object) -> str:
    return str(
        stmt.compile(  # type: ignore[attr-defined]
            dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}
        )
    )


def strict_builder(limit: float) -> QueryBuilder:
    settings = CQLSettings(
        complexity=ComplexitySettings(max_complexity=limit, adaptive_limits=False)
    )
    return QueryBuilder(settings=settings)


def test_where_and_order_share_one_join() -> None:
    built = QueryBuilder().apply(
        select(User),
        User,
        where={"organization": {"name": {"_eq": "Acme"}}},
        order_by=[{"organization": {"name": "asc"}}],
        check_complexity=False,
    )
    rendered = pg(built.query)
    assert rendered.count("JOIN") == 1
    assert "ORDER BY organization.name ASC" in rendered
    assert built.decision is None
    assert not built.rejected


def test_allow_list_is_enforced() -> None:
    with pytest.raises(UnauthorizedFieldError):
        QueryBuilder().apply(
            select(User),
            User,
            where={"email": {"_eq": "x"}},
            allowed_fields=["name"],
        )


def test_bind_selects_the_dialect() -> None:
    engine = create_engine("sqlite://")
    built = QueryBuilder().apply(
        select(User).limit(10), User, where={"name": {"_ilike": "a%"}}, bind=engine
    )
    assert "NOCASE" in str(built.query.compile(engine))
    assert built.decision is not None
    assert built.decision.analysis.method is AnalysisMethod.HEURISTIC
    assert built.decision.outcome is ComplexityOutcome.ACCEPTED


def test_explicit_dialect_wins_over_bind() -> None:
    engine = create_engine("sqlite://")
    built = QueryBuilder().apply(
        select(User),
        User,
        where={"name": {"_ilike": "a%"}},
        dialect="postgresql",
        bind=engine,
        check_complexity=False,
    )
    assert "ILIKE" in pg(built.query)


def test_rejection_is_reported() -> None:
    built = strict_builder(5).apply(select(User), User, where={"age": {"_gt": 1}})
    assert built.rejected
    assert built.decision is not None
    assert built.decision.limit == 5.0


def test_rejection_can_raise() -> None:
    with pytest.raises(QueryTooComplexError) as exc_info:
        strict_builder(5).apply(
            select(User), User, where={"age": {"_gt": 1}}, raise_on_reject=True
        )
    err = exc_info.value
    assert err.limit == 5.0
    assert err.score > 5.0
    assert "Add a LIMIT clause to restrict the number of rows returned" in err.suggestions
    assert err.to_dict()["error"] == "QUERY_TOO_COMPLEX"


def test_disabled_by_settings() -> None:
    settings = CQLSettings(complexity=ComplexitySettings(enabled=False))
    built = QueryBuilder(settings=settings).apply(select(User), User)
    assert built.decision is None


def test_memory_queries(members: list[Member]) -> None:
    built = QueryBuilder().apply(
        MemoryQuery(Member),
        Member,
        where={"status": {"_eq": "active"}},
        order_by={"name": "desc"},
    )
    assert [m.name for m in built.query.apply(members)] == ["Dave", "Alice"]
    assert built.decision is not None
    assert not built.rejected


def test_step_methods() -> None:
    builder = QueryBuilder()
    stmt = builder.apply_where(select(User), {"age": {"_gt": 3}}, User)
    stmt = builder.apply_order_by(stmt, [{"age": "desc"}], User)
    rendered = pg(stmt)
    assert "WHERE users.age > 3" in rendered
    assert "ORDER BY users.age DESC" in rendered
