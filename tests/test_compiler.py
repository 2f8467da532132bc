"""Tests for filter compilation onto SQLAlchemy statements."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from cqrs_ddd_cql import CQLSettings, QueryCompiler, TypeRegistry
from cqrs_ddd_cql.adapters import build_default_adapter_registry
from cqrs_ddd_cql.ast import ExistsFilter, parse_filter
from cqrs_ddd_cql.compiler import authorize, unauthorized_fields
from cqrs_ddd_cql.exceptions import (
    AdapterUnavailableError,
    InvalidValueError,
    UnauthorizedFieldError,
    UnknownFieldError,
    UnsupportedOperatorError,
)
from cqrs_ddd_cql.operators import AdapterId
from sample_models import Member, Organization, User, UserDoc


def pg(stmt: Any) -> str:
    return str(
        stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True})
    )


def lite(stmt: Any) -> str:
    return str(
        stmt.compile(dialect=sqlite.dialect(), compile_kwargs={"literal_binds": True})
    )


# ---------------------------------------------------------------------------
# Basic compilation
# ---------------------------------------------------------------------------


def test_and_with_nested_or(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(
        select(User),
        {
            "age": {"_gte": 18},
            "_or": [{"status": {"_eq": "active"}}, {"status": {"_eq": "pending"}}],
        },
        User,
    )
    assert (
        "WHERE users.age >= 18 AND "
        "(users.status = 'active' OR users.status = 'pending')"
    ) in pg(stmt)


def test_empty_filter_returns_the_query_unchanged(compiler: QueryCompiler) -> None:
    query = select(User)
    assert compiler.compile(query, None, User) is query
    assert compiler.compile(query, {}, User) is query
    assert compiler.compile(query, {"_and": []}, User) is query


def test_empty_in_matches_nothing(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(select(User), {"age": {"_in": []}}, User)
    assert "WHERE false" in pg(stmt)


def test_empty_nin_matches_everything(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(select(User), {"age": {"_nin": []}}, User)
    assert "WHERE" not in pg(stmt)


def test_double_negation_cancels(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(
        select(User), {"_not": {"_not": {"age": {"_gt": 1}}}}, User
    )
    assert "WHERE users.age > 1" in pg(stmt)


def test_not_negates_the_comparison(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(select(User), {"_not": {"age": {"_gt": 1}}}, User)
    assert "WHERE users.age <= 1" in pg(stmt)


def test_accepts_a_parsed_tree(compiler: QueryCompiler) -> None:
    node = parse_filter({"name": {"_eq": "x"}})
    stmt = compiler.compile(select(User), node, User)
    assert "WHERE users.name = 'x'" in pg(stmt)


def test_exists_node_is_rejected_at_the_top(compiler: QueryCompiler) -> None:
    with pytest.raises(InvalidValueError) as exc_info:
        compiler.compile(select(User), ExistsFilter(True), User)
    assert exc_info.value.path == "where"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_unknown_field_suggests_close_names(compiler: QueryCompiler) -> None:
    with pytest.raises(UnknownFieldError) as exc_info:
        compiler.compile(select(User), {"stauts": {"_eq": "active"}}, User)
    err = exc_info.value
    assert err.suggestions == ["status"]
    assert err.path == "where.stauts"
    assert err.queryable_name == "User"


def test_errors_carry_the_payload_path(compiler: QueryCompiler) -> None:
    with pytest.raises(InvalidValueError) as exc_info:
        compiler.compile(select(User), {"_or": [{"age": {"_in": 5}}]}, User)
    assert exc_info.value.path == "where._or[0].age"


def test_nested_field_path(compiler: QueryCompiler) -> None:
    with pytest.raises(UnknownFieldError) as exc_info:
        compiler.compile(
            select(User), {"organization": {"nmae": {"_eq": "x"}}}, User
        )
    assert exc_info.value.path == "where.organization.nmae"
    assert exc_info.value.queryable_name == "Organization"


def test_operator_on_an_association_is_invalid(compiler: QueryCompiler) -> None:
    with pytest.raises(InvalidValueError, match="is an association"):
        compiler.compile(select(User), {"organization": {"_eq": 1}}, User)


def test_nested_object_on_a_column_is_invalid(compiler: QueryCompiler) -> None:
    with pytest.raises(InvalidValueError, match="not an association"):
        compiler.compile(select(User), {"age": {"years": {"_eq": 1}}}, User)


def test_unsupported_operator_for_type(compiler: QueryCompiler) -> None:
    with pytest.raises(UnsupportedOperatorError) as exc_info:
        compiler.compile(select(User), {"age": {"_ilike": "1%"}}, User)
    assert exc_info.value.field == "age"
    assert exc_info.value.adapter == "postgres"


# ---------------------------------------------------------------------------
# Allow-list
# ---------------------------------------------------------------------------


def test_unauthorized_fields_are_all_listed(compiler: QueryCompiler) -> None:
    with pytest.raises(UnauthorizedFieldError) as exc_info:
        compiler.compile(
            select(User),
            {"age": {"_gt": 1}, "name": {"_eq": "x"}, "email": {"_is_null": True}},
            User,
            allowed_fields=["age"],
        )
    assert exc_info.value.fields == ["email", "name"]


def test_none_denies_everything(compiler: QueryCompiler) -> None:
    with pytest.raises(UnauthorizedFieldError):
        compiler.compile(select(User), {"age": {"_gt": 1}}, User, allowed_fields="none")


def test_granting_an_association_grants_its_fields(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(
        select(User),
        {"organization": {"name": {"_eq": "Acme"}}},
        User,
        allowed_fields=["organization"],
    )
    assert "organization.name = 'Acme'" in pg(stmt)


def test_granting_a_nested_field_grants_the_association() -> None:
    node = parse_filter(
        {"organization": {"name": {"_eq": "x"}, "country": {"_eq": "DE"}}}
    )
    assert unauthorized_fields(node, ["organization.name"]) == ["organization.country"]
    assert unauthorized_fields(node, "all") == []
    authorize(node, ["organization.name", "organization.country"])


# ---------------------------------------------------------------------------
# Associations
# ---------------------------------------------------------------------------


def test_to_one_association_is_joined_once(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(
        select(User),
        {
            "organization": {"name": {"_eq": "Acme"}},
            "_or": [{"organization": {"country": {"_eq": "DE"}}}, {"age": {"_gt": 1}}],
        },
        User,
    )
    sql = pg(stmt)
    assert "LEFT OUTER JOIN organizations AS organization" in sql
    assert sql.count("JOIN") == 1
    assert "organization.name = 'Acme'" in sql
    assert "organization.country = 'DE'" in sql


def test_self_referential_path_gets_its_own_alias(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(
        select(User), {"organization": {"parent": {"name": {"_eq": "Root"}}}}, User
    )
    sql = pg(stmt)
    assert "organizations AS organization__parent" in sql
    assert "organization__parent.name = 'Root'" in sql


def test_to_many_is_an_existence_test(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(select(User), {"posts": {"title": {"_eq": "x"}}}, User)
    sql = pg(stmt)
    assert "EXISTS (SELECT 1" in sql
    assert "title = 'x'" in sql
    assert "JOIN" not in sql


def test_match_all_requires_every_related_row(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(
        select(User),
        {"posts": {"title": {"_eq": "x"}}},
        User,
        match_all=["posts"],
    )
    sql = pg(stmt)
    assert "NOT (EXISTS (SELECT 1" in sql
    assert "title != 'x'" in sql


def test_association_below_to_many_stays_in_the_subquery(
    compiler: QueryCompiler,
) -> None:
    stmt = compiler.compile(
        select(Organization),
        {"parent": {"name": {"_eq": "Root"}}},
        Organization,
    )
    assert "LEFT OUTER JOIN organizations AS parent" in pg(stmt)

    stmt = compiler.compile(
        select(User), {"posts": {"author": {"name": {"_eq": "x"}}}}, User
    )
    sql = pg(stmt)
    assert "JOIN" not in sql
    assert sql.count("EXISTS") == 2


def test_exists_on_a_joined_association(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(select(User), {"organization": {"_exists": True}}, User)
    assert "organization.id IS NOT NULL" in pg(stmt)
    stmt = compiler.compile(select(User), {"organization": {"_exists": False}}, User)
    assert "organization.id IS NULL" in pg(stmt)


def test_exists_on_a_to_many_association(compiler: QueryCompiler) -> None:
    stmt = compiler.compile(select(User), {"posts": {"_exists": True}}, User)
    sql = pg(stmt)
    assert "EXISTS (SELECT 1" in sql
    assert "NOT (EXISTS" not in sql
    stmt = compiler.compile(select(User), {"posts": {"_exists": False}}, User)
    assert "NOT (EXISTS (SELECT 1" in pg(stmt)


# ---------------------------------------------------------------------------
# Settings and overrides
# ---------------------------------------------------------------------------


def test_configured_in_clause_limit_wins() -> None:
    compiler = QueryCompiler(settings=CQLSettings(max_in_clause_items={"sqlite": 2}))
    with pytest.raises(InvalidValueError, match="at most 2"):
        compiler.compile(
            select(User), {"age": {"_in": [1, 2, 3]}}, User, dialect="sqlite"
        )
    # other adapters keep their own limit
    compiler.compile(select(User), {"age": {"_in": [1, 2, 3]}}, User, dialect="postgres")


def test_field_overrides_switch_the_operator_set(compiler: QueryCompiler) -> None:
    with pytest.raises(UnsupportedOperatorError) as exc_info:
        compiler.compile(
            select(User),
            {"name": {"_ilike": "a%"}},
            User,
            field_overrides={"name": "enum"},
        )
    assert exc_info.value.semantic_type == "enum"

    with pytest.raises(UnsupportedOperatorError):
        compiler.compile(
            select(User),
            {"organization": {"country": {"_ilike": "d%"}}},
            User,
            field_overrides={"organization.country": "enum"},
        )


def test_unknown_override_field(compiler: QueryCompiler) -> None:
    with pytest.raises(UnknownFieldError):
        compiler.compile(
            select(User),
            {"name": {"_eq": "x"}},
            User,
            field_overrides={"nickname": "enum"},
        )


def test_optimizer_moves_equality_before_ranges() -> None:
    where = {"age": {"_gt": 3}, "status": {"_eq": "active"}}
    plain = lite(QueryCompiler().compile(select(User), where, User, dialect="sqlite"))
    assert plain.index("users.age") < plain.index("users.status")

    optimized = lite(
        QueryCompiler(settings=CQLSettings(optimize_filters=True)).compile(
            select(User), where, User, dialect="sqlite"
        )
    )
    assert optimized.index("users.status") < optimized.index("users.age")


# ---------------------------------------------------------------------------
# Adapter resolution
# ---------------------------------------------------------------------------


def test_default_sql_dialect_setting() -> None:
    compiler = QueryCompiler(settings=CQLSettings(default_sql_dialect="sqlite"))
    assert compiler.resolve_adapter(User).adapter_id is AdapterId.SQLITE


def test_dialect_argument_accepts_engines(compiler: QueryCompiler) -> None:
    engine = SimpleNamespace(dialect=SimpleNamespace(name="mysql"))
    assert compiler.resolve_adapter(User, engine).adapter_id is AdapterId.MYSQL
    assert compiler.resolve_adapter(User, "mariadb").adapter_id is AdapterId.MYSQL
    with pytest.raises(AdapterUnavailableError):
        compiler.resolve_adapter(User, "oracle")


def test_non_sql_queryables(compiler: QueryCompiler) -> None:
    assert compiler.resolve_adapter(UserDoc).adapter_id is AdapterId.ELASTICSEARCH
    assert compiler.resolve_adapter(Member).adapter_id is AdapterId.MEMORY
    with pytest.raises(AdapterUnavailableError):
        compiler.resolve_adapter(object)


def test_type_binding_picks_the_adapter() -> None:
    types = TypeRegistry()
    types.register_queryable(User, AdapterId.SQLITE)
    compiler = QueryCompiler(adapters=build_default_adapter_registry(types=types))
    assert compiler.resolve_adapter(User).adapter_id is AdapterId.SQLITE
    stmt = compiler.compile(select(User), {"name": {"_ilike": "a%"}}, User)
    assert "COLLATE" in lite(stmt)
