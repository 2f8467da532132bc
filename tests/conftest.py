"""Shared fixtures for cqrs-ddd-cql tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
from sqlalchemy.engine import Connection

from cqrs_ddd_cql import OrderCompiler, QueryCompiler
from cqrs_ddd_cql.values import GeoPoint
from sample_models import Article, Member, Status, Team


@pytest.fixture
def compiler() -> QueryCompiler:
    """Compiler over the default adapters (Postgres for mapped classes)."""
    return QueryCompiler()


@pytest.fixture
def order_compiler(compiler: QueryCompiler) -> OrderCompiler:
    return OrderCompiler(compiler.adapters)


@pytest.fixture
def members() -> list[Member]:
    root = Team(id=1, name="Acme")
    labs = Team(id=2, name="Acme Labs", parent=root)
    return [
        Member(
            id=1,
            name="Alice",
            age=34,
            status=Status.ACTIVE,
            email="alice@example.com",
            team=labs,
            articles=[
                Article(id=10, title="Python tips", tags=["python", "tips"]),
                Article(id=11, title="SQL basics", tags=["sql"]),
            ],
            location=GeoPoint(52.52, 13.405),
        ),
        Member(
            id=2,
            name="bob",
            age=17,
            status=Status.PENDING,
            team=root,
            articles=[Article(id=12, title="Python tips", tags=["python"])],
            location=GeoPoint(48.137, 11.575),
        ),
        Member(id=3, name="Carol", age=None, status=Status.BANNED, email="carol@corp.io"),
        Member(
            id=4,
            name="Dave",
            age=52,
            status=Status.ACTIVE,
            team=root,
            location=GeoPoint(52.4, 13.05),
        ),
    ]


def _result(value: Any) -> MagicMock:
    result = MagicMock()
    result.scalar.return_value = value
    result.all.return_value = value
    result.first.return_value = value
    return result


@pytest.fixture
def fake_connection() -> Callable[..., MagicMock]:
    """
    Build a ``Connection`` double answering ``execute(text(sql))`` from a
    ``{sql: value}`` map. Exceptions in the map are raised; unknown SQL fails.
    """

    def factory(dialect: Any, responses: dict[str, Any] | None = None) -> MagicMock:
        answers = responses or {}
        conn = MagicMock(spec=Connection)
        conn.dialect = dialect

        def execute(statement: Any, *args: Any, **kwargs: Any) -> MagicMock:
            sql = str(statement)
            if sql not in answers:
                raise RuntimeError(f"unexpected statement: {sql}")
            answer = answers[sql]
            if isinstance(answer, Exception):
                raise answer
            return _result(answer)

        conn.execute.side_effect = execute
        return conn

    return factory
