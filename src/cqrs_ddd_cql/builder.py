"""
One-call facade over the query compiler, order compiler and complexity
analyzer.

Usage::

    builder = QueryBuilder(settings=CQLSettings(default_sql_dialect="postgres"))
    built = builder.apply(
        select(User),
        User,
        where={"age": {"_gte": 18}},
        order_by=[{"organization": {"name": "asc"}}],
        allowed_fields=["age", "organization"],
        bind=engine,
    )
    rows = session.execute(built.query).scalars().all()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .compiler import AllowedFields, QueryCompiler
from .complexity import ComplexityAnalyzer, ComplexityDecision, ComplexityOutcome
from .config import CQLSettings
from .exceptions import QueryTooComplexError
from .ordering import OrderCompiler

if TYPE_CHECKING:
    from .operators import SemanticType

logger = logging.getLogger("cqrs_ddd.cql.builder")


@dataclass(frozen=True)
class BuiltQuery:
    """Compiled query plus the complexity decision, when one was made."""

    query: Any
    decision: ComplexityDecision | None = None

    @property
    def rejected(self) -> bool:
        return (
            self.decision is not None
            and self.decision.outcome is ComplexityOutcome.TOO_COMPLEX
        )


class QueryBuilder:
    """Applies where and order payloads and optionally admits the result."""

    def __init__(
        self,
        compiler: QueryCompiler | None = None,
        order_compiler: OrderCompiler | None = None,
        analyzer: ComplexityAnalyzer | None = None,
        settings: CQLSettings | None = None,
    ) -> None:
        self.settings = settings or CQLSettings()
        self.compiler = compiler or QueryCompiler(settings=self.settings)
        self.order_compiler = order_compiler or OrderCompiler(
            self.compiler.adapters, settings=self.settings
        )
        self.analyzer = analyzer or ComplexityAnalyzer(self.settings.complexity)

    def apply_where(
        self,
        query: Any,
        where: Mapping[str, Any] | None,
        queryable: Any,
        *,
        allowed_fields: AllowedFields = "all",
        match_all: Iterable[str] = frozenset(),
        field_overrides: Mapping[str, SemanticType | str] | None = None,
        dialect: Any = None,
    ) -> Any:
        return self.compiler.compile(
            query,
            where,
            queryable,
            allowed_fields=allowed_fields,
            match_all=match_all,
            field_overrides=field_overrides,
            dialect=dialect,
        )

    def apply_order_by(
        self,
        query: Any,
        order_by: Any,
        queryable: Any,
        *,
        allow_to_many: Iterable[str] = (),
        dialect: Any = None,
    ) -> Any:
        return self.order_compiler.compile(
            query, order_by, queryable, allow_to_many=allow_to_many, dialect=dialect
        )

    def apply(
        self,
        query: Any,
        queryable: Any,
        *,
        where: Mapping[str, Any] | None = None,
        order_by: Any = None,
        allowed_fields: AllowedFields = "all",
        match_all: Iterable[str] = frozenset(),
        allow_to_many: Iterable[str] = (),
        field_overrides: Mapping[str, SemanticType | str] | None = None,
        dialect: Any = None,
        bind: Any = None,
        check_complexity: bool | None = None,
        raise_on_reject: bool = False,
    ) -> BuiltQuery:
        """
        Compile *where* then *order_by* onto *query* and run the complexity
        check.

        *bind* (engine, connection or session) feeds ``EXPLAIN`` and load
        sampling, and selects the SQL dialect when *dialect* is not given.
        The check runs when ``settings.complexity.enabled`` unless
        *check_complexity* overrides it.

        Raises:
            QueryTooComplexError: The query was rejected and
                *raise_on_reject* is set.
        """
        sql_dialect = dialect if dialect is not None else bind
        adapter = self.compiler.resolve_adapter(queryable, sql_dialect)
        compiled = self.compiler.compile(
            query,
            where,
            queryable,
            allowed_fields=allowed_fields,
            match_all=match_all,
            adapter=adapter,
            field_overrides=field_overrides,
        )
        compiled = self.order_compiler.compile(
            compiled, order_by, queryable, allow_to_many=allow_to_many, adapter=adapter
        )

        enabled = (
            self.settings.complexity.enabled if check_complexity is None else check_complexity
        )
        if not enabled:
            return BuiltQuery(compiled)

        decision = self.analyzer.check_complexity(compiled, bind)
        built = BuiltQuery(compiled, decision)
        if built.rejected and raise_on_reject:
            raise QueryTooComplexError(
                decision.analysis.complexity_score,
                decision.limit,
                list(decision.analysis.suggestions),
            )
        return built
