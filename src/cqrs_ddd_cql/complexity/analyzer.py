"""
Complexity analyzer: estimate, cache, and admit or reject compiled queries.

``analyze`` picks the planner path for Postgres and MySQL binds and the
heuristic path for everything else (and whenever ``EXPLAIN`` fails).
``check_complexity`` compares the score against a limit that shrinks with
live database load::

    limit = base_limit * (1 - load_factor * load_reduction)

and returns a :class:`ComplexityDecision`: rejected above the limit, a
warning above ``warn_threshold * limit``, accepted otherwise. Rejection is a
result, not an exception.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from sqlalchemy.sql import Select

from ..adapters import adapter_id_for
from ..capabilities import connection_for
from ..config import ComplexitySettings
from ..exceptions import AdapterUnavailableError
from ..operators import AdapterId
from .analysis import (
    ComplexityAnalysis,
    ComplexityDecision,
    ComplexityOutcome,
    LoadMetrics,
    format_analysis,
)
from .cache import AnalysisCache, cache_key
from .events import ComplexityListeners, ComplexityMetrics, default_metrics
from .explain import explain_mysql, explain_postgres
from .heuristic import analyze_heuristic
from .load import load_metrics

logger = logging.getLogger("cqrs_ddd.cql.complexity")

_EXPLAINERS: dict[AdapterId, Callable[[Any, Any], ComplexityAnalysis]] = {
    AdapterId.POSTGRES: explain_postgres,
    AdapterId.MYSQL: explain_mysql,
}


class ComplexityAnalyzer:
    """
    Usage::

        analyzer = ComplexityAnalyzer(ComplexitySettings(max_complexity=60))
        decision = analyzer.check_complexity(stmt, engine)
        if decision.outcome is ComplexityOutcome.TOO_COMPLEX:
            return error_response(decision.analysis.suggestions)
    """

    def __init__(
        self,
        settings: ComplexitySettings | None = None,
        *,
        cache: AnalysisCache | None = None,
        listeners: ComplexityListeners | None = None,
        metrics: ComplexityMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or ComplexitySettings()
        self.cache = cache or AnalysisCache(self.settings.cache_ttl_seconds, clock=clock)
        self.listeners = listeners or ComplexityListeners()
        self.metrics = metrics if metrics is not None else default_metrics()

    # -- analysis ------------------------------------------------------------

    def analyze(
        self, query: Any, bind: Any = None, *, cache: bool | None = None
    ) -> ComplexityAnalysis:
        """
        Analyze *query*, serving repeated shapes from the TTL cache.

        Cache failures fall back to an uncached analysis.
        """
        use_cache = self.settings.cache_enabled if cache is None else cache
        if not use_cache:
            return self.analyze_uncached(query, bind)
        try:
            key = cache_key(query, getattr(bind, "dialect", None))
            cached = self.cache.get(key) if key is not None else None
        except Exception as e:  # noqa: BLE001
            logger.warning("Complexity cache unavailable, analyzing uncached: %s", e)
            return self.analyze_uncached(query, bind)
        if cached is not None:
            return cached
        analysis = self.analyze_uncached(query, bind)
        if key is not None:
            try:
                self.cache.put(key, analysis)
            except Exception as e:  # noqa: BLE001
                logger.warning("Failed to cache complexity analysis: %s", e)
        return analysis

    def analyze_uncached(self, query: Any, bind: Any = None) -> ComplexityAnalysis:
        explainer = self._explainer_for(query, bind)
        if explainer is not None:
            try:
                with connection_for(bind) as conn:
                    return explainer(query, conn)
            except Exception:
                logger.error(
                    "Failed to analyze query complexity, using heuristics", exc_info=True
                )
        return analyze_heuristic(query, large_offset=self.settings.large_offset)

    def _explainer_for(
        self, query: Any, bind: Any
    ) -> Callable[[Any, Any], ComplexityAnalysis] | None:
        if bind is None or not isinstance(query, Select):
            return None
        try:
            return _EXPLAINERS.get(adapter_id_for(bind))
        except AdapterUnavailableError:
            return None

    # -- admission -----------------------------------------------------------

    def load_metrics(self, bind: Any = None) -> LoadMetrics:
        return load_metrics(
            bind,
            max_connections=self.settings.max_connections,
            default_load_factor=self.settings.default_load_factor,
        )

    def adaptive_limit(
        self,
        load: LoadMetrics,
        *,
        base_limit: float | None = None,
        adaptive: bool | None = None,
    ) -> float:
        base = self.settings.max_complexity if base_limit is None else base_limit
        use_adaptive = self.settings.adaptive_limits if adaptive is None else adaptive
        if not use_adaptive:
            return base
        load_factor = min(max(load.load_factor, 0.0), 1.0)
        return base * (1.0 - load_factor * self.settings.load_reduction)

    def check_complexity(
        self,
        query: Any,
        bind: Any = None,
        *,
        base_limit: float | None = None,
        adaptive: bool | None = None,
    ) -> ComplexityDecision:
        analysis = self.analyze(query, bind)
        load = self.load_metrics(bind)
        limit = self.adaptive_limit(load, base_limit=base_limit, adaptive=adaptive)
        score = analysis.complexity_score
        if score > limit:
            outcome = ComplexityOutcome.TOO_COMPLEX
        elif score > self.settings.warn_threshold * limit:
            outcome = ComplexityOutcome.WARNING
        else:
            outcome = ComplexityOutcome.ACCEPTED
        decision = ComplexityDecision(outcome=outcome, analysis=analysis, load=load, limit=limit)
        self._report(decision)
        return decision

    def _report(self, decision: ComplexityDecision) -> None:
        score = decision.analysis.complexity_score
        if decision.outcome is ComplexityOutcome.TOO_COMPLEX:
            logger.warning(
                "Query rejected: complexity %.2f exceeds limit %.2f (load %.2f)\n%s",
                score,
                decision.limit,
                decision.load.load_factor,
                format_analysis(decision.analysis),
            )
        elif decision.outcome is ComplexityOutcome.WARNING:
            logger.warning(
                "Query near complexity limit: %.2f of %.2f", score, decision.limit
            )
        else:
            logger.debug("Query accepted: complexity %.2f of %.2f", score, decision.limit)
        self.metrics.record(decision)
        self.listeners.emit(decision.outcome.event, decision)

    # -- cache management ----------------------------------------------------

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()
