"""
Complexity decision events.

Listeners subscribe with ``fnmatch`` patterns over event names
(``query_accepted``, ``query_warning``, ``query_rejected``)::

    listeners = ComplexityListeners()
    listeners.register(alert_on_rejection, events=["query_rejected"])
    listeners.register(audit_log)                         # every event

Prometheus metrics (optional ``[prometheus]`` extra):

- ``cql_query_complexity_total{outcome, method}``
- ``cql_query_complexity_score{method}``
"""

from __future__ import annotations

import fnmatch
import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol

from ..compat import HAS_PROMETHEUS

if TYPE_CHECKING:
    from .analysis import ComplexityDecision

logger = logging.getLogger("cqrs_ddd.cql.complexity")

_SCORE_BUCKETS = (10, 20, 30, 40, 50, 60, 70, 80, 90, 100)


class ComplexityListener(Protocol):
    def __call__(self, event: str, decision: ComplexityDecision) -> None: ...


class ListenerRegistration:
    """A listener with its event patterns and priority."""

    def __init__(
        self,
        listener: ComplexityListener,
        *,
        events: list[str] | None = None,
        priority: int = 0,
        enabled: bool = True,
    ) -> None:
        self.listener = listener
        self.events = events or ["*"]
        self.priority = priority
        self.enabled = enabled

    def matches(self, event: str) -> bool:
        if not self.enabled:
            return False
        return any(fnmatch.fnmatch(event, pattern) for pattern in self.events)


class ComplexityListeners:
    """Ordered listener registrations, invoked synchronously on each decision."""

    def __init__(self) -> None:
        self._registrations: list[ListenerRegistration] = []

    def register(
        self,
        listener: ComplexityListener,
        *,
        events: list[str] | None = None,
        priority: int = 0,
    ) -> ListenerRegistration:
        registration = ListenerRegistration(listener, events=events, priority=priority)
        self._registrations.append(registration)
        self._registrations.sort(key=lambda r: r.priority)
        return registration

    def unregister(self, listener: ComplexityListener) -> None:
        self._registrations = [r for r in self._registrations if r.listener is not listener]

    def emit(self, event: str, decision: ComplexityDecision) -> None:
        """Call every matching listener; a failing listener is logged and skipped."""
        for registration in self._registrations:
            if not registration.matches(event):
                continue
            try:
                registration.listener(event, decision)
            except Exception as e:  # noqa: BLE001
                logger.warning("Complexity listener failed on %s: %s", event, e)

    def clear(self) -> None:
        self._registrations.clear()

    def __len__(self) -> int:
        return len(self._registrations)


class ComplexityMetrics:
    """Prometheus counter and histogram; inert without ``prometheus_client``."""

    def __init__(self, registry: Any = None) -> None:
        self._counter: Any = None
        self._histogram: Any = None
        if not HAS_PROMETHEUS:
            return
        from prometheus_client import REGISTRY, Counter, Histogram

        target = registry if registry is not None else REGISTRY
        self._counter = Counter(
            "cql_query_complexity_total",
            "Complexity checks by outcome",
            ["outcome", "method"],
            registry=target,
        )
        self._histogram = Histogram(
            "cql_query_complexity_score",
            "Complexity score of checked queries",
            ["method"],
            buckets=_SCORE_BUCKETS,
            registry=target,
        )

    @property
    def enabled(self) -> bool:
        return self._counter is not None

    def record(self, decision: ComplexityDecision) -> None:
        if self._counter is None or self._histogram is None:
            return
        method = decision.analysis.method.value
        try:
            self._counter.labels(outcome=decision.outcome.value, method=method).inc()
            self._histogram.labels(method=method).observe(
                decision.analysis.complexity_score
            )
        except Exception:  # noqa: BLE001
            logger.debug("Failed to emit complexity metrics", exc_info=True)


_default_metrics: ComplexityMetrics | None = None
_default_metrics_lock = threading.Lock()


def default_metrics() -> ComplexityMetrics:
    """Process-wide metrics on the default Prometheus registry, created once."""
    global _default_metrics
    with _default_metrics_lock:
        if _default_metrics is None:
            _default_metrics = ComplexityMetrics()
        return _default_metrics
