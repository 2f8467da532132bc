"""Value types produced by the complexity analyzer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AnalysisMethod(str, Enum):
    EXPLAIN = "explain"
    HEURISTIC = "heuristic"
    HEURISTIC_FAILED = "heuristic_failed"


class ComplexityOutcome(str, Enum):
    ACCEPTED = "accepted"
    WARNING = "warning"
    TOO_COMPLEX = "too_complex"

    @property
    def event(self) -> str:
        """Name of the event emitted for this outcome."""
        return _EVENTS[self]


_EVENTS = {
    ComplexityOutcome.ACCEPTED: "query_accepted",
    ComplexityOutcome.WARNING: "query_warning",
    ComplexityOutcome.TOO_COMPLEX: "query_rejected",
}


@dataclass(frozen=True)
class ComplexityAnalysis:
    """
    Estimated cost of one compiled query.

    Attributes:
        cost: Planner cost units, or ``score * 100`` for heuristics.
        estimated_rows: Planner row estimate, or the limit capped at 1000.
        complexity_score: Bounded score on a 0-100 scale.
        method: How the analysis was obtained.
        suggestions: Human-readable optimization hints.
        seq_scans: Sequential scans in the plan (explain only).
        index_usage: Index names used by the plan (explain only).
        plan_nodes: Number of plan nodes (explain only).
        details: Method-specific extras (join count, filesort, ...).
    """

    cost: float
    estimated_rows: int
    complexity_score: float
    method: AnalysisMethod
    suggestions: tuple[str, ...] = ()
    seq_scans: int = 0
    index_usage: tuple[str, ...] = ()
    plan_nodes: int = 0
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failed(cls) -> ComplexityAnalysis:
        """Fail-open result of a heuristic that could not inspect the query."""
        return cls(
            cost=0.0,
            estimated_rows=0,
            complexity_score=0.0,
            method=AnalysisMethod.HEURISTIC_FAILED,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "cost": self.cost,
            "estimated_rows": self.estimated_rows,
            "complexity_score": self.complexity_score,
            "method": self.method.value,
            "suggestions": list(self.suggestions),
            "seq_scans": self.seq_scans,
            "index_usage": list(self.index_usage),
            "plan_nodes": self.plan_nodes,
            **self.details,
        }


@dataclass(frozen=True)
class LoadMetrics:
    """Live load snapshot; ``load_factor`` runs from 0.0 (idle) to 1.0 (saturated)."""

    load_factor: float
    active_connections: int | None = None
    cache_hit_ratio: float | None = None
    transaction_rate: float | None = None


@dataclass(frozen=True)
class ComplexityDecision:
    """Outcome of ``check_complexity`` with everything that led to it."""

    outcome: ComplexityOutcome
    analysis: ComplexityAnalysis
    load: LoadMetrics
    limit: float

    @property
    def accepted(self) -> bool:
        return self.outcome is not ComplexityOutcome.TOO_COMPLEX


def format_analysis(analysis: ComplexityAnalysis) -> str:
    """Multi-line report for logs and debugging output."""
    suggestions = "\n".join(f"  - {s}" for s in analysis.suggestions)
    return (
        "Query Complexity Analysis:\n"
        f"  Cost: {analysis.cost:.2f}\n"
        f"  Estimated rows: {analysis.estimated_rows}\n"
        f"  Complexity score: {analysis.complexity_score:.2f}/100\n"
        f"  Sequential scans: {analysis.seq_scans}\n"
        f"  Indexes used: {', '.join(analysis.index_usage)}\n"
        f"  Analysis method: {analysis.method.value}\n"
        "\n"
        "Suggestions:\n"
        f"{suggestions}\n"
    )
