"""Query complexity analysis and load-adaptive admission control."""

from __future__ import annotations

from .analysis import (
    AnalysisMethod,
    ComplexityAnalysis,
    ComplexityDecision,
    ComplexityOutcome,
    LoadMetrics,
    format_analysis,
)
from .analyzer import ComplexityAnalyzer
from .cache import AnalysisCache, cache_key
from .events import ComplexityListeners, ComplexityMetrics
from .explain import parse_mysql_plan, parse_postgres_plan
from .heuristic import QueryShape, analyze_heuristic, score_shape, shape_of
from .load import load_metrics

__all__ = [
    "AnalysisCache",
    "AnalysisMethod",
    "ComplexityAnalysis",
    "ComplexityAnalyzer",
    "ComplexityDecision",
    "ComplexityListeners",
    "ComplexityMetrics",
    "ComplexityOutcome",
    "LoadMetrics",
    "QueryShape",
    "analyze_heuristic",
    "cache_key",
    "format_analysis",
    "load_metrics",
    "parse_mysql_plan",
    "parse_postgres_plan",
    "score_shape",
    "shape_of",
]
