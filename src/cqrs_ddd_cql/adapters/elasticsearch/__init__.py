"""Elasticsearch query DSL adapter."""

from __future__ import annotations

from .adapter import DocumentTarget, ElasticsearchAdapter, SearchQuery
from .operators import MATCH_ALL, MATCH_NONE

__all__ = [
    "MATCH_ALL",
    "MATCH_NONE",
    "DocumentTarget",
    "ElasticsearchAdapter",
    "SearchQuery",
]
