"""
TTL cache of complexity analyses keyed by query content.

Entries are ``(analysis, inserted_at)`` pairs in a plain dict. Expired
entries are never swept; a lookup treats them as misses and the next store
replaces them. Concurrent lookups that miss on the same key both compute and
the last write wins.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy.sql import ClauseElement

from ..adapters.elasticsearch import SearchQuery

if TYPE_CHECKING:
    from .analysis import ComplexityAnalysis

logger = logging.getLogger("cqrs_ddd.cql.complexity")


def cache_key(query: Any, dialect: Any = None) -> str | None:
    """
    sha256 of the rendered statement plus its parameters.

    Returns ``None`` for queries without a stable rendering (memory queries
    hold closures), which are then analyzed uncached.
    """
    if isinstance(query, ClauseElement):
        compiled = query.compile(dialect=dialect) if dialect is not None else query.compile()
        content = f"{compiled.string}_{sorted(compiled.params.items(), key=str)!r}"
    elif isinstance(query, SearchQuery):
        content = json.dumps(
            {"index": query.index, "body": query.body}, sort_keys=True, default=str
        )
    elif isinstance(query, Mapping):
        content = json.dumps(query, sort_keys=True, default=str)
    else:
        return None
    return hashlib.sha256(content.encode()).hexdigest()


class AnalysisCache:
    """
    ``key -> (analysis, inserted_at)`` with a fixed TTL.

    The clock is injectable (defaults to ``time.monotonic``) so expiry can be
    tested without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[ComplexityAnalysis, float]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> ComplexityAnalysis | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            logger.debug("Query complexity cache miss: %s", key)
            return None
        analysis, inserted_at = entry
        if self._clock() - inserted_at >= self.ttl_seconds:
            self.misses += 1
            logger.debug("Query complexity cache entry expired: %s", key)
            return None
        self.hits += 1
        logger.debug("Query complexity cache hit: %s", key)
        return analysis

    def put(self, key: str, analysis: ComplexityAnalysis) -> None:
        self._entries[key] = (analysis, self._clock())

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        entries = [
            {
                "key": key,
                "age_seconds": now - inserted_at,
                "expired": now - inserted_at >= self.ttl_seconds,
            }
            for key, (_, inserted_at) in list(self._entries.items())
        ]
        expired = sum(1 for e in entries if e["expired"])
        lookups = self.hits + self.misses
        return {
            "size": len(entries),
            "expired_count": expired,
            "valid_count": len(entries) - expired,
            "oldest_entry_age_seconds": max((e["age_seconds"] for e in entries), default=0),
            "cache_ttl_seconds": self.ttl_seconds,
            "hit_rate": self.hits / lookups if lookups else 0.0,
            "entries": entries,
        }
