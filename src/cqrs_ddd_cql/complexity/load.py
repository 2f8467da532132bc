"""Live database load sampling for adaptive complexity limits."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text

from ..adapters import adapter_id_for
from ..capabilities import connection_for
from ..exceptions import AdapterUnavailableError
from ..operators import AdapterId
from .analysis import LoadMetrics

logger = logging.getLogger("cqrs_ddd.cql.complexity")

_PG_ACTIVE = "SELECT count(*) FROM pg_stat_activity WHERE state = 'active'"
_PG_CACHE_HIT = (
    "SELECT sum(blks_hit) / NULLIF(sum(blks_hit + blks_read), 0) FROM pg_stat_database"
)
_PG_TRANSACTIONS = (
    "SELECT xact_commit + xact_rollback FROM pg_stat_database "
    "WHERE datname = current_database()"
)


def postgres_load(conn: Any, *, max_connections: int = 100) -> LoadMetrics:
    active = int(conn.execute(text(_PG_ACTIVE)).scalar() or 0)
    hit_ratio = conn.execute(text(_PG_CACHE_HIT)).scalar()
    hit_ratio = float(hit_ratio) if hit_ratio is not None else 1.0
    transactions = conn.execute(text(_PG_TRANSACTIONS)).scalar()
    connection_load = min(active / max_connections, 1.0)
    cache_load = 1.0 - hit_ratio
    return LoadMetrics(
        load_factor=(connection_load + cache_load) / 2,
        active_connections=active,
        cache_hit_ratio=hit_ratio,
        transaction_rate=float(transactions) if transactions is not None else None,
    )


def mysql_load(conn: Any, *, max_connections: int = 100) -> LoadMetrics:
    row = conn.execute(text("SHOW STATUS LIKE 'Threads_connected'")).first()
    active = int(row[-1]) if row is not None else 0
    return LoadMetrics(
        load_factor=min(active / max_connections, 1.0),
        active_connections=active,
    )


_POSTGRES_DEFAULT = LoadMetrics(
    load_factor=0.5, active_connections=10, cache_hit_ratio=0.95, transaction_rate=100
)
_MYSQL_DEFAULT = LoadMetrics(load_factor=0.5, active_connections=10)


def load_metrics(
    bind: Any,
    *,
    max_connections: int = 100,
    default_load_factor: float = 0.5,
) -> LoadMetrics:
    """
    Sample the backend behind *bind*.

    Backends without load statistics, and ``bind=None``, report
    *default_load_factor*. Sampling failures are logged and replaced by
    moderate defaults; metrics are never cached.
    """
    if bind is None:
        return LoadMetrics(load_factor=default_load_factor)
    try:
        adapter_id = adapter_id_for(bind)
    except AdapterUnavailableError:
        return LoadMetrics(load_factor=default_load_factor)

    if adapter_id is AdapterId.POSTGRES:
        sampler, fallback = postgres_load, _POSTGRES_DEFAULT
    elif adapter_id is AdapterId.MYSQL:
        sampler, fallback = mysql_load, _MYSQL_DEFAULT
    else:
        return LoadMetrics(load_factor=default_load_factor)

    try:
        with connection_for(bind) as conn:
            return sampler(conn, max_connections=max_connections)
    except Exception:
        logger.error("Failed to get %s load metrics", adapter_id.value, exc_info=True)
        return fallback
