"""
Runtime detection of backend capabilities.

The detector issues read-only introspection statements (server version,
installed extensions, feature probes) over a SQLAlchemy ``Engine``,
``Connection`` or ``Session`` and derives feature flags from version
thresholds and extensions. Probe failures are logged and treated as a
missing feature, and a bind that cannot connect at all yields empty, uncached
capabilities; an unparsable version string yields the conservative
``(0, 0)`` / ``(0, 0, 0)`` so every version-gated feature is reported
unavailable.

Usage::

    detector = CapabilityDetector()
    caps = detector.detect(engine)
    if supports(caps, "postgis"):
        ...
    require(caps, "json_overlaps")   # raises CapabilityMissingError
    log_report(caps)
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Connection

from .adapters import adapter_id_for
from .config import CapabilitySettings
from .exceptions import AdapterUnavailableError, CapabilityMissingError
from .operators import AdapterId

logger = logging.getLogger("cqrs_ddd.cql.capabilities")

Version = tuple[int, ...]

_ADAPTER_NAMES = {
    AdapterId.POSTGRES: "PostgreSQL",
    AdapterId.MYSQL: "MySQL",
    AdapterId.SQLITE: "SQLite",
    AdapterId.MSSQL: "Microsoft SQL Server",
    AdapterId.CLICKHOUSE: "ClickHouse",
    AdapterId.ELASTICSEARCH: "Elasticsearch",
    AdapterId.MEMORY: "In-memory",
}

_FEATURE_NAMES = {
    "full_text_search": "Full-text search",
    "similarity_search": "Similarity search",
    "geo_queries": "Geo-spatial queries",
    "jsonb_support": "JSONB support",
    "json_support": "JSON support",
    "array_support": "Array support",
    "regex_support": "Regular expressions",
    "pg_trgm": "pg_trgm extension",
    "postgis": "PostGIS extension",
    "mariadb": "MariaDB server",
}


@dataclass(frozen=True)
class AdapterCapabilities:
    """Detected version, extensions and feature flags of one backend."""

    adapter_id: AdapterId | None
    version: Version = (0, 0)
    extensions: frozenset[str] = frozenset()
    features: Mapping[str, bool] = field(default_factory=dict)
    extension_versions: Mapping[str, Version] = field(default_factory=dict)

    @property
    def version_string(self) -> str:
        return ".".join(str(part) for part in self.version)

    def supports(self, feature: str) -> bool:
        return bool(self.features.get(feature, False))

    def version_of(self, component: str | None = None) -> Version | None:
        """Server version, or the version of an installed extension."""
        if component is None or (
            self.adapter_id is not None and component == self.adapter_id.value
        ):
            return self.version
        return self.extension_versions.get(component)


def parse_version(raw: Any, pattern: str, *, parts: int = 3) -> Version:
    """
    Extract a version tuple from *raw* using the capture groups of *pattern*.

    Returns ``(0,) * parts`` and logs a warning when nothing matches.
    """
    match = re.search(pattern, str(raw)) if raw is not None else None
    if match is None:
        logger.warning("Could not parse version string: %r", raw)
        return (0,) * parts
    return tuple(int(group) for group in match.groups())


# ---------------------------------------------------------------------------
# Probing
# ---------------------------------------------------------------------------


@contextmanager
def connection_for(bind: Any) -> Iterator[Any]:
    if isinstance(bind, Connection):
        yield bind
    elif hasattr(bind, "connect"):
        with bind.connect() as conn:
            yield conn
    else:
        yield bind.connection()


def _scalar(conn: Any, sql: str) -> Any:
    return conn.execute(text(sql)).scalar()


def _probe(conn: Any, sql: str) -> bool:
    """Run *sql*; a failure means the feature is missing."""
    try:
        conn.execute(text(sql))
    except Exception as e:  # noqa: BLE001
        logger.debug("Capability probe %r failed: %s", sql, e)
        return False
    return True


def _raw_version(conn: Any, sql: str) -> Any:
    try:
        return _scalar(conn, sql)
    except Exception as e:  # noqa: BLE001
        logger.warning("Failed to query server version with %r: %s", sql, e)
        return None


def _version_of(conn: Any, sql: str, pattern: str, parts: int) -> Version:
    raw = _raw_version(conn, sql)
    if raw is None:
        return (0,) * parts
    return parse_version(raw, pattern, parts=parts)


def _detect_postgres(conn: Any) -> AdapterCapabilities:
    version = _version_of(conn, "SELECT version()", r"PostgreSQL (\d+)\.(\d+)", 2)
    extension_versions: dict[str, Version] = {}
    try:
        rows = conn.execute(text("SELECT extname, extversion FROM pg_extension")).all()
    except Exception as e:  # noqa: BLE001
        logger.warning("Failed to list PostgreSQL extensions: %s", e)
        rows = []
    for name, ext_version in rows:
        extension_versions[str(name)] = tuple(
            int(p) for p in re.findall(r"\d+", str(ext_version or ""))[:3]
        )
    extensions = frozenset(extension_versions)
    return AdapterCapabilities(
        adapter_id=AdapterId.POSTGRES,
        version=version,
        extensions=extensions,
        extension_versions=extension_versions,
        features={
            "full_text_search": version >= (8, 3),
            "regex_support": True,
            "jsonb_support": version >= (9, 4),
            "array_support": True,
            "pg_trgm": "pg_trgm" in extensions,
            "postgis": "postgis" in extensions,
            "btree_gin": "btree_gin" in extensions,
            "btree_gist": "btree_gist" in extensions,
            "similarity_search": "pg_trgm" in extensions,
            "geo_queries": "postgis" in extensions,
            "jsonb_path_queries": version >= (12, 0),
            "generated_columns": version >= (12, 0),
        },
    )


def _detect_mysql(conn: Any) -> AdapterCapabilities:
    raw = _raw_version(conn, "SELECT VERSION()")
    version = (
        parse_version(raw, r"(\d+)\.(\d+)\.(\d+)", parts=3)
        if raw is not None
        else (0, 0, 0)
    )
    if raw is not None and "mariadb" in str(raw).lower():
        return _mariadb_capabilities(version)
    return AdapterCapabilities(
        adapter_id=AdapterId.MYSQL,
        version=version,
        features={
            "full_text_search": version >= (5, 6, 0),
            "json_support": version >= (5, 7, 0),
            "jsonb_support": False,
            "array_support": False,
            "regex_support": True,
            "json_overlaps": version >= (8, 0, 17),
            "json_table": version >= (8, 0, 0),
            "cte_support": version >= (8, 0, 0),
            "window_functions": version >= (8, 0, 0),
            "similarity_search": False,
            "geo_queries": version >= (5, 7, 0),
            "postgis": False,
            "mariadb": False,
        },
    )


def _mariadb_capabilities(version: Version) -> AdapterCapabilities:
    """MariaDB reports 10.x/11.x versions with its own feature timeline."""
    return AdapterCapabilities(
        adapter_id=AdapterId.MYSQL,
        version=version,
        features={
            "full_text_search": True,
            "json_support": version >= (10, 2, 7),
            "jsonb_support": False,
            "array_support": False,
            "regex_support": True,
            "json_overlaps": version >= (10, 9, 0),
            "json_table": version >= (10, 6, 0),
            "cte_support": version >= (10, 2, 1),
            "window_functions": version >= (10, 2, 0),
            "similarity_search": False,
            "geo_queries": version >= (10, 2, 38),
            "postgis": False,
            "mariadb": True,
        },
    )


_SQLITE_PROBES = {
    "json1": "SELECT json('{}')",
    "fts5": "SELECT fts5(NULL)",
    "rtree": "SELECT rtreenode(0, NULL)",
}


def _detect_sqlite(conn: Any) -> AdapterCapabilities:
    version = _version_of(conn, "SELECT sqlite_version()", r"(\d+)\.(\d+)\.(\d+)", 3)
    extensions = frozenset(
        name for name, sql in _SQLITE_PROBES.items() if _probe(conn, sql)
    )
    return AdapterCapabilities(
        adapter_id=AdapterId.SQLITE,
        version=version,
        extensions=extensions,
        features={
            "json_support": "json1" in extensions,
            "full_text_search": "fts5" in extensions,
            "regex_support": True,
            "array_support": False,
            "jsonb_support": False,
            "json1": "json1" in extensions,
            "fts5": "fts5" in extensions,
            "rtree": "rtree" in extensions,
            "similarity_search": False,
            "geo_queries": "rtree" in extensions,
            "postgis": False,
        },
    )


def _detect_mssql(conn: Any) -> AdapterCapabilities:
    version = _version_of(
        conn, "SELECT @@VERSION", r"SQL Server \d+ .* - (\d+)\.(\d+)", 2
    )
    return AdapterCapabilities(
        adapter_id=AdapterId.MSSQL,
        version=version,
        features={
            "json_support": version >= (13, 0),
            "full_text_search": True,
            "regex_support": False,
            "array_support": False,
            "jsonb_support": False,
            "openjson": version >= (13, 0),
            "json_path": version >= (13, 0),
            "string_split": version >= (13, 0),
            "similarity_search": False,
            "geo_queries": True,
            "postgis": False,
        },
    )


def _detect_clickhouse(conn: Any) -> AdapterCapabilities:
    version = _version_of(conn, "SELECT version()", r"(\d+)\.(\d+)\.(\d+)", 3)
    return AdapterCapabilities(
        adapter_id=AdapterId.CLICKHOUSE,
        version=version,
        features={
            "array_support": True,
            "regex_support": True,
            "json_support": version >= (22, 3, 0),
            "full_text_search": False,
            "similarity_search": False,
            "geo_queries": False,
            "postgis": False,
        },
    )


_DETECTORS: dict[AdapterId, Callable[[Any], AdapterCapabilities]] = {
    AdapterId.POSTGRES: _detect_postgres,
    AdapterId.MYSQL: _detect_mysql,
    AdapterId.SQLITE: _detect_sqlite,
    AdapterId.MSSQL: _detect_mssql,
    AdapterId.CLICKHOUSE: _detect_clickhouse,
}


def static_capabilities(adapter: Any) -> AdapterCapabilities:
    """Capabilities of a backend that is not probed (search engine, memory)."""
    return AdapterCapabilities(
        adapter_id=adapter.adapter_id,
        features={k: v for k, v in adapter.capabilities.items() if isinstance(v, bool)},
    )


def _cache_key(bind: Any) -> str:
    engine = getattr(bind, "engine", None) or getattr(bind, "bind", None)
    url = getattr(engine, "url", None) or getattr(bind, "url", None)
    return str(url) if url is not None else f"bind-{id(bind)}"


class CapabilityDetector:
    """
    Probes backends and caches the result per bind URL.

    Detection is idempotent: two threads racing on the same URL both probe
    and the second write replaces the first with an equivalent value.
    """

    def __init__(self, *, cache_enabled: bool = True) -> None:
        self.cache_enabled = cache_enabled
        self._cache: dict[str, AdapterCapabilities] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: CapabilitySettings) -> CapabilityDetector:
        return cls(cache_enabled=settings.cache_enabled)

    def detect(self, bind: Any, *, refresh: bool = False) -> AdapterCapabilities:
        key = _cache_key(bind)
        if self.cache_enabled and not refresh:
            with self._lock:
                cached = self._cache.get(key)
            if cached is not None:
                return cached

        try:
            adapter_id = adapter_id_for(bind)
        except AdapterUnavailableError:
            logger.warning("No capability probes for dialect of %s", key)
            return AdapterCapabilities(adapter_id=None)

        try:
            with connection_for(bind) as conn:
                capabilities = _DETECTORS[adapter_id](conn)
        except Exception:  # noqa: BLE001
            logger.warning(
                "Capability detection for %s failed, assuming no optional features",
                key,
                exc_info=True,
            )
            return AdapterCapabilities(adapter_id=adapter_id)
        logger.debug(
            "Detected %s %s with features %s",
            adapter_id.value,
            capabilities.version_string,
            sorted(k for k, v in capabilities.features.items() if v),
        )
        if self.cache_enabled:
            with self._lock:
                self._cache[key] = capabilities
        return capabilities

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def supports(capabilities: AdapterCapabilities, feature: str) -> bool:
    return capabilities.supports(feature)


def _adapter_name(capabilities: AdapterCapabilities) -> str:
    if capabilities.adapter_id is None:
        return "unknown"
    return _ADAPTER_NAMES.get(capabilities.adapter_id, capabilities.adapter_id.value)


def format_feature(feature: str) -> str:
    return _FEATURE_NAMES.get(feature, feature.replace("_", " "))


def require(
    capabilities: AdapterCapabilities, feature: str, message: str | None = None
) -> None:
    """
    Raises:
        CapabilityMissingError: *feature* was not detected.
    """
    if capabilities.supports(feature):
        return
    adapter = _adapter_name(capabilities)
    version = capabilities.version_string
    raise CapabilityMissingError(
        feature,
        adapter,
        version,
        message
        or (
            f"Feature '{feature}' is not available.\n"
            f"Database: {adapter} {version}\n"
            f"Required feature: {format_feature(feature)}\n"
            "Install the required extension or upgrade the server."
        ),
    )


def report(capabilities: AdapterCapabilities) -> str:
    """Human-readable capability summary."""
    lines = [f"Database: {_adapter_name(capabilities)} {capabilities.version_string}"]
    if capabilities.adapter_id in (AdapterId.POSTGRES, AdapterId.SQLITE):
        names = ", ".join(sorted(capabilities.extensions)) or "none"
        lines.append(f"Extensions: {names}")
    enabled = sorted(k for k, v in capabilities.features.items() if v)
    if enabled:
        lines.append("Features:")
        lines.extend(f"  ✓ {format_feature(k)}" for k in enabled)
    return "\n".join(lines) + "\n"


def log_report(capabilities: AdapterCapabilities) -> None:
    logger.info("CQL capabilities:\n%s", report(capabilities))
