"""
Backend adapters and adapter resolution.

Usage::

    adapters = build_default_adapter_registry()
    adapter = adapters.resolve(User, dialect=engine)     # -> PostgresAdapter
    adapter = adapters.resolve(UserDoc)                  # -> ElasticsearchAdapter
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import AdapterUnavailableError
from ..operators import AdapterId
from ..type_registry import TypeRegistry
from .base import Adapter, ApplyOptions, CompileState
from .elasticsearch import ElasticsearchAdapter, SearchQuery
from .memory import MemoryAdapter, MemoryQuery
from .sql import (
    ClickHouseAdapter,
    MSSQLAdapter,
    MySQLAdapter,
    PostgresAdapter,
    SQLAdapter,
    SQLiteAdapter,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger("cqrs_ddd.cql.adapters")

#: SQLAlchemy dialect names -> adapter ids.
DIALECT_ADAPTERS: dict[str, AdapterId] = {
    "postgresql": AdapterId.POSTGRES,
    "postgres": AdapterId.POSTGRES,
    "mysql": AdapterId.MYSQL,
    "mariadb": AdapterId.MYSQL,
    "sqlite": AdapterId.SQLITE,
    "mssql": AdapterId.MSSQL,
    "clickhouse": AdapterId.CLICKHOUSE,
}


def adapter_id_for(dialect: Any) -> AdapterId:
    """
    Resolve an :class:`AdapterId` from an id, a dialect name, a SQLAlchemy
    ``Dialect`` or anything with a ``.dialect`` (engine, connection, session bind).

    Raises:
        AdapterUnavailableError: Unknown dialect.
    """
    if isinstance(dialect, AdapterId):
        return dialect
    name = dialect
    if not isinstance(name, str):
        holder = dialect if hasattr(dialect, "dialect") else getattr(dialect, "bind", dialect)
        name = getattr(getattr(holder, "dialect", holder), "name", None)
    if isinstance(name, str):
        lowered = name.lower()
        if lowered in DIALECT_ADAPTERS:
            return DIALECT_ADAPTERS[lowered]
        try:
            return AdapterId(lowered)
        except ValueError:
            pass
    raise AdapterUnavailableError(dialect, DIALECT_ADAPTERS)


class AdapterRegistry:
    """
    Ordered adapters, consulted in detection order.

    SQL adapters all claim mapped classes. Without an explicit dialect a
    binding in ``types`` wins, then the ``default_sql`` adapter among them.
    """

    def __init__(
        self,
        adapters: Iterable[Adapter] = (),
        *,
        default_sql: AdapterId = AdapterId.POSTGRES,
        types: TypeRegistry | None = None,
    ) -> None:
        self._adapters: dict[AdapterId, Adapter] = {}
        self.default_sql = default_sql
        self.types = types or TypeRegistry()
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: Adapter) -> None:
        self._adapters[adapter.adapter_id] = adapter
        logger.debug("Registered adapter %s", adapter.adapter_id.value)

    def unregister(self, adapter_id: AdapterId) -> None:
        self._adapters.pop(adapter_id, None)

    def get(self, adapter_id: AdapterId) -> Adapter | None:
        return self._adapters.get(adapter_id)

    def __iter__(self) -> Iterator[Adapter]:
        return iter(self._adapters.values())

    def __len__(self) -> int:
        return len(self._adapters)

    @property
    def ids(self) -> list[AdapterId]:
        return list(self._adapters)

    def resolve(self, queryable: Any, dialect: Any = None) -> Adapter:
        """
        Pick the adapter for *queryable*.

        Raises:
            AdapterUnavailableError: No registered adapter claims it.
        """
        available = [a.value for a in self._adapters]
        if dialect is not None:
            adapter = self._adapters.get(adapter_id_for(dialect))
            if adapter is not None and adapter.handles(queryable):
                return adapter
            raise AdapterUnavailableError(queryable, available)
        bound = self.types.adapter_for(queryable)
        if bound is not None:
            adapter = self._adapters.get(bound)
            if adapter is not None and adapter.handles(queryable):
                return adapter
            raise AdapterUnavailableError(queryable, available)
        for adapter in self._adapters.values():
            if not adapter.handles(queryable):
                continue
            if adapter.adapter_id.is_sql:
                preferred = self._adapters.get(self.default_sql)
                if preferred is not None and preferred.handles(queryable):
                    return preferred
            return adapter
        raise AdapterUnavailableError(queryable, available)


def build_default_adapters() -> list[Adapter]:
    """Fresh instances of every built-in adapter, in detection order."""
    return [
        PostgresAdapter(),
        MySQLAdapter(),
        SQLiteAdapter(),
        MSSQLAdapter(),
        ClickHouseAdapter(),
        ElasticsearchAdapter(),
        MemoryAdapter(),
    ]


def build_default_adapter_registry(
    default_sql: AdapterId = AdapterId.POSTGRES,
    types: TypeRegistry | None = None,
) -> AdapterRegistry:
    return AdapterRegistry(build_default_adapters(), default_sql=default_sql, types=types)


__all__ = [
    "DIALECT_ADAPTERS",
    "Adapter",
    "AdapterRegistry",
    "ApplyOptions",
    "ClickHouseAdapter",
    "CompileState",
    "ElasticsearchAdapter",
    "MSSQLAdapter",
    "MemoryAdapter",
    "MemoryQuery",
    "MySQLAdapter",
    "PostgresAdapter",
    "SQLAdapter",
    "SQLiteAdapter",
    "SearchQuery",
    "adapter_id_for",
    "build_default_adapter_registry",
    "build_default_adapters",
]
