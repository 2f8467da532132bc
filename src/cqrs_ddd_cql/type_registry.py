"""Queryable-to-adapter and interface-to-implementor registry.

Registration typically happens while application modules import, possibly
from several threads at once. Every write takes a ``threading.Lock`` with a
timeout; on contention the writer backs off and retries a bounded number of
times before raising :class:`RegistryLockTimeout`.

Reads never lock. Each write publishes fresh immutable mappings, so readers
always see a complete snapshot.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any

from .exceptions import RegistryLockTimeout, TypeRegistrationError
from .operators import AdapterId

logger = logging.getLogger("cqrs_ddd.cql.type_registry")


def _name(obj: Any) -> str:
    return getattr(obj, "__name__", repr(obj))


class TypeRegistry:
    """
    Usage::

        types = TypeRegistry()
        types.register_queryable(User, AdapterId.POSTGRES)
        types.register_implementor(Searchable, User)
        types.adapter_for(User)            # AdapterId.POSTGRES
        types.implementors_of(Searchable)  # (User,)

    Re-registering the same pair is a no-op; binding a queryable to a second
    adapter raises :class:`TypeRegistrationError`.
    """

    def __init__(
        self,
        *,
        lock_timeout: float = 0.05,
        max_attempts: int = 5,
        backoff: float = 0.01,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout
        self._max_attempts = max_attempts
        self._backoff = backoff
        self._sleep = sleep
        self._adapters: Mapping[Any, AdapterId] = MappingProxyType({})
        self._implementors: Mapping[Any, tuple[Any, ...]] = MappingProxyType({})

    @contextmanager
    def _write(self, operation: str) -> Iterator[None]:
        for attempt in range(1, self._max_attempts + 1):
            if self._lock.acquire(timeout=self._lock_timeout):
                break
            logger.debug(
                "Type registry lock busy during %s (attempt %d/%d)",
                operation,
                attempt,
                self._max_attempts,
            )
            if attempt < self._max_attempts:
                self._sleep(self._backoff * 2 ** (attempt - 1))
        else:
            raise RegistryLockTimeout(operation, self._max_attempts, self._lock_timeout)
        try:
            yield
        finally:
            self._lock.release()

    # ── Registration ─────────────────────────────────────────────

    def register_queryable(self, queryable: Any, adapter_id: AdapterId) -> None:
        with self._write("register_queryable"):
            existing = self._adapters.get(queryable)
            if existing is not None and existing is not adapter_id:
                msg = (
                    f"Queryable {_name(queryable)} is already bound to "
                    f"{existing.value}, cannot bind it to {adapter_id.value}"
                )
                raise TypeRegistrationError(msg)
            if existing is adapter_id:
                return
            updated = dict(self._adapters)
            updated[queryable] = adapter_id
            self._adapters = MappingProxyType(updated)
        logger.debug("Registered queryable %s -> %s", _name(queryable), adapter_id.value)

    def register_implementor(self, interface: Any, implementor: Any) -> None:
        with self._write("register_implementor"):
            current = self._implementors.get(interface, ())
            if implementor in current:
                return
            updated = dict(self._implementors)
            updated[interface] = (*current, implementor)
            self._implementors = MappingProxyType(updated)
        logger.debug(
            "Registered implementor %s -> %s", _name(interface), _name(implementor)
        )

    def unregister_queryable(self, queryable: Any) -> None:
        with self._write("unregister_queryable"):
            if queryable not in self._adapters:
                return
            updated = dict(self._adapters)
            del updated[queryable]
            self._adapters = MappingProxyType(updated)

    def clear(self) -> None:
        with self._write("clear"):
            self._adapters = MappingProxyType({})
            self._implementors = MappingProxyType({})

    # ── Lookup ───────────────────────────────────────────────────

    def adapter_for(self, queryable: Any) -> AdapterId | None:
        return self._adapters.get(queryable)

    def implementors_of(self, interface: Any) -> tuple[Any, ...]:
        return self._implementors.get(interface, ())

    def interfaces_of(self, implementor: Any) -> tuple[Any, ...]:
        return tuple(
            interface
            for interface, implementors in self._implementors.items()
            if implementor in implementors
        )

    def queryables(self, adapter_id: AdapterId | None = None) -> tuple[Any, ...]:
        return tuple(
            queryable
            for queryable, bound in self._adapters.items()
            if adapter_id is None or bound is adapter_id
        )

    # ── Introspection ────────────────────────────────────────────

    def snapshot(self) -> dict[str, Any]:
        """Return a snapshot of all registrations (for debugging)."""
        adapters, implementors = self._adapters, self._implementors
        return {
            "queryables": {_name(q): a.value for q, a in adapters.items()},
            "implementors": {
                _name(i): [_name(m) for m in impls] for i, impls in implementors.items()
            },
        }
