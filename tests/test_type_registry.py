"""Tests for the queryable and implementor registry."""

from __future__ import annotations

import threading

import pytest

from cqrs_ddd_cql.adapters import AdapterRegistry, build_default_adapters
from cqrs_ddd_cql.exceptions import (
    AdapterUnavailableError,
    RegistryLockTimeout,
    TypeRegistrationError,
)
from cqrs_ddd_cql.operators import AdapterId
from cqrs_ddd_cql.type_registry import TypeRegistry
from sample_models import Member, Post, User, UserDoc


class Searchable:
    pass


class Auditable:
    pass


def test_register_and_lookup() -> None:
    types = TypeRegistry()
    types.register_queryable(User, AdapterId.POSTGRES)
    types.register_queryable(UserDoc, AdapterId.ELASTICSEARCH)
    assert types.adapter_for(User) is AdapterId.POSTGRES
    assert types.adapter_for(Post) is None
    assert types.queryables() == (User, UserDoc)
    assert types.queryables(AdapterId.ELASTICSEARCH) == (UserDoc,)


def test_re_registration_is_idempotent() -> None:
    types = TypeRegistry()
    types.register_queryable(User, AdapterId.POSTGRES)
    types.register_queryable(User, AdapterId.POSTGRES)
    assert types.queryables() == (User,)


def test_conflicting_binding_is_rejected() -> None:
    types = TypeRegistry()
    types.register_queryable(User, AdapterId.POSTGRES)
    with pytest.raises(TypeRegistrationError, match="already bound to postgres"):
        types.register_queryable(User, AdapterId.MYSQL)
    assert types.adapter_for(User) is AdapterId.POSTGRES


def test_unregister_and_clear() -> None:
    types = TypeRegistry()
    types.register_queryable(User, AdapterId.POSTGRES)
    types.unregister_queryable(User)
    types.unregister_queryable(User)
    assert types.adapter_for(User) is None

    types.register_implementor(Searchable, User)
    types.clear()
    assert types.implementors_of(Searchable) == ()


def test_implementors() -> None:
    types = TypeRegistry()
    types.register_implementor(Searchable, User)
    types.register_implementor(Searchable, Post)
    types.register_implementor(Searchable, User)
    types.register_implementor(Auditable, User)
    assert types.implementors_of(Searchable) == (User, Post)
    assert types.interfaces_of(User) == (Searchable, Auditable)
    assert types.interfaces_of(Member) == ()


def test_snapshot() -> None:
    types = TypeRegistry()
    types.register_queryable(User, AdapterId.SQLITE)
    types.register_implementor(Searchable, User)
    assert types.snapshot() == {
        "queryables": {"User": "sqlite"},
        "implementors": {"Searchable": ["User"]},
    }


def test_readers_keep_their_snapshot() -> None:
    types = TypeRegistry()
    types.register_queryable(User, AdapterId.POSTGRES)
    before = types.queryables()
    types.register_queryable(Post, AdapterId.POSTGRES)
    assert before == (User,)


# -- locking -------------------------------------------------------------------


def test_lock_contention_backs_off_then_times_out() -> None:
    sleeps: list[float] = []
    types = TypeRegistry(lock_timeout=0.001, max_attempts=3, sleep=sleeps.append)
    types._lock.acquire()
    try:
        with pytest.raises(RegistryLockTimeout) as exc_info:
            types.register_queryable(User, AdapterId.POSTGRES)
    finally:
        types._lock.release()
    assert sleeps == [0.01, 0.02]
    assert exc_info.value.attempts == 3
    assert exc_info.value.operation == "register_queryable"
    assert types.adapter_for(User) is None


def test_max_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        TypeRegistry(max_attempts=0)


def test_concurrent_registration() -> None:
    types = TypeRegistry(lock_timeout=1.0)
    classes = [type(f"Model{i}", (), {}) for i in range(20)]
    threads = [
        threading.Thread(target=types.register_implementor, args=(Searchable, cls))
        for cls in classes
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert set(types.implementors_of(Searchable)) == set(classes)


# -- adapter resolution --------------------------------------------------------


def test_binding_selects_the_sql_adapter() -> None:
    types = TypeRegistry()
    types.register_queryable(User, AdapterId.SQLITE)
    registry = AdapterRegistry(build_default_adapters(), types=types)
    assert registry.resolve(User).adapter_id is AdapterId.SQLITE
    assert registry.resolve(Post).adapter_id is AdapterId.POSTGRES


def test_explicit_dialect_beats_the_binding() -> None:
    types = TypeRegistry()
    types.register_queryable(User, AdapterId.SQLITE)
    registry = AdapterRegistry(build_default_adapters(), types=types)
    assert registry.resolve(User, "mysql").adapter_id is AdapterId.MYSQL


def test_binding_to_an_adapter_that_cannot_handle_it() -> None:
    types = TypeRegistry()
    types.register_queryable(User, AdapterId.ELASTICSEARCH)
    registry = AdapterRegistry(build_default_adapters(), types=types)
    with pytest.raises(AdapterUnavailableError):
        registry.resolve(User)
