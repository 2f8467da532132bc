"""
SQLAlchemy statement inspection helpers used by the alias resolver.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.sql.selectable import Alias, Join

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.sql import Select


def iter_from_objects(stmt: Select[Any]) -> Iterator[Any]:
    """Yield every FROM element of *stmt*, descending into joins."""
    for from_obj in stmt.get_final_froms():
        yield from _walk(from_obj)


def _walk(from_obj: Any) -> Iterator[Any]:
    if isinstance(from_obj, Join):
        yield from _walk(from_obj.left)
        yield from _walk(from_obj.right)
    else:
        yield from_obj


def find_named_alias(stmt: Select[Any], name: str) -> Alias | None:
    """The aliased FROM element called *name*, if the statement already joins it."""
    for from_obj in iter_from_objects(stmt):
        if isinstance(from_obj, Alias) and from_obj.name == name:
            return from_obj
    return None


def count_joins(stmt: Select[Any]) -> int:
    """Number of JOIN operations across the statement's FROM clause."""
    total = 0
    for from_obj in stmt.get_final_froms():
        total += _count(from_obj)
    return total


def _count(from_obj: Any) -> int:
    if isinstance(from_obj, Join):
        return 1 + _count(from_obj.left) + _count(from_obj.right)
    return 0
