"""
String operators for SQLAlchemy.

Substring operators (``_contains``, ``_starts_with`` ...) escape the operand
so ``%`` and ``_`` match literally; ``_like``/``_ilike`` pass the client
pattern through. Case-insensitive matching is delegated to a per-dialect
:class:`CaseFolding` strategy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import func

from ....operators import FilterOperator
from ....values import escape_like
from ..strategy import SQLOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

    from ...base import ApplyOptions


# ---------------------------------------------------------------------------
# Case folding strategies
# ---------------------------------------------------------------------------


class CaseFolding(ABC):
    """
    ``LIKE`` / case-insensitive ``LIKE`` for one dialect family.

    ``escape`` is the character used to escape literal substrings; when
    ``escape_clause`` is false the dialect's default escape (backslash) is
    relied upon and no ``ESCAPE`` clause is rendered.
    """

    escape: str = "/"
    escape_clause: bool = True

    def _escape_kw(self, escaped: bool) -> dict[str, str]:
        return {"escape": self.escape} if escaped and self.escape_clause else {}

    def like(self, column: Any, pattern: str, *, escaped: bool = False) -> Any:
        return column.like(pattern, **self._escape_kw(escaped))

    @abstractmethod
    def ilike(self, column: Any, pattern: str, *, escaped: bool = False) -> Any: ...


class NativeILike(CaseFolding):
    """Postgres ``ILIKE``."""

    def ilike(self, column: Any, pattern: str, *, escaped: bool = False) -> Any:
        return column.ilike(pattern, **self._escape_kw(escaped))


class CollateNoCase(CaseFolding):
    """SQLite ``LIKE ... COLLATE NOCASE``."""

    def ilike(self, column: Any, pattern: str, *, escaped: bool = False) -> Any:
        return column.collate("NOCASE").like(pattern, **self._escape_kw(escaped))


class LowerLike(CaseFolding):
    """MySQL / MSSQL ``LOWER(col) LIKE LOWER(?)``."""

    def ilike(self, column: Any, pattern: str, *, escaped: bool = False) -> Any:
        return func.lower(column).like(func.lower(pattern), **self._escape_kw(escaped))


class ClickHouseILike(CaseFolding):
    """ClickHouse ``ilike(col, ?)``; backslash escaping, no ``ESCAPE`` clause."""

    escape = "\\"
    escape_clause = False

    def ilike(self, column: Any, pattern: str, *, escaped: bool = False) -> Any:
        return func.ilike(column, pattern)


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class _FoldingOperator(SQLOperator):
    operator: FilterOperator

    def __init__(self, folding: CaseFolding) -> None:
        self.folding = folding

    @property
    def name(self) -> FilterOperator:
        return self.operator


class LikeOperator(_FoldingOperator):
    operator = FilterOperator.LIKE

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", self.folding.like(column, str(value)))


class NotLikeOperator(_FoldingOperator):
    operator = FilterOperator.NLIKE

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", ~self.folding.like(column, str(value)))


class ILikeOperator(_FoldingOperator):
    operator = FilterOperator.ILIKE

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", self.folding.ilike(column, str(value)))


class NotILikeOperator(_FoldingOperator):
    operator = FilterOperator.NILIKE

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", ~self.folding.ilike(column, str(value)))


class _SubstringOperator(_FoldingOperator):
    """Escaped literal wrapped in ``%`` according to ``prefix``/``suffix``."""

    prefix = ""
    suffix = ""
    insensitive = False

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        pattern = f"{self.prefix}{escape_like(str(value), self.folding.escape)}{self.suffix}"
        match = self.folding.ilike if self.insensitive else self.folding.like
        return cast("ColumnElement[bool]", match(column, pattern, escaped=True))


class StartsWithOperator(_SubstringOperator):
    operator = FilterOperator.STARTS_WITH
    suffix = "%"


class IStartsWithOperator(_SubstringOperator):
    operator = FilterOperator.ISTARTS_WITH
    suffix = "%"
    insensitive = True


class EndsWithOperator(_SubstringOperator):
    operator = FilterOperator.ENDS_WITH
    prefix = "%"


class IEndsWithOperator(_SubstringOperator):
    operator = FilterOperator.IENDS_WITH
    prefix = "%"
    insensitive = True


class ContainsOperator(_SubstringOperator):
    operator = FilterOperator.CONTAINS
    prefix = suffix = "%"


class IContainsOperator(_SubstringOperator):
    operator = FilterOperator.ICONTAINS
    prefix = suffix = "%"
    insensitive = True


def string_operators(folding: CaseFolding) -> tuple[SQLOperator, ...]:
    return (
        LikeOperator(folding),
        NotLikeOperator(folding),
        ILikeOperator(folding),
        NotILikeOperator(folding),
        StartsWithOperator(folding),
        IStartsWithOperator(folding),
        EndsWithOperator(folding),
        IEndsWithOperator(folding),
        ContainsOperator(folding),
        IContainsOperator(folding),
    )
