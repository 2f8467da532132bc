"""Set membership operators for SQLAlchemy: in, not in."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import false, true

from ....operators import FilterOperator
from ..strategy import SQLOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

    from ...base import ApplyOptions


class InOperator(SQLOperator):
    """An empty list matches no rows."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.IN

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        values = list(value)
        if not values:
            return false()
        return cast("ColumnElement[bool]", column.in_(values))


class NotInOperator(SQLOperator):
    """An empty list leaves the rows untouched."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NIN

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        values = list(value)
        if not values:
            return true()
        return cast("ColumnElement[bool]", column.not_in(values))


def set_operators() -> tuple[SQLOperator, ...]:
    return (InOperator(), NotInOperator())
