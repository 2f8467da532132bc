"""Standard comparison operators for SQLAlchemy."""

from __future__ import annotations

import operator as op_module
from typing import TYPE_CHECKING, Any, cast

from ....operators import FilterOperator
from ..strategy import SQLOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

    from ...base import ApplyOptions


class EqualOperator(SQLOperator):
    """``_eq``; a ``None`` operand renders ``IS NULL``."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.EQ

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.eq(column, value))


class NotEqualOperator(SQLOperator):
    """``_ne`` and its ``_neq`` alias; a ``None`` operand renders ``IS NOT NULL``."""

    def __init__(self, alias: FilterOperator = FilterOperator.NE) -> None:
        self._name = alias

    @property
    def name(self) -> FilterOperator:
        return self._name

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.ne(column, value))


class GreaterThanOperator(SQLOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.GT

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.gt(column, value))


class GreaterEqualOperator(SQLOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.GTE

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.ge(column, value))


class LessThanOperator(SQLOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.LT

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.lt(column, value))


class LessEqualOperator(SQLOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.LTE

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.le(column, value))


def equality_operators() -> tuple[SQLOperator, ...]:
    return (
        EqualOperator(),
        NotEqualOperator(),
        NotEqualOperator(FilterOperator.NEQ),
    )


def range_operators() -> tuple[SQLOperator, ...]:
    return (
        GreaterThanOperator(),
        GreaterEqualOperator(),
        LessThanOperator(),
        LessEqualOperator(),
    )
