"""Null check operator for SQLAlchemy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from ....operators import FilterOperator
from ..strategy import SQLOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

    from ...base import ApplyOptions


class IsNullOperator(SQLOperator):
    """``{"_is_null": true}`` -> ``IS NULL``, ``false`` -> ``IS NOT NULL``."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.IS_NULL

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        if value:
            return cast("ColumnElement[bool]", column.is_(None))
        return cast("ColumnElement[bool]", column.is_not(None))
