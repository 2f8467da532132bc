"""
Array membership operators for SQLAlchemy.

Postgres uses native ``ARRAY`` columns; MySQL, SQLite and MSSQL store arrays
as JSON documents and use their JSON functions; ClickHouse has native
``Array`` columns with ``has``/``hasAll``/``hasAny``.

Empty operand lists follow set semantics: "includes all of []" and
"excludes all of []" hold for every row, "includes any of []" holds for none.
"""

from __future__ import annotations

import json
from abc import abstractmethod
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    JSON,
    Boolean,
    all_,
    any_,
    false,
    func,
    literal,
    not_,
    or_,
    select,
    true,
)
from sqlalchemy import cast as sql_cast
from sqlalchemy.dialects.postgresql import array

from ....operators import FilterOperator
from ..strategy import SQLOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

    from ...base import ApplyOptions


class _ArrayOperator(SQLOperator):
    operator: FilterOperator

    @property
    def name(self) -> FilterOperator:
        return self.operator


class _ListArrayOperator(_ArrayOperator):
    """Operand is a list; ``empty_result`` is returned for ``[]``."""

    empty_result: bool = True

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        values = list(value)
        if not values:
            return true() if self.empty_result else false()
        return self.build(column, values)

    @abstractmethod
    def build(self, column: Any, values: list[Any]) -> ColumnElement[bool]: ...


class ArrayIsNullOperator(_ArrayOperator):
    operator = FilterOperator.IS_NULL

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        if value:
            return cast("ColumnElement[bool]", column.is_(None))
        return cast("ColumnElement[bool]", column.is_not(None))


# ---------------------------------------------------------------------------
# Postgres
# ---------------------------------------------------------------------------


class PgIncludesOperator(_ArrayOperator):
    operator = FilterOperator.INCLUDES

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", literal(value) == any_(column))


class PgExcludesOperator(_ArrayOperator):
    operator = FilterOperator.EXCLUDES

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", literal(value) != all_(column))


class PgIncludesAllOperator(_ListArrayOperator):
    operator = FilterOperator.INCLUDES_ALL

    def build(self, column: Any, values: list[Any]) -> ColumnElement[bool]:
        return cast(
            "ColumnElement[bool]", column.op("@>", is_comparison=True)(array(values))
        )


class PgExcludesAllOperator(_ListArrayOperator):
    operator = FilterOperator.EXCLUDES_ALL

    def build(self, column: Any, values: list[Any]) -> ColumnElement[bool]:
        return cast(
            "ColumnElement[bool]", not_(column.op("&&", is_comparison=True)(array(values)))
        )


class PgIncludesAnyOperator(_ListArrayOperator):
    operator = FilterOperator.INCLUDES_ANY
    empty_result = False

    def build(self, column: Any, values: list[Any]) -> ColumnElement[bool]:
        return cast(
            "ColumnElement[bool]", column.op("&&", is_comparison=True)(array(values))
        )


class PgExcludesAnyOperator(_ListArrayOperator):
    operator = FilterOperator.EXCLUDES_ANY
    empty_result = False

    def build(self, column: Any, values: list[Any]) -> ColumnElement[bool]:
        return cast(
            "ColumnElement[bool]", not_(column.op("@>", is_comparison=True)(array(values)))
        )


class PgIsEmptyOperator(_ArrayOperator):
    """``array_length`` is NULL for both NULL and ``'{}'`` arrays."""

    operator = FilterOperator.IS_EMPTY

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        length = func.array_length(column, 1)
        if value:
            return cast("ColumnElement[bool]", length.is_(None))
        return cast("ColumnElement[bool]", length > 0)


def postgres_array_operators() -> tuple[SQLOperator, ...]:
    return (
        PgIncludesOperator(),
        PgExcludesOperator(),
        PgIncludesAllOperator(),
        PgExcludesAllOperator(),
        PgIncludesAnyOperator(),
        PgExcludesAnyOperator(),
        PgIsEmptyOperator(),
        ArrayIsNullOperator(),
    )


# ---------------------------------------------------------------------------
# MySQL (JSON arrays)
# ---------------------------------------------------------------------------


def _mysql_json_scalar(value: Any) -> Any:
    if isinstance(value, str):
        return func.json_quote(value)
    return literal(json.dumps(value))


def _json_contains(column: Any, value: Any) -> Any:
    return func.json_contains(column, _mysql_json_scalar(value), type_=Boolean)


class MySQLIncludesOperator(_ArrayOperator):
    operator = FilterOperator.INCLUDES

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", _json_contains(column, value))


class MySQLExcludesOperator(_ArrayOperator):
    operator = FilterOperator.EXCLUDES

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", not_(_json_contains(column, value)))


class MySQLIncludesAnyOperator(_ListArrayOperator):
    operator = FilterOperator.INCLUDES_ANY
    empty_result = False

    def build(self, column: Any, values: list[Any]) -> ColumnElement[bool]:
        doc = sql_cast(literal(json.dumps(values)), JSON)
        return cast(
            "ColumnElement[bool]", func.json_overlaps(column, doc, type_=Boolean)
        )


class MySQLIsEmptyOperator(_ArrayOperator):
    operator = FilterOperator.IS_EMPTY

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        length = func.json_length(column)
        if value:
            return cast("ColumnElement[bool]", or_(column.is_(None), length == 0))
        return cast("ColumnElement[bool]", length > 0)


def mysql_array_operators() -> tuple[SQLOperator, ...]:
    return (
        MySQLIncludesOperator(),
        MySQLExcludesOperator(),
        MySQLIncludesAnyOperator(),
        MySQLIsEmptyOperator(),
        ArrayIsNullOperator(),
    )


# ---------------------------------------------------------------------------
# SQLite (json1) and MSSQL (OPENJSON)
# ---------------------------------------------------------------------------


class _TableValuedContains(_ArrayOperator):
    """``EXISTS (SELECT 1 FROM <json table>(col) WHERE value = ?)``."""

    function_name: str
    negate = False

    def elements(self, column: Any) -> Any:
        return getattr(func, self.function_name)(column).table_valued("value")

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        elements = self.elements(column)
        found = select(literal(1)).select_from(elements).where(elements.c.value == value)
        clause = found.exists()
        return cast("ColumnElement[bool]", not_(clause) if self.negate else clause)


class SQLiteIncludesOperator(_TableValuedContains):
    operator = FilterOperator.INCLUDES
    function_name = "json_each"


class SQLiteExcludesOperator(_TableValuedContains):
    operator = FilterOperator.EXCLUDES
    function_name = "json_each"
    negate = True


class SQLiteIsEmptyOperator(_ArrayOperator):
    operator = FilterOperator.IS_EMPTY

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        length = func.json_array_length(column)
        if value:
            return cast("ColumnElement[bool]", or_(column.is_(None), length == 0))
        return cast("ColumnElement[bool]", length > 0)


def sqlite_array_operators() -> tuple[SQLOperator, ...]:
    return (
        SQLiteIncludesOperator(),
        SQLiteExcludesOperator(),
        SQLiteIsEmptyOperator(),
        ArrayIsNullOperator(),
    )


class MSSQLIncludesOperator(_TableValuedContains):
    operator = FilterOperator.INCLUDES
    function_name = "openjson"


class MSSQLExcludesOperator(_TableValuedContains):
    operator = FilterOperator.EXCLUDES
    function_name = "openjson"
    negate = True


class MSSQLIncludesAnyOperator(_ListArrayOperator):
    """Join the column's elements against the operand's elements."""

    operator = FilterOperator.INCLUDES_ANY
    empty_result = False

    def build(self, column: Any, values: list[Any]) -> ColumnElement[bool]:
        arr = func.openjson(column).table_valued("value").alias("arr")
        vals = func.openjson(literal(json.dumps(values))).table_valued("value").alias("vals")
        found = select(literal(1)).select_from(
            arr.join(vals, arr.c.value == vals.c.value)
        )
        return cast("ColumnElement[bool]", found.exists())


class MSSQLIsEmptyOperator(_ArrayOperator):
    operator = FilterOperator.IS_EMPTY

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        elements = func.openjson(column).table_valued("value")
        has_elements = select(literal(1)).select_from(elements).exists()
        if value:
            return cast("ColumnElement[bool]", or_(column.is_(None), not_(has_elements)))
        return cast("ColumnElement[bool]", has_elements)


def mssql_array_operators() -> tuple[SQLOperator, ...]:
    return (
        MSSQLIncludesOperator(),
        MSSQLExcludesOperator(),
        MSSQLIncludesAnyOperator(),
        MSSQLIsEmptyOperator(),
        ArrayIsNullOperator(),
    )


# ---------------------------------------------------------------------------
# ClickHouse
# ---------------------------------------------------------------------------


class CHIncludesOperator(_ArrayOperator):
    operator = FilterOperator.INCLUDES

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", func.has(column, value, type_=Boolean))


class CHExcludesOperator(_ArrayOperator):
    operator = FilterOperator.EXCLUDES

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", not_(func.has(column, value, type_=Boolean)))


class CHIncludesAllOperator(_ListArrayOperator):
    operator = FilterOperator.INCLUDES_ALL

    def build(self, column: Any, values: list[Any]) -> ColumnElement[bool]:
        return cast(
            "ColumnElement[bool]",
            func.hasAll(column, func.array(*values), type_=Boolean),
        )


class CHIncludesAnyOperator(_ListArrayOperator):
    operator = FilterOperator.INCLUDES_ANY
    empty_result = False

    def build(self, column: Any, values: list[Any]) -> ColumnElement[bool]:
        return cast(
            "ColumnElement[bool]",
            func.hasAny(column, func.array(*values), type_=Boolean),
        )


class CHIsEmptyOperator(_ArrayOperator):
    operator = FilterOperator.IS_EMPTY

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        fn = func.empty if value else func.notEmpty
        return cast("ColumnElement[bool]", fn(column, type_=Boolean))


def clickhouse_array_operators() -> tuple[SQLOperator, ...]:
    return (
        CHIncludesOperator(),
        CHExcludesOperator(),
        CHIncludesAllOperator(),
        CHIncludesAnyOperator(),
        CHIsEmptyOperator(),
        ArrayIsNullOperator(),
    )
