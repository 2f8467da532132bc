"""
Temporal operators for SQLAlchemy: between, relative and current periods.

Period windows are computed by the database clock, never by the
application, so every dialect supplies a :class:`PeriodExpressions`
implementation rendering "now", "now shifted by N units" and "start of the
current unit" in its own date arithmetic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import Interval, and_, func, literal, literal_column
from sqlalchemy import cast as sql_cast

from ....operators import FilterOperator
from ....values import (
    PeriodDirection,
    PeriodUnit,
    normalize_current_period,
    normalize_pair,
    normalize_period,
)
from ..strategy import SQLOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

    from ...base import ApplyOptions


class PeriodExpressions(ABC):
    """Server-side date arithmetic for one dialect."""

    @abstractmethod
    def now(self) -> Any: ...

    @abstractmethod
    def shift(self, count: int, unit: PeriodUnit) -> Any:
        """``now + count * unit``; *count* may be negative."""
        ...

    @abstractmethod
    def start_of(self, unit: PeriodUnit) -> Any:
        """Start of the current *unit* (weeks start on Monday)."""
        ...

    @abstractmethod
    def start_of_next(self, unit: PeriodUnit) -> Any: ...


def _months(count: int, unit: PeriodUnit) -> tuple[int, PeriodUnit]:
    """Quarters expressed as months for dialects without a quarter unit."""
    if unit is PeriodUnit.QUARTER:
        return count * 3, PeriodUnit.MONTH
    return count, unit


class PostgresPeriods(PeriodExpressions):
    def now(self) -> Any:
        return func.now()

    def _interval(self, count: int, unit: PeriodUnit) -> Any:
        count, unit = _months(count, unit)
        return sql_cast(literal(f"{abs(count)} {unit.value}s"), Interval)

    def shift(self, count: int, unit: PeriodUnit) -> Any:
        interval = self._interval(count, unit)
        return func.now() - interval if count < 0 else func.now() + interval

    def start_of(self, unit: PeriodUnit) -> Any:
        return func.date_trunc(unit.value, func.now())

    def start_of_next(self, unit: PeriodUnit) -> Any:
        return self.start_of(unit) + self._interval(1, unit)


_MYSQL_UNITS = {
    PeriodUnit.HOUR: "HOUR",
    PeriodUnit.DAY: "DAY",
    PeriodUnit.WEEK: "WEEK",
    PeriodUnit.MONTH: "MONTH",
    PeriodUnit.QUARTER: "QUARTER",
    PeriodUnit.YEAR: "YEAR",
}


class MySQLPeriods(PeriodExpressions):
    def now(self) -> Any:
        return func.now()

    @staticmethod
    def _interval(count: int, unit: PeriodUnit) -> Any:
        return literal_column(f"INTERVAL {int(abs(count))} {_MYSQL_UNITS[unit]}")

    def shift(self, count: int, unit: PeriodUnit) -> Any:
        fn = func.date_sub if count < 0 else func.date_add
        return fn(func.now(), self._interval(count, unit))

    def start_of(self, unit: PeriodUnit) -> Any:
        today = func.curdate()
        if unit is PeriodUnit.HOUR:
            return func.timestamp(func.date_format(func.now(), "%Y-%m-%d %H:00:00"))
        if unit is PeriodUnit.DAY:
            return today
        if unit is PeriodUnit.WEEK:
            return func.date_sub(today, literal_column("INTERVAL WEEKDAY(CURDATE()) DAY"))
        if unit is PeriodUnit.MONTH:
            return func.date_sub(
                today, literal_column("INTERVAL DAYOFMONTH(CURDATE()) - 1 DAY")
            )
        year_start = func.makedate(func.year(today), 1)
        if unit is PeriodUnit.QUARTER:
            return func.date_add(
                year_start, literal_column("INTERVAL QUARTER(CURDATE()) - 1 QUARTER")
            )
        return year_start

    def start_of_next(self, unit: PeriodUnit) -> Any:
        return func.date_add(self.start_of(unit), self._interval(1, unit))


_SQLITE_UNITS = {
    PeriodUnit.HOUR: "hours",
    PeriodUnit.DAY: "days",
    PeriodUnit.MONTH: "months",
    PeriodUnit.YEAR: "years",
}


class SQLitePeriods(PeriodExpressions):
    def now(self) -> Any:
        return func.datetime("now")

    @staticmethod
    def _modifier(count: int, unit: PeriodUnit) -> str:
        if unit is PeriodUnit.WEEK:
            count, unit = count * 7, PeriodUnit.DAY
        count, unit = _months(count, unit)
        return f"{count:+d} {_SQLITE_UNITS[unit]}"

    def shift(self, count: int, unit: PeriodUnit) -> Any:
        return func.datetime("now", self._modifier(count, unit))

    def start_of(self, unit: PeriodUnit) -> Any:
        if unit is PeriodUnit.HOUR:
            return func.strftime("%Y-%m-%d %H:00:00", "now")
        if unit is PeriodUnit.DAY:
            return func.datetime("now", "start of day")
        if unit is PeriodUnit.WEEK:
            return func.datetime("now", "start of day", "-6 days", "weekday 1")
        if unit is PeriodUnit.MONTH:
            return func.datetime("now", "start of month")
        if unit is PeriodUnit.QUARTER:
            return func.datetime(
                "now",
                "start of month",
                literal_column(
                    "'-' || ((CAST(strftime('%m', 'now') AS INTEGER) - 1) % 3) || ' months'"
                ),
            )
        return func.datetime("now", "start of year")

    def start_of_next(self, unit: PeriodUnit) -> Any:
        return func.datetime(self.start_of(unit), self._modifier(1, unit))


_MSSQL_PARTS = {
    PeriodUnit.HOUR: "hour",
    PeriodUnit.DAY: "day",
    PeriodUnit.WEEK: "week",
    PeriodUnit.MONTH: "month",
    PeriodUnit.QUARTER: "quarter",
    PeriodUnit.YEAR: "year",
}


class MSSQLPeriods(PeriodExpressions):
    def now(self) -> Any:
        return func.getdate()

    def shift(self, count: int, unit: PeriodUnit) -> Any:
        return func.dateadd(literal_column(_MSSQL_PARTS[unit]), count, func.getdate())

    def start_of(self, unit: PeriodUnit) -> Any:
        part = literal_column(_MSSQL_PARTS[unit])
        return func.dateadd(part, func.datediff(part, 0, func.getdate()), 0)

    def start_of_next(self, unit: PeriodUnit) -> Any:
        return func.dateadd(literal_column(_MSSQL_PARTS[unit]), 1, self.start_of(unit))


_CLICKHOUSE_SUFFIX = {
    PeriodUnit.HOUR: "Hours",
    PeriodUnit.DAY: "Days",
    PeriodUnit.WEEK: "Weeks",
    PeriodUnit.MONTH: "Months",
    PeriodUnit.QUARTER: "Quarters",
    PeriodUnit.YEAR: "Years",
}

_CLICKHOUSE_START = {
    PeriodUnit.HOUR: "toStartOfHour",
    PeriodUnit.DAY: "toStartOfDay",
    PeriodUnit.WEEK: "toMonday",
    PeriodUnit.MONTH: "toStartOfMonth",
    PeriodUnit.QUARTER: "toStartOfQuarter",
    PeriodUnit.YEAR: "toStartOfYear",
}


class ClickHousePeriods(PeriodExpressions):
    def now(self) -> Any:
        return func.now()

    def _add(self, base: Any, count: int, unit: PeriodUnit) -> Any:
        verb = "subtract" if count < 0 else "add"
        fn = getattr(func, f"{verb}{_CLICKHOUSE_SUFFIX[unit]}")
        return fn(base, abs(count))

    def shift(self, count: int, unit: PeriodUnit) -> Any:
        return self._add(func.now(), count, unit)

    def start_of(self, unit: PeriodUnit) -> Any:
        return getattr(func, _CLICKHOUSE_START[unit])(func.now())

    def start_of_next(self, unit: PeriodUnit) -> Any:
        return self._add(self.start_of(unit), 1, unit)


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class BetweenOperator(SQLOperator):
    """Inclusive ``[start, end]`` range; accepts a two-item list or ``{start, end}``."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.BETWEEN

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        start, end = normalize_pair(value, operator=self.name.value, path=options.path)
        return cast("ColumnElement[bool]", column.between(start, end))


class PeriodOperator(SQLOperator):
    """``{direction: last|next, unit, count}`` relative to the server clock."""

    def __init__(self, periods: PeriodExpressions) -> None:
        self.periods = periods

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.PERIOD

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        period = normalize_period(value, path=options.path)
        if period.direction is PeriodDirection.LAST:
            lower = self.periods.shift(-period.count, period.unit)
            upper = self.periods.now()
        else:
            lower = self.periods.now()
            upper = self.periods.shift(period.count, period.unit)
        return cast("ColumnElement[bool]", and_(column >= lower, column <= upper))


class CurrentPeriodOperator(SQLOperator):
    """``{unit}``: from the start of the current unit up to the start of the next."""

    def __init__(self, periods: PeriodExpressions) -> None:
        self.periods = periods

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.CURRENT_PERIOD

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        unit = normalize_current_period(value, path=options.path)
        return cast(
            "ColumnElement[bool]",
            and_(
                column >= self.periods.start_of(unit),
                column < self.periods.start_of_next(unit),
            ),
        )


def temporal_operators(periods: PeriodExpressions) -> tuple[SQLOperator, ...]:
    return (
        BetweenOperator(),
        PeriodOperator(periods),
        CurrentPeriodOperator(periods),
    )
