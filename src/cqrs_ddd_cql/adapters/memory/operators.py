"""
In-memory operator implementations.

Comparisons against a missing (``None``) value are false, mirroring SQL's
three-valued logic, except for the null and emptiness tests themselves.
Enum members compare by value, so ``{"_eq": "active"}`` matches
``Status.ACTIVE``.
"""

from __future__ import annotations

import math
import re
from abc import abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

from ...operators import FilterOperator
from ...values import (
    GeoPoint,
    coerce_scalar,
    normalize_bounding_box,
    normalize_distance,
    normalize_pair,
    normalize_point,
)
from .evaluator import MemoryOperator

if TYPE_CHECKING:
    from ..base import ApplyOptions

EARTH_RADIUS_METERS = 6_371_008.8


def plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _sql_pattern_to_regex(pattern: str) -> str:
    """Convert SQL LIKE pattern (``%``, ``_``) to a Python regex."""
    return re.escape(pattern).replace("%", ".*").replace("_", ".")


# ---------------------------------------------------------------------------
# Standard comparison
# ---------------------------------------------------------------------------


class EqualOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.EQ

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        return bool(plain(field_value) == plain(condition_value))


class NotEqualOperator(MemoryOperator):
    """``None`` operand means "is not null"; otherwise nulls never match."""

    def __init__(self, alias: FilterOperator = FilterOperator.NE) -> None:
        self._name = alias

    @property
    def name(self) -> FilterOperator:
        return self._name

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if condition_value is None:
            return field_value is not None
        if field_value is None:
            return False
        return bool(plain(field_value) != plain(condition_value))


class _RangeOperator(MemoryOperator):
    operator: FilterOperator

    @property
    def name(self) -> FilterOperator:
        return self.operator

    def prepare(self, condition_value: Any, options: ApplyOptions) -> Any:
        return coerce_scalar(
            plain(condition_value),
            options.field_type,
            operator=self.operator.value,
            path=options.path,
        )

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        return self.compare(plain(field_value), plain(condition_value))

    @abstractmethod
    def compare(self, left: Any, right: Any) -> bool: ...


class GreaterThanOperator(_RangeOperator):
    operator = FilterOperator.GT

    def compare(self, left: Any, right: Any) -> bool:
        return bool(left > right)


class GreaterEqualOperator(_RangeOperator):
    operator = FilterOperator.GTE

    def compare(self, left: Any, right: Any) -> bool:
        return bool(left >= right)


class LessThanOperator(_RangeOperator):
    operator = FilterOperator.LT

    def compare(self, left: Any, right: Any) -> bool:
        return bool(left < right)


class LessEqualOperator(_RangeOperator):
    operator = FilterOperator.LTE

    def compare(self, left: Any, right: Any) -> bool:
        return bool(left <= right)


# ---------------------------------------------------------------------------
# Set, null, between
# ---------------------------------------------------------------------------


class InOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.IN

    def prepare(self, condition_value: Any, options: ApplyOptions) -> Any:
        return [plain(v) for v in condition_value]

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        return plain(field_value) in condition_value


class NotInOperator(MemoryOperator):
    """An empty list matches everything, nulls included."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NIN

    def prepare(self, condition_value: Any, options: ApplyOptions) -> Any:
        return [plain(v) for v in condition_value]

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if not condition_value:
            return True
        if field_value is None:
            return False
        return plain(field_value) not in condition_value


class IsNullOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.IS_NULL

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        return (field_value is None) == bool(condition_value)


class BetweenOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.BETWEEN

    def prepare(self, condition_value: Any, options: ApplyOptions) -> Any:
        operator = self.name.value
        pair = normalize_pair(condition_value, operator=operator, path=options.path)
        return tuple(
            coerce_scalar(v, options.field_type, operator=operator, path=options.path)
            for v in pair
        )

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        start, end = condition_value
        return bool(start <= field_value <= end)


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------


class _PatternOperator(MemoryOperator):
    operator: FilterOperator
    flags = 0
    negate = False

    @property
    def name(self) -> FilterOperator:
        return self.operator

    def prepare(self, condition_value: Any, options: ApplyOptions) -> Any:
        return re.compile(self.regex(str(condition_value)), self.flags | re.DOTALL)

    def regex(self, value: str) -> str:
        return f"^{_sql_pattern_to_regex(value)}$"

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        matched = condition_value.search(str(plain(field_value))) is not None
        return matched != self.negate


class LikeOperator(_PatternOperator):
    operator = FilterOperator.LIKE


class NotLikeOperator(_PatternOperator):
    operator = FilterOperator.NLIKE
    negate = True


class ILikeOperator(_PatternOperator):
    operator = FilterOperator.ILIKE
    flags = re.IGNORECASE


class NotILikeOperator(_PatternOperator):
    operator = FilterOperator.NILIKE
    flags = re.IGNORECASE
    negate = True


class StartsWithOperator(_PatternOperator):
    operator = FilterOperator.STARTS_WITH

    def regex(self, value: str) -> str:
        return f"^{re.escape(value)}"


class IStartsWithOperator(StartsWithOperator):
    operator = FilterOperator.ISTARTS_WITH
    flags = re.IGNORECASE


class EndsWithOperator(_PatternOperator):
    operator = FilterOperator.ENDS_WITH

    def regex(self, value: str) -> str:
        return f"{re.escape(value)}$"


class IEndsWithOperator(EndsWithOperator):
    operator = FilterOperator.IENDS_WITH
    flags = re.IGNORECASE


class ContainsOperator(_PatternOperator):
    operator = FilterOperator.CONTAINS

    def regex(self, value: str) -> str:
        return re.escape(value)


class IContainsOperator(ContainsOperator):
    operator = FilterOperator.ICONTAINS
    flags = re.IGNORECASE


# ---------------------------------------------------------------------------
# Arrays
# ---------------------------------------------------------------------------


class _ArrayOperator(MemoryOperator):
    operator: FilterOperator

    @property
    def name(self) -> FilterOperator:
        return self.operator

    def prepare(self, condition_value: Any, options: ApplyOptions) -> Any:
        if isinstance(condition_value, list | tuple | set | frozenset):
            return frozenset(plain(v) for v in condition_value)
        return plain(condition_value)

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        return self.test({plain(v) for v in field_value}, condition_value)

    @abstractmethod
    def test(self, elements: set[Any], operand: Any) -> bool: ...


class IncludesOperator(_ArrayOperator):
    operator = FilterOperator.INCLUDES

    def test(self, elements: set[Any], operand: Any) -> bool:
        return operand in elements


class ExcludesOperator(_ArrayOperator):
    operator = FilterOperator.EXCLUDES

    def test(self, elements: set[Any], operand: Any) -> bool:
        return operand not in elements


class IncludesAllOperator(_ArrayOperator):
    operator = FilterOperator.INCLUDES_ALL

    def test(self, elements: set[Any], operand: Any) -> bool:
        return operand <= elements


class ExcludesAllOperator(_ArrayOperator):
    operator = FilterOperator.EXCLUDES_ALL

    def test(self, elements: set[Any], operand: Any) -> bool:
        return not operand & elements


class IncludesAnyOperator(_ArrayOperator):
    operator = FilterOperator.INCLUDES_ANY

    def test(self, elements: set[Any], operand: Any) -> bool:
        return bool(operand & elements)


class ExcludesAnyOperator(_ArrayOperator):
    operator = FilterOperator.EXCLUDES_ANY

    def test(self, elements: set[Any], operand: Any) -> bool:
        return not operand <= elements


class IsEmptyOperator(MemoryOperator):
    """``None`` counts as empty."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.IS_EMPTY

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        return (not field_value) == bool(condition_value)


# ---------------------------------------------------------------------------
# Coordinates
# ---------------------------------------------------------------------------


def as_point(value: Any) -> GeoPoint | None:
    if value is None:
        return None
    return normalize_point(value, operator="coordinates")


def haversine_meters(a: GeoPoint, b: GeoPoint) -> float:
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(h))


class PointEqualOperator(MemoryOperator):
    def __init__(self, alias: FilterOperator = FilterOperator.EQ) -> None:
        self._name = alias

    @property
    def name(self) -> FilterOperator:
        return self._name

    def prepare(self, condition_value: Any, options: ApplyOptions) -> Any:
        if condition_value is None:
            return None
        return normalize_point(condition_value, operator=self._name.value, path=options.path)

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        point = as_point(field_value)
        if self._name is FilterOperator.EQ:
            return point == condition_value
        if condition_value is None:
            return point is not None
        return point is not None and point != condition_value


class DWithinOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.ST_DWITHIN

    def prepare(self, condition_value: Any, options: ApplyOptions) -> Any:
        return normalize_distance(condition_value, unit_hint=options.hint, path=options.path)

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        point = as_point(field_value)
        if point is None:
            return False
        return haversine_meters(point, condition_value.point) <= condition_value.meters


class WithinBoundingBoxOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.ST_WITHIN_BOUNDING_BOX

    def prepare(self, condition_value: Any, options: ApplyOptions) -> Any:
        return normalize_bounding_box(condition_value, path=options.path)

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        point = as_point(field_value)
        if point is None:
            return False
        box = condition_value
        return box.sw.lat <= point.lat <= box.ne.lat and box.sw.lng <= point.lng <= box.ne.lng
