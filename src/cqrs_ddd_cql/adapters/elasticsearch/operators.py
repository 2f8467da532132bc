"""
Elasticsearch operator compilers.

Each ``compile_*`` function turns ``field <op> value`` into a query DSL
clause, or returns ``None`` when the operator is not in its family. The
sentinels :data:`MATCH_ALL` and :data:`MATCH_NONE` are the identity and the
empty filter; the adapter's combinators simplify them away.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from ...exceptions import InvalidValueError
from ...operators import FilterOperator
from ...values import (
    PeriodDirection,
    PeriodUnit,
    normalize_bounding_box,
    normalize_current_period,
    normalize_distance,
    normalize_pair,
    normalize_period,
    normalize_point,
)

MATCH_ALL: dict[str, Any] = {"match_all": {}}
MATCH_NONE: dict[str, Any] = {"match_none": {}}

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def must_not(clause: dict[str, Any]) -> dict[str, Any]:
    return {"bool": {"must_not": [clause]}}


def _exists(field: str) -> dict[str, Any]:
    return {"exists": {"field": field}}


def _as_list(value: Any, op: FilterOperator, path: str | None) -> list[Any]:
    if not isinstance(value, list | tuple | set | frozenset):
        raise InvalidValueError(f"{op.value} expects a list", operator=op.value, path=path)
    return list(value)


# ---------------------------------------------------------------------------
# Standard, set and null
# ---------------------------------------------------------------------------


def compile_standard(
    field: str, op: FilterOperator, val: Any, path: str | None = None
) -> dict[str, Any] | None:
    """``term`` / ``range`` comparisons; ``None`` operands test field presence."""
    if op is FilterOperator.EQ:
        return must_not(_exists(field)) if val is None else {"term": {field: val}}
    if op in (FilterOperator.NE, FilterOperator.NEQ):
        return _exists(field) if val is None else must_not({"term": {field: val}})
    bounds = {
        FilterOperator.GT: "gt",
        FilterOperator.GTE: "gte",
        FilterOperator.LT: "lt",
        FilterOperator.LTE: "lte",
    }
    if op in bounds:
        return {"range": {field: {bounds[op]: val}}}
    return None


def compile_set(
    field: str, op: FilterOperator, val: Any, path: str | None = None
) -> dict[str, Any] | None:
    if op is FilterOperator.IN:
        values = _as_list(val, op, path)
        return {"terms": {field: values}} if values else MATCH_NONE
    if op is FilterOperator.NIN:
        values = _as_list(val, op, path)
        return must_not({"terms": {field: values}}) if values else MATCH_ALL
    return None


def compile_null(
    field: str, op: FilterOperator, val: Any, path: str | None = None
) -> dict[str, Any] | None:
    if op is not FilterOperator.IS_NULL:
        return None
    return must_not(_exists(field)) if val else _exists(field)


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------


def _wildcard_escape(s: str) -> str:
    return s.replace("\\", "\\\\").replace("*", "\\*").replace("?", "\\?")


def like_to_wildcard(pattern: str) -> str:
    """SQL ``LIKE`` pattern (``%``, ``_``) to a wildcard query pattern."""
    return _wildcard_escape(pattern).replace("%", "*").replace("_", "?")


def _wildcard(field: str, pattern: str, insensitive: bool) -> dict[str, Any]:
    body: dict[str, Any] = {"value": pattern}
    if insensitive:
        body["case_insensitive"] = True
    return {"wildcard": {field: body}}


def compile_string(
    field: str, op: FilterOperator, val: Any, path: str | None = None
) -> dict[str, Any] | None:
    """Pattern operators to ``wildcard`` / ``prefix`` queries."""
    insensitive = op in (
        FilterOperator.ILIKE,
        FilterOperator.NILIKE,
        FilterOperator.ISTARTS_WITH,
        FilterOperator.IENDS_WITH,
        FilterOperator.ICONTAINS,
    )
    if op in (FilterOperator.LIKE, FilterOperator.ILIKE):
        return _wildcard(field, like_to_wildcard(str(val)), insensitive)
    if op in (FilterOperator.NLIKE, FilterOperator.NILIKE):
        return must_not(_wildcard(field, like_to_wildcard(str(val)), insensitive))
    if op in (FilterOperator.STARTS_WITH, FilterOperator.ISTARTS_WITH):
        body: dict[str, Any] = {"value": str(val)}
        if insensitive:
            body["case_insensitive"] = True
        return {"prefix": {field: body}}
    if op in (FilterOperator.ENDS_WITH, FilterOperator.IENDS_WITH):
        return _wildcard(field, f"*{_wildcard_escape(str(val))}", insensitive)
    if op in (FilterOperator.CONTAINS, FilterOperator.ICONTAINS):
        return _wildcard(field, f"*{_wildcard_escape(str(val))}*", insensitive)
    return None


def compile_full_text(
    field: str, op: FilterOperator, val: Any, path: str | None = None
) -> dict[str, Any] | None:
    if op is FilterOperator.MATCH:
        return {"match": {field: {"query": val}}}
    if op is FilterOperator.MATCH_PHRASE:
        return {"match_phrase": {field: {"query": val}}}
    if op is FilterOperator.MATCH_PHRASE_PREFIX:
        return {"match_phrase_prefix": {field: {"query": val}}}
    if op is FilterOperator.FUZZY:
        if isinstance(val, Mapping):
            return {
                "fuzzy": {
                    field: {
                        "value": val.get("value"),
                        "fuzziness": val.get("fuzziness", "AUTO"),
                    }
                }
            }
        return {"fuzzy": {field: {"value": val, "fuzziness": "AUTO"}}}
    if op is FilterOperator.PREFIX:
        return {"prefix": {field: {"value": val}}}
    if op is FilterOperator.REGEXP:
        return {"regexp": {field: {"value": val}}}
    if op is FilterOperator.WILDCARD:
        return {"wildcard": {field: {"value": val}}}
    return None


# ---------------------------------------------------------------------------
# Temporal (date math)
# ---------------------------------------------------------------------------

_DATE_MATH_UNITS = {
    PeriodUnit.HOUR: "h",
    PeriodUnit.DAY: "d",
    PeriodUnit.WEEK: "w",
    PeriodUnit.MONTH: "M",
    PeriodUnit.YEAR: "y",
}


def _offset(count: int, unit: PeriodUnit) -> str:
    if unit is PeriodUnit.QUARTER:
        count, unit = count * 3, PeriodUnit.MONTH
    sign = "-" if count < 0 else "+"
    return f"{sign}{abs(count)}{_DATE_MATH_UNITS[unit]}"


def current_period_bounds(unit: PeriodUnit, now: datetime) -> tuple[str, str]:
    """
    Date-math bounds of the current *unit*.

    Date math has no quarter rounding, so the quarter start is derived from
    the calendar month of *now*.
    """
    if unit is PeriodUnit.QUARTER:
        back = (now.month - 1) % 3
        start = f"now/M-{back}M" if back else "now/M"
        return start, f"{start}+3M"
    suffix = _DATE_MATH_UNITS[unit]
    return f"now/{suffix}", f"now+1{suffix}/{suffix}"


def compile_temporal(
    field: str,
    op: FilterOperator,
    val: Any,
    path: str | None = None,
    *,
    clock: Clock = utc_now,
) -> dict[str, Any] | None:
    if op is FilterOperator.BETWEEN:
        start, end = normalize_pair(val, operator=op.value, path=path)
        return {"range": {field: {"gte": start, "lte": end}}}
    if op is FilterOperator.PERIOD:
        period = normalize_period(val, path=path)
        if period.direction is PeriodDirection.LAST:
            bounds = {"gte": f"now{_offset(-period.count, period.unit)}", "lte": "now"}
        else:
            bounds = {"gte": "now", "lte": f"now{_offset(period.count, period.unit)}"}
        return {"range": {field: bounds}}
    if op is FilterOperator.CURRENT_PERIOD:
        unit = normalize_current_period(val, path=path)
        start, end = current_period_bounds(unit, clock())
        return {"range": {field: {"gte": start, "lt": end}}}
    return None


# ---------------------------------------------------------------------------
# Arrays
# ---------------------------------------------------------------------------


def compile_array(
    field: str, op: FilterOperator, val: Any, path: str | None = None
) -> dict[str, Any] | None:
    """
    Keyword arrays: every element is indexed, so ``term`` matches membership.
    Missing and empty arrays are indistinguishable to ``exists``.
    """
    if op is FilterOperator.INCLUDES:
        return {"term": {field: val}}
    if op is FilterOperator.EXCLUDES:
        return must_not({"term": {field: val}})
    if op is FilterOperator.INCLUDES_ALL:
        values = _as_list(val, op, path)
        if not values:
            return MATCH_ALL
        return {"bool": {"filter": [{"term": {field: v}} for v in values]}}
    if op is FilterOperator.EXCLUDES_ALL:
        values = _as_list(val, op, path)
        return must_not({"terms": {field: values}}) if values else MATCH_ALL
    if op is FilterOperator.INCLUDES_ANY:
        values = _as_list(val, op, path)
        return {"terms": {field: values}} if values else MATCH_NONE
    if op is FilterOperator.EXCLUDES_ANY:
        values = _as_list(val, op, path)
        if not values:
            return MATCH_NONE
        return must_not({"bool": {"filter": [{"term": {field: v}} for v in values]}})
    if op in (FilterOperator.IS_EMPTY, FilterOperator.IS_NULL):
        return must_not(_exists(field)) if val else _exists(field)
    return None


# ---------------------------------------------------------------------------
# Geo
# ---------------------------------------------------------------------------


def _geo_point(point: Any) -> dict[str, float]:
    return {"lat": point.lat, "lon": point.lng}


def compile_geo(
    field: str,
    op: FilterOperator,
    val: Any,
    path: str | None = None,
    *,
    unit_hint: Any = None,
) -> dict[str, Any] | None:
    """``geo_point`` fields; exact point equality is a degenerate bounding box."""
    if op in (FilterOperator.EQ, FilterOperator.NE, FilterOperator.NEQ):
        if val is None:
            return compile_standard(field, op, None, path)
        point = _geo_point(normalize_point(val, operator=op.value, path=path))
        clause = {"geo_bounding_box": {field: {"top_left": point, "bottom_right": point}}}
        return clause if op is FilterOperator.EQ else must_not(clause)
    if op is FilterOperator.IS_NULL:
        return compile_null(field, op, val, path)
    if op is FilterOperator.ST_DWITHIN:
        target = normalize_distance(val, unit_hint=unit_hint, path=path)
        return {
            "geo_distance": {
                "distance": f"{target.meters}m",
                field: _geo_point(target.point),
            }
        }
    if op is FilterOperator.ST_WITHIN_BOUNDING_BOX:
        box = normalize_bounding_box(val, path=path)
        return {
            "geo_bounding_box": {
                field: {
                    "top_left": {"lat": box.ne.lat, "lon": box.sw.lng},
                    "bottom_right": {"lat": box.sw.lat, "lon": box.ne.lng},
                }
            }
        }
    return None
