"""Normalization of structured operator values (periods, ranges, geo points)."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

from .exceptions import InvalidValueError
from .operators import SemanticType


class PeriodDirection(str, Enum):
    LAST = "last"
    NEXT = "next"


class PeriodUnit(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class DistanceUnit(str, Enum):
    METERS = "m"
    KILOMETERS = "km"
    MILES = "mi"

    @property
    def meters(self) -> float:
        return _METERS_PER_UNIT[self]


_METERS_PER_UNIT = {
    DistanceUnit.METERS: 1.0,
    DistanceUnit.KILOMETERS: 1000.0,
    DistanceUnit.MILES: 1609.344,
}


@dataclass(frozen=True)
class Period:
    direction: PeriodDirection
    unit: PeriodUnit
    count: int = 1


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    @property
    def wkt(self) -> str:
        return f"POINT({self.lng} {self.lat})"


@dataclass(frozen=True)
class GeoDistance:
    point: GeoPoint
    distance: float
    unit: DistanceUnit = DistanceUnit.METERS

    @property
    def meters(self) -> float:
        return self.distance * self.unit.meters


@dataclass(frozen=True)
class BoundingBox:
    sw: GeoPoint
    ne: GeoPoint


def _enum_value(enum_cls: type[Enum], raw: Any, *, operator: str, path: str | None):
    try:
        return enum_cls(str(raw).lower())
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)  # type: ignore[attr-defined]
        raise InvalidValueError(
            f"Invalid {enum_cls.__name__} '{raw}'. Expected one of: {valid}",
            operator=operator,
            value=raw,
            path=path,
        ) from None


def normalize_period(value: Any, *, path: str | None = None) -> Period:
    """``{direction, unit, count=1}`` -> :class:`Period`."""
    if isinstance(value, Period):
        return value
    if not isinstance(value, Mapping) or "unit" not in value or "direction" not in value:
        raise InvalidValueError(
            "_period expects {direction: last|next, unit: ..., count: n}",
            operator="_period",
            value=value,
            path=path,
        )
    count = value.get("count", 1)
    if not isinstance(count, int) or isinstance(count, bool) or count < 1:
        raise InvalidValueError(
            "_period count must be a positive integer",
            operator="_period",
            value=count,
            path=path,
        )
    return Period(
        direction=_enum_value(
            PeriodDirection, value["direction"], operator="_period", path=path
        ),
        unit=_enum_value(PeriodUnit, value["unit"], operator="_period", path=path),
        count=count,
    )


def normalize_current_period(value: Any, *, path: str | None = None) -> PeriodUnit:
    """``{unit}`` -> :class:`PeriodUnit`."""
    if isinstance(value, PeriodUnit):
        return value
    if not isinstance(value, Mapping) or "unit" not in value:
        raise InvalidValueError(
            "_current_period expects {unit: hour|day|week|month|quarter|year}",
            operator="_current_period",
            value=value,
            path=path,
        )
    return _enum_value(
        PeriodUnit, value["unit"], operator="_current_period", path=path
    )


def normalize_pair(value: Any, *, operator: str, path: str | None = None) -> tuple[Any, Any]:
    if isinstance(value, Mapping) and "start" in value and "end" in value:
        return value["start"], value["end"]
    if not isinstance(value, list | tuple) or len(value) != 2:
        raise InvalidValueError(
            f"{operator} requires a list of two values",
            operator=operator,
            value=value,
            path=path,
        )
    return value[0], value[1]


def normalize_point(value: Any, *, operator: str, path: str | None = None) -> GeoPoint:
    """
    Accept ``(lat, lng)``, ``{lat, lng}`` or ``{latitude, longitude}``.
    """
    if isinstance(value, GeoPoint):
        return value
    lat: Any = None
    lng: Any = None
    if isinstance(value, list | tuple) and len(value) == 2:
        lat, lng = value
    elif isinstance(value, Mapping):
        lat = value.get("lat", value.get("latitude"))
        lng = value.get("lng", value.get("longitude"))
    if not isinstance(lat, int | float) or not isinstance(lng, int | float):
        raise InvalidValueError(
            f"{operator} expects coordinates as {{lat, lng}}",
            operator=operator,
            value=value,
            path=path,
        )
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise InvalidValueError(
            f"Coordinates out of range: lat={lat}, lng={lng}",
            operator=operator,
            value=value,
            path=path,
        )
    return GeoPoint(float(lat), float(lng))


def normalize_distance(
    value: Any, *, unit_hint: Any = None, path: str | None = None
) -> GeoDistance:
    """``{point, distance, unit?}``; the unit falls back to the adapter hint, then meters."""
    if isinstance(value, GeoDistance):
        return value
    if not isinstance(value, Mapping) or "point" not in value or "distance" not in value:
        raise InvalidValueError(
            "_st_dwithin expects {point: {lat, lng}, distance: n}",
            operator="_st_dwithin",
            value=value,
            path=path,
        )
    distance = value["distance"]
    if not isinstance(distance, int | float) or distance < 0:
        raise InvalidValueError(
            "_st_dwithin distance must be a non-negative number",
            operator="_st_dwithin",
            value=distance,
            path=path,
        )
    raw_unit = value.get("unit", unit_hint) or DistanceUnit.METERS
    return GeoDistance(
        point=normalize_point(value["point"], operator="_st_dwithin", path=path),
        distance=float(distance),
        unit=_enum_value(DistanceUnit, raw_unit, operator="_st_dwithin", path=path),
    )


def normalize_bounding_box(value: Any, *, path: str | None = None) -> BoundingBox:
    if isinstance(value, BoundingBox):
        return value
    if not isinstance(value, Mapping) or "sw" not in value or "ne" not in value:
        raise InvalidValueError(
            "_st_within_bounding_box expects {sw: {lat, lng}, ne: {lat, lng}}",
            operator="_st_within_bounding_box",
            value=value,
            path=path,
        )
    op = "_st_within_bounding_box"
    return BoundingBox(
        sw=normalize_point(value["sw"], operator=op, path=path),
        ne=normalize_point(value["ne"], operator=op, path=path),
    )


def escape_like(value: str, escape: str = "\\") -> str:
    """Escape ``%`` and ``_`` so a literal substring can be embedded in LIKE."""
    return (
        value.replace(escape, escape * 2).replace("%", f"{escape}%").replace("_", f"{escape}_")
    )


def _parse_datetime(raw: str) -> datetime:
    # fromisoformat only accepts a trailing "Z" from 3.11 on
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    return datetime.fromisoformat(raw)


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    return _parse_datetime(str(value))


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return _parse_datetime(str(value)).date()


def _to_time(value: Any) -> time:
    return value if isinstance(value, time) else time.fromisoformat(str(value))


def _to_int(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, int | float | Decimal):
        return value
    return int(str(value))


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(value)
    return float(value)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(value)
    return value if isinstance(value, Decimal) else Decimal(str(value))


_COERCERS: dict[SemanticType, Callable[[Any], Any]] = {
    SemanticType.DATETIME: _to_datetime,
    SemanticType.DATE: _to_date,
    SemanticType.TIME: _to_time,
    SemanticType.INTEGER: _to_int,
    SemanticType.FLOAT: _to_float,
    SemanticType.DECIMAL: _to_decimal,
}


def coerce_scalar(
    value: Any,
    semantic_type: SemanticType | None,
    *,
    operator: str,
    path: str | None = None,
) -> Any:
    """
    Convert a payload operand to the Python type of the field it is compared
    with: ISO 8601 strings for temporal fields, numeric strings for numbers.
    ``None`` and types without a coercion pass through.

    Raises:
        InvalidValueError: The operand cannot represent a value of that type.
    """
    coerce = _COERCERS.get(semantic_type) if semantic_type is not None else None
    if value is None or coerce is None:
        return value
    try:
        return coerce(value)
    except (TypeError, ValueError, ArithmeticError):
        raise InvalidValueError(
            f"{operator} expects a {semantic_type.value} value, got {value!r}",
            operator=operator,
            value=value,
            path=path,
        ) from None
