"""
Coordinate operators for SQLAlchemy.

Points are WGS 84 (EPSG:4326); operands are normalized with
:func:`normalize_point` so both ``[lat, lng]`` and ``{lat, lng}`` work.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import func, not_

from ....operators import FilterOperator
from ....values import normalize_bounding_box, normalize_distance, normalize_point
from ..strategy import SQLOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

    from ....values import GeoPoint
    from ...base import ApplyOptions

SRID = 4326


def postgis_point(point: GeoPoint) -> Any:
    return func.ST_SetSRID(func.ST_MakePoint(point.lng, point.lat), SRID)


def mysql_point(point: GeoPoint) -> Any:
    return func.ST_GeomFromText(point.wkt, SRID)


class _PointEquality(SQLOperator):
    """``ST_Equals`` against a point built by ``make_point``; ``None`` tests nullity."""

    def __init__(self, operator: FilterOperator, make_point: Any) -> None:
        self._name = operator
        self.make_point = make_point

    @property
    def name(self) -> FilterOperator:
        return self._name

    @property
    def negated(self) -> bool:
        return self._name is not FilterOperator.EQ

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        if value is None:
            expr = column.is_not(None) if self.negated else column.is_(None)
            return cast("ColumnElement[bool]", expr)
        point = normalize_point(value, operator=self._name.value, path=options.path)
        equals = func.ST_Equals(column, self.make_point(point))
        return cast("ColumnElement[bool]", not_(equals) if self.negated else equals)


class _WktEquality(_PointEquality):
    """Dialects without spatial functions compare the stored WKT text."""

    def __init__(self, operator: FilterOperator) -> None:
        super().__init__(operator, make_point=None)

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        if value is None:
            expr = column.is_not(None) if self.negated else column.is_(None)
            return cast("ColumnElement[bool]", expr)
        wkt = normalize_point(value, operator=self._name.value, path=options.path).wkt
        return cast("ColumnElement[bool]", column != wkt if self.negated else column == wkt)


class PostGISDWithinOperator(SQLOperator):
    """``ST_DWithin`` on geography, so the distance is in meters."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.ST_DWITHIN

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        target = normalize_distance(value, unit_hint=options.hint, path=options.path)
        return cast(
            "ColumnElement[bool]",
            func.ST_DWithin(
                func.geography(column),
                func.geography(postgis_point(target.point)),
                target.meters,
            ),
        )


class PostGISBoundingBoxOperator(SQLOperator):
    """Bounding-box overlap (``&&``) with ``ST_MakeEnvelope``."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.ST_WITHIN_BOUNDING_BOX

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        box = normalize_bounding_box(value, path=options.path)
        envelope = func.ST_MakeEnvelope(box.sw.lng, box.sw.lat, box.ne.lng, box.ne.lat, SRID)
        return cast("ColumnElement[bool]", column.op("&&", is_comparison=True)(envelope))


class MySQLDWithinOperator(SQLOperator):
    """``ST_Distance_Sphere(col, point) <= meters``."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.ST_DWITHIN

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        target = normalize_distance(value, unit_hint=options.hint, path=options.path)
        return cast(
            "ColumnElement[bool]",
            func.ST_Distance_Sphere(column, mysql_point(target.point)) <= target.meters,
        )


class CoordinatesIsNullOperator(SQLOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.IS_NULL

    def apply(self, column: Any, value: Any, options: ApplyOptions) -> ColumnElement[bool]:
        expr = column.is_(None) if value else column.is_not(None)
        return cast("ColumnElement[bool]", expr)


def postgis_operators() -> tuple[SQLOperator, ...]:
    return (
        _PointEquality(FilterOperator.EQ, postgis_point),
        _PointEquality(FilterOperator.NE, postgis_point),
        _PointEquality(FilterOperator.NEQ, postgis_point),
        CoordinatesIsNullOperator(),
        PostGISDWithinOperator(),
        PostGISBoundingBoxOperator(),
    )


def mysql_spatial_operators() -> tuple[SQLOperator, ...]:
    return (
        _PointEquality(FilterOperator.EQ, mysql_point),
        _PointEquality(FilterOperator.NE, mysql_point),
        _PointEquality(FilterOperator.NEQ, mysql_point),
        CoordinatesIsNullOperator(),
        MySQLDWithinOperator(),
    )


def wkt_coordinate_operators() -> tuple[SQLOperator, ...]:
    return (
        _WktEquality(FilterOperator.EQ),
        _WktEquality(FilterOperator.NE),
        _WktEquality(FilterOperator.NEQ),
        CoordinatesIsNullOperator(),
    )
