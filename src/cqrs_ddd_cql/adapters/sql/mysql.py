"""MySQL / MariaDB adapter: JSON arrays, ``LOWER() LIKE``, spatial functions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from ...operators import AdapterId, FilterOperator
from .base import SQLAdapter
from .operators import (
    LowerLike,
    MySQLPeriods,
    mysql_array_operators,
    mysql_spatial_operators,
)
from .operators.geometry import mysql_point

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ...values import GeoPoint
    from .strategy import SQLOperator


class MySQLAdapter(SQLAdapter):
    """
    ``NULLS FIRST/LAST`` is emulated with an ``IS NULL`` sort key.
    ``_includes_any`` needs ``JSON_OVERLAPS`` (MySQL 8.0.17+).
    """

    dialect_names = ("mysql", "mariadb")
    case_folding = LowerLike()
    periods = MySQLPeriods()
    native_nulls_ordering = False

    capabilities = {
        "max_in_clause_items": 1000,
        "native_arrays": False,
        "array_operators_require_type_cast": False,
        "supports_json_operators": True,
        "supports_full_text_search": True,
        "native_nulls_ordering": False,
        "supports_geo_ordering": True,
        "supports_priority_ordering": True,
    }

    required_features = {
        FilterOperator.INCLUDES_ANY: "json_overlaps",
        FilterOperator.ST_DWITHIN: "geo_queries",
    }

    @property
    def adapter_id(self) -> AdapterId:
        return AdapterId.MYSQL

    def array_operators(self) -> Sequence[SQLOperator]:
        return mysql_array_operators()

    def coordinate_operators(self) -> Sequence[SQLOperator]:
        return mysql_spatial_operators()

    def distance_expression(self, column: Any, center: GeoPoint) -> Any:
        return func.ST_Distance_Sphere(column, mysql_point(center))
