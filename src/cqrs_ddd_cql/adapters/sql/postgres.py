"""PostgreSQL adapter: native arrays, ``ILIKE``, PostGIS coordinates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from ...operators import AdapterId, FilterOperator
from .base import SQLAdapter
from .operators import (
    NativeILike,
    PostgresPeriods,
    postgis_operators,
    postgres_array_operators,
)
from .operators.geometry import postgis_point

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ...values import GeoPoint
    from .strategy import SQLOperator


class PostgresAdapter(SQLAdapter):
    dialect_names = ("postgresql",)
    case_folding = NativeILike()
    periods = PostgresPeriods()
    native_nulls_ordering = True

    capabilities = {
        "max_in_clause_items": 10_000,
        "native_arrays": True,
        "array_operators_require_type_cast": True,
        "supports_json_operators": True,
        "supports_full_text_search": True,
        "native_nulls_ordering": True,
        "supports_geo_ordering": True,
        "supports_priority_ordering": True,
    }

    required_features = {
        FilterOperator.ST_DWITHIN: "postgis",
        FilterOperator.ST_WITHIN_BOUNDING_BOX: "postgis",
    }

    @property
    def adapter_id(self) -> AdapterId:
        return AdapterId.POSTGRES

    def array_operators(self) -> Sequence[SQLOperator]:
        return postgres_array_operators()

    def coordinate_operators(self) -> Sequence[SQLOperator]:
        return postgis_operators()

    def distance_expression(self, column: Any, center: GeoPoint) -> Any:
        return func.ST_Distance(func.geography(column), func.geography(postgis_point(center)))
