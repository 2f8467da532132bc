"""SQL Server adapter: ``OPENJSON`` arrays, ``LOWER() LIKE`` matching."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...operators import AdapterId, FilterOperator
from .base import SQLAdapter
from .operators import (
    LowerLike,
    MSSQLPeriods,
    mssql_array_operators,
    wkt_coordinate_operators,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .strategy import SQLOperator


class MSSQLAdapter(SQLAdapter):
    """
    Array operators require SQL Server 2016+ (``OPENJSON``); ``NULLS
    FIRST/LAST`` is emulated with an ``IS NULL`` sort key.
    """

    dialect_names = ("mssql",)
    case_folding = LowerLike()
    periods = MSSQLPeriods()
    native_nulls_ordering = False

    capabilities = {
        "max_in_clause_items": 1000,
        "native_arrays": False,
        "array_operators_require_type_cast": False,
        "supports_json_operators": True,
        "supports_full_text_search": True,
        "native_nulls_ordering": False,
        "requires_sql_server_2016_plus": True,
        "case_sensitivity_depends_on_collation": True,
        "supports_geo_ordering": False,
        "supports_priority_ordering": True,
    }

    required_features = {
        FilterOperator.INCLUDES: "openjson",
        FilterOperator.EXCLUDES: "openjson",
        FilterOperator.INCLUDES_ANY: "openjson",
        FilterOperator.IS_EMPTY: "openjson",
    }

    @property
    def adapter_id(self) -> AdapterId:
        return AdapterId.MSSQL

    def array_operators(self) -> Sequence[SQLOperator]:
        return mssql_array_operators()

    def coordinate_operators(self) -> Sequence[SQLOperator]:
        return wkt_coordinate_operators()
