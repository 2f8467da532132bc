"""SQLite adapter: json1 arrays, ``COLLATE NOCASE`` matching."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...operators import AdapterId, FilterOperator
from .base import SQLAdapter
from .operators import (
    CollateNoCase,
    SQLitePeriods,
    sqlite_array_operators,
    wkt_coordinate_operators,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .strategy import SQLOperator


class SQLiteAdapter(SQLAdapter):
    dialect_names = ("sqlite",)
    case_folding = CollateNoCase()
    periods = SQLitePeriods()
    native_nulls_ordering = True

    capabilities = {
        "max_in_clause_items": 500,
        "native_arrays": False,
        "supports_json_operators": True,
        "supports_full_text_search": False,
        "native_nulls_ordering": True,
        "supports_geo_ordering": False,
        "supports_priority_ordering": True,
    }

    required_features = {
        FilterOperator.INCLUDES: "json1",
        FilterOperator.EXCLUDES: "json1",
        FilterOperator.IS_EMPTY: "json1",
    }

    @property
    def adapter_id(self) -> AdapterId:
        return AdapterId.SQLITE

    def array_operators(self) -> Sequence[SQLOperator]:
        return sqlite_array_operators()

    def coordinate_operators(self) -> Sequence[SQLOperator]:
        return wkt_coordinate_operators()
