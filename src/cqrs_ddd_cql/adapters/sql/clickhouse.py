"""ClickHouse adapter: native ``Array`` columns, ``ilike()`` matching."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...operators import AdapterId
from .base import SQLAdapter
from .operators import (
    ClickHouseILike,
    ClickHousePeriods,
    clickhouse_array_operators,
    wkt_coordinate_operators,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .strategy import SQLOperator


class ClickHouseAdapter(SQLAdapter):
    """
    ClickHouse array columns come from third-party dialect types; declare
    them with ``info={"cql_type": "array_string"}`` on the column.
    """

    dialect_names = ("clickhouse",)
    case_folding = ClickHouseILike()
    periods = ClickHousePeriods()
    native_nulls_ordering = True

    capabilities = {
        "max_in_clause_items": 10_000,
        "native_arrays": True,
        "supports_json_operators": False,
        "supports_full_text_search": False,
        "native_nulls_ordering": True,
        "supports_geo_ordering": False,
        "supports_priority_ordering": True,
        "supports_transactions": False,
    }

    @property
    def adapter_id(self) -> AdapterId:
        return AdapterId.CLICKHOUSE

    def array_operators(self) -> Sequence[SQLOperator]:
        return clickhouse_array_operators()

    def coordinate_operators(self) -> Sequence[SQLOperator]:
        return wkt_coordinate_operators()
