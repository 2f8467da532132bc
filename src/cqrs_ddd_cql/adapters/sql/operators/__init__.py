"""
SQLAlchemy operator implementations, grouped per semantic-type family.

Dialect adapters assemble their per-type registries from these groups::

    registry = SQLOperatorRegistry()
    registry.register_all(*equality_operators(), *string_operators(NativeILike()))
"""

from __future__ import annotations

from .array import (
    clickhouse_array_operators,
    mssql_array_operators,
    mysql_array_operators,
    postgres_array_operators,
    sqlite_array_operators,
)
from .geometry import (
    mysql_spatial_operators,
    postgis_operators,
    wkt_coordinate_operators,
)
from .null import IsNullOperator
from .set import InOperator, NotInOperator, set_operators
from .standard import equality_operators, range_operators
from .string import (
    CaseFolding,
    ClickHouseILike,
    CollateNoCase,
    LowerLike,
    NativeILike,
    string_operators,
)
from .temporal import (
    ClickHousePeriods,
    MSSQLPeriods,
    MySQLPeriods,
    PeriodExpressions,
    PostgresPeriods,
    SQLitePeriods,
    temporal_operators,
)

__all__ = [
    "CaseFolding",
    "ClickHouseILike",
    "ClickHousePeriods",
    "CollateNoCase",
    "InOperator",
    "IsNullOperator",
    "LowerLike",
    "MSSQLPeriods",
    "MySQLPeriods",
    "NativeILike",
    "NotInOperator",
    "PeriodExpressions",
    "PostgresPeriods",
    "SQLitePeriods",
    "clickhouse_array_operators",
    "equality_operators",
    "mssql_array_operators",
    "mysql_array_operators",
    "mysql_spatial_operators",
    "postgis_operators",
    "postgres_array_operators",
    "range_operators",
    "set_operators",
    "sqlite_array_operators",
    "string_operators",
    "temporal_operators",
    "wkt_coordinate_operators",
]
