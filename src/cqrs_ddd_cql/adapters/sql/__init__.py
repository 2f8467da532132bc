"""SQLAlchemy 2.x adapters, one per SQL dialect family."""

from __future__ import annotations

from .base import SQLAdapter
from .clickhouse import ClickHouseAdapter
from .mssql import MSSQLAdapter
from .mysql import MySQLAdapter
from .postgres import PostgresAdapter
from .sqlite import SQLiteAdapter
from .strategy import SQLOperator, SQLOperatorRegistry

__all__ = [
    "ClickHouseAdapter",
    "MSSQLAdapter",
    "MySQLAdapter",
    "PostgresAdapter",
    "SQLAdapter",
    "SQLOperator",
    "SQLOperatorRegistry",
    "SQLiteAdapter",
]
