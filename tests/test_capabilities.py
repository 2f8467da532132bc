"""Tests for backend capability detection."""

from __future__ import annotations

from collections.abc import Callable
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.dialects import mssql, mysql, postgresql, sqlite

from cqrs_ddd_cql.adapters import ElasticsearchAdapter
from cqrs_ddd_cql.capabilities import (
    AdapterCapabilities,
    CapabilityDetector,
    log_report,
    parse_version,
    report,
    require,
    static_capabilities,
    supports,
)
from cqrs_ddd_cql.config import CapabilitySettings
from cqrs_ddd_cql.exceptions import CapabilityMissingError
from cqrs_ddd_cql.operators import AdapterId

FakeConnection = Callable[..., MagicMock]

PG_VERSION = "PostgreSQL 15.2 on x86_64-pc-linux-gnu, compiled by gcc"


def postgres_responses(extensions: list[tuple[str, str]]) -> dict[str, object]:
    return {
        "SELECT version()": PG_VERSION,
        "SELECT extname, extversion FROM pg_extension": extensions,
    }


# -- version parsing -----------------------------------------------------------


def test_parse_version() -> None:
    assert parse_version("8.0.35-log", r"(\d+)\.(\d+)\.(\d+)") == (8, 0, 35)
    assert parse_version(PG_VERSION, r"PostgreSQL (\d+)\.(\d+)", parts=2) == (15, 2)


def test_unparsable_version_is_conservative() -> None:
    assert parse_version("garbage", r"(\d+)\.(\d+)\.(\d+)") == (0, 0, 0)
    assert parse_version(None, r"(\d+)\.(\d+)", parts=2) == (0, 0)


# -- detection -----------------------------------------------------------------


def test_postgres_with_extensions(fake_connection: FakeConnection) -> None:
    conn = fake_connection(
        postgresql.dialect(),
        postgres_responses([("plpgsql", "1.0"), ("postgis", "3.4.0"), ("pg_trgm", "1.6")]),
    )
    caps = CapabilityDetector().detect(conn)
    assert caps.adapter_id is AdapterId.POSTGRES
    assert caps.version == (15, 2)
    assert caps.extensions == frozenset({"plpgsql", "postgis", "pg_trgm"})
    assert caps.supports("postgis")
    assert caps.supports("similarity_search")
    assert caps.supports("jsonb_path_queries")
    assert caps.version_of("postgis") == (3, 4, 0)
    assert caps.version_of() == (15, 2)
    assert caps.version_of("postgres") == (15, 2)


def test_postgres_without_extensions(fake_connection: FakeConnection) -> None:
    conn = fake_connection(postgresql.dialect(), postgres_responses([]))
    caps = CapabilityDetector().detect(conn)
    assert not caps.supports("postgis")
    assert not caps.supports("geo_queries")
    assert caps.version_of("postgis") is None


def test_postgres_extension_listing_failure(fake_connection: FakeConnection) -> None:
    conn = fake_connection(
        postgresql.dialect(),
        {
            "SELECT version()": PG_VERSION,
            "SELECT extname, extversion FROM pg_extension": PermissionError("denied"),
        },
    )
    caps = CapabilityDetector().detect(conn)
    assert caps.extensions == frozenset()
    assert caps.supports("jsonb_support")


@pytest.mark.parametrize(
    ("version", "overlaps"),
    [("8.0.16", False), ("8.0.17", True), ("8.4.0-commercial", True)],
)
def test_mysql_json_overlaps_threshold(
    fake_connection: FakeConnection, version: str, overlaps: bool
) -> None:
    conn = fake_connection(mysql.dialect(), {"SELECT VERSION()": version})
    caps = CapabilityDetector().detect(conn)
    assert caps.adapter_id is AdapterId.MYSQL
    assert caps.supports("json_overlaps") is overlaps
    assert caps.supports("geo_queries")


@pytest.mark.parametrize(
    ("version", "overlaps", "json_table"),
    [
        ("10.6.12-MariaDB-1:10.6.12+maria~ubu2004", False, True),
        ("10.11.6-MariaDB", True, True),
        ("10.5.23-MariaDB-log", False, False),
    ],
)
def test_mariadb_has_its_own_thresholds(
    fake_connection: FakeConnection, version: str, overlaps: bool, json_table: bool
) -> None:
    conn = fake_connection(mysql.dialect(), {"SELECT VERSION()": version})
    caps = CapabilityDetector().detect(conn)
    assert caps.adapter_id is AdapterId.MYSQL
    assert caps.supports("mariadb")
    assert caps.supports("json_overlaps") is overlaps
    assert caps.supports("json_table") is json_table


def test_mysql_unreadable_version(fake_connection: FakeConnection) -> None:
    conn = fake_connection(mysql.dialect(), {"SELECT VERSION()": RuntimeError("gone")})
    caps = CapabilityDetector().detect(conn)
    assert caps.version == (0, 0, 0)
    assert not caps.supports("json_overlaps")
    assert not caps.supports("json_support")


def test_sqlite_extension_detection(fake_connection: FakeConnection) -> None:
    conn = fake_connection(
        sqlite.dialect(),
        {"SELECT sqlite_version()": "3.45.1", "SELECT json('{}')": "{}"},
    )
    caps = CapabilityDetector().detect(conn)
    assert caps.version == (3, 45, 1)
    assert caps.extensions == frozenset({"json1"})
    assert caps.supports("json_support")
    assert not caps.supports("full_text_search")
    assert not caps.supports("geo_queries")


def test_mssql_version(fake_connection: FakeConnection) -> None:
    conn = fake_connection(
        mssql.dialect(),
        {
            "SELECT @@VERSION": (
                "Microsoft SQL Server 2019 (RTM-CU22) (KB5027702) - 15.0.4322.2 (X64)"
            )
        },
    )
    caps = CapabilityDetector().detect(conn)
    assert caps.version == (15, 0)
    assert caps.supports("openjson")


def test_clickhouse_version(fake_connection: FakeConnection) -> None:
    conn = fake_connection(SimpleNamespace(name="clickhouse"), {"SELECT version()": "23.8.2.7"})
    caps = CapabilityDetector().detect(conn)
    assert caps.adapter_id is AdapterId.CLICKHOUSE
    assert caps.supports("json_support")
    assert caps.supports("array_support")


def test_unknown_dialect_has_no_capabilities(fake_connection: FakeConnection) -> None:
    conn = fake_connection(SimpleNamespace(name="oracle"))
    caps = CapabilityDetector().detect(conn)
    assert caps.adapter_id is None
    assert caps.features == {}
    conn.execute.assert_not_called()


def test_engine_is_connected(fake_connection: FakeConnection) -> None:
    conn = fake_connection(sqlite.dialect(), {"SELECT sqlite_version()": "3.40.0"})
    engine = MagicMock()
    engine.dialect = sqlite.dialect()
    engine.connect.return_value.__enter__.return_value = conn
    caps = CapabilityDetector().detect(engine)
    assert caps.version == (3, 40, 0)
    engine.connect.assert_called_once()


def test_unreachable_database_yields_empty_capabilities(
    caplog: pytest.LogCaptureFixture,
) -> None:
    engine = create_engine("sqlite:////nonexistent_dir_for_cql_tests/db.sqlite")
    with caplog.at_level("WARNING", logger="cqrs_ddd.cql.capabilities"):
        caps = CapabilityDetector().detect(engine)
    assert caps == AdapterCapabilities(adapter_id=AdapterId.SQLITE)
    assert not caps.supports("json1")
    assert "Capability detection" in caplog.text
    engine.dispose()


def test_failed_connection_is_not_cached() -> None:
    engine = MagicMock()
    engine.dialect = postgresql.dialect()
    engine.connect.side_effect = ConnectionRefusedError("down")
    detector = CapabilityDetector()
    assert detector.detect(engine).adapter_id is AdapterId.POSTGRES
    assert not detector.detect(engine).supports("postgis")
    assert engine.connect.call_count == 2


# -- caching -------------------------------------------------------------------


def test_detection_is_cached_per_bind(fake_connection: FakeConnection) -> None:
    conn = fake_connection(mysql.dialect(), {"SELECT VERSION()": "8.0.36"})
    detector = CapabilityDetector()
    first = detector.detect(conn)
    assert detector.detect(conn) is first
    assert conn.execute.call_count == 1

    detector.detect(conn, refresh=True)
    assert conn.execute.call_count == 2

    detector.clear()
    detector.detect(conn)
    assert conn.execute.call_count == 3


def test_cache_can_be_disabled(fake_connection: FakeConnection) -> None:
    conn = fake_connection(mysql.dialect(), {"SELECT VERSION()": "8.0.36"})
    detector = CapabilityDetector.from_settings(CapabilitySettings(cache_enabled=False))
    detector.detect(conn)
    detector.detect(conn)
    assert conn.execute.call_count == 2


# -- helpers -------------------------------------------------------------------


def test_require_raises_with_context() -> None:
    caps = AdapterCapabilities(
        adapter_id=AdapterId.POSTGRES, version=(15, 2), features={"postgis": False}
    )
    with pytest.raises(CapabilityMissingError) as exc_info:
        require(caps, "postgis")
    err = exc_info.value
    assert "Database: PostgreSQL 15.2" in str(err)
    assert "Required feature: PostGIS extension" in str(err)
    assert err.to_dict()["error"] == "CAPABILITY_MISSING"
    assert err.to_dict()["feature"] == "postgis"


def test_require_passes_and_custom_message() -> None:
    caps = AdapterCapabilities(adapter_id=AdapterId.MYSQL, features={"json_overlaps": True})
    require(caps, "json_overlaps")
    with pytest.raises(CapabilityMissingError, match="upgrade MySQL"):
        require(caps, "json_table", "upgrade MySQL")
    assert supports(caps, "json_overlaps")


def test_report() -> None:
    caps = AdapterCapabilities(
        adapter_id=AdapterId.POSTGRES,
        version=(15, 2),
        extensions=frozenset({"postgis"}),
        features={"postgis": True, "pg_trgm": False, "array_support": True},
    )
    assert report(caps) == (
        "Database: PostgreSQL 15.2\n"
        "Extensions: postgis\n"
        "Features:\n"
        "  ✓ Array support\n"
        "  ✓ PostGIS extension\n"
    )


def test_report_for_unknown_backend() -> None:
    assert report(AdapterCapabilities(adapter_id=None)) == "Database: unknown 0.0\n"


def test_log_report(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("INFO", logger="cqrs_ddd.cql.capabilities"):
        log_report(AdapterCapabilities(adapter_id=AdapterId.SQLITE, version=(3, 45, 1)))
    assert "Database: SQLite 3.45.1" in caplog.text


def test_static_capabilities_keep_boolean_flags() -> None:
    caps = static_capabilities(ElasticsearchAdapter())
    assert caps.adapter_id is AdapterId.ELASTICSEARCH
    assert caps.supports("supports_full_text_search")
    assert "max_in_clause_items" not in caps.features
