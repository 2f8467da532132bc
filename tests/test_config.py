"""Tests for settings objects."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from cqrs_ddd_cql.config import CapabilitySettings, ComplexitySettings, CQLSettings
from cqrs_ddd_cql.operators import AdapterId


def test_defaults() -> None:
    settings = CQLSettings()
    assert settings.default_sql_dialect is AdapterId.POSTGRES
    assert settings.optimize_filters is False
    assert settings.max_in_clause_items == {}
    assert settings.complexity.max_complexity == 100.0
    assert settings.complexity.warn_threshold == 0.7
    assert settings.complexity.load_reduction == 0.7
    assert settings.complexity.cache_ttl_seconds == 300.0
    assert settings.capabilities.cache_enabled is True


def test_from_mapping() -> None:
    settings = CQLSettings.from_mapping(
        {
            "default_sql_dialect": "sqlite",
            "max_in_clause_items": {"mysql": 500},
            "complexity": {"max_complexity": 50, "adaptive_limits": False},
            "capabilities": {"cache_enabled": False},
        }
    )
    assert settings.default_sql_dialect is AdapterId.SQLITE
    assert settings.max_in_clause_items == {AdapterId.MYSQL: 500}
    assert settings.complexity.max_complexity == 50.0
    assert settings.complexity.adaptive_limits is False
    assert settings.capabilities == CapabilitySettings(cache_enabled=False)


def test_from_empty_mapping() -> None:
    assert CQLSettings.from_mapping(None) == CQLSettings()
    assert CQLSettings.from_mapping({}) == CQLSettings()


def test_settings_are_frozen() -> None:
    settings = ComplexitySettings()
    with pytest.raises(PydanticValidationError):
        settings.max_complexity = 10  # type: ignore[misc]


@pytest.mark.parametrize(
    "overrides",
    [
        {"warn_threshold": 2},
        {"warn_threshold": 0},
        {"max_complexity": 0},
        {"load_reduction": 1.5},
        {"max_connections": 0},
    ],
)
def test_complexity_bounds(overrides: dict[str, float]) -> None:
    with pytest.raises(PydanticValidationError):
        ComplexitySettings(**overrides)


def test_unknown_dialect_is_rejected() -> None:
    with pytest.raises(PydanticValidationError):
        CQLSettings.from_mapping({"default_sql_dialect": "oracle"})
