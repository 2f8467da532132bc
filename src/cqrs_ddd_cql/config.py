"""Settings objects for the compiler, capability detector and analyzer."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .operators import AdapterId


class ComplexitySettings(BaseModel):
    """Admission-control knobs for the complexity analyzer."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    max_complexity: float = Field(
        default=100.0, gt=0, description="Base limit on the 0-100 score scale"
    )
    adaptive_limits: bool = Field(
        default=True, description="Shrink the limit by up to 70% under load"
    )
    warn_threshold: float = Field(default=0.7, gt=0, le=1)
    load_reduction: float = Field(default=0.7, ge=0, le=1)
    cache_enabled: bool = True
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    large_offset: int = Field(default=1000, ge=0)
    default_load_factor: float = Field(default=0.5, ge=0, le=1)
    max_connections: int = Field(
        default=100, gt=0, description="Active connections that count as full load"
    )


class CapabilitySettings(BaseModel):
    """Capability probing behaviour."""

    model_config = ConfigDict(frozen=True)

    cache_enabled: bool = True


class CQLSettings(BaseModel):
    """Top-level settings shared by the query and order compilers."""

    model_config = ConfigDict(frozen=True)

    default_sql_dialect: AdapterId = AdapterId.POSTGRES
    optimize_filters: bool = Field(
        default=False, description="Reorder commutative children cheapest-first"
    )
    max_in_clause_items: dict[AdapterId, int] = Field(default_factory=dict)
    complexity: ComplexitySettings = Field(default_factory=ComplexitySettings)
    capabilities: CapabilitySettings = Field(default_factory=CapabilitySettings)

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> CQLSettings:
        """Build settings from a plain mapping, e.g. an application config file."""
        return cls.model_validate(data or {})
