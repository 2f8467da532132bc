"""Compatibility utilities for soft dependencies."""

from __future__ import annotations

from typing import Any

try:
    import geoalchemy2

    HAS_GEOMETRY = True
except ImportError:
    HAS_GEOMETRY = False

try:
    import prometheus_client  # noqa: F401

    HAS_PROMETHEUS = True
except ImportError:
    HAS_PROMETHEUS = False


def spatial_column_types() -> tuple[type[Any], ...]:
    """geoalchemy2 column types mapped to ``coordinates``; empty without the extra."""
    if not HAS_GEOMETRY:
        return ()
    return (geoalchemy2.Geometry, geoalchemy2.Geography)
