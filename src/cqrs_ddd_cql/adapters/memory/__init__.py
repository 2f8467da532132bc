"""In-memory adapter evaluating filters against dataclasses and pydantic models."""

from __future__ import annotations

from .adapter import MemoryAdapter, MemoryQuery, ModelTarget, SortKey
from .evaluator import MemoryOperator, MemoryOperatorRegistry

__all__ = [
    "MemoryAdapter",
    "MemoryOperator",
    "MemoryOperatorRegistry",
    "MemoryQuery",
    "ModelTarget",
    "SortKey",
]
