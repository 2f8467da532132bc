"""Operator strategies evaluated against live Python objects."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ...operators import FilterOperator
    from ..base import ApplyOptions


class MemoryOperator(ABC):
    """
    One filter operator, split in two phases.

    ``prepare`` normalizes the operand once at compile time so a malformed
    value is reported before any object is scanned. ``evaluate`` then runs
    for every candidate with the value read off that candidate.
    """

    @property
    @abstractmethod
    def name(self) -> FilterOperator: ...

    def prepare(self, condition_value: Any, options: ApplyOptions) -> Any:
        return condition_value

    @abstractmethod
    def evaluate(self, field_value: Any, condition_value: Any) -> bool: ...


class MemoryOperatorRegistry:
    """Operators available for one semantic type, in registration order."""

    def __init__(self) -> None:
        self._by_name: dict[FilterOperator, MemoryOperator] = {}

    def register_all(self, *operators: MemoryOperator) -> None:
        for op in operators:
            self._by_name[op.name] = op

    def get(self, name: FilterOperator) -> MemoryOperator | None:
        return self._by_name.get(name)

    @property
    def supported_operators(self) -> tuple[FilterOperator, ...]:
        return tuple(self._by_name)
