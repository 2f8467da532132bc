"""
Per-operator SQL strategies.

Every filter operator compiles through its own :class:`SQLOperator`. A
dialect adapter builds one :class:`SQLOperatorRegistry` per semantic type, so
an operator a dialect cannot express is simply never registered for it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from ...exceptions import UnsupportedOperatorError

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement

    from ...operators import FilterOperator
    from ..base import ApplyOptions


class SQLOperator(ABC):
    """Turns ``(column, operand)`` into a boolean ``ColumnElement``."""

    @property
    @abstractmethod
    def name(self) -> FilterOperator: ...

    @abstractmethod
    def apply(
        self,
        column: Any,
        value: Any,
        options: ApplyOptions,
    ) -> ColumnElement[bool]:
        """
        Args:
            column: Mapped attribute, or the same attribute on a join alias.
            value: Operand taken from the filter payload.
            options: Unit hints and the payload path for error messages.
        """
        ...


class SQLOperatorRegistry:
    """Strategies for one semantic type on one dialect."""

    def __init__(self) -> None:
        self._by_name: dict[FilterOperator, SQLOperator] = {}

    def register_all(self, *operators: SQLOperator) -> None:
        for op in operators:
            self._by_name[op.name] = op

    def get(self, name: FilterOperator) -> SQLOperator | None:
        return self._by_name.get(name)

    def has(self, name: FilterOperator) -> bool:
        return name in self._by_name

    @property
    def supported_operators(self) -> tuple[FilterOperator, ...]:
        return tuple(self._by_name)

    def apply(
        self,
        name: FilterOperator,
        column: Any,
        value: Any,
        options: ApplyOptions,
    ) -> ColumnElement[bool]:
        op = self._by_name.get(name)
        if op is None:
            raise UnsupportedOperatorError(
                name.value, [o.value for o in self._by_name], path=options.path
            )
        return op.apply(column, value, options)
