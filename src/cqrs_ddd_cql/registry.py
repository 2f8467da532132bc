"""
Operator registry keyed by ``(adapter, semantic type)``.

The registry is an explicit object built from adapter instances via
:func:`build_default_registry`; nothing is registered as an import side
effect. Because the per-type operator sets are read from each adapter's
``operators_for_type`` (itself derived from the adapter's implementation
table), an operator is advertised for an adapter if and only if the adapter
implements it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .exceptions import InvalidValueError, UnsupportedOperatorError
from .operators import AdapterId, FilterOperator, SemanticType

if TYPE_CHECKING:
    from .adapters.base import Adapter
    from .capabilities import AdapterCapabilities
    from .fields import FieldDescriptor

logger = logging.getLogger("cqrs_ddd.cql.registry")


class Arity(str, Enum):
    """Shape of the value an operator takes."""

    SCALAR = "scalar"
    NULLABLE_SCALAR = "nullable_scalar"
    STRING = "string"
    LIST = "list"
    PAIR = "pair"
    BOOLEAN = "boolean"
    MAPPING = "mapping"
    ANY = "any"


OPERATOR_ARITY: dict[FilterOperator, Arity] = {
    FilterOperator.EQ: Arity.NULLABLE_SCALAR,
    FilterOperator.NE: Arity.NULLABLE_SCALAR,
    FilterOperator.NEQ: Arity.NULLABLE_SCALAR,
    FilterOperator.GT: Arity.SCALAR,
    FilterOperator.GTE: Arity.SCALAR,
    FilterOperator.LT: Arity.SCALAR,
    FilterOperator.LTE: Arity.SCALAR,
    FilterOperator.IN: Arity.LIST,
    FilterOperator.NIN: Arity.LIST,
    FilterOperator.IS_NULL: Arity.BOOLEAN,
    FilterOperator.LIKE: Arity.STRING,
    FilterOperator.NLIKE: Arity.STRING,
    FilterOperator.ILIKE: Arity.STRING,
    FilterOperator.NILIKE: Arity.STRING,
    FilterOperator.STARTS_WITH: Arity.STRING,
    FilterOperator.ISTARTS_WITH: Arity.STRING,
    FilterOperator.ENDS_WITH: Arity.STRING,
    FilterOperator.IENDS_WITH: Arity.STRING,
    FilterOperator.CONTAINS: Arity.STRING,
    FilterOperator.ICONTAINS: Arity.STRING,
    FilterOperator.BETWEEN: Arity.PAIR,
    FilterOperator.PERIOD: Arity.MAPPING,
    FilterOperator.CURRENT_PERIOD: Arity.MAPPING,
    FilterOperator.INCLUDES: Arity.SCALAR,
    FilterOperator.EXCLUDES: Arity.SCALAR,
    FilterOperator.INCLUDES_ALL: Arity.LIST,
    FilterOperator.EXCLUDES_ALL: Arity.LIST,
    FilterOperator.INCLUDES_ANY: Arity.LIST,
    FilterOperator.EXCLUDES_ANY: Arity.LIST,
    FilterOperator.IS_EMPTY: Arity.BOOLEAN,
    FilterOperator.ST_DWITHIN: Arity.MAPPING,
    FilterOperator.ST_WITHIN_BOUNDING_BOX: Arity.MAPPING,
    FilterOperator.MATCH: Arity.STRING,
    FilterOperator.MATCH_PHRASE: Arity.STRING,
    FilterOperator.MATCH_PHRASE_PREFIX: Arity.STRING,
    FilterOperator.FUZZY: Arity.ANY,
    FilterOperator.PREFIX: Arity.STRING,
    FilterOperator.REGEXP: Arity.STRING,
    FilterOperator.WILDCARD: Arity.STRING,
}


@dataclass(frozen=True)
class OperatorSpec:
    """Discovery record for one operator across all registered adapters."""

    operator: FilterOperator
    applicable_types: frozenset[SemanticType]
    arity: Arity
    adapters: frozenset[AdapterId]


class OperatorRegistry:
    """
    Ordered operator sets per ``(adapter, semantic type)``.

    Usage::

        registry = build_default_registry(adapters)
        registry.operators_for(SemanticType.STRING, AdapterId.SQLITE)
    """

    def __init__(self) -> None:
        self._table: dict[tuple[AdapterId, SemanticType], tuple[FilterOperator, ...]] = {}

    # -- registration --------------------------------------------------------

    def register(
        self,
        adapter_id: AdapterId,
        semantic_type: SemanticType,
        operators: Iterable[FilterOperator],
    ) -> None:
        ops = tuple(dict.fromkeys(operators))
        if ops:
            self._table[(adapter_id, semantic_type)] = ops
        else:
            self._table.pop((adapter_id, semantic_type), None)

    def register_adapter(self, adapter: Adapter) -> None:
        """Register every type the adapter implements operators for."""
        for semantic_type in SemanticType:
            self.register(
                adapter.adapter_id,
                semantic_type,
                adapter.operators_for_type(semantic_type),
            )

    def unregister_adapter(self, adapter_id: AdapterId) -> None:
        for key in [k for k in self._table if k[0] is adapter_id]:
            del self._table[key]

    # -- look-up -------------------------------------------------------------

    def operators_for(
        self, semantic_type: SemanticType, adapter_id: AdapterId
    ) -> tuple[FilterOperator, ...]:
        return self._table.get((adapter_id, semantic_type), ())

    def supports(
        self,
        semantic_type: SemanticType,
        adapter_id: AdapterId,
        operator: FilterOperator,
    ) -> bool:
        return operator in self.operators_for(semantic_type, adapter_id)

    @property
    def adapters(self) -> set[AdapterId]:
        return {adapter_id for adapter_id, _ in self._table}

    def adapters_for(self, operator: FilterOperator) -> frozenset[AdapterId]:
        return frozenset(a for (a, _), ops in self._table.items() if operator in ops)

    def spec_for(self, operator: FilterOperator) -> OperatorSpec:
        types = frozenset(t for (_, t), ops in self._table.items() if operator in ops)
        return OperatorSpec(
            operator=operator,
            applicable_types=types,
            arity=OPERATOR_ARITY.get(operator, Arity.ANY),
            adapters=self.adapters_for(operator),
        )

    def describe(self) -> dict[str, dict[str, list[str]]]:
        """``{adapter: {type: [operators]}}`` for discovery endpoints."""
        out: dict[str, dict[str, list[str]]] = {}
        for (adapter_id, semantic_type), ops in sorted(
            self._table.items(), key=lambda item: (item[0][0].value, item[0][1].value)
        ):
            out.setdefault(adapter_id.value, {})[semantic_type.value] = [
                op.value for op in ops
            ]
        return out

    # -- validation ----------------------------------------------------------

    def validate(
        self,
        field: FieldDescriptor,
        operator: FilterOperator,
        adapter_id: AdapterId,
        *,
        path: str | None = None,
    ) -> None:
        """
        Raises:
            UnsupportedOperatorError: The operator is not in the field's
                operator set on this adapter.
        """
        if field.semantic_type is None:
            raise UnsupportedOperatorError(
                operator.value,
                [],
                field=field.name,
                semantic_type="association",
                adapter=adapter_id.value,
                path=path,
            )
        ops = self.operators_for(field.semantic_type, adapter_id)
        if operator not in ops:
            raise UnsupportedOperatorError(
                operator.value,
                [op.value for op in ops],
                field=field.name,
                semantic_type=field.semantic_type.value,
                adapter=adapter_id.value,
                path=path,
            )

    def check_value(
        self,
        operator: FilterOperator,
        value: Any,
        *,
        max_items: int | None = None,
        semantic_type: SemanticType | None = None,
        path: str | None = None,
    ) -> None:
        """
        Raises:
            InvalidValueError: The value does not fit the operator's arity.
        """
        arity = OPERATOR_ARITY.get(operator, Arity.ANY)
        if semantic_type is SemanticType.COORDINATES and arity is Arity.NULLABLE_SCALAR:
            # point equality takes {lat, lng}
            arity = Arity.ANY
        problem = _arity_problem(arity, value)
        if problem is not None:
            raise InvalidValueError(
                f"{operator.value} {problem}",
                operator=operator.value,
                value=value,
                path=path,
            )
        if arity is Arity.LIST and max_items is not None and len(value) > max_items:
            raise InvalidValueError(
                f"{operator.value} accepts at most {max_items} items, got {len(value)}",
                operator=operator.value,
                value=len(value),
                path=path,
            )

    # -- capability gating ---------------------------------------------------

    def gate(
        self, adapter: Adapter, capabilities: AdapterCapabilities
    ) -> OperatorRegistry:
        """
        Return a copy without the adapter's operators whose backend feature
        was not detected (e.g. PostGIS operators on a plain Postgres).
        """
        gated = OperatorRegistry()
        gated._table = dict(self._table)
        missing = {
            op
            for op, feature in adapter.required_features.items()
            if not capabilities.supports(feature)
        }
        if not missing:
            return gated
        logger.info(
            "Hiding %s operators without backend support: %s",
            adapter.adapter_id.value,
            ", ".join(sorted(op.value for op in missing)),
        )
        for (adapter_id, semantic_type), ops in self._table.items():
            if adapter_id is adapter.adapter_id:
                gated.register(
                    adapter_id, semantic_type, [op for op in ops if op not in missing]
                )
        return gated


def _arity_problem(arity: Arity, value: Any) -> str | None:
    is_collection = isinstance(value, list | tuple | set | frozenset)
    if arity is Arity.NULLABLE_SCALAR:
        return "expects a single value" if is_collection or isinstance(value, Mapping) else None
    if arity is Arity.SCALAR:
        if value is None:
            return "does not accept null"
        return "expects a single value" if is_collection or isinstance(value, Mapping) else None
    if arity is Arity.STRING:
        return None if isinstance(value, str) else "expects a string"
    if arity is Arity.LIST:
        return None if is_collection else "expects a list"
    if arity is Arity.PAIR:
        if isinstance(value, Mapping):
            return None if {"start", "end"} <= value.keys() else "expects {start, end}"
        return None if is_collection and len(value) == 2 else "expects a list of two values"
    if arity is Arity.BOOLEAN:
        return None if isinstance(value, bool) else "expects a boolean"
    if arity is Arity.MAPPING:
        return None if isinstance(value, Mapping) else "expects an object"
    return None


def build_default_registry(adapters: Iterable[Adapter]) -> OperatorRegistry:
    """Create a registry from the given adapter instances."""
    registry = OperatorRegistry()
    for adapter in adapters:
        registry.register_adapter(adapter)
    return registry
