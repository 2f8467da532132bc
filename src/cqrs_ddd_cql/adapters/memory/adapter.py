"""
In-memory adapter for dataclasses and pydantic models.

Filters compile into plain predicates (``Callable[[Any], bool]``) evaluated
against objects or dicts, which makes the adapter useful for tests, caches
and small in-process collections::

    query = compiler.compile(MemoryQuery(User), {"age": {"_gte": 18}}, User)
    adults = query.apply(users)
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
import types
import typing
from collections import abc
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Union, get_args, get_origin
from uuid import UUID

from pydantic import BaseModel

from ...fields import Cardinality, FieldDescriptor, FieldMap
from ...operators import AdapterId, FilterOperator, NullsPlacement, SemanticType, SortDirection
from ...values import GeoPoint, normalize_point
from ..base import Adapter, ApplyOptions, CompileState
from .evaluator import MemoryOperator, MemoryOperatorRegistry
from .operators import (
    BetweenOperator,
    ContainsOperator,
    DWithinOperator,
    EndsWithOperator,
    EqualOperator,
    ExcludesAllOperator,
    ExcludesAnyOperator,
    ExcludesOperator,
    GreaterEqualOperator,
    GreaterThanOperator,
    IContainsOperator,
    IEndsWithOperator,
    ILikeOperator,
    IncludesAllOperator,
    IncludesAnyOperator,
    IncludesOperator,
    InOperator,
    IsEmptyOperator,
    IsNullOperator,
    IStartsWithOperator,
    LessEqualOperator,
    LessThanOperator,
    LikeOperator,
    NotEqualOperator,
    NotILikeOperator,
    NotInOperator,
    NotLikeOperator,
    PointEqualOperator,
    StartsWithOperator,
    WithinBoundingBoxOperator,
    as_point,
    haversine_meters,
    plain,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger("cqrs_ddd.cql.adapters.memory")

Predicate = Callable[[Any], bool]


def always(_item: Any) -> bool:
    return True


def never(_item: Any) -> bool:
    return False


def resolve(item: Any, name: str) -> Any:
    """Attribute of an object or key of a mapping; missing values are ``None``."""
    if item is None:
        return None
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


@dataclass(frozen=True)
class SortKey:
    getter: Callable[[Any], Any]
    direction: SortDirection
    nulls: NullsPlacement


@dataclass(frozen=True)
class MemoryQuery:
    """Filter predicates plus sort keys over a collection of *model* instances."""

    model: type[Any]
    predicates: tuple[Predicate, ...] = ()
    sort_keys: tuple[SortKey, ...] = field(default_factory=tuple)

    def where(self, predicate: Predicate) -> MemoryQuery:
        return dataclasses.replace(self, predicates=(*self.predicates, predicate))

    def order_by(self, key: SortKey) -> MemoryQuery:
        return dataclasses.replace(self, sort_keys=(*self.sort_keys, key))

    def matches(self, item: Any) -> bool:
        return all(predicate(item) for predicate in self.predicates)

    def apply(self, items: Iterable[Any]) -> list[Any]:
        """Filter then sort *items*; sorting is stable across keys."""
        result = [item for item in items if self.matches(item)]
        for key in reversed(self.sort_keys):
            result = _sorted(result, key)
        return result


def _sorted(items: list[Any], key: SortKey) -> list[Any]:
    present = [i for i in items if key.getter(i) is not None]
    missing = [i for i in items if key.getter(i) is None]
    present.sort(
        key=lambda i: plain(key.getter(i)), reverse=key.direction is SortDirection.DESC
    )
    nulls = key.nulls
    if nulls is NullsPlacement.DEFAULT:
        # nulls sort as the largest value, like Postgres
        nulls = NullsPlacement.LAST if key.direction is SortDirection.ASC else NullsPlacement.FIRST
    return missing + present if nulls is NullsPlacement.FIRST else present + missing


@dataclass(frozen=True)
class ModelTarget:
    """A model class plus the accessor from a root item to the scoped object."""

    model: type[Any]
    accessor: Callable[[Any], Any] = lambda item: item


def _registry(*operators: MemoryOperator) -> MemoryOperatorRegistry:
    registry = MemoryOperatorRegistry()
    registry.register_all(*operators)
    return registry


def _build_table() -> dict[SemanticType, MemoryOperatorRegistry]:
    eq = (EqualOperator(), NotEqualOperator(), NotEqualOperator(FilterOperator.NEQ))
    rng = (GreaterThanOperator(), GreaterEqualOperator(), LessThanOperator(), LessEqualOperator())
    sets = (InOperator(), NotInOperator())
    null = (IsNullOperator(),)
    strings = (
        LikeOperator(),
        NotLikeOperator(),
        ILikeOperator(),
        NotILikeOperator(),
        StartsWithOperator(),
        IStartsWithOperator(),
        EndsWithOperator(),
        IEndsWithOperator(),
        ContainsOperator(),
        IContainsOperator(),
    )
    arrays = (
        IncludesOperator(),
        ExcludesOperator(),
        IncludesAllOperator(),
        ExcludesAllOperator(),
        IncludesAnyOperator(),
        ExcludesAnyOperator(),
        IsEmptyOperator(),
        IsNullOperator(),
    )
    table = {
        SemanticType.STRING: _registry(*eq, *rng, *sets, *null, *strings),
        SemanticType.BOOLEAN: _registry(*eq, *null),
        SemanticType.ID: _registry(*eq, *sets, *null),
        SemanticType.ENUM: _registry(*eq, *sets, *null),
        SemanticType.DATETIME: _registry(*eq, *rng, *sets, *null, BetweenOperator()),
        SemanticType.DATE: _registry(*eq, *rng, *sets, *null, BetweenOperator()),
        SemanticType.COORDINATES: _registry(
            PointEqualOperator(),
            PointEqualOperator(FilterOperator.NE),
            PointEqualOperator(FilterOperator.NEQ),
            *null,
            DWithinOperator(),
            WithinBoundingBoxOperator(),
        ),
    }
    for numeric in (
        SemanticType.INTEGER,
        SemanticType.FLOAT,
        SemanticType.DECIMAL,
        SemanticType.TIME,
    ):
        table[numeric] = _registry(*eq, *rng, *sets, *null)
    for array_type in (
        SemanticType.ARRAY_STRING,
        SemanticType.ARRAY_INTEGER,
        SemanticType.ARRAY_ID,
        SemanticType.ARRAY_ENUM,
    ):
        table[array_type] = _registry(*arrays)
    return table


_SCALAR_TYPES: list[tuple[type[Any], SemanticType]] = [
    (bool, SemanticType.BOOLEAN),
    (int, SemanticType.INTEGER),
    (float, SemanticType.FLOAT),
    (Decimal, SemanticType.DECIMAL),
    (str, SemanticType.STRING),
    (UUID, SemanticType.ID),
    (dt.datetime, SemanticType.DATETIME),
    (dt.date, SemanticType.DATE),
    (dt.time, SemanticType.TIME),
    (GeoPoint, SemanticType.COORDINATES),
]

_ARRAY_ITEM_TYPES: list[tuple[type[Any], SemanticType]] = [
    (str, SemanticType.ARRAY_STRING),
    (int, SemanticType.ARRAY_INTEGER),
    (UUID, SemanticType.ARRAY_ID),
]

_COLLECTIONS = (list, tuple, set, frozenset, abc.Sequence, abc.Set)


def is_model(tp: Any) -> bool:
    return isinstance(tp, type) and (
        dataclasses.is_dataclass(tp) or issubclass(tp, BaseModel)
    )


def _unwrap_optional(tp: Any) -> tuple[Any, bool]:
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return tp, False


class MemoryAdapter(Adapter):
    """Adapter for dataclass / pydantic model collections held in memory."""

    capabilities = {
        "max_in_clause_items": None,
        "native_arrays": True,
        "supports_json_operators": False,
        "supports_full_text_search": False,
        "native_nulls_ordering": True,
        "supports_geo_ordering": True,
        "supports_priority_ordering": True,
    }

    def __init__(self) -> None:
        self._tables = _build_table()
        self._field_cache: dict[type[Any], FieldMap] = {}

    @property
    def adapter_id(self) -> AdapterId:
        return AdapterId.MEMORY

    # -- contract ------------------------------------------------------------

    def handles(self, queryable: Any) -> bool:
        return is_model(queryable)

    def queryable_fields(self, queryable: Any) -> FieldMap:
        cached = self._field_cache.get(queryable)
        if cached is not None:
            return cached
        hints = typing.get_type_hints(queryable)
        if dataclasses.is_dataclass(queryable):
            names = [f.name for f in dataclasses.fields(queryable)]
        else:
            names = list(queryable.model_fields)
        fields: list[FieldDescriptor] = []
        for name in names:
            descriptor = self._describe(name, hints.get(name, Any))
            if descriptor is None:
                logger.debug(
                    "Skipping %s.%s: no filter type for %r",
                    queryable.__name__,
                    name,
                    hints.get(name),
                )
                continue
            fields.append(descriptor)
        field_map = FieldMap(queryable.__name__, fields)
        self._field_cache[queryable] = field_map
        return field_map

    def _describe(self, name: str, annotation: Any) -> FieldDescriptor | None:
        tp, nullable = _unwrap_optional(annotation)
        origin = get_origin(tp)
        if origin in _COLLECTIONS:
            args = get_args(tp)
            item = args[0] if args else Any
            if is_model(item):
                return FieldDescriptor.association(name, item, Cardinality.MANY)
            semantic_type = self._array_type_for(item)
            if semantic_type is None:
                return None
            return FieldDescriptor(name=name, semantic_type=semantic_type, nullable=nullable)
        if is_model(tp) and tp is not GeoPoint:
            return FieldDescriptor.association(name, tp, Cardinality.ONE)
        if isinstance(tp, type) and issubclass(tp, Enum):
            return FieldDescriptor(
                name=name,
                semantic_type=SemanticType.ENUM,
                nullable=nullable,
                enum_values=tuple(m.value for m in tp),
            )
        for python_type, semantic_type in _SCALAR_TYPES:
            if isinstance(tp, type) and issubclass(tp, python_type):
                if semantic_type is SemanticType.INTEGER and (
                    name == "id" or name.endswith("_id")
                ):
                    semantic_type = SemanticType.ID
                return FieldDescriptor(
                    name=name, semantic_type=semantic_type, nullable=nullable
                )
        return None

    @staticmethod
    def _array_type_for(item: Any) -> SemanticType | None:
        if isinstance(item, type) and issubclass(item, Enum):
            return SemanticType.ARRAY_ENUM
        for python_type, semantic_type in _ARRAY_ITEM_TYPES:
            if isinstance(item, type) and issubclass(item, python_type):
                return semantic_type
        return None

    def operators_for_type(self, semantic_type: SemanticType) -> tuple[FilterOperator, ...]:
        registry = self._tables.get(semantic_type)
        return registry.supported_operators if registry is not None else ()

    def root_target(self, query: Any, queryable: Any) -> ModelTarget:
        return ModelTarget(model=queryable or query.model)

    def describe_field(
        self, target: Any, name: str, options: ApplyOptions
    ) -> FieldDescriptor | None:
        if options.field_type is not None:
            return FieldDescriptor(name=name, semantic_type=options.field_type)
        return self.queryable_fields(target.model).get(name)

    def build_predicate(
        self,
        target: Any,
        field: FieldDescriptor,
        operator: FilterOperator,
        value: Any,
        options: ApplyOptions,
    ) -> Predicate | None:
        if field.semantic_type is None:
            return None
        registry = self._tables.get(field.semantic_type)
        op = registry.get(operator) if registry is not None else None
        if op is None:
            return None
        if operator is FilterOperator.IN and not value:
            return never
        if operator is FilterOperator.NIN and not value:
            return always
        if options.field_type is None:
            options = dataclasses.replace(options, field_type=field.semantic_type)
        operand = op.prepare(value, options)
        name = field.name

        def predicate(item: Any) -> bool:
            return op.evaluate(resolve(item, name), operand)

        return predicate

    def apply_predicate(self, query: MemoryQuery, predicate: Predicate) -> MemoryQuery:
        if predicate is always:
            return query
        return query.where(predicate)

    # -- composition ---------------------------------------------------------

    def conjunction(self, predicates: Sequence[Predicate]) -> Predicate:
        parts = [p for p in predicates if p is not always]
        if any(p is never for p in parts):
            return never
        if not parts:
            return always
        if len(parts) == 1:
            return parts[0]
        return lambda item: all(p(item) for p in parts)

    def disjunction(self, predicates: Sequence[Predicate]) -> Predicate:
        parts = [p for p in predicates if p is not never]
        if any(p is always for p in parts):
            return always
        if not parts:
            return never
        if len(parts) == 1:
            return parts[0]
        return lambda item: any(p(item) for p in parts)

    def negation(self, predicate: Predicate) -> Predicate:
        if predicate is always:
            return never
        if predicate is never:
            return always
        return lambda item: not predicate(item)

    def enter_association(
        self, state: CompileState, target: Any, association: FieldDescriptor, path: str
    ) -> ModelTarget:
        parent = target.accessor
        name = association.name
        return ModelTarget(
            model=association.related,
            accessor=lambda item: _first(resolve(parent(item), name)),
        )

    def wrap_association(
        self,
        state: CompileState,
        target: Any,
        child_target: Any,
        association: FieldDescriptor,
        predicate: Any,
        *,
        match_all: bool,
    ) -> Predicate:
        name = association.name
        if not association.is_to_many:

            def related_matches(item: Any) -> bool:
                related = resolve(item, name)
                return related is not None and predicate(related)

            return related_matches
        if match_all:
            return lambda item: all(predicate(r) for r in resolve(item, name) or ())
        return lambda item: any(predicate(r) for r in resolve(item, name) or ())

    def exists_predicate(
        self,
        state: CompileState,
        target: Any,
        child_target: Any,
        association: FieldDescriptor,
        exists: bool,
    ) -> Predicate:
        name = association.name
        if association.is_to_many:
            return lambda item: bool(resolve(item, name)) == exists
        return lambda item: (resolve(item, name) is not None) == exists

    # -- ordering ------------------------------------------------------------

    def apply_order(
        self,
        state: CompileState,
        target: Any,
        field: FieldDescriptor,
        direction: SortDirection,
        nulls: NullsPlacement,
        *,
        priority: Sequence[Any] = (),
        geo_center: Any = None,
        path: str = "",
    ) -> None:
        accessor = target.accessor
        name = field.name
        if priority:
            ranks = {plain(value): index for index, value in enumerate(priority)}

            def getter(item: Any) -> Any:
                value = resolve(accessor(item), name)
                return ranks.get(plain(value), len(ranks))

        elif geo_center is not None:
            center = normalize_point(geo_center, operator="center", path=path)

            def getter(item: Any) -> Any:
                point = as_point(resolve(accessor(item), name))
                return None if point is None else haversine_meters(point, center)

        else:

            def getter(item: Any) -> Any:
                return resolve(accessor(item), name)

        state.query = state.query.order_by(SortKey(getter, direction, nulls))


def _first(value: Any) -> Any:
    """Collections order by their first element."""
    if isinstance(value, list | tuple):
        return value[0] if value else None
    return value
