"""
Shared SQLAlchemy adapter.

Dialect adapters differ only in their operator tables (case folding, array
and coordinate operators, period arithmetic), capability maps and nulls
ordering; introspection, association handling and ordering live here.

Association compilation:

* to-one associations reached from the root are ``LEFT OUTER JOIN``-ed once
  per distinct path, to an alias named after the path
  (``organization``, ``organization__parent``). A join already present on
  the statement under that name is reused, so the order compiler and repeated
  compile calls share it.
* to-many associations compile to one correlated ``EXISTS`` per association
  node (``rel.any(...)``), or ``NOT EXISTS (... AND NOT pred)`` when every
  related row must match.
* any association below a to-many one is scoped inside that subquery
  (``rel.has(...)`` / ``rel.any(...)``).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    ARRAY,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    Integer,
    Numeric,
    String,
    Time,
    Uuid,
    and_,
    asc,
    case,
    desc,
    false,
    not_,
    or_,
    true,
)
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper, aliased
from sqlalchemy.sql.elements import True_

from ...compat import spatial_column_types
from ...exceptions import InvalidValueError
from ...fields import Cardinality, FieldDescriptor, FieldMap
from ...operators import FilterOperator, NullsPlacement, SemanticType, SortDirection
from ...values import normalize_point
from ..base import Adapter, ApplyOptions, CompileState
from .operators.null import IsNullOperator
from .operators.set import set_operators
from .operators.standard import equality_operators, range_operators
from .operators.string import string_operators
from .operators.temporal import temporal_operators
from .strategy import SQLOperatorRegistry
from .utils import find_named_alias

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .operators.string import CaseFolding
    from .operators.temporal import PeriodExpressions
    from .strategy import SQLOperator

logger = logging.getLogger("cqrs_ddd.cql.adapters.sql")

ARRAY_TYPES = (
    SemanticType.ARRAY_STRING,
    SemanticType.ARRAY_INTEGER,
    SemanticType.ARRAY_ID,
    SemanticType.ARRAY_ENUM,
)


def _registry(*groups: Sequence[SQLOperator]) -> SQLOperatorRegistry:
    registry = SQLOperatorRegistry()
    for group in groups:
        registry.register_all(*group)
    return registry


class SQLAdapter(Adapter):
    """Base class of the SQLAlchemy dialect adapters."""

    #: SQLAlchemy dialect names (``engine.dialect.name``) served by the adapter.
    dialect_names: tuple[str, ...] = ()
    case_folding: CaseFolding
    periods: PeriodExpressions
    native_nulls_ordering: bool = True

    def __init__(self) -> None:
        self._tables = self.build_operator_table()
        self._field_cache: dict[Any, FieldMap] = {}

    # -- operator table ------------------------------------------------------

    def array_operators(self) -> Sequence[SQLOperator]:
        return ()

    def coordinate_operators(self) -> Sequence[SQLOperator]:
        return ()

    def build_operator_table(self) -> dict[SemanticType, SQLOperatorRegistry]:
        eq = equality_operators()
        rng = range_operators()
        sets = set_operators()
        null = (IsNullOperator(),)
        table = {
            SemanticType.STRING: _registry(
                eq, rng, sets, null, string_operators(self.case_folding)
            ),
            SemanticType.BOOLEAN: _registry(eq, null),
            SemanticType.ID: _registry(eq, sets, null),
            SemanticType.ENUM: _registry(eq, sets, null),
            SemanticType.DATETIME: _registry(
                eq, rng, sets, null, temporal_operators(self.periods)
            ),
            SemanticType.DATE: _registry(
                eq, rng, sets, null, temporal_operators(self.periods)
            ),
            SemanticType.COORDINATES: _registry(self.coordinate_operators()),
        }
        for numeric in (
            SemanticType.INTEGER,
            SemanticType.FLOAT,
            SemanticType.DECIMAL,
            SemanticType.TIME,
        ):
            table[numeric] = _registry(eq, rng, sets, null)
        for array_type in ARRAY_TYPES:
            table[array_type] = _registry(self.array_operators())
        return table

    def operators_for_type(self, semantic_type: SemanticType) -> tuple[FilterOperator, ...]:
        registry = self._tables.get(semantic_type)
        return registry.supported_operators if registry is not None else ()

    # -- introspection -------------------------------------------------------

    def handles(self, queryable: Any) -> bool:
        if not isinstance(queryable, type):
            return False
        return isinstance(sa_inspect(queryable, raiseerr=False), Mapper)

    def queryable_fields(self, queryable: Any) -> FieldMap:
        cached = self._field_cache.get(queryable)
        if cached is not None:
            return cached
        mapper = sa_inspect(queryable)
        fields: list[FieldDescriptor] = []
        for prop in mapper.column_attrs:
            column = prop.columns[0]
            semantic_type = self.semantic_type_for(column)
            if semantic_type is None:
                logger.debug(
                    "Skipping %s.%s: no filter type for %r",
                    mapper.class_.__name__,
                    prop.key,
                    column.type,
                )
                continue
            enum_values = (
                tuple(column.type.enums) if isinstance(column.type, Enum) else None
            )
            fields.append(
                FieldDescriptor(
                    name=prop.key,
                    semantic_type=semantic_type,
                    nullable=bool(getattr(column, "nullable", True)),
                    enum_values=enum_values,
                )
            )
        for rel in mapper.relationships:
            fields.append(
                FieldDescriptor.association(
                    rel.key,
                    rel.mapper.class_,
                    Cardinality.MANY if rel.uselist else Cardinality.ONE,
                )
            )
        field_map = FieldMap(mapper.class_.__name__, fields)
        self._field_cache[queryable] = field_map
        return field_map

    def semantic_type_for(self, column: Any) -> SemanticType | None:
        """
        Map a column to its filter type.

        ``Column(..., info={"cql_type": "array_string"})`` overrides the
        mapping, e.g. for JSON columns holding arrays.
        """
        override = getattr(column, "info", {}).get("cql_type")
        if override is not None:
            return SemanticType(override)
        col_type = column.type
        if getattr(column, "primary_key", False) or getattr(column, "foreign_keys", None):
            return SemanticType.ID
        if isinstance(col_type, ARRAY):
            return self._array_type_for(col_type.item_type)
        return _scalar_type_for(col_type)

    def _array_type_for(self, item_type: Any) -> SemanticType | None:
        if isinstance(item_type, Enum):
            return SemanticType.ARRAY_ENUM
        if isinstance(item_type, Uuid):
            return SemanticType.ARRAY_ID
        if isinstance(item_type, Integer):
            return SemanticType.ARRAY_INTEGER
        if isinstance(item_type, String):
            return SemanticType.ARRAY_STRING
        return None

    def describe_field(
        self, target: Any, name: str, options: ApplyOptions
    ) -> FieldDescriptor | None:
        if options.field_type is not None:
            return FieldDescriptor(name=name, semantic_type=options.field_type)
        info = sa_inspect(target, raiseerr=False)
        if info is None:
            return None
        model = info.mapper.class_ if hasattr(info, "mapper") else target
        return self.queryable_fields(model).get(name)

    # -- single operator -----------------------------------------------------

    def root_target(self, query: Any, queryable: Any) -> Any:
        if queryable is not None:
            return queryable
        return query.column_descriptions[0]["entity"]

    def build_predicate(
        self,
        target: Any,
        field: FieldDescriptor,
        operator: FilterOperator,
        value: Any,
        options: ApplyOptions,
    ) -> Any | None:
        if field.semantic_type is None:
            return None
        registry = self._tables.get(field.semantic_type)
        if registry is None or not registry.has(operator):
            return None
        column = getattr(target, field.name)
        return registry.apply(operator, column, value, options)

    def apply_predicate(self, query: Any, predicate: Any) -> Any:
        if isinstance(predicate, True_):
            return query
        return query.where(predicate)

    # -- composition ---------------------------------------------------------

    def conjunction(self, predicates: Sequence[Any]) -> Any:
        if not predicates:
            return true()
        if len(predicates) == 1:
            return predicates[0]
        return and_(*predicates)

    def disjunction(self, predicates: Sequence[Any]) -> Any:
        if not predicates:
            return false()
        if len(predicates) == 1:
            return predicates[0]
        return or_(*predicates)

    def negation(self, predicate: Any) -> Any:
        return not_(predicate)

    def enter_association(
        self, state: CompileState, target: Any, association: FieldDescriptor, path: str
    ) -> Any:
        if association.is_to_many or state.subquery_depth > 0:
            state.subquery_depth += 1
            return aliased(association.related)
        return self.join_association(state, target, association, path)

    def leave_association(self, state: CompileState, association: FieldDescriptor) -> None:
        if association.is_to_many or state.subquery_depth > 0:
            state.subquery_depth -= 1

    def join_association(
        self, state: CompileState, target: Any, association: FieldDescriptor, path: str
    ) -> Any:
        """
        ``LEFT OUTER JOIN`` *association* once per *path* and return the alias.

        The alias is named after the path; an existing join of that name on
        the statement is reused instead of joining again.
        """
        existing = state.aliases.get(path)
        if existing is not None:
            return existing
        name = path.replace(".", "__")
        joined = find_named_alias(state.query, name)
        if joined is not None:
            alias = aliased(association.related, alias=joined)
            logger.debug("Reusing join %s for association path %s", name, path)
        else:
            alias = aliased(association.related, name=name)
            relationship = getattr(target, association.name)
            state.query = state.query.outerjoin(alias, relationship.of_type(alias))
            logger.debug("Joined association path %s as %s", path, name)
        state.aliases[path] = alias
        return alias

    def _is_joined(self, state: CompileState, child_target: Any) -> bool:
        return any(child_target is alias for alias in state.aliases.values())

    def wrap_association(
        self,
        state: CompileState,
        target: Any,
        child_target: Any,
        association: FieldDescriptor,
        predicate: Any,
        *,
        match_all: bool,
    ) -> Any:
        if self._is_joined(state, child_target):
            return predicate
        relationship = getattr(target, association.name).of_type(child_target)
        unconditional = isinstance(predicate, True_)
        if not association.is_to_many:
            return relationship.has() if unconditional else relationship.has(predicate)
        if match_all:
            if unconditional:
                return true()
            return not_(relationship.any(not_(predicate)))
        return relationship.any() if unconditional else relationship.any(predicate)

    def exists_predicate(
        self,
        state: CompileState,
        target: Any,
        child_target: Any,
        association: FieldDescriptor,
        exists: bool,
    ) -> Any:
        if self._is_joined(state, child_target):
            mapper = sa_inspect(association.related)
            key = mapper.get_property_by_column(mapper.primary_key[0]).key
            column = getattr(child_target, key)
            return column.is_not(None) if exists else column.is_(None)
        relationship = getattr(target, association.name)
        present = relationship.any() if association.is_to_many else relationship.has()
        return present if exists else not_(present)

    # -- ordering ------------------------------------------------------------

    def order_target(
        self, state: CompileState, target: Any, association: FieldDescriptor, path: str
    ) -> Any:
        return self.join_association(state, target, association, path)

    def distance_expression(self, column: Any, center: Any) -> Any:
        """Distance from *column* to *center*; only spatial dialects implement it."""
        raise InvalidValueError(
            f"Geo-distance ordering is not supported on {self.adapter_id.value}",
            value=center,
        )

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
        column = getattr(target, field.name)
        if priority:
            key: Any = case(
                {value: index for index, value in enumerate(priority)},
                value=column,
                else_=len(priority),
            )
        elif geo_center is not None:
            point = normalize_point(geo_center, operator="center", path=path)
            key = self.distance_expression(column, point)
        else:
            key = column
        ordered = asc(key) if direction is SortDirection.ASC else desc(key)
        terms: list[Any] = []
        if nulls is NullsPlacement.DEFAULT:
            terms.append(ordered)
        elif self.native_nulls_ordering:
            terms.append(
                ordered.nulls_first() if nulls is NullsPlacement.FIRST else ordered.nulls_last()
            )
        else:
            first, last = (0, 1) if nulls is NullsPlacement.FIRST else (1, 0)
            terms.append(case((column.is_(None), first), else_=last))
            terms.append(ordered)
        state.query = state.query.order_by(*terms)


def _scalar_type_for(col_type: Any) -> SemanticType | None:
    if isinstance(col_type, Enum):
        return SemanticType.ENUM
    if isinstance(col_type, Boolean):
        return SemanticType.BOOLEAN
    if isinstance(col_type, Uuid):
        return SemanticType.ID
    if isinstance(col_type, Integer):
        return SemanticType.INTEGER
    if isinstance(col_type, Float):
        return SemanticType.FLOAT
    if isinstance(col_type, Numeric):
        return SemanticType.DECIMAL
    if isinstance(col_type, DateTime):
        return SemanticType.DATETIME
    if isinstance(col_type, Date):
        return SemanticType.DATE
    if isinstance(col_type, Time):
        return SemanticType.TIME
    if isinstance(col_type, String):
        return SemanticType.STRING
    spatial = spatial_column_types()
    if spatial and isinstance(col_type, spatial):
        return SemanticType.COORDINATES
    return None
