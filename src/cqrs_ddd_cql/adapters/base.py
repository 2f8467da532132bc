"""
Adapter contract shared by every backend.

An adapter answers four questions for its backend: does it handle a
queryable, which fields does the queryable expose, which operators does a
semantic type get, and how is one operator applied. The query compiler
additionally drives the composition hooks (``conjunction``, ``negation``,
``enter_association`` ...) to fold a whole filter tree into one predicate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..exceptions import UnsupportedOperatorError
from ..fields import FieldDescriptor
from ..operators import FilterOperator, NullsPlacement, SemanticType, SortDirection

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from ..fields import FieldMap
    from ..operators import AdapterId


@dataclass(frozen=True)
class ApplyOptions:
    """
    Per-call options for :meth:`Adapter.apply_operator`.

    Attributes:
        binding: Target of a joined association (a SQL alias, a document
            path prefix); ``None`` means the root queryable.
        field_type: Semantic type override, skips introspection.
        hint: Adapter-specific hint, e.g. the distance unit for geo operators.
        path: Payload path used in error messages.
    """

    binding: Any = None
    field_type: SemanticType | None = None
    hint: Any = None
    path: str | None = None


@dataclass
class CompileState:
    """
    Mutable state of one compile call.

    ``query`` may grow (SQL joins) while predicates are built; ``aliases``
    maps an association path to the target reused by every leaf below it.
    """

    query: Any
    queryable: Any
    subquery_depth: int = 0
    aliases: dict[str, Any] = field(default_factory=dict)


ALL_SORT_DIRECTIONS: tuple[str, ...] = (
    "asc",
    "desc",
    "asc_nulls_first",
    "asc_nulls_last",
    "desc_nulls_first",
    "desc_nulls_last",
)


class Adapter(ABC):
    """Strategy interface every backend adapter implements."""

    #: Static capability map (limits and feature switches known without probing).
    capabilities: Mapping[str, Any] = {}

    #: Operators that depend on a probed backend feature.
    required_features: Mapping[FilterOperator, str] = {}

    @property
    @abstractmethod
    def adapter_id(self) -> AdapterId:
        """The backend this adapter compiles for."""
        ...

    # -- contract ------------------------------------------------------------

    @abstractmethod
    def handles(self, queryable: Any) -> bool:
        """Whether this adapter can compile filters for *queryable*."""
        ...

    @abstractmethod
    def queryable_fields(self, queryable: Any) -> FieldMap:
        """Introspect the filterable fields and associations of *queryable*."""
        ...

    @abstractmethod
    def operators_for_type(self, semantic_type: SemanticType) -> tuple[FilterOperator, ...]:
        """Ordered operators implemented for *semantic_type*; empty if none."""
        ...

    @abstractmethod
    def build_predicate(
        self,
        target: Any,
        field: FieldDescriptor,
        operator: FilterOperator,
        value: Any,
        options: ApplyOptions,
    ) -> Any | None:
        """
        Compile one ``field <operator> value`` test against *target*.

        Returns ``None`` when the operator has no implementation for the
        field's type.
        """
        ...

    @abstractmethod
    def root_target(self, query: Any, queryable: Any) -> Any:
        """Target that leaves at the top level of a filter resolve against."""
        ...

    @abstractmethod
    def apply_predicate(self, query: Any, predicate: Any) -> Any:
        """Attach a compiled predicate to *query* (identity predicates leave it untouched)."""
        ...

    def queryable_name(self, queryable: Any) -> str:
        return getattr(queryable, "__name__", type(queryable).__name__)

    def max_in_items(self) -> int | None:
        return self.capabilities.get("max_in_clause_items")

    def sort_directions(self) -> tuple[str, ...]:
        return ALL_SORT_DIRECTIONS

    def apply_operator(
        self,
        query: Any,
        field: str | FieldDescriptor,
        operator: FilterOperator | str,
        value: Any,
        options: ApplyOptions | None = None,
    ) -> Any:
        """
        Apply a single operator and return the new query.

        Unknown or unimplemented operators return *query* unchanged; the
        dispatch layer is responsible for rejecting them beforehand.
        """
        options = options or ApplyOptions()
        try:
            op = FilterOperator.parse(operator)
        except UnsupportedOperatorError:
            return query
        target = (
            options.binding
            if options.binding is not None
            else self.root_target(query, None)
        )
        descriptor = (
            field
            if isinstance(field, FieldDescriptor)
            else self.describe_field(target, field, options)
        )
        if descriptor is None:
            return query
        predicate = self.build_predicate(target, descriptor, op, value, options)
        if predicate is None:
            return query
        return self.apply_predicate(query, predicate)

    def describe_field(
        self, target: Any, name: str, options: ApplyOptions
    ) -> FieldDescriptor | None:
        """Descriptor for *name* on *target*; ``options.field_type`` wins when given."""
        if options.field_type is not None:
            return FieldDescriptor(name=name, semantic_type=options.field_type)
        return None

    # -- composition ---------------------------------------------------------

    @abstractmethod
    def conjunction(self, predicates: Sequence[Any]) -> Any: ...

    @abstractmethod
    def disjunction(self, predicates: Sequence[Any]) -> Any: ...

    @abstractmethod
    def negation(self, predicate: Any) -> Any: ...

    @abstractmethod
    def enter_association(
        self, state: CompileState, target: Any, association: FieldDescriptor, path: str
    ) -> Any:
        """Return the target that leaves under *association* resolve against."""
        ...

    @abstractmethod
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
        """Scope *predicate* (built against *child_target*) to the parent rows."""
        ...

    @abstractmethod
    def exists_predicate(
        self,
        state: CompileState,
        target: Any,
        child_target: Any,
        association: FieldDescriptor,
        exists: bool,
    ) -> Any: ...

    def leave_association(self, state: CompileState, association: FieldDescriptor) -> None:
        """Hook called after the association subtree was compiled."""
        return None

    # -- ordering ------------------------------------------------------------

    def order_target(
        self, state: CompileState, target: Any, association: FieldDescriptor, path: str
    ) -> Any:
        """Target used to order through *association* (defaults to a filter join)."""
        return self.enter_association(state, target, association, path)

    @abstractmethod
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
        """Append one ordering term to ``state.query``."""
        ...
