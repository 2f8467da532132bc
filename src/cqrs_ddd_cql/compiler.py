"""
Compile a client filter payload into a backend-native query.

The compiler walks the filter AST and delegates every backend decision to the
resolved adapter: leaves become predicates through ``build_predicate``,
combinators fold through ``conjunction`` / ``disjunction`` / ``negation`` and
associations are scoped with ``enter_association`` / ``wrap_association``.
The folded predicate is attached to the query once, at the end.

Validation happens before dispatch:

* the allow-list check rejects the whole filter when any referenced path is
  not authorized (:class:`UnauthorizedFieldError` lists all of them);
* fields are resolved against the adapter's field map
  (:class:`UnknownFieldError`);
* operators are checked against the operator registry
  (:class:`UnsupportedOperatorError`) and values against the operator arity
  (:class:`InvalidValueError`).

Association semantics
---------------------
A to-many association is an existence test: ``{"posts": {"title": ...}}``
matches rows with *at least one* matching post. Passing the association path
in ``match_all`` switches it to "every related row matches" (vacuously true
when there are no related rows).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Literal, Union

from .adapters import AdapterRegistry, build_default_adapter_registry
from .adapters.base import ApplyOptions, CompileState
from .ast import (
    AssociationFilter,
    CombinatorNode,
    ExistsFilter,
    Leaf,
    optimize,
    parse_filter,
    referenced_fields,
)
from .config import CQLSettings
from .exceptions import InvalidValueError, UnauthorizedFieldError, UnsupportedOperatorError
from .operators import EXISTS_KEY, Combinator, SemanticType
from .registry import build_default_registry

if TYPE_CHECKING:
    from .adapters.base import Adapter
    from .ast import FilterNode
    from .fields import FieldMap
    from .registry import OperatorRegistry

logger = logging.getLogger("cqrs_ddd.cql.compiler")

#: ``"all"``, ``"none"`` or an iterable of dotted field paths.
AllowedFields = Union[Literal["all", "none"], Iterable[str]]

_NODE_TYPES = (Leaf, CombinatorNode, AssociationFilter, ExistsFilter)


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


def unauthorized_fields(node: FilterNode | None, allowed: AllowedFields) -> list[str]:
    """
    Referenced paths outside *allowed*.

    Listing an association grants every path below it; listing a path below
    an association grants the association itself.
    """
    referenced = referenced_fields(node)
    if allowed == "all":
        return []
    if allowed == "none":
        return sorted(referenced)
    granted = set(allowed)
    return sorted(p for p in referenced if not _is_granted(p, granted))


def _is_granted(path: str, granted: set[str]) -> bool:
    if path in granted:
        return True
    parts = path.split(".")
    if any(".".join(parts[:i]) in granted for i in range(1, len(parts))):
        return True
    return any(g.startswith(f"{path}.") for g in granted)


def authorize(node: FilterNode | None, allowed: AllowedFields) -> None:
    """
    Raises:
        UnauthorizedFieldError: Naming every offending path.
    """
    denied = unauthorized_fields(node, allowed)
    if denied:
        raise UnauthorizedFieldError(denied)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class QueryCompiler:
    """
    Filter payload -> backend-native query.

    Usage::

        compiler = QueryCompiler()
        stmt = compiler.compile(
            select(User),
            {"age": {"_gte": 18}, "organization": {"name": {"_ilike": "acme%"}}},
            User,
            allowed_fields=["age", "organization"],
        )
    """

    def __init__(
        self,
        adapters: AdapterRegistry | None = None,
        registry: OperatorRegistry | None = None,
        settings: CQLSettings | None = None,
    ) -> None:
        self.settings = settings or CQLSettings()
        self.adapters = adapters or build_default_adapter_registry(
            self.settings.default_sql_dialect
        )
        self.registry = registry or build_default_registry(self.adapters)

    def resolve_adapter(self, queryable: Any, dialect: Any = None) -> Adapter:
        return self.adapters.resolve(queryable, dialect)

    def compile(
        self,
        query: Any,
        filter: Mapping[str, Any] | FilterNode | None,
        queryable: Any,
        *,
        allowed_fields: AllowedFields = "all",
        match_all: Iterable[str] = frozenset(),
        adapter: Adapter | None = None,
        field_overrides: Mapping[str, SemanticType | str] | None = None,
        dialect: Any = None,
    ) -> Any:
        """
        Compile *filter* onto *query*.

        Args:
            query: The backend query to extend (a ``Select``, a
                ``SearchQuery`` or a ``MemoryQuery``).
            filter: Client payload or an already parsed filter tree.
            queryable: Model or document class the filter addresses.
            allowed_fields: Allow-list of filterable dotted paths.
            match_all: To-many association paths whose filter must hold
                for every related row.
            adapter: Explicit adapter; resolved from *queryable* otherwise.
            field_overrides: Dotted path -> semantic type overrides, e.g. for
                enum values stored in plain string columns.
            dialect: SQL dialect name, ``Engine`` or ``Connection`` used to
                pick the SQL adapter.

        Returns:
            The extended query; *query* itself when the filter is empty.
        """
        node = filter if isinstance(filter, _NODE_TYPES) else parse_filter(filter)
        if node is None:
            return query
        if isinstance(node, ExistsFilter):
            raise InvalidValueError(
                "`_exists` can only be used in associated filters, not at the top level",
                operator=EXISTS_KEY,
                path="where",
            )

        authorize(node, allowed_fields)
        if self.settings.optimize_filters:
            node = optimize(node) or node

        backend = adapter or self.resolve_adapter(queryable, dialect)
        run = _Compilation(
            compiler=self,
            adapter=backend,
            state=CompileState(query=query, queryable=queryable),
            match_all=frozenset(match_all),
            overrides=dict(field_overrides or {}),
        )
        root = backend.root_target(query, queryable)
        predicate = run.compile_node(node, root, run.fields_for(queryable, ""), "", "where")
        logger.debug(
            "Compiled filter on %s for %s",
            backend.queryable_name(queryable),
            backend.adapter_id.value,
        )
        return backend.apply_predicate(run.state.query, predicate)

    def max_in_items(self, adapter: Adapter) -> int | None:
        configured = self.settings.max_in_clause_items.get(adapter.adapter_id)
        return configured if configured is not None else adapter.max_in_items()


# ---------------------------------------------------------------------------
# Internal compilation
# ---------------------------------------------------------------------------


class _Compilation:
    """State of one ``compile`` call."""

    def __init__(
        self,
        *,
        compiler: QueryCompiler,
        adapter: Adapter,
        state: CompileState,
        match_all: frozenset[str],
        overrides: dict[str, SemanticType | str],
    ) -> None:
        self.compiler = compiler
        self.adapter = adapter
        self.state = state
        self.match_all = match_all
        self.overrides = overrides
        self.max_items = compiler.max_in_items(adapter)

    def fields_for(self, queryable: Any, prefix: str) -> FieldMap:
        fields = self.adapter.queryable_fields(queryable)
        local = {
            path[len(prefix) :]: semantic_type
            for path, semantic_type in self.overrides.items()
            if path.startswith(prefix) and "." not in path[len(prefix) :]
        }
        return fields.merge_overrides(local)

    def compile_node(
        self, node: FilterNode, target: Any, fields: FieldMap, prefix: str, path: str
    ) -> Any:
        if isinstance(node, Leaf):
            return self.compile_leaf(node, target, fields, f"{path}.{node.field}")
        if isinstance(node, AssociationFilter):
            return self.compile_association(
                node, target, fields, prefix, f"{path}.{node.association}"
            )
        if isinstance(node, ExistsFilter):
            raise InvalidValueError(
                "`_exists` must be the only key of an association filter",
                operator=EXISTS_KEY,
                path=path,
            )
        return self.compile_combinator(node, target, fields, prefix, path)

    def compile_combinator(
        self, node: CombinatorNode, target: Any, fields: FieldMap, prefix: str, path: str
    ) -> Any:
        if node.op is Combinator.NOT:
            inner = self.compile_node(
                node.children[0], target, fields, prefix, f"{path}._not"
            )
            return self.adapter.negation(inner)
        if node.op is Combinator.OR:
            return self.adapter.disjunction(
                [
                    self.compile_node(child, target, fields, prefix, f"{path}._or[{i}]")
                    for i, child in enumerate(node.children)
                ]
            )
        return self.adapter.conjunction(
            [self.compile_node(child, target, fields, prefix, path) for child in node.children]
        )

    def compile_leaf(self, leaf: Leaf, target: Any, fields: FieldMap, path: str) -> Any:
        field = fields.get_or_raise(leaf.field, path)
        if field.is_association:
            raise InvalidValueError(
                f"'{leaf.field}' is an association; filter on its fields instead",
                operator=leaf.operator.value,
                value=leaf.value,
                path=path,
            )
        registry = self.compiler.registry
        registry.validate(field, leaf.operator, self.adapter.adapter_id, path=path)
        registry.check_value(
            leaf.operator,
            leaf.value,
            max_items=self.max_items,
            semantic_type=field.semantic_type,
            path=path,
        )
        options = ApplyOptions(binding=target, path=path)
        predicate = self.adapter.build_predicate(
            target, field, leaf.operator, leaf.value, options
        )
        if predicate is None:
            raise UnsupportedOperatorError(
                leaf.operator.value,
                [op.value for op in self.adapter.operators_for_type(field.semantic_type)]
                if field.semantic_type is not None
                else [],
                field=field.name,
                semantic_type=field.semantic_type.value if field.semantic_type else None,
                adapter=self.adapter.adapter_id.value,
                path=path,
            )
        return predicate

    def compile_association(
        self,
        node: AssociationFilter,
        target: Any,
        fields: FieldMap,
        prefix: str,
        path: str,
    ) -> Any:
        association = fields.get_or_raise(node.association, path)
        if not association.is_association:
            raise InvalidValueError(
                f"'{node.association}' is not an association; use an operator object",
                path=path,
            )
        assoc_path = f"{prefix}{node.association}"
        child_target = self.adapter.enter_association(
            self.state, target, association, assoc_path
        )
        try:
            if isinstance(node.node, ExistsFilter):
                return self.adapter.exists_predicate(
                    self.state, target, child_target, association, node.node.exists
                )
            child_prefix = f"{assoc_path}."
            inner = self.compile_node(
                node.node,
                child_target,
                self.fields_for(association.related, child_prefix),
                child_prefix,
                path,
            )
            return self.adapter.wrap_association(
                self.state,
                target,
                child_target,
                association,
                inner,
                match_all=association.is_to_many and assoc_path in self.match_all,
            )
        finally:
            self.adapter.leave_association(self.state, association)
