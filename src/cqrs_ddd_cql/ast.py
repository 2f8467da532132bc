"""
Filter AST and payload parser.

A client payload such as::

    {
        "age": {"_gte": 18},
        "_or": [{"status": {"_eq": "active"}}, {"status": {"_eq": "pending"}}],
        "organization": {"name": {"_ilike": "acme%"}},
    }

is parsed into an immutable tree of :class:`Leaf`, :class:`CombinatorNode`,
:class:`AssociationFilter` and :class:`ExistsFilter` nodes. The parser is
structural: an object whose keys are all operator tags is a field filter,
anything else under a field key is an association filter. Whether the field
really is a scalar or an association is checked by the compiler against the
adapter's field map.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from .exceptions import InvalidValueError
from .operators import (
    EQUALITY_OPERATORS,
    EXISTS_KEY,
    RANGE_OPERATORS,
    Combinator,
    FilterOperator,
)

_OPERATOR_TAGS: frozenset[str] = frozenset(m.value for m in FilterOperator)


@dataclass(frozen=True)
class Leaf:
    """``field <operator> value``."""

    field: str
    operator: FilterOperator
    value: Any


@dataclass(frozen=True)
class CombinatorNode:
    """``AND`` / ``OR`` over zero or more children, ``NOT`` over exactly one."""

    op: Combinator
    children: tuple[FilterNode, ...]

    def __post_init__(self) -> None:
        if self.op is Combinator.NOT and len(self.children) != 1:
            raise InvalidValueError(
                f"_not takes exactly one child, got {len(self.children)}",
                operator=Combinator.NOT.value,
            )


@dataclass(frozen=True)
class AssociationFilter:
    """A filter scoped to the rows of an association."""

    association: str
    node: FilterNode


@dataclass(frozen=True)
class ExistsFilter:
    """``{assoc: {_exists: bool}}``: presence test of the enclosing association."""

    exists: bool


FilterNode = Union[Leaf, CombinatorNode, AssociationFilter, ExistsFilter]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_filter(payload: Mapping[str, Any] | None) -> FilterNode | None:
    """
    Parse a client filter payload.

    Returns ``None`` for ``None`` and ``{}`` (the identity filter).

    Raises:
        InvalidValueError: Malformed payload, with the offending path.
        UnsupportedOperatorError: Unknown ``_``-prefixed operator tag.
    """
    if payload is None:
        return None
    return _parse_object(payload, path="where", in_association=False)


def _parse_object(
    payload: Any, *, path: str, in_association: bool
) -> FilterNode | None:
    if not isinstance(payload, Mapping):
        raise InvalidValueError(
            f"Filter at '{path}' must be an object, got {type(payload).__name__}",
            value=payload,
            path=path,
        )

    if EXISTS_KEY in payload:
        return _parse_exists(payload, path=path, in_association=in_association)

    parts: list[FilterNode] = []
    for key, value in payload.items():
        child_path = f"{path}.{key}"
        if key in (Combinator.AND, Combinator.OR):
            node = _parse_list(Combinator.parse(key), value, path=child_path)
        elif key == Combinator.NOT:
            inner = _parse_object(value, path=child_path, in_association=False)
            node = None if inner is None else CombinatorNode(Combinator.NOT, (inner,))
        else:
            node = _parse_field(str(key), value, path=child_path)
        if node is not None:
            parts.append(node)

    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return CombinatorNode(Combinator.AND, tuple(parts))


def _parse_exists(
    payload: Mapping[str, Any], *, path: str, in_association: bool
) -> ExistsFilter:
    if not in_association:
        raise InvalidValueError(
            "`_exists` can only be used in associated filters, not at the top level",
            operator=EXISTS_KEY,
            path=path,
        )
    if len(payload) != 1:
        raise InvalidValueError(
            "`_exists` cannot be combined with other operators in the same "
            "filter object",
            operator=EXISTS_KEY,
            path=path,
        )
    value = payload[EXISTS_KEY]
    if not isinstance(value, bool):
        raise InvalidValueError(
            "`_exists` takes a boolean", operator=EXISTS_KEY, value=value, path=path
        )
    return ExistsFilter(value)


def _parse_list(op: Combinator, value: Any, *, path: str) -> FilterNode | None:
    if not isinstance(value, list | tuple):
        raise InvalidValueError(
            f"{op.value} expects a list of filters", operator=op.value, path=path
        )
    children: list[FilterNode] = []
    for index, item in enumerate(value):
        item_path = f"{path}[{index}]"
        if isinstance(item, Mapping) and EXISTS_KEY in item:
            raise InvalidValueError(
                f"`_exists` cannot be used as a direct member of `{op.value}`. "
                "Move it into its own association filter.",
                operator=EXISTS_KEY,
                path=item_path,
            )
        child = _parse_object(item, path=item_path, in_association=False)
        if child is not None:
            children.append(child)
    if not children:
        return None
    return CombinatorNode(op, tuple(children))


def _parse_field(name: str, value: Any, *, path: str) -> FilterNode | None:
    if value is None:
        raise InvalidValueError(
            f"Field filter '{name}' is null; "
            'use {"_is_null": true} to match missing values',
            value=value,
            path=path,
        )
    if not isinstance(value, Mapping):
        raise InvalidValueError(
            f"Field filter '{name}' must be an object of operators",
            value=value,
            path=path,
        )
    if not value:
        return None

    if _is_operator_object(value):
        leaves: list[FilterNode] = [
            Leaf(name, FilterOperator.parse(tag), operand)
            for tag, operand in value.items()
        ]
        if len(leaves) == 1:
            return leaves[0]
        return CombinatorNode(Combinator.AND, tuple(leaves))

    inner = _parse_object(value, path=path, in_association=True)
    if inner is None:
        return None
    return AssociationFilter(name, inner)


def _is_operator_object(value: Mapping[str, Any]) -> bool:
    """
    All keys are operator tags.

    An unknown ``_``-prefixed key that is neither a combinator nor
    ``_exists`` is reported as an unsupported operator.
    """
    is_operator = True
    for key in value:
        if key in _OPERATOR_TAGS:
            continue
        if Combinator.is_combinator(key) or key == EXISTS_KEY:
            is_operator = False
            continue
        if isinstance(key, str) and key.startswith("_"):
            FilterOperator.parse(key)
        is_operator = False
    return is_operator


# ---------------------------------------------------------------------------
# Tree utilities
# ---------------------------------------------------------------------------


def referenced_fields(node: FilterNode | None, prefix: str = "") -> set[str]:
    """Dotted paths of every field and association the tree touches."""
    if node is None:
        return set()
    if isinstance(node, Leaf):
        return {f"{prefix}{node.field}"}
    if isinstance(node, CombinatorNode):
        found: set[str] = set()
        for child in node.children:
            found |= referenced_fields(child, prefix)
        return found
    if isinstance(node, AssociationFilter):
        path = f"{prefix}{node.association}"
        return {path} | referenced_fields(node.node, f"{path}.")
    return set()


def negate(node: FilterNode) -> CombinatorNode:
    return CombinatorNode(Combinator.NOT, (node,))


def to_dict(node: FilterNode | None) -> dict[str, Any]:
    """Render a tree back into payload form."""
    if node is None:
        return {}
    if isinstance(node, Leaf):
        return {node.field: {node.operator.value: node.value}}
    if isinstance(node, ExistsFilter):
        return {EXISTS_KEY: node.exists}
    if isinstance(node, AssociationFilter):
        return {node.association: to_dict(node.node)}
    if node.op is Combinator.NOT:
        return {Combinator.NOT.value: to_dict(node.children[0])}
    return {node.op.value: [to_dict(c) for c in node.children]}


_CHEAP = frozenset((*EQUALITY_OPERATORS, FilterOperator.IN, FilterOperator.IS_NULL))
_MODERATE = frozenset(RANGE_OPERATORS)


def _cost_rank(node: FilterNode) -> int:
    if isinstance(node, Leaf):
        if node.operator in _CHEAP:
            return 0
        if node.operator in _MODERATE:
            return 1
        return 2
    if isinstance(node, AssociationFilter):
        return 4
    return 3


def optimize(node: FilterNode | None) -> FilterNode | None:
    """
    Reorder ``AND``/``OR`` children so that cheap equality tests come first.

    Both combinators are commutative; the sort is stable, so children of the
    same rank keep their payload order.
    """
    if node is None or isinstance(node, Leaf | ExistsFilter):
        return node
    if isinstance(node, AssociationFilter):
        inner = optimize(node.node)
        return AssociationFilter(node.association, inner) if inner else node
    children = tuple(optimize(c) or c for c in node.children)
    if node.op is not Combinator.NOT:
        children = tuple(sorted(children, key=_cost_rank))
    return CombinatorNode(node.op, children)
