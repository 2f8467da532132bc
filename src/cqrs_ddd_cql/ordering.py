"""
Order payload parsing and compilation.

Accepted payload shapes::

    [
        {"name": "asc"},
        {"created_at": "desc_nulls_last"},
        {"age": {"direction": "desc", "nulls": "first"}},
        {"status": {"direction": "asc", "priority": ["urgent", "open", "closed"]}},
        {"location": {"direction": "asc", "center": {"lat": 52.5, "lng": 13.4}}},
        {"organization": {"parent": {"name": "asc"}}},
    ]

A nested object whose keys are not order options is an association hop.
Hops through to-one associations are always allowed; to-many hops must be
opted in via ``allow_to_many`` because the join multiplies rows (one result
row per related row).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .adapters import AdapterRegistry, build_default_adapter_registry
from .adapters.base import CompileState
from .config import CQLSettings
from .exceptions import InvalidValueError, NotOrderableError
from .operators import NullsPlacement, SortDirection

if TYPE_CHECKING:
    from .adapters.base import Adapter

logger = logging.getLogger("cqrs_ddd.cql.ordering")

_OPTION_KEYS = frozenset({"direction", "nulls", "priority", "center"})


@dataclass(frozen=True)
class OrderTerm:
    """One ordering term, reached through ``path`` association hops."""

    field: str
    direction: SortDirection = SortDirection.ASC
    nulls: NullsPlacement = NullsPlacement.DEFAULT
    path: tuple[str, ...] = ()
    priority: tuple[Any, ...] = ()
    geo_center: Any = None

    @property
    def dotted(self) -> str:
        return ".".join((*self.path, self.field))

    @property
    def direction_tag(self) -> str:
        """``asc``, ``desc_nulls_last``..."""
        if self.nulls is NullsPlacement.DEFAULT:
            return self.direction.value
        return f"{self.direction.value}_nulls_{self.nulls.value}"


def parse_direction(
    raw: Any, *, path: str | None = None
) -> tuple[SortDirection, NullsPlacement]:
    """
    Parse ``asc``, ``DESC``, ``asc_nulls_first``, ``desc_nulls_last``...

    Raises:
        InvalidValueError: Unknown direction.
    """
    text = str(getattr(raw, "value", raw)).lower()
    direction, _, nulls = text.partition("_nulls_")
    try:
        parsed = SortDirection(direction)
        placement = NullsPlacement(nulls) if nulls else NullsPlacement.DEFAULT
    except ValueError:
        raise InvalidValueError(
            f"Invalid sort direction '{raw}'", value=raw, path=path
        ) from None
    return parsed, placement


def parse_order(payload: Any) -> list[OrderTerm]:
    """
    Parse an order payload into terms, keeping payload order.

    ``None`` and ``[]`` produce no terms; a single mapping is accepted in
    place of a one-element list.

    Raises:
        InvalidValueError: Malformed payload, with the offending path.
    """
    if payload is None:
        return []
    if isinstance(payload, Mapping):
        payload = [payload]
    if not isinstance(payload, Sequence) or isinstance(payload, str):
        raise InvalidValueError("Order must be a list of objects", value=payload, path="order")
    terms: list[OrderTerm] = []
    for index, item in enumerate(payload):
        item_path = f"order[{index}]"
        if not isinstance(item, Mapping):
            raise InvalidValueError(
                "Order entries must be objects", value=item, path=item_path
            )
        terms.extend(_parse_entry(item, (), item_path))
    return terms


def _parse_entry(
    item: Mapping[str, Any], hops: tuple[str, ...], path: str
) -> list[OrderTerm]:
    terms: list[OrderTerm] = []
    for key, value in item.items():
        key_path = f"{path}.{key}"
        if isinstance(value, Mapping) and not (value.keys() <= _OPTION_KEYS):
            terms.extend(_parse_entry(value, (*hops, str(key)), key_path))
        elif isinstance(value, Mapping):
            terms.append(_parse_options(str(key), value, hops, key_path))
        else:
            direction, nulls = parse_direction(value, path=key_path)
            terms.append(OrderTerm(str(key), direction, nulls, hops))
    return terms


def _parse_options(
    field: str, options: Mapping[str, Any], hops: tuple[str, ...], path: str
) -> OrderTerm:
    direction, nulls = parse_direction(options.get("direction", "asc"), path=path)
    if "nulls" in options:
        try:
            nulls = NullsPlacement(str(options["nulls"]).lower())
        except ValueError:
            raise InvalidValueError(
                f"Invalid nulls placement '{options['nulls']}'",
                value=options["nulls"],
                path=path,
            ) from None
    priority = options.get("priority") or ()
    if not isinstance(priority, list | tuple):
        raise InvalidValueError("priority must be a list", value=priority, path=path)
    center = options.get("center")
    if priority and center is not None:
        raise InvalidValueError(
            "priority and center cannot be combined in one order term", path=path
        )
    return OrderTerm(field, direction, nulls, hops, tuple(priority), center)


class OrderCompiler:
    """
    Order payload -> ``ORDER BY`` terms (or the backend's sort equivalent).

    Association hops go through the adapter's ``order_target``; on SQL this
    is the same named outer-join alias the query compiler uses for a to-one
    filter on that path, so filtering and ordering share one join.
    """

    def __init__(
        self,
        adapters: AdapterRegistry | None = None,
        settings: CQLSettings | None = None,
    ) -> None:
        self.settings = settings or CQLSettings()
        self.adapters = adapters or build_default_adapter_registry(
            self.settings.default_sql_dialect
        )

    def compile(
        self,
        query: Any,
        order: Any,
        queryable: Any,
        *,
        allow_to_many: Iterable[str] = (),
        adapter: Adapter | None = None,
        dialect: Any = None,
    ) -> Any:
        """
        Append the order terms to *query*.

        Raises:
            UnknownFieldError: A hop or field does not exist.
            NotOrderableError: A to-many hop was not opted in.
            InvalidValueError: Bad direction, or ordering by an association.
        """
        terms = (
            list(order)
            if isinstance(order, list | tuple) and all(isinstance(t, OrderTerm) for t in order)
            else parse_order(order)
        )
        if not terms:
            return query
        backend = adapter or self.adapters.resolve(queryable, dialect)
        opted_in = frozenset(allow_to_many)
        state = CompileState(query=query, queryable=queryable)
        root = backend.root_target(query, queryable)
        for index, term in enumerate(terms):
            self._compile_term(backend, state, root, queryable, term, opted_in, f"order[{index}]")
        logger.debug(
            "Compiled %d order term(s) on %s for %s",
            len(terms),
            backend.queryable_name(queryable),
            backend.adapter_id.value,
        )
        return state.query

    def _compile_term(
        self,
        backend: Adapter,
        state: CompileState,
        root: Any,
        queryable: Any,
        term: OrderTerm,
        opted_in: frozenset[str],
        path: str,
    ) -> None:
        if term.direction_tag not in backend.sort_directions():
            raise InvalidValueError(
                f"Sort direction '{term.direction_tag}' is not supported on "
                f"{backend.adapter_id.value}",
                value=term.direction_tag,
                path=path,
            )
        if term.priority and not backend.capabilities.get("supports_priority_ordering"):
            raise InvalidValueError(
                f"Priority ordering is not supported on {backend.adapter_id.value}",
                path=path,
            )
        if term.geo_center is not None and not backend.capabilities.get(
            "supports_geo_ordering"
        ):
            raise InvalidValueError(
                f"Geo-distance ordering is not supported on {backend.adapter_id.value}",
                path=path,
            )

        target = root
        fields = backend.queryable_fields(queryable)
        walked: list[str] = []
        for hop in term.path:
            association = fields.get_or_raise(hop, path)
            if not association.is_association:
                raise InvalidValueError(
                    f"'{hop}' is not an association", value=hop, path=path
                )
            walked.append(hop)
            assoc_path = ".".join(walked)
            if association.is_to_many and assoc_path not in opted_in:
                raise NotOrderableError(assoc_path, fields.queryable_name)
            target = backend.order_target(state, target, association, assoc_path)
            fields = backend.queryable_fields(association.related)

        field = fields.get_or_raise(term.field, path)
        if field.is_association:
            raise InvalidValueError(
                f"Cannot order by association '{term.dotted}'; order by one of its fields",
                value=term.field,
                path=path,
            )
        backend.apply_order(
            state,
            target,
            field,
            term.direction,
            term.nulls,
            priority=term.priority,
            geo_center=term.geo_center,
            path=path,
        )
