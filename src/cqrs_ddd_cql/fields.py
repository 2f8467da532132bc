"""Field metadata exposed by an adapter for one queryable."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from .exceptions import UnknownFieldError
from .operators import SemanticType


class Cardinality(str, Enum):
    ONE = "one"
    MANY = "many"


@dataclass(frozen=True)
class FieldDescriptor:
    """
    One filterable field or association of a queryable.

    Attributes:
        name: Attribute name as used in filter payloads.
        semantic_type: Filter-relevant type; ``None`` for associations.
        is_association: Whether the field points at another queryable.
        related: The related queryable for associations.
        cardinality: ``ONE`` or ``MANY`` for associations.
        nullable: Whether the backing column accepts nulls.
        enum_values: Allowed values for enum-typed fields.
    """

    name: str
    semantic_type: SemanticType | None
    is_association: bool = False
    related: Any = None
    cardinality: Cardinality | None = None
    nullable: bool = True
    enum_values: tuple[Any, ...] | None = None

    @property
    def is_to_many(self) -> bool:
        return self.is_association and self.cardinality is Cardinality.MANY

    @classmethod
    def association(
        cls, name: str, related: Any, cardinality: Cardinality
    ) -> FieldDescriptor:
        return cls(
            name=name,
            semantic_type=None,
            is_association=True,
            related=related,
            cardinality=cardinality,
        )


class FieldMap(Mapping[str, FieldDescriptor]):
    """Ordered, read-only ``name -> FieldDescriptor`` mapping for one queryable."""

    def __init__(self, queryable_name: str, fields: list[FieldDescriptor]) -> None:
        self.queryable_name = queryable_name
        self._fields: dict[str, FieldDescriptor] = {f.name: f for f in fields}

    def __getitem__(self, key: str) -> FieldDescriptor:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"FieldMap({self.queryable_name!r}, {list(self._fields)!r})"

    def get_or_raise(self, name: str, path: str | None = None) -> FieldDescriptor:
        """Return the descriptor or raise :class:`UnknownFieldError`."""
        descriptor = self._fields.get(name)
        if descriptor is None:
            raise UnknownFieldError(
                name, self.queryable_name, self._fields.keys(), path=path
            )
        return descriptor

    @property
    def scalars(self) -> list[FieldDescriptor]:
        return [f for f in self._fields.values() if not f.is_association]

    @property
    def associations(self) -> list[FieldDescriptor]:
        return [f for f in self._fields.values() if f.is_association]

    def merge_overrides(
        self, overrides: Mapping[str, SemanticType | str] | None
    ) -> FieldMap:
        """
        Return a copy where caller-supplied types replace introspected ones.

        Used for enum-typed fields stored as plain strings or integers: the
        field must expose the enum operator set, not the storage type's.
        Overrides naming unknown fields raise :class:`UnknownFieldError`.
        """
        if not overrides:
            return self
        merged = dict(self._fields)
        for name, semantic_type in overrides.items():
            current = self.get_or_raise(name)
            merged[name] = replace(current, semantic_type=SemanticType(semantic_type))
        return FieldMap(self.queryable_name, list(merged.values()))
