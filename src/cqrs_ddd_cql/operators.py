"""Closed vocabularies: filter operators, combinators, adapters and types."""

from __future__ import annotations

from enum import Enum
from typing import Any

from .exceptions import UnsupportedOperatorError


class FilterOperator(str, Enum):
    """Operators accepted in a field filter object."""

    # Standard comparison
    EQ = "_eq"
    NE = "_ne"
    NEQ = "_neq"
    GT = "_gt"
    GTE = "_gte"
    LT = "_lt"
    LTE = "_lte"
    IN = "_in"
    NIN = "_nin"

    # Null checks
    IS_NULL = "_is_null"

    # String operations
    LIKE = "_like"
    NLIKE = "_nlike"
    ILIKE = "_ilike"
    NILIKE = "_nilike"
    STARTS_WITH = "_starts_with"
    ISTARTS_WITH = "_istarts_with"
    ENDS_WITH = "_ends_with"
    IENDS_WITH = "_iends_with"
    CONTAINS = "_contains"
    ICONTAINS = "_icontains"

    # Temporal
    BETWEEN = "_between"
    PERIOD = "_period"
    CURRENT_PERIOD = "_current_period"

    # Arrays
    INCLUDES = "_includes"
    EXCLUDES = "_excludes"
    INCLUDES_ALL = "_includes_all"
    EXCLUDES_ALL = "_excludes_all"
    INCLUDES_ANY = "_includes_any"
    EXCLUDES_ANY = "_excludes_any"
    IS_EMPTY = "_is_empty"

    # Geo
    ST_DWITHIN = "_st_dwithin"
    ST_WITHIN_BOUNDING_BOX = "_st_within_bounding_box"

    # Full-text (search engines)
    MATCH = "_match"
    MATCH_PHRASE = "_match_phrase"
    MATCH_PHRASE_PREFIX = "_match_phrase_prefix"
    FUZZY = "_fuzzy"
    PREFIX = "_prefix"
    REGEXP = "_regexp"
    WILDCARD = "_wildcard"

    @property
    def canonical(self) -> FilterOperator:
        """``_neq`` is an alias of ``_ne``."""
        return FilterOperator.NE if self is FilterOperator.NEQ else self

    @classmethod
    def parse(cls, tag: Any) -> FilterOperator:
        """Resolve ``"_eq"``, ``"eq"`` or a member into a :class:`FilterOperator`."""
        if isinstance(tag, cls):
            return tag
        text = str(tag)
        if not text.startswith("_"):
            text = f"_{text}"
        try:
            return cls(text)
        except ValueError:
            raise UnsupportedOperatorError(
                str(tag), [m.value for m in cls]
            ) from None


class Combinator(str, Enum):
    """Boolean connectives joining sub-filters."""

    AND = "_and"
    OR = "_or"
    NOT = "_not"

    @classmethod
    def is_combinator(cls, key: Any) -> bool:
        return key in _COMBINATOR_KEYS

    @classmethod
    def parse(cls, tag: Any) -> Combinator:
        if isinstance(tag, cls):
            return tag
        text = str(tag).lower()
        if not text.startswith("_"):
            text = f"_{text}"
        try:
            return cls(text)
        except ValueError:
            raise UnsupportedOperatorError(
                str(tag), [m.value for m in cls]
            ) from None


_COMBINATOR_KEYS: frozenset[str] = frozenset(m.value for m in Combinator)

EXISTS_KEY = "_exists"


class AdapterId(str, Enum):
    """Backends with a registered adapter implementation."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE = "sqlite"
    MSSQL = "mssql"
    CLICKHOUSE = "clickhouse"
    ELASTICSEARCH = "elasticsearch"
    MEMORY = "memory"

    @property
    def is_sql(self) -> bool:
        return self in _SQL_ADAPTERS


_SQL_ADAPTERS: frozenset[AdapterId] = frozenset(
    {
        AdapterId.POSTGRES,
        AdapterId.MYSQL,
        AdapterId.SQLITE,
        AdapterId.MSSQL,
        AdapterId.CLICKHOUSE,
    }
)


class SemanticType(str, Enum):
    """Filter-relevant classification of a field, independent of storage."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    ID = "id"
    ENUM = "enum"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    COORDINATES = "coordinates"
    ARRAY_STRING = "array_string"
    ARRAY_INTEGER = "array_integer"
    ARRAY_ID = "array_id"
    ARRAY_ENUM = "array_enum"

    @property
    def is_array(self) -> bool:
        return self.value.startswith("array_")


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class NullsPlacement(str, Enum):
    FIRST = "first"
    LAST = "last"
    DEFAULT = "default"


# -- operator groups ---------------------------------------------------------

EQUALITY_OPERATORS: tuple[FilterOperator, ...] = (
    FilterOperator.EQ,
    FilterOperator.NE,
    FilterOperator.NEQ,
)

RANGE_OPERATORS: tuple[FilterOperator, ...] = (
    FilterOperator.GT,
    FilterOperator.GTE,
    FilterOperator.LT,
    FilterOperator.LTE,
)

SET_OPERATORS: tuple[FilterOperator, ...] = (FilterOperator.IN, FilterOperator.NIN)

PATTERN_OPERATORS: tuple[FilterOperator, ...] = (
    FilterOperator.LIKE,
    FilterOperator.NLIKE,
    FilterOperator.ILIKE,
    FilterOperator.NILIKE,
    FilterOperator.STARTS_WITH,
    FilterOperator.ISTARTS_WITH,
    FilterOperator.ENDS_WITH,
    FilterOperator.IENDS_WITH,
    FilterOperator.CONTAINS,
    FilterOperator.ICONTAINS,
)

TEMPORAL_OPERATORS: tuple[FilterOperator, ...] = (
    FilterOperator.BETWEEN,
    FilterOperator.PERIOD,
    FilterOperator.CURRENT_PERIOD,
)

ARRAY_OPERATORS: tuple[FilterOperator, ...] = (
    FilterOperator.INCLUDES,
    FilterOperator.EXCLUDES,
    FilterOperator.INCLUDES_ALL,
    FilterOperator.EXCLUDES_ALL,
    FilterOperator.INCLUDES_ANY,
    FilterOperator.EXCLUDES_ANY,
    FilterOperator.IS_EMPTY,
    FilterOperator.IS_NULL,
)

FULL_TEXT_OPERATORS: tuple[FilterOperator, ...] = (
    FilterOperator.MATCH,
    FilterOperator.MATCH_PHRASE,
    FilterOperator.MATCH_PHRASE_PREFIX,
    FilterOperator.FUZZY,
    FilterOperator.PREFIX,
    FilterOperator.REGEXP,
    FilterOperator.WILDCARD,
)

GEO_OPERATORS: tuple[FilterOperator, ...] = (
    FilterOperator.ST_DWITHIN,
    FilterOperator.ST_WITHIN_BOUNDING_BOX,
)
