"""
Elasticsearch adapter.

Document classes describe their index mapping declaratively::

    class PostDoc:
        __es_fields__ = {"title": "string", "published_at": "datetime"}

    class UserDoc:
        __es_index__ = "users"
        __es_fields__ = {"name": "string", "age": "integer", "tags": "array_string"}
        __es_objects__ = {"organization": OrgDoc}   # object fields (to-one)
        __es_nested__ = {"posts": PostDoc}          # nested fields (to-many)

Filters compile into the ``filter`` list of the search body's ``bool``
query; string fields are expected to be ``keyword`` (or have the client
point the filter at a ``.keyword`` sub-field through ``__es_fields__``).
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ...fields import Cardinality, FieldDescriptor, FieldMap
from ...operators import (
    ARRAY_OPERATORS,
    EQUALITY_OPERATORS,
    FULL_TEXT_OPERATORS,
    GEO_OPERATORS,
    PATTERN_OPERATORS,
    RANGE_OPERATORS,
    SET_OPERATORS,
    TEMPORAL_OPERATORS,
    AdapterId,
    FilterOperator,
    NullsPlacement,
    SemanticType,
    SortDirection,
)
from ...values import normalize_point
from ..base import Adapter, ApplyOptions, CompileState
from .operators import (
    MATCH_ALL,
    MATCH_NONE,
    compile_array,
    compile_full_text,
    compile_geo,
    compile_null,
    compile_set,
    compile_standard,
    compile_string,
    compile_temporal,
    must_not,
    utc_now,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .operators import Clock

logger = logging.getLogger("cqrs_ddd.cql.adapters.elasticsearch")

_NULL = (FilterOperator.IS_NULL,)

_OPERATORS: dict[SemanticType, tuple[FilterOperator, ...]] = {
    SemanticType.STRING: (
        *EQUALITY_OPERATORS,
        *RANGE_OPERATORS,
        *SET_OPERATORS,
        *_NULL,
        *PATTERN_OPERATORS,
        *FULL_TEXT_OPERATORS,
    ),
    SemanticType.INTEGER: (*EQUALITY_OPERATORS, *RANGE_OPERATORS, *SET_OPERATORS, *_NULL),
    SemanticType.FLOAT: (*EQUALITY_OPERATORS, *RANGE_OPERATORS, *SET_OPERATORS, *_NULL),
    SemanticType.DECIMAL: (*EQUALITY_OPERATORS, *RANGE_OPERATORS, *SET_OPERATORS, *_NULL),
    SemanticType.TIME: (*EQUALITY_OPERATORS, *RANGE_OPERATORS, *SET_OPERATORS, *_NULL),
    SemanticType.BOOLEAN: (*EQUALITY_OPERATORS, *_NULL),
    SemanticType.ID: (*EQUALITY_OPERATORS, *SET_OPERATORS, *_NULL),
    SemanticType.ENUM: (*EQUALITY_OPERATORS, *SET_OPERATORS, *_NULL),
    SemanticType.DATETIME: (
        *EQUALITY_OPERATORS,
        *RANGE_OPERATORS,
        *SET_OPERATORS,
        *_NULL,
        *TEMPORAL_OPERATORS,
    ),
    SemanticType.DATE: (
        *EQUALITY_OPERATORS,
        *RANGE_OPERATORS,
        *SET_OPERATORS,
        *_NULL,
        *TEMPORAL_OPERATORS,
    ),
    SemanticType.COORDINATES: (*EQUALITY_OPERATORS, *_NULL, *GEO_OPERATORS),
    SemanticType.ARRAY_STRING: ARRAY_OPERATORS,
    SemanticType.ARRAY_INTEGER: ARRAY_OPERATORS,
    SemanticType.ARRAY_ID: ARRAY_OPERATORS,
    SemanticType.ARRAY_ENUM: ARRAY_OPERATORS,
}


def _empty_body() -> dict[str, Any]:
    return {"query": {"bool": {"must": [], "must_not": [], "should": [], "filter": []}}}


@dataclass(frozen=True)
class SearchQuery:
    """An immutable search request: index plus query DSL body."""

    document: type[Any]
    index: str
    body: dict[str, Any]

    @classmethod
    def for_document(cls, document: type[Any]) -> SearchQuery:
        return cls(document=document, index=document.__es_index__, body=_empty_body())

    def with_body(self, body: dict[str, Any]) -> SearchQuery:
        return SearchQuery(document=self.document, index=self.index, body=body)

    @property
    def filters(self) -> list[dict[str, Any]]:
        return self.body["query"]["bool"]["filter"]

    @property
    def sort(self) -> list[dict[str, Any]]:
        return self.body.get("sort", [])

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "body": copy.deepcopy(self.body)}


@dataclass(frozen=True)
class DocumentTarget:
    """Resolution target: the document class and its dotted path prefix."""

    document: type[Any]
    prefix: str = ""
    nested_path: str | None = None

    def field(self, name: str) -> str:
        return f"{self.prefix}{name}"


class ElasticsearchAdapter(Adapter):
    """Compiles filters into the Elasticsearch query DSL."""

    capabilities = {
        "max_in_clause_items": 65_536,
        "native_arrays": True,
        "supports_json_operators": False,
        "supports_full_text_search": True,
        "native_nulls_ordering": True,
        "supports_geo_ordering": True,
        "supports_priority_ordering": True,
    }

    def __init__(self, clock: Clock = utc_now) -> None:
        self.clock = clock

    @property
    def adapter_id(self) -> AdapterId:
        return AdapterId.ELASTICSEARCH

    # -- contract ------------------------------------------------------------

    def handles(self, queryable: Any) -> bool:
        return isinstance(queryable, type) and hasattr(queryable, "__es_index__")

    def queryable_fields(self, queryable: Any) -> FieldMap:
        fields: list[FieldDescriptor] = [
            FieldDescriptor(name=name, semantic_type=SemanticType(semantic_type))
            for name, semantic_type in getattr(queryable, "__es_fields__", {}).items()
        ]
        for name, related in getattr(queryable, "__es_objects__", {}).items():
            fields.append(FieldDescriptor.association(name, related, Cardinality.ONE))
        for name, related in getattr(queryable, "__es_nested__", {}).items():
            fields.append(FieldDescriptor.association(name, related, Cardinality.MANY))
        return FieldMap(queryable.__name__, fields)

    def operators_for_type(self, semantic_type: SemanticType) -> tuple[FilterOperator, ...]:
        return _OPERATORS.get(semantic_type, ())

    def root_target(self, query: Any, queryable: Any) -> DocumentTarget:
        return DocumentTarget(document=queryable or query.document)

    def describe_field(
        self, target: Any, name: str, options: ApplyOptions
    ) -> FieldDescriptor | None:
        if options.field_type is not None:
            return FieldDescriptor(name=name, semantic_type=options.field_type)
        return self.queryable_fields(target.document).get(name)

    def build_predicate(
        self,
        target: Any,
        field: FieldDescriptor,
        operator: FilterOperator,
        value: Any,
        options: ApplyOptions,
    ) -> dict[str, Any] | None:
        if field.semantic_type is None:
            return None
        if operator not in self.operators_for_type(field.semantic_type):
            return None
        name = target.field(field.name)
        if field.semantic_type is SemanticType.COORDINATES:
            return compile_geo(name, operator, value, options.path, unit_hint=options.hint)
        if field.semantic_type.is_array:
            return compile_array(name, operator, value, options.path)
        for compiler in (
            compile_standard,
            compile_set,
            compile_null,
            compile_string,
            compile_full_text,
        ):
            clause = compiler(name, operator, value, options.path)
            if clause is not None:
                return clause
        return compile_temporal(name, operator, value, options.path, clock=self.clock)

    def apply_predicate(self, query: SearchQuery, predicate: Any) -> SearchQuery:
        if predicate == MATCH_ALL:
            return query
        body = copy.deepcopy(query.body)
        body["query"]["bool"]["filter"].append(predicate)
        return query.with_body(body)

    # -- composition ---------------------------------------------------------

    def conjunction(self, predicates: Sequence[Any]) -> Any:
        clauses = [p for p in predicates if p != MATCH_ALL]
        if any(p == MATCH_NONE for p in clauses):
            return MATCH_NONE
        if not clauses:
            return MATCH_ALL
        if len(clauses) == 1:
            return clauses[0]
        return {"bool": {"filter": clauses}}

    def disjunction(self, predicates: Sequence[Any]) -> Any:
        clauses = [p for p in predicates if p != MATCH_NONE]
        if any(p == MATCH_ALL for p in clauses):
            return MATCH_ALL
        if not clauses:
            return MATCH_NONE
        if len(clauses) == 1:
            return clauses[0]
        return {"bool": {"should": clauses, "minimum_should_match": 1}}

    def negation(self, predicate: Any) -> Any:
        if predicate == MATCH_ALL:
            return MATCH_NONE
        if predicate == MATCH_NONE:
            return MATCH_ALL
        return must_not(predicate)

    def enter_association(
        self, state: CompileState, target: Any, association: FieldDescriptor, path: str
    ) -> DocumentTarget:
        full = target.field(association.name)
        return DocumentTarget(
            document=association.related,
            prefix=f"{full}.",
            nested_path=full if association.is_to_many else target.nested_path,
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
    ) -> Any:
        if not association.is_to_many:
            return predicate
        path = child_target.nested_path
        if match_all:
            if predicate == MATCH_ALL:
                return MATCH_ALL
            inner = {"nested": {"path": path, "query": self.negation(predicate)}}
            return must_not(inner)
        if predicate == MATCH_NONE:
            return MATCH_NONE
        return {"nested": {"path": path, "query": predicate}}

    def exists_predicate(
        self,
        state: CompileState,
        target: Any,
        child_target: Any,
        association: FieldDescriptor,
        exists: bool,
    ) -> Any:
        if association.is_to_many:
            present: dict[str, Any] = {
                "nested": {"path": child_target.nested_path, "query": MATCH_ALL}
            }
        else:
            present = {"exists": {"field": target.field(association.name)}}
        return present if exists else must_not(present)

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
        name = target.field(field.name)
        if geo_center is not None:
            point = normalize_point(geo_center, operator="center", path=path)
            term: dict[str, Any] = {
                "_geo_distance": {
                    name: {"lat": point.lat, "lon": point.lng},
                    "order": direction.value,
                    "unit": "m",
                }
            }
        elif priority:
            term = {
                "_script": {
                    "type": "number",
                    "order": direction.value,
                    "script": {
                        "lang": "painless",
                        "source": (
                            "def v = doc[params.field].size() == 0 ? null"
                            " : doc[params.field].value;"
                            " int i = params.priority.indexOf(v);"
                            " return i < 0 ? params.priority.size() : i;"
                        ),
                        "params": {"field": name, "priority": list(priority)},
                    },
                }
            }
        else:
            spec: dict[str, Any] = {"order": direction.value}
            if nulls is NullsPlacement.FIRST:
                spec["missing"] = "_first"
            elif nulls is NullsPlacement.LAST:
                spec["missing"] = "_last"
            if target.nested_path is not None:
                spec["nested"] = {"path": target.nested_path}
            term = {name: spec}
        body = copy.deepcopy(state.query.body)
        body.setdefault("sort", []).append(term)
        state.query = state.query.with_body(body)
        logger.debug("Added sort term on %s", name)
