"""cqrs-ddd-cql: multi-backend filter and order compilation.

Compiles client filter payloads into SQLAlchemy statements, Elasticsearch
search bodies or in-memory predicates, and scores the result for
load-adaptive admission control.
"""

from __future__ import annotations

# ── Adapters ────────────────────────────────────────────────────
from .adapters import (
    Adapter,
    AdapterRegistry,
    ApplyOptions,
    ClickHouseAdapter,
    ElasticsearchAdapter,
    MemoryAdapter,
    MemoryQuery,
    MSSQLAdapter,
    MySQLAdapter,
    PostgresAdapter,
    SearchQuery,
    SQLiteAdapter,
    adapter_id_for,
    build_default_adapter_registry,
)

# ── AST ─────────────────────────────────────────────────────────
from .ast import (
    AssociationFilter,
    CombinatorNode,
    ExistsFilter,
    FilterNode,
    Leaf,
    negate,
    optimize,
    parse_filter,
    referenced_fields,
    to_dict,
)
from .builder import BuiltQuery, QueryBuilder

# ── Capabilities ────────────────────────────────────────────────
from .capabilities import (
    AdapterCapabilities,
    CapabilityDetector,
    log_report,
    report,
    require,
    supports,
)
from .compat import HAS_GEOMETRY, HAS_PROMETHEUS

# ── Compilation ─────────────────────────────────────────────────
from .compiler import QueryCompiler, authorize, unauthorized_fields

# ── Complexity ──────────────────────────────────────────────────
from .complexity import (
    AnalysisMethod,
    ComplexityAnalysis,
    ComplexityAnalyzer,
    ComplexityDecision,
    ComplexityOutcome,
    LoadMetrics,
    format_analysis,
)
from .config import CapabilitySettings, ComplexitySettings, CQLSettings

# ── Exceptions ──────────────────────────────────────────────────
from .exceptions import (
    AdapterUnavailableError,
    CapabilityMissingError,
    CQLError,
    InvalidValueError,
    NotOrderableError,
    QueryTooComplexError,
    RegistryLockTimeout,
    TypeRegistrationError,
    UnauthorizedFieldError,
    UnknownFieldError,
    UnsupportedOperatorError,
    ValidationError,
)
from .fields import Cardinality, FieldDescriptor, FieldMap

# ── Operators ───────────────────────────────────────────────────
from .operators import (
    AdapterId,
    Combinator,
    FilterOperator,
    NullsPlacement,
    SemanticType,
    SortDirection,
)
from .ordering import OrderCompiler, OrderTerm, parse_order
from .registry import Arity, OperatorRegistry, OperatorSpec, build_default_registry
from .type_registry import TypeRegistry

__version__ = "0.1.0"

__all__ = [
    "HAS_GEOMETRY",
    "HAS_PROMETHEUS",
    "Adapter",
    "AdapterCapabilities",
    "AdapterId",
    "AdapterRegistry",
    "AdapterUnavailableError",
    "AnalysisMethod",
    "ApplyOptions",
    "Arity",
    "AssociationFilter",
    "BuiltQuery",
    "CQLError",
    "CQLSettings",
    "CapabilityDetector",
    "CapabilityMissingError",
    "CapabilitySettings",
    "Cardinality",
    "ClickHouseAdapter",
    "Combinator",
    "CombinatorNode",
    "ComplexityAnalysis",
    "ComplexityAnalyzer",
    "ComplexityDecision",
    "ComplexityOutcome",
    "ComplexitySettings",
    "ElasticsearchAdapter",
    "ExistsFilter",
    "FieldDescriptor",
    "FieldMap",
    "FilterNode",
    "FilterOperator",
    "InvalidValueError",
    "Leaf",
    "LoadMetrics",
    "MSSQLAdapter",
    "MemoryAdapter",
    "MemoryQuery",
    "MySQLAdapter",
    "NotOrderableError",
    "NullsPlacement",
    "OperatorRegistry",
    "OperatorSpec",
    "OrderCompiler",
    "OrderTerm",
    "PostgresAdapter",
    "QueryBuilder",
    "QueryCompiler",
    "QueryTooComplexError",
    "RegistryLockTimeout",
    "SQLiteAdapter",
    "SearchQuery",
    "SemanticType",
    "SortDirection",
    "TypeRegistrationError",
    "TypeRegistry",
    "UnauthorizedFieldError",
    "UnknownFieldError",
    "UnsupportedOperatorError",
    "ValidationError",
    "adapter_id_for",
    "authorize",
    "build_default_adapter_registry",
    "build_default_registry",
    "format_analysis",
    "log_report",
    "negate",
    "optimize",
    "parse_filter",
    "parse_order",
    "referenced_fields",
    "report",
    "require",
    "supports",
    "to_dict",
    "unauthorized_fields",
]
