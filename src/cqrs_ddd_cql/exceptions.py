"""
Filter compilation exception hierarchy with fuzzy-match suggestions.

All exceptions inherit from ``CQLError`` and provide ``to_dict()`` for
API-friendly error responses. Validation errors are raised before any
statement reaches a backend and are never retried.
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable


class CQLError(Exception):
    """Base exception for all filter compilation errors."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": str(self),
        }


class ValidationError(CQLError):
    """Filter or order payload failed validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, path: str | None = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "path": self.path,
        }


class UnknownFieldError(ValidationError):
    """
    Filter references a field the queryable does not expose.

    Example error message::

        Unknown field 'stauts' on 'User'.
        Did you mean one of these?
          • status
        Available fields: age, id, name, status
    """

    code = "UNKNOWN_FIELD"

    def __init__(
        self,
        field: str,
        queryable_name: str,
        available_fields: Iterable[str],
        path: str | None = None,
    ) -> None:
        self.field = field
        self.queryable_name = queryable_name
        self.available_fields = sorted(available_fields)
        self.suggestions = get_close_matches(
            field, self.available_fields, n=5, cutoff=0.6
        )
        super().__init__(self._build_message(), path=path or field)

    def _build_message(self) -> str:
        lines = [f"Unknown field '{self.field}' on '{self.queryable_name}'."]
        if self.suggestions:
            lines.append("Did you mean one of these?")
            for s in self.suggestions:
                lines.append(f"  • {s}")
        preview = ", ".join(self.available_fields[:15])
        if len(self.available_fields) > 15:
            preview += ", ..."
        lines.append(f"Available fields: {preview}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "field": self.field,
            "queryable": self.queryable_name,
            "path": self.path,
            "suggestions": self.suggestions,
            "available_fields": self.available_fields,
        }


class UnsupportedOperatorError(ValidationError):
    """
    Operator is unknown, or known but not supported for the field's type
    on the active adapter.
    """

    code = "UNSUPPORTED_OPERATOR"

    def __init__(
        self,
        operator: str,
        valid_operators: Iterable[str],
        *,
        field: str | None = None,
        semantic_type: str | None = None,
        adapter: str | None = None,
        path: str | None = None,
    ) -> None:
        self.operator = str(operator)
        self.valid_operators = sorted(valid_operators)
        self.field = field
        self.semantic_type = semantic_type
        self.adapter = adapter
        self.suggestions = get_close_matches(
            self.operator, self.valid_operators, n=3, cutoff=0.6
        )

        if field is None:
            message = f"Unknown operator: '{self.operator}'."
        else:
            message = (
                f"Operator '{self.operator}' is not supported for field '{field}'"
                f" of type '{semantic_type}' on adapter '{adapter}'."
            )
        if self.suggestions:
            message += f" Did you mean: {', '.join(self.suggestions)}?"
        if self.valid_operators:
            message += f" Valid operators: {', '.join(self.valid_operators)}"
        super().__init__(message, path=path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "operator": self.operator,
            "field": self.field,
            "type": self.semantic_type,
            "adapter": self.adapter,
            "path": self.path,
            "suggestions": self.suggestions,
            "valid_operators": self.valid_operators,
        }


class InvalidValueError(ValidationError):
    """Value does not match the operator's arity or expected shape."""

    code = "INVALID_VALUE"

    def __init__(
        self,
        message: str,
        *,
        operator: str | None = None,
        value: Any = None,
        path: str | None = None,
    ) -> None:
        self.operator = operator
        self.value = value
        super().__init__(message, path=path)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["operator"] = self.operator
        return data


class UnauthorizedFieldError(ValidationError):
    """Filter references fields outside the caller's allow-list."""

    code = "UNAUTHORIZED_FIELD"

    def __init__(self, fields: Iterable[str]) -> None:
        self.fields = sorted(set(fields))
        super().__init__(
            f"Filtering on {', '.join(repr(f) for f in self.fields)} is not allowed",
            path=self.fields[0] if self.fields else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "fields": self.fields,
        }


class NotOrderableError(ValidationError):
    """Ordering through a to-many association without opting in."""

    code = "NOT_ORDERABLE"

    def __init__(self, association: str, queryable_name: str) -> None:
        self.association = association
        self.queryable_name = queryable_name
        super().__init__(
            f"Cannot order '{queryable_name}' through to-many association "
            f"'{association}'. Pass it in allow_to_many to opt in.",
            path=association,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "association": self.association,
            "queryable": self.queryable_name,
        }


class AdapterUnavailableError(CQLError):
    """No registered adapter claims the queryable."""

    def __init__(self, queryable: Any, available: Iterable[str] = ()) -> None:
        self.queryable = queryable
        self.available = sorted(available)
        name = getattr(queryable, "__name__", repr(queryable))
        message = f"No adapter handles '{name}'."
        if self.available:
            message += f" Registered adapters: {', '.join(self.available)}"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "ADAPTER_UNAVAILABLE",
            "message": str(self),
            "adapters": self.available,
        }


class CapabilityMissingError(CQLError):
    """A required backend feature was not detected."""

    def __init__(
        self,
        feature: str,
        adapter: str,
        version: str,
        message: str | None = None,
    ) -> None:
        self.feature = feature
        self.adapter = adapter
        self.version = version
        super().__init__(
            message
            or (
                f"Feature '{feature}' is not available.\n"
                f"Database: {adapter} {version}\n"
                f"Required feature: {feature.replace('_', ' ')}\n"
                "Install the required extension or upgrade the server."
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "CAPABILITY_MISSING",
            "message": str(self),
            "feature": self.feature,
            "adapter": self.adapter,
            "version": self.version,
        }


class QueryTooComplexError(CQLError):
    """Raised on request when the complexity analyzer rejects a query."""

    def __init__(self, score: float, limit: float, suggestions: list[str]) -> None:
        self.score = score
        self.limit = limit
        self.suggestions = suggestions
        super().__init__(
            f"Query complexity too high: score={score:.2f}, limit={limit:.2f}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "QUERY_TOO_COMPLEX",
            "message": str(self),
            "complexity_score": self.score,
            "limit": self.limit,
            "suggestions": self.suggestions,
        }


class RegistryLockTimeout(CQLError):
    """The type registry write lock could not be acquired within the retry budget."""

    def __init__(self, operation: str, attempts: int, timeout: float) -> None:
        self.operation = operation
        self.attempts = attempts
        self.timeout = timeout
        super().__init__(
            f"Could not acquire the type registry lock for {operation} "
            f"after {attempts} attempts ({timeout:.3f}s each)"
        )


class TypeRegistrationError(CQLError):
    """A queryable or implementor was registered twice with conflicting targets."""
