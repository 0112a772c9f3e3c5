"""
Structured error types for dyntable.

Every failure that dyntable raises itself is a ``DyntableError`` subclass
carrying a category, a structured context (provider, table, operation,
parameter, SQL) and an optional chained cause. Driver exceptions
(constraint violations, connectivity failures) are never wrapped; they
reach the caller exactly as the DB-API driver raised them.

Manifesto:
    - **Typed Error Hierarchy:** configuration, capability, validation,
      shape and database failures are distinct types
    - **No retries:** nothing here is retryable; errors propagate
    - **Rich Context:** errors name the provider and operation involved
    - **Validation accumulates:** ``ValidationError`` aggregates the
      model's error list into one message joined with ``"; "``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       DyntableError                           │
        │            (category, context, cause)                         │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  ConfigError          CapabilityError     ValidationError     │
        │  (CONFIG)             (CAPABILITY)        (VALIDATION)        │
        │      │                                                        │
        │  MissingConfigError   ShapeError          DatabaseError       │
        │  UnknownProviderError (SHAPE)             (DATABASE)          │
        │  ConnectionStringError                        │               │
        │                                     CursorTransactionError    │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = CapabilityError(
    ...     "Anonymous parameters are not supported",
    ...     provider="sqlserver", operation="add_param", parameter="",
    ... )
    >>> error.category
    <ErrorCategory.CAPABILITY: 'CAPABILITY'>
    >>> error.context.provider
    'sqlserver'

Tags:
    error-handling, exception-hierarchy, error-context, dyntable
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification."""

    CONFIG = "CONFIG"
    CAPABILITY = "CAPABILITY"
    VALIDATION = "VALIDATION"
    SHAPE = "SHAPE"
    DATABASE = "DATABASE"
    NETWORK = "NETWORK"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"

    def __str__(self) -> str:
        return self.value


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set appear in ``to_dict()``. Anything without a
    dedicated field goes into ``metadata``.
    """

    provider: str | None = None
    table: str | None = None
    operation: str | None = None
    parameter: str | None = None
    sql: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for name in ("provider", "table", "operation", "parameter", "sql"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DyntableError(Exception):
    """
    Base exception for all dyntable errors.

    Subclasses set ``default_category``. ``cause`` is chained as
    ``__cause__`` so tracebacks show the root failure.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DyntableError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ShapeError("No fields").with_context(table="Products")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(DyntableError):
    """
    Configuration error.

    Raised at construction or connection-open time: unresolvable provider,
    malformed connection string, missing driver package.
    """

    default_category = ErrorCategory.CONFIG


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class UnknownProviderError(ConfigError):
    """Provider name does not map to any registered plugin."""

    def __init__(self, provider_name: str):
        self.provider_name = provider_name
        super().__init__(f"Unknown database provider: {provider_name}")


class ConnectionStringError(ConfigError):
    """Connection string cannot be parsed."""

    def __init__(self, connection_string: str, message: str | None = None):
        self.connection_string = connection_string
        super().__init__(message or f"Cannot parse as connection string: {connection_string!r}")


# =============================================================================
# CAPABILITY ERRORS
# =============================================================================


class CapabilityError(DyntableError):
    """
    The active provider cannot do what was asked.

    Anonymous parameters, cursor parameters, procedures and untyped
    output parameters surface here instead of degrading silently.
    """

    default_category = ErrorCategory.CAPABILITY

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        operation: str | None = None,
        parameter: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.context.provider = provider
        self.context.operation = operation
        self.context.parameter = parameter


# =============================================================================
# VALIDATION & SHAPE ERRORS
# =============================================================================


class ValidationError(DyntableError):
    """
    One or more items failed the model's ``validate`` hook.

    ``errors`` holds the accumulated messages; the exception message
    joins them with ``"; "`` after ``prefix``.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(self, prefix: str, errors: list[str], **kwargs: Any):
        self.errors = list(errors)
        super().__init__(prefix + "; ".join(self.errors), **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["errors"] = list(self.errors)
        return result


class ShapeError(DyntableError):
    """Invalid operation detected while building a command."""

    default_category = ErrorCategory.SHAPE


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(DyntableError):
    """Database-side failure that dyntable adds meaning to."""

    default_category = ErrorCategory.DATABASE


class CursorTransactionError(DatabaseError):
    """Cursor dereferencing failed because no transaction was open."""

    def __init__(self, message: str | None = None, **kwargs: Any):
        super().__init__(
            message
            or "Cursor dereferencing failed: the cursor requires a containing transaction. "
            "Pass a connection with an open transaction or let the model open one",
            **kwargs,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, DyntableError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    # DB-API drivers all expose their exceptions under these class names
    for klass in type(error).__mro__:
        if klass.__name__ in ("DatabaseError", "InterfaceError"):
            return ErrorCategory.DATABASE
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "DyntableError",
    "ConfigError",
    "MissingConfigError",
    "UnknownProviderError",
    "ConnectionStringError",
    "CapabilityError",
    "ValidationError",
    "ShapeError",
    "DatabaseError",
    "CursorTransactionError",
    "categorize_error",
]
