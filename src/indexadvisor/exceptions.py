"""
Package-level exception hierarchy for the index advisor.

All exceptions inherit from IndexAdvisorError, enabling:
- Catching all advisor errors with a single except clause
- Rich context fields for debugging (config_key, relation, sink, etc.)
- Structured serialization via to_dict() for JSON error output

Hierarchy:
    IndexAdvisorError
    ├── ConfigurationError – Invalid advisor configuration
    ├── WorkloadError      – Workload cannot be read or a statement parsed
    ├── CatalogError       – Catalog lookup failed
    ├── OracleError        – Cost oracle could not estimate / register
    ├── PersistenceError   – Advisory sink failed to record results
    └── BudgetError        – Invalid input to the budget selector

Unsupported expression constructs are deliberately absent: the scanner
logs them and carries on.
"""

from __future__ import annotations

from typing import Any


class IndexAdvisorError(Exception):
    """
    Base exception for all index advisor errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error output."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


class ConfigurationError(IndexAdvisorError):
    """
    Error in advisor configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result


# ── Input Errors ─────────────────────────────────────────────────────────


class WorkloadError(IndexAdvisorError):
    """
    The workload could not be read, or a statement could not be turned
    into a query tree.

    Attributes:
        source: Description of the input source (file path, "stdin", SQL).
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["source"] = self.source
        return result


class CatalogError(IndexAdvisorError):
    """
    A catalog lookup failed (unknown relation, unknown column, ...).

    Attributes:
        relation: Relation name or id involved (if known).
    """

    def __init__(self, message: str, relation: str | int | None = None) -> None:
        self.relation = relation
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["relation"] = self.relation
        return result


# ── Evaluation Errors ────────────────────────────────────────────────────


class OracleError(IndexAdvisorError):
    """
    The cost oracle failed to produce an estimate or to register a
    hypothetical index.

    Aborts evaluation of the current query only.

    Attributes:
        query: The query text being evaluated (if known).
        operation: Oracle operation that failed ("estimate", "register", ...).
    """

    def __init__(
        self,
        message: str,
        query: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.query = query
        self.operation = operation
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["query"] = self.query
        result["operation"] = self.operation
        return result


class PersistenceError(IndexAdvisorError):
    """
    Recording advisory results failed.

    Carries enough context for the caller to diagnose a missing or
    misconfigured sink.

    Attributes:
        sink: Identity of the sink (table name, store class, ...).
        expected_shape: Description of what the sink must look like.
        hint: How to fix the problem.
    """

    def __init__(
        self,
        message: str,
        sink: str | None = None,
        expected_shape: str | None = None,
        hint: str | None = None,
    ) -> None:
        self.sink = sink
        self.expected_shape = expected_shape
        self.hint = hint
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["sink"] = self.sink
        result["expected_shape"] = self.expected_shape
        result["hint"] = self.hint
        return result


# ── Selection Errors ─────────────────────────────────────────────────────


class BudgetError(IndexAdvisorError):
    """
    Invalid input to the budget selector.

    Raised for a non-positive budget or malformed size fields, before
    any selection work begins.
    """
    pass
