"""Error taxonomy for tree, version and import operations."""

from __future__ import annotations

from typing import Any

import pydantic


class ApiTreeError(Exception):
    """Base class for every error surfaced to callers."""

    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an outer transport layer."""
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            data["details"] = self.details
        return data


class NotFoundError(ApiTreeError):
    """Referenced id does not exist (or belongs to another project)."""

    code = "NOT_FOUND"


class InvalidParentError(ApiTreeError):
    """Reparent would create a cycle, cross projects, or target a non-group."""

    code = "INVALID_PARENT"


class NotEmptyError(ApiTreeError):
    """Non-cascade delete on a group that still has children or APIs."""

    code = "NOT_EMPTY"


class ConflictError(ApiTreeError):
    """Concurrent structural collision or (path, method) collision."""

    code = "CONFLICT"
    retryable = True


class ParseError(ApiTreeError):
    """Malformed OpenAPI document or unreachable document URL."""

    code = "PARSE_ERROR"


class LimitExceededError(ApiTreeError):
    """Operation would exceed a configured project quota."""

    code = "LIMIT_EXCEEDED"


class ValidationError(ApiTreeError):
    """Malformed input, with one message per offending field."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field_errors: list[dict[str, str]] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.field_errors = field_errors or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field_errors"] = self.field_errors
        return data

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        """Build an error carrying a single field message."""
        return cls(f"{field}: {message}", [{"field": field, "message": message}])

    @classmethod
    def from_pydantic(cls, exc: pydantic.ValidationError) -> "ValidationError":
        """Convert pydantic's error list into field-level messages."""
        field_errors = []
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"]) or "__root__"
            field_errors.append({"field": field, "message": err["msg"]})
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in field_errors)
        return cls(f"Invalid request: {summary}", field_errors)
