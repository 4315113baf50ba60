import json
from typing import Any, Optional


class FreshdeskError(Exception):
    """Base class for errors raised by freshdesk_mcp."""


class ConfigError(FreshdeskError):
    """Raised when the Freshdesk configuration is missing or malformed."""


class ApiError(FreshdeskError):
    """Raised when Freshdesk answers with a non-2xx status.

    Args:
        status_code: HTTP status of the response
        description: Human-readable description taken from the response body,
            or a synthesized "HTTP <status>: <reason>" line
        errors: Field-level validation errors from the body, if any
    """

    def __init__(self, status_code: int, description: str, errors: Optional[Any] = None) -> None:
        self.status_code = status_code
        self.description = description
        self.errors = errors
        message = f"Freshdesk API Error: {description}"
        if errors:
            message += "\n" + json.dumps(errors, indent=2)
        super().__init__(message)


class InvalidResponseError(FreshdeskError):
    """Raised when a successful response carries a body the client cannot use."""


class PaginationError(InvalidResponseError):
    """Raised when a list endpoint returns something other than a JSON array."""
