"""Custom exceptions for Unblocked.

This module defines all custom exceptions used throughout the host. Every
exception carries an error code and an HTTP-equivalent status so the pipeline
boundary can turn it into a response without knowing the concrete type.
"""

from typing import Any


class UnblockedException(Exception):
    """Base exception class for Unblocked."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Composition-time exceptions
class ConfigurationError(UnblockedException):
    """Raised when plugin or option composition is malformed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            status_code=500,
            details=details,
        )


class SchemaConflictError(ConfigurationError):
    """Raised when two contributors declare the same field incompatibly."""

    def __init__(
        self,
        table: str,
        field: str,
        first_contributor: str,
        second_contributor: str,
        reason: str,
    ):
        super().__init__(
            message=(
                f"Field '{field}' of table '{table}' is declared by both "
                f"'{first_contributor}' and '{second_contributor}' with a different {reason}"
            ),
            details={
                "table": table,
                "field": field,
                "contributors": [first_contributor, second_contributor],
                "reason": reason,
            },
        )
        self.table = table
        self.field = field
        self.contributors = (first_contributor, second_contributor)


class UnsupportedAdapterError(UnblockedException):
    """Raised when generator dispatch finds neither a built-in nor a custom generator."""

    def __init__(self, adapter_id: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=(
                f"{adapter_id} is not supported. If it is a custom adapter, "
                "please request the maintainer to implement create_schema"
            ),
            error_code="UNSUPPORTED_ADAPTER",
            status_code=500,
            details=details or {"adapter_id": adapter_id},
        )
        self.adapter_id = adapter_id


class DatabaseConnectionError(UnblockedException):
    """Raised when the database engine cannot be created or reached."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Database connection failed: {message}",
            error_code="DATABASE_CONNECTION_ERROR",
            status_code=500,
            details=details,
        )


# Request-time exceptions
class ValidationError(UnblockedException):
    """Raised when request input does not satisfy the table definition."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
            details=details,
        )


class AuthenticationRequiredError(UnblockedException):
    """Raised when an endpoint requires a caller identity and none was resolved."""

    def __init__(self, message: str = "User is required for this operation", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="USER_REQUIRED",
            status_code=401,
            details=details,
        )


class ResourceNotFoundError(UnblockedException):
    """Raised when a resource does not exist."""

    def __init__(self, resource: str, resource_id: str | None = None):
        super().__init__(
            message=f"{resource.capitalize()} not found",
            error_code="NOT_FOUND",
            status_code=404,
            details={"resource": resource},
        )
        self.resource = resource
        self.resource_id = resource_id


class AccessDeniedError(ResourceNotFoundError):
    """Raised when a resource exists but belongs to another caller.

    Outwardly identical to ResourceNotFoundError so callers cannot probe for
    the existence of other users' data.
    """


class EndpointNotFoundError(UnblockedException):
    """Raised when no endpoint is registered for a path and method."""

    def __init__(self, path: str, method: str):
        super().__init__(
            message="Not Found",
            error_code="ENDPOINT_NOT_FOUND",
            status_code=404,
            details={"path": path, "method": method},
        )


class RateLimitExceededError(UnblockedException):
    """Raised when a caller exceeds the matched rate limit rule."""

    def __init__(self, retry_after: int, message: str = "Too many requests. Please try again later."):
        super().__init__(
            message=message,
            error_code="RATE_LIMIT_EXCEEDED",
            status_code=429,
            details={"retry_after": retry_after},
        )
        self.retry_after = retry_after


class ForbiddenError(UnblockedException):
    """Raised when a request is refused outright, e.g. an untrusted origin."""

    def __init__(self, message: str = "Forbidden", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="FORBIDDEN",
            status_code=403,
            details=details,
        )
