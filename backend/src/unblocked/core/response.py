"""Response envelope helpers for Unblocked.

Every outcome that leaves the middleware pipeline goes through one of these
helpers so success and error payloads share a single envelope shape:
``{"data": ...}`` or ``{"error": {"message", "code", "details"}}``.
"""

from typing import Any

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

from .exceptions import RateLimitExceededError, UnblockedException
from .logging import get_logger

logger = get_logger(__name__)


def to_serializable(obj: Any) -> Any:
    """Recursively convert Pydantic models, lists, and dicts to serializable types."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if isinstance(obj, list | tuple):
        return [to_serializable(item) for item in obj]
    if isinstance(obj, dict):
        return {k: to_serializable(v) for k, v in obj.items()}
    return obj


class UnblockedResponse:
    """Builds enveloped responses for endpoint and hook results."""

    @staticmethod
    def success(
        data: Any, status_code: int = status.HTTP_200_OK, headers: dict[str, str] | None = None
    ) -> JSONResponse:
        """Create a successful response with single-envelope structure.

        Args:
            data: The response data to wrap
            status_code: HTTP status code (default: 200)
            headers: Optional response headers

        Returns:
            JSONResponse with ``{"data": ...}`` body

        """
        response_content = jsonable_encoder({"data": to_serializable(data)})
        return JSONResponse(content=response_content, status_code=status_code, headers=headers)

    @staticmethod
    def error(
        message: str,
        code: str = "API_ERROR",
        details: Any | None = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        headers: dict[str, str] | None = None,
    ) -> JSONResponse:
        """Create an error response with consistent envelope structure."""
        error_content: dict[str, Any] = {"error": {"message": message, "code": code}}
        if details:
            error_content["error"]["details"] = to_serializable(details)

        logger.debug(
            "Creating error response",
            extra={"status_code": status_code, "error_code": code},
        )
        return JSONResponse(content=jsonable_encoder(error_content), status_code=status_code, headers=headers)

    @staticmethod
    def from_exception(exc: UnblockedException) -> JSONResponse:
        """Translate a typed exception into its error envelope.

        Not-found style errors never carry details, so a denied lookup reads
        exactly like a missing one.
        """
        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": str(exc.retry_after)}
        details = None if exc.error_code == "NOT_FOUND" else exc.details
        return UnblockedResponse.error(
            exc.message,
            code=exc.error_code,
            details=details,
            status_code=exc.status_code,
            headers=headers,
        )

    @staticmethod
    def internal_error() -> JSONResponse:
        return UnblockedResponse.error(
            "Internal server error",
            code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


def ensure_response(value: Any) -> Response:
    """Wrap a handler or hook result in a success envelope unless it already is a response."""
    if isinstance(value, Response):
        return value
    return UnblockedResponse.success(value)
