"""
Unit tests for response envelopes and exception translation.
"""

import json

from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from unblocked.core.exceptions import (
    AccessDeniedError,
    AuthenticationRequiredError,
    ForbiddenError,
    RateLimitExceededError,
    ResourceNotFoundError,
    ValidationError,
)
from unblocked.core.response import UnblockedResponse, ensure_response, to_serializable


def body_of(response):
    return json.loads(response.body)


class Item(BaseModel):
    name: str


class TestEnvelope:
    def test_success_wraps_data(self):
        response = UnblockedResponse.success({"id": "1"})

        assert response.status_code == 200
        assert body_of(response) == {"data": {"id": "1"}}

    def test_success_serializes_models(self):
        assert to_serializable([Item(name="a")]) == [{"name": "a"}]
        assert body_of(UnblockedResponse.success(Item(name="a"))) == {"data": {"name": "a"}}

    def test_error_omits_empty_details(self):
        response = UnblockedResponse.error("Bad", code="BAD")

        assert response.status_code == 400
        assert body_of(response) == {"error": {"message": "Bad", "code": "BAD"}}

    def test_internal_error(self):
        response = UnblockedResponse.internal_error()

        assert response.status_code == 500
        assert body_of(response)["error"]["code"] == "INTERNAL_ERROR"


class TestFromException:
    def test_validation_error_keeps_details(self):
        response = UnblockedResponse.from_exception(ValidationError("title is required", details={"field": "title"}))

        assert response.status_code == 400
        assert body_of(response)["error"] == {
            "message": "title is required",
            "code": "VALIDATION_ERROR",
            "details": {"field": "title"},
        }

    def test_access_denied_matches_not_found(self):
        denied = UnblockedResponse.from_exception(AccessDeniedError("chat", "abc"))
        missing = UnblockedResponse.from_exception(ResourceNotFoundError("chat", "xyz"))

        assert denied.status_code == missing.status_code == 404
        assert denied.body == missing.body
        assert body_of(denied) == {"error": {"message": "Chat not found", "code": "NOT_FOUND"}}

    def test_rate_limit_sets_retry_after(self):
        response = UnblockedResponse.from_exception(RateLimitExceededError(retry_after=7))

        assert response.status_code == 429
        assert response.headers["retry-after"] == "7"

    def test_status_codes(self):
        assert UnblockedResponse.from_exception(AuthenticationRequiredError()).status_code == 401
        assert UnblockedResponse.from_exception(ForbiddenError("Invalid origin")).status_code == 403


class TestEnsureResponse:
    def test_passes_responses_through(self):
        response = PlainTextResponse("hi")

        assert ensure_response(response) is response

    def test_wraps_plain_values(self):
        assert body_of(ensure_response([1, 2])) == {"data": [1, 2]}
