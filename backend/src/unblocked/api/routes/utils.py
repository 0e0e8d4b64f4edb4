"""Shared helpers for the built-in routes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...core.exceptions import AccessDeniedError, ResourceNotFoundError, ValidationError
from ...db.fields import parse_output

if TYPE_CHECKING:
    from ...plugins.host import ApplicationContext
    from ..request import RequestContext

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def app_of(request: RequestContext) -> ApplicationContext:
    if request.app is None:
        raise RuntimeError("Request is not bound to an application context")
    return request.app


def record_id(app: ApplicationContext, raw: str) -> Any:
    """Convert a path id to the storage id type."""
    if not app.options.use_number_id:
        return raw
    try:
        return int(raw)
    except ValueError as e:
        raise ResourceNotFoundError("record", raw) from e


async def get_owned(app: ApplicationContext, model: str, raw_id: str, user_id: str) -> dict[str, Any]:
    """Load a record owned by ``user_id``.

    A record owned by someone else raises ``AccessDeniedError``, which reads
    exactly like a missing record to the caller.
    """
    record = await app.adapter.find_one(model, {"id": record_id(app, raw_id)})
    if record is None:
        raise ResourceNotFoundError(model, raw_id)
    if record.get("userId") != user_id:
        raise AccessDeniedError(model, raw_id)
    return record


def output(app: ApplicationContext, model: str, record: dict[str, Any]) -> dict[str, Any]:
    return parse_output(record, app.schema.fields_of(model))


def pagination(request: RequestContext) -> tuple[int, int]:
    """Read ``limit``/``offset`` query parameters."""
    try:
        limit = int(request.query.get("limit", DEFAULT_PAGE_SIZE))
        offset = int(request.query.get("offset", 0))
    except ValueError as e:
        raise ValidationError("limit and offset must be integers") from e
    if limit < 1 or offset < 0:
        raise ValidationError("limit must be positive and offset non-negative")
    return min(limit, MAX_PAGE_SIZE), offset


def body_of(request: RequestContext) -> dict[str, Any]:
    if request.body is None:
        return {}
    if not isinstance(request.body, dict):
        raise ValidationError("Request body must be a JSON object")
    return request.body
