"""FastAPI glue.

``create_app`` mounts a single catch-all route under the configured base path
and hands every request to the pipeline. Endpoint routing, hooks and error
envelopes all happen inside the pipeline, not in FastAPI.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.responses import Response

from ..core.exceptions import ValidationError
from ..core.logging import get_logger, setup_logging
from ..core.response import UnblockedResponse
from .pipeline import Pipeline
from .request import RequestContext

if TYPE_CHECKING:
    from ..plugins.host import ApplicationContext

logger = get_logger(__name__)

_ROUTE_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ValidationError("Request body must be valid JSON") from e


async def build_request_context(request: Request, base_path: str) -> RequestContext:
    """Translate a Starlette request into a pipeline ``RequestContext``."""
    path = request.url.path
    if base_path != "/" and path.startswith(base_path):
        path = path[len(base_path) :]
    return RequestContext(
        path=path or "/",
        method=request.method,
        headers=dict(request.headers),
        body=await _read_body(request),
        query=dict(request.query_params),
        client_host=request.client.host if request.client else None,
    )


def create_app(context: ApplicationContext) -> FastAPI:
    """Create the FastAPI application serving ``context``."""
    setup_logging()
    pipeline = Pipeline(context)
    app = FastAPI(
        title=context.options.app_name or context.settings.app_name,
        debug=context.settings.debug,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.unblocked = context
    base_path = context.base_path.rstrip("/") or "/"
    route = "/{path:path}" if base_path == "/" else base_path + "/{path:path}"

    @app.api_route(route, methods=_ROUTE_METHODS, include_in_schema=False)
    async def unblocked_handler(request: Request) -> Response:
        try:
            ctx = await build_request_context(request, base_path)
        except ValidationError as e:
            return UnblockedResponse.from_exception(e)
        return await pipeline.handle(ctx)

    logger.info(
        "Unblocked FastAPI application created",
        extra={"base_path": base_path, "endpoints": len(context.endpoints)},
    )
    return app
