"""Per-request middleware pipeline.

One request runs through a fixed sequence:

    disabled-path check -> user resolution -> rate limit -> endpoint lookup
    -> before hooks -> auth check -> handler -> after hooks

A before hook that returns ``Respond`` ends the request on the spot: the
remaining before hooks, the handler and every after hook are skipped and its
response is what the caller receives. After hooks only run once the handler
has produced an outcome (a value or a typed error); they can read it from
``request.state["returned"]`` and replace it by returning ``Respond``.

This is the only place where exceptions become responses.
"""

from __future__ import annotations

import inspect
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from fastapi.responses import Response

from ..core.exceptions import AuthenticationRequiredError, EndpointNotFoundError, UnblockedException
from ..core.logging import get_logger
from ..core.response import UnblockedResponse, ensure_response
from ..plugins.base import Continue, Hook, Respond
from .origin_check import origin_check_hook
from .request import RequestContext

if TYPE_CHECKING:
    from ..plugins.host import ApplicationContext

logger = get_logger(__name__)

# Core hooks run ahead of any configured or plugin hook
CORE_BEFORE_HOOKS: tuple[Hook, ...] = (origin_check_hook,)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _user_id_of(user: Any) -> str | None:
    if user is None:
        return None
    if isinstance(user, dict):
        user_id = user.get("id")
    else:
        user_id = getattr(user, "id", None)
    return None if user_id is None else str(user_id)


class Pipeline:
    """Runs requests against a composed application context."""

    def __init__(self, context: ApplicationContext):
        self.context = context
        self.before_hooks = CORE_BEFORE_HOOKS + tuple(context.before_hooks)
        self.after_hooks = tuple(context.after_hooks)

    async def handle(self, request: RequestContext) -> Response:
        request.app = self.context
        try:
            return await self._run(request)
        except UnblockedException as e:
            self._log_error(request, e)
            return UnblockedResponse.from_exception(e)
        except Exception:
            logger.exception(
                "Unhandled error in request pipeline",
                extra={"path": request.path, "method": request.method},
            )
            return UnblockedResponse.internal_error()

    async def _run(self, request: RequestContext) -> Response:
        if request.path in self.context.options.disabled_paths:
            raise EndpointNotFoundError(request.path, request.method)

        await self._resolve_user(request)
        limit = await self.context.rate_limiter.check(request)

        resolved = self.context.endpoints.resolve(request.path, request.method)
        if resolved is None:
            raise EndpointNotFoundError(request.path, request.method)
        endpoint, params = resolved
        request.params = params

        short_circuit = await self._run_before(request, self.before_hooks)
        if short_circuit is not None:
            return ensure_response(short_circuit.response)

        if endpoint.requires_auth and not request.user_id:
            raise AuthenticationRequiredError()

        try:
            request.state["returned"] = await _maybe_await(endpoint.handler(request))
        except UnblockedException as e:
            # Typed handler errors are outcomes that after hooks may observe or replace
            self._log_error(request, e)
            request.state["returned"] = UnblockedResponse.from_exception(e)

        replacement = await self._run_after(request, self.after_hooks)
        outcome = replacement.response if replacement is not None else request.state["returned"]
        response = ensure_response(outcome)
        if limit is not None:
            for name, value in limit.to_headers().items():
                response.headers.setdefault(name, value)
        return response

    async def _resolve_user(self, request: RequestContext) -> None:
        get_user = self.context.options.get_user
        if get_user is None or request.user is not None:
            return
        request.user = await _maybe_await(get_user(request))
        request.user_id = _user_id_of(request.user)

    async def _run_before(self, request: RequestContext, hooks: Iterable[Hook]) -> Respond | None:
        for hook in hooks:
            if not hook.matcher(request):
                continue
            outcome = await _maybe_await(hook.handler(request))
            if isinstance(outcome, Respond):
                logger.debug("Before hook responded", extra={"path": request.path, "method": request.method})
                return outcome
            if isinstance(outcome, Continue):
                request.apply(outcome.updates)
            elif outcome is not None:
                raise TypeError(f"Hook returned {type(outcome).__name__}; expected Continue, Respond or None")
        return None

    async def _run_after(self, request: RequestContext, hooks: Iterable[Hook]) -> Respond | None:
        replacement: Respond | None = None
        for hook in hooks:
            if not hook.matcher(request):
                continue
            outcome = await _maybe_await(hook.handler(request))
            if isinstance(outcome, Respond):
                replacement = outcome
                request.state["returned"] = outcome.response
            elif isinstance(outcome, Continue):
                request.apply(outcome.updates)
            elif outcome is not None:
                raise TypeError(f"Hook returned {type(outcome).__name__}; expected Continue, Respond or None")
        return replacement

    @staticmethod
    def _log_error(request: RequestContext, exc: UnblockedException) -> None:
        level_fn = logger.error if exc.status_code >= 500 else logger.warning
        level_fn(
            "Unblocked client error" if exc.status_code < 500 else "Unblocked server error",
            extra={
                "error_code": exc.error_code,
                "error_message": exc.message,
                "path": request.path,
                "method": request.method,
            },
        )
