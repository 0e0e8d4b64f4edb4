"""Endpoint registry.

Endpoints are keyed by ``(pattern, method)``, where the pattern ignores
parameter names: ``/chat/:id`` and ``/chat/:chatId`` are the same route.
Registering the same key again replaces the earlier endpoint, which is how plugins override built-in
behaviour; the replacement is logged, never rejected.

Paths may contain ``:name`` segments, captured into ``RequestContext.params``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from .request import RequestContext

logger = logging.getLogger(__name__)

EndpointHandler = Callable[["RequestContext"], Awaitable[Any] | Any]

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})


def normalize_path(path: str) -> str:
    path = "/" + path.strip("/")
    return path


def pattern_key(path: str) -> str:
    """Normalized path with every ``:name`` segment reduced to ``:``."""
    return "/" + "/".join(":" if s.startswith(":") else s for s in path.split("/") if s)


@dataclass(frozen=True)
class Endpoint:
    """A handler bound to a path and method.

    ``requires_auth`` makes the pipeline reject callers without a resolved
    user before the handler runs. ``hidden`` keeps the endpoint out of
    generated API documentation.
    """

    path: str
    method: str
    handler: EndpointHandler
    requires_auth: bool = False
    hidden: bool = False
    summary: str | None = None

    def __post_init__(self) -> None:
        method = self.method.upper()
        if method not in HTTP_METHODS:
            raise ConfigurationError(f"Unsupported HTTP method '{self.method}' for endpoint {self.path}")
        object.__setattr__(self, "method", method)
        object.__setattr__(self, "path", normalize_path(self.path))

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(s for s in self.path.split("/") if s)

    def match(self, path: str) -> dict[str, str] | None:
        """Return captured params if ``path`` matches this endpoint's pattern."""
        parts = [s for s in path.split("/") if s]
        pattern = self.segments
        if len(parts) != len(pattern):
            return None
        params: dict[str, str] = {}
        for expected, actual in zip(pattern, parts, strict=True):
            if expected.startswith(":"):
                params[expected[1:]] = actual
            elif expected != actual:
                return None
        return params


@dataclass(frozen=True)
class EndpointSource:
    endpoint: Endpoint
    # "core" for built-ins, otherwise the plugin id
    source: str


class EndpointRegistry:
    """Registry of endpoints, filled during composition and read-only afterwards."""

    def __init__(self) -> None:
        self._endpoints: dict[tuple[str, str], EndpointSource] = {}
        self._frozen = False

    def register(self, endpoint: Endpoint, source: str = "core") -> None:
        if self._frozen:
            raise ConfigurationError("Endpoint registry is frozen after composition")
        key = (pattern_key(endpoint.path), endpoint.method)
        previous = self._endpoints.pop(key, None)
        if previous is not None:
            logger.info(
                "Endpoint shadowed",
                extra={
                    "path": endpoint.path,
                    "previous_path": previous.endpoint.path,
                    "method": endpoint.method,
                    "previous_source": previous.source,
                    "source": source,
                },
            )
        # Re-insert so iteration order reflects the effective registration
        self._endpoints[key] = EndpointSource(endpoint, source)

    def freeze(self) -> None:
        self._frozen = True

    def resolve(self, path: str, method: str) -> tuple[Endpoint, dict[str, str]] | None:
        """Find the endpoint for ``path``/``method``.

        Exact paths win over patterns; among patterns the one with more
        literal segments wins, then the earlier registration.
        """
        path = normalize_path(path)
        method = method.upper()
        exact = self._endpoints.get((path, method))
        if exact is not None and exact.endpoint.path == path:
            return exact.endpoint, {}

        best: tuple[int, Endpoint, dict[str, str]] | None = None
        for (_, endpoint_method), entry in self._endpoints.items():
            if endpoint_method != method:
                continue
            params = entry.endpoint.match(path)
            if params is None:
                continue
            literal_count = len(entry.endpoint.segments) - len(params)
            if best is None or literal_count > best[0]:
                best = (literal_count, entry.endpoint, params)
        if best is None:
            return None
        return best[1], best[2]

    def source_of(self, path: str, method: str) -> str | None:
        entry = self._endpoints.get((pattern_key(path), method.upper()))
        return entry.source if entry else None

    def public_endpoints(self) -> list[Endpoint]:
        """Endpoints visible in API documentation."""
        return [entry.endpoint for entry in self._endpoints.values() if not entry.endpoint.hidden]

    def __iter__(self) -> Iterator[Endpoint]:
        return (entry.endpoint for entry in self._endpoints.values())

    def __len__(self) -> int:
        return len(self._endpoints)
