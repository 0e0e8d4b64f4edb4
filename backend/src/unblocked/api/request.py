"""Per-request context threaded through hooks, rate limiting and handlers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..core.exceptions import AuthenticationRequiredError

if TYPE_CHECKING:
    from ..plugins.host import ApplicationContext

# Attributes a Continue outcome may replace directly; other keys land in ``state``
_REPLACEABLE = frozenset({"body", "query", "headers", "user", "user_id"})


@dataclass
class RequestContext:
    """One request as seen by the pipeline.

    ``path`` is relative to the configured base path. Header names are
    lower-cased. Each request gets its own instance; nothing here is shared
    between concurrent requests.
    """

    path: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    query: dict[str, str] = field(default_factory=dict)
    client_host: str | None = None
    params: dict[str, str] = field(default_factory=dict)
    user: Any = None
    user_id: str | None = None
    state: dict[str, Any] = field(default_factory=dict)
    app: ApplicationContext | None = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.headers = {k.lower(): v for k, v in self.headers.items()}
        if not self.path.startswith("/"):
            self.path = "/" + self.path

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    def apply(self, updates: Mapping[str, Any]) -> None:
        """Merge hook-provided updates into this context."""
        for key, value in updates.items():
            if key in _REPLACEABLE:
                setattr(self, key, value)
            else:
                self.state[key] = value

    def require_user_id(self) -> str:
        """Return the caller's user id or raise ``AuthenticationRequiredError``."""
        if not self.user_id:
            raise AuthenticationRequiredError()
        return self.user_id
