"""Plugin record types.

A plugin is a plain record: every capability is an explicit optional field,
and the host reads those fields directly instead of probing for attributes.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..api.endpoints import Endpoint
from ..client.bindings import ClientPlugin
from ..core.exceptions import ConfigurationError
from ..db.fields import TableDefinition

if TYPE_CHECKING:
    from ..api.request import RequestContext
    from .host import InitContext


@dataclass(frozen=True)
class Continue:
    """Hook outcome: keep going, merging ``updates`` into the request context."""

    updates: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Respond:
    """Hook outcome: stop the pipeline and return ``response`` as-is."""

    response: Any


HookOutcome = Continue | Respond
HookMatcher = Callable[["RequestContext"], bool]
HookHandler = Callable[["RequestContext"], Awaitable[HookOutcome | None] | HookOutcome | None]


def match_all(_: RequestContext) -> bool:
    return True


@dataclass(frozen=True)
class Hook:
    handler: HookHandler
    matcher: HookMatcher = match_all


@dataclass(frozen=True)
class PluginHooks:
    before: Sequence[Hook] = ()
    after: Sequence[Hook] = ()


@dataclass(frozen=True)
class RateLimitRule:
    """At most ``max`` requests per ``window`` seconds for paths accepted by ``path_matcher``.

    ``id`` names the counter; when omitted the host derives one from the
    contributing plugin and the rule's position.
    """

    window: int
    max: int
    path_matcher: Callable[[str], bool]
    id: str | None = None

    def __post_init__(self) -> None:
        if self.window <= 0 or self.max <= 0:
            raise ConfigurationError("Rate limit window and max must be positive", details={"rule": self.id})


@dataclass(frozen=True)
class InitResult:
    """Returned by a plugin ``init`` hook.

    ``context`` entries become application context extensions; ``options``
    fill composition options the caller did not set.
    """

    context: Mapping[str, Any] | None = None
    options: Mapping[str, Any] | None = None


PluginInit = Callable[["InitContext"], InitResult | None]


@dataclass(frozen=True)
class Plugin:
    id: str
    schema: Mapping[str, TableDefinition] | None = None
    endpoints: Sequence[Endpoint] = ()
    hooks: PluginHooks | None = None
    rate_limit: Sequence[RateLimitRule] = ()
    init: PluginInit | None = None
    client: ClientPlugin | None = None
    error_codes: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise ConfigurationError("Plugin id must be a non-empty string")
