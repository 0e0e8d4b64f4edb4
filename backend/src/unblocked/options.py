"""Composition options.

``UnblockedOptions`` is what callers hand to ``compose``. Any field left unset
is filled, in order, by plugin ``init`` overrides and then by ``Settings``.
Fields the caller passed explicitly (``model_fields_set``) are never
overridden by plugins.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .api.request import RequestContext
from .plugins.base import Plugin, PluginHooks


class CustomRateLimit(BaseModel):
    window: int = Field(gt=0)
    max: int = Field(gt=0)


class RateLimitOptions(BaseModel):
    """Rate limiting configuration.

    ``enabled`` defaults to on in production only. ``custom_rules`` maps a
    path (``*`` wildcards allowed) to its own window and max and is checked
    before plugin rules; ``window``/``max`` form the default rule.
    """

    enabled: bool | None = None
    window: int | None = Field(None, gt=0)
    max: int | None = Field(None, gt=0)
    custom_rules: dict[str, CustomRateLimit] = Field(default_factory=dict)
    storage: Literal["memory", "database"] | None = None
    model_name: str | None = None
    fields: dict[str, str] | None = None
    # Any object with async get(key) and set(key, value); replaces ``storage``
    custom_storage: Any = None

    @field_validator("fields")
    @classmethod
    def validate_fields(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        if v is None:
            return v
        unknown = set(v) - {"key", "count", "lastRequest"}
        if unknown:
            raise ValueError(f"Unknown rate limit fields: {sorted(unknown)}")
        return v


UserResolver = Callable[[RequestContext], Awaitable[Any] | Any]


class UnblockedOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    app_name: str | None = None
    base_url: str | None = None
    base_path: str | None = None
    secret: str | None = None
    database_url: str | None = None
    # Storage adapter for built-in routes; a MemoryAdapter is used when neither
    # this nor database_url is set
    database: Any = None
    use_number_id: bool | None = None
    # Plain records are checked by type only; their callables are not validated
    plugins: list[Any] = Field(default_factory=list)
    rate_limit: RateLimitOptions | None = None
    hooks: Any = None
    disabled_paths: list[str] = Field(default_factory=list)
    trusted_origins: list[str] = Field(default_factory=list)
    # Returns a user object (with an ``id`` attribute or key) or None
    get_user: UserResolver | None = None

    @field_validator("disabled_paths")
    @classmethod
    def normalize_disabled_paths(cls, v: list[str]) -> list[str]:
        return ["/" + p.strip("/") for p in v]

    @field_validator("plugins")
    @classmethod
    def validate_plugins(cls, v: list[Any]) -> list[Any]:
        for plugin in v:
            if not isinstance(plugin, Plugin):
                raise ValueError(f"Expected a Plugin, got {type(plugin).__name__}")
        return v

    @field_validator("hooks")
    @classmethod
    def validate_hooks(cls, v: Any) -> Any:
        if v is not None and not isinstance(v, PluginHooks):
            raise ValueError("hooks must be a PluginHooks instance")
        return v
