"""Composition host.

``compose`` runs once at startup. It walks the plugin list in registration
order, applies ``init`` overrides, merges schema fragments, registers
endpoints, collects hooks and rate limit rules, and returns an immutable
``ApplicationContext`` shared by every request.
``compose_async`` also connects the configured cache backend first, so
servers reach Redis during startup rather than on the first request.

Option precedence, highest first: fields the caller set explicitly, values
from plugin ``init`` hooks (the first plugin to set a field wins), then
``Settings``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel

from ..api.endpoints import EndpointRegistry
from ..api.routes import builtin_endpoints
from ..client.bindings import ClientBindings
from ..core.cache_backend import CacheBackend, InMemoryCacheBackend, create_cache_backend
from ..core.config import DEFAULT_SECRET, Settings, get_settings_instance
from ..core.exceptions import ConfigurationError
from ..db.engine import create_engine
from ..db.memory_adapter import MemoryAdapter
from ..db.metadata import build_metadata
from ..db.registry import SchemaRegistry, merge_schema
from ..db.sql_adapter import SQLAlchemyAdapter
from ..db.tables import RATE_LIMIT_TABLE
from ..options import RateLimitOptions, UnblockedOptions
from ..rate_limit.limiter import RateLimiter
from ..rate_limit.resolver import RateLimitPolicy
from ..rate_limit.storage import (
    CacheRateLimitStorage,
    CustomRateLimitStorage,
    DatabaseRateLimitStorage,
    RateLimitStorage,
)
from .base import Hook, InitResult, Plugin

logger = logging.getLogger(__name__)

# Option fields a plugin init hook may not touch
_PROTECTED_OPTIONS = frozenset({"plugins"})


@dataclass(frozen=True)
class InitializationState:
    """Environment facts probed once during composition."""

    environment: str
    is_production: bool
    uses_default_secret: bool


@dataclass
class InitContext:
    """What a plugin ``init`` hook receives."""

    options: UnblockedOptions
    settings: Settings
    state: InitializationState
    extensions: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ApplicationContext:
    options: UnblockedOptions
    settings: Settings
    state: InitializationState
    secret: str
    base_url: str | None
    base_path: str
    trusted_origins: tuple[str, ...]
    schema: SchemaRegistry
    endpoints: EndpointRegistry
    before_hooks: tuple[Hook, ...]
    after_hooks: tuple[Hook, ...]
    rate_limiter: RateLimiter
    client: ClientBindings
    adapter: Any
    engine: Any = None
    extensions: Mapping[str, Any] = field(default_factory=dict)

    @property
    def plugins(self) -> list[Plugin]:
        return list(self.options.plugins)

    def has_plugin(self, plugin_id: str) -> bool:
        return any(p.id == plugin_id for p in self.options.plugins)

    @property
    def error_codes(self) -> dict[str, str]:
        codes: dict[str, str] = {}
        for plugin in self.options.plugins:
            codes.update(plugin.error_codes)
        return codes


def merge_user_first(target: BaseModel, overrides: Mapping[str, Any], locked: set[str]) -> BaseModel:
    """Apply ``overrides`` to ``target`` without touching fields in ``locked``.

    Nested models are merged field by field under the same rule, using their
    own ``model_fields_set`` as the lock. Plain dicts merge key by key with
    existing keys winning.
    """
    model_fields = type(target).model_fields
    updates: dict[str, Any] = {}
    for name, value in overrides.items():
        if name not in model_fields:
            logger.warning("Ignoring unknown option from plugin init", extra={"option": name})
            continue
        current = getattr(target, name)
        if name not in locked:
            updates[name] = value
        elif isinstance(current, BaseModel) and isinstance(value, Mapping):
            updates[name] = merge_user_first(current, value, set(current.model_fields_set))
        elif isinstance(current, dict) and isinstance(value, Mapping):
            updates[name] = {**value, **current}
    if not updates:
        return target
    # Validate from a shallow field dict so nested mappings become models
    # while plain records (plugins, hooks) pass through untouched
    values = {name: getattr(target, name) for name in model_fields}
    values.update(updates)
    merged = type(target).model_validate(values)
    object.__setattr__(merged, "__pydantic_fields_set__", set(target.model_fields_set) | set(updates))
    return merged


def _coerce_init_result(plugin: Plugin, result: Any) -> InitResult | None:
    if result is None or isinstance(result, InitResult):
        return result
    if isinstance(result, Mapping):
        return InitResult(context=result.get("context"), options=result.get("options"))
    raise ConfigurationError(
        f"Plugin '{plugin.id}' init returned {type(result).__name__}; expected InitResult or None",
        details={"plugin_id": plugin.id},
    )


def run_plugin_init(ctx: InitContext) -> InitContext:
    """Run every plugin ``init`` hook in order.

    Context entries from later plugins override earlier ones. Option values
    only fill fields nobody has set yet.
    """
    options = ctx.options
    locked = set(options.model_fields_set)
    for plugin in options.plugins:
        if plugin.init is None:
            continue
        result = _coerce_init_result(plugin, plugin.init(ctx))
        if result is None:
            continue
        if result.options:
            requested = {k: v for k, v in result.options.items() if k not in _PROTECTED_OPTIONS}
            skipped = sorted(k for k in requested if k in locked)
            if skipped:
                logger.debug(
                    "Plugin init option ignored; already set",
                    extra={"plugin_id": plugin.id, "options": ",".join(skipped)},
                )
            options = merge_user_first(options, requested, locked)
            locked |= set(requested)
            ctx.options = options
        if result.context:
            ctx.extensions.update(result.context)
    return ctx


def resolve_rate_limit(options: RateLimitOptions | None, settings: Settings, state: InitializationState) -> RateLimitOptions:
    """Fill unset rate limit options from settings."""
    options = options or RateLimitOptions()
    enabled = options.enabled
    if enabled is None:
        enabled = settings.rate_limit_enabled if settings.rate_limit_enabled is not None else state.is_production
    return options.model_copy(
        update={
            "enabled": enabled,
            "window": options.window or settings.rate_limit_window,
            "max": options.max or settings.rate_limit_max,
            "storage": options.storage or settings.rate_limit_storage,
        }
    )


def get_trusted_origins(base_url: str | None, configured: list[str], settings: Settings) -> tuple[str, ...]:
    """Origin of ``base_url`` plus configured and environment origins.

    Without a base URL there is nothing to trust.
    """
    if not base_url:
        return ()
    parsed = urlparse(base_url)
    origins = [f"{parsed.scheme}://{parsed.netloc}"]
    origins.extend(configured)
    origins.extend(settings.trusted_origin_list)
    if any(not origin for origin in origins):
        raise ConfigurationError(
            "A provided trusted origin is invalid, make sure your trusted origins list is properly defined."
        )
    return tuple(origins)


def _check_plugin_ids(plugins: list[Plugin]) -> None:
    seen: set[str] = set()
    for plugin in plugins:
        if plugin.id in seen:
            raise ConfigurationError(f"Duplicate plugin id '{plugin.id}'", details={"plugin_id": plugin.id})
        seen.add(plugin.id)


def _build_rate_limit_storage(
    options: RateLimitOptions,
    schema: SchemaRegistry,
    engine: Any,
    use_number_id: bool,
    cache: CacheBackend | None,
    settings: Settings,
) -> RateLimitStorage:
    if options.custom_storage is not None:
        return CustomRateLimitStorage(options.custom_storage)
    if options.storage == "database":
        if engine is None:
            raise ConfigurationError("Database rate limit storage requires a database_url")
        table_def = schema[RATE_LIMIT_TABLE]
        metadata = build_metadata(schema, use_number_id)
        return DatabaseRateLimitStorage(
            engine,
            metadata.tables[schema.model_name(RATE_LIMIT_TABLE)],
            key_column=table_def.fields["key"].physical_name("key"),
            count_column=table_def.fields["count"].physical_name("count"),
            last_request_column=table_def.fields["lastRequest"].physical_name("lastRequest"),
            use_number_id=use_number_id,
        )
    if cache is None:
        if options.enabled and settings.redis_enabled:
            raise ConfigurationError(
                "Redis rate limit storage must be connected before composition; use compose_async or pass a cache",
                details={"redis_url": settings.redis_url},
            )
        cache = InMemoryCacheBackend()
    return CacheRateLimitStorage(cache)


def compose(
    options: UnblockedOptions | None = None,
    settings: Settings | None = None,
    cache: CacheBackend | None = None,
) -> ApplicationContext:
    """Build the application context from options and plugins.

    Args:
        options: Composition options; unset fields fall back to settings.
        settings: Overrides the process settings instance.
        cache: Connected cache backend for memory rate limit storage. Without
            one, a private in-memory backend is used; enabled rate limiting
            with ``redis_url`` set requires a cache, see ``compose_async``.

    Raises:
        ConfigurationError: Duplicate plugin ids, schema conflicts, invalid
            trusted origins or an unusable rate limit storage.

    """
    options = options or UnblockedOptions()
    settings = settings or get_settings_instance()
    _check_plugin_ids(options.plugins)

    secret = options.secret or settings.secret or DEFAULT_SECRET
    state = InitializationState(
        environment=settings.environment,
        is_production=settings.is_production,
        uses_default_secret=secret == DEFAULT_SECRET,
    )
    if state.uses_default_secret and state.is_production:
        logger.error(
            "You are using the default secret. Please set `UNBLOCKED_SECRET` in your environment variables "
            "or pass `secret` in your options."
        )

    init_ctx = run_plugin_init(InitContext(options=options, settings=settings, state=state))
    options = init_ctx.options

    rate_limit = resolve_rate_limit(options.rate_limit, settings, state)
    use_number_id = options.use_number_id if options.use_number_id is not None else settings.use_number_id
    base_url = options.base_url or settings.base_url
    base_path = "/" + (options.base_path or settings.base_path).strip("/")
    trusted_origins = get_trusted_origins(base_url, options.trusted_origins, settings)

    schema = merge_schema(options.plugins, rate_limit)

    database_url = options.database_url or settings.database_url
    engine = create_engine(database_url, echo=settings.debug) if database_url else None
    adapter = options.database
    if adapter is None:
        adapter = (
            SQLAlchemyAdapter(engine, schema, use_number_id)
            if engine is not None
            else MemoryAdapter(schema, use_number_id=use_number_id)
        )

    endpoints = EndpointRegistry()
    for endpoint in builtin_endpoints():
        endpoints.register(endpoint, source="core")
    for plugin in options.plugins:
        for endpoint in plugin.endpoints:
            endpoints.register(endpoint, source=plugin.id)
    endpoints.freeze()

    before_hooks: list[Hook] = []
    after_hooks: list[Hook] = []
    if options.hooks is not None:
        before_hooks.extend(options.hooks.before)
        after_hooks.extend(options.hooks.after)
    for plugin in options.plugins:
        if plugin.hooks is not None:
            before_hooks.extend(plugin.hooks.before)
            after_hooks.extend(plugin.hooks.after)

    policy = RateLimitPolicy.from_options(rate_limit, options.plugins, enabled=bool(rate_limit.enabled))
    storage = _build_rate_limit_storage(rate_limit, schema, engine, use_number_id, cache, settings)

    client = ClientBindings(plugin.client for plugin in options.plugins if plugin.client is not None)

    context = ApplicationContext(
        options=options.model_copy(update={"rate_limit": rate_limit, "use_number_id": use_number_id}),
        settings=settings,
        state=state,
        secret=secret,
        base_url=base_url,
        base_path=base_path,
        trusted_origins=trusted_origins,
        schema=schema,
        endpoints=endpoints,
        before_hooks=tuple(before_hooks),
        after_hooks=tuple(after_hooks),
        rate_limiter=RateLimiter(policy, storage),
        client=client,
        adapter=adapter,
        engine=engine,
        extensions=MappingProxyType(dict(init_ctx.extensions)),
    )
    logger.info(
        "Composed application",
        extra={
            "plugins": ",".join(p.id for p in options.plugins),
            "tables": len(schema),
            "endpoints": len(endpoints),
            "rate_limit_enabled": rate_limit.enabled,
            "rate_limit_storage": rate_limit.storage,
        },
    )
    return context


async def compose_async(
    options: UnblockedOptions | None = None,
    settings: Settings | None = None,
    cache: CacheBackend | None = None,
) -> ApplicationContext:
    """``compose`` after connecting the configured cache backend.

    Use this at server startup so Redis is reached, or found unreachable,
    before the first request arrives.
    """
    settings = settings or get_settings_instance()
    if cache is None and settings.redis_enabled:
        cache = await create_cache_backend(settings)
    return compose(options, settings=settings, cache=cache)
