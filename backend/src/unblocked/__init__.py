"""
Unblocked: an extensible host for AI chat applications.

``compose`` turns options and plugins into an ``ApplicationContext``;
``create_app`` serves it over FastAPI.
"""

from .api.app import create_app
from .api.endpoints import Endpoint
from .api.pipeline import Pipeline
from .api.request import RequestContext
from .client.bindings import AtomListener, ClientBindings, ClientPlugin
from .db.fields import FieldAttribute, FieldReference, TableDefinition
from .options import CustomRateLimit, RateLimitOptions, UnblockedOptions
from .plugins.base import Continue, Hook, InitResult, Plugin, PluginHooks, RateLimitRule, Respond
from .plugins.host import ApplicationContext, compose, compose_async

__version__ = "0.1.0"

__all__ = [
    "ApplicationContext",
    "AtomListener",
    "ClientBindings",
    "ClientPlugin",
    "Continue",
    "CustomRateLimit",
    "Endpoint",
    "FieldAttribute",
    "FieldReference",
    "Hook",
    "InitResult",
    "Pipeline",
    "Plugin",
    "PluginHooks",
    "RateLimitOptions",
    "RateLimitRule",
    "RequestContext",
    "Respond",
    "TableDefinition",
    "UnblockedOptions",
    "compose",
    "compose_async",
    "create_app",
]
