"""
Plugin system for Unblocked.

Plugins are plain records (see ``base``) composed once at startup by the
host (see ``host``).
"""

from .base import (
    Continue,
    Hook,
    InitResult,
    Plugin,
    PluginHooks,
    RateLimitRule,
    Respond,
    match_all,
)

__all__ = [
    "Continue",
    "Hook",
    "InitResult",
    "Plugin",
    "PluginHooks",
    "RateLimitRule",
    "Respond",
    "match_all",
]
