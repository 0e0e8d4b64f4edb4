"""Rate limit policy resolution.

Rules are checked in order: the configured custom rules, then plugin rules in
plugin order, and finally the default rule, which matches every path. The
first matching rule applies.
"""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

from ..plugins.base import RateLimitRule

if TYPE_CHECKING:
    from ..options import RateLimitOptions
    from ..plugins.base import Plugin

logger = logging.getLogger(__name__)

DEFAULT_RULE_ID = "default"


def path_pattern_matcher(pattern: str):
    """Matcher for a path pattern where ``*`` matches any run of characters."""
    pattern = "/" + pattern.strip("/")

    def matcher(path: str) -> bool:
        return fnmatch.fnmatchcase("/" + path.strip("/"), pattern)

    return matcher


def match_any_path(_: str) -> bool:
    return True


class RateLimitPolicy:
    """Ordered, immutable rule list."""

    def __init__(self, rules: Sequence[RateLimitRule], enabled: bool = True):
        self._rules = tuple(rules)
        self.enabled = enabled
        ids = [rule.id for rule in self._rules]
        duplicates = {rule_id for rule_id in ids if ids.count(rule_id) > 1}
        if duplicates:
            # Shared ids share counters; allowed, but rarely intended
            logger.warning("Rate limit rules share counter ids", extra={"rule_ids": ",".join(sorted(duplicates))})

    @property
    def rules(self) -> tuple[RateLimitRule, ...]:
        return self._rules

    def resolve(self, path: str) -> RateLimitRule | None:
        """First rule whose matcher accepts ``path``, or None when rate limiting is off."""
        if not self.enabled:
            return None
        for rule in self._rules:
            if rule.path_matcher(path):
                return rule
        return None

    @classmethod
    def from_options(
        cls,
        options: RateLimitOptions,
        plugins: Iterable[Plugin] = (),
        enabled: bool = True,
    ) -> RateLimitPolicy:
        """Build the policy from resolved options.

        ``options.window`` and ``options.max`` must already be filled in.
        """
        rules: list[RateLimitRule] = [
            RateLimitRule(
                window=custom.window,
                max=custom.max,
                path_matcher=path_pattern_matcher(path),
                id=f"custom:{path}",
            )
            for path, custom in options.custom_rules.items()
        ]
        for plugin in plugins:
            for index, rule in enumerate(plugin.rate_limit):
                rules.append(rule if rule.id else replace(rule, id=f"{plugin.id}:{index}"))
        rules.append(
            RateLimitRule(window=options.window, max=options.max, path_matcher=match_any_path, id=DEFAULT_RULE_ID)
        )
        return cls(rules, enabled=enabled)
