"""Origin validation for cookie-bearing POST requests.

Runs as the first core before-hook. A POST that carries cookies must come
from a trusted origin, and any ``callbackURL`` in the body or query must point
at a trusted origin or be a safe relative path.
"""

from __future__ import annotations

import re
from fnmatch import fnmatchcase
from urllib.parse import urlparse

from ..core.exceptions import ForbiddenError
from ..core.logging import get_logger
from ..plugins.base import Continue, Hook
from .request import RequestContext

logger = get_logger(__name__)

_SAFE_RELATIVE = re.compile(r"^/(?!/|\\|%2f|%5c)[\w\-.+/@]*(?:\?[\w\-.+/=&%@]*)?$", re.IGNORECASE)


def _origin(url: str) -> str | None:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def matches_origin(url: str, pattern: str) -> bool:
    """Whether ``url`` belongs to the trusted ``pattern``.

    Patterns may use ``*`` wildcards; a pattern with a scheme is matched
    against the URL's origin, one without against its host.
    """
    if url.startswith("/"):
        return False
    if "*" in pattern:
        if "://" in pattern:
            return fnmatchcase(_origin(url) or url, pattern)
        return fnmatchcase(urlparse(url).netloc, pattern)
    scheme = urlparse(url).scheme
    if scheme in ("http", "https", ""):
        return pattern == _origin(url)
    return url.startswith(pattern)


def validate_url(url: str | None, label: str, trusted_origins: tuple[str, ...]) -> None:
    if not url:
        return
    if any(matches_origin(url, origin) for origin in trusted_origins):
        return
    if label != "origin" and _SAFE_RELATIVE.match(url):
        return
    logger.error(
        f"Invalid {label}",
        extra={"url": url, "trusted_origins": ",".join(trusted_origins)},
    )
    raise ForbiddenError(f"Invalid {label}")


def check_origin(request: RequestContext) -> Continue:
    if request.app is None:
        return Continue()
    trusted = request.app.trusted_origins
    if request.header("cookie") is not None:
        validate_url(request.header("origin") or request.header("referer") or "", "origin", trusted)
    body = request.body if isinstance(request.body, dict) else {}
    callback_url = body.get("callbackURL") or request.query.get("callbackURL")
    validate_url(callback_url, "callbackURL", trusted)
    return Continue()


def _is_post(request: RequestContext) -> bool:
    return request.method == "POST"


origin_check_hook = Hook(handler=check_origin, matcher=_is_post)
