from __future__ import annotations

import re
from urllib.parse import urljoin

_SCHEME_SLASHES_RE = re.compile(r"://+")


def clean_url(dirty_url: str) -> str:
    """
    Normalize a URL for equality checks.

    Trims whitespace, drops one trailing slash and collapses the first run of
    slashes after the scheme separator back to `://`.
    """
    url = (dirty_url or "").strip()
    if url.endswith("/"):
        url = url[:-1]
    return _SCHEME_SLASHES_RE.sub("://", url, count=1)


def resolve_login_url(login_location: str, request_url: str) -> str:
    """Resolve the configured login location against the URL being requested."""
    return urljoin(request_url, login_location.strip())
