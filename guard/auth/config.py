from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class GuardConfig:
    # Origin the gateway sits in front of (scheme://host[:port][/prefix])
    origin_url: Optional[str]

    # Where anonymous visitors are sent to authenticate (absolute or relative to the request URL)
    login_location: Optional[str]

    # Shared HMAC secret for the customer JWT
    jwt_secret: Optional[str]

    # Content filter toggles
    omit_restricted: bool
    inject_reload: bool

    log_level: str

    @property
    def redirect_enabled(self) -> bool:
        """Redirect-to-login only happens when a login location is configured."""
        return bool(self.login_location)


def _parse_bool(value: Optional[str], *, default: bool) -> bool:
    v = (value or "").strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    return default


@lru_cache(maxsize=1)
def load_guard_config() -> GuardConfig:
    """
    Load gateway configuration from environment variables.

    FX_REDIRECT, FX_JWT_SECRET and FX_OMIT keep the names used by the customer
    portal deployment; GUARD_* variables are gateway specific.
    """
    log_level = (os.getenv("GUARD_LOG_LEVEL", "") or "INFO").strip().upper() or "INFO"

    return GuardConfig(
        origin_url=(os.getenv("GUARD_ORIGIN_URL", "") or "").strip().rstrip("/") or None,
        login_location=(os.getenv("FX_REDIRECT", "") or "").strip() or None,
        # Secrets are used byte-for-byte; do not strip.
        jwt_secret=os.getenv("FX_JWT_SECRET") or None,
        omit_restricted=_parse_bool(os.getenv("FX_OMIT"), default=True),
        inject_reload=_parse_bool(os.getenv("FX_RELOAD"), default=False),
        log_level=log_level,
    )
