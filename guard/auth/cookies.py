from __future__ import annotations

from typing import Optional

CUSTOMER_JWT_COOKIE = "fx.customer.jwt"
DESTINATION_COOKIE = "fx.cf.guard.destination"

_EXPIRED_AT = "Thu, 01 Jan 1970 00:00:01 GMT"


def get_cookie(header_value: Optional[str], name: str) -> Optional[str]:
    """
    Return the value of the first cookie called `name` in a `Cookie` header.

    Names are compared after trimming; values are returned as-is (possibly empty).
    Pairs without `=` are ignored. Returns None when nothing matches.
    """
    if not header_value:
        return None
    for pair in header_value.split(";"):
        key, sep, value = pair.partition("=")
        if not sep:
            continue
        if key.strip() == name:
            return value
    return None


def build_cookie(name: str, value: str) -> str:
    return f"{name}={value}; Path=/"


def expire_cookie(name: str) -> str:
    return f"{name}=deleted; Expires={_EXPIRED_AT}; Path=/"
