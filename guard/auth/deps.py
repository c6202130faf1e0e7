from __future__ import annotations

from fastapi import Request

from guard.auth.config import GuardConfig
from guard.auth.cookies import CUSTOMER_JWT_COOKIE, get_cookie
from guard.auth.token import INVALID, VerificationResult, verify_token


def verify_request(request: Request, cfg: GuardConfig) -> VerificationResult:
    """
    Verify the customer JWT carried by a request.

    A missing or empty cookie is INVALID; callers treat anything but VALID as
    anonymous.
    """
    token = get_cookie(request.headers.get("cookie"), CUSTOMER_JWT_COOKIE)
    if not token:
        return INVALID
    return verify_token(token, cfg.jwt_secret)
