"""
Customer JWT verification.

The token is a compact `header.payload.signature` string signed with
HMAC-SHA-256 over the first two segments (as received) using the shared
secret. Only the signature is checked; claims are informational.
"""

from __future__ import annotations

import enum
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from jwt.algorithms import HMACAlgorithm
from jwt.utils import base64url_decode, base64url_encode

logger = logging.getLogger(__name__)


class TokenStatus(enum.Enum):
    VALID = "valid"
    INVALID = "invalid"
    # Secret missing or crypto backend unusable. Treated as anonymous by policy.
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class VerificationResult:
    status: TokenStatus
    claims: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status is TokenStatus.VALID


INVALID = VerificationResult(TokenStatus.INVALID)
UNAVAILABLE = VerificationResult(TokenStatus.UNAVAILABLE)


def _decode_segment(segment: str) -> Optional[bytes]:
    """
    Base64url-decode one token segment.

    Returns None for anything that is not the canonical encoding of some byte
    string: a length remainder of 1, padding other than none or exactly enough
    to reach a multiple of 4, characters outside the alphabet, or non-zero
    trailing bits.
    """
    stripped = segment.rstrip("=")
    if len(stripped) % 4 == 1:
        return None
    if len(segment) - len(stripped) not in (0, -len(stripped) % 4):
        return None
    try:
        raw = base64url_decode(stripped)
    except (ValueError, TypeError):
        # binascii.Error is a ValueError
        return None
    if base64url_encode(raw).decode("ascii") != stripped:
        return None
    return raw


def _decode_claims(segment: str) -> Optional[Dict[str, Any]]:
    raw = _decode_segment(segment)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _sign(signing_input: bytes, secret: str) -> bytes:
    """Seam for tests."""
    return HMACAlgorithm(HMACAlgorithm.SHA256).sign(signing_input, secret.encode("utf-8"))


def verify_token(token: Optional[str], secret: Optional[str]) -> VerificationResult:
    """
    Verify a compact HS256 token against `secret`.

    Never raises: structural and signature problems give INVALID, a missing
    secret or an unusable crypto backend gives UNAVAILABLE.
    """
    if not token:
        return INVALID
    if not secret:
        logger.warning("Token verification unavailable: FX_JWT_SECRET is not configured")
        return UNAVAILABLE

    parts = token.split(".")
    if len(parts) != 3:
        logger.debug("Token rejected: expected 3 segments, got %d", len(parts))
        return INVALID
    header_b64, payload_b64, signature_b64 = parts

    signature = _decode_segment(signature_b64)
    if signature is None:
        logger.debug("Token rejected: signature is not valid base64url")
        return INVALID

    try:
        expected = _sign(f"{header_b64}.{payload_b64}".encode("utf-8"), secret)
    except Exception as e:
        logger.warning("Token verification unavailable: HMAC signing failed: %s", str(e))
        return UNAVAILABLE

    if not hmac.compare_digest(expected, signature):
        logger.debug("Token rejected: signature mismatch")
        return INVALID

    return VerificationResult(TokenStatus.VALID, claims=_decode_claims(payload_b64))


def verify(token: Optional[str], secret: Optional[str]) -> bool:
    return verify_token(token, secret).ok
