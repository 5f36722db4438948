"""JWT utilities: identity-token creation (dev/testing) and verification."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from ehr_guard.config import get_settings


@dataclass(frozen=True)
class IdentityClaims:
    """What an identity token asserts: a stable auth reference and a (possibly stale) role."""
    auth_ref: str
    claimed_role: Optional[str] = None


def create_access_token(auth_ref: str, role: str | None = None, expires_minutes: int | None = None) -> str:
    settings = get_settings()
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    payload = {
        "sub": auth_ref,
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    """Decode and validate a JWT. Returns claims dict or None on any error."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def claims_from_token(token: str) -> IdentityClaims | None:
    claims = decode_token(token)
    if not claims or claims.get("type") != "access":
        return None
    sub = claims.get("sub")
    if not sub:
        return None
    return IdentityClaims(auth_ref=str(sub), claimed_role=claims.get("role"))
