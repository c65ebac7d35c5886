"""Signed session credentials for the API.

Every sign-in issues a pair: a short-lived access token sent as the Bearer
credential on each call, and a long-lived refresh token that can only be
exchanged at ``/auth/refresh`` for a fresh pair. The two carry different
``type`` claims so neither can stand in for the other.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings


ACCESS_TOKEN_TYPE = "vc_session"
REFRESH_TOKEN_TYPE = "vc_refresh"


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    access_expires_at: int
    refresh_token: str
    refresh_expires_at: int


def _sign(user_id: str, email: Optional[str], token_type: str, issued_at: datetime, lifetime: timedelta) -> tuple:
    expires_at = int((issued_at + lifetime).timestamp())
    claims: Dict[str, Any] = {
        "sub": user_id,
        "type": token_type,
        "iat": int(issued_at.timestamp()),
        "exp": expires_at,
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM), expires_at


def issue_session_tokens(user_id: str, email: Optional[str] = None) -> SessionTokens:
    now = datetime.now(timezone.utc)
    access_token, access_expires_at = _sign(
        user_id,
        email,
        ACCESS_TOKEN_TYPE,
        now,
        timedelta(hours=max(int(settings.JWT_EXPIRATION_HOURS or 24), 1)),
    )
    refresh_token, refresh_expires_at = _sign(
        user_id,
        email,
        REFRESH_TOKEN_TYPE,
        now,
        timedelta(days=max(int(settings.REFRESH_TOKEN_EXPIRATION_DAYS or 30), 1)),
    )
    return SessionTokens(
        access_token=access_token,
        access_expires_at=access_expires_at,
        refresh_token=refresh_token,
        refresh_expires_at=refresh_expires_at,
    )


def _decode(token: str, expected_type: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if str(payload.get("type", "")).strip() != expected_type:
        raise ValueError("Invalid session token type.")
    if not str(payload.get("sub", "")).strip():
        raise ValueError("Session token missing subject.")
    return payload


def decode_access_token(token: str) -> Dict[str, Any]:
    """Claims of a valid access token; ValueError otherwise."""
    return _decode(token, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> Dict[str, Any]:
    """Claims of a valid refresh token; ValueError otherwise."""
    return _decode(token, REFRESH_TOKEN_TYPE)
