"""
Utility functions for the messenger API.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from messenger.config import settings

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def utcnow() -> datetime:
    """Naive UTC now, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_access_token(user_id: str, phone: str, session_id: Optional[str] = None, now: datetime = None) -> str:
    """
    Issue a signed bearer token for a user.

    Claims: sub (user id), phone, iat, exp, and sid when the sign-in opened a
    device session. Tokens live for JWT_EXPIRES_MINUTES and are signed with
    AUTH_SECRET.
    """
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "phone": phone,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.JWT_EXPIRES_MINUTES)).timestamp()),
    }
    if session_id:
        payload["sid"] = session_id
    return jwt.encode(payload, settings.AUTH_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify signature and expiry of a bearer token.

    Raises:
        jwt.ExpiredSignatureError: the token is past its exp claim
        jwt.InvalidTokenError: anything else wrong with the token
    """
    return jwt.decode(
        token,
        settings.AUTH_SECRET,
        algorithms=[JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )
