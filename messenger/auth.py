"""
Request dependencies: the signed-in user and the service clients.

The service clients are created once per process and closed on shutdown.
Tests replace them through app.dependency_overrides.
"""

import logging
from functools import lru_cache
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from messenger.agent import AgentClient
from messenger.ai import AnnaClient
from messenger.kvstore import KeyValueStore
from messenger.models import User, UserSession
from messenger.storage import get_db
from messenger.utils import decode_access_token

logger = logging.getLogger(__name__)

# 401 is raised here rather than by HTTPBearer so a missing header and a bad token answer alike
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the bearer token to a user.

    Raises:
        HTTPException 401: header missing, token invalid or expired, user gone,
            or the device session the token was issued for has been ended
    """
    if creds is None:
        raise _unauthorized("not authenticated")

    try:
        payload = decode_access_token(creds.credentials)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected bearer token: {e}")
        raise _unauthorized("invalid token")

    user = db.get(User, payload["sub"])
    if user is None:
        logger.info(f"Token for unknown user {payload['sub']}")
        raise _unauthorized("user not found")

    session_id = payload.get("sid")
    if session_id:
        session = db.get(UserSession, session_id)
        if session is None or session.user_id != user.id:
            raise _unauthorized("session revoked")
    request.state.session_id = session_id
    return user


def get_kv(db: Session = Depends(get_db)) -> KeyValueStore:
    return KeyValueStore(db)


@lru_cache()
def get_anna_client() -> AnnaClient:
    return AnnaClient()


@lru_cache()
def get_agent_client() -> AgentClient:
    return AgentClient()
