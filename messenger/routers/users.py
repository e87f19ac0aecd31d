import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from messenger.auth import get_current_user, get_kv
from messenger.crud.search import add_search_history, delete_search_history, get_search_history
from messenger.crud.users import (
    delete_user_session,
    get_user_sessions,
    get_user_stats,
    update_online_status,
    update_user,
)
from messenger.kvstore import KeyValueStore, get_biometric_enabled, set_biometric_enabled, user_cache_prefix
from messenger.models import User
from messenger.routers.auth import user_response
from messenger.schemas import (
    BiometricSetting,
    CacheInfoResponse,
    OnlineStatusRequest,
    SearchHistoryRequest,
    SearchHistoryResponse,
    StatusResponse,
    UserResponse,
    UserSessionResponse,
    UserStatsResponse,
    UserUpdateRequest,
)
from messenger.storage import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/me", tags=["users"])


# =============================================================================
# Profile
# =============================================================================

@router.get("", response_model=UserResponse)
def read_profile(user: User = Depends(get_current_user)) -> UserResponse:
    return user_response(user)


@router.patch("", response_model=UserResponse)
def edit_profile(
    body: UserUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    """
    Update profile fields and consents.

    Granting GDPR or FZ-152 consent records the consent date.
    """
    updated = update_user(db, user.id, **body.model_dump(exclude_unset=True))
    return user_response(updated)


@router.put("/online", response_model=UserResponse)
def set_online_status(
    body: OnlineStatusRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    return user_response(update_online_status(db, user.id, body.online_status))


@router.get("/stats", response_model=UserStatsResponse)
def read_stats(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserStatsResponse:
    stats = get_user_stats(db, user.id)
    logger.debug(f"Stats for {user.id}: {stats}")
    return UserStatsResponse(**stats)


# =============================================================================
# Security and local data
# =============================================================================

@router.get("/security/biometric", response_model=BiometricSetting)
def read_biometric(
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
) -> BiometricSetting:
    return BiometricSetting(enabled=get_biometric_enabled(kv, user.id))


@router.put("/security/biometric", response_model=BiometricSetting)
def write_biometric(
    body: BiometricSetting,
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
) -> BiometricSetting:
    set_biometric_enabled(kv, user.id, body.enabled)
    logger.info(f"Biometric unlock for {user.id}: {body.enabled}")
    return BiometricSetting(enabled=body.enabled)


@router.get("/data/cache", response_model=CacheInfoResponse)
def read_cache_size(
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
) -> CacheInfoResponse:
    """Number and total size of the client cache blobs stored for this user."""
    entries, size_bytes = kv.size(user_cache_prefix(user.id))
    return CacheInfoResponse(entries=entries, size_bytes=size_bytes)


@router.delete("/data/cache", response_model=CacheInfoResponse)
def clear_cache(
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
) -> CacheInfoResponse:
    """Drop the user's cache blobs; returns the size after clearing."""
    kv.clear(user_cache_prefix(user.id))
    entries, size_bytes = kv.size(user_cache_prefix(user.id))
    return CacheInfoResponse(entries=entries, size_bytes=size_bytes)


# =============================================================================
# Device sessions
# =============================================================================

@router.get("/sessions", response_model=list[UserSessionResponse])
def list_sessions(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[UserSessionResponse]:
    current = getattr(request.state, "session_id", None)
    sessions = []
    for session in get_user_sessions(db, user.id):
        item = UserSessionResponse.model_validate(session)
        item.is_current = session.id == current
        sessions.append(item)
    return sessions


@router.delete("/sessions/{session_id}", response_model=StatusResponse)
def end_session(
    session_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    """Sign a device out. Its token is refused from the next request on."""
    delete_user_session(db, user.id, session_id)
    return StatusResponse(status="ok")


# =============================================================================
# Search history
# =============================================================================

@router.get("/search-history", response_model=list[SearchHistoryResponse])
def read_search_history(
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SearchHistoryResponse]:
    return [SearchHistoryResponse.model_validate(h) for h in get_search_history(db, user.id, limit)]


@router.post("/search-history", response_model=Optional[SearchHistoryResponse], status_code=201)
def remember_search(
    body: SearchHistoryRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Optional[SearchHistoryResponse]:
    """Store a query; a blank query is accepted and not stored (null body)."""
    entry = add_search_history(db, user.id, body.query, body.tab)
    return SearchHistoryResponse.model_validate(entry) if entry else None


@router.delete("/search-history", response_model=dict[str, int])
def clear_search_history(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, int]:
    return {"removed": delete_search_history(db, user.id)}


@router.delete("/search-history/{history_id}", response_model=dict[str, int])
def forget_search(
    history_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, int]:
    return {"removed": delete_search_history(db, user.id, history_id)}
