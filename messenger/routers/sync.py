"""
Client state sync.

Offline snapshots the app keeps of its chats, favorites and Anna
conversations. Each store lives as one blob under the user's cache prefix,
so GET/DELETE /me/data/cache measure and drop exactly what is written here.
"""

import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query

from messenger.auth import get_current_user, get_kv
from messenger.client_state import AnnaCache, FavoritesCache, MessageCache
from messenger.errors import NotFoundError
from messenger.kvstore import KeyValueStore
from messenger.models import User
from messenger.schemas import (
    AnnaActiveRequest,
    AnnaConversationSync,
    AnnaStateResponse,
    CachedFavorite,
    CachedMessage,
    ConversationTurn,
    FavoriteSyncToggleRequest,
    StatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/me/sync", tags=["sync"])


def get_message_cache(
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
) -> MessageCache:
    cache = MessageCache(kv, user.id)
    cache.load()
    return cache


def get_favorites_cache(
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
) -> FavoritesCache:
    cache = FavoritesCache(kv, user.id)
    cache.load()
    return cache


def get_anna_cache(
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
) -> AnnaCache:
    cache = AnnaCache(kv, user.id)
    cache.load()
    return cache


# =============================================================================
# Messages
# =============================================================================

@router.get("/messages/{chat_id}", response_model=list[dict[str, Any]])
def read_cached_messages(
    chat_id: str,
    cache: MessageCache = Depends(get_message_cache),
) -> list[dict[str, Any]]:
    return cache.get(chat_id)


@router.put("/messages/{chat_id}", response_model=list[dict[str, Any]])
def replace_cached_messages(
    chat_id: str,
    body: list[CachedMessage],
    cache: MessageCache = Depends(get_message_cache),
) -> list[dict[str, Any]]:
    """Replace the snapshot of one chat."""
    cache.set(chat_id, [dict(m.model_dump(), chat_id=chat_id) for m in body])
    cache.persist()
    logger.debug(f"Cached {len(body)} messages for chat {chat_id}")
    return cache.get(chat_id)


@router.post("/messages/{chat_id}", response_model=dict[str, Any], status_code=201)
def append_cached_message(
    chat_id: str,
    body: CachedMessage,
    cache: MessageCache = Depends(get_message_cache),
) -> dict[str, Any]:
    cache.add(chat_id, body.model_dump())
    cache.persist()
    return cache.get(chat_id)[-1]


@router.patch("/messages/{chat_id}/{message_id}", response_model=dict[str, Any])
def update_cached_message(
    chat_id: str,
    message_id: str,
    changes: dict[str, Any],
    cache: MessageCache = Depends(get_message_cache),
) -> dict[str, Any]:
    """Merge changes into a cached message; id, chat_id and created_at are left alone."""
    updated = cache.update(chat_id, message_id, changes)
    if updated is None:
        raise NotFoundError("message not cached")
    cache.persist()
    return updated


@router.delete("/messages/{chat_id}/{message_id}", response_model=StatusResponse)
def remove_cached_message(
    chat_id: str,
    message_id: str,
    cache: MessageCache = Depends(get_message_cache),
) -> StatusResponse:
    if not cache.remove(chat_id, message_id):
        raise NotFoundError("message not cached")
    cache.persist()
    return StatusResponse(status="ok")


@router.delete("/messages", response_model=StatusResponse)
def clear_cached_messages(
    chat_id: Annotated[Optional[str], Query(description="Only this chat")] = None,
    cache: MessageCache = Depends(get_message_cache),
) -> StatusResponse:
    cache.clear(chat_id)
    cache.persist()
    return StatusResponse(status="ok")


# =============================================================================
# Favorites
# =============================================================================

@router.get("/favorites", response_model=list[dict[str, Any]])
def read_cached_favorites(
    type: Annotated[Optional[str], Query(pattern="^(message|media|link)$")] = None,
    cache: FavoritesCache = Depends(get_favorites_cache),
) -> list[dict[str, Any]]:
    return cache.by_type(type) if type else list(cache.items)


@router.post("/favorites", response_model=dict[str, Any], status_code=201)
def add_cached_favorite(
    body: CachedFavorite,
    cache: FavoritesCache = Depends(get_favorites_cache),
) -> dict[str, Any]:
    """Add a favorite; a message already saved returns the existing entry."""
    entry = cache.add(body.model_dump(exclude_none=True))
    cache.persist()
    return entry


@router.post("/favorites/toggle", response_model=dict[str, bool])
def toggle_cached_favorite(
    body: FavoriteSyncToggleRequest,
    cache: FavoritesCache = Depends(get_favorites_cache),
) -> dict[str, bool]:
    is_favorite = cache.toggle(body.message.model_dump())
    cache.persist()
    return {"is_favorite": is_favorite}


@router.delete("/favorites/{favorite_id}", response_model=StatusResponse)
def remove_cached_favorite(
    favorite_id: str,
    cache: FavoritesCache = Depends(get_favorites_cache),
) -> StatusResponse:
    if not cache.remove(favorite_id):
        raise NotFoundError("favorite not cached")
    cache.persist()
    return StatusResponse(status="ok")


# =============================================================================
# Anna
# =============================================================================

def _anna_state(cache: AnnaCache) -> AnnaStateResponse:
    return AnnaStateResponse.model_validate(cache.dump())


@router.get("/anna", response_model=AnnaStateResponse)
def read_cached_anna(cache: AnnaCache = Depends(get_anna_cache)) -> AnnaStateResponse:
    return _anna_state(cache)


@router.put("/anna/active", response_model=AnnaStateResponse)
def set_active_conversation(
    body: AnnaActiveRequest,
    cache: AnnaCache = Depends(get_anna_cache),
) -> AnnaStateResponse:
    cache.set_active(body.conversation_id)
    cache.persist()
    return _anna_state(cache)


@router.put("/anna/{conversation_id}", response_model=AnnaStateResponse)
def replace_cached_conversation(
    conversation_id: str,
    body: AnnaConversationSync,
    cache: AnnaCache = Depends(get_anna_cache),
) -> AnnaStateResponse:
    cache.set_conversation(conversation_id, [t.model_dump() for t in body.turns], body.mode)
    cache.persist()
    return _anna_state(cache)


@router.post("/anna/{conversation_id}/turns", response_model=AnnaStateResponse, status_code=201)
def append_cached_turn(
    conversation_id: str,
    body: ConversationTurn,
    cache: AnnaCache = Depends(get_anna_cache),
) -> AnnaStateResponse:
    cache.add_turn(conversation_id, body.model_dump())
    cache.persist()
    return _anna_state(cache)


@router.delete("/anna", response_model=StatusResponse)
def clear_cached_anna(cache: AnnaCache = Depends(get_anna_cache)) -> StatusResponse:
    cache.clear()
    cache.persist()
    return StatusResponse(status="ok")
