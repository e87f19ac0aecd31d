import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from messenger.auth import get_current_user
from messenger.crud import chats as chats_crud
from messenger.crud.messages import create_message, mark_chat_read
from messenger.errors import PermissionDeniedError
from messenger.models import User
from messenger.schemas import (
    ChatCreateRequest,
    ChatListItem,
    ChatResponse,
    MemberRequest,
    MessageCreateRequest,
    MessageResponse,
    PinnedChatResponse,
    ReadResponse,
    StatusResponse,
)
from messenger.storage import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chats", tags=["chats"])

MANAGER_ROLES = ("owner", "admin")


def _require_role(db: Session, chat_id: str, user_id: str, roles: tuple) -> None:
    chats_crud.require_member(db, chat_id, user_id)
    if chats_crud.get_member_role(db, chat_id, user_id) not in roles:
        raise PermissionDeniedError("insufficient chat role")


# =============================================================================
# Chats
# =============================================================================

@router.post("", response_model=ChatResponse, status_code=201)
def create_chat(
    body: ChatCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ChatResponse:
    """
    Create a chat with the caller as owner.

    A private chat with a user who already shares one with the caller
    returns the existing chat.
    """
    if body.type == "private" and len(body.member_ids) == 1:
        existing = chats_crud.find_private_chat(db, user.id, body.member_ids[0])
        if existing is not None:
            return ChatResponse.model_validate(existing)

    chat = chats_crud.create_chat(
        db,
        chat_type=body.type,
        member_ids=body.member_ids,
        name=body.name,
        avatar=body.avatar,
        owner_id=user.id,
    )
    return ChatResponse.model_validate(chat)


@router.get("", response_model=list[ChatListItem])
def list_chats(
    include_archived: Annotated[bool, Query(description="Include archived chats")] = False,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ChatListItem]:
    """The caller's chats, pinned first, then by latest activity."""
    entries = chats_crud.get_user_chats(db, user.id, include_archived=include_archived)
    pins = {p.chat_id: p.order for p in chats_crud.get_pinned_chats(db, user.id)}

    items = []
    for entry in entries:
        item = ChatListItem.model_validate(entry["chat"])
        item.other_user_online_status = entry["other_user_online_status"]
        item.is_pinned = item.id in pins
        items.append(item)

    # stable sort keeps activity order within each group
    items.sort(key=lambda i: -pins.get(i.id, 0))
    logger.info(f"GET /chats: returned {len(items)} chats")
    return items


@router.get("/pinned", response_model=list[PinnedChatResponse])
def list_pinned(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[PinnedChatResponse]:
    return [PinnedChatResponse.model_validate(p) for p in chats_crud.get_pinned_chats(db, user.id)]


@router.get("/{chat_id}", response_model=ChatResponse)
def read_chat(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ChatResponse:
    return ChatResponse.model_validate(chats_crud.require_member(db, chat_id, user.id))


@router.post("/{chat_id}/archive", response_model=ChatResponse)
def archive(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ChatResponse:
    chats_crud.require_member(db, chat_id, user.id)
    return ChatResponse.model_validate(chats_crud.archive_chat(db, chat_id))


@router.post("/{chat_id}/unarchive", response_model=ChatResponse)
def unarchive(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ChatResponse:
    chats_crud.require_member(db, chat_id, user.id)
    return ChatResponse.model_validate(chats_crud.unarchive_chat(db, chat_id))


@router.delete("/{chat_id}", response_model=StatusResponse)
def delete_chat(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    """Soft-delete. Group and channel chats can only be deleted by their owner."""
    chat = chats_crud.require_member(db, chat_id, user.id)
    if chat.type != "private":
        _require_role(db, chat_id, user.id, ("owner",))
    chats_crud.delete_chat(db, chat_id)
    return StatusResponse(status="ok")


# =============================================================================
# Members
# =============================================================================

@router.post("/{chat_id}/members", response_model=StatusResponse, status_code=201)
def add_member(
    chat_id: str,
    body: MemberRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    _require_role(db, chat_id, user.id, MANAGER_ROLES)
    chats_crud.add_member(db, chat_id, body.user_id, role=body.role)
    return StatusResponse(status="ok")


@router.delete("/{chat_id}/members/{member_id}", response_model=StatusResponse)
def remove_member(
    chat_id: str,
    member_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    """Owners and admins remove others; anyone may remove themselves."""
    if member_id == user.id:
        chats_crud.require_member(db, chat_id, user.id)
    else:
        _require_role(db, chat_id, user.id, MANAGER_ROLES)
    chats_crud.remove_member(db, chat_id, member_id)
    return StatusResponse(status="ok")


# =============================================================================
# Messages in a chat
# =============================================================================

@router.get("/{chat_id}/messages", response_model=list[MessageResponse])
def list_messages(
    chat_id: str,
    limit: Annotated[int, Query(ge=1, le=200, description="Maximum number of messages to return")] = 50,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MessageResponse]:
    """Latest messages, newest first."""
    chats_crud.require_member(db, chat_id, user.id)
    messages = chats_crud.get_chat_messages(db, chat_id, limit=limit)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post("/{chat_id}/messages", response_model=MessageResponse, status_code=201)
def send_message(
    chat_id: str,
    body: MessageCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    message = create_message(
        db,
        chat_id=chat_id,
        user_id=user.id,
        content=body.content,
        message_type=body.type,
        reply_to_id=body.reply_to_id,
        meta=body.metadata,
    )
    return MessageResponse.model_validate(message)


@router.get("/{chat_id}/media", response_model=list[MessageResponse])
def list_media(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MessageResponse]:
    chats_crud.require_member(db, chat_id, user.id)
    return [MessageResponse.model_validate(m) for m in chats_crud.get_chat_media(db, chat_id)]


@router.post("/{chat_id}/read", response_model=ReadResponse)
def mark_read(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReadResponse:
    return ReadResponse(updated=mark_chat_read(db, chat_id, user.id))


# =============================================================================
# Pins
# =============================================================================

@router.post("/{chat_id}/pin", response_model=PinnedChatResponse)
def pin(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PinnedChatResponse:
    chats_crud.require_member(db, chat_id, user.id)
    return PinnedChatResponse.model_validate(chats_crud.pin_chat(db, user.id, chat_id))


@router.delete("/{chat_id}/pin", response_model=StatusResponse)
def unpin(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    chats_crud.unpin_chat(db, user.id, chat_id)
    return StatusResponse(status="ok")
