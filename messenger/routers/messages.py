import logging
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from messenger.auth import get_current_user
from messenger.crud import messages as messages_crud
from messenger.crud.chats import require_member
from messenger.crud.favorites import toggle_message_favorite
from messenger.models import User
from messenger.schemas import (
    FavoriteResponse,
    FavoriteToggleResponse,
    ForwardRequest,
    MessageResponse,
    MessageUpdateRequest,
    ReactionRequest,
    ReactionResponse,
    StatusResponse,
)
from messenger.storage import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/search", response_model=list[MessageResponse])
def search(
    q: Annotated[str, Query(min_length=1, description="Case-insensitive text to look for")],
    chat_id: Annotated[Optional[str], Query(description="Only this chat")] = None,
    sender_id: Annotated[Optional[str], Query(description="Only messages from this user")] = None,
    type: Annotated[Optional[str], Query(description="Only this message type")] = None,
    date_from: Annotated[Optional[datetime], Query(description="Created at or after (UTC)")] = None,
    date_to: Annotated[Optional[datetime], Query(description="Created at or before (UTC)")] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MessageResponse]:
    """
    Search the caller's chats.

    Only text and file messages match, and only the newest 500 messages
    passing the filters are scanned.
    """
    results = messages_crud.search_messages(
        db,
        user_id=user.id,
        query=q,
        chat_id=chat_id,
        sender_id=sender_id,
        message_type=type,
        date_from=date_from,
        date_to=date_to,
    )
    return [MessageResponse.model_validate(m) for m in results]


@router.get("/search/media", response_model=list[MessageResponse])
def search_media(
    q: Annotated[str, Query(description="Text a file name must contain")] = "",
    chat_id: Annotated[Optional[str], Query(description="Only this chat")] = None,
    type: Annotated[Optional[str], Query(pattern="^(image|video|file)$")] = None,
    date_from: Annotated[Optional[datetime], Query(description="Created at or after (UTC)")] = None,
    date_to: Annotated[Optional[datetime], Query(description="Created at or before (UTC)")] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MessageResponse]:
    results = messages_crud.search_media(
        db,
        user_id=user.id,
        query=q,
        chat_id=chat_id,
        media_type=type,
        date_from=date_from,
        date_to=date_to,
    )
    return [MessageResponse.model_validate(m) for m in results]


@router.patch("/{message_id}", response_model=MessageResponse)
def edit_message(
    message_id: str,
    body: MessageUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    return MessageResponse.model_validate(
        messages_crud.update_message(db, message_id, user.id, body.content)
    )


@router.delete(
    "/{message_id}",
    response_model=Optional[MessageResponse],
    responses={204: {"description": "Deleted for everyone"}},
)
def delete_message(
    message_id: str,
    for_everyone: Annotated[bool, Query(description="Remove the message instead of leaving a placeholder")] = False,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete a message sent by the caller.

    With for_everyone the row is removed (204); otherwise the content is
    replaced by a placeholder and the updated message is returned.
    """
    placeholder = messages_crud.delete_message(db, message_id, user.id, for_everyone)
    if placeholder is None:
        return Response(status_code=204)
    return MessageResponse.model_validate(placeholder)


@router.post("/{message_id}/forward", response_model=list[MessageResponse], status_code=201)
def forward(
    message_id: str,
    body: ForwardRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MessageResponse]:
    forwarded = messages_crud.forward_message(db, message_id, body.target_chat_ids, user.id)
    return [MessageResponse.model_validate(m) for m in forwarded]


# =============================================================================
# Reactions
# =============================================================================

@router.get("/{message_id}/reactions", response_model=list[ReactionResponse])
def list_reactions(
    message_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ReactionResponse]:
    message = messages_crud.get_message(db, message_id)
    require_member(db, message.chat_id, user.id)
    return [ReactionResponse.model_validate(r) for r in messages_crud.get_reactions(db, message_id)]


@router.put("/{message_id}/reactions", response_model=ReactionResponse)
def react(
    message_id: str,
    body: ReactionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReactionResponse:
    """Set the caller's reaction; a new emoji replaces the previous one."""
    return ReactionResponse.model_validate(
        messages_crud.set_reaction(db, message_id, user.id, body.emoji)
    )


@router.delete("/{message_id}/reactions", response_model=StatusResponse)
def unreact(
    message_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    messages_crud.remove_reaction(db, message_id, user.id)
    return StatusResponse(status="ok")


# =============================================================================
# Favorites
# =============================================================================

@router.post("/{message_id}/favorite", response_model=FavoriteToggleResponse)
def toggle_favorite(
    message_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FavoriteToggleResponse:
    """Add the message to favorites, or remove it if it is already there."""
    message = messages_crud.get_message(db, message_id)
    require_member(db, message.chat_id, user.id)

    is_favorite, favorite = toggle_message_favorite(
        db,
        user_id=user.id,
        message_id=message.id,
        chat_id=message.chat_id,
        content=message.content,
    )
    return FavoriteToggleResponse(
        is_favorite=is_favorite,
        favorite=FavoriteResponse.model_validate(favorite) if favorite else None,
    )
