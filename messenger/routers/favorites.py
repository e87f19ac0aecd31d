import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from messenger.auth import get_current_user
from messenger.crud.favorites import add_favorite, get_user_favorites, remove_favorite
from messenger.models import User
from messenger.schemas import FavoriteCreateRequest, FavoriteResponse, StatusResponse
from messenger.storage import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/favorites", tags=["favorites"])


@router.post("", response_model=FavoriteResponse, status_code=201)
def create_favorite(
    body: FavoriteCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FavoriteResponse:
    """
    Save a message, media item or link.

    Saving a message that is already a favorite returns the existing entry.
    """
    favorite = add_favorite(
        db,
        user_id=user.id,
        favorite_type=body.type,
        message_id=body.message_id,
        chat_id=body.chat_id,
        content=body.content,
        meta=body.metadata,
    )
    return FavoriteResponse.model_validate(favorite)


@router.get("", response_model=list[FavoriteResponse])
def list_favorites(
    type: Annotated[Optional[str], Query(pattern="^(message|media|link)$", description="Filter by kind")] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[FavoriteResponse]:
    favorites = get_user_favorites(db, user.id, favorite_type=type)
    logger.debug(f"GET /favorites: {len(favorites)} items for {user.id}")
    return [FavoriteResponse.model_validate(f) for f in favorites]


@router.delete("/{favorite_id}", response_model=StatusResponse)
def delete_favorite(
    favorite_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    remove_favorite(db, user.id, favorite_id)
    return StatusResponse(status="ok")
