import logging
from typing import Any, Optional, Tuple

from sqlalchemy.orm import Session

from messenger.crud.chats import require_member
from messenger.crud.messages import get_message
from messenger.errors import InvalidRequestError, NotFoundError
from messenger.models import FAVORITE_TYPES, Favorite

logger = logging.getLogger(__name__)


def add_favorite(
    db: Session,
    user_id: str,
    favorite_type: str,
    message_id: Optional[str] = None,
    chat_id: Optional[str] = None,
    content: Optional[str] = None,
    meta: Optional[Any] = None,
) -> Favorite:
    """
    Save a favorite.

    A message is stored at most once per user: adding it again returns the
    existing row. The user must belong to the chat the favorite points at.

    Raises:
        NotFoundError: message or chat does not exist
        PermissionDeniedError: user is not a member of that chat
        InvalidRequestError: chat_id disagrees with the message's chat
    """
    if favorite_type not in FAVORITE_TYPES:
        raise InvalidRequestError(f"unknown favorite type: {favorite_type}")

    if message_id is not None:
        message = get_message(db, message_id)
        if chat_id is not None and chat_id != message.chat_id:
            raise InvalidRequestError("chat_id does not match the message's chat")
        chat_id = message.chat_id
        require_member(db, chat_id, user_id)

        existing = find_message_favorite(db, user_id, message_id)
        if existing is not None:
            logger.debug(f"Message {message_id} already a favorite of {user_id}")
            return existing
    elif chat_id is not None:
        require_member(db, chat_id, user_id)

    favorite = Favorite(
        user_id=user_id,
        type=favorite_type,
        message_id=message_id,
        chat_id=chat_id,
        content=content,
        meta=meta,
    )
    db.add(favorite)
    db.commit()
    db.refresh(favorite)
    logger.info(f"Favorite added: id={favorite.id}, type={favorite_type}")
    return favorite


def remove_favorite(db: Session, user_id: str, favorite_id: str) -> None:
    favorite = db.get(Favorite, favorite_id)
    if favorite is None or favorite.user_id != user_id:
        raise NotFoundError("favorite not found")
    db.delete(favorite)
    db.commit()
    logger.info(f"Favorite removed: {favorite_id}")


def get_user_favorites(db: Session, user_id: str, favorite_type: Optional[str] = None) -> list[Favorite]:
    query = db.query(Favorite).filter(Favorite.user_id == user_id)
    if favorite_type:
        query = query.filter(Favorite.type == favorite_type)
    return query.order_by(Favorite.created_at.desc()).all()


def find_message_favorite(db: Session, user_id: str, message_id: str) -> Optional[Favorite]:
    return db.query(Favorite).filter(
        Favorite.user_id == user_id, Favorite.message_id == message_id
    ).first()


def is_message_favorite(db: Session, user_id: str, message_id: str) -> bool:
    return find_message_favorite(db, user_id, message_id) is not None


def toggle_message_favorite(
    db: Session,
    user_id: str,
    message_id: str,
    chat_id: Optional[str] = None,
    content: Optional[str] = None,
) -> Tuple[bool, Optional[Favorite]]:
    """
    Flip a message's favorite state.

    Returns:
        (is_favorite_now, favorite row or None)
    """
    existing = find_message_favorite(db, user_id, message_id)
    if existing is not None:
        db.delete(existing)
        db.commit()
        logger.info(f"Message {message_id} unfavorited by {user_id}")
        return False, None

    favorite = add_favorite(
        db,
        user_id=user_id,
        favorite_type="message",
        message_id=message_id,
        chat_id=chat_id,
        content=content,
    )
    return True, favorite
