import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from messenger.crud.chats import get_member_role, other_member_id, require_member
from messenger.crud.social import is_user_blocked
from messenger.errors import InvalidRequestError, NotFoundError, PermissionDeniedError
from messenger.models import MEDIA_TYPES, MESSAGE_TYPES, Chat, ChatMember, Message, MessageReaction
from messenger.utils import utcnow

logger = logging.getLogger(__name__)

DELETED_PLACEHOLDER = "Сообщение удалено"
SEARCH_WINDOW = 500


def _check_can_post(db: Session, chat_id: str, user_id: str, message_type: str) -> Chat:
    """
    Raises:
        PermissionDeniedError: sender is not a member, is blocked by the
            other side of a private chat, or may not post in a channel
    """
    chat = require_member(db, chat_id, user_id)
    if message_type not in MESSAGE_TYPES:
        raise InvalidRequestError(f"unknown message type: {message_type}")

    if chat.type == "private":
        other_id = other_member_id(db, chat_id, user_id)
        if other_id and is_user_blocked(db, other_id, user_id):
            raise PermissionDeniedError("recipient has blocked you")
    elif chat.type == "channel" and get_member_role(db, chat_id, user_id) not in ("owner", "admin"):
        raise PermissionDeniedError("only channel admins can post")
    return chat


def _add_message(db: Session, chat: Chat, user_id: str, content: str, message_type: str,
                 reply_to_id: Optional[str] = None, meta: Optional[dict] = None) -> Message:
    # caller commits
    now = utcnow()
    message = Message(
        chat_id=chat.id,
        user_id=user_id,
        content=content,
        type=message_type,
        reply_to_id=reply_to_id,
        meta=meta,
        created_at=now,
    )
    db.add(message)

    chat.last_message = content
    chat.last_message_at = now
    chat.updated_at = now
    return message


def create_message(
    db: Session,
    chat_id: str,
    user_id: str,
    content: str,
    message_type: str = "text",
    reply_to_id: Optional[str] = None,
    meta: Optional[dict] = None,
) -> Message:
    """
    Store a message and refresh the chat's last-message cache.

    Raises:
        PermissionDeniedError: see _check_can_post
        NotFoundError: reply_to_id is not a message of this chat
    """
    chat = _check_can_post(db, chat_id, user_id, message_type)

    if reply_to_id is not None:
        original = db.get(Message, reply_to_id)
        if original is None or original.chat_id != chat_id:
            raise NotFoundError("reply target not found in this chat")

    message = _add_message(db, chat, user_id, content, message_type, reply_to_id, meta)
    db.commit()
    db.refresh(message)
    logger.info(f"Message created: id={message.id}, chat={chat_id}, type={message_type}")
    return message


def get_message(db: Session, message_id: str) -> Message:
    message = db.get(Message, message_id)
    if message is None:
        raise NotFoundError("message not found")
    return message


def _require_sender(db: Session, message_id: str, user_id: str) -> Message:
    message = get_message(db, message_id)
    if message.user_id != user_id:
        raise PermissionDeniedError("only the sender can change this message")
    return message


def update_message(db: Session, message_id: str, user_id: str, content: str) -> Message:
    """Replace the content. id, chat_id and created_at never change."""
    message = _require_sender(db, message_id, user_id)
    message.content = content
    db.commit()
    db.refresh(message)
    logger.info(f"Message edited: {message_id}")
    return message


def delete_message(db: Session, message_id: str, user_id: str, for_everyone: bool) -> Optional[Message]:
    """
    Delete a message.

    for_everyone removes the row; otherwise the content is replaced by a
    placeholder and metadata.deleted is set.

    Returns:
        The placeholder message, or None after a hard delete
    """
    message = _require_sender(db, message_id, user_id)
    if for_everyone:
        db.delete(message)
        db.commit()
        logger.info(f"Message deleted for everyone: {message_id}")
        return None

    message.content = DELETED_PLACEHOLDER
    message.meta = {"deleted": True}
    db.commit()
    db.refresh(message)
    logger.info(f"Message replaced by placeholder: {message_id}")
    return message


def forward_message(db: Session, message_id: str, target_chat_ids: Iterable[str], user_id: str) -> list[Message]:
    """
    Copy a message into each target chat.

    Every target is checked before anything is written, so a forbidden
    target leaves no copies behind.
    """
    original = get_message(db, message_id)
    require_member(db, original.chat_id, user_id)

    targets = [
        _check_can_post(db, chat_id, user_id, original.type)
        for chat_id in dict.fromkeys(target_chat_ids)
    ]

    forwarded_meta = dict(original.meta or {})
    forwarded_meta.update({"forwarded": True, "original_message_id": message_id})

    forwarded = [
        _add_message(db, chat, user_id, original.content, original.type, meta=forwarded_meta)
        for chat in targets
    ]
    db.commit()
    for message in forwarded:
        db.refresh(message)
    logger.info(f"Message {message_id} forwarded to {len(forwarded)} chats")
    return forwarded


def mark_chat_read(db: Session, chat_id: str, user_id: str) -> int:
    """Mark every message from other members as read; returns how many changed."""
    require_member(db, chat_id, user_id)
    updated = (
        db.query(Message)
        .filter(
            Message.chat_id == chat_id,
            Message.user_id != user_id,
            Message.is_read.is_(False),
        )
        .update({Message.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return updated


def _member_chat_ids(user_id: str):
    return (
        select(ChatMember.chat_id)
        .join(Chat, Chat.id == ChatMember.chat_id)
        .where(ChatMember.user_id == user_id, Chat.deleted_at.is_(None))
    )


def search_messages(
    db: Session,
    user_id: str,
    query: str,
    chat_id: Optional[str] = None,
    sender_id: Optional[str] = None,
    message_type: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> list[Message]:
    """
    Search message text across every chat the user belongs to.

    Only text and file messages match on content. The newest
    SEARCH_WINDOW candidate messages are scanned.
    """
    logger.info(f"Searching messages for user {user_id}")
    logger.debug(f"Filters: chat={chat_id}, sender={sender_id}, type={message_type}, from={date_from}, to={date_to}")

    candidates = db.query(Message).filter(Message.chat_id.in_(_member_chat_ids(user_id)))

    if chat_id:
        candidates = candidates.filter(Message.chat_id == chat_id)
    if sender_id:
        candidates = candidates.filter(Message.user_id == sender_id)
    if message_type:
        candidates = candidates.filter(Message.type == message_type)
    if date_from:
        candidates = candidates.filter(Message.created_at >= date_from)
    if date_to:
        candidates = candidates.filter(Message.created_at <= date_to)

    window = candidates.order_by(Message.created_at.desc()).limit(SEARCH_WINDOW).all()

    needle = query.lower()
    results = [
        m for m in window
        if m.type in ("text", "file") and needle in m.content.lower()
    ]
    logger.info(f"Search matched {len(results)} of {len(window)} scanned messages")
    return results


def search_media(
    db: Session,
    user_id: str,
    query: str = "",
    chat_id: Optional[str] = None,
    media_type: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> list[Message]:
    """
    Images, videos and files from the user's chats, newest first.

    Images and videos have no searchable text and always match; files match
    when their name contains ``query``. The newest SEARCH_WINDOW are scanned.
    """
    if media_type is not None and media_type not in MEDIA_TYPES:
        raise InvalidRequestError(f"not a media type: {media_type}")

    candidates = db.query(Message).filter(
        Message.chat_id.in_(_member_chat_ids(user_id)),
        Message.type.in_(MEDIA_TYPES),
    )
    if chat_id:
        candidates = candidates.filter(Message.chat_id == chat_id)
    if media_type:
        candidates = candidates.filter(Message.type == media_type)
    if date_from:
        candidates = candidates.filter(Message.created_at >= date_from)
    if date_to:
        candidates = candidates.filter(Message.created_at <= date_to)

    window = candidates.order_by(Message.created_at.desc()).limit(SEARCH_WINDOW).all()

    needle = query.lower()
    return [m for m in window if m.type != "file" or needle in m.content.lower()]


# =============================================================================
# Reactions
# =============================================================================

def set_reaction(db: Session, message_id: str, user_id: str, emoji: str) -> MessageReaction:
    """Add the user's reaction or replace the emoji of the existing one."""
    message = get_message(db, message_id)
    require_member(db, message.chat_id, user_id)

    reaction = db.query(MessageReaction).filter(
        MessageReaction.message_id == message_id, MessageReaction.user_id == user_id
    ).first()
    if reaction is None:
        reaction = MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji)
        db.add(reaction)
    else:
        reaction.emoji = emoji
    db.commit()
    db.refresh(reaction)
    return reaction


def remove_reaction(db: Session, message_id: str, user_id: str) -> None:
    db.query(MessageReaction).filter(
        MessageReaction.message_id == message_id, MessageReaction.user_id == user_id
    ).delete()
    db.commit()


def get_reactions(db: Session, message_id: str) -> list[MessageReaction]:
    return (
        db.query(MessageReaction)
        .filter(MessageReaction.message_id == message_id)
        .order_by(MessageReaction.created_at.asc())
        .all()
    )
