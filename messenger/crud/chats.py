import logging
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from messenger.errors import ConflictError, InvalidRequestError, NotFoundError, PermissionDeniedError
from messenger.models import CHAT_TYPES, MEDIA_TYPES, Chat, ChatMember, Message, PinnedChat, User
from messenger.utils import utcnow

logger = logging.getLogger(__name__)


def create_chat(
    db: Session,
    chat_type: str,
    member_ids: Iterable[str],
    name: Optional[str] = None,
    avatar: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> Chat:
    """
    Create a chat and its membership rows in one transaction.

    Args:
        db: Database session
        chat_type: private, group or channel
        member_ids: Users to add; the owner is added if missing
        name: Optional chat title
        avatar: Optional avatar URI
        owner_id: Creator, stored with role "owner"
    """
    if chat_type not in CHAT_TYPES:
        raise InvalidRequestError(f"unknown chat type: {chat_type}")

    members = list(dict.fromkeys(member_ids))
    if owner_id and owner_id not in members:
        members.insert(0, owner_id)

    known = {row.id for row in db.query(User.id).filter(User.id.in_(members)).all()}
    missing = [m for m in members if m not in known]
    if missing:
        raise NotFoundError(f"unknown users: {', '.join(missing)}")
    if chat_type == "private" and len(members) != 2:
        raise InvalidRequestError("private chats have exactly two members")

    chat = Chat(type=chat_type, name=name, avatar=avatar)
    db.add(chat)
    db.flush()
    for user_id in members:
        db.add(ChatMember(
            chat_id=chat.id,
            user_id=user_id,
            role="owner" if user_id == owner_id else "member",
        ))
    db.commit()
    db.refresh(chat)
    logger.info(f"Chat created: id={chat.id}, type={chat_type}, members={len(members)}")
    return chat


def get_chat(db: Session, chat_id: str) -> Chat:
    chat = db.get(Chat, chat_id)
    if chat is None or chat.deleted_at is not None:
        raise NotFoundError("chat not found")
    return chat


def get_member_ids(db: Session, chat_id: str) -> list[str]:
    rows = db.query(ChatMember.user_id).filter(ChatMember.chat_id == chat_id).all()
    return [row.user_id for row in rows]


def is_member(db: Session, chat_id: str, user_id: str) -> bool:
    return db.query(ChatMember.id).filter(
        ChatMember.chat_id == chat_id, ChatMember.user_id == user_id
    ).first() is not None


def require_member(db: Session, chat_id: str, user_id: str) -> Chat:
    """Return the chat if ``user_id`` belongs to it."""
    chat = get_chat(db, chat_id)
    if not is_member(db, chat_id, user_id):
        raise PermissionDeniedError("not a member of this chat")
    return chat


def other_member_id(db: Session, chat_id: str, user_id: str) -> Optional[str]:
    return next((m for m in get_member_ids(db, chat_id) if m != user_id), None)


def find_private_chat(db: Session, user_a: str, user_b: str) -> Optional[Chat]:
    """The non-deleted private chat shared by two users, if any."""
    chat_ids = (
        db.query(ChatMember.chat_id)
        .join(Chat, Chat.id == ChatMember.chat_id)
        .filter(
            Chat.type == "private",
            Chat.deleted_at.is_(None),
            ChatMember.user_id.in_([user_a, user_b]),
        )
        .group_by(ChatMember.chat_id)
        .having(func.count(func.distinct(ChatMember.user_id)) == 2)
        .all()
    )
    if not chat_ids:
        return None
    return db.get(Chat, chat_ids[0].chat_id)


def get_user_chats(db: Session, user_id: str, include_archived: bool = False) -> list[dict]:
    """
    List a user's chats, most recently active first.

    Soft-deleted chats are never returned. Private chats carry the other
    member's online status.

    Returns:
        List of dicts: {"chat": Chat, "other_user_online_status": str | None}
    """
    query = (
        db.query(Chat)
        .join(ChatMember, ChatMember.chat_id == Chat.id)
        .filter(ChatMember.user_id == user_id, Chat.deleted_at.is_(None))
    )
    if not include_archived:
        query = query.filter(Chat.is_archived.is_(False))

    chats = query.order_by(Chat.updated_at.desc()).all()
    logger.debug(f"User {user_id} has {len(chats)} chats (include_archived={include_archived})")

    result = []
    for chat in chats:
        other_status = None
        if chat.type == "private":
            other_id = other_member_id(db, chat.id, user_id)
            other = db.get(User, other_id) if other_id else None
            other_status = other.online_status if other else None
        result.append({"chat": chat, "other_user_online_status": other_status})
    return result


def _set_archived(db: Session, chat_id: str, archived: bool) -> Chat:
    chat = get_chat(db, chat_id)
    chat.is_archived = archived
    chat.updated_at = utcnow()
    db.commit()
    db.refresh(chat)
    logger.info(f"Chat {chat_id} archived={archived}")
    return chat


def archive_chat(db: Session, chat_id: str) -> Chat:
    return _set_archived(db, chat_id, True)


def unarchive_chat(db: Session, chat_id: str) -> Chat:
    return _set_archived(db, chat_id, False)


def delete_chat(db: Session, chat_id: str) -> Chat:
    """Soft delete: the chat disappears from lists but rows are kept."""
    chat = get_chat(db, chat_id)
    now = utcnow()
    chat.deleted_at = now
    chat.updated_at = now
    db.commit()
    logger.info(f"Chat soft-deleted: {chat_id}")
    return chat


def add_member(db: Session, chat_id: str, user_id: str, role: str = "member") -> ChatMember:
    chat = get_chat(db, chat_id)
    if chat.type == "private":
        raise InvalidRequestError("cannot add members to a private chat")
    if db.get(User, user_id) is None:
        raise NotFoundError("user not found")

    member = ChatMember(chat_id=chat_id, user_id=user_id, role=role)
    db.add(member)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("user is already a member")
    db.refresh(member)
    logger.info(f"Member {user_id} added to chat {chat_id}")
    return member


def remove_member(db: Session, chat_id: str, user_id: str) -> None:
    removed = db.query(ChatMember).filter(
        ChatMember.chat_id == chat_id, ChatMember.user_id == user_id
    ).delete()
    db.commit()
    if not removed:
        raise NotFoundError("member not found")
    logger.info(f"Member {user_id} removed from chat {chat_id}")


def get_member_role(db: Session, chat_id: str, user_id: str) -> Optional[str]:
    row = db.query(ChatMember.role).filter(
        ChatMember.chat_id == chat_id, ChatMember.user_id == user_id
    ).first()
    return row.role if row else None


def get_chat_messages(db: Session, chat_id: str, limit: int = 50) -> list[Message]:
    """Newest messages first."""
    return (
        db.query(Message)
        .filter(Message.chat_id == chat_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
        .all()
    )


def get_chat_media(db: Session, chat_id: str) -> list[Message]:
    return (
        db.query(Message)
        .filter(Message.chat_id == chat_id, Message.type.in_(MEDIA_TYPES))
        .order_by(Message.created_at.desc())
        .all()
    )


# =============================================================================
# Pinned chats
# =============================================================================

def pin_chat(db: Session, user_id: str, chat_id: str) -> PinnedChat:
    """Pin a chat on top of the user's other pins. Pinning twice is a no-op."""
    existing = db.query(PinnedChat).filter(
        PinnedChat.user_id == user_id, PinnedChat.chat_id == chat_id
    ).first()
    if existing is not None:
        return existing

    max_order = db.query(func.max(PinnedChat.order)).filter(PinnedChat.user_id == user_id).scalar()
    pinned = PinnedChat(user_id=user_id, chat_id=chat_id, order=(max_order or 0) + 1)
    db.add(pinned)
    db.commit()
    db.refresh(pinned)
    return pinned


def unpin_chat(db: Session, user_id: str, chat_id: str) -> None:
    db.query(PinnedChat).filter(
        PinnedChat.user_id == user_id, PinnedChat.chat_id == chat_id
    ).delete()
    db.commit()


def get_pinned_chats(db: Session, user_id: str) -> list[PinnedChat]:
    return (
        db.query(PinnedChat)
        .filter(PinnedChat.user_id == user_id)
        .order_by(PinnedChat.order.desc())
        .all()
    )


def is_chat_pinned(db: Session, user_id: str, chat_id: str) -> bool:
    return db.query(PinnedChat.id).filter(
        PinnedChat.user_id == user_id, PinnedChat.chat_id == chat_id
    ).first() is not None
