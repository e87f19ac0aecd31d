import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from messenger.errors import ConflictError, InvalidRequestError, NotFoundError
from messenger.models import Chat, ChatMember, Favorite, MEDIA_TYPES, Message, User, UserSession, ONLINE_STATUSES
from messenger.utils import utcnow

logger = logging.getLogger(__name__)

# Fields a user may change on their own profile
PROFILE_FIELDS = (
    "name",
    "avatar",
    "status",
    "gdpr_consent",
    "data_processing_consent",
    "marketing_consent",
    "fz152_consent",
    "ccpa_opt_out",
)


def create_user(db: Session, phone: str, name: Optional[str] = None) -> User:
    """
    Create a user at first sign-in.

    Args:
        db: Database session
        phone: Normalized phone number (unique)
        name: Display name, defaults to the phone number

    Raises:
        ConflictError: a user with this phone already exists
    """
    logger.info("Creating user")
    user = User(phone=phone, name=name or phone)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("phone already registered")
    db.refresh(user)
    logger.info(f"User created: {user.id}")
    return user


def get_user_by_phone(db: Session, phone: str) -> Optional[User]:
    return db.query(User).filter(User.phone == phone).first()


def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.get(User, user_id)


def get_user_or_404(db: Session, user_id: str) -> User:
    user = get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("user not found")
    return user


def get_or_create_user(db: Session, phone: str, name: Optional[str] = None) -> User:
    user = get_user_by_phone(db, phone)
    if user is not None:
        return user
    return create_user(db, phone, name)


def update_user(db: Session, user_id: str, **changes) -> User:
    """
    Apply profile changes.

    Granting GDPR or FZ-152 consent stamps the matching consent date.
    Unknown fields and None values are ignored.
    """
    user = get_user_or_404(db, user_id)
    now = utcnow()
    for field, value in changes.items():
        if field not in PROFILE_FIELDS or value is None:
            continue
        setattr(user, field, value)

    if changes.get("gdpr_consent"):
        user.gdpr_consent_date = now
    if changes.get("fz152_consent"):
        user.fz152_consent_date = now

    user.updated_at = now
    db.commit()
    db.refresh(user)
    logger.info(f"User updated: {user_id}, fields={sorted(k for k, v in changes.items() if v is not None)}")
    return user


def update_online_status(db: Session, user_id: str, online_status: str) -> User:
    if online_status not in ONLINE_STATUSES:
        raise InvalidRequestError(f"unknown online status: {online_status}")
    user = get_user_or_404(db, user_id)
    now = utcnow()
    user.online_status = online_status
    user.last_seen = now
    user.updated_at = now
    db.commit()
    db.refresh(user)
    return user


def get_user_stats(db: Session, user_id: str) -> dict:
    """
    Activity counters for the profile screen.

    Returns:
        Dictionary with chats_count, messages_count, media_count, favorites_count
    """
    chats_count = (
        db.query(func.count(ChatMember.id))
        .join(Chat, Chat.id == ChatMember.chat_id)
        .filter(ChatMember.user_id == user_id, Chat.deleted_at.is_(None))
        .scalar()
    ) or 0
    messages_count = (
        db.query(func.count(Message.id))
        .filter(Message.user_id == user_id)
        .scalar()
    ) or 0
    media_count = (
        db.query(func.count(Message.id))
        .filter(Message.user_id == user_id, Message.type.in_(MEDIA_TYPES))
        .scalar()
    ) or 0
    favorites_count = (
        db.query(func.count(Favorite.id))
        .filter(Favorite.user_id == user_id)
        .scalar()
    ) or 0

    logger.debug(f"Stats for {user_id}: {chats_count} chats, {messages_count} messages")
    return {
        "chats_count": chats_count,
        "messages_count": messages_count,
        "media_count": media_count,
        "favorites_count": favorites_count,
    }


# =============================================================================
# Device sessions
# =============================================================================

def create_user_session(
    db: Session,
    user_id: str,
    device_name: str,
    device_type: str,
    ip_address: Optional[str] = None,
) -> UserSession:
    """Record a signed-in device. Its id travels in the bearer token as ``sid``."""
    session = UserSession(
        user_id=user_id,
        device_name=device_name,
        device_type=device_type,
        ip_address=ip_address,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info(f"Session {session.id} opened for {user_id} on {device_type}")
    return session


def get_user_sessions(db: Session, user_id: str) -> list[UserSession]:
    """Most recently active first."""
    return (
        db.query(UserSession)
        .filter(UserSession.user_id == user_id)
        .order_by(UserSession.last_active_at.desc())
        .all()
    )


def get_user_session(db: Session, user_id: str, session_id: str) -> Optional[UserSession]:
    session = db.get(UserSession, session_id)
    if session is None or session.user_id != user_id:
        return None
    return session


def delete_user_session(db: Session, user_id: str, session_id: str) -> None:
    """Sign a device out; tokens carrying this session id stop working."""
    session = get_user_session(db, user_id, session_id)
    if session is None:
        raise NotFoundError("session not found")
    db.delete(session)
    db.commit()
    logger.info(f"Session {session_id} closed for {user_id}")
