import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from messenger.errors import InvalidRequestError, NotFoundError
from messenger.models import BlockedUser, Contact, User
from messenger.phone import normalize_phone
from messenger.utils import utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# Contacts
# =============================================================================

def add_contact(
    db: Session,
    user_id: str,
    contact_user_id: Optional[str] = None,
    phone: Optional[str] = None,
    name: Optional[str] = None,
    avatar: Optional[str] = None,
) -> Contact:
    """
    Save a contact. If only a phone is given and it belongs to a registered
    user, the contact is linked to that user.

    Raises:
        NotFoundError: contact_user_id names no user
    """
    if phone:
        phone = normalize_phone(phone)

    if contact_user_id is not None:
        if db.get(User, contact_user_id) is None:
            raise NotFoundError("user not found")
    elif phone:
        linked = db.query(User.id).filter(User.phone == phone).first()
        contact_user_id = linked.id if linked else None

    contact = Contact(
        user_id=user_id,
        contact_user_id=contact_user_id,
        phone=phone,
        name=name,
        avatar=avatar,
    )
    db.add(contact)
    db.commit()
    db.refresh(contact)
    logger.info(f"Contact added for {user_id}: linked={contact_user_id is not None}")
    return contact


def get_user_contacts(db: Session, user_id: str) -> list[Contact]:
    """Favorite contacts first, then most recently updated."""
    return (
        db.query(Contact)
        .filter(Contact.user_id == user_id)
        .order_by(Contact.is_favorite.desc(), Contact.updated_at.desc())
        .all()
    )


def _owned_contact(db: Session, user_id: str, contact_id: str) -> Contact:
    contact = db.get(Contact, contact_id)
    if contact is None or contact.user_id != user_id:
        raise NotFoundError("contact not found")
    return contact


def delete_contact(db: Session, user_id: str, contact_id: str) -> None:
    db.delete(_owned_contact(db, user_id, contact_id))
    db.commit()


def set_favorite_contact(db: Session, user_id: str, contact_id: str, is_favorite: bool) -> Contact:
    contact = _owned_contact(db, user_id, contact_id)
    contact.is_favorite = is_favorite
    contact.updated_at = utcnow()
    db.commit()
    db.refresh(contact)
    return contact


def search_contacts(db: Session, user_id: str, query: str) -> list[Contact]:
    pattern = f"%{query}%"
    return (
        db.query(Contact)
        .filter(
            Contact.user_id == user_id,
            or_(Contact.name.ilike(pattern), Contact.phone.ilike(pattern)),
        )
        .order_by(Contact.is_favorite.desc(), Contact.updated_at.desc())
        .all()
    )


def contact_user_ids(db: Session, user_id: str) -> set[str]:
    rows = db.query(Contact.contact_user_id).filter(
        Contact.user_id == user_id, Contact.contact_user_id.isnot(None)
    ).all()
    return {row.contact_user_id for row in rows}


# =============================================================================
# Blocks
# =============================================================================

def block_user(db: Session, user_id: str, blocked_user_id: str) -> BlockedUser:
    """Block another user. Blocking twice returns the existing block."""
    if user_id == blocked_user_id:
        raise InvalidRequestError("cannot block yourself")
    if db.get(User, blocked_user_id) is None:
        raise NotFoundError("user not found")

    existing = db.query(BlockedUser).filter(
        BlockedUser.user_id == user_id, BlockedUser.blocked_user_id == blocked_user_id
    ).first()
    if existing is not None:
        return existing

    blocked = BlockedUser(user_id=user_id, blocked_user_id=blocked_user_id)
    db.add(blocked)
    db.commit()
    db.refresh(blocked)
    logger.info(f"User {user_id} blocked {blocked_user_id}")
    return blocked


def unblock_user(db: Session, user_id: str, blocked_user_id: str) -> None:
    db.query(BlockedUser).filter(
        BlockedUser.user_id == user_id, BlockedUser.blocked_user_id == blocked_user_id
    ).delete()
    db.commit()


def get_blocked_users(db: Session, user_id: str) -> list[tuple[BlockedUser, User]]:
    return (
        db.query(BlockedUser, User)
        .join(User, User.id == BlockedUser.blocked_user_id)
        .filter(BlockedUser.user_id == user_id)
        .order_by(BlockedUser.created_at.desc())
        .all()
    )


def is_user_blocked(db: Session, user_id: str, other_user_id: str) -> bool:
    """True if ``user_id`` has blocked ``other_user_id``."""
    return db.query(BlockedUser.id).filter(
        BlockedUser.user_id == user_id, BlockedUser.blocked_user_id == other_user_id
    ).first() is not None
