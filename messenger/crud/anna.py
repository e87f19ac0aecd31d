import logging
from typing import Optional

from sqlalchemy.orm import Session

from messenger.errors import InvalidRequestError, NotFoundError
from messenger.models import AnnaConversation
from messenger.utils import utcnow

logger = logging.getLogger(__name__)

ANNA_MODES = ("normal", "tech")
ANNA_ROLES = ("user", "model")


def create_conversation(db: Session, user_id: str, mode: str = "normal") -> AnnaConversation:
    if mode not in ANNA_MODES:
        raise InvalidRequestError(f"unknown mode: {mode}")
    conversation = AnnaConversation(user_id=user_id, mode=mode, messages=[])
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    logger.info(f"Anna conversation created: {conversation.id}")
    return conversation


def get_conversation(db: Session, conversation_id: str, user_id: str) -> AnnaConversation:
    conversation = db.get(AnnaConversation, conversation_id)
    if conversation is None or conversation.user_id != user_id:
        raise NotFoundError("conversation not found")
    return conversation


def get_user_conversations(db: Session, user_id: str) -> list[AnnaConversation]:
    return (
        db.query(AnnaConversation)
        .filter(AnnaConversation.user_id == user_id)
        .order_by(AnnaConversation.updated_at.desc())
        .all()
    )


def update_conversation(
    db: Session,
    conversation: AnnaConversation,
    messages: Optional[list] = None,
    mode: Optional[str] = None,
) -> AnnaConversation:
    """Replace the stored turns and/or mode wholesale."""
    if mode is not None:
        if mode not in ANNA_MODES:
            raise InvalidRequestError(f"unknown mode: {mode}")
        conversation.mode = mode
    if messages is not None:
        # Assign a new list so the JSON column is flagged dirty
        conversation.messages = list(messages)
    conversation.updated_at = utcnow()
    db.commit()
    db.refresh(conversation)
    return conversation


def make_turn(role: str, content: str) -> dict:
    if role not in ANNA_ROLES:
        raise InvalidRequestError(f"unknown role: {role}")
    return {"role": role, "content": content, "timestamp": utcnow().isoformat() + "Z"}
