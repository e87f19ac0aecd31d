import logging
from typing import Optional

from sqlalchemy.orm import Session

from messenger.crud.chats import require_member
from messenger.errors import InvalidRequestError, NotFoundError
from messenger.models import CALL_STATUSES, CALL_TYPES, Call, User

logger = logging.getLogger(__name__)


def create_call(
    db: Session,
    user_id: str,
    call_type: str,
    status: str,
    chat_id: Optional[str] = None,
    other_user_id: Optional[str] = None,
    duration: Optional[str] = None,
) -> Call:
    """
    Add an entry to the user's call log.

    Raises:
        InvalidRequestError: unknown type or status
        NotFoundError: other_user_id names no user
        PermissionDeniedError: chat_id is a chat the user is not in
    """
    if call_type not in CALL_TYPES:
        raise InvalidRequestError(f"unknown call type: {call_type}")
    if status not in CALL_STATUSES:
        raise InvalidRequestError(f"unknown call status: {status}")
    if chat_id is not None:
        require_member(db, chat_id, user_id)
    if other_user_id is not None and db.get(User, other_user_id) is None:
        raise NotFoundError("user not found")

    call = Call(
        user_id=user_id,
        chat_id=chat_id,
        other_user_id=other_user_id,
        type=call_type,
        status=status,
        duration=duration,
    )
    db.add(call)
    db.commit()
    db.refresh(call)
    logger.info(f"Call logged for {user_id}: type={call_type}, status={status}")
    return call


def get_user_calls(db: Session, user_id: str, status: Optional[str] = None) -> list[Call]:
    """The call log, newest first."""
    query = db.query(Call).filter(Call.user_id == user_id)
    if status:
        query = query.filter(Call.status == status)
    return query.order_by(Call.created_at.desc()).all()
