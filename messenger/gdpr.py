"""
Personal data export, anonymization and account deletion (GDPR, FZ-152, CCPA).
"""

import json
import logging
import os
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from messenger.config import settings
from messenger.models import AnnaConversation, Call, Chat, ChatMember, Message, SearchHistory, User
from messenger.utils import utcnow

logger = logging.getLogger(__name__)

ANONYMIZED_NAME = "Deleted User"

COMPLIANCE_INFO = {
    "fz152": {
        "operator": "NULLXES Messenger",
        "purpose": "Обеспечение функционирования мессенджера, предоставление услуг связи",
        "legal_basis": "Согласие субъекта персональных данных (ст. 9 ФЗ-152)",
        "retention_period": "До отзыва согласия или удаления аккаунта",
    },
    "gdpr": {
        "controller": "NULLXES Messenger",
        "legal_basis": "Consent (Article 6(1)(a) GDPR), Contract (Article 6(1)(b) GDPR)",
        "retention_period": "Until consent withdrawal or account deletion",
    },
    "ccpa": {
        "business": "NULLXES Messenger",
        "categories": [
            "Identifiers (phone number, user ID)",
            "Personal information (name, status)",
            "Internet activity (messages, chats)",
        ],
    },
}

DATA_SUBJECT_RIGHTS = [
    "Право на доступ к персональным данным (ст. 14 ФЗ-152, ст. 15 GDPR)",
    "Право на исправление неточных данных (ст. 14 ФЗ-152, ст. 16 GDPR)",
    "Право на удаление данных (ст. 14 ФЗ-152, ст. 17 GDPR)",
    "Право на ограничение обработки (ст. 18 GDPR)",
    "Право на переносимость данных (ст. 20 GDPR)",
    "Право на отзыв согласия (ст. 9 ФЗ-152, ст. 7 GDPR)",
    "Право на возражение против обработки (ст. 21 GDPR)",
]

SECURITY_MEASURES = [
    "Шифрование данных при передаче (TLS 1.3)",
    "Подписанные токены доступа",
    "Аудит доступа к данным",
    "Резервное копирование с шифрованием",
]


def _row_to_dict(row) -> dict[str, Any]:
    data = {}
    for attr in inspect(row).mapper.column_attrs:
        value = getattr(row, attr.key)
        if isinstance(value, datetime):
            value = value.isoformat() + "Z"
        data[attr.columns[0].name] = value
    return data


def collect_user_data(db: Session, user_id: str) -> Optional[dict]:
    """Everything stored about a user, as plain JSON-ready data."""
    user = db.get(User, user_id)
    if user is None:
        return None

    chats = (
        db.query(Chat)
        .join(ChatMember, ChatMember.chat_id == Chat.id)
        .filter(ChatMember.user_id == user_id)
        .all()
    )
    messages = db.query(Message).filter(Message.user_id == user_id).order_by(Message.created_at).all()
    conversations = db.query(AnnaConversation).filter(AnnaConversation.user_id == user_id).all()
    calls = db.query(Call).filter(Call.user_id == user_id).order_by(Call.created_at).all()
    searches = db.query(SearchHistory).filter(SearchHistory.user_id == user_id).all()

    return {
        "user": _row_to_dict(user),
        "chats": [_row_to_dict(c) for c in chats],
        "messages": [_row_to_dict(m) for m in messages],
        "anna_conversations": [_row_to_dict(c) for c in conversations],
        "calls": [_row_to_dict(c) for c in calls],
        "search_history": [_row_to_dict(s) for s in searches],
        "export_date": utcnow().isoformat() + "Z",
    }


def export_user_data(db: Session, user_id: str, export_dir: Optional[str] = None) -> Optional[str]:
    """
    Write the user's data as pretty-printed JSON.

    Returns:
        Path of the export file, or None if the user does not exist
    """
    data = collect_user_data(db, user_id)
    if data is None:
        logger.warning(f"Export requested for unknown user {user_id}")
        return None

    export_dir = export_dir or settings.EXPORT_DIR
    os.makedirs(export_dir, exist_ok=True)
    stamp = utcnow().strftime("%Y%m%dT%H%M%S%f")
    path = os.path.join(export_dir, f"nullxes_data_export_{user_id}_{stamp}.json")

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)

    logger.info(f"User data exported: user={user_id}, messages={len(data['messages'])}")
    return path


def anonymize_user_data(db: Session, user_id: str) -> bool:
    """
    Strip identifying profile fields and drop the user's content.

    The account row survives with a placeholder phone, so chats stay
    consistent for other members. Messages and AI conversations are deleted.
    """
    user = db.get(User, user_id)
    if user is None:
        return False
    try:
        user.name = ANONYMIZED_NAME
        user.avatar = None
        user.status = None
        user.phone = f"deleted_{user_id[:8]}"
        user.updated_at = utcnow()

        removed_messages = db.query(Message).filter(Message.user_id == user_id).delete(synchronize_session=False)
        removed_conversations = (
            db.query(AnnaConversation)
            .filter(AnnaConversation.user_id == user_id)
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error anonymizing user data for {user_id}: {e}")
        raise

    logger.info(
        f"User anonymized: {user_id}, messages={removed_messages}, conversations={removed_conversations}"
    )
    return True


def delete_user_account(db: Session, user_id: str) -> bool:
    """Hard-delete the user; dependent rows go with it through ON DELETE CASCADE."""
    user = db.get(User, user_id)
    if user is None:
        return False
    try:
        db.delete(user)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting user account {user_id}: {e}")
        raise
    logger.info(f"User account deleted: {user_id}")
    return True
