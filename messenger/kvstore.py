import json
import logging
from typing import Any, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from messenger.models import KeyValueEntry
from messenger.utils import utcnow

logger = logging.getLogger(__name__)


class KeyValueStore:
    """
    JSON values under string keys, persisted in the kv_entries table.

    Writes commit immediately; last write wins.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.db.get(KeyValueEntry, key)
        if entry is None:
            return default
        try:
            return json.loads(entry.value)
        except ValueError:
            logger.warning(f"Discarding unreadable value for key {key}")
            return default

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False, default=str)
        try:
            entry = self.db.get(KeyValueEntry, key)
            if entry is None:
                self.db.add(KeyValueEntry(key=key, value=payload, updated_at=utcnow()))
            else:
                entry.value = payload
                entry.updated_at = utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to store key {key}: {e}")
            raise

    def delete(self, key: str) -> None:
        self.db.query(KeyValueEntry).filter(KeyValueEntry.key == key).delete()
        self.db.commit()

    def keys(self, prefix: str = "") -> list[str]:
        query = self.db.query(KeyValueEntry.key)
        if prefix:
            query = query.filter(KeyValueEntry.key.startswith(prefix, autoescape=True))
        return [row.key for row in query.order_by(KeyValueEntry.key).all()]

    def clear(self, prefix: str = "") -> int:
        """Delete every entry under ``prefix``; returns how many were removed."""
        query = self.db.query(KeyValueEntry)
        if prefix:
            query = query.filter(KeyValueEntry.key.startswith(prefix, autoescape=True))
        removed = query.delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Cleared {removed} entries under prefix '{prefix}'")
        return removed

    def size(self, prefix: str = "") -> Tuple[int, int]:
        """Entry count and total UTF-8 byte size of the stored values."""
        query = self.db.query(KeyValueEntry.value)
        if prefix:
            query = query.filter(KeyValueEntry.key.startswith(prefix, autoescape=True))
        values = [row.value for row in query.all()]
        return len(values), sum(len(v.encode("utf-8")) for v in values)


def user_cache_prefix(user_id: str) -> str:
    return f"cache:{user_id}:"


def biometric_key(user_id: str) -> str:
    return f"biometric_enabled:{user_id}"


def get_biometric_enabled(kv: KeyValueStore, user_id: str) -> bool:
    return kv.get(biometric_key(user_id)) is True


def set_biometric_enabled(kv: KeyValueStore, user_id: str, enabled: bool) -> None:
    kv.set(biometric_key(user_id), bool(enabled))

