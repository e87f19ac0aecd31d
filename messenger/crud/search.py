import logging
from typing import Optional

from sqlalchemy.orm import Session

from messenger.errors import InvalidRequestError, NotFoundError
from messenger.models import SEARCH_TABS, SearchHistory

logger = logging.getLogger(__name__)


def add_search_history(db: Session, user_id: str, query: str, tab: str = "all") -> Optional[SearchHistory]:
    """Remember a search. Blank queries are ignored and return None."""
    query = (query or "").strip()
    if not query:
        return None
    if tab not in SEARCH_TABS:
        raise InvalidRequestError(f"unknown search tab: {tab}")

    entry = SearchHistory(user_id=user_id, query=query, tab=tab)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def get_search_history(db: Session, user_id: str, limit: int = 10) -> list[SearchHistory]:
    return (
        db.query(SearchHistory)
        .filter(SearchHistory.user_id == user_id)
        .order_by(SearchHistory.created_at.desc(), SearchHistory.id.desc())
        .limit(limit)
        .all()
    )


def delete_search_history(db: Session, user_id: str, history_id: Optional[str] = None) -> int:
    """
    Forget one entry, or the whole history when history_id is None.

    Returns:
        Number of entries removed

    Raises:
        NotFoundError: history_id is not one of the user's entries
    """
    query = db.query(SearchHistory).filter(SearchHistory.user_id == user_id)
    if history_id is not None:
        query = query.filter(SearchHistory.id == history_id)
    removed = query.delete(synchronize_session=False)
    db.commit()
    if history_id is not None and not removed:
        raise NotFoundError("search history entry not found")
    logger.debug(f"Removed {removed} search history entries for {user_id}")
    return removed
