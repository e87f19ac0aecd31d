import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from messenger.config import settings
from messenger.crud.chats import create_chat, find_private_chat, get_member_ids
from messenger.crud.messages import create_message
from messenger.crud.social import contact_user_ids, is_user_blocked
from messenger.errors import InvalidRequestError, NotFoundError, PermissionDeniedError
from messenger.models import STORY_PRIVACY, Chat, ChatMember, Message, Story, StoryView
from messenger.utils import utcnow

logger = logging.getLogger(__name__)


def create_story(
    db: Session,
    user_id: str,
    media_uri: str,
    media_type: str,
    privacy: str = "public",
    allowed_user_ids: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Story:
    """Publish a story that expires STORY_TTL_HOURS after creation."""
    if media_type not in ("image", "video"):
        raise InvalidRequestError(f"unsupported story media type: {media_type}")
    if privacy not in STORY_PRIVACY:
        raise InvalidRequestError(f"unknown story privacy: {privacy}")

    now = now or utcnow()
    story = Story(
        user_id=user_id,
        media_uri=media_uri,
        media_type=media_type,
        privacy=privacy,
        allowed_user_ids=list(allowed_user_ids or []),
        created_at=now,
        expires_at=now + timedelta(hours=settings.STORY_TTL_HOURS),
    )
    db.add(story)
    db.commit()
    db.refresh(story)
    logger.info(f"Story created: id={story.id}, privacy={privacy}")
    return story


def get_user_stories(db: Session, user_id: str, now: Optional[datetime] = None) -> list[Story]:
    now = now or utcnow()
    return (
        db.query(Story)
        .filter(Story.user_id == user_id, Story.expires_at > now)
        .order_by(Story.created_at.desc())
        .all()
    )


def _private_chat_partner_ids(db: Session, user_id: str) -> set[str]:
    chat_ids = [
        row.chat_id
        for row in db.query(ChatMember.chat_id)
        .join(Chat, Chat.id == ChatMember.chat_id)
        .filter(
            ChatMember.user_id == user_id,
            Chat.type == "private",
            Chat.deleted_at.is_(None),
            Chat.is_archived.is_(False),
        )
        .all()
    ]
    partners = set()
    for chat_id in chat_ids:
        partners.update(m for m in get_member_ids(db, chat_id) if m != user_id)
    return partners


def _visible_to(story: Story, viewer_id: str, owner_is_contact: bool) -> bool:
    if story.privacy == "public":
        return True
    if story.privacy in ("contacts", "close_friends"):
        # There is no separate close-friends list; contacts stand in for it
        return owner_is_contact
    if story.privacy == "custom":
        return viewer_id in (story.allowed_user_ids or [])
    return False


def get_active_stories(db: Session, viewer_id: str, now: Optional[datetime] = None) -> list[Story]:
    """
    Unexpired stories the viewer may see, newest first.

    The viewer's own stories are always included. Other stories come only
    from private-chat partners and are filtered by their privacy setting.
    """
    now = now or utcnow()
    partners = _private_chat_partner_ids(db, viewer_id)
    contacts = contact_user_ids(db, viewer_id)

    candidates = (
        db.query(Story)
        .filter(Story.expires_at > now, Story.user_id.in_(sorted(partners | {viewer_id})))
        .order_by(Story.created_at.desc())
        .all()
    )
    visible = [
        s for s in candidates
        if s.user_id == viewer_id or _visible_to(s, viewer_id, s.user_id in contacts)
    ]
    logger.debug(f"{len(visible)} of {len(candidates)} stories visible to {viewer_id}")
    return visible


def get_story(db: Session, story_id: str) -> Story:
    story = db.get(Story, story_id)
    if story is None:
        raise NotFoundError("story not found")
    return story


def get_visible_story(db: Session, story_id: str, viewer_id: str, now: Optional[datetime] = None) -> Story:
    """
    The story, if it has not expired and its privacy lets the viewer see it.

    Raises:
        NotFoundError: missing, expired or hidden from the viewer
    """
    now = now or utcnow()
    story = get_story(db, story_id)
    if story.expires_at <= now:
        raise NotFoundError("story not found")
    if story.user_id != viewer_id:
        owner_is_contact = story.user_id in contact_user_ids(db, viewer_id)
        if not _visible_to(story, viewer_id, owner_is_contact):
            raise NotFoundError("story not found")
    return story


def view_story(db: Session, story_id: str, user_id: str) -> StoryView:
    """Record a view. Each viewer is counted once."""
    story = get_visible_story(db, story_id, user_id)
    existing = db.query(StoryView).filter(
        StoryView.story_id == story_id, StoryView.user_id == user_id
    ).first()
    if existing is not None:
        return existing

    view = StoryView(story_id=story_id, user_id=user_id)
    db.add(view)
    story.views_count = (story.views_count or 0) + 1
    db.commit()
    db.refresh(view)
    return view


def reply_to_story(db: Session, story_id: str, user_id: str, text: str) -> Message:
    """Answer a story in the private chat with its owner, creating the chat if needed."""
    story = get_visible_story(db, story_id, user_id)
    if story.user_id == user_id:
        raise InvalidRequestError("cannot reply to your own story")
    if is_user_blocked(db, story.user_id, user_id):
        raise PermissionDeniedError("recipient has blocked you")

    chat = find_private_chat(db, user_id, story.user_id)
    if chat is None:
        chat = create_chat(db, "private", [user_id, story.user_id], owner_id=user_id)

    return create_message(
        db,
        chat_id=chat.id,
        user_id=user_id,
        content=text,
        message_type="text",
        meta={"story_id": story_id, "story_reply": True},
    )
