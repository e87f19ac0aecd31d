"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from messenger.storage import Base
from messenger.utils import utcnow


CHAT_TYPES = ("private", "group", "channel")
MESSAGE_TYPES = ("text", "image", "voice", "video", "file")
MEDIA_TYPES = ("image", "video", "file")
FAVORITE_TYPES = ("message", "media", "link")
ONLINE_STATUSES = ("online", "offline", "recently")
STORY_PRIVACY = ("public", "contacts", "close_friends", "custom")
CALL_TYPES = ("voice", "video")
CALL_STATUSES = ("missed", "incoming", "outgoing")
SEARCH_TABS = ("all", "chats", "messages", "media", "contacts")


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    phone = Column(String(32), nullable=False, unique=True, index=True)
    name = Column(String(128), nullable=True)
    avatar = Column(Text, nullable=True)
    status = Column(String(256), nullable=True)
    online_status = Column(String(16), nullable=False, default="offline")
    last_seen = Column(DateTime, nullable=True)

    gdpr_consent = Column(Boolean, nullable=False, default=False)
    gdpr_consent_date = Column(DateTime, nullable=True)
    data_processing_consent = Column(Boolean, nullable=False, default=False)
    marketing_consent = Column(Boolean, nullable=False, default=False)
    fz152_consent = Column(Boolean, nullable=False, default=False)
    fz152_consent_date = Column(DateTime, nullable=True)
    ccpa_opt_out = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class Chat(Base):
    """
    A private, group or channel conversation.

    last_message / last_message_at are a denormalized copy of the newest
    message, refreshed on send.
    """
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=new_id)
    type = Column(String(16), nullable=False)
    name = Column(String(128), nullable=True)
    avatar = Column(Text, nullable=True)
    last_message = Column(Text, nullable=True)
    last_message_at = Column(DateTime, nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class ChatMember(Base):
    __tablename__ = "chat_members"
    __table_args__ = (UniqueConstraint("chat_id", "user_id", name="uq_chat_member"),)

    id = Column(String(36), primary_key=True, default=new_id)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False, default="member")  # owner|admin|member
    joined_at = Column(DateTime, nullable=False, default=utcnow)


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=new_id)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    type = Column(String(16), nullable=False, default="text")
    reply_to_id = Column(String(36), ForeignKey("messages.id", ondelete="SET NULL"), nullable=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class MessageReaction(Base):
    """One reaction per (message, user); a new emoji replaces the old one."""
    __tablename__ = "message_reactions"
    __table_args__ = (UniqueConstraint("message_id", "user_id", name="uq_reaction_per_user"),)

    id = Column(String(36), primary_key=True, default=new_id)
    message_id = Column(String(36), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    emoji = Column(String(16), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class AnnaConversation(Base):
    """AI assistant conversation, stored as a single list of turns."""
    __tablename__ = "anna_conversations"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    messages = Column(JSON, nullable=False, default=list)
    mode = Column(String(16), nullable=False, default="normal")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class Favorite(Base):
    __tablename__ = "favorites"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(16), nullable=False)
    message_id = Column(String(36), ForeignKey("messages.id", ondelete="CASCADE"), nullable=True)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=True)
    content = Column(Text, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class PinnedChat(Base):
    __tablename__ = "pinned_chats"
    __table_args__ = (UniqueConstraint("user_id", "chat_id", name="uq_pinned_chat"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    contact_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    phone = Column(String(32), nullable=True)
    name = Column(String(128), nullable=True)
    avatar = Column(Text, nullable=True)
    is_favorite = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class BlockedUser(Base):
    __tablename__ = "blocked_users"
    __table_args__ = (UniqueConstraint("user_id", "blocked_user_id", name="uq_blocked_user"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    blocked_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Story(Base):
    __tablename__ = "stories"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    media_uri = Column(Text, nullable=False)
    media_type = Column(String(16), nullable=False)  # image|video
    privacy = Column(String(16), nullable=False, default="public")
    allowed_user_ids = Column(JSON, nullable=False, default=list)
    views_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class StoryView(Base):
    __tablename__ = "story_views"
    __table_args__ = (UniqueConstraint("story_id", "user_id", name="uq_story_view"),)

    id = Column(String(36), primary_key=True, default=new_id)
    story_id = Column(String(36), ForeignKey("stories.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    viewed_at = Column(DateTime, nullable=False, default=utcnow)


class Call(Base):
    """One entry of a user's call log; each side of a call keeps its own row."""
    __tablename__ = "calls"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=True)
    other_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    type = Column(String(8), nullable=False)  # voice|video
    status = Column(String(16), nullable=False)  # missed|incoming|outgoing
    duration = Column(String(16), nullable=True)  # "mm:ss" as shown in the log
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class UserSession(Base):
    __tablename__ = "user_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_name = Column(String(128), nullable=False)
    device_type = Column(String(32), nullable=False)
    ip_address = Column(String(64), nullable=True)
    last_active_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class SearchHistory(Base):
    __tablename__ = "search_history"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    query = Column(String(255), nullable=False)
    tab = Column(String(16), nullable=False, default="all")
    created_at = Column(DateTime, nullable=False, default=utcnow)


class KeyValueEntry(Base):
    """
    Small persisted key-value state: verification codes, flags, cache blobs.

    value holds JSON text.
    """
    __tablename__ = "kv_entries"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
