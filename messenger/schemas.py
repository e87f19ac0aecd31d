"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from messenger.phone import validate_code, validate_phone


ORM_CONFIG = {"from_attributes": True, "populate_by_name": True}


# =============================================================================
# Auth
# =============================================================================

class CodeRequest(BaseModel):
    """Request body for POST /auth/code."""
    phone: str = Field(..., description="Phone number in any common notation")

    @field_validator("phone")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        """Phone must contain 10-15 digits once punctuation is removed."""
        if not validate_phone(v):
            raise ValueError("phone must contain 10 to 15 digits")
        return v

    model_config = {
        "json_schema_extra": {"examples": [{"phone": "+7 (999) 123-45-67"}]}
    }


class CodeResponse(BaseModel):
    status: str = Field(default="sent", description="Operation status")
    expires_at: int = Field(..., description="Code expiry, epoch milliseconds")
    code: Optional[str] = Field(None, description="The code itself, only when no SMS gateway is configured")


class VerifyRequest(CodeRequest):
    """Request body for POST /auth/verify."""
    code: str = Field(..., description="4-6 digit verification code")
    name: Optional[str] = Field(None, max_length=128, description="Display name for a new account")
    device_name: Optional[str] = Field(None, max_length=128, description="Opens a device session when given")
    device_type: Optional[str] = Field(None, max_length=32, description="ios, android, web")

    @field_validator("code")
    @classmethod
    def validate_code_format(cls, v: str) -> str:
        if not validate_code(v):
            raise ValueError("code must be 4 to 6 digits")
        return v


# =============================================================================
# Users
# =============================================================================

class UserResponse(BaseModel):
    id: str
    phone: str
    formatted_phone: Optional[str] = Field(None, description="Phone in display notation")
    name: Optional[str] = None
    avatar: Optional[str] = None
    status: Optional[str] = None
    online_status: str
    last_seen: Optional[datetime] = None
    gdpr_consent: bool = False
    gdpr_consent_date: Optional[datetime] = None
    data_processing_consent: bool = False
    marketing_consent: bool = False
    fz152_consent: bool = False
    fz152_consent_date: Optional[datetime] = None
    ccpa_opt_out: bool = False
    created_at: datetime

    model_config = ORM_CONFIG


class TokenResponse(BaseModel):
    token: str = Field(..., description="Bearer token for the Authorization header")
    user: UserResponse
    session_id: Optional[str] = Field(None, description="Device session opened by this sign-in")


class UserUpdateRequest(BaseModel):
    """Profile fields; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, max_length=128)
    avatar: Optional[str] = None
    status: Optional[str] = Field(None, max_length=256)
    gdpr_consent: Optional[bool] = None
    data_processing_consent: Optional[bool] = None
    marketing_consent: Optional[bool] = None
    fz152_consent: Optional[bool] = None
    ccpa_opt_out: Optional[bool] = None


class OnlineStatusRequest(BaseModel):
    online_status: str = Field(..., pattern="^(online|offline|recently)$")


class UserStatsResponse(BaseModel):
    chats_count: int = Field(..., ge=0)
    messages_count: int = Field(..., ge=0)
    media_count: int = Field(..., ge=0)
    favorites_count: int = Field(..., ge=0)


class BiometricSetting(BaseModel):
    enabled: bool


class CacheInfoResponse(BaseModel):
    entries: int = Field(..., ge=0, description="Number of cached blobs")
    size_bytes: int = Field(..., ge=0, description="Total size of cached values")


class UserSessionResponse(BaseModel):
    id: str
    device_name: str
    device_type: str
    ip_address: Optional[str] = None
    last_active_at: datetime
    created_at: datetime
    is_current: bool = Field(False, description="The session of the token used for this request")

    model_config = ORM_CONFIG


class SearchHistoryRequest(BaseModel):
    query: str = Field(..., max_length=255)
    tab: str = Field("all", pattern="^(all|chats|messages|media|contacts)$")


class SearchHistoryResponse(BaseModel):
    id: str
    query: str
    tab: str
    created_at: datetime

    model_config = ORM_CONFIG


# =============================================================================
# Chats
# =============================================================================

class ChatCreateRequest(BaseModel):
    type: str = Field(..., pattern="^(private|group|channel)$")
    member_ids: list[str] = Field(default_factory=list, description="Other members; the creator is added as owner")
    name: Optional[str] = Field(None, max_length=128)
    avatar: Optional[str] = None


class ChatResponse(BaseModel):
    id: str
    type: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    is_archived: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ORM_CONFIG


class ChatListItem(ChatResponse):
    other_user_online_status: Optional[str] = None
    is_pinned: bool = False


class MemberRequest(BaseModel):
    user_id: str
    role: str = Field(default="member", pattern="^(admin|member)$")


class PinnedChatResponse(BaseModel):
    chat_id: str
    order: int

    model_config = ORM_CONFIG


# =============================================================================
# Messages
# =============================================================================

class MessageCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4096)
    type: str = Field(default="text", pattern="^(text|image|voice|video|file)$")
    reply_to_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class MessageUpdateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4096)


class MessageResponse(BaseModel):
    id: str
    chat_id: str
    user_id: str
    content: str
    type: str
    reply_to_id: Optional[str] = None
    meta: Optional[dict[str, Any]] = Field(None, serialization_alias="metadata")
    is_read: bool = False
    created_at: datetime

    model_config = ORM_CONFIG


class ForwardRequest(BaseModel):
    target_chat_ids: list[str] = Field(..., min_length=1)


class ReactionRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=16)


class ReactionResponse(BaseModel):
    id: str
    message_id: str
    user_id: str
    emoji: str
    created_at: datetime

    model_config = ORM_CONFIG


class ReadResponse(BaseModel):
    updated: int = Field(..., ge=0, description="Messages newly marked as read")


# =============================================================================
# Favorites
# =============================================================================

class FavoriteCreateRequest(BaseModel):
    type: str = Field(..., pattern="^(message|media|link)$")
    message_id: Optional[str] = None
    chat_id: Optional[str] = None
    content: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class FavoriteResponse(BaseModel):
    id: str
    type: str
    message_id: Optional[str] = None
    chat_id: Optional[str] = None
    content: Optional[str] = None
    meta: Optional[dict[str, Any]] = Field(None, serialization_alias="metadata")
    created_at: datetime

    model_config = ORM_CONFIG


class FavoriteToggleResponse(BaseModel):
    is_favorite: bool
    favorite: Optional[FavoriteResponse] = None


# =============================================================================
# Contacts and blocks
# =============================================================================

class ContactCreateRequest(BaseModel):
    contact_user_id: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = Field(None, max_length=128)
    avatar: Optional[str] = None


class ContactResponse(BaseModel):
    id: str
    contact_user_id: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    is_favorite: bool = False
    created_at: datetime

    model_config = ORM_CONFIG


class ContactFavoriteRequest(BaseModel):
    is_favorite: bool


class BlockRequest(BaseModel):
    user_id: str


class BlockedUserResponse(BaseModel):
    user_id: str
    name: Optional[str] = None
    phone: str
    blocked_at: datetime


# =============================================================================
# Stories
# =============================================================================

class StoryCreateRequest(BaseModel):
    media_uri: str = Field(..., min_length=1)
    media_type: str = Field(..., pattern="^(image|video)$")
    privacy: str = Field(default="public", pattern="^(public|contacts|close_friends|custom)$")
    allowed_user_ids: list[str] = Field(default_factory=list)


class StoryResponse(BaseModel):
    id: str
    user_id: str
    media_uri: str
    media_type: str
    privacy: str
    views_count: int
    created_at: datetime
    expires_at: datetime

    model_config = ORM_CONFIG


class StoryReplyRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=4096)


# =============================================================================
# Calls
# =============================================================================

class CallCreateRequest(BaseModel):
    type: str = Field(..., pattern="^(voice|video)$")
    status: str = Field(..., pattern="^(missed|incoming|outgoing)$")
    chat_id: Optional[str] = None
    other_user_id: Optional[str] = None
    duration: Optional[str] = Field(None, max_length=16, description="Display duration, e.g. 03:15")


class CallResponse(BaseModel):
    id: str
    type: str
    status: str
    chat_id: Optional[str] = None
    other_user_id: Optional[str] = None
    duration: Optional[str] = None
    created_at: datetime

    model_config = ORM_CONFIG


# =============================================================================
# Anna
# =============================================================================

class ConversationCreateRequest(BaseModel):
    mode: str = Field(default="normal", pattern="^(normal|tech)$")


class ConversationTurn(BaseModel):
    role: str
    content: str
    timestamp: Optional[str] = None


class ConversationResponse(BaseModel):
    id: str
    mode: str
    messages: list[ConversationTurn] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ORM_CONFIG


class ModeUpdateRequest(BaseModel):
    mode: str = Field(..., pattern="^(normal|tech)$")


class AnnaMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=8192)


class AnnaReplyResponse(BaseModel):
    reply: str
    conversation: ConversationResponse


class AgentSessionRequest(BaseModel):
    room_id: str = Field(..., min_length=1, description="Real-time room the agent joins")
    digital_human: bool = Field(default=False, description="Video avatar instead of voice only")


class AgentSessionResponse(BaseModel):
    instance_id: str
    agent_id: Optional[str] = None
    room_id: Optional[str] = None
    user_id: Optional[str] = None
    status: Optional[str] = None
    agent_status: Optional[str] = None


# =============================================================================
# Client state sync
# =============================================================================

class CachedMessage(BaseModel):
    """A message as the client caches it; fields beyond id are kept verbatim."""
    id: str

    model_config = ConfigDict(extra="allow")


class CachedFavorite(BaseModel):
    id: Optional[str] = None
    type: str = Field("message", pattern="^(message|media|link)$")
    message_id: Optional[str] = None
    chat_id: Optional[str] = None
    content: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class FavoriteSyncToggleRequest(BaseModel):
    message: CachedMessage


class AnnaConversationSync(BaseModel):
    mode: str = Field("normal", pattern="^(normal|tech)$")
    turns: list[ConversationTurn] = Field(default_factory=list)


class AnnaActiveRequest(BaseModel):
    conversation_id: Optional[str] = None


class AnnaStateResponse(BaseModel):
    conversations: dict[str, list[ConversationTurn]] = Field(default_factory=dict)
    modes: dict[str, str] = Field(default_factory=dict)
    active_conversation_id: Optional[str] = None


# =============================================================================
# Privacy
# =============================================================================

class ExportResponse(BaseModel):
    status: str = "ok"
    path: str = Field(..., description="Location of the JSON export file")


# =============================================================================
# Common
# =============================================================================

class StatusResponse(BaseModel):
    status: str = Field(default="ok", description="Operation status")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
