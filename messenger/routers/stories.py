import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from messenger.auth import get_current_user
from messenger.crud import stories
from messenger.models import User
from messenger.schemas import MessageResponse, StatusResponse, StoryCreateRequest, StoryReplyRequest, StoryResponse
from messenger.storage import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stories", tags=["stories"])


@router.post("", response_model=StoryResponse, status_code=201)
def publish_story(
    body: StoryCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StoryResponse:
    story = stories.create_story(
        db,
        user_id=user.id,
        media_uri=body.media_uri,
        media_type=body.media_type,
        privacy=body.privacy,
        allowed_user_ids=body.allowed_user_ids,
    )
    return StoryResponse.model_validate(story)


@router.get("", response_model=list[StoryResponse])
def list_stories(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[StoryResponse]:
    """Unexpired stories visible to the caller, newest first."""
    return [StoryResponse.model_validate(s) for s in stories.get_active_stories(db, user.id)]


@router.post("/{story_id}/view", response_model=StatusResponse)
def view(
    story_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    stories.view_story(db, story_id, user.id)
    return StatusResponse(status="ok")


@router.post("/{story_id}/reply", response_model=MessageResponse, status_code=201)
def reply(
    story_id: str,
    body: StoryReplyRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Answer a story privately; the reply lands in the chat with its author."""
    return MessageResponse.model_validate(stories.reply_to_story(db, story_id, user.id, body.text))
