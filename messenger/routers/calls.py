import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from messenger.auth import get_current_user
from messenger.crud.calls import create_call, get_user_calls
from messenger.models import User
from messenger.schemas import CallCreateRequest, CallResponse
from messenger.storage import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calls", tags=["calls"])


@router.post("", response_model=CallResponse, status_code=201)
def log_call(
    body: CallCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CallResponse:
    """
    Add a call to the caller's log.

    Only the log entry is stored; placing the call is up to the media layer.
    """
    call = create_call(
        db,
        user_id=user.id,
        call_type=body.type,
        status=body.status,
        chat_id=body.chat_id,
        other_user_id=body.other_user_id,
        duration=body.duration,
    )
    return CallResponse.model_validate(call)


@router.get("", response_model=list[CallResponse])
def list_calls(
    status: Annotated[Optional[str], Query(pattern="^(missed|incoming|outgoing)$")] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[CallResponse]:
    calls = get_user_calls(db, user.id, status=status)
    logger.debug(f"GET /calls: {len(calls)} entries for {user.id}")
    return [CallResponse.model_validate(c) for c in calls]
