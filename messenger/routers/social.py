import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from messenger.auth import get_current_user
from messenger.crud import social
from messenger.models import User
from messenger.schemas import (
    BlockedUserResponse,
    BlockRequest,
    ContactCreateRequest,
    ContactFavoriteRequest,
    ContactResponse,
    StatusResponse,
)
from messenger.storage import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["social"])


# =============================================================================
# Contacts
# =============================================================================

@router.post("/contacts", response_model=ContactResponse, status_code=201)
def create_contact(
    body: ContactCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ContactResponse:
    """Save a contact; a phone that belongs to a registered user is linked to them."""
    contact = social.add_contact(
        db,
        user_id=user.id,
        contact_user_id=body.contact_user_id,
        phone=body.phone,
        name=body.name,
        avatar=body.avatar,
    )
    return ContactResponse.model_validate(contact)


@router.get("/contacts", response_model=list[ContactResponse])
def list_contacts(
    q: Annotated[Optional[str], Query(description="Match name or phone")] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ContactResponse]:
    contacts = social.search_contacts(db, user.id, q) if q else social.get_user_contacts(db, user.id)
    return [ContactResponse.model_validate(c) for c in contacts]


@router.put("/contacts/{contact_id}/favorite", response_model=ContactResponse)
def mark_favorite_contact(
    contact_id: str,
    body: ContactFavoriteRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ContactResponse:
    return ContactResponse.model_validate(
        social.set_favorite_contact(db, user.id, contact_id, body.is_favorite)
    )


@router.delete("/contacts/{contact_id}", response_model=StatusResponse)
def remove_contact(
    contact_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    social.delete_contact(db, user.id, contact_id)
    return StatusResponse(status="ok")


# =============================================================================
# Blocks
# =============================================================================

@router.post("/blocks", response_model=StatusResponse, status_code=201)
def block(
    body: BlockRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    social.block_user(db, user.id, body.user_id)
    return StatusResponse(status="ok")


@router.get("/blocks", response_model=list[BlockedUserResponse])
def list_blocks(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[BlockedUserResponse]:
    return [
        BlockedUserResponse(
            user_id=blocked_user.id,
            name=blocked_user.name,
            phone=blocked_user.phone,
            blocked_at=block_row.created_at,
        )
        for block_row, blocked_user in social.get_blocked_users(db, user.id)
    ]


@router.delete("/blocks/{blocked_user_id}", response_model=StatusResponse)
def unblock(
    blocked_user_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    social.unblock_user(db, user.id, blocked_user_id)
    return StatusResponse(status="ok")
