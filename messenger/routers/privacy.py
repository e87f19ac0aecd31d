import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from messenger import gdpr
from messenger.auth import get_current_user, get_kv
from messenger.errors import NotFoundError
from messenger.kvstore import KeyValueStore, biometric_key, user_cache_prefix
from messenger.models import User
from messenger.schemas import ExportResponse, StatusResponse
from messenger.storage import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/privacy", tags=["privacy"])


@router.get("/compliance")
async def compliance() -> dict:
    """Processing purposes, legal bases, data subject rights and security measures."""
    return {
        **gdpr.COMPLIANCE_INFO,
        "rights": gdpr.DATA_SUBJECT_RIGHTS,
        "security_measures": gdpr.SECURITY_MEASURES,
    }


@router.post("/export", response_model=ExportResponse)
def export_data(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ExportResponse:
    """Write everything stored about the caller to a JSON file (right of access)."""
    path = gdpr.export_user_data(db, user.id)
    if path is None:
        raise NotFoundError("user not found")
    return ExportResponse(status="ok", path=path)


@router.post("/anonymize", response_model=StatusResponse)
def anonymize(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    kv: KeyValueStore = Depends(get_kv),
) -> StatusResponse:
    """
    Strip the caller's identity and content but keep the account row.

    The bearer token keeps working; the phone number is released.
    """
    gdpr.anonymize_user_data(db, user.id)
    kv.clear(user_cache_prefix(user.id))
    return StatusResponse(status="ok")


@router.delete("/account", response_model=StatusResponse)
def delete_account(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    kv: KeyValueStore = Depends(get_kv),
) -> StatusResponse:
    """Erase the account and everything attached to it (right to erasure)."""
    user_id = user.id
    gdpr.delete_user_account(db, user_id)
    kv.clear(user_cache_prefix(user_id))
    kv.delete(biometric_key(user_id))
    return StatusResponse(status="ok")
