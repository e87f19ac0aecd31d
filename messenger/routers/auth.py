import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from messenger.auth import get_kv
from messenger.config import settings
from messenger.crud.users import create_user_session, get_or_create_user, update_online_status
from messenger.kvstore import KeyValueStore
from messenger.logging_utils import log_auth_event
from messenger.metrics import record_verification
from messenger.phone import format_phone, normalize_phone
from messenger.schemas import CodeRequest, CodeResponse, ErrorResponse, TokenResponse, UserResponse, VerifyRequest
from messenger.storage import get_db
from messenger.utils import create_access_token
from messenger.verification import (
    clear_verification_code,
    generate_verification_code,
    store_verification_code,
    verify_code,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def user_response(user) -> UserResponse:
    response = UserResponse.model_validate(user)
    response.formatted_phone = format_phone(user.phone)
    return response


@router.post("/code", response_model=CodeResponse)
def request_code(
    request: Request,
    body: CodeRequest,
    kv: KeyValueStore = Depends(get_kv),
) -> CodeResponse:
    """
    Issue a verification code for a phone number.

    A new code replaces any earlier one for the same number. The code is
    echoed in the response while EXPOSE_VERIFICATION_CODE is on, since no
    SMS gateway is wired in.
    """
    phone = normalize_phone(body.phone)
    code = generate_verification_code()
    expires_at = store_verification_code(kv, phone, code)

    record_verification("sent")
    log_auth_event(request, phone=phone, result="sent")
    logger.info("Verification code issued")

    return CodeResponse(
        status="sent",
        expires_at=expires_at,
        code=code if settings.EXPOSE_VERIFICATION_CODE else None,
    )


@router.post(
    "/verify",
    response_model=TokenResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid or expired code"}},
)
def verify(
    request: Request,
    body: VerifyRequest,
    db: Session = Depends(get_db),
    kv: KeyValueStore = Depends(get_kv),
) -> TokenResponse:
    """
    Exchange a valid code for a bearer token.

    On success the code is cleared, the account is fetched or created
    (name defaults to the phone number) and marked online. When the client
    names its device a session row is opened and bound to the token.
    """
    phone = normalize_phone(body.phone)

    if not verify_code(kv, phone, body.code):
        record_verification("rejected")
        log_auth_event(request, phone=phone, result="rejected")
        logger.warning("Verification code rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid or expired code"
        )

    clear_verification_code(kv, phone)
    user = get_or_create_user(db, phone, body.name)
    user = update_online_status(db, user.id, "online")

    session_id = None
    if body.device_name and body.device_type:
        ip_address = request.client.host if request.client else None
        session_id = create_user_session(db, user.id, body.device_name, body.device_type, ip_address).id

    record_verification("verified")
    log_auth_event(request, phone=phone, result="verified")
    logger.info(f"User signed in: {user.id}")

    return TokenResponse(
        token=create_access_token(user.id, user.phone, session_id=session_id),
        user=user_response(user),
        session_id=session_id,
    )
