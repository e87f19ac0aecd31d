"""
Phone verification codes.

A 4-digit code is stored next to the phone it was sent to and an absolute
expiry (epoch milliseconds). Checking a code does not consume it; callers
clear it once sign-in succeeds.
"""

import logging
import secrets
import time
from typing import Optional

from messenger.config import settings
from messenger.kvstore import KeyValueStore
from messenger.phone import digits_only

logger = logging.getLogger(__name__)

CODE_KEY_PREFIX = "verification_code:"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _code_key(phone: str) -> str:
    return CODE_KEY_PREFIX + digits_only(phone)


def generate_verification_code() -> str:
    """Random numeric code in 1000..9999."""
    return str(1000 + secrets.randbelow(9000))


def store_verification_code(
    kv: KeyValueStore,
    phone: str,
    code: str,
    now: Optional[int] = None,
    ttl_seconds: Optional[int] = None,
) -> int:
    """
    Store ``code`` for ``phone``, replacing any earlier one.

    Returns:
        Expiry as epoch milliseconds
    """
    now = _now_ms() if now is None else now
    ttl = settings.VERIFICATION_CODE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    expires_at = now + ttl * 1000
    kv.set(_code_key(phone), {"code": code, "phone": phone, "expires_at": expires_at})
    logger.info("Verification code stored", extra={"expires_at": expires_at})
    return expires_at


def verify_code(kv: KeyValueStore, phone: str, code: str, now: Optional[int] = None) -> bool:
    """
    True iff a code is stored for ``phone``, it has not expired and it matches.

    The code stays valid until it expires or is cleared.
    """
    record = kv.get(_code_key(phone))
    if not record or not record.get("code") or not record.get("expires_at") or not record.get("phone"):
        return False

    if record["phone"] != phone:
        return False

    now = _now_ms() if now is None else now
    if now > int(record["expires_at"]):
        logger.info("Verification code expired")
        return False

    return secrets.compare_digest(str(record["code"]).encode(), (code or "").encode())


def clear_verification_code(kv: KeyValueStore, phone: str) -> None:
    kv.delete(_code_key(phone))
