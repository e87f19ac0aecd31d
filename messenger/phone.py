"""
Phone number and display formatting helpers.
"""

import re
from datetime import datetime
from typing import Optional

from messenger.utils import utcnow


_CODE_RE = re.compile(r"^\d{4,6}$")


def digits_only(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def normalize_phone(phone: str) -> str:
    """
    Canonical stored form: '+' followed by digits only.

    An 11-digit number with the domestic trunk prefix 8 is stored as +7.
    """
    cleaned = digits_only(phone)
    if len(cleaned) == 11 and cleaned.startswith("8"):
        cleaned = "7" + cleaned[1:]
    return "+" + cleaned


def validate_phone(phone: str) -> bool:
    """
    Accept numbers with 10 to 15 digits.

    Punctuation, spaces and a leading '+' are ignored.
    """
    cleaned = digits_only(phone)
    return 10 <= len(cleaned) <= 15


def format_phone(phone: str) -> str:
    """
    Format Russian numbers as ``+7 (XXX) XXX-XX-XX``.

    A leading 8 is treated as the domestic trunk prefix for +7. Any other
    number is returned unchanged.
    """
    cleaned = digits_only(phone)
    if cleaned.startswith("7") or cleaned.startswith("8"):
        return f"+7 ({cleaned[1:4]}) {cleaned[4:7]}-{cleaned[7:9]}-{cleaned[9:11]}"
    return phone


def validate_code(code: str) -> bool:
    return bool(_CODE_RE.match(code or ""))


def mask_phone(phone: str, visible_digits: int = 2) -> str:
    cleaned = digits_only(phone)
    if len(cleaned) <= visible_digits:
        return cleaned
    return "*" * (len(cleaned) - visible_digits) + cleaned[-visible_digits:]


def format_relative_time(moment: datetime, now: Optional[datetime] = None) -> str:
    """Short Russian label for how long ago ``moment`` was."""
    now = now or utcnow()
    seconds = int((now - moment).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 60:
        return "только что"
    if minutes < 60:
        return f"{minutes} мин назад"
    if hours < 24:
        return f"{hours} ч назад"
    if days < 7:
        return f"{days} дн назад"
    return moment.strftime("%d.%m.%Y")
