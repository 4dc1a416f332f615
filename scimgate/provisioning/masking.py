"""Irreversible redaction of email- and phone-like values before they hit the audit log."""

from __future__ import annotations

import re
from typing import Any

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@([A-Za-z0-9.-]+\.[A-Za-z]{2,})")
_PHONE_RE = re.compile(r"(?<![\w-])\+?\d[\d\s().-]{5,}\d(?![\w-])")
_ISO_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


def _mask_email(match: re.Match) -> str:
    return f"***@{match.group(1)}"


def _mask_phone(match: re.Match) -> str:
    text = match.group(0)
    if _ISO_DATE_RE.search(text):
        return text
    digits = re.sub(r"\D", "", text)
    if not 7 <= len(digits) <= 15:
        return text
    return f"***{digits[-4:]}"


def mask_sensitive(text: str) -> str:
    """Replace emails with ``***@domain`` and phone numbers with ``***`` + last four digits."""
    if not text:
        return text
    text = _EMAIL_RE.sub(_mask_email, text)
    return _PHONE_RE.sub(_mask_phone, text)


def mask_details(value: Any) -> Any:
    """Recursively mask every string inside dicts / lists."""
    if isinstance(value, str):
        return mask_sensitive(value)
    if isinstance(value, dict):
        return {key: mask_details(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [mask_details(item) for item in value]
    return value
