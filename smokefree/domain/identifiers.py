"""Normalization of login identifiers (email or phone number)."""

from __future__ import annotations

import re
from typing import Optional, Tuple

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_STRIP_RE = re.compile(r"[\s\-().]")
PHONE_RE = re.compile(r"^\+?\d{8,15}$")


def normalize_email(value: Optional[str]) -> Optional[str]:
    """Lower-cased, trimmed email, or None when empty/invalid."""
    email = (value or "").strip().lower()
    if not email or not EMAIL_RE.match(email):
        return None
    return email


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Digits with an optional leading '+', or None when empty/invalid."""
    phone = _PHONE_STRIP_RE.sub("", (value or "").strip())
    if not phone or not PHONE_RE.match(phone):
        return None
    return phone


def classify_identifier(value: Optional[str]) -> Tuple[str, str] | None:
    """Return ("email"|"phone", normalized) for a login identifier."""
    raw = (value or "").strip()
    if "@" in raw:
        email = normalize_email(raw)
        return ("email", email) if email else None
    phone = normalize_phone(raw)
    return ("phone", phone) if phone else None
