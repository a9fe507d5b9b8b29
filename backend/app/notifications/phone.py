"""
phone.py — Phone number normalization for the SMS gateway.

Converts local Nigerian numbers to the international form the gateway
expects (E.164 digits without the leading ``+``):

    Input               Output
    ──────────────────  ───────────────
    "08031234567"       "2348031234567"     local trunk 0 → 234
    "+2348031234567"    "2348031234567"     leading + dropped
    "2348031234567"     "2348031234567"     already international
    " 0803 123 4567 "   "2348031234567"     whitespace stripped
    ""                  ValidationError

Anything else is passed through unchanged; the gateway has the final say
on validity.
"""

from __future__ import annotations

import re

from backend.app.core.errors import ValidationError

DEFAULT_COUNTRY_CODE = "234"
LOCAL_TRUNK_PREFIX = "0"
MIN_LOCAL_LENGTH = 11  # 0 + 10-digit subscriber number

_WHITESPACE = re.compile(r"\s+")


def normalize_phone(raw: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Normalize ``raw``; raises :class:`ValidationError` if nothing is left."""
    compact = _WHITESPACE.sub("", raw or "")
    if not compact:
        raise ValidationError("Invalid phone number", field="phone_number")

    digits = compact[1:] if compact.startswith("+") else compact
    if not digits:
        raise ValidationError("Invalid phone number", field="phone_number")

    if digits.startswith(LOCAL_TRUNK_PREFIX) and len(digits) >= MIN_LOCAL_LENGTH:
        return country_code + digits[1:]

    return digits
