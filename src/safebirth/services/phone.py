"""Phone number helpers: normalisation, validation and log-safe masking."""

import re

_ARABIC_DIGITS = str.maketrans("٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹", "01234567890123456789")
_PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
_PHONE_NOISE = re.compile(r"[\s\-().]")


def to_ascii_digits(text: str) -> str:
    """Convert Arabic-Indic and Persian digits to ASCII."""
    return text.translate(_ARABIC_DIGITS)


def normalize_phone(raw: str | None) -> str:
    """Strip formatting so the same handset always maps to the same key."""
    if not raw:
        return ""
    return _PHONE_NOISE.sub("", to_ascii_digits(raw.strip()))


def is_valid_phone(phone: str | None) -> bool:
    """E.164-like check: optional '+', no leading zero, 2-15 digits."""
    return bool(phone) and _PHONE_PATTERN.match(phone) is not None


def mask_phone(phone: str | None) -> str:
    """Hide the last four digits, e.g. ``+9627912345678`` -> ``+962791234****``.

    Every log line that mentions a phone number goes through this.
    """
    if not phone or len(phone) < 4:
        return "***"
    return phone[:-4] + "****"
