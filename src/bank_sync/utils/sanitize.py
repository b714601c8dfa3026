"""Sanitization utilities for safe console and log output."""

from typing import Optional


# Number of trailing characters left visible by mask_secret
_VISIBLE_CHARS = 4


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret so only its last few characters are shown.

    Short secrets are masked entirely so that a 4-character key is never
    printed in full.

    Args:
        value: Secret string to mask, or None.

    Returns:
        Masked string ("" if value is empty or None).
    """
    if not value:
        return ""

    if len(value) <= _VISIBLE_CHARS * 2:
        return "*" * len(value)

    return "*" * (len(value) - _VISIBLE_CHARS) + value[-_VISIBLE_CHARS:]


def mask_iban(iban: Optional[str]) -> str:
    """Mask an IBAN keeping the country prefix and the last 4 characters.

    Args:
        iban: IBAN string, or None.

    Returns:
        Masked IBAN like "IT** **** 1234" or "" if missing.
    """
    if not iban:
        return ""

    compact = iban.replace(" ", "")
    if len(compact) <= 6:
        return "*" * len(compact)

    return f"{compact[:2]}** **** {compact[-_VISIBLE_CHARS:]}"
