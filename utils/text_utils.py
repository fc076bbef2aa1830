"""
Text utilities for reference numbers and mail addresses.

Extracted references arrive with stray accents, full-width characters,
spaces and punctuation depending on which template or OCR pass produced
them.
"""

import re
import unicodedata
from typing import Optional

_NON_ALNUM = re.compile(r"[^A-Z0-9]")
_ADDRESS_IN_BRACKETS = re.compile(r"<([^<>]+)>")


def to_ascii_upper(value: Optional[str]) -> Optional[str]:
    """
    Uppercase ASCII form of a string.

    - "hlcu 1234567" → "HLCU 1234567"
    - "ＨＬＣＵ１２３" (full width) → "HLCU123"
    - "  " → None

    Args:
        value: Raw text

    Returns:
        Stripped uppercase ASCII string, or None if input is empty
    """
    if not value:
        return None

    value = value.strip()
    if not value:
        return None

    # NFKD folds full-width forms and separates accents from base chars
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = "".join(
        c for c in normalized
        if unicodedata.category(c) != "Mn"
    )

    return ascii_value.upper()


def compact_reference(value: Optional[str]) -> str:
    """
    Reference number with everything but A-Z and 0-9 removed.

    "HL-1234 5678" → "HL12345678". Empty string when nothing survives.
    """
    upper = to_ascii_upper(value)
    if not upper:
        return ""
    return _NON_ALNUM.sub("", upper)


def email_domain(address: Optional[str]) -> Optional[str]:
    """
    Lowercase domain part of a mail address.

    Accepts display-name forms: "Ops <ops@maersk.com>" → "maersk.com".
    """
    if not address:
        return None

    match = _ADDRESS_IN_BRACKETS.search(address)
    if match:
        address = match.group(1)

    address = address.strip().lower()
    if "@" not in address:
        return None

    domain = address.rsplit("@", 1)[1].strip(" >.")
    return domain or None
