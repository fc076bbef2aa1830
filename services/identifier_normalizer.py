"""
Identifier normalization.

Turns one extracted identifier into the set of forms it may have been
stored or written as elsewhere, so exact-match lookups succeed whichever
form a given email used:

    normalize("booking_number", "hl-12345678")
    → {"hl-12345678", "HL-12345678", "HL12345678", "12345678"}

Pure functions, no I/O. Unparseable input yields an empty set.
"""

import re
from typing import Any, Iterable, Optional

from models.document import IdentifierType
from utils.text_utils import compact_reference, to_ascii_upper

# Carrier code plus digits, e.g. HLA12345678, MAEU263805268
CARRIER_PREFIXED_BOOKING = re.compile(r"^([A-Z]{2,4})(\d{5,})$")

# SCAC code (4 letters) followed by the carrier's own number
SCAC_PREFIXED_BILL = re.compile(r"^([A-Z]{4})([A-Z0-9]{6,})$")

# ISO 6346: owner code + category letter + 6 digit serial + check digit
CONTAINER_NUMBER = re.compile(r"^[A-Z]{4}\d{7}$")

MIN_REFERENCE_LENGTH = 4
MIN_NUMERIC_VARIANT_LENGTH = 6

# Words the extractor returns when it mistakes a label for a value
PLACEHOLDER_VALUES = {
    "CONFIRMATION", "BOOKING", "BOOKINGNUMBER", "BOOKINGNO", "BOOKINGCONFIRMATION",
    "AMENDMENT", "CANCELLATION", "TBD", "TBA", "NA", "NONE", "NULL", "UNKNOWN",
    "PENDING", "DRAFT", "NUMBER", "REFERENCE", "NOTPROVIDED",
}


def is_plausible_reference(value: Optional[str]) -> bool:
    """
    Reject values that cannot be a real reference number.

    Needs at least 4 characters after compaction, at least one digit,
    and must not be a placeholder word ("TBD", "CONFIRMATION", ...).
    """
    compact = compact_reference(value)
    if len(compact) < MIN_REFERENCE_LENGTH:
        return False
    if not any(c.isdigit() for c in compact):
        return False
    return compact not in PLACEHOLDER_VALUES


def booking_variants(raw_value: str) -> set[str]:
    stripped = raw_value.strip()
    if not is_plausible_reference(stripped):
        return set()

    upper = to_ascii_upper(stripped)
    compact = compact_reference(stripped)
    variants = {stripped, upper, compact}

    digits = "".join(c for c in compact if c.isdigit())
    if len(digits) >= MIN_NUMERIC_VARIANT_LENGTH:
        variants.add(digits)

    match = CARRIER_PREFIXED_BOOKING.match(compact)
    if match:
        variants.add(match.group(2))

    return {v for v in variants if v}


def bill_variants(raw_value: str) -> set[str]:
    if not is_plausible_reference(raw_value):
        return set()

    compact = compact_reference(raw_value)
    variants = {compact}

    match = SCAC_PREFIXED_BILL.match(compact)
    if match and any(c.isdigit() for c in match.group(2)):
        variants.add(match.group(2))

    return variants


def container_variants(raw_value: str) -> set[str]:
    compact = compact_reference(raw_value)
    if CONTAINER_NUMBER.match(compact):
        return {compact}
    return set()


def thread_variants(raw_value: str) -> set[str]:
    stripped = raw_value.strip()
    return {stripped} if stripped else set()


_NORMALIZERS = {
    IdentifierType.BOOKING_NUMBER.value: booking_variants,
    IdentifierType.BILL_OF_LADING_NUMBER.value: bill_variants,
    IdentifierType.MBL_NUMBER.value: bill_variants,
    IdentifierType.HBL_NUMBER.value: bill_variants,
    IdentifierType.CONTAINER_NUMBER.value: container_variants,
    IdentifierType.THREAD_ID.value: thread_variants,
}


def normalize(identifier_type: Any, raw_value: Any) -> set[str]:
    """
    Canonical variants of one identifier.

    Args:
        identifier_type: IdentifierType or its string value
        raw_value: Value as extracted (str, int, or None)

    Returns:
        Set of variants; empty for unknown types or unusable values
    """
    if raw_value is None or isinstance(raw_value, bool):
        return set()

    type_name = str(getattr(identifier_type, "value", identifier_type) or "").strip().lower()
    normalizer = _NORMALIZERS.get(type_name)
    if normalizer is None:
        return set()

    if isinstance(raw_value, (int, float)):
        raw_value = str(int(raw_value)) if float(raw_value).is_integer() else str(raw_value)
    if not isinstance(raw_value, str):
        return set()

    return normalizer(raw_value)


def normalize_many(identifier_type: Any, raw_values: Iterable[Any]) -> set[str]:
    """Union of variants for several raw values of the same type."""
    variants: set[str] = set()
    for raw_value in raw_values or []:
        variants |= normalize(identifier_type, raw_value)
    return variants
