"""
Sender classification for classified documents.

Direction (did we receive it or send it) and authority (how far the
sender is from the carrier) both come from the sender's mail domain.
"""

from typing import Optional, Sequence

from config.settings import get_settings
from models.document import Direction
from models.link import EmailAuthority
from utils.text_utils import email_domain


def _matches(domain: str, fragments: Sequence[str]) -> bool:
    return any(fragment.lower() in domain for fragment in fragments if fragment)


def derive_direction(
    sender_email: Optional[str],
    internal_domains: Optional[Sequence[str]] = None
) -> Direction:
    """
    Outbound when we sent it, inbound otherwise.

    Args:
        sender_email: Envelope sender of the document
        internal_domains: Our own mail domains (defaults to settings)
    """
    if internal_domains is None:
        internal_domains = get_settings().internal_domains

    domain = email_domain(sender_email)
    if domain and _matches(domain, internal_domains):
        return Direction.OUTBOUND
    return Direction.INBOUND


def determine_authority(
    sender_email: Optional[str],
    true_sender_email: Optional[str] = None,
    carrier_domains: Optional[Sequence[str]] = None,
    internal_domains: Optional[Sequence[str]] = None
) -> EmailAuthority:
    """
    Classify how authoritative the sender is.

    The original sender wins over the envelope sender when the mail was
    forwarded. A carrier address seen only through a forward is
    FORWARDED_CARRIER; only DIRECT_CARRIER earns the confidence bonus.
    Missing or unparseable addresses count as INTERNAL.
    """
    settings = get_settings()
    if carrier_domains is None:
        carrier_domains = settings.carrier_domains
    if internal_domains is None:
        internal_domains = settings.internal_domains

    address = true_sender_email or sender_email
    domain = email_domain(address)
    if not domain:
        return EmailAuthority.INTERNAL

    if _matches(domain, carrier_domains):
        forwarded = (
            true_sender_email
            and sender_email
            and true_sender_email.strip().lower() != sender_email.strip().lower()
        )
        return EmailAuthority.FORWARDED_CARRIER if forwarded else EmailAuthority.DIRECT_CARRIER

    if _matches(domain, internal_domains):
        return EmailAuthority.INTERNAL

    return EmailAuthority.THIRD_PARTY
