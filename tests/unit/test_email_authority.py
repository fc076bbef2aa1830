"""
Unit tests for sender direction and authority.

Run: pytest tests/unit/test_email_authority.py -v
"""

from models.document import Direction
from models.link import EmailAuthority
from services.email_authority import derive_direction, determine_authority

CARRIERS = ["maersk", "hlag"]
INTERNAL = ["intoglo.com"]


class TestDeriveDirection:
    """Tests for derive_direction()"""

    def test_internal_sender_is_outbound(self):
        assert derive_direction("ops@intoglo.com", INTERNAL) == Direction.OUTBOUND

    def test_external_sender_is_inbound(self):
        assert derive_direction("booking@maersk.com", INTERNAL) == Direction.INBOUND

    def test_missing_sender_is_inbound(self):
        assert derive_direction(None, INTERNAL) == Direction.INBOUND

    def test_display_name_form(self):
        """Should read the address inside angle brackets."""
        assert derive_direction("Ops Team <ops@intoglo.com>", INTERNAL) == Direction.OUTBOUND


class TestDetermineAuthority:
    """Tests for determine_authority()"""

    def test_direct_carrier(self):
        authority = determine_authority(
            "Maersk Line <noreply@maersk.com>",
            carrier_domains=CARRIERS,
            internal_domains=INTERNAL
        )

        assert authority == EmailAuthority.DIRECT_CARRIER

    def test_forwarded_carrier(self):
        """Should detect a carrier mail forwarded by a colleague."""
        authority = determine_authority(
            "ops@intoglo.com",
            true_sender_email="booking@maersk.com",
            carrier_domains=CARRIERS,
            internal_domains=INTERNAL
        )

        assert authority == EmailAuthority.FORWARDED_CARRIER

    def test_same_true_sender_is_direct(self):
        """Should ignore a true sender that only differs in case."""
        authority = determine_authority(
            "Booking@Maersk.com",
            true_sender_email="booking@maersk.com",
            carrier_domains=CARRIERS,
            internal_domains=INTERNAL
        )

        assert authority == EmailAuthority.DIRECT_CARRIER

    def test_internal_sender(self):
        authority = determine_authority("ops@intoglo.com", carrier_domains=CARRIERS, internal_domains=INTERNAL)

        assert authority == EmailAuthority.INTERNAL

    def test_third_party(self):
        authority = determine_authority("clerk@customer.example", carrier_domains=CARRIERS, internal_domains=INTERNAL)

        assert authority == EmailAuthority.THIRD_PARTY

    def test_missing_or_malformed_sender_is_internal(self):
        """Should fall back to INTERNAL when the domain cannot be read."""
        assert determine_authority(None, carrier_domains=CARRIERS, internal_domains=INTERNAL) == EmailAuthority.INTERNAL
        assert determine_authority("not-an-address", carrier_domains=CARRIERS, internal_domains=INTERNAL) == EmailAuthority.INTERNAL
