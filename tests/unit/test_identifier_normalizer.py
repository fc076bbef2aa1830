"""
Unit tests for identifier normalization.

Run: pytest tests/unit/test_identifier_normalizer.py -v
"""

import pytest

from models.document import IdentifierType
from services.identifier_normalizer import (
    is_plausible_reference,
    normalize,
    normalize_many,
)


class TestBookingVariants:
    """Tests for booking_number normalization."""

    def test_carrier_prefixed_booking(self):
        """Should produce original, uppercase, compact and unprefixed forms."""
        variants = normalize("booking_number", "hl-12345678")

        assert variants == {"hl-12345678", "HL-12345678", "HL12345678", "12345678"}

    def test_plain_numeric_booking(self):
        """Should keep a numeric booking as a single variant."""
        assert normalize("booking_number", "263805268") == {"263805268"}

    def test_scac_prefixed_booking_yields_number(self):
        """Should strip a four-letter carrier prefix."""
        variants = normalize("booking_number", "MAEU263805268")

        assert "MAEU263805268" in variants
        assert "263805268" in variants

    def test_full_width_characters_fold(self):
        """Should fold full-width OCR output to ASCII."""
        variants = normalize("booking_number", "ＨＬ１２３４５６７８")

        assert "HL12345678" in variants
        assert "12345678" in variants

    def test_integer_value(self):
        """Should accept numbers from extractors that emit ints."""
        assert normalize("booking_number", 263805268) == {"263805268"}

    def test_integral_float_value(self):
        """Should drop the .0 of an integral float."""
        assert normalize("booking_number", 263805268.0) == {"263805268"}

    def test_accepts_enum_type(self):
        """Should accept IdentifierType members as well as strings."""
        assert normalize(IdentifierType.BOOKING_NUMBER, "263805268") == {"263805268"}

    @pytest.mark.parametrize("value", ["CONFIRMATION", "TBD", "Booking No.", "123", "", "   "])
    def test_rejects_placeholders_and_short_values(self, value):
        """Should return no variants for labels and fragments."""
        assert normalize("booking_number", value) == set()


class TestBillVariants:
    """Tests for bill of lading normalization."""

    def test_scac_prefix_adds_carrier_number(self):
        """Should add the number without its SCAC prefix."""
        variants = normalize("mbl_number", "MAEU 123456789")

        assert variants == {"MAEU123456789", "123456789"}

    def test_hbl_without_scac(self):
        """Should keep a house bill as its compact form only."""
        assert normalize("hbl_number", "hbl-998877") == {"HBL998877"}

    def test_all_bill_types_share_rules(self):
        """Should normalize BL, MBL and HBL the same way."""
        raw = "MAEU 123456789"

        assert normalize("bill_of_lading_number", raw) == normalize("mbl_number", raw)
        assert normalize("hbl_number", raw) == normalize("mbl_number", raw)


class TestContainerVariants:
    """Tests for container number normalization."""

    def test_iso_container_number(self):
        """Should compact a spaced ISO 6346 number."""
        assert normalize("container_number", "msku 123456-7") == {"MSKU1234567"}

    def test_rejects_non_iso_value(self):
        """Should reject values that are not owner code + 7 digits."""
        assert normalize("container_number", "MSKU12345") == set()


class TestNormalizeEdgeCases:
    """Tests for inputs normalize() must tolerate."""

    @pytest.mark.parametrize("value", [None, True, False, ["263805268"], {"v": 1}])
    def test_unusable_values(self, value):
        """Should never raise on junk input."""
        assert normalize("booking_number", value) == set()

    def test_unknown_type(self):
        """Should return no variants for identifier kinds it does not know."""
        assert normalize("invoice_number", "INV-2024-001") == set()

    def test_thread_id_is_stripped(self):
        """Should keep thread ids verbatim apart from whitespace."""
        assert normalize("thread_id", "  Thread-AbC  ") == {"Thread-AbC"}

    def test_normalize_many_unions_values(self):
        """Should union the variants of every value and skip junk."""
        variants = normalize_many("booking_number", ["263805268", None, "TBD", "HL-12345678"])

        assert "263805268" in variants
        assert "HL12345678" in variants
        assert "TBD" not in variants

    def test_normalize_many_handles_none(self):
        assert normalize_many("booking_number", None) == set()


class TestPlausibleReference:
    """Tests for is_plausible_reference()"""

    def test_needs_a_digit(self):
        assert is_plausible_reference("ABCDEFG") is False

    def test_accepts_real_reference(self):
        assert is_plausible_reference("BKG-0505879") is True
