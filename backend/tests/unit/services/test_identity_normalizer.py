"""
Unit tests for the identity normalizer.
Table-driven per input format, plus totality and idempotence.
"""

import pytest

from services.identity.identity_normalizer_service import (
    EXTRACTION_PATTERNS, IdentityNormalizerService, identities_match, identity_key,
    match_key, normalize
)


PATTERNS = {step.name: step for step in EXTRACTION_PATTERNS}


class TestNormalizeFormats:
    """One case per supported raw format."""

    @pytest.mark.parametrize("raw, expected", [
        # structured badges
        ('{"cedula":"9-234-567"}', "9-234-567"),
        ('{"id": "ID-777", "cedula": "1-234-5678"}', "1-234-5678"),
        ('{"numero": 12345678}', "12345678"),
        # QR text
        ("Texto - PE-456-789", "PE-456-789"),
        # labelled
        ("Cédula: 12345678", "12345678"),
        ("ID: AB123456", "AB123456"),
        ("DNI 87654321", "87654321"),
        ("DOC: 4455667", "4455667"),
        # country shapes
        ("V-12345678", "12345678"),
        ("8-123-456", "8-123-456"),
        ("N1-22-333", "N1-22-333"),
        ("ABC1234567", "ABC1234567"),
        # bare digits and generic tokens
        ("Badge 1234567890 issued", "1234567890"),
        ("emp-00x7", "emp-00x7"),
        # whitespace-stripped shape
        ("ab c", "abc"),
        # digit runs not delimited by word boundaries
        ("x_12345678_y", "12345678"),
        ("ref_12345_z_123456789_w", "123456789"),
        # fallback
        ("a b !", "ab!"),
    ])
    def test_format(self, raw, expected):
        assert normalize(raw) == expected

    def test_surrounding_whitespace_ignored(self):
        assert normalize("   8-123-456  \n") == "8-123-456"


class TestNormalizeTotality:
    """normalize never raises and handles empty input."""

    @pytest.mark.parametrize("raw", [None, "", "   ", "\t\n"])
    def test_empty_input(self, raw):
        assert normalize(raw) == ""

    @pytest.mark.parametrize("raw", [
        "{", "[]", "null", '{"cedula": null}', '{"cedula": "a"}', "😀😀😀",
        "Cédula:", "----", "\x00\x01", "9" * 200, "Texto - ", 42,
    ])
    def test_never_raises(self, raw):
        assert isinstance(normalize(raw), str)

    def test_internal_failure_returns_trimmed_input(self, monkeypatch):
        """Errors inside the cascade fall back to the trimmed text."""
        def boom(text):
            raise RuntimeError("broken pattern")

        monkeypatch.setattr(
            "services.identity.identity_normalizer_service._normalize_once", boom
        )
        assert normalize("  raw value ") == "raw value"


class TestNormalizeIdempotence:
    """normalize(normalize(x)) == normalize(x)."""

    @pytest.mark.parametrize("raw", [
        "", '{"cedula":"9-234-567"}', "Texto - PE-456-789", "8-123-456",
        "Cédula: ID 12345678", "ID: ID: 999999999", '{"doc": "Texto - 77-888-999"}',
        "x_12345678_y", "a b !", "DOCUMENTO DNI V-1234567", "Texto - Texto - 1234567",
        "V-12-345-678", "nombre: Ana, cedula 8-765-4321", "!!", "   ",
    ])
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once


class TestExtractionPatterns:
    """Each cascade step extracts its own shape."""

    @pytest.mark.parametrize("name, text, expected", [
        ("qr_text", "Texto - ABC-1", "ABC-1"),
        ("cedula_label", "cedula=1234567", "1234567"),
        ("id_label", "ID:XY-1234", "XY-1234"),
        ("dni_label", "dni 7654321", "7654321"),
        ("doc_label", "DOCUMENTO-556677", "556677"),
        ("ve_ec_prefix", "E-1234567", "1234567"),
        ("hyphenated_national_id", "no. 8-123-456 ok", "8-123-456"),
        ("prefixed_hyphenated_id", "A12-34-56", "A12-34-56"),
        ("alphanumeric_prefix", "PA1234567", "PA1234567"),
        ("long_digit_run", "code 1234567", "1234567"),
        ("generic_token", "emp-00x7", "emp-00x7"),
    ])
    def test_pattern(self, name, text, expected):
        assert PATTERNS[name].extract(text) == expected

    def test_prefixed_hyphenated_is_case_sensitive(self):
        assert PATTERNS["prefixed_hyphenated_id"].extract("a12-34-56") is None

    def test_cascade_order(self):
        """Labels are tried before generic shapes."""
        names = [step.name for step in EXTRACTION_PATTERNS]
        assert names[0] == "qr_text"
        assert names[-1] == "generic_token"
        assert names.index("id_label") < names.index("long_digit_run")


class TestIdentityMatching:
    """Keys and identity comparison."""

    def test_identity_key_strips_non_key_chars(self):
        assert identity_key("Cédula: 8-123-456") == "8-123-456"
        assert identity_key("a b !") == "ab"

    def test_match_raw_and_structured(self):
        assert identities_match("8-123-456", '{"cedula":"8-123-456"}')
        assert identities_match(" 8-1-1 ", "8-1-1")

    def test_different_identities(self):
        assert not identities_match("8-1-1", "8-2-2")

    def test_blank_never_matches(self):
        assert not identities_match("", "")
        assert not identities_match(None, "8-1-1")

    def test_punctuation_only_identities_stay_distinct(self):
        assert match_key("!!") != match_key("@@")
        assert not identities_match("!!", "@@")

    def test_service_wrapper(self):
        service = IdentityNormalizerService()
        assert service.normalize("Texto - PE-456-789") == "PE-456-789"
        assert service.key("ID: AB123456") == "AB123456"
        assert service.matches("V-12345678", "12345678")
