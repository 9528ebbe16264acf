"""
Tests for country and postal-code normalization.
"""
import pytest

from app.ghl.country import normalize_country, normalize_countries_bulk, normalize_postal_code


class TestNormalizeCountry:
    """Tests for normalize_country."""

    @pytest.mark.parametrize("raw, expected", [
        ("US", "US"),
        ("u.s.", "US"),
        ("USA", "US"),
        ("GBR", "GB"),
        ("United States of America", "US"),
        ("germany", "DE"),
        ("UK", "GB"),
        ("England", "GB"),
        ("Estados Unidos", "US"),
        ("Holland", "NL"),
    ])
    def test_known_values(self, raw, expected):
        assert normalize_country(raw) == expected

    def test_words_inside_longer_text(self):
        assert normalize_country("USA - United States") == "US"

    def test_unknown_and_empty(self):
        assert normalize_country("Atlantis") is None
        assert normalize_country("") is None
        assert normalize_country(None) is None
        assert normalize_country(True) is None

    def test_bulk_counts(self):
        mapping, counts = normalize_countries_bulk(["USA", "us", "Canada", "Nowhere"])
        assert mapping["USA"] == "US"
        assert mapping["Nowhere"] is None
        assert counts == {"US": 2, "CA": 1}


class TestNormalizePostalCode:
    """Tests for normalize_postal_code."""

    def test_us_zip(self):
        assert normalize_postal_code("80202") == "80202"
        assert normalize_postal_code(" 80202-1234 ") == "80202-1234"
        assert normalize_postal_code("802021234") == "80202-1234"

    def test_us_rejects_malformed(self):
        assert normalize_postal_code("8020") is None
        assert normalize_postal_code("ABCDE") is None

    def test_canada_gets_space(self):
        assert normalize_postal_code("k1a0b1", "CA") == "K1A 0B1"

    def test_gb_gets_space_before_inward_code(self):
        assert normalize_postal_code("sw1a1aa", "GB") == "SW1A 1AA"

    def test_other_countries_pass_through(self):
        assert normalize_postal_code(" 10115 ", "DE") == "10115"

    def test_empty(self):
        assert normalize_postal_code(None) is None
        assert normalize_postal_code("  ") is None
