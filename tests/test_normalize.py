"""
Tests for text normalization: license numbers, city names, numeric coercion.
"""

import pytest

from listing_extractor.normalize import (
    clean_city_name,
    clean_license_number,
    clean_text,
    normalize_numeric_fields,
    parse_bathroom_count,
)


class TestCleanLicenseNumber:

    @pytest.mark.parametrize("raw", [
        "DRE #01234567",
        "CalDRE: 01234567",
        "CalBRE: 01234567",
        "License # 01234567",
        "Lic. 01234567",
        "BRE 01234567",
        "#01234567",
        "01234567",
        "01234567 (Active)",
        "Jane Doe (01234567)",
        "Jane Doe, 01234567",
        "Agent license 01234567 active",
    ])
    def test_prefix_variants_reduce_to_number(self, raw):
        assert clean_license_number(raw) == "01234567"

    def test_state_letter_dot_format(self):
        assert clean_license_number("S.0123456") == "S0123456"

    def test_state_format_inside_text(self):
        assert clean_license_number("NV License S.0123456") == "S0123456"

    def test_parenthesized_state_format(self):
        assert clean_license_number("Jane Smith (S.0123456)") == "S0123456"

    def test_hyphen_suffix_kept(self):
        assert clean_license_number("01234567-SA") == "01234567-SA"

    def test_none_passes_through(self):
        assert clean_license_number(None) is None

    def test_empty_passes_through(self):
        assert clean_license_number("") == ""

    @pytest.mark.parametrize("raw", [
        "DRE #01234567",
        "S.0123456",
        "Jane Doe (01234567)",
        "CalDRE: 01234567",
    ])
    def test_idempotent(self, raw):
        once = clean_license_number(raw)
        assert clean_license_number(once) == once

    def test_short_garbage_falls_back_to_stripped_text(self):
        assert clean_license_number("AB-12") == "AB-12"


class TestCleanCityName:

    def test_dashes_become_spaces(self):
        assert clean_city_name("san-francisco") == "San Francisco"

    def test_connectives_stay_lower(self):
        assert clean_city_name("isle-of-palms") == "Isle of Palms"

    def test_numeric_prefix_dropped(self):
        assert clean_city_name("94103_oakland") == "Oakland"

    def test_empty(self):
        assert clean_city_name("") == ""


class TestCleanText:

    def test_collapses_whitespace(self):
        assert clean_text("  3 bd \n\t 2 ba ") == "3 bd 2 ba"

    def test_blank_is_none(self):
        assert clean_text("   ") is None
        assert clean_text(None) is None


class TestNumericFields:

    def test_bathroom_fraction_formats(self):
        assert parse_bathroom_count("2 1/2") == 2.5
        assert parse_bathroom_count("2-1/2") == 2.5
        assert parse_bathroom_count("2bath1half") == 2.5
        assert parse_bathroom_count("2.5") == 2.5

    def test_normalize_converts_numeric_strings(self):
        out = normalize_numeric_fields({
            "price": "$750,000",
            "bathrooms": "2 1/2",
            "bedrooms": "3 beds",
            "squareFeet": "1,380",
            "yearBuilt": "1925",
            "address": "123 Main St",
        })
        assert out["price"] == 750000
        assert out["bathrooms"] == 2.5
        assert out["bedrooms"] == 3
        assert out["squareFeet"] == 1380
        assert out["yearBuilt"] == 1925
        assert out["address"] == "123 Main St"

    def test_empty_values_become_none(self):
        out = normalize_numeric_fields({"price": "", "bedrooms": None, "square_feet": "n/a"})
        assert out == {"price": None, "bedrooms": None, "square_feet": None}

    def test_numbers_untouched(self):
        assert normalize_numeric_fields({"price": 500000.5}) == {"price": 500000.5}

    def test_input_not_mutated(self):
        src = {"price": "$1,000"}
        normalize_numeric_fields(src)
        assert src == {"price": "$1,000"}
