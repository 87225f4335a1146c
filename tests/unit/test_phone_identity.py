"""
Unit tests for shared/phone_identity.py

Tests coverage:
- normalize_phone(): masks, trunk zero, mobile digit, international input
- normalize_phone(): rejection of unrecognized digit counts
- generate_customer_id(): deterministic, namespaced, collision-resistant width
"""

import hashlib

import pytest

from shared.errors import InvalidArgumentError
from shared.phone_identity import generate_customer_id, get_country_code, normalize_phone


class TestNormalizePhone:
    """Test normalize_phone() canonicalization rules."""

    def test_country_code_passthrough(self):
        assert normalize_phone("+55 11 98765-4321") == "+5511987654321"

    def test_country_code_twelve_digits(self):
        assert normalize_phone("55 11 8765-4321") == "+551187654321"

    def test_mobile_digit_dropped(self):
        assert normalize_phone("(11) 98765-4321") == "+551187654321"

    def test_landline_passthrough(self):
        assert normalize_phone("(11) 3456-7890") == "+551134567890"

    def test_trunk_zero_stripped(self):
        assert normalize_phone("011 3456-7890") == "+551134567890"

    def test_trunk_zero_and_mobile_digit(self):
        assert normalize_phone("0 11 98765-4321") == "+551187654321"

    def test_masks_ignored(self):
        assert normalize_phone("11.3456.7890") == normalize_phone("1134567890")

    @pytest.mark.parametrize("raw", ["", "12345", "123456789", "+1 (555) 01", "abc", "55 11 98765-4321 0000"])
    def test_unrecognized_rejected(self, raw):
        with pytest.raises(InvalidArgumentError) as exc_info:
            normalize_phone(raw)
        assert "digit_count" in exc_info.value.details

    def test_fifteen_digit_international_accepted(self):
        assert normalize_phone("+55 11 98765-432100") == "+551198765432100"

    def test_non_string_rejected(self):
        with pytest.raises(InvalidArgumentError):
            normalize_phone(11987654321)

    def test_country_code_lookup(self):
        assert get_country_code("BR") == "55"
        assert get_country_code("pt") == "351"

    def test_unknown_region_rejected(self):
        with pytest.raises(InvalidArgumentError):
            get_country_code("ZZ")


class TestGenerateCustomerId:
    """Test generate_customer_id() derivation."""

    def test_prefix_and_length(self):
        customer_id = generate_customer_id("+551187654321")
        assert customer_id.startswith("customer_")
        assert len(customer_id) == len("customer_") + 32

    def test_deterministic(self):
        assert generate_customer_id("+551187654321") == generate_customer_id("+551187654321")

    def test_hash_of_digits(self):
        expected = hashlib.sha256(b"551187654321").hexdigest()[:32]
        assert generate_customer_id("+551187654321") == f"customer_{expected}"

    def test_same_person_any_input_format(self):
        a = generate_customer_id(normalize_phone("(11) 98765-4321"))
        b = generate_customer_id(normalize_phone("011 98765 4321"))
        assert a == b

    def test_different_phones_differ(self):
        assert generate_customer_id("+551187654321") != generate_customer_id("+551187654322")

    def test_empty_rejected(self):
        with pytest.raises(InvalidArgumentError):
            generate_customer_id("")
