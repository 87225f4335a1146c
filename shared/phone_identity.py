"""
Customer identity helpers.

The canonical phone number is the stable identity anchor for customers:
- normalize_phone(): any user-typed phone -> canonical +<country><subscriber>
- generate_customer_id(): deterministic customer key derived from the canonical phone

Canonicalization rules (domestic numbering of the configured region):
- digits already starting with the country code and at least 12 long pass through
- a single leading trunk zero is dropped
- 11-digit domestic numbers lose the extra mobile digit inserted after the
  two-digit area code, leaving a 10-digit subscriber number
- 10-digit domestic numbers pass through unchanged
- anything else is rejected
"""

import hashlib
import logging

import phonenumbers

from shared.config import get_settings
from shared.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

AREA_CODE_LENGTH = 2
DOMESTIC_LENGTH = 10
DOMESTIC_MOBILE_LENGTH = 11
MIN_INTERNATIONAL_LENGTH = 12
# E.164 caps a full number, country code included, at 15 digits
MAX_INTERNATIONAL_LENGTH = 15

# Hex characters of the SHA-256 digest kept in the customer id (128 bits)
CUSTOMER_ID_HASH_LENGTH = 32


def get_country_code(region: str | None = None) -> str:
    """
    Return the calling code for a region as a digit string.

    Example:
        >>> get_country_code("BR")
        '55'
    """
    region = (region or get_settings().PHONE_REGION).upper()
    code = phonenumbers.country_code_for_region(region)
    if not code:
        raise InvalidArgumentError(f"Unknown phone region: {region}", {"region": region})
    return str(code)


def normalize_phone(raw: str, region: str | None = None) -> str:
    """
    Normalize a phone number to the canonical E.164-like format.

    Args:
        raw: Phone number in any format (masks, spaces, parentheses)
        region: Optional region override (defaults to PHONE_REGION)

    Returns:
        Canonical phone, e.g. "+551187654321"

    Raises:
        InvalidArgumentError: digit count matches no recognized pattern

    Examples:
        "(11) 98765-4321" -> "+551187654321"
        "011 8765-4321"   -> "+551187654321"
        "+55 11 98765-4321" -> "+5511987654321"
    """
    if not isinstance(raw, str):
        raise InvalidArgumentError("Phone number must be a string", {"phone": repr(raw)})

    country_code = get_country_code(region)
    digits = phonenumbers.normalize_digits_only(raw)

    if digits.startswith(country_code) and (
        MIN_INTERNATIONAL_LENGTH <= len(digits) <= MAX_INTERNATIONAL_LENGTH
    ):
        return f"+{digits}"

    domestic = digits[1:] if digits.startswith("0") else digits

    if len(domestic) == DOMESTIC_MOBILE_LENGTH:
        domestic = domestic[:AREA_CODE_LENGTH] + domestic[AREA_CODE_LENGTH + 1:]

    if len(domestic) == DOMESTIC_LENGTH:
        return f"+{country_code}{domestic}"

    logger.warning(f"Rejected phone number with {len(digits)} digits")
    raise InvalidArgumentError(
        "Invalid phone number format",
        {"digit_count": len(digits)},
    )


def generate_customer_id(canonical_phone: str) -> str:
    """
    Derive the customer id from a canonical phone.

    SHA-256 over the phone digits, truncated to 128 bits and prefixed with the
    configured namespace tag. Pure: the same phone always yields the same id.

    Example:
        >>> generate_customer_id("+551187654321").startswith("customer_")
        True
    """
    digits = phonenumbers.normalize_digits_only(canonical_phone or "")
    if not digits:
        raise InvalidArgumentError("Cannot derive customer id from an empty phone")

    digest = hashlib.sha256(digits.encode("ascii")).hexdigest()
    return f"{get_settings().CUSTOMER_ID_PREFIX}{digest[:CUSTOMER_ID_HASH_LENGTH]}"
