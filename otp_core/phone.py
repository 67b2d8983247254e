"""
Phone Utilities
===============
Functions for phone number validation and normalization.
"""

import re

from .errors import InvalidEmail, InvalidPhone

E164_PATTERN = re.compile(r'^\+[1-9]\d{7,14}$')


def validate_e164(phone: str) -> bool:
    """
    Validate E.164 phone number format.

    Args:
        phone: Phone number

    Returns:
        True if valid E.164 format
    """
    return bool(E164_PATTERN.match(phone))


def normalize_phone(phone: str, default_country: str = "91") -> str:
    """
    Normalize a phone number to E.164 format.

    Accepts ``+<cc><number>``, ``00<cc><number>``, a bare 10-digit national
    number (gets ``default_country``) or ``default_country`` followed by 10
    digits without the plus sign. Any other bare number is rejected.

    Args:
        phone: Raw phone number
        default_country: Default country code (without +)

    Returns:
        E.164 formatted number

    Raises:
        InvalidPhone: If the input cannot be normalized
    """
    if not isinstance(phone, str) or not phone.strip():
        raise InvalidPhone()

    raw = phone.strip()
    # Only separators a human would type are tolerated
    if re.search(r'[^\d\s\-().+]', raw) or raw.count('+') > 1 or ('+' in raw and not raw.startswith('+')):
        raise InvalidPhone()

    digits = re.sub(r'\D', '', raw)

    if raw.startswith('+'):
        candidate = f"+{digits}"
    elif digits.startswith('00'):
        candidate = f"+{digits[2:]}"
    elif len(digits) == 10:
        candidate = f"+{default_country}{digits}"
    elif digits.startswith(default_country) and len(digits) == len(default_country) + 10:
        candidate = f"+{digits}"
    else:
        # Bare numbers are national (10 digits) or default-country prefixed only
        raise InvalidPhone()

    if not validate_e164(candidate):
        raise InvalidPhone()
    return candidate


def mask_phone(phone: str) -> str:
    """Mask a phone number for logs."""
    if len(phone) <= 4:
        return "****"
    return f"{phone[:3]}****{phone[-2:]}"


def normalize_email(email: str) -> str:
    return email.strip().lower()


EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def validate_email(email: str) -> str:
    """Normalize an email address, raising InvalidEmail if it is malformed."""
    if not isinstance(email, str):
        raise InvalidEmail()
    normalized = normalize_email(email)
    if len(normalized) > 254 or not EMAIL_PATTERN.match(normalized):
        raise InvalidEmail()
    return normalized
