"""
Validation service for inbound webhook leads.
"""
import re
import logging
from typing import List, Optional, Tuple

from django.conf import settings

logger = logging.getLogger(__name__)

# Rejection codes (configurable in settings)
MISSING_REQUIRED_FIELD = getattr(settings, 'MISSING_REQUIRED_FIELD', 'MISSING_REQUIRED_FIELD')
INVALID_EMAIL = getattr(settings, 'INVALID_EMAIL', 'INVALID_EMAIL')

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

# Required fields per entry point
BY_ROTATION_REQUIRED_FIELDS = ['name', 'email', 'phone']
BY_SOURCE_REQUIRED_FIELDS = ['name', 'email', 'mobile_number', 'source_url']


def is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return value == '' or value == [] or value == {}


def find_missing_fields(payload: dict, required_fields: List[str]) -> List[str]:
    """Required fields that are absent, null or blank, in the order given."""
    return [field for field in required_fields if is_blank(payload.get(field))]


def is_valid_email(value) -> bool:
    return isinstance(value, str) and bool(EMAIL_PATTERN.match(value.strip()))


def validate_lead(payload: dict, required_fields: List[str]) -> Tuple[bool, Optional[str], List[str]]:
    """
    Validates an inbound lead against the entry point's required fields.

    Rules:
    1. Every required field must be present and non-blank
    2. email must look like local@domain.tld

    Args:
        payload: Raw webhook body
        required_fields: Fields the entry point requires

    Returns:
        Tuple of (is_valid, rejection_code, fields)
        - is_valid: True if the lead passes all rules
        - rejection_code: MISSING_REQUIRED_FIELD or INVALID_EMAIL, None if valid
        - fields: The missing or invalid field names
    """
    logger.debug("Validating lead payload: %s", payload)
    if not isinstance(payload, dict) or not payload:
        logger.debug("Validation failed: empty payload")
        return False, MISSING_REQUIRED_FIELD, list(required_fields)

    missing = find_missing_fields(payload, required_fields)
    if missing:
        logger.debug(f"Validation failed: missing required fields {missing}")
        return False, MISSING_REQUIRED_FIELD, missing

    if not is_valid_email(payload.get('email')):
        logger.debug(f"Validation failed: invalid email '{payload.get('email')}'")
        return False, INVALID_EMAIL, ['email']

    logger.debug("Validation passed")
    return True, None, []
