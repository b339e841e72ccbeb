"""
Normalization service for inbound lead data.
"""
import logging
from typing import Any, List

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ('name', 'email', 'phone', 'mobile_number', 'source_url')


def normalize_value(value: Any) -> Any:
    """
    Normalize a single scalar value.

    - Strings: trim whitespace
    - Numbers: converted to strings (phone numbers often arrive as ints)
    """
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def normalize_additional_data(items: Any) -> List[dict]:
    """
    Normalize `additional_data` into a list of {'key', 'value'} pairs.

    Non-list input yields an empty list; items without both a key and a
    value are dropped.
    """
    if not isinstance(items, list):
        return []

    result = []
    for item in items:
        if not isinstance(item, dict):
            continue
        key = normalize_value(item.get('key'))
        value = normalize_value(item.get('value'))
        if key and value not in (None, ''):
            result.append({'key': str(key), 'value': str(value)})
    return result


def normalize(payload: dict) -> dict:
    """
    Normalizes lead data.

    Operations:
    - Trim whitespace from contact fields
    - Lowercase email addresses
    - Fold `mobile_number` into `phone` when only one is given
    - Clean `additional_data` pairs

    Args:
        payload: Raw lead data

    Returns:
        Normalized payload with cleaned data
    """
    if not payload:
        return {}

    normalized = {}
    for field in CONTACT_FIELDS:
        value = normalize_value(payload.get(field))
        if value not in (None, ''):
            normalized[field] = value

    if isinstance(normalized.get('email'), str):
        normalized['email'] = normalized['email'].lower()

    if 'phone' not in normalized and 'mobile_number' in normalized:
        normalized['phone'] = normalized['mobile_number']

    normalized['additional_data'] = normalize_additional_data(payload.get('additional_data'))

    logger.debug(f"Normalized payload: {normalized}")
    return normalized
