"""Shared validation utilities"""

import re
import uuid
from typing import Iterable, List, Optional

# ISO-4217 codes accepted for lesson prices
SUPPORTED_CURRENCIES = {"NOK", "SEK", "DKK", "EUR", "USD", "GBP"}

MAX_MATERIAL_ITEMS = 50
MAX_MATERIAL_LENGTH = 200


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


def validate_currency(currency: Optional[str]) -> Optional[str]:
    """
    Validate and normalize an ISO-4217 currency code.

    Args:
        currency: Currency code in any case, e.g. "nok"

    Returns:
        Upper-case currency code

    Raises:
        ValueError: If the code is malformed or not supported
    """
    if not currency:
        return currency

    code = currency.strip().upper()
    if not re.fullmatch(r"[A-Z]{3}", code):
        raise ValueError("Currency must be a 3-letter ISO code")
    if code not in SUPPORTED_CURRENCIES:
        raise ValueError(f"Unsupported currency: {code}")
    return code


def validate_optional_text(value: Optional[str], max_length: int, field_name: str) -> Optional[str]:
    """Strip free text; blank becomes None"""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if len(value) > max_length:
        raise ValueError(f"{field_name} cannot exceed {max_length} characters")
    return value


def clean_material_list(items: Optional[Iterable[str]]) -> List[str]:
    """
    Normalize a preparation/required materials list.

    Keeps order, strips whitespace, drops blanks and duplicates.

    Raises:
        ValueError: If the list or one of its entries is too long
    """
    if not items:
        return []

    cleaned: List[str] = []
    seen = set()
    for item in items:
        text = (item or "").strip()
        if not text or text in seen:
            continue
        if len(text) > MAX_MATERIAL_LENGTH:
            raise ValueError(f"Material entries cannot exceed {MAX_MATERIAL_LENGTH} characters")
        seen.add(text)
        cleaned.append(text)

    if len(cleaned) > MAX_MATERIAL_ITEMS:
        raise ValueError(f"At most {MAX_MATERIAL_ITEMS} materials can be listed")
    return cleaned
