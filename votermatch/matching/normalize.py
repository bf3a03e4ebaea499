"""Normalization of names, cities and zip codes before comparison."""

import re
from typing import Optional

_NON_NAME_CHARS = re.compile(r"[^a-z\s\-']")
_WHITESPACE = re.compile(r'\s+')


def normalize_name(name: Optional[str]) -> str:
    """
    Normalize a first or last name for matching.

    Lowercases, trims, drops everything except letters, spaces, hyphens and
    apostrophes, and collapses runs of whitespace.

    Only ASCII letters are kept: "Peña" becomes "pea", and a name written
    entirely in another script normalizes to "".

    Args:
        name: Name to normalize (None is treated as empty)

    Returns:
        Normalized name
    """
    if not name:
        return ""

    normalized = _NON_NAME_CHARS.sub('', name.lower().strip())
    return _WHITESPACE.sub(' ', normalized).strip()


def normalize_city(city: Optional[str]) -> str:
    """Lowercase, trim and collapse whitespace in a city name."""
    if not city:
        return ""
    return _WHITESPACE.sub(' ', city.lower().strip())


def normalize_zip(zip_code: Optional[str]) -> str:
    """First five characters of a trimmed zip code ("10001-1234" -> "10001")."""
    if not zip_code:
        return ""
    return zip_code.strip()[:5]


def normalize_address(address: Optional[str]) -> str:
    """Lowercase, trim and collapse whitespace in a street address."""
    if not address:
        return ""
    return _WHITESPACE.sub(' ', address.lower().strip())
