"""Product-code and product-name business rules."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Mapping, Sequence

DEFAULT_BRAND = "Other"
DEFAULT_CATEGORY = "Unassigned"
DEFAULT_FAMILY = "Other"


def _matches_prefix(code: str, prefixes: Iterable[str]) -> bool:
    code = (code or "").strip()
    return any(prefix and code.startswith(prefix) for prefix in prefixes)


def is_manufactured(code: str, prefixes: Sequence[str]) -> bool:
    """Own-production products route to manufactured sales; the rest is merchandise."""
    return _matches_prefix(code, prefixes)


def is_no_expiry_code(code: str, prefixes: Sequence[str]) -> bool:
    return _matches_prefix(code, prefixes)


def has_no_expiration(expiration_date: date | None, sentinel_year: int = 9999) -> bool:
    """Empty expiration, or a sentinel far-future date, means the batch never expires."""
    return expiration_date is None or expiration_date.year >= sentinel_year


def infer_brand(name: str, keywords: Mapping[str, Sequence[str]]) -> tuple[str, str]:
    """
    Guess (brand, category) from the product name.

    First keyword found in the name wins, in mapping order.
    """
    for keyword, (brand, category) in keywords.items():
        if keyword and keyword in (name or ""):
            return brand, category
    return DEFAULT_BRAND, DEFAULT_CATEGORY
