"""
qvi_chips.products

Parsing of free-text product names into brand and pack size.

Product names in the point-of-sale extract look like
``"Smiths Crinkle Cut  Chips Barbecue 170g"`` or
``"Natural ChipCo Hony Soy Chckn175g"``: a leading brand word (sometimes an
abbreviation), flavour text, and a weight in grams that is not always
separated from the preceding word.
"""

from __future__ import annotations

import re
from typing import Dict, NamedTuple, Optional

from .errors import ParseError


# Known alternative spellings of the same brand, keyed by the uppercased
# leading token. No target value may also appear as a key.
BRAND_ALIASES: Dict[str, str] = {
    "DORITO": "DORITOS",
    "GRAIN": "GRNWVES",
    "INFZNS": "INFUZIONS",
    "NCC": "NATURAL",
    "RED": "RRD",
    "SMITH": "SMITHS",
    "SNBTS": "SUNBITES",
    "WW": "WOOLWORTHS",
}

_WHITESPACE = re.compile(r"\s+")
_GRAMS = re.compile(r"(\d+)\s*g\b", flags=re.IGNORECASE)
_DIGITS = re.compile(r"\d+")


class ProductInfo(NamedTuple):
    brand: str
    pack_size: Optional[int]


def normalize_product_name(name: str) -> str:
    """Drop ``&`` and collapse runs of whitespace."""
    if not isinstance(name, str):
        raise ParseError("product name is not text", value=name)
    return _WHITESPACE.sub(" ", name.replace("&", "")).strip()


def resolve_brand(token: str) -> str:
    token = token.upper()
    return BRAND_ALIASES.get(token, token)


def extract_brand(name: str) -> str:
    """
    Brand is the first word of the normalized name, uppercased and collapsed
    through BRAND_ALIASES.
    """
    normalized = normalize_product_name(name)
    if not normalized:
        raise ParseError("product name has no brand token", value=name)
    return resolve_brand(normalized.split(" ", 1)[0])


def extract_pack_size(name: str) -> Optional[int]:
    """
    Weight in grams: the first number followed by a g unit, else the first
    run of digits. None when the name has no digits.
    """
    normalized = normalize_product_name(name)
    m = _GRAMS.search(normalized)
    if m:
        return int(m.group(1))
    m = _DIGITS.search(normalized)
    return int(m.group(0)) if m else None


def parse_product(name: str) -> ProductInfo:
    """
    Parse a raw product name.

    >>> parse_product("Kettle Chips 175g")
    ProductInfo(brand='KETTLE', pack_size=175)
    """
    return ProductInfo(brand=extract_brand(name), pack_size=extract_pack_size(name))


def matches_keyword(name: str, keywords) -> bool:
    """Case-insensitive substring match of name against any keyword."""
    if not isinstance(name, str):
        return False
    lowered = name.lower()
    return any(k.lower() in lowered for k in keywords)
