# address.py
# -*- coding: utf-8 -*-

"""
Tách địa chỉ dạng text thành các thành phần (đường, phường/xã, tỉnh/thành phố, quốc gia).
"""

import re
import unicodedata

from mstlookup.config import HOME_COUNTRY
from mstlookup.models import ParsedAddress

COUNTRY_KEYWORDS = ("việt nam",)
STATE_KEYWORDS = ("tỉnh", "thành phố")
STATE_PREFIX = re.compile(r'^tp[\s.]')
CITY_KEYWORDS = ("phường", "xã", "đặc khu", "quận")


def _contains_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def parse_address(address: str) -> ParsedAddress:
    """
    Tách địa chỉ theo dấu phẩy và duyệt từ phải sang trái
    (theo thứ tự "số nhà, phường, tỉnh, quốc gia" của masothue).

    Args:
        address: Địa chỉ đầy đủ

    Returns:
        ParsedAddress; country mặc định là Việt Nam nếu không nhận diện được
    """
    parts = [part.strip() for part in (address or "").split(",")]
    parts = [part for part in parts if part]

    country = None
    state_province = None
    city = None
    line1_parts = []

    for part in reversed(parts):
        lowered = unicodedata.normalize("NFC", part).lower()

        if country is None and _contains_any(lowered, COUNTRY_KEYWORDS):
            country = part
            continue

        if state_province is None and (
            _contains_any(lowered, STATE_KEYWORDS) or STATE_PREFIX.match(lowered)
        ):
            state_province = part
            continue

        if city is None and _contains_any(lowered, CITY_KEYWORDS):
            city = part
            continue

        line1_parts.insert(0, part)

    return ParsedAddress(
        line1=", ".join(line1_parts) if line1_parts else None,
        city=city,
        state_province=state_province,
        country=country or HOME_COUNTRY
    )
