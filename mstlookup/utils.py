# utils.py
# -*- coding: utf-8 -*-

"""
Utility functions cho mstlookup
"""

import re

from mstlookup.exceptions import ValidationError
from mstlookup.constants import (
    ERR_INVALID_QUERY,
    ERR_QUERY_TOO_SHORT,
    ERR_QUERY_TOO_LONG,
    MIN_QUERY_LENGTH,
    MAX_QUERY_LENGTH,
    MIN_TAX_CODE_LENGTH,
    MAX_TAX_CODE_LENGTH
)

TAX_CODE_PATTERN = re.compile(r'^\d[\d-]{8,13}$')


def is_tax_code_query(query: str) -> bool:
    """
    Kiểm tra query có dạng mã số thuế hay không (chữ số và dấu gạch, 10-14 ký tự).

    Args:
        query: Query đã strip

    Returns:
        True nếu tra cứu theo MST, False nếu tra cứu theo tên
    """
    if not query or not isinstance(query, str):
        return False
    if not TAX_CODE_PATTERN.match(query):
        return False
    return MIN_TAX_CODE_LENGTH <= len(query) <= MAX_TAX_CODE_LENGTH


def validate_query(query: str) -> str:
    """
    Validate query trước khi đưa vào engine (phía caller).

    Args:
        query: Tên công ty hoặc mã số thuế

    Returns:
        Query đã strip

    Raises:
        ValidationError: Nếu query rỗng, quá ngắn hoặc quá dài
    """
    if not query or not isinstance(query, str) or not query.strip():
        raise ValidationError(ERR_INVALID_QUERY, field="query")

    cleaned = query.strip()

    if len(cleaned) < MIN_QUERY_LENGTH:
        raise ValidationError(ERR_QUERY_TOO_SHORT.format(min_length=MIN_QUERY_LENGTH), field="query")

    if len(cleaned) > MAX_QUERY_LENGTH:
        raise ValidationError(ERR_QUERY_TOO_LONG.format(max_length=MAX_QUERY_LENGTH), field="query")

    return cleaned


def shorten(value: str, limit: int) -> str:
    """Rút gọn chuỗi dài để ghi log"""
    if len(value) > limit:
        return value[:limit] + "..."
    return value
