# mstlookup package
# -*- coding: utf-8 -*-

"""
Mstlookup - Tra cứu thông tin công ty theo mã số thuế hoặc tên từ masothue.com
"""

__version__ = "1.0.0"

from mstlookup.models import CompanyRecord, LookupQuery, Fingerprint, StepRecord
from mstlookup.engine import LookupEngine
from mstlookup.proxy_pool import ProxyPool
from mstlookup.fingerprint import FingerprintGenerator
from mstlookup.rate_limiter import RateLimiter, RateLimitResult, resolve_client_ip
from mstlookup.address import parse_address
from mstlookup.exceptions import (
    MstLookupError,
    ConfigurationError,
    BotDetectedError,
    CompanyNotFoundError,
    TaxCodeMismatchError,
    NetworkError,
    ValidationError
)


def lookup(query: str, proxy_file: str = None, **engine_options) -> CompanyRecord:
    """
    Tra cứu nhanh một công ty.

    Args:
        query: Mã số thuế hoặc tên công ty
        proxy_file: File danh sách proxy (None = kết nối trực tiếp)
        engine_options: Tham số bổ sung cho LookupEngine (max_attempts, timeout, ...)

    Raises:
        ValidationError: Nếu query không hợp lệ
        ConfigurationError: Nếu file proxy không đọc được hoặc rỗng
    """
    from mstlookup.utils import validate_query

    cleaned = validate_query(query)
    pool = ProxyPool.from_file(proxy_file) if proxy_file else ProxyPool()
    return LookupEngine(proxy_pool=pool, **engine_options).lookup(cleaned)


__all__ = [
    "CompanyRecord",
    "LookupQuery",
    "Fingerprint",
    "StepRecord",
    "LookupEngine",
    "ProxyPool",
    "FingerprintGenerator",
    "RateLimiter",
    "RateLimitResult",
    "resolve_client_ip",
    "parse_address",
    "lookup",
    "MstLookupError",
    "ConfigurationError",
    "BotDetectedError",
    "CompanyNotFoundError",
    "TaxCodeMismatchError",
    "NetworkError",
    "ValidationError",
    "__version__"
]
