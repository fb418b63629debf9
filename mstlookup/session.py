# session.py
# -*- coding: utf-8 -*-

"""
Tạo HTTP session cho mỗi lượt thử: proxy riêng, cookie jar mới, header theo fingerprint.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Optional

import requests
import urllib3
from curl_cffi import requests as cffi_requests
from curl_cffi.requests.exceptions import RequestException as CffiRequestException

from mstlookup.config import HTTP_BACKEND, CURL_CFFI_IMPERSONATE, MAX_REDIRECTS
from mstlookup.constants import ERR_REQUEST_TIMEOUT
from mstlookup.exceptions import NetworkError
from mstlookup.models import Fingerprint

logger = logging.getLogger(__name__)

# Exceptions tầng transport của cả hai backend
TRANSPORT_ERRORS = (requests.RequestException, CffiRequestException)

BACKENDS = ("requests", "curl_cffi")


def build_session(proxy_url: Optional[str], fingerprint: Fingerprint, backend: str = None):
    """
    Tạo session mới cho một lượt thử.
    Chứng chỉ SSL của site đích không được kiểm tra (verify=False).

    Args:
        proxy_url: Proxy URL hoặc None (kết nối trực tiếp)
        fingerprint: Header dùng mặc định cho session
        backend: "requests" hoặc "curl_cffi" (mặc định theo config)

    Returns:
        Session có method get() tương thích requests
    """
    backend = backend or HTTP_BACKEND
    proxies = {"http": proxy_url, "https": proxy_url} if proxy_url else None

    if backend == "curl_cffi":
        # Giả lập TLS fingerprint của Chrome, header vẫn theo fingerprint
        session = cffi_requests.Session(
            impersonate=CURL_CFFI_IMPERSONATE,
            headers=fingerprint.as_dict(),
            proxies=proxies,
            verify=False,
            max_redirects=MAX_REDIRECTS
        )
        logger.debug(f"Using curl_cffi session (impersonate={CURL_CFFI_IMPERSONATE})")
        return session

    if backend != "requests":
        raise ValueError(f"Unknown HTTP backend: {backend} (expected one of {BACKENDS})")

    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    session = requests.Session()
    session.headers.clear()
    session.headers.update(fingerprint.as_dict())
    session.verify = False
    session.max_redirects = MAX_REDIRECTS
    if proxies:
        session.proxies.update(proxies)
    logger.debug("Using requests session")
    return session


def fetch(session, url: str, timeout: float, connect_timeout: float, headers: dict = None):
    """
    GET với tổng thời gian tối đa `timeout` giây (kết nối + header + body).

    Timeout của requests/curl_cffi chỉ giới hạn từng lần đọc socket, nên server
    trả body nhỏ giọt có thể giữ request rất lâu. Request chạy trong worker thread
    và bị bỏ khi hết hạn; worker tự kết thúc theo read timeout của nó.

    Args:
        session: Session của lượt thử
        url: URL cần tải
        timeout: Tổng thời gian tối đa (giây)
        connect_timeout: Thời gian tối đa để thiết lập kết nối (giây)
        headers: Header riêng cho request này

    Returns:
        Response đã đọc xong body

    Raises:
        NetworkError: Khi vượt quá tổng thời gian
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mstlookup-fetch")
    future = executor.submit(session.get, url, headers=headers, timeout=(connect_timeout, timeout))
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        logger.warning(f"Request to {url} exceeded {timeout}s, abandoning it")
        raise NetworkError(ERR_REQUEST_TIMEOUT.format(timeout=timeout, url=url), url=url) from None
    finally:
        executor.shutdown(wait=False)
