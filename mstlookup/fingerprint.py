# fingerprint.py
# -*- coding: utf-8 -*-

"""
Sinh browser fingerprint (bộ HTTP header) giống trình duyệt thật để tránh bị chặn bot.
"""

import random
import re
from typing import NamedTuple, Optional, Sequence

from mstlookup.config import BASE_URL
from mstlookup.models import Fingerprint


class BrowserProfile(NamedTuple):
    user_agent: str
    sec_ch_ua: Optional[str]  # None với Firefox/Safari
    platform: str


BROWSER_PROFILES = (
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        '"Google Chrome";v="131", "Chromium";v="131", "Not_A Brand";v="24"',
        "Windows",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
        '"Google Chrome";v="130", "Chromium";v="130", "Not_A Brand";v="24"',
        "Windows",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        '"Google Chrome";v="131", "Chromium";v="131", "Not_A Brand";v="24"',
        "macOS",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
        '"Google Chrome";v="130", "Chromium";v="130", "Not_A Brand";v="24"',
        "macOS",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
        '"Microsoft Edge";v="131", "Chromium";v="131", "Not_A Brand";v="24"',
        "Windows",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36 Edg/130.0.0.0",
        '"Microsoft Edge";v="130", "Chromium";v="130", "Not_A Brand";v="24"',
        "Windows",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
        '"Microsoft Edge";v="131", "Chromium";v="131", "Not_A Brand";v="24"',
        "macOS",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:130.0) Gecko/20100101 Firefox/130.0",
        None,
        "Windows",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:130.0) Gecko/20100101 Firefox/130.0",
        None,
        "macOS",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:131.0) Gecko/20100101 Firefox/131.0",
        None,
        "Windows",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36",
        '"Google Chrome";v="129", "Chromium";v="129", "Not_A Brand";v="24"',
        "Windows",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
        None,
        "macOS",
    ),
)

ACCEPT_LANGUAGES = (
    "vi-VN,vi;q=0.9,en-US;q=0.8,en;q=0.7",
    "vi-VN,vi;q=0.9,en;q=0.8",
    "vi,en-US;q=0.9,en;q=0.8",
    "vi-VN,vi;q=0.8,en-US;q=0.6,en;q=0.4",
    "en-US,en;q=0.9,vi-VN;q=0.8,vi;q=0.7",
    "vi-VN,vi;q=0.9,fr;q=0.8,en-US;q=0.7,en;q=0.6",
)

# None = truy cập trực tiếp
REFERERS = (
    "https://www.google.com/",
    "https://www.google.com.vn/",
    "https://www.bing.com/",
    BASE_URL + "/",
    None,
    None,
)

DOCUMENT_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
    "image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
)
XHR_ACCEPT = "application/json, text/javascript, */*; q=0.01"

_BROWSER_PATTERNS = (
    ("Edge", re.compile(r'Edg/([\d.]+)')),
    ("Firefox", re.compile(r'Firefox/([\d.]+)')),
    ("Safari", re.compile(r'Version/([\d.]+).*Safari')),
    ("Chrome", re.compile(r'Chrome/([\d.]+)')),
)


def is_chromium(user_agent: str) -> bool:
    """Chrome/Edge: không phải Firefox và không phải Safari thuần"""
    if "Firefox" in user_agent:
        return False
    if "Safari" in user_agent and "Chrome" not in user_agent:
        return False
    return True


class FingerprintGenerator:
    """
    Sinh fingerprint ngẫu nhiên từ các catalog cố định.
    Mỗi lần generate() chọn độc lập một profile, một Accept-Language và một referer.
    """

    def __init__(
        self,
        browsers: Sequence[BrowserProfile] = BROWSER_PROFILES,
        languages: Sequence[str] = ACCEPT_LANGUAGES,
        referers: Sequence[Optional[str]] = REFERERS,
        rng: random.Random = None
    ):
        if not browsers or not languages or not referers:
            raise ValueError("Fingerprint catalogs must not be empty")
        self.browsers = tuple(browsers)
        self.languages = tuple(languages)
        self.referers = tuple(referers)
        self._rng = rng or random.Random()

    def generate(self) -> Fingerprint:
        browser = self._rng.choice(self.browsers)
        language = self._rng.choice(self.languages)
        referer = self._rng.choice(self.referers)

        headers = {
            "User-Agent": browser.user_agent,
            "Accept": DOCUMENT_ACCEPT,
            "Accept-Language": language,
            "Accept-Encoding": "gzip, deflate, br",
            "Cache-Control": "max-age=0",
            "Connection": "keep-alive",
            "Upgrade-Insecure-Requests": "1",
            "DNT": str(self._rng.randint(0, 1)),
        }

        # Chỉ Chromium gửi client hints
        if browser.sec_ch_ua is not None:
            headers["Sec-Ch-Ua"] = browser.sec_ch_ua
            headers["Sec-Ch-Ua-Mobile"] = "?0"
            headers["Sec-Ch-Ua-Platform"] = f'"{browser.platform}"'

        headers["Sec-Fetch-Dest"] = "document"
        headers["Sec-Fetch-Mode"] = "navigate"
        headers["Sec-Fetch-Site"] = "cross-site" if referer else "none"
        headers["Sec-Fetch-User"] = "?1"

        if is_chromium(browser.user_agent):
            headers["Priority"] = "u=0, i"

        if referer:
            headers["Referer"] = referer

        return Fingerprint(headers)


def for_same_origin_navigation(fingerprint: Fingerprint, referer: str = BASE_URL + "/") -> Fingerprint:
    """Header cho điều hướng cùng origin (vd. bấm tìm kiếm từ trang chủ)"""
    return fingerprint.replace(**{"Sec-Fetch-Site": "same-origin", "Referer": referer})


def for_xhr(fingerprint: Fingerprint, referer: str = BASE_URL + "/") -> Fingerprint:
    """Header cho request AJAX/XHR"""
    return for_same_origin_navigation(fingerprint, referer).replace(
        remove=("Sec-Fetch-User", "Upgrade-Insecure-Requests"),
        **{
            "X-Requested-With": "XMLHttpRequest",
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Accept": XHR_ACCEPT,
        }
    )


def describe(fingerprint: Fingerprint) -> str:
    """Mô tả ngắn gọn trình duyệt để ghi log, vd. 'Chrome 131.0.0.0'"""
    user_agent = fingerprint.get("User-Agent") or ""
    for family, pattern in _BROWSER_PATTERNS:
        match = pattern.search(user_agent)
        if match:
            return f"{family} {match.group(1)}"
    return "Unknown Browser"
