"""Offline stand-ins for masothue.com pages and HTTP sessions."""

from __future__ import annotations

from typing import Callable, Optional
from urllib.parse import urlsplit

FIXED_NOW = 1_700_000_000.0

HOMEPAGE = """
<html>
  <head>
    <meta name="csrf-token" content="tok-123">
    <script>var tracking = 1;</script>
  </head>
  <body><form><input name="q"></form></body>
</html>
"""


def detail_page(
    name: Optional[str] = "CÔNG TY TNHH ABC",
    tax_code: str = "0123456789",
    address: str = "123 Lê Lợi, Phường 1, Tỉnh Bình Dương, Việt Nam",
    extra_rows: str = "",
) -> str:
    name_row = (
        f'<thead><tr><th itemprop="name" colspan="2"><span class="copy">{name}</span></th></tr></thead>'
        if name
        else ""
    )
    return f"""
<html>
  <head><title>{name}</title><style>.x {{ color: red; }}</style></head>
  <body>
    <table class="table-taxinfo">
      {name_row}
      <tbody>
        <tr><td>Mã số thuế</td><td itemprop="taxID"><span class="copy">{tax_code}</span></td></tr>
        <tr><td>Địa chỉ</td><td itemprop="address"><span class="copy">{address}</span></td></tr>
        <tr><td>Người đại diện</td><td><span itemprop="alumni"><span itemprop="name">Nguyễn Văn A</span></span></td></tr>
        <tr><td>Điện thoại</td><td itemprop="telephone"><span class="copy">0274 3812 345</span></td></tr>
        <tr><td>Ngày hoạt động</td><td>2010-05-20</td></tr>
        <tr><td>Tình trạng</td><td>Đang hoạt động (đã được cấp GCN ĐKT)</td></tr>
        <tr><td>Loại hình DN</td><td>Công ty trách nhiệm hữu hạn ngoài NN</td></tr>
        {extra_rows}
      </tbody>
    </table>
    <script>window.ads = [];</script>
  </body>
</html>
"""


def search_page(*links: tuple) -> str:
    anchors = "\n".join(f'<li><a href="{href}">{text}</a></li>' for href, text in links)
    return f"<html><body><ul class='results'>{anchors}</ul></body></html>"


class DummyResponse:
    def __init__(self, status_code: int = 200, text: str = "", url: Optional[str] = None):
        self.status_code = status_code
        self.text = text
        self.url = url


class FakeSession:
    def __init__(self, handler: Callable[[str], DummyResponse], proxy_url, fingerprint):
        self.handler = handler
        self.proxy_url = proxy_url
        self.fingerprint = fingerprint
        self.cookies = {"XSRF-TOKEN": "abc"}
        self.calls: list = []
        self.closed = False

    def get(self, url, headers=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "timeout": timeout})
        return self.handler(url)

    def close(self):
        self.closed = True


def site(
    search: str = "",
    detail: str = "",
    homepage: str = HOMEPAGE,
    search_status: int = 200,
    detail_status: int = 200,
    homepage_status: int = 200,
) -> Callable[[str], DummyResponse]:
    """Route requests by path: '/' is the homepage, '/Search/' the search page, anything else the detail page."""

    def handler(url: str) -> DummyResponse:
        path = urlsplit(url).path
        if path == "/":
            return DummyResponse(homepage_status, homepage, url)
        if path.startswith("/Search/"):
            return DummyResponse(search_status, search, url)
        return DummyResponse(detail_status, detail, url)

    return handler


class ScriptedSessions:
    """Session factory handing out one scripted site per attempt (last one repeats)."""

    def __init__(self, *handlers):
        self.handlers = list(handlers)
        self.sessions: list[FakeSession] = []

    def __call__(self, proxy_url, fingerprint):
        index = min(len(self.sessions), len(self.handlers) - 1)
        session = FakeSession(self.handlers[index], proxy_url, fingerprint)
        self.sessions.append(session)
        return session


