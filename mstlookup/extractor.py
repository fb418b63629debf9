# extractor.py
# -*- coding: utf-8 -*-

"""
Parse trang chi tiết công ty của masothue thành mapping label -> value
và ánh xạ sang các field của CompanyRecord.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Tuple

from bs4 import BeautifulSoup

from mstlookup.constants import LOG_VALUE_PREVIEW
from mstlookup.models import LookupQuery
from mstlookup.utils import shorten

logger = logging.getLogger(__name__)

# Label chuẩn (đã normalize) dùng làm key trong mapping
LABEL_NAME = "tên công ty"
LABEL_TAX_CODE = "mã số thuế"
LABEL_ADDRESS = "địa chỉ"
LABEL_REPRESENTATIVE = "người đại diện"
LABEL_PHONE = "điện thoại"

# Các key chứa chuỗi này được phép ghi đè ở pass generic
OVERWRITABLE_LABEL = "địa chỉ"

# Thứ tự ưu tiên label cho từng field: label đầu tiên có mặt sẽ được dùng
FIELD_LABELS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("name", (LABEL_NAME, "company name")),
    ("name_international", ("tên quốc tế",)),
    ("name_short", ("tên viết tắt",)),
    ("tax_code", (LABEL_TAX_CODE,)),
    ("tax_address", ("địa chỉ thuế",)),
    ("address", ("địa chỉ thuế", LABEL_ADDRESS)),
    ("representative", ("người đại diện pháp luật", LABEL_REPRESENTATIVE, "giám đốc")),
    ("established_date", ("ngày thành lập", "ngày hoạt động", "ngày cấp")),
    ("status", ("tình trạng", "trạng thái")),
    ("business_type", ("loại hình doanh nghiệp", "loại hình dn", "loại hình")),
    ("business_sector", ("ngành nghề chính", "ngành nghề")),
    ("managed_by", ("quản lý bởi",)),
    ("phone", (LABEL_PHONE, "số điện thoại", "phone", "tel")),
)

FIELD_LABELS_BY_NAME = dict(FIELD_LABELS)

BULLET_CHARS = "•·●▪■◦-*»›"

_WHITESPACE = re.compile(r'\s+')
_NON_DIGIT = re.compile(r'\D')
_NAME_RESULT_LINK = re.compile(r'^/(\d{10,14})-[a-z]')
_HEAVY_BLOCKS = (
    re.compile(r'<head[^>]*>.*?</head>', re.I | re.S),
    re.compile(r'<script[^>]*>.*?</script>', re.I | re.S),
    re.compile(r'<style[^>]*>.*?</style>', re.I | re.S),
)

# tr.alert-danger dùng cho dòng trạng thái "ngừng hoạt động", không phải lỗi
ERROR_BANNER_SELECTOR = (
    'div[class*="alert-danger"], p[class*="alert-danger"], [class*="error-message"]'
)


def normalize_label(raw_label: str) -> str:
    """
    Chuẩn hóa label: gộp khoảng trắng, chữ thường, bỏ dấu câu/bullet ở đầu.
    """
    label = _WHITESPACE.sub(" ", unicodedata.normalize("NFC", raw_label)).lower()
    index = 0
    while index < len(label):
        char = label[index]
        if char.isspace() or char in BULLET_CHARS or unicodedata.category(char).startswith("P"):
            index += 1
            continue
        break
    return label[index:].strip()


def _text(tag) -> str:
    return _WHITESPACE.sub(" ", tag.get_text()).strip()


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Chỉ giữ lại chữ số"""
    if not phone:
        return None
    digits = _NON_DIGIT.sub("", phone)
    return digits or None


@dataclass
class ExtractionResult:
    labels: Dict[str, str] = field(default_factory=dict)
    row_count: int = 0
    notes: List[str] = field(default_factory=list)

    @property
    def has_name(self) -> bool:
        return bool(lookup_first(self.labels, FIELD_LABELS_BY_NAME["name"]))


def lookup_first(labels: Dict[str, str], candidates: Tuple[str, ...]) -> Optional[str]:
    for label in candidates:
        value = labels.get(label)
        if value:
            return value
    return None


class PageExtractor:
    """
    Trích xuất thông tin từ table đầu tiên của trang chi tiết, hai pass:

    1. Structured: đọc theo itemprop (name, taxID, address, alumni/name,
       telephone > span.copy). Kết quả không bị pass generic ghi đè.
    2. Generic: mỗi dòng có >= 2 ô, ô 1 là label, ô 2 là value.
       Key địa chỉ được ghi đè vì dòng sau thường cụ thể hơn.
    """

    def extract(self, soup: BeautifulSoup) -> ExtractionResult:
        result = ExtractionResult()

        table = soup.find("table")
        if table is None:
            logger.debug("[PARSING] No table found on page")
            return result

        self._structured_pass(table, result)
        self._generic_pass(table, result)

        logger.debug(f"[PARSING] Extracted {result.row_count} rows, labels: {sorted(result.labels)}")
        return result

    def _record(self, result: ExtractionResult, label: str, value: str, note: str) -> None:
        result.labels[label] = value
        result.row_count += 1
        result.notes.append(f"  ✓ {note}: {shorten(value, LOG_VALUE_PREVIEW)}")

    def _structured_pass(self, table, result: ExtractionResult) -> None:
        name_node = table.select_one('th[itemprop="name"], th [itemprop="name"]')
        if name_node is not None and _text(name_node):
            self._record(result, LABEL_NAME, _text(name_node), "Company name (itemprop)")

        tax_node = table.find(attrs={"itemprop": "taxID"})
        if tax_node is not None and _text(tax_node):
            self._record(result, LABEL_TAX_CODE, _text(tax_node), "Tax code (itemprop)")

        address_node = table.find(attrs={"itemprop": "address"})
        if address_node is not None and _text(address_node):
            self._record(result, LABEL_ADDRESS, _text(address_node), "Address (itemprop)")

        rep_node = table.find(attrs={"itemprop": "alumni"})
        if rep_node is not None:
            rep_name = rep_node.find(attrs={"itemprop": "name"})
            if rep_name is not None and _text(rep_name):
                self._record(result, LABEL_REPRESENTATIVE, _text(rep_name), "Representative (itemprop)")

        phone_node = table.find(attrs={"itemprop": "telephone"})
        if phone_node is not None:
            phone_span = phone_node.find("span", class_="copy")
            if phone_span is not None and _text(phone_span):
                self._record(result, LABEL_PHONE, _text(phone_span), "Phone (itemprop)")

    def _generic_pass(self, table, result: ExtractionResult) -> None:
        for row in table.find_all("tr"):
            cells = row.find_all(["td", "th"])
            if len(cells) < 2:
                continue

            label = normalize_label(cells[0].get_text())
            value = _text(cells[1])
            if not label or not value:
                continue

            if label in result.labels and OVERWRITABLE_LABEL not in label:
                continue

            result.labels[label] = value
            result.row_count += 1
            result.notes.append(f"  - Found \"{label}\": {shorten(value, LOG_VALUE_PREVIEW)}")

    def map_fields(self, labels: Dict[str, str]) -> Dict[str, Optional[str]]:
        """
        Ánh xạ mapping label -> value sang field của CompanyRecord
        theo thứ tự ưu tiên trong FIELD_LABELS.
        """
        fields = {name: lookup_first(labels, candidates) for name, candidates in FIELD_LABELS}
        fields["phone"] = normalize_phone(fields["phone"])
        return fields


def find_error_banner(soup: BeautifulSoup) -> Optional[str]:
    """
    Tìm thông báo lỗi "không tìm thấy" trên trang.

    Returns:
        Nội dung thông báo (có thể rỗng) nếu có, None nếu trang không báo lỗi
    """
    banner = soup.select_one(ERROR_BANNER_SELECTOR)
    if banner is None:
        return None
    return _text(banner)


def extract_csrf_token(soup: BeautifulSoup) -> Optional[str]:
    """Lấy CSRF token từ trang chủ (meta csrf-token, input token hoặc _token)"""
    meta = soup.find("meta", attrs={"name": "csrf-token"})
    if meta is not None and meta.get("content"):
        return meta["content"]

    for input_name in ("token", "_token"):
        token_input = soup.find("input", attrs={"name": input_name})
        if token_input is not None and token_input.get("value"):
            return token_input["value"]

    return None


class LinkResolution(NamedTuple):
    path: Optional[str]
    candidates: int


def resolve_detail_path(soup: BeautifulSoup, query: LookupQuery) -> LinkResolution:
    """
    Tìm link tới trang chi tiết trong trang kết quả tìm kiếm.

    - Tra theo MST: link bắt đầu bằng /<mst>-; link chi nhánh (/<mst>-NNN-)
      chỉ dùng khi không có link công ty chính.
    - Tra theo tên: link đầu tiên dạng /<10-14 chữ số>-<slug>.
    """
    if query.is_tax_code:
        prefix = f"/{query.text}-"
        branch_pattern = re.compile(r'^/' + re.escape(query.text) + r'-\d{3}-')
        anchors = [
            a for a in soup.find_all("a", href=True)
            if a["href"].startswith(prefix) and a.get_text(strip=True)
        ]
        branch_path = None
        for anchor in anchors:
            href = anchor["href"]
            if branch_pattern.match(href):
                if branch_path is None:
                    branch_path = href
                continue
            return LinkResolution(href, len(anchors))
        return LinkResolution(branch_path, len(anchors))

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if _NAME_RESULT_LINK.match(href) and anchor.get_text(strip=True):
            return LinkResolution(href, 1)
    return LinkResolution(None, 0)


def strip_heavy_markup(html: str) -> str:
    """Bỏ head/script/style để lưu bản HTML gọn"""
    for pattern in _HEAVY_BLOCKS:
        html = pattern.sub("", html)
    return html
