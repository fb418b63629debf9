# formatters.py
# -*- coding: utf-8 -*-

"""
Helper functions để format CompanyRecord cho CLI.
Tách biệt business logic (models) khỏi presentation logic (formatting).
"""

from typing import List, Tuple

from mstlookup.constants import STATUS_SUCCESS, STATUS_WARNING, STATUS_ERROR
from mstlookup.models import CompanyRecord
from mstlookup.rate_limiter import RateLimitResult

# (nhãn hiển thị, tên field trong CompanyRecord)
RECORD_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("Mã số thuế", "tax_code"),
    ("Tên công ty", "name"),
    ("Tên quốc tế", "name_international"),
    ("Tên viết tắt", "name_short"),
    ("Người đại diện", "representative"),
    ("Địa chỉ Thuế", "tax_address"),
    ("Địa chỉ", "address"),
    ("Tỉnh/Thành phố", "state_province"),
    ("Phường/Xã", "city"),
    ("Quốc gia", "country"),
    ("Điện thoại", "phone"),
    ("Tình trạng", "status"),
    ("Ngày hoạt động", "established_date"),
    ("Quản lý bởi", "managed_by"),
    ("Loại hình DN", "business_type"),
    ("Ngành nghề chính", "business_sector"),
)

STATUS_ICONS = {
    STATUS_SUCCESS: "✅",
    STATUS_WARNING: "⚠️",
    STATUS_ERROR: "❌",
}


def format_company_record(record: CompanyRecord) -> str:
    """
    Format thông tin công ty thành string để hiển thị trong CLI.

    Returns:
        Các dòng "Nhãn: giá trị" cho field có dữ liệu, hoặc thông báo lỗi
    """
    if record.error:
        return f"❌ {record.error}"

    lines = []
    for label, attr in RECORD_FIELDS:
        value = getattr(record, attr)
        if value:
            lines.append(f"{label}: {value}")

    return "\n".join(lines) if lines else "Không có thông tin chi tiết"


def format_steps(record: CompanyRecord) -> str:
    """Một dòng cho mỗi bước: icon, tên bước, thông điệp"""
    lines: List[str] = []
    for step in record.steps:
        icon = STATUS_ICONS.get(step.status, "…")
        message = f" - {step.message}" if step.message else ""
        lines.append(f"{icon} {step.name}{message}")
    return "\n".join(lines)


def format_rate_limit(result: RateLimitResult) -> str:
    if result.whitelisted:
        return f"✅ {result.ip}: whitelisted (không giới hạn)"
    if result.allowed:
        return f"✅ {result.ip}: cho phép, còn {result.remaining} request (reset lúc {result.reset})"
    return f"❌ {result.ip}: vượt giới hạn, thử lại sau {result.retry_after} giây"
