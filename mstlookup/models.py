# models.py
# -*- coding: utf-8 -*-

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Optional, List, Dict, Any, Mapping

from mstlookup.constants import SEARCH_TYPE_TAX_CODE, SEARCH_TYPE_AUTO
from mstlookup.utils import is_tax_code_query


@dataclass(frozen=True)
class LookupQuery:
    """
    Query đã chuẩn hóa. Loại query (MST hay tên) được quyết định một lần
    khi tạo và không đổi trong suốt lượt tra cứu.
    """
    text: str
    is_tax_code: bool

    @classmethod
    def from_text(cls, text: str) -> "LookupQuery":
        cleaned = (text or "").strip()
        return cls(text=cleaned, is_tax_code=is_tax_code_query(cleaned))

    @property
    def search_type(self) -> str:
        return SEARCH_TYPE_TAX_CODE if self.is_tax_code else SEARCH_TYPE_AUTO


@dataclass(frozen=True)
class Fingerprint:
    """Bộ HTTP header giả lập trình duyệt (read-only)"""
    headers: Mapping[str, str]

    def __post_init__(self):
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)

    def replace(self, remove: tuple = (), **overrides: str) -> "Fingerprint":
        """
        Tạo fingerprint mới từ fingerprint hiện tại.

        Args:
            remove: Tên các header cần bỏ
            overrides: Header cần ghi đè
        """
        headers = {k: v for k, v in self.headers.items() if k not in remove}
        for key, value in overrides.items():
            headers[key] = value
        return Fingerprint(headers)

    def as_dict(self) -> Dict[str, str]:
        return dict(self.headers)


@dataclass(frozen=True)
class ParsedAddress:
    line1: Optional[str]
    city: Optional[str]
    state_province: Optional[str]
    country: Optional[str]


@dataclass
class StepRecord:
    name: str
    status: str
    message: Optional[str]
    timestamp: int  # epoch milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.name,
            "status": self.status,
            "message": self.message,
            "timestamp": self.timestamp,
        }


@dataclass
class CompanyRecord:
    """
    Kết quả tra cứu một công ty.

    Nếu error khác None thì chỉ có tax_code, error và diagnostics (logs, steps).
    """
    tax_code: str = ""
    name: Optional[str] = None
    name_international: Optional[str] = None
    name_short: Optional[str] = None
    address: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    country: Optional[str] = None
    tax_address: Optional[str] = None
    representative: Optional[str] = None
    established_date: Optional[str] = None
    status: Optional[str] = None
    business_type: Optional[str] = None
    business_sector: Optional[str] = None
    managed_by: Optional[str] = None
    phone: Optional[str] = None
    error: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    steps: List[StepRecord] = field(default_factory=list)
    raw_html: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.error is None

    def to_dict(self, include_diagnostics: bool = True, include_raw_html: bool = False) -> Dict[str, Any]:
        data = {
            "taxCode": self.tax_code,
            "name": self.name,
            "nameInternational": self.name_international,
            "nameShort": self.name_short,
            "address": self.address,
            "addressLine1": self.address_line1,
            "city": self.city,
            "stateProvince": self.state_province,
            "country": self.country,
            "taxAddress": self.tax_address,
            "representative": self.representative,
            "establishedDate": self.established_date,
            "status": self.status,
            "businessType": self.business_type,
            "businessSector": self.business_sector,
            "managedBy": self.managed_by,
            "phone": self.phone,
            "error": self.error,
        }
        if include_diagnostics:
            data["logs"] = list(self.logs)
            data["steps"] = [step.to_dict() for step in self.steps]
        if include_raw_html:
            data["rawHtml"] = self.raw_html
        return data


class FailureKind(Enum):
    BOT_DETECTED = "bot_detected"
    NOT_FOUND = "not_found"
    TAX_CODE_MISMATCH = "tax_code_mismatch"
    NETWORK = "network"
    UNEXPECTED = "unexpected"


@dataclass
class AttemptResult:
    """Kết quả một lượt thử: thành công (failure=None) hoặc lỗi có phân loại"""
    record: CompanyRecord
    failure: Optional[FailureKind] = None

    @property
    def ok(self) -> bool:
        return self.failure is None
