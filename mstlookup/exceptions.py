# exceptions.py
# -*- coding: utf-8 -*-

"""
Custom exceptions cho mstlookup
"""


class MstLookupError(Exception):
    """Base exception cho tất cả lỗi của mstlookup"""
    pass


class ConfigurationError(MstLookupError):
    """Lỗi cấu hình khi khởi tạo (file proxy thiếu hoặc rỗng, ...)"""

    def __init__(self, message: str = None, path: str = None):
        self.message = message or "Cấu hình không hợp lệ"
        self.path = path
        super().__init__(self.message)


class BotDetectedError(MstLookupError):
    """Exception khi website chặn request (HTTP 403 ở bước tìm kiếm)"""

    def __init__(self, message: str = None, url: str = None, response_code: int = None):
        """
        Args:
            message: Thông báo lỗi
            url: URL gây ra lỗi
            response_code: HTTP status code
        """
        self.message = message or "403 Forbidden - bot detected"
        self.url = url
        self.response_code = response_code
        super().__init__(self.message)


class CompanyNotFoundError(MstLookupError):
    """Không tìm thấy công ty (trang báo lỗi hoặc thiếu tên công ty)"""

    def __init__(self, message: str = None, detail: str = None):
        self.message = message or "Company not found"
        self.detail = detail
        super().__init__(self.message)


class TaxCodeMismatchError(CompanyNotFoundError):
    """Trang chi tiết trả về MST khác với MST đã tra cứu"""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=f"Không tìm thấy công ty với mã số thuế \"{expected}\"",
            detail=f"Tax code mismatch: searched \"{expected}\" but got \"{actual}\""
        )


class NetworkError(MstLookupError):
    """Lỗi liên quan đến network/connection"""

    def __init__(
        self,
        message: str = None,
        url: str = None,
        status_code: int = None,
        original_error: Exception = None
    ):
        self.message = message or "Lỗi kết nối mạng"
        self.url = url
        self.status_code = status_code
        self.original_error = original_error
        super().__init__(self.message)


class ValidationError(MstLookupError):
    """Lỗi validation input"""

    def __init__(self, message: str = None, field: str = None):
        self.message = message or "Dữ liệu đầu vào không hợp lệ"
        self.field = field
        super().__init__(self.message)
