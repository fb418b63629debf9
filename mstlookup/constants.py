# constants.py
# -*- coding: utf-8 -*-

"""
Constants cho engine tra cứu mã số thuế
"""

# Step status
STATUS_SUCCESS = "success"
STATUS_WARNING = "warning"
STATUS_ERROR = "error"
STATUS_PENDING = "pending"

STEP_STATUSES = (STATUS_SUCCESS, STATUS_WARNING, STATUS_ERROR, STATUS_PENDING)

# Step names
STEP_INITIALIZE = "Initialize"
STEP_FETCH_HOMEPAGE = "Fetch Homepage"
STEP_SEARCH = "Fetch Company Page"
STEP_FETCH_DETAIL = "Fetch Detail Page"
STEP_VALIDATE_PAGE = "Validate Page"
STEP_EXTRACT = "Extract Data"
STEP_VALIDATE_TAX_CODE = "Validate Tax Code"
STEP_COMPLETE = "Complete"
STEP_ERROR = "Error"
STEP_ALL_FAILED = "All Attempts Failed"

# Search types
SEARCH_TYPE_TAX_CODE = "enterpriseTax"
SEARCH_TYPE_AUTO = "auto"

# Error Messages
ERR_BOT_DETECTED = "403 Forbidden - bot detected (attempt {attempt})"
ERR_COMPANY_NOT_FOUND = "Company not found"
ERR_COMPANY_INFO_NOT_FOUND = "Company information not found"
ERR_ALL_ATTEMPTS_FAILED = (
    "Đã cố gắng {attempts} lần nhưng không tìm thấy kết quả, "
    "vui lòng kiểm tra lại thông tin bạn nhập."
)
ERR_REQUEST_TIMEOUT = "Request timed out after {timeout}s: {url}"
ERR_PROXY_FILE_NOT_FOUND = "Proxy file not found: {path}"
ERR_PROXY_FILE_EMPTY = "No proxies found in file: {path}"
ERR_INVALID_QUERY = "Vui lòng nhập tên công ty hoặc mã số thuế để tra cứu."
ERR_QUERY_TOO_SHORT = "Từ khóa tra cứu phải có ít nhất {min_length} ký tự."
ERR_QUERY_TOO_LONG = "Từ khóa tra cứu không được vượt quá {max_length} ký tự."

# Log messages
MSG_ATTEMPT_HEADER = "=== Attempt {attempt}/{total} ==="
MSG_RETRYING = "⚠️ Attempt {attempt} failed, retrying with different proxy + fingerprint..."
MSG_PROXIES_LOADED = "Loaded {count} proxy(ies) from {source}"

# Validation
MIN_QUERY_LENGTH = 2
MAX_QUERY_LENGTH = 200
MIN_TAX_CODE_LENGTH = 10
MAX_TAX_CODE_LENGTH = 14

# Trong log chỉ hiện tối đa bấy nhiêu ký tự của một giá trị
LOG_VALUE_PREVIEW = 60
