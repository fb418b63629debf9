# config.py
# -*- coding: utf-8 -*-

"""
Cấu hình cho engine tra cứu mã số thuế
"""

BASE_URL = "https://masothue.com"
SEARCH_PATH = "/Search/"

# "requests" hoặc "curl_cffi"
HTTP_BACKEND = "requests"
CURL_CFFI_IMPERSONATE = "chrome"

REQUEST_TIMEOUT = 120
CONNECT_TIMEOUT = 30
MAX_REDIRECTS = 10

MAX_ATTEMPTS = 3

# Khoảng dừng ngẫu nhiên (giây) mô phỏng thao tác người dùng
BOOTSTRAP_PAUSE = (0.3, 0.8)
DETAIL_PAUSE = (0.2, 0.5)
RETRY_BACKOFF = (1.0, 3.0)

PROXY_FILE = "proxies.txt"

DEFAULT_RATE_LIMIT = {
    "max_requests": 5,
    "window_seconds": 3600,
}

RATE_LIMIT_DIR = "data/ratelimit"

HOME_COUNTRY = "Việt Nam"
