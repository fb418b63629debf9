# rate_limiter.py
# -*- coding: utf-8 -*-

"""
Rate limiter theo IP client (sliding window), lưu trạng thái ra file để
giữ được qua các lần khởi động lại process.
"""

import hashlib
import ipaddress
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from mstlookup.config import DEFAULT_RATE_LIMIT, RATE_LIMIT_DIR

logger = logging.getLogger(__name__)

# Thứ tự header để lấy IP thật của client khi đứng sau proxy/CDN
CLIENT_IP_HEADERS = (
    "CF-Connecting-IP",
    "X-Real-IP",
    "X-Forwarded-For",
)

UNKNOWN_IP = "0.0.0.0"


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int  # -1 = không giới hạn (whitelist)
    reset: int  # epoch giây
    ip: str
    whitelisted: bool = False
    retry_after: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.retry_after is None:
            data.pop("retry_after")
        return data


def _is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def resolve_client_ip(headers: Mapping[str, str], remote_addr: Optional[str] = None) -> str:
    """
    Lấy IP client từ header (Cloudflare, Nginx, proxy chuẩn) hoặc remote_addr.

    Returns:
        IP hợp lệ đầu tiên tìm được, hoặc '0.0.0.0'
    """
    normalized = {key.lower(): value for key, value in (headers or {}).items()}
    candidates = [normalized.get(name.lower()) for name in CLIENT_IP_HEADERS]
    candidates.append(remote_addr)

    for candidate in candidates:
        if not candidate:
            continue
        # X-Forwarded-For có thể chứa nhiều IP
        ip = candidate.split(",")[0].strip()
        if _is_valid_ip(ip):
            return ip

    return UNKNOWN_IP


def parse_whitelist_range(cidr: str):
    """
    Parse một dải IP whitelist.
    IP không có '/': kết thúc bằng '.0' được hiểu là /24, còn lại là /32.
    """
    cidr = cidr.strip()
    if "/" not in cidr:
        cidr += "/24" if cidr.endswith(".0") else "/32"
    return ipaddress.ip_network(cidr, strict=False)


class RateLimiter:
    """
    Giới hạn số request của mỗi IP trong một khoảng thời gian trượt.
    Mỗi IP có một file JSON (tên là md5 của IP) chứa danh sách timestamp.
    """

    def __init__(
        self,
        max_requests: int = None,
        window_seconds: int = None,
        storage_dir: str = None,
        whitelisted_ips: Iterable[str] = (),
        whitelisted_ranges: Iterable[str] = (),
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            max_requests: Số request tối đa trong window_seconds
            window_seconds: Khoảng thời gian tính bằng giây
            storage_dir: Thư mục lưu trạng thái
            whitelisted_ips: IP được bỏ qua giới hạn (so khớp chính xác)
            whitelisted_ranges: Dải IP (CIDR) được bỏ qua giới hạn
            clock: Hàm trả về thời gian hiện tại (epoch giây)

        Raises:
            ValueError: Khi max_requests hoặc window_seconds <= 0
        """
        if max_requests is None:
            max_requests = DEFAULT_RATE_LIMIT["max_requests"]
        if window_seconds is None:
            window_seconds = DEFAULT_RATE_LIMIT["window_seconds"]
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError(
                f"max_requests và window_seconds phải > 0 (nhận {max_requests}, {window_seconds})"
            )

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.storage_dir = Path(storage_dir or RATE_LIMIT_DIR)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._lock = threading.Lock()
        self.whitelisted_ips: List[str] = []
        self.whitelisted_ranges: List[Any] = []

        for ip in whitelisted_ips:
            self.add_whitelisted_ip(ip)
        for cidr in whitelisted_ranges:
            self.add_whitelisted_range(cidr)

    def add_whitelisted_ip(self, ip: str) -> "RateLimiter":
        self.whitelisted_ips.append(ip.strip())
        return self

    def add_whitelisted_range(self, cidr: str) -> "RateLimiter":
        self.whitelisted_ranges.append(parse_whitelist_range(cidr))
        return self

    def is_whitelisted(self, ip: str) -> bool:
        if ip in self.whitelisted_ips:
            return True

        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return False

        return any(
            address.version == network.version and address in network
            for network in self.whitelisted_ranges
        )

    def _get_storage_path(self, ip: str) -> Path:
        ip_hash = hashlib.md5(ip.encode()).hexdigest()
        return self.storage_dir / f"{ip_hash}.json"

    def _load(self, path: Path, ip: str) -> Dict[str, Any]:
        empty = {"ip": ip, "requests": []}
        if not path.exists():
            return empty

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Error reading rate limit state for {ip}: {e}")
            return empty

        if not isinstance(data, dict) or not isinstance(data.get("requests"), list):
            logger.warning(f"Invalid rate limit state for {ip}, starting a new window")
            return empty
        return data

    def _save(self, path: Path, data: Dict[str, Any]) -> None:
        """Ghi file tạm rồi os.replace để các process khác không đọc phải file dở dang"""
        fd, tmp_path = tempfile.mkstemp(dir=self.storage_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f)
            os.replace(tmp_path, path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def check(self, ip: str) -> RateLimitResult:
        """
        Kiểm tra và ghi nhận một request của IP.

        Returns:
            RateLimitResult; allowed=False kèm retry_after nếu vượt giới hạn
        """
        if self.is_whitelisted(ip):
            return RateLimitResult(allowed=True, remaining=-1, reset=0, ip=ip, whitelisted=True)

        path = self._get_storage_path(ip)

        with self._lock:
            now = int(self._clock())
            data = self._load(path, ip)

            window_start = now - self.window_seconds
            requests_in_window = [ts for ts in data["requests"] if ts > window_start]

            count = len(requests_in_window)
            oldest = min(requests_in_window) if requests_in_window else now
            reset = oldest + self.window_seconds

            if count >= self.max_requests:
                logger.info(f"Rate limit exceeded for {ip} ({count}/{self.max_requests})")
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset=reset,
                    ip=ip,
                    retry_after=max(1, reset - now)
                )

            requests_in_window.append(now)
            data["requests"] = requests_in_window
            data["ip"] = ip
            data["last_request"] = now

            try:
                self._save(path, data)
            except OSError as e:
                logger.warning(f"Error writing rate limit state for {ip}: {e}")

            return RateLimitResult(
                allowed=True,
                remaining=self.max_requests - count - 1,
                reset=reset,
                ip=ip
            )

    def cleanup(self) -> int:
        """
        Xóa các file trạng thái không có request nào trong window.

        Returns:
            Số file đã xóa
        """
        expiry = int(self._clock()) - self.window_seconds
        deleted_count = 0

        with self._lock:
            for state_file in self.storage_dir.glob("*.json"):
                try:
                    with open(state_file, 'r', encoding='utf-8') as f:
                        data = json.load(f)
                    if data.get("last_request", 0) < expiry:
                        state_file.unlink()
                        deleted_count += 1
                except (OSError, json.JSONDecodeError, AttributeError) as e:
                    logger.debug(f"Skipping rate limit file {state_file.name}: {e}")

        if deleted_count > 0:
            logger.debug(f"Cleaned up {deleted_count} expired rate limit files")
        return deleted_count
