# mstlookup/cli.py
# -*- coding: utf-8 -*-

"""
Command-line interface cho mstlookup package
"""

import argparse
import functools
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from mstlookup.config import MAX_ATTEMPTS, PROXY_FILE, HTTP_BACKEND, RATE_LIMIT_DIR, DEFAULT_RATE_LIMIT
from mstlookup.engine import LookupEngine
from mstlookup.exceptions import ConfigurationError, ValidationError
from mstlookup.formatters import format_company_record, format_steps, format_rate_limit
from mstlookup.proxy_pool import ProxyPool
from mstlookup.rate_limiter import RateLimiter
from mstlookup.session import BACKENDS, build_session
from mstlookup.utils import validate_query

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Cấu hình logging cho CLI"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def _build_proxy_pool(proxy_file: Optional[str]) -> ProxyPool:
    """
    --proxies được chỉ định thì bắt buộc phải đọc được;
    file mặc định (PROXY_FILE) chỉ dùng nếu tồn tại.
    """
    if proxy_file:
        return ProxyPool.from_file(proxy_file)
    if Path(PROXY_FILE).is_file():
        return ProxyPool.from_file(PROXY_FILE)
    logger.info("No proxy file configured - using direct connection")
    return ProxyPool()


def lookup_command(
    query: str,
    proxy_file: Optional[str] = None,
    attempts: int = MAX_ATTEMPTS,
    backend: str = HTTP_BACKEND,
    as_json: bool = False,
    show_logs: bool = False,
    verbose: bool = False
) -> int:
    """
    Tra cứu một công ty theo MST hoặc tên

    Returns:
        0 nếu tìm thấy, 1 nếu có lỗi
    """
    setup_logging(verbose)

    try:
        cleaned = validate_query(query)
        engine = LookupEngine(
            proxy_pool=_build_proxy_pool(proxy_file),
            session_factory=functools.partial(build_session, backend=backend),
            max_attempts=attempts
        )
        record = engine.lookup(cleaned)
    except ValidationError as e:
        print(f"❌ Lỗi validation: {e}")
        return 1
    except ConfigurationError as e:
        print(f"❌ Lỗi cấu hình: {e}")
        return 1
    except Exception as e:
        logger.exception("Unexpected error")
        print(f"❌ Lỗi không mong đợi: {e}")
        return 1

    if as_json:
        print(json.dumps(record.to_dict(include_diagnostics=show_logs), ensure_ascii=False, indent=2))
    else:
        print(format_company_record(record))
        if show_logs:
            print("\n📋 Các bước:")
            print(format_steps(record))
            print("\n📜 Log:")
            print("\n".join(record.logs))

    return 0 if record.found else 1


def ratelimit_command(
    ip: str,
    max_requests: int = None,
    window: int = None,
    whitelist: Optional[List[str]] = None,
    storage_dir: str = None,
    as_json: bool = False,
    verbose: bool = False
) -> int:
    """
    Kiểm tra (và ghi nhận) một request của IP qua rate limiter

    Returns:
        0 nếu được phép, 1 nếu vượt giới hạn
    """
    setup_logging(verbose)

    try:
        limiter = RateLimiter(
            max_requests=max_requests,
            window_seconds=window,
            storage_dir=storage_dir,
            whitelisted_ranges=whitelist or ()
        )
    except ValueError as e:
        print(f"❌ Cấu hình rate limit không hợp lệ: {e}")
        return 1

    result = limiter.check(ip)
    if as_json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    else:
        print(format_rate_limit(result))

    return 0 if result.allowed else 1


def main(argv: Optional[List[str]] = None):
    """Entry point cho CLI"""
    parser = argparse.ArgumentParser(
        description="Tra cứu thông tin công ty theo mã số thuế hoặc tên từ masothue.com",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Ví dụ:
  %(prog)s lookup --query "0123456789"
  %(prog)s lookup --query "Công ty ABC" --proxies proxies.txt --json
  %(prog)s ratelimit 203.0.113.7 --max-requests 5 --window 3600
        """
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Hiển thị log chi tiết'
    )

    subparsers = parser.add_subparsers(dest='command', help='Lệnh cần thực hiện')

    lookup_parser = subparsers.add_parser('lookup', help='Tra cứu một công ty')
    lookup_parser.add_argument(
        '--query', '-q',
        required=True,
        help='Mã số thuế hoặc tên công ty cần tra cứu'
    )
    lookup_parser.add_argument(
        '--proxies',
        default=None,
        help=f'File danh sách proxy (mặc định: {PROXY_FILE} nếu có)'
    )
    lookup_parser.add_argument(
        '--attempts',
        type=int,
        default=MAX_ATTEMPTS,
        help=f'Số lượt thử tối đa (mặc định: {MAX_ATTEMPTS})'
    )
    lookup_parser.add_argument(
        '--backend',
        choices=BACKENDS,
        default=HTTP_BACKEND,
        help=f'HTTP backend (mặc định: {HTTP_BACKEND})'
    )
    lookup_parser.add_argument(
        '--json',
        action='store_true',
        help='In kết quả dạng JSON'
    )
    lookup_parser.add_argument(
        '--show-logs',
        action='store_true',
        help='In kèm các bước và log chẩn đoán'
    )

    ratelimit_parser = subparsers.add_parser('ratelimit', help='Kiểm tra rate limit của một IP')
    ratelimit_parser.add_argument('ip', help='IP client')
    ratelimit_parser.add_argument(
        '--max-requests',
        type=int,
        default=DEFAULT_RATE_LIMIT["max_requests"],
        help='Số request tối đa trong window'
    )
    ratelimit_parser.add_argument(
        '--window',
        type=int,
        default=DEFAULT_RATE_LIMIT["window_seconds"],
        help='Độ dài window (giây)'
    )
    ratelimit_parser.add_argument(
        '--whitelist',
        nargs='*',
        default=[],
        help='IP hoặc dải CIDR được bỏ qua giới hạn'
    )
    ratelimit_parser.add_argument(
        '--storage-dir',
        default=RATE_LIMIT_DIR,
        help=f'Thư mục lưu trạng thái (mặc định: {RATE_LIMIT_DIR})'
    )
    ratelimit_parser.add_argument(
        '--json',
        action='store_true',
        help='In kết quả dạng JSON'
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == 'lookup':
        return lookup_command(
            args.query,
            proxy_file=args.proxies,
            attempts=args.attempts,
            backend=args.backend,
            as_json=args.json,
            show_logs=args.show_logs,
            verbose=args.verbose
        )
    elif args.command == 'ratelimit':
        return ratelimit_command(
            args.ip,
            max_requests=args.max_requests,
            window=args.window,
            whitelist=args.whitelist,
            storage_dir=args.storage_dir,
            as_json=args.json,
            verbose=args.verbose
        )
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
