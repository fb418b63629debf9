# engine.py
# -*- coding: utf-8 -*-

"""
Engine tra cứu công ty trên masothue.com.

Mỗi lượt thử chạy tuần tự các bước:
Init -> BootstrapSession -> Search -> ResolveDetailLink -> FetchDetail (nếu có link)
-> Validate -> Extract -> Done | Failed.
Mỗi lượt thử dùng proxy và fingerprint mới; vòng ngoài quyết định có thử lại hay không
dựa trên loại lỗi (FailureKind).
"""

import logging
import random
import time
from typing import Callable, Optional, Tuple
from urllib.parse import urlencode, urljoin

from bs4 import BeautifulSoup

from mstlookup.address import parse_address
from mstlookup.config import (
    BASE_URL,
    SEARCH_PATH,
    MAX_ATTEMPTS,
    REQUEST_TIMEOUT,
    CONNECT_TIMEOUT,
    BOOTSTRAP_PAUSE,
    DETAIL_PAUSE,
    RETRY_BACKOFF
)
from mstlookup.constants import (
    STATUS_SUCCESS,
    STATUS_WARNING,
    STATUS_ERROR,
    STATUS_PENDING,
    STEP_INITIALIZE,
    STEP_FETCH_HOMEPAGE,
    STEP_SEARCH,
    STEP_FETCH_DETAIL,
    STEP_VALIDATE_PAGE,
    STEP_EXTRACT,
    STEP_VALIDATE_TAX_CODE,
    STEP_COMPLETE,
    STEP_ERROR,
    STEP_ALL_FAILED,
    ERR_BOT_DETECTED,
    ERR_COMPANY_NOT_FOUND,
    ERR_COMPANY_INFO_NOT_FOUND,
    ERR_ALL_ATTEMPTS_FAILED,
    MSG_ATTEMPT_HEADER,
    MSG_RETRYING,
    MSG_PROXIES_LOADED
)
from mstlookup.diagnostics import DiagnosticTrail
from mstlookup.exceptions import (
    BotDetectedError,
    CompanyNotFoundError,
    TaxCodeMismatchError,
    NetworkError
)
from mstlookup.extractor import (
    PageExtractor,
    find_error_banner,
    extract_csrf_token,
    resolve_detail_path,
    strip_heavy_markup
)
from mstlookup.fingerprint import FingerprintGenerator, for_same_origin_navigation, describe
from mstlookup.models import (
    AttemptResult,
    CompanyRecord,
    FailureKind,
    Fingerprint,
    LookupQuery,
    StepRecord
)
from mstlookup.proxy_pool import ProxyPool, mask_proxy_url, proxy_display
from mstlookup.session import TRANSPORT_ERRORS, build_session, fetch

logger = logging.getLogger(__name__)

# Các loại lỗi được thử lại với proxy + fingerprint mới
RETRYABLE_FAILURES = frozenset(FailureKind)

SessionFactory = Callable[[Optional[str], Fingerprint], object]


def _elapsed_ms(started: float) -> int:
    return round((time.monotonic() - started) * 1000)


class LookupEngine:
    """
    Tra cứu một công ty theo MST hoặc tên.

    lookup() không raise với lỗi tra cứu thông thường: mọi lỗi được trả về
    trong CompanyRecord.error kèm logs/steps.
    """

    def __init__(
        self,
        proxy_pool: ProxyPool = None,
        fingerprints: FingerprintGenerator = None,
        extractor: PageExtractor = None,
        session_factory: SessionFactory = build_session,
        max_attempts: int = MAX_ATTEMPTS,
        timeout: float = REQUEST_TIMEOUT,
        connect_timeout: float = CONNECT_TIMEOUT,
        base_url: str = BASE_URL,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random = None,
        clock: Callable[[], float] = time.time
    ):
        self.proxy_pool = proxy_pool if proxy_pool is not None else ProxyPool()
        self.fingerprints = fingerprints or FingerprintGenerator()
        self.extractor = extractor or PageExtractor()
        self.session_factory = session_factory
        self.max_attempts = max(1, max_attempts)
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.base_url = base_url.rstrip("/")
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock

    @property
    def origin(self) -> str:
        return self.base_url + "/"

    def _get(self, session, url: str, headers: dict = None):
        return fetch(session, url, self.timeout, self.connect_timeout, headers=headers)

    def _pause(self, bounds: Tuple[float, float]) -> None:
        self._sleep(self._rng.uniform(*bounds))

    def lookup(self, query: str) -> CompanyRecord:
        """
        Tra cứu công ty, thử lại tối đa max_attempts lần.

        Args:
            query: MST hoặc tên công ty (đã được caller validate)

        Returns:
            CompanyRecord của lượt thử thành công (kèm log các lượt trước),
            hoặc record lỗi tổng hợp nếu tất cả lượt thử đều thất bại
        """
        lookup_query = LookupQuery.from_text(query)
        self.proxy_pool.reset()

        logs = [MSG_PROXIES_LOADED.format(
            count=len(self.proxy_pool),
            source=self.proxy_pool.source or "manual config"
        )]
        logger.info(
            f"Lookup '{lookup_query.text}' (type={lookup_query.search_type}, "
            f"max_attempts={self.max_attempts})"
        )

        attempts_made = 0
        for attempt in range(1, self.max_attempts + 1):
            attempts_made = attempt
            proxy_url = self.proxy_pool.next()
            logs.append(MSG_ATTEMPT_HEADER.format(attempt=attempt, total=self.max_attempts))

            result = self._run_attempt(lookup_query, attempt, proxy_url)

            if result.ok:
                result.record.logs = logs + result.record.logs
                logger.info(f"Lookup '{lookup_query.text}' succeeded on attempt {attempt}")
                return result.record

            logs.extend(result.record.logs)
            logger.warning(
                f"Attempt {attempt}/{self.max_attempts} failed "
                f"({result.failure.value}): {result.record.error}"
            )

            if result.failure not in RETRYABLE_FAILURES:
                break

            if attempt < self.max_attempts:
                logs.append(MSG_RETRYING.format(attempt=attempt))
                self._pause(RETRY_BACKOFF)

        return self._exhausted_record(lookup_query, logs, attempts_made)

    def _exhausted_record(self, query: LookupQuery, logs: list, attempts: int) -> CompanyRecord:
        record = CompanyRecord(tax_code=query.text)
        record.error = ERR_ALL_ATTEMPTS_FAILED.format(attempts=attempts)
        record.logs = logs
        record.steps = [StepRecord(
            name=STEP_ALL_FAILED,
            status=STATUS_ERROR,
            message=f"Tried {attempts} attempts",
            timestamp=int(self._clock() * 1000)
        )]
        logger.error(f"Lookup '{query.text}' failed after {attempts} attempts")
        return record

    def _run_attempt(self, query: LookupQuery, attempt: int, proxy_url: Optional[str]) -> AttemptResult:
        """Chạy một lượt thử và trả về kết quả đã phân loại"""
        trail = DiagnosticTrail(clock=self._clock)
        record = CompanyRecord(tax_code=query.text)
        failure = None
        session = None

        try:
            fingerprint = self.fingerprints.generate()
            trail.step(
                STEP_INITIALIZE, STATUS_SUCCESS,
                f"Attempt {attempt}/{self.max_attempts} - Proxy: {proxy_display(proxy_url)} "
                f"- Browser: {describe(fingerprint)}"
            )
            if proxy_url:
                trail.log(f"Using proxy URL: {mask_proxy_url(proxy_url)}")
            else:
                trail.log("No proxy configured - using direct connection")
            trail.log(f"Fingerprint: {describe(fingerprint)}, Lang: {fingerprint.get('Accept-Language', 'n/a')}")

            session = self.session_factory(proxy_url, fingerprint)

            self._bootstrap_session(session, trail)
            self._pause(BOOTSTRAP_PAUSE)

            search_url, html, soup = self._search(session, fingerprint, query, attempt, trail)

            resolution = resolve_detail_path(soup, query)
            if resolution.path:
                trail.log(f"Found {resolution.candidates} result link(s), selected: {resolution.path}")
                self._pause(DETAIL_PAUSE)
                html, soup = self._fetch_detail(session, fingerprint, resolution.path, search_url, trail)
            else:
                trail.log("No result link found, treating search response as detail page")

            stripped_html = strip_heavy_markup(html)
            trail.log(f"Stripped HTML size: {len(stripped_html.encode('utf-8'))} bytes")

            self._validate_page(soup, trail)
            self._extract(soup, query, record, trail)
            record.raw_html = stripped_html

        except BotDetectedError as e:
            failure = FailureKind.BOT_DETECTED
            record.error = e.message
        except TaxCodeMismatchError as e:
            failure = FailureKind.TAX_CODE_MISMATCH
            record.error = e.message
        except CompanyNotFoundError as e:
            failure = FailureKind.NOT_FOUND
            record.error = e.message
        except NetworkError as e:
            failure = FailureKind.NETWORK
            record.error = e.message
        except TRANSPORT_ERRORS as e:
            failure = FailureKind.NETWORK
            record.error = str(e) or type(e).__name__
            trail.step(STEP_ERROR, STATUS_ERROR, record.error)
            trail.log(f"Error occurred: {record.error}")
        except Exception as e:
            logger.exception(f"Unexpected error in attempt {attempt} for '{query.text}'")
            failure = FailureKind.UNEXPECTED
            record.error = str(e) or type(e).__name__
            trail.step(STEP_ERROR, STATUS_ERROR, record.error)
            trail.log(f"Error occurred: {record.error}")
        finally:
            if session is not None:
                session.close()

        record.logs = trail.logs
        record.steps = trail.steps
        return AttemptResult(record=record, failure=failure)

    def _bootstrap_session(self, session, trail: DiagnosticTrail) -> Optional[str]:
        """
        Mở trang chủ để lấy cookie + CSRF token như trình duyệt thật.
        Lỗi ở bước này không làm hỏng lượt thử.
        """
        trail.step(STEP_FETCH_HOMEPAGE, STATUS_PENDING, "Loading masothue.com homepage for cookies/CSRF")
        started = time.monotonic()
        try:
            response = self._get(session, self.origin)
            if response.status_code >= 400:
                raise NetworkError(f"HTTP {response.status_code}", url=self.origin, status_code=response.status_code)
        except (NetworkError,) + TRANSPORT_ERRORS as e:
            trail.step(
                STEP_FETCH_HOMEPAGE, STATUS_WARNING,
                f"Homepage failed in {_elapsed_ms(started)}ms: {e} - continuing without cookies"
            )
            return None

        csrf_token = extract_csrf_token(BeautifulSoup(response.text, "html.parser"))
        trail.step(
            STEP_FETCH_HOMEPAGE, STATUS_SUCCESS,
            f"Got homepage ({response.status_code}) in {_elapsed_ms(started)}ms, "
            f"cookies: {len(session.cookies)}, CSRF: {'found' if csrf_token else 'none'}"
        )
        return csrf_token

    def _search(
        self,
        session,
        fingerprint: Fingerprint,
        query: LookupQuery,
        attempt: int,
        trail: DiagnosticTrail
    ) -> Tuple[str, str, BeautifulSoup]:
        search_url = urljoin(self.origin, SEARCH_PATH) + "?" + urlencode(
            {"q": query.text, "type": query.search_type}
        )
        headers = for_same_origin_navigation(fingerprint, self.origin)
        trail.step(STEP_SEARCH, STATUS_PENDING, f"Searching (type={query.search_type}): {search_url}")

        started = time.monotonic()
        try:
            response = self._get(session, search_url, headers.as_dict())
        except NetworkError as e:
            trail.step(STEP_SEARCH, STATUS_ERROR, e.message)
            raise

        if response.status_code == 403:
            trail.step(STEP_SEARCH, STATUS_ERROR, f"Got 403 Forbidden in {_elapsed_ms(started)}ms - bot detected")
            raise BotDetectedError(ERR_BOT_DETECTED.format(attempt=attempt), url=search_url, response_code=403)

        if response.status_code >= 400:
            message = f"HTTP {response.status_code} khi truy cập {search_url}"
            trail.step(STEP_SEARCH, STATUS_ERROR, message)
            raise NetworkError(message, url=search_url, status_code=response.status_code)

        trail.step(
            STEP_SEARCH, STATUS_SUCCESS,
            f"Got response ({response.status_code}) in {_elapsed_ms(started)}ms. "
            f"Final URL: {response.url or search_url}"
        )
        html = response.text
        trail.log(f"Page loaded, size: {len(html.encode('utf-8'))} bytes")
        return search_url, html, BeautifulSoup(html, "html.parser")

    def _fetch_detail(
        self,
        session,
        fingerprint: Fingerprint,
        detail_path: str,
        search_url: str,
        trail: DiagnosticTrail
    ) -> Tuple[str, BeautifulSoup]:
        detail_url = urljoin(self.origin, detail_path)
        trail.step(STEP_FETCH_DETAIL, STATUS_PENDING, f"Fetching: {detail_url}")

        # Referer là trang kết quả tìm kiếm, như khi người dùng bấm vào link
        headers = for_same_origin_navigation(fingerprint, referer=search_url)
        try:
            response = self._get(session, detail_url, headers.as_dict())
        except NetworkError as e:
            trail.step(STEP_FETCH_DETAIL, STATUS_ERROR, e.message)
            raise

        if response.status_code >= 400:
            message = f"HTTP {response.status_code} khi truy cập {detail_url}"
            trail.step(STEP_FETCH_DETAIL, STATUS_ERROR, message)
            raise NetworkError(message, url=detail_url, status_code=response.status_code)

        html = response.text
        trail.step(STEP_FETCH_DETAIL, STATUS_SUCCESS, f"Got detail page ({response.status_code})")
        trail.log(f"Detail page loaded, size: {len(html.encode('utf-8'))} bytes")
        return html, BeautifulSoup(html, "html.parser")

    def _validate_page(self, soup: BeautifulSoup, trail: DiagnosticTrail) -> None:
        banner = find_error_banner(soup)
        if banner is not None:
            trail.step(STEP_VALIDATE_PAGE, STATUS_ERROR, f"Error message found: {banner}")
            raise CompanyNotFoundError(ERR_COMPANY_NOT_FOUND, detail=banner)
        trail.step(STEP_VALIDATE_PAGE, STATUS_SUCCESS, "Page loaded successfully")

    def _extract(self, soup: BeautifulSoup, query: LookupQuery, record: CompanyRecord, trail: DiagnosticTrail) -> None:
        trail.step(STEP_EXTRACT, STATUS_PENDING, "Parsing company information table")

        extraction = self.extractor.extract(soup)
        for note in extraction.notes:
            trail.log(note)
        trail.log(f"Extracted {extraction.row_count} rows from table")

        fields = self.extractor.map_fields(extraction.labels)

        extracted_tax_code = fields.pop("tax_code")
        if extracted_tax_code:
            if query.is_tax_code and extracted_tax_code != query.text:
                error = TaxCodeMismatchError(query.text, extracted_tax_code)
                trail.step(STEP_VALIDATE_TAX_CODE, STATUS_ERROR, error.detail)
                raise error
            if extracted_tax_code != query.text:
                trail.log(f"  ✓ Tax code from search result: \"{extracted_tax_code}\"")
            else:
                trail.log(f"  ✓ Tax code verified: {extracted_tax_code}")

        if not fields["name"]:
            trail.step(STEP_EXTRACT, STATUS_ERROR, "Could not find company name in table")
            raise CompanyNotFoundError(ERR_COMPANY_INFO_NOT_FOUND)

        record.tax_code = extracted_tax_code or (query.text if query.is_tax_code else "")
        for name, value in fields.items():
            setattr(record, name, value)

        if record.address:
            parsed = parse_address(record.address)
            record.address_line1 = parsed.line1
            record.city = parsed.city
            record.state_province = parsed.state_province
            record.country = parsed.country
            trail.log(
                f"  ✓ Parsed address: line1=\"{parsed.line1}\", city=\"{parsed.city}\", "
                f"state=\"{parsed.state_province}\", country=\"{parsed.country}\""
            )

        if record.phone:
            trail.log(f"  ✓ Phone extracted: {record.phone}")

        trail.step(STEP_EXTRACT, STATUS_SUCCESS, f"Extracted data from {extraction.row_count} rows")
        trail.step(STEP_COMPLETE, STATUS_SUCCESS, "Successfully fetched company information")
