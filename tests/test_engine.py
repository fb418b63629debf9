from __future__ import annotations

import random
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests

from mstlookup.config import BOOTSTRAP_PAUSE, DETAIL_PAUSE, RETRY_BACKOFF
from mstlookup.constants import STATUS_ERROR, STATUS_WARNING, STEP_ALL_FAILED
from mstlookup.fingerprint import FingerprintGenerator
from mstlookup.models import FailureKind, LookupQuery
from mstlookup.session import build_session

from fakes import ScriptedSessions, detail_page, search_page, site

TAX_CODE = "0123456789"
MAIN_LINK = (f"/{TAX_CODE}-cong-ty-tnhh-abc", "CÔNG TY TNHH ABC")
SEARCH_URL = f"https://masothue.com/Search/?q={TAX_CODE}&type=enterpriseTax"


def _index_of(logs, needle):
    return next(i for i, line in enumerate(logs) if needle in line)


class CountingFingerprints(FingerprintGenerator):
    def __init__(self):
        super().__init__(rng=random.Random(5))
        self.generated = []

    def generate(self):
        fingerprint = super().generate()
        self.generated.append(fingerprint)
        return fingerprint


class DrippingHandler(BaseHTTPRequestHandler):
    """Sends headers at once, then one body byte every 0.1s for 2s."""

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.end_headers()
        try:
            for _ in range(20):
                self.wfile.write(b" ")
                self.wfile.flush()
                time.sleep(0.1)
        except OSError:
            return

    def log_message(self, format, *args):
        pass


@pytest.fixture
def dripping_server(monkeypatch):
    monkeypatch.setenv("NO_PROXY", "127.0.0.1")
    monkeypatch.setenv("no_proxy", "127.0.0.1")
    server = ThreadingHTTPServer(("127.0.0.1", 0), DrippingHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_port}"
    server.shutdown()
    server.server_close()


def test_lookup_by_tax_code_returns_mapped_record(make_engine):
    sessions = ScriptedSessions(site(search=search_page(MAIN_LINK), detail=detail_page()))
    record = make_engine(sessions).lookup(TAX_CODE)

    assert record.found
    assert record.error is None
    assert record.tax_code == TAX_CODE
    assert record.name == "CÔNG TY TNHH ABC"
    assert record.representative == "Nguyễn Văn A"
    assert record.phone == "02743812345"
    assert record.established_date == "2010-05-20"
    assert record.status.startswith("Đang hoạt động")
    assert record.business_type == "Công ty trách nhiệm hữu hạn ngoài NN"
    assert record.address_line1 == "123 Lê Lợi"
    assert record.city == "Phường 1"
    assert record.state_province == "Tỉnh Bình Dương"
    assert record.country == "Việt Nam"
    assert record.steps[-1].name == "Complete"
    assert "<script" not in record.raw_html
    assert "<style" not in record.raw_html
    assert len(sessions.sessions) == 1
    assert sessions.sessions[0].closed


def test_lookup_requests_follow_browser_navigation(make_engine):
    sessions = ScriptedSessions(site(search=search_page(MAIN_LINK), detail=detail_page()))
    make_engine(sessions, connect_timeout=5, timeout=20).lookup(TAX_CODE)

    homepage_call, search_call, detail_call = sessions.sessions[0].calls
    assert homepage_call["url"] == "https://masothue.com/"
    assert search_call["url"] == SEARCH_URL
    assert search_call["headers"]["Sec-Fetch-Site"] == "same-origin"
    assert search_call["headers"]["Referer"] == "https://masothue.com/"
    assert detail_call["url"] == f"https://masothue.com{MAIN_LINK[0]}"
    assert detail_call["headers"]["Referer"] == SEARCH_URL
    assert detail_call["timeout"] == (5, 20)


def test_bot_detection_on_first_attempt_then_success(make_engine):
    sessions = ScriptedSessions(
        site(search_status=403),
        site(search=search_page(MAIN_LINK), detail=detail_page()),
    )
    fingerprints = CountingFingerprints()
    record = make_engine(sessions, fingerprints=fingerprints).lookup(TAX_CODE)

    assert record.found
    assert record.name == "CÔNG TY TNHH ABC"
    assert record.logs[0].startswith("Loaded 2 proxy(ies) from proxies.txt")

    first = _index_of(record.logs, "=== Attempt 1/3 ===")
    second = _index_of(record.logs, "=== Attempt 2/3 ===")
    bot = _index_of(record.logs, "403 Forbidden")
    retry = _index_of(record.logs, "Attempt 1 failed, retrying")
    assert first < bot < retry < second

    # steps describe the successful attempt only
    assert record.steps[0].name == "Initialize"
    assert "Attempt 2/3" in record.steps[0].message

    first_session, second_session = sessions.sessions
    assert first_session.proxy_url != second_session.proxy_url
    assert len(fingerprints.generated) == 2
    assert first_session.fingerprint is fingerprints.generated[0]
    assert second_session.fingerprint is fingerprints.generated[1]
    assert len(first_session.calls) == 2
    assert first_session.closed and second_session.closed


def test_exhausted_attempts_return_aggregate_failure(make_engine):
    sessions = ScriptedSessions(site(search_status=403))
    record = make_engine(sessions, max_attempts=2).lookup(TAX_CODE)

    assert not record.found
    assert "2 lần" in record.error
    assert record.name is None
    assert record.address is None
    assert record.tax_code == TAX_CODE
    assert len(record.steps) == 1
    assert record.steps[0].name == STEP_ALL_FAILED
    assert record.steps[0].status == STATUS_ERROR
    assert record.steps[0].message == "Tried 2 attempts"
    assert sum("=== Attempt" in line for line in record.logs) == 2
    assert len(sessions.sessions) == 2


def test_detail_page_without_name_is_not_found(make_engine):
    engine = make_engine(ScriptedSessions(site(search=search_page(MAIN_LINK), detail=detail_page(name=None))))
    result = engine._run_attempt(LookupQuery.from_text(TAX_CODE), 1, None)

    assert result.failure is FailureKind.NOT_FOUND
    assert result.record.error == "Company information not found"
    assert result.record.name is None
    assert result.record.representative is None
    assert result.record.phone is None


def test_tax_code_mismatch_is_distinct_failure(make_engine):
    sessions = ScriptedSessions(site(search=search_page(MAIN_LINK), detail=detail_page(tax_code="9999999999")))
    result = make_engine(sessions)._run_attempt(LookupQuery.from_text(TAX_CODE), 1, None)

    assert result.failure is FailureKind.TAX_CODE_MISMATCH
    assert TAX_CODE in result.record.error
    assert result.record.name is None
    assert result.record.steps[-1].name == "Validate Tax Code"


def test_tax_code_mismatch_logs_survive_in_final_record(make_engine):
    sessions = ScriptedSessions(site(search=search_page(MAIN_LINK), detail=detail_page(tax_code="9999999999")))
    record = make_engine(sessions, max_attempts=1).lookup(TAX_CODE)

    assert not record.found
    assert any("Tax code mismatch" in line for line in record.logs)


def test_error_banner_is_not_found(make_engine):
    banner = '<html><body><div class="alert alert-danger">Không tìm thấy kết quả</div></body></html>'
    engine = make_engine(ScriptedSessions(site(search=banner)))
    result = engine._run_attempt(LookupQuery.from_text(TAX_CODE), 1, None)

    assert result.failure is FailureKind.NOT_FOUND
    assert result.record.error == "Company not found"
    assert any("Không tìm thấy kết quả" in line for line in result.record.logs)


def test_search_page_is_used_as_detail_when_no_link(make_engine):
    sessions = ScriptedSessions(site(search=detail_page()))
    record = make_engine(sessions).lookup(TAX_CODE)

    assert record.found
    assert record.name == "CÔNG TY TNHH ABC"
    assert len(sessions.sessions[0].calls) == 2


def test_lookup_by_name_takes_tax_code_from_page(make_engine):
    sessions = ScriptedSessions(site(search=search_page(MAIN_LINK), detail=detail_page()))
    record = make_engine(sessions).lookup("Công ty ABC")

    assert record.found
    assert record.tax_code == TAX_CODE
    search_call = sessions.sessions[0].calls[1]
    assert "type=auto" in search_call["url"]


def test_homepage_failure_is_only_a_warning(make_engine):
    sessions = ScriptedSessions(site(search=search_page(MAIN_LINK), detail=detail_page(), homepage_status=503))
    record = make_engine(sessions).lookup(TAX_CODE)

    assert record.found
    homepage_steps = [step for step in record.steps if step.name == "Fetch Homepage"]
    assert homepage_steps[-1].status == STATUS_WARNING


def test_transport_error_is_retried_with_new_session(make_engine):
    def broken(url):
        raise requests.ConnectionError("connection reset")

    sessions = ScriptedSessions(broken, site(search=search_page(MAIN_LINK), detail=detail_page()))
    record = make_engine(sessions).lookup(TAX_CODE)

    assert record.found
    assert any("connection reset" in line for line in record.logs)
    assert sessions.sessions[0].closed


def test_unexpected_error_is_captured_in_record(make_engine):
    def explode(url):
        raise RuntimeError("boom")

    record = make_engine(ScriptedSessions(explode), max_attempts=1).lookup(TAX_CODE)

    assert not record.found
    assert any("Error: error - boom" in line for line in record.logs)


def test_lookup_without_proxies_connects_directly(make_engine):
    sessions = ScriptedSessions(site(search=search_page(MAIN_LINK), detail=detail_page()))
    record = make_engine(sessions, proxies=()).lookup(TAX_CODE)

    assert record.found
    assert sessions.sessions[0].proxy_url is None
    assert "Proxy: No proxy" in record.steps[0].message
    assert record.logs[0].startswith("Loaded 0 proxy(ies)")


def test_proxy_password_is_masked_in_logs(make_engine):
    sessions = ScriptedSessions(site(search=search_page(MAIN_LINK), detail=detail_page()))
    record = make_engine(sessions).lookup(TAX_CODE)

    assert not any("secret" in line for line in record.logs)
    assert any(":****@" in line for line in record.logs)


def test_pauses_between_steps_and_attempts(make_engine):
    sessions = ScriptedSessions(
        site(search_status=403),
        site(search=search_page(MAIN_LINK), detail=detail_page()),
    )
    sleeps = []
    record = make_engine(sessions, sleep=sleeps.append).lookup(TAX_CODE)

    assert record.found
    expected = [BOOTSTRAP_PAUSE, RETRY_BACKOFF, BOOTSTRAP_PAUSE, DETAIL_PAUSE]
    assert len(sleeps) == len(expected)
    for seconds, (low, high) in zip(sleeps, expected):
        assert low <= seconds <= high


def test_no_backoff_after_last_attempt(make_engine):
    sleeps = []
    make_engine(ScriptedSessions(site(search_status=403)), max_attempts=2, sleep=sleeps.append).lookup(TAX_CODE)

    # bootstrap, backoff, bootstrap
    assert len(sleeps) == 3
    low, high = RETRY_BACKOFF
    assert low <= sleeps[1] <= high


def test_slow_body_is_cut_off_by_total_timeout(make_engine, dripping_server):
    engine = make_engine(
        build_session,
        proxies=(),
        max_attempts=1,
        timeout=0.5,
        connect_timeout=0.2,
        base_url=dripping_server,
    )

    started = time.monotonic()
    record = engine.lookup(TAX_CODE)
    elapsed = time.monotonic() - started

    assert not record.found
    # homepage and search are each abandoned after 0.5s; the body alone takes 2s
    assert elapsed < 1.8
    assert any("Request timed out after 0.5s" in line for line in record.logs)
