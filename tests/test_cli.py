from __future__ import annotations

import json

from mstlookup import cli
from mstlookup.formatters import format_company_record, format_steps
from mstlookup.models import CompanyRecord, StepRecord


def _found_record(query: str) -> CompanyRecord:
    record = CompanyRecord(
        tax_code=query,
        name="CÔNG TY TNHH ABC",
        address="123 Lê Lợi, Phường 1, Tỉnh Bình Dương, Việt Nam",
        phone="02743812345",
    )
    record.logs.append("[2024-01-01T00:00:00] Complete: success")
    record.steps.append(StepRecord("Complete", "success", "Successfully fetched company information", 1))
    return record


class DummyEngine:
    instances: list = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        DummyEngine.instances.append(self)

    def lookup(self, query: str) -> CompanyRecord:
        if query == "0000000000":
            return CompanyRecord(tax_code=query, error="Đã cố gắng 3 lần nhưng không tìm thấy kết quả")
        return _found_record(query)


def test_lookup_prints_json(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "LookupEngine", DummyEngine)

    exit_code = cli.main(["lookup", "-q", " 0123456789 ", "--json", "--attempts", "2"])

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert output["taxCode"] == "0123456789"
    assert output["name"] == "CÔNG TY TNHH ABC"
    assert "logs" not in output
    engine = DummyEngine.instances[-1]
    assert engine.kwargs["max_attempts"] == 2
    assert len(engine.kwargs["proxy_pool"]) == 0


def test_lookup_uses_proxy_file(monkeypatch, tmp_path, capsys):
    proxy_file = tmp_path / "list.txt"
    proxy_file.write_text("http://u:p@1.2.3.4:8080\n", encoding="utf-8")
    monkeypatch.setattr(cli, "LookupEngine", DummyEngine)

    exit_code = cli.main(["lookup", "-q", "0123456789", "--proxies", str(proxy_file), "--show-logs"])

    output = capsys.readouterr().out
    assert exit_code == 0
    assert "Tên công ty: CÔNG TY TNHH ABC" in output
    assert "Complete: success" in output
    assert len(DummyEngine.instances[-1].kwargs["proxy_pool"]) == 1


def test_lookup_not_found_exits_with_error(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "LookupEngine", DummyEngine)

    exit_code = cli.main(["lookup", "-q", "0000000000"])

    assert exit_code == 1
    assert "Đã cố gắng 3 lần" in capsys.readouterr().out


def test_lookup_rejects_short_query(monkeypatch, capsys):
    monkeypatch.setattr(cli, "LookupEngine", DummyEngine)

    exit_code = cli.main(["lookup", "-q", "a"])

    assert exit_code == 1
    assert "Lỗi validation" in capsys.readouterr().out


def test_lookup_reports_missing_proxy_file(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(cli, "LookupEngine", DummyEngine)

    exit_code = cli.main(["lookup", "-q", "0123456789", "--proxies", str(tmp_path / "missing.txt")])

    assert exit_code == 1
    assert "Lỗi cấu hình" in capsys.readouterr().out


def test_ratelimit_command(tmp_path, capsys):
    args = ["ratelimit", "203.0.113.7", "--max-requests", "1", "--storage-dir", str(tmp_path), "--json"]

    assert cli.main(args) == 0
    first = json.loads(capsys.readouterr().out)
    assert cli.main(args) == 1
    second = json.loads(capsys.readouterr().out)

    assert first["allowed"] is True
    assert first["remaining"] == 0
    assert second["allowed"] is False
    assert second["retry_after"] > 0


def test_ratelimit_whitelist(tmp_path, capsys):
    args = ["ratelimit", "14.224.174.20", "--storage-dir", str(tmp_path), "--whitelist", "14.224.174.0"]

    assert cli.main(args) == 0
    assert "whitelisted" in capsys.readouterr().out


def test_ratelimit_rejects_zero_limit(tmp_path, capsys):
    args = ["ratelimit", "203.0.113.7", "--max-requests", "0", "--storage-dir", str(tmp_path)]

    assert cli.main(args) == 1
    assert "rate limit không hợp lệ" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "lookup" in capsys.readouterr().out


def test_formatters():
    record = _found_record("0123456789")

    text = format_company_record(record)

    assert "Mã số thuế: 0123456789" in text
    assert "Điện thoại: 02743812345" in text
    assert format_steps(record).startswith("✅ Complete")
    assert format_company_record(CompanyRecord(error="Company not found")) == "❌ Company not found"
