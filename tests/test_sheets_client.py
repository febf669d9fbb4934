# tests/test_sheets_client.py

import json
from io import BytesIO
from urllib.error import HTTPError, URLError
from urllib.parse import parse_qs, urlparse

import pytest

import leaguelog.sheets_client as sheets_module
from leaguelog.sheets_client import (
    SheetsClient,
    SourceUnavailableError,
    grid_range,
    header_range,
    start_row,
)


@pytest.fixture
def client():
    return SheetsClient("sheet-123", "key-abc", retry_sleep_seconds=0)


def _response(payload):
    return BytesIO(json.dumps(payload).encode("utf-8"))


class TestRanges:
    def test_header_range(self):
        assert header_range("Map Log!A2:F") == "Map Log!A1:F1"
        assert header_range("Player Log!A2:P500") == "Player Log!A1:P1"
        assert header_range("schedule!B3") == "schedule!B1:B1"
        assert header_range("no-sheet") is None

    def test_start_row(self):
        assert start_row("Match Log!A2:I") == 2
        assert start_row("Match Log!A5:I40") == 5
        assert start_row("Match Log") == 1

    def test_grid_range_fallback(self):
        assert grid_range("Match Log!A3:I", "A2:I") == "A3:I"
        assert grid_range("Match Log", "A2:I") == "A2:I"


def test_missing_credentials():
    with pytest.raises(SourceUnavailableError):
        SheetsClient("", "key")
    with pytest.raises(SourceUnavailableError):
        SheetsClient("sheet", None)


def test_batch_get_url_carries_ranges_and_key(client):
    url = urlparse(client.batch_get_url(["Match Log!A2:I", "Map Log!A2:F"]))
    params = parse_qs(url.query)

    assert url.path.endswith("/sheet-123/values:batchGet")
    assert params["ranges"] == ["Match Log!A2:I", "Map Log!A2:F"]
    assert params["key"] == ["key-abc"]


def test_batch_get_pads_missing_ranges(client, monkeypatch):
    payload = {"valueRanges": [{"range": "Match Log!A2:I", "values": [["S1", "x"]]}, {"range": "Map Log!A2:F"}]}
    monkeypatch.setattr(sheets_module, "urlopen", lambda req, timeout=20: _response(payload))

    result = client.batch_get(["Match Log!A2:I", "Map Log!A2:F", "Player Log!A2:P"])

    assert result == [[["S1", "x"]], [], []]


def test_empty_batch_makes_no_request(client, monkeypatch):
    def fail(*_args, **_kwargs):
        raise AssertionError("unexpected request")

    monkeypatch.setattr(sheets_module, "urlopen", fail)
    assert client.batch_get([]) == []


def test_rate_limit_retry(monkeypatch):
    client = SheetsClient("sheet", "key")
    calls = {"count": 0}

    def fake_urlopen(req, timeout=20):
        calls["count"] += 1
        if calls["count"] == 1:
            raise HTTPError(req.full_url, 429, "Too Many Requests", hdrs=None, fp=BytesIO(b"{}"))
        return _response({"ok": True})

    monkeypatch.setattr(sheets_module, "urlopen", fake_urlopen)
    monkeypatch.setattr(sheets_module.time, "sleep", lambda *_: None)

    data = client._get_json("https://example.com/test")
    assert data["ok"] is True
    assert calls["count"] == 2


def test_second_rate_limit_gives_up(client, monkeypatch):
    def fake_urlopen(req, timeout=20):
        raise HTTPError(req.full_url, 429, "Too Many Requests", hdrs=None, fp=BytesIO(b"{}"))

    monkeypatch.setattr(sheets_module, "urlopen", fake_urlopen)
    monkeypatch.setattr(sheets_module.time, "sleep", lambda *_: None)

    with pytest.raises(SourceUnavailableError):
        client._get_json("https://example.com/test")


@pytest.mark.parametrize("error", [
    HTTPError("https://example.com", 403, "Forbidden", hdrs=None, fp=BytesIO(b"{}")),
    URLError("no route"),
    TimeoutError("timed out"),
    ConnectionResetError("reset by peer"),
])
def test_transport_errors_become_source_unavailable(client, monkeypatch, error):
    def fake_urlopen(req, timeout=20):
        raise error

    monkeypatch.setattr(sheets_module, "urlopen", fake_urlopen)
    with pytest.raises(SourceUnavailableError):
        client.batch_get(["Match Log!A2:I"])


def test_invalid_json(client, monkeypatch):
    monkeypatch.setattr(sheets_module, "urlopen", lambda req, timeout=20: BytesIO(b"<html>"))
    with pytest.raises(SourceUnavailableError):
        client.batch_get(["Match Log!A2:I"])
