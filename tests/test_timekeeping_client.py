from __future__ import annotations

from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx
import pytest

from payroll_engine.infrastructure.timekeeping import (
    TimekeepingAuthError,
    TimekeepingClient,
    TimekeepingFetchError,
)


def _page(start: int, size: int) -> list[dict]:
    return [{"number": str(1000 + index), "date": "2025-04-01"} for index in range(start, start + size)]


def _client(handler) -> TimekeepingClient:
    transport = httpx.MockTransport(handler)
    return TimekeepingClient(
        "https://ieyasu.example",
        "acme",
        "c2VjcmV0",
        http_client=httpx.Client(transport=transport),
    )


def test_fetch_month_drains_pages_until_total_page():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/authentication/token"):
            assert request.headers["Authorization"] == "Basic c2VjcmV0"
            return httpx.Response(200, json={"token": "tok-1"})
        assert request.url.path == "/api/acme/v1/work_outputs/monthly/2025-04"
        assert request.headers["Authorization"] == "Token tok-1"
        page = int(request.url.params["page"])
        assert request.url.params["limit"] == "100"
        return httpx.Response(200, json=_page((page - 1) * 2, 2), headers={"X-Total-Page": "3"})

    records = _client(handler).fetch_month("2025-04")

    assert len(records) == 6
    assert [record["number"] for record in records][:2] == ["1000", "1001"]
    # token + three pages, no request beyond X-Total-Page
    assert len(seen) == 4


def test_empty_page_stops_pagination():
    calls = {"pages": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/authentication/token"):
            return httpx.Response(200, json={"token": "tok"})
        calls["pages"] += 1
        if request.url.params["page"] == "1":
            return httpx.Response(200, json=_page(0, 3), headers={"X-Total-Page": "5"})
        return httpx.Response(200, json=[], headers={"X-Total-Page": "5"})

    records = _client(handler).fetch_month("2025-04")

    assert len(records) == 3
    assert calls["pages"] == 2


def test_failed_page_reports_page_and_records_retrieved():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/authentication/token"):
            return httpx.Response(200, json={"token": "tok"})
        if request.url.params["page"] == "3":
            return httpx.Response(500, text="upstream exploded")
        return httpx.Response(200, json=_page(0, 100), headers={"X-Total-Page": "4"})

    with pytest.raises(TimekeepingFetchError) as excinfo:
        _client(handler).fetch_month("2025-04")

    error = excinfo.value
    assert error.page == 3
    assert error.records_retrieved == 200
    assert "500" in error.message
    assert "upstream exploded" in error.message


def test_authentication_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="bad key")

    with pytest.raises(TimekeepingAuthError) as excinfo:
        _client(handler).authenticate()

    assert "401" in str(excinfo.value)


def test_transport_error_is_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/authentication/token"):
            return httpx.Response(200, json={"token": "tok"})
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TimekeepingFetchError) as excinfo:
        _client(handler).fetch_month("2025-04")

    assert excinfo.value.page == 1
    assert excinfo.value.records_retrieved == 0


def test_base_url_must_be_absolute():
    with pytest.raises(ValueError):
        TimekeepingClient("ieyasu.example", "acme", "key")
