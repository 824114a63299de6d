"""Access Logging — one line per request, error paths included."""

import logging
from datetime import datetime, timezone

from vecinity.middleware.access_log import format_access_line


def _scope(**extra):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/health",
        "raw_path": b"/api/health",
        "query_string": b"",
        "http_version": "1.1",
        "headers": [(b"user-agent", b"curl/8.0"), (b"referer", b"http://x")],
    }
    scope.update(extra)
    return scope


def test_combined_format():
    line = format_access_line(
        "combined", _scope(), 200, "57", 1.5, "10.0.0.1",
        now=datetime(2024, 3, 5, 14, 7, 9, tzinfo=timezone.utc),
    )
    assert line == (
        '10.0.0.1 - - [05/Mar/2024:14:07:09 +0000] "GET /api/health HTTP/1.1" '
        '200 57 "http://x" "curl/8.0"'
    )


def test_tiny_format_includes_query_and_timing():
    line = format_access_line(
        "tiny", _scope(query_string=b"page=2"), 404, "-", 2.25, "10.0.0.1",
    )
    assert line == "GET /api/health?page=2 404 - - 2.250 ms"


def test_unknown_format_falls_back_to_combined():
    line = format_access_line("bogus", _scope(), 200, "1", 0.1, "10.0.0.1")
    assert line.startswith("10.0.0.1 - - [")


async def test_request_logged(client, caplog):
    with caplog.at_level(logging.INFO, logger="vecinity.access"):
        await client.get("/api/health")
    lines = [r for r in caplog.records if r.name == "vecinity.access"]
    assert len(lines) == 1
    assert '"GET /api/health HTTP/1.1" 200' in lines[0].getMessage()
    assert lines[0].status_code == 200


async def test_error_paths_logged(client, caplog):
    with caplog.at_level(logging.INFO, logger="vecinity.access"):
        await client.get("/api/reports/boom")
        await client.get("/no/such/route")
    statuses = [r.status_code for r in caplog.records if r.name == "vecinity.access"]
    assert statuses == [500, 404]


async def test_access_format_from_log_level(make_client, caplog):
    client = await make_client(log_level="tiny")
    with caplog.at_level(logging.INFO, logger="vecinity.access"):
        await client.get("/api/health")
    line = next(r for r in caplog.records if r.name == "vecinity.access")
    assert line.getMessage().startswith("GET /api/health 200")
