"""Security Headers — applied to every response, including errors and uploads."""

from vecinity.middleware.security_headers import DEFAULT_HEADERS


def _assert_hardened(response, corp="same-origin"):
    for name, value in DEFAULT_HEADERS.items():
        if name == "Cross-Origin-Resource-Policy":
            assert response.headers[name] == corp
        else:
            assert response.headers[name] == value
    assert "x-powered-by" not in response.headers


async def test_headers_on_health(client):
    res = await client.get("/api/health")
    _assert_hardened(res)


async def test_headers_on_not_found(client):
    res = await client.get("/does/not/exist")
    assert res.status_code == 404
    _assert_hardened(res)


async def test_headers_on_handler_fault(client):
    res = await client.get("/api/reports/boom")
    assert res.status_code == 500
    _assert_hardened(res)


async def test_headers_on_throttled_response(make_client):
    client = await make_client(rate_limit_max=1)
    await client.get("/api/health")
    res = await client.get("/api/health")
    assert res.status_code == 429
    _assert_hardened(res)


async def test_uploads_override_resource_policy_only(client, settings):
    (settings.upload_dir / "photo.txt").write_text("bache en la esquina")
    res = await client.get("/uploads/photo.txt")
    assert res.status_code == 200
    assert res.text == "bache en la esquina"
    _assert_hardened(res, corp="cross-origin")
