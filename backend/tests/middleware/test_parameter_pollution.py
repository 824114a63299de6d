"""Parameter Pollution — duplicated keys collapse to the last value."""

from vecinity.middleware.parameter_pollution import collapse_pairs


def test_collapse_keeps_last_value():
    kept, polluted = collapse_pairs([("a", "1"), ("b", "x"), ("a", "2")])
    assert kept == [("a", "2"), ("b", "x")]
    assert polluted == {"a": ["1", "2"]}


def test_whitelisted_keys_keep_all_values():
    kept, polluted = collapse_pairs(
        [("tag", "a"), ("tag", "b")], whitelist=frozenset({"tag"}),
    )
    assert kept == [("tag", "a"), ("tag", "b")]
    assert polluted == {}


async def test_duplicate_query_keys_collapsed(client):
    res = await client.get("/api/reports/echo?status=open&status=closed&page=1")
    data = res.json()
    assert data["query_items"] == [["status", "closed"], ["page", "1"]]
    assert data["polluted_query"] == {"status": ["open", "closed"]}


async def test_duplicate_form_keys_collapsed(client):
    res = await client.post(
        "/api/reports/echo",
        content=b"role=citizen&role=admin",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    data = res.json()
    assert data["body"] == {"role": "admin"}
    assert data["raw"] == "role=admin"
    assert data["polluted_body"] == {"role": ["citizen", "admin"]}


async def test_json_arrays_untouched(client):
    res = await client.post("/api/reports/echo", json={"role": ["a", "b"]})
    assert res.json()["body"] == {"role": ["a", "b"]}


async def test_whitelist_from_settings(make_client):
    client = await make_client(hpp_whitelist="tag")
    res = await client.get("/api/reports/echo?tag=a&tag=b")
    assert res.json()["query_items"] == [["tag", "a"], ["tag", "b"]]
