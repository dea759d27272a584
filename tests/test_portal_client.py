import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from api.payment import fetch_portal_transaction

TRANSACTION_PATH = "/api/v2/minikit/transaction/{transaction_id}"


@pytest.fixture
def portal(monkeypatch):
    """Run fetch_portal_transaction against a local aiohttp app serving the given handler"""

    def run(handler, transaction_id="0xtx"):
        async def scenario():
            app = web.Application()
            app.router.add_get(TRANSACTION_PATH, handler)
            async with test_utils.TestServer(app) as server:
                monkeypatch.setenv("DEV_PORTAL_BASE_URL", str(server.make_url("/")))
                return await fetch_portal_transaction(transaction_id, "app_test_123", "api_key_test")

        return asyncio.run(scenario())

    return run


def test_fetch_sends_credentials_and_no_store(portal):
    seen = {}

    async def handler(request):
        seen["path_id"] = request.match_info["transaction_id"]
        seen["app_id"] = request.query.get("app_id")
        seen["authorization"] = request.headers.get("Authorization")
        seen["cache_control"] = request.headers.get("Cache-Control")
        return web.json_response({"reference": "a" * 32, "status": "mined"})

    result = portal(handler, transaction_id="0xabc")

    assert result.ok is True
    assert result.status == 200
    assert result.transaction == {"reference": "a" * 32, "status": "mined"}
    assert seen == {
        "path_id": "0xabc",
        "app_id": "app_test_123",
        "authorization": "Bearer api_key_test",
        "cache_control": "no-store",
    }


def test_fetch_carries_upstream_status(portal):
    async def handler(request):
        return web.json_response({"code": "not_found"}, status=404)

    result = portal(handler)

    assert result.ok is False
    assert result.status == 404
    assert result.error == "Portal query failed: 404"


def test_fetch_invalid_json(portal):
    async def handler(request):
        return web.Response(text="<html>oops</html>", content_type="text/html")

    result = portal(handler)

    assert result.ok is False
    assert result.error == "Portal query failed: invalid response"


def test_fetch_network_error(monkeypatch):
    # Nothing listens on port 1
    monkeypatch.setenv("DEV_PORTAL_BASE_URL", "http://127.0.0.1:1")

    result = asyncio.run(fetch_portal_transaction("0xtx", "app_test_123", "api_key_test"))

    assert result.ok is False
    assert result.status is None
    assert result.error == "Portal query failed: network error"
