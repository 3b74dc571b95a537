"""Integration tests for the patient backend client using a mock transport"""

import httpx
import pytest

from careflex_billing.domain.exceptions import InvalidSnapshotError, UpstreamAPIError
from careflex_billing.infrastructure.clients.upstream import UpstreamClient


def _client(handler) -> UpstreamClient:
    return UpstreamClient(base_url="http://backend.test/", timeout=1.0, transport=httpx.MockTransport(handler))


async def test_get_billing_snapshot_success(raw_dashboard):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json=raw_dashboard)

    snapshot = await _client(handler).get_billing_snapshot("tok_abc")

    assert seen["url"] == "http://backend.test/api/patient/dashboard"
    assert seen["auth"] == "Bearer tok_abc"
    assert len(snapshot.invoices) == 2
    assert snapshot.account["creditLimit"] == "2000"


async def test_get_billing_snapshot_http_error():
    client = _client(lambda request: httpx.Response(502, json={"ok": False}))

    with pytest.raises(UpstreamAPIError, match="502"):
        await client.get_billing_snapshot("tok")


async def test_get_billing_snapshot_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(UpstreamAPIError, match="timeout"):
        await _client(handler).get_billing_snapshot("tok")


async def test_get_billing_snapshot_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamAPIError, match="unreachable"):
        await _client(handler).get_billing_snapshot("tok")


async def test_get_billing_snapshot_non_json():
    client = _client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(UpstreamAPIError, match="Invalid JSON"):
        await client.get_billing_snapshot("tok")


async def test_get_billing_snapshot_without_billing_data():
    client = _client(lambda request: httpx.Response(200, json={"profile": {"name": "Pat"}}))

    with pytest.raises(InvalidSnapshotError):
        await client.get_billing_snapshot("tok")
