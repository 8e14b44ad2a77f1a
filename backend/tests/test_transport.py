"""
Invoice Archive Hub - Graph Transport Tests
"""

import json

import httpx
import pytest

from services.sharepoint_archive.config import ArchiveSettings
from services.sharepoint_archive.errors import GraphRequestError, UploadError
from services.sharepoint_archive.transport import (
    GraphResponse,
    GraphTransport,
    graph_error,
    join_drive_path,
    parse_json_safe,
)


def _transport(handler) -> GraphTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GraphTransport(ArchiveSettings(), client=client)


class TestHelpers:
    """Tests for path and JSON helpers."""

    def test_join_drive_path(self):
        assert join_drive_path("/Invoices/", "json") == "Invoices/json"
        assert join_drive_path("", "json") == "json"
        assert join_drive_path("Invoices", None, "") == "Invoices"

    def test_parse_json_safe(self):
        assert parse_json_safe('{"a": 1}') == {"a": 1}
        assert parse_json_safe("<html>", default={}) == {}
        assert parse_json_safe("", default=None) is None


class TestGraphError:
    """Tests for graph_error."""

    def test_conflict_code(self):
        resp = GraphResponse(409, json.dumps({"error": {"code": "nameAlreadyExists", "message": "Name already exists"}}))
        err = graph_error(resp, "Upload failed", UploadError)

        assert isinstance(err, UploadError)
        assert err.code == "nameAlreadyExists"
        assert err.conflict is True
        assert "Name already exists" in err.message

    def test_non_json_body(self):
        err = graph_error(GraphResponse(502, "Bad Gateway"), "Graph request failed")
        assert err.status_code == 502
        assert err.code is None
        assert err.conflict is False
        assert "Bad Gateway" in err.message


class TestGraphTransport:
    """Tests for GraphTransport."""

    def test_url(self):
        transport = GraphTransport(ArchiveSettings())
        assert transport.url("/drives/d1") == "https://graph.microsoft.com/v1.0/drives/d1"
        assert transport.url("https://login.microsoftonline.com/x") == "https://login.microsoftonline.com/x"

    @pytest.mark.asyncio
    async def test_fetch_returns_error_status(self):
        transport = _transport(lambda request: httpx.Response(404, text="missing"))
        resp = await transport.fetch("/drives/d1")
        assert resp.status == 404
        assert not resp.ok
        assert resp.text == "missing"

    @pytest.mark.asyncio
    async def test_fetch_dict_body_as_json(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["content_type"] = request.headers.get("content-type")
            return httpx.Response(201, json={"index": 3})

        resp = await _transport(handler).fetch("/x", "post", body={"values": [[1, 2]]})

        assert resp.ok
        assert seen["body"] == {"values": [[1, 2]]}
        assert seen["content_type"] == "application/json"

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GraphRequestError):
            await _transport(handler).fetch("/x")

    @pytest.mark.asyncio
    async def test_request_json_sends_bearer(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"value": [{"name": "Total", "index": 0}]})

        data = await _transport(handler).request_json("/drives/d/items/i/workbook/tables/T/columns", "tok")

        assert seen["auth"] == "Bearer tok"
        assert data["value"][0]["name"] == "Total"

    @pytest.mark.asyncio
    async def test_request_json_raises_on_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"error": {"code": "accessDenied", "message": "Access denied"}})

        with pytest.raises(GraphRequestError) as exc_info:
            await _transport(handler).request_json("/x", "tok", context="List columns failed")

        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "accessDenied"
        assert exc_info.value.message.startswith("List columns failed: 403")

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        async with GraphTransport(ArchiveSettings(), client=client):
            pass
        assert not client.is_closed
        await client.aclose()
