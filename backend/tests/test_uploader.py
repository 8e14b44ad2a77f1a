"""
Invoice Archive Hub - Collision-Safe Upload Tests

Tests suffix probing and the Graph simple upload call.
"""

import json

import httpx
import pytest
from unittest.mock import AsyncMock

from services.sharepoint_archive.config import ArchiveSettings
from services.sharepoint_archive.errors import (
    CollisionExhaustedError,
    GraphRequestError,
    MissingParameterError,
    UploadError,
)
from services.sharepoint_archive.storage import InMemoryStore
from services.sharepoint_archive.transport import GraphTransport
from services.sharepoint_archive.uploader import (
    GraphUploader,
    is_name_conflict,
    upload_with_suffix,
)


def _conflict(name: str) -> UploadError:
    return UploadError(f"Upload of {name} failed: 409 - name already exists", status_code=409)


def _uploader_for(handler) -> GraphUploader:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GraphUploader(GraphTransport(ArchiveSettings(), client=client), InMemoryStore({"mail/1/a.pdf": b"%PDF-stored"}))


# =============================================================================
# SUFFIX PROBING
# =============================================================================

class TestUploadWithSuffix:
    """Tests for upload_with_suffix."""

    @pytest.mark.asyncio
    async def test_first_name_free(self):
        upload = AsyncMock(return_value={"id": "item-1"})
        result = await upload_with_suffix("20240315_Acme_10.00", ".pdf", upload)

        assert result.final_base_name == "20240315_Acme_10.00"
        assert result.response == {"id": "item-1"}
        assert result.attempts == 1
        upload.assert_awaited_once_with("20240315_Acme_10.00.pdf")

    @pytest.mark.asyncio
    async def test_advances_past_conflicts(self):
        upload = AsyncMock(side_effect=[_conflict("base.pdf"), _conflict("base_1.pdf"), {"id": "item-3"}])
        result = await upload_with_suffix("base", ".pdf", upload)

        assert result.final_base_name == "base_2"
        assert result.filename(".pdf") == "base_2.pdf"
        assert upload.await_count == 3
        assert [c.args[0] for c in upload.await_args_list] == ["base.pdf", "base_1.pdf", "base_2.pdf"]

    @pytest.mark.asyncio
    async def test_already_exists_message_from_plain_exception(self):
        upload = AsyncMock(side_effect=[
            Exception("Name already exists"),
            Exception("The resource EXISTS"),
            {"id": "ok"},
        ])
        result = await upload_with_suffix("base", ".pdf", upload)

        assert result.final_base_name == "base_2"
        assert upload.await_count == 3

    @pytest.mark.asyncio
    async def test_exhausted_after_ten_attempts(self):
        upload = AsyncMock(side_effect=_conflict("base.pdf"))
        with pytest.raises(CollisionExhaustedError) as exc_info:
            await upload_with_suffix("base", ".pdf", upload)

        assert upload.await_count == 10
        assert upload.await_args_list[-1].args[0] == "base_9.pdf"
        assert exc_info.value.attempts == 10

    @pytest.mark.asyncio
    async def test_other_errors_propagate_immediately(self):
        upload = AsyncMock(side_effect=UploadError("Upload failed: 403 - accessDenied", status_code=403))
        with pytest.raises(UploadError):
            await upload_with_suffix("base", ".json", upload)
        assert upload.await_count == 1

    @pytest.mark.asyncio
    async def test_structured_flag_wins_over_message(self):
        # "does not exist" must not be read as a name collision
        error = UploadError("Upload failed: 404 - parent folder does not exist", status_code=404)
        upload = AsyncMock(side_effect=error)
        with pytest.raises(UploadError):
            await upload_with_suffix("base", ".pdf", upload)
        assert upload.await_count == 1


class TestIsNameConflict:
    """Tests for is_name_conflict."""

    def test_status_409(self):
        assert is_name_conflict(GraphRequestError("x", status_code=409))

    def test_graph_error_code(self):
        assert is_name_conflict(GraphRequestError("x", status_code=400, code="nameAlreadyExists"))

    def test_server_error(self):
        assert not is_name_conflict(GraphRequestError("already exists?", status_code=500))

    def test_foreign_error_message(self):
        assert is_name_conflict(RuntimeError("file already exists"))
        assert not is_name_conflict(RuntimeError("timeout"))


# =============================================================================
# GRAPH SIMPLE UPLOAD
# =============================================================================

class TestGraphUploader:
    """Tests for GraphUploader.upload_small."""

    @pytest.mark.asyncio
    async def test_put_with_fail_on_conflict(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["behavior"] = request.url.params.get("@microsoft.graph.conflictBehavior")
            seen["auth"] = request.headers["Authorization"]
            seen["type"] = request.headers["Content-Type"]
            seen["body"] = request.content
            return httpx.Response(201, json={"id": "item-1", "name": "a.pdf"})

        uploader = _uploader_for(handler)
        result = await uploader.upload_small(
            "site-1", "drive-1", "a.pdf", "tok",
            drive_path="/Invoices/", content=b"%PDF-1.7", content_type="application/pdf"
        )

        assert result == {"id": "item-1", "name": "a.pdf"}
        assert seen["method"] == "PUT"
        assert seen["path"] == "/v1.0/sites/site-1/drives/drive-1/root:/Invoices/a.pdf:/content"
        assert seen["behavior"] == "fail"
        assert seen["auth"] == "Bearer tok"
        assert seen["type"] == "application/pdf"
        assert seen["body"] == b"%PDF-1.7"

    @pytest.mark.asyncio
    async def test_content_read_from_store_path(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content)
            return httpx.Response(200, json={"id": "item-2"})

        uploader = _uploader_for(handler)
        await uploader.upload_small("site-1", "drive-1", "a.pdf", "tok", path="mail/1/a.pdf")
        assert bodies == [b"%PDF-stored"]

    @pytest.mark.asyncio
    async def test_conflict_response_sets_flag(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(409, json={"error": {"code": "nameAlreadyExists", "message": "Name already exists"}})

        uploader = _uploader_for(handler)
        with pytest.raises(UploadError) as exc_info:
            await uploader.upload_small("site-1", "drive-1", "a.pdf", "tok", content=b"x")

        assert exc_info.value.conflict is True
        assert exc_info.value.code == "nameAlreadyExists"
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_non_json_success_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="done")

        uploader = _uploader_for(handler)
        result = await uploader.upload_small("site-1", "drive-1", "a.pdf", "tok", content=b"x")
        assert result == {"raw": "done"}

    @pytest.mark.asyncio
    async def test_missing_identifiers(self):
        uploader = _uploader_for(lambda request: httpx.Response(500))
        with pytest.raises(MissingParameterError):
            await uploader.upload_small("", "drive-1", "a.pdf", "tok", content=b"x")
        with pytest.raises(MissingParameterError):
            await uploader.upload_small("site-1", "drive-1", "a.pdf", "", content=b"x")

    @pytest.mark.asyncio
    async def test_missing_data(self):
        uploader = _uploader_for(lambda request: httpx.Response(500))
        with pytest.raises(MissingParameterError):
            await uploader.upload_small("site-1", "drive-1", "a.pdf", "tok")

    @pytest.mark.asyncio
    async def test_json_sidecar_body_sent_verbatim(self):
        payloads = []

        def handler(request: httpx.Request) -> httpx.Response:
            payloads.append(json.loads(request.content))
            return httpx.Response(201, json={"id": "j1"})

        uploader = _uploader_for(handler)
        await uploader.upload_small(
            "site-1", "drive-1", "a.json", "tok",
            content=json.dumps({"total_amount": "10"}).encode("utf-8"),
            content_type="application/json"
        )
        assert payloads == [{"total_amount": "10"}]
