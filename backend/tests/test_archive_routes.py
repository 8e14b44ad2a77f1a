"""
Invoice Archive Hub - Archive API Tests

Exercises the /api/archive endpoints with FastAPI's TestClient.
The archiver and Excel client factories are patched; no Graph calls are made.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient

from routes import archive
from services.sharepoint_archive import (
    ArchiveRunResult,
    ArchiveSettings,
    AttachmentOutcome,
    AuthError,
    InMemoryStore,
    MissingParameterError,
)
from services.sharepoint_archive.excel_rows import ExcelAppendResult


@pytest.fixture
def client():
    archive.set_dependencies(ArchiveSettings(site_id="site-default", drive_id="drive-default"), MagicMock(), InMemoryStore())
    app = FastAPI()
    api_router = APIRouter(prefix="/api")
    api_router.include_router(archive.router)
    app.include_router(api_router)
    yield TestClient(app)
    archive.set_dependencies(None, None, None)


def _archiver(result=None, error=None):
    archiver = MagicMock()
    archiver.archive = AsyncMock(return_value=result, side_effect=error)
    return archiver


class TestSaveInvoices:
    """Tests for POST /api/archive/invoices."""

    def test_returns_per_attachment_results(self, client):
        run = ArchiveRunResult(items=[("a.pdf", AttachmentOutcome(base="b", pdf={"id": "1"}, pdf_name="b.pdf"))])
        archiver = _archiver(result=run)

        with patch("routes.archive.create_invoice_archiver", return_value=archiver):
            response = client.post("/api/archive/invoices", json={
                "attachments": [{"uid": 1, "filename": "a.pdf", "dataBase64": "JVBERg=="}],
                "aiResults": [{"uid": 1, "data": {"total_amount": "10"}}],
                "sp": {"drivePath": "Archive"},
                "auth": {"accessToken": "tok"},
            })

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["data"][0]["result"]["pdf_name"] == "b.pdf"

        attachments, results, target, hints = archiver.archive.await_args.args
        assert attachments[0].content == b"%PDF"
        assert attachments[0].uid == "1"
        assert results[0].data == {"total_amount": "10"}
        assert (target.site_id, target.drive_id, target.drive_path) == ("site-default", "drive-default", "Archive")
        assert hints.access_token == "tok"

    def test_missing_target_is_bad_request(self, client):
        archiver = _archiver(error=MissingParameterError("missing site_id or drive_id"))
        with patch("routes.archive.create_invoice_archiver", return_value=archiver):
            response = client.post("/api/archive/invoices", json={"attachments": []})

        assert response.status_code == 400
        assert response.json()["detail"] == "missing site_id or drive_id"

    def test_no_token_is_unauthorized(self, client):
        archiver = _archiver(error=AuthError("missing access token"))
        with patch("routes.archive.create_invoice_archiver", return_value=archiver):
            response = client.post("/api/archive/invoices", json={"attachments": []})

        assert response.status_code == 401


class TestAppendExcelRows:
    """Tests for POST /api/archive/excel/rows."""

    def test_success_envelope(self, client):
        excel = MagicMock()
        excel.append_rows = AsyncMock(return_value=ExcelAppendResult(ok=True, data={"index": 2}))

        with patch("routes.archive.create_excel_client", return_value=excel):
            response = client.post("/api/archive/excel/rows", json={
                "driveId": "d1",
                "path": "/Finance/Log.xlsx",
                "table": "Invoices",
                "row": {"Total": 5},
            })

        assert response.status_code == 200
        assert response.json() == {"ok": True, "data": {"index": 2}}
        locator, table = excel.append_rows.await_args.args
        assert (locator.drive_id, locator.path, table) == ("d1", "/Finance/Log.xlsx", "Invoices")
        assert excel.append_rows.await_args.kwargs["row"] == {"Total": 5}

    def test_failure_envelope(self, client):
        excel = MagicMock()
        excel.append_rows = AsyncMock(return_value=ExcelAppendResult(ok=False, error="missing table"))

        with patch("routes.archive.create_excel_client", return_value=excel):
            response = client.post("/api/archive/excel/rows", json={"driveId": "d1", "itemId": "i1"})

        assert response.status_code == 200
        assert response.json() == {"ok": False, "error": "missing table"}


def test_uninitialized_dependencies():
    archive.set_dependencies(None, None, None)
    app = FastAPI()
    app.include_router(archive.router)
    response = TestClient(app).post("/archive/excel/rows", json={})
    assert response.status_code == 500
