"""
SharePoint Archive API Routes

REST endpoints for archiving invoice attachments into SharePoint and
appending rows to Excel tables.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from services.sharepoint_archive import (
    ArchiveSettings,
    Attachment,
    AuthError,
    CredentialHints,
    ExtractionResult,
    MissingParameterError,
    UploadTarget,
    WorkbookLocator,
    create_excel_client,
    create_invoice_archiver,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/archive", tags=["SharePoint Archive"])

# Set by server.py when mounting the router
settings: ArchiveSettings = None
transport = None
store = None


def set_dependencies(archive_settings: ArchiveSettings, graph_transport, durable_store):
    global settings, transport, store
    settings = archive_settings
    transport = graph_transport
    store = durable_store


def _require_dependencies():
    if settings is None or transport is None:
        raise HTTPException(status_code=500, detail="Archive services not initialized")


# Request Models

class AuthHints(BaseModel):
    """Credential hints; any subset may be given."""
    accessToken: Optional[str] = None
    refreshToken: Optional[str] = None
    clientId: Optional[str] = None
    clientSecret: Optional[str] = None
    tenant: Optional[str] = None
    scope: Optional[str] = None


class AttachmentIn(BaseModel):
    uid: Optional[Any] = None
    filename: str
    contentType: Optional[str] = None
    path: Optional[str] = None
    dataBase64: Optional[str] = None


class ExtractionIn(BaseModel):
    uid: Optional[Any] = None
    filename: Optional[str] = None
    data: Dict[str, Any] = {}


class SharePointTarget(BaseModel):
    siteId: Optional[str] = None
    driveId: Optional[str] = None
    drivePath: Optional[str] = None
    jsonSubdir: Optional[str] = None


class SaveInvoicesRequest(BaseModel):
    """Request body for archiving invoice attachments."""
    attachments: List[AttachmentIn] = []
    aiResults: List[ExtractionIn] = []
    sp: SharePointTarget = SharePointTarget()
    auth: Optional[AuthHints] = None


class ExcelAppendRequest(BaseModel):
    """Request body for appending rows to an Excel table."""
    driveId: Optional[str] = None
    itemId: Optional[str] = None
    path: Optional[str] = None
    link: Optional[str] = None
    table: Optional[str] = None
    values: Optional[Any] = None
    row: Optional[Dict[str, Any]] = None
    auth: Optional[AuthHints] = None
    debug: bool = False


def _hints(auth: Optional[AuthHints]) -> CredentialHints:
    return CredentialHints.from_dict(auth.model_dump() if auth else None)


# Endpoints

@router.post("/invoices")
async def save_invoices(request: SaveInvoicesRequest):
    """
    Archive PDF attachments and their extraction JSON into SharePoint.

    Returns per-attachment results; individual upload failures appear as
    null entries rather than failing the request.
    """
    _require_dependencies()
    target = UploadTarget.from_settings(
        settings,
        site_id=request.sp.siteId,
        drive_id=request.sp.driveId,
        drive_path=request.sp.drivePath,
        json_subdir=request.sp.jsonSubdir,
    )
    archiver = create_invoice_archiver(settings, transport, store)
    try:
        result = await archiver.archive(
            [Attachment.from_dict(a.model_dump()) for a in request.attachments],
            [ExtractionResult.from_dict(r.model_dump()) for r in request.aiResults],
            target,
            _hints(request.auth),
        )
    except MissingParameterError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except AuthError as e:
        logger.error("Archive run aborted: %s", e.message)
        raise HTTPException(status_code=401, detail=e.message)
    return result.to_dict()


@router.post("/excel/rows")
async def append_excel_rows(request: ExcelAppendRequest):
    """
    Append a row (list, column-letter mapping or column-name mapping) or a
    batch of rows to an Excel table. Always answers with {ok, data|error}.
    """
    _require_dependencies()
    client = create_excel_client(settings, transport, store)
    result = await client.append_rows(
        WorkbookLocator(
            drive_id=request.driveId,
            item_id=request.itemId,
            path=request.path,
            link=request.link,
        ),
        request.table,
        values=request.values,
        row=request.row,
        hints=_hints(request.auth),
        debug=request.debug,
    )
    return result.to_dict()
