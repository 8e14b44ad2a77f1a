"""
Invoice Archive Hub - Invoice Archiver

Archives invoice PDF attachments and their extracted metadata into a
SharePoint document library.

Per attachment:
1. Match an extraction result (by uid, then by filename)
2. Skip anything that is not a PDF
3. Derive the base name from the extracted data
4. Upload the PDF under a collision-safe name
5. If extraction data exists, keep a local JSON copy (best-effort) and
   upload the JSON sidecar into the configured subdirectory

Attachments are processed one at a time. A failed upload is logged and
recorded as a null result; the rest of the batch continues.
"""

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import DEFAULT_DRIVE_PATH, DEFAULT_JSON_SUBDIR, ArchiveSettings
from .credentials import CredentialHints, CredentialResolver
from .errors import MissingParameterError, StorageError
from .naming import derive_base_name, fallback_base_name
from .token_exchange import build_credential_resolver
from .transport import GraphTransport, join_drive_path
from .uploader import GraphUploader, upload_with_suffix

logger = logging.getLogger(__name__)


PDF_CONTENT_TYPE = "application/pdf"
JSON_CONTENT_TYPE = "application/json"

_PDF_NAME = re.compile(r"\.pdf$", re.IGNORECASE)
_PDF_TYPE = re.compile(r"pdf", re.IGNORECASE)


# =============================================================================
# DATA MODEL
# =============================================================================

@dataclass(frozen=True)
class Attachment:
    """A candidate file. Content is inline or referenced by a durable store path."""
    filename: str
    uid: Optional[str] = None
    content_type: Optional[str] = None
    path: Optional[str] = None
    content: Optional[bytes] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attachment":
        content = data.get("content")
        encoded = data.get("dataBase64") or data.get("data_base64")
        if content is None and encoded:
            try:
                content = base64.b64decode(encoded)
            except (binascii.Error, ValueError):
                content = None
        elif isinstance(content, str):
            content = content.encode("utf-8")
        uid = data.get("uid")
        return cls(
            filename=data.get("filename") or "",
            uid=str(uid) if uid not in (None, "") else None,
            content_type=data.get("contentType") or data.get("content_type"),
            path=data.get("path"),
            content=content,
        )

    @property
    def key(self) -> str:
        return self.uid or self.filename

    def is_pdf(self) -> bool:
        return bool(_PDF_NAME.search(self.filename or "") or _PDF_TYPE.search(self.content_type or ""))


@dataclass(frozen=True)
class ExtractionResult:
    """Structured fields extracted from one attachment."""
    data: Dict[str, Any] = field(default_factory=dict)
    uid: Optional[str] = None
    filename: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractionResult":
        uid = data.get("uid")
        fields_ = data.get("data")
        return cls(
            data=fields_ if isinstance(fields_, dict) else {},
            uid=str(uid) if uid not in (None, "") else None,
            filename=data.get("filename"),
        )


@dataclass(frozen=True)
class UploadTarget:
    """Where artifacts land; constant for one archival run."""
    site_id: str
    drive_id: str
    drive_path: str = DEFAULT_DRIVE_PATH
    json_subdir: str = DEFAULT_JSON_SUBDIR

    @classmethod
    def from_settings(cls, settings: ArchiveSettings, **overrides) -> "UploadTarget":
        values = {
            "site_id": settings.site_id,
            "drive_id": settings.drive_id,
            "drive_path": settings.drive_path,
            "json_subdir": settings.json_subdir,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        # Empty drive_path means the default folder; empty json_subdir is kept (sidecars beside PDFs)
        if not values["drive_path"]:
            values["drive_path"] = settings.drive_path or DEFAULT_DRIVE_PATH
        return cls(**values)

    @property
    def json_drive_path(self) -> str:
        return join_drive_path(self.drive_path, self.json_subdir)

    def validate(self) -> None:
        if not self.site_id or not self.drive_id:
            raise MissingParameterError("missing site_id or drive_id")


@dataclass
class AttachmentOutcome:
    """Result for one attachment; ``pdf``/``json`` are None when that upload failed."""
    base: Optional[str] = None
    pdf: Optional[Dict[str, Any]] = None
    json: Optional[Dict[str, Any]] = None
    pdf_name: Optional[str] = None
    json_name: Optional[str] = None
    skipped: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.skipped:
            return {"skipped": True, "reason": self.reason}
        return {
            "base": self.base,
            "pdf": self.pdf,
            "json": self.json,
            "pdf_name": self.pdf_name,
            "json_name": self.json_name,
        }


@dataclass
class ArchiveRunResult:
    """Per-attachment results of one archival pass."""
    items: List[Tuple[str, AttachmentOutcome]] = field(default_factory=list)

    @property
    def uploaded(self) -> int:
        return sum(1 for _, o in self.items if o.pdf is not None)

    @property
    def skipped(self) -> int:
        return sum(1 for _, o in self.items if o.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for _, o in self.items if not o.skipped and o.pdf is None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "data": [{"attachment": name, "result": outcome.to_dict()} for name, outcome in self.items],
        }


def match_extraction(
    results: Iterable[ExtractionResult],
    attachment: Attachment
) -> Optional[ExtractionResult]:
    """Extraction result for ``attachment``: uid match first, then filename equality."""
    results = list(results)
    if attachment.uid:
        for result in results:
            if result.uid == attachment.uid:
                return result
    if attachment.filename:
        for result in results:
            if result.filename == attachment.filename:
                return result
    return None


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class InvoiceArchiver:
    """
    Sequential, best-effort archival of invoice attachments.

    Usage:
        archiver = create_invoice_archiver(settings, transport, store)
        result = await archiver.archive(attachments, extraction_results, target)
    """

    def __init__(self, resolver: CredentialResolver, uploader: GraphUploader, store=None):
        self.resolver = resolver
        self.uploader = uploader
        self.store = store

    async def archive(
        self,
        attachments: Iterable[Attachment],
        extraction_results: Iterable[ExtractionResult],
        target: UploadTarget,
        hints: Optional[CredentialHints] = None
    ) -> ArchiveRunResult:
        """
        Archive every attachment; per-item failures never abort the batch.

        Raises:
            MissingParameterError: target has no site or drive id
            AuthError: no access token could be obtained
        """
        target.validate()
        token = await self.resolver.resolve(hints)
        extraction_results = list(extraction_results)

        run = ArchiveRunResult()
        seen = set()
        for attachment in attachments:
            if attachment.key in seen:
                logger.info("Skipping duplicate attachment %s", attachment.filename)
                outcome = AttachmentOutcome(skipped=True, reason="duplicate")
            else:
                seen.add(attachment.key)
                match = match_extraction(extraction_results, attachment)
                outcome = await self._archive_one(attachment, match, target, token)
            run.items.append((attachment.filename, outcome))

        logger.info(
            "Archive run complete: %d attachments, %d uploaded, %d skipped, %d failed",
            len(run.items), run.uploaded, run.skipped, run.failed
        )
        return run

    async def _load_content(self, attachment: Attachment) -> bytes:
        if attachment.content is not None:
            return attachment.content
        if not attachment.path:
            raise MissingParameterError(f"attachment {attachment.filename} has no content or path")
        if self.store is None:
            raise StorageError(f"cannot read {attachment.path}: no durable store configured")
        return await self.store.read(attachment.path)

    async def _persist_sidecar_locally(self, path: str, payload: bytes) -> None:
        """Best-effort local copy of the sidecar; failures are logged, never raised."""
        if self.store is None:
            return
        try:
            await self.store.save(path, payload)
        except Exception as e:
            logger.warning("Could not keep local sidecar copy %s: %s", path, str(e))

    async def _archive_one(
        self,
        attachment: Attachment,
        match: Optional[ExtractionResult],
        target: UploadTarget,
        token: str
    ) -> AttachmentOutcome:
        if not attachment.is_pdf():
            logger.info("Skipping non-PDF attachment %s", attachment.filename)
            return AttachmentOutcome(skipped=True, reason="not_pdf")

        data = match.data if match else None
        fallback = fallback_base_name(attachment.filename)
        try:
            base = derive_base_name(data, fallback)
        except Exception as e:
            logger.warning("Could not derive name for %s, using %s: %s", attachment.filename, fallback, str(e))
            base = fallback
        outcome = AttachmentOutcome(base=base)

        try:
            content = await self._load_content(attachment)
            result = await upload_with_suffix(
                outcome.base,
                ".pdf",
                lambda filename: self.uploader.upload_small(
                    target.site_id,
                    target.drive_id,
                    filename,
                    token,
                    drive_path=target.drive_path,
                    content=content,
                    content_type=attachment.content_type or PDF_CONTENT_TYPE,
                )
            )
            outcome.base = result.final_base_name
            outcome.pdf = result.response
            outcome.pdf_name = result.filename(".pdf")
        except Exception as e:
            logger.error("SharePoint PDF upload failed for %s: %s", attachment.filename, str(e))

        if not data:
            return outcome

        payload = json.dumps(data, ensure_ascii=False).encode("utf-8")
        await self._persist_sidecar_locally(
            f"mail/{attachment.uid or outcome.base}/{outcome.base}.json", payload
        )

        try:
            result = await upload_with_suffix(
                outcome.base,
                ".json",
                lambda filename: self.uploader.upload_small(
                    target.site_id,
                    target.drive_id,
                    filename,
                    token,
                    drive_path=target.json_drive_path,
                    content=payload,
                    content_type=JSON_CONTENT_TYPE,
                )
            )
            outcome.json = result.response
            outcome.json_name = result.filename(".json")
        except Exception as e:
            logger.error("SharePoint JSON upload failed for %s.json: %s", outcome.base, str(e))

        return outcome


def create_invoice_archiver(settings: ArchiveSettings, transport: GraphTransport, store=None) -> InvoiceArchiver:
    """Archiver wired to Graph token exchange, uploads and the given durable store."""
    return InvoiceArchiver(
        build_credential_resolver(settings, transport, store),
        GraphUploader(transport, store),
        store=store,
    )
