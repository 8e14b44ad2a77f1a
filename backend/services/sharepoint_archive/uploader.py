"""
Invoice Archive Hub - Collision-Safe Upload

Uploads small files to a SharePoint/OneDrive drive with the Graph simple
upload endpoint and retries under ``base``, ``base_1`` ... ``base_9`` when
the target name already exists. Uploads ask Graph to fail on conflict, so
an existing remote item is never replaced.

Large files (upload sessions) are not supported.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import quote

from .config import MAX_NAME_ATTEMPTS
from .errors import ArchiveError, CollisionExhaustedError, MissingParameterError, UploadError
from .transport import GraphTransport, graph_error, join_drive_path

logger = logging.getLogger(__name__)


UploadFn = Callable[[str], Awaitable[Any]]

_EXISTS_HINT = re.compile(r"exist", re.IGNORECASE)


def is_name_conflict(error: Exception) -> bool:
    """
    True when ``error`` reports that the target name is already taken.

    Errors raised by this package carry a structured ``conflict`` flag.
    Errors from other upload callables fall back to matching "exist" in the
    message, which can misread unrelated failures as collisions.
    """
    if isinstance(error, ArchiveError):
        return bool(getattr(error, "conflict", False))
    conflict = getattr(error, "conflict", None)
    if isinstance(conflict, bool):
        return conflict
    return bool(_EXISTS_HINT.search(str(error) or ""))


@dataclass
class SuffixUploadResult:
    """Outcome of a collision-safe upload."""
    final_base_name: str
    response: Any
    attempts: int

    def filename(self, extension: str) -> str:
        return f"{self.final_base_name}{extension}"


def candidate_name(base_name: str, attempt: int) -> str:
    return base_name if attempt == 0 else f"{base_name}_{attempt}"


async def upload_with_suffix(
    base_name: str,
    extension: str,
    upload_fn: UploadFn,
    max_attempts: int = MAX_NAME_ATTEMPTS
) -> SuffixUploadResult:
    """
    Call ``upload_fn(filename)`` for successive candidate names until one succeeds.

    Name conflicts advance to the next suffix; any other error propagates
    immediately.

    Raises:
        CollisionExhaustedError: after ``max_attempts`` conflicting names
    """
    for attempt in range(max_attempts):
        candidate = candidate_name(base_name, attempt)
        filename = f"{candidate}{extension}"
        try:
            response = await upload_fn(filename)
        except Exception as e:
            if is_name_conflict(e):
                logger.info("Name taken: %s, trying next suffix", filename)
                continue
            raise
        return SuffixUploadResult(final_base_name=candidate, response=response, attempts=attempt + 1)

    raise CollisionExhaustedError(base_name, extension, max_attempts)


class GraphUploader:
    """Simple (single PUT) uploads into a site drive."""

    def __init__(self, transport: GraphTransport, store=None):
        self.transport = transport
        self.store = store

    async def _read_content(self, path: str) -> bytes:
        if self.store is None:
            raise MissingParameterError(f"cannot read {path}: no durable store configured")
        return await self.store.read(path)

    async def upload_small(
        self,
        site_id: str,
        drive_id: str,
        filename: str,
        token: str,
        drive_path: str = "",
        content: Optional[bytes] = None,
        path: Optional[str] = None,
        content_type: str = "application/octet-stream"
    ) -> Dict[str, Any]:
        """
        Upload one file with PUT .../root:/{drive_path}/{filename}:/content.

        Content comes from ``content`` or, when absent, from the durable store
        at ``path``. Returns the created driveItem JSON.

        Raises:
            MissingParameterError: missing identifiers, token or data
            UploadError: Graph rejected the upload (``conflict`` set on 409)
        """
        if not site_id or not drive_id or not filename or not token:
            raise MissingParameterError("upload_small: missing site_id/drive_id/filename/access token")

        if content is None and path:
            content = await self._read_content(path)
        if not content:
            raise MissingParameterError("upload_small: missing data (path or content)")

        rel = join_drive_path(drive_path, filename)
        url = (
            f"/sites/{quote(site_id, safe='')}/drives/{quote(drive_id, safe='')}"
            f"/root:/{quote(rel)}:/content?@microsoft.graph.conflictBehavior=fail"
        )
        resp = await self.transport.fetch(
            url,
            "PUT",
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": content_type or "application/octet-stream",
            },
            body=content
        )
        if not resp.ok:
            raise graph_error(resp, f"Upload of {rel} failed", UploadError)

        logger.info("Uploaded %s (%d bytes)", rel, len(content))
        return resp.json({"raw": resp.text})
