"""
Invoice Archive Hub - Excel Table Rows

Appends rows to a named table in an Excel workbook stored in a drive.

Row input comes in three shapes, classified once by ``parse_row_spec``:
- PositionalRow: a list of cell values, sent as-is
- LetterKeyedRow: {"A": .., "C": ..}, column letters relative to the table
- NameKeyedRow: {"Total": ..}, placed by the table's column order which is
  fetched on every call (no schema caching)
A RowBatch (list of lists) passes through unchanged.

The workbook is located by drive id + item id, drive id + path, or a
shareable link resolved through the Graph shares endpoint.
"""

import base64
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import quote, unquote

from .config import ArchiveSettings
from .credentials import CredentialHints, CredentialResolver
from .errors import ArchiveError, MissingParameterError, RowValidationError
from .token_exchange import build_credential_resolver
from .transport import GraphTransport

logger = logging.getLogger(__name__)


# Column references as Excel writes them: A .. XFD
_COLUMN_LETTERS = re.compile(r"^[A-Z]{1,3}$")
MAX_COLUMN_INDEX = 16383

# parentReference.path looks like "/drives/{driveId}/root:/folder"
ROOT_MARKER = "/root:"

Column = Dict[str, Any]
SchemaResolver = Callable[[], Awaitable[List[Column]]]


# =============================================================================
# ROW SHAPES
# =============================================================================

@dataclass(frozen=True)
class PositionalRow:
    values: List[Any]


@dataclass(frozen=True)
class LetterKeyedRow:
    cells: Dict[str, Any]


@dataclass(frozen=True)
class NameKeyedRow:
    cells: Dict[str, Any]


@dataclass(frozen=True)
class RowBatch:
    rows: List[List[Any]]


RowSpec = Union[PositionalRow, LetterKeyedRow, NameKeyedRow, RowBatch]


def parse_row_spec(values: Any = None, row: Any = None) -> RowSpec:
    """
    Classify caller input into one row shape.

    ``values`` may be a list (row or batch) or a mapping; ``row`` a mapping.

    Raises:
        RowValidationError: when neither argument holds row-shaped input
    """
    if isinstance(values, (list, tuple)):
        values = list(values)
        if values and all(isinstance(v, (list, tuple)) for v in values):
            return RowBatch([list(v) for v in values])
        return PositionalRow(values)

    mapping = row if isinstance(row, dict) else (values if isinstance(values, dict) else None)
    if mapping is None:
        raise RowValidationError("missing values/row")

    keys = list(mapping.keys())
    if keys and all(is_column_reference(k) for k in keys):
        return LetterKeyedRow(dict(mapping))
    return NameKeyedRow(dict(mapping))


def is_column_reference(key: Any) -> bool:
    """True for keys like ``A`` or ``AB``; ``Total`` is a column name, not a reference."""
    return (
        isinstance(key, str)
        and bool(_COLUMN_LETTERS.match(key))
        and column_letter_to_index(key) <= MAX_COLUMN_INDEX
    )


def column_letter_to_index(letters: str) -> int:
    """Zero-based index of a column letter sequence: A=0, Z=25, AA=26."""
    n = 0
    for ch in letters.upper():
        n = n * 26 + (ord(ch) - 64)
    return n - 1


def _place_letter_keyed(cells: Dict[str, Any]) -> List[Any]:
    pairs = [(column_letter_to_index(k), v) for k, v in cells.items()]
    row: List[Any] = [None] * (max(idx for idx, _ in pairs) + 1)
    for idx, value in pairs:
        row[idx] = value
    return row


async def _place_name_keyed(cells: Dict[str, Any], schema_resolver: SchemaResolver) -> List[Any]:
    try:
        columns = await schema_resolver()
    except ArchiveError as e:
        raise RowValidationError(f"cannot resolve table columns: {e.message}", status_code=e.status_code) from e

    columns = sorted(
        (c for c in columns or [] if isinstance(c, dict)),
        key=lambda c: c.get("index") or 0
    )
    if not columns:
        raise RowValidationError("table has no columns")

    name_to_index = {
        c["name"]: c.get("index") or 0
        for c in columns
        if isinstance(c.get("name"), str)
    }
    row: List[Any] = [None] * len(columns)
    for key, value in cells.items():
        idx = name_to_index.get(key)
        if isinstance(idx, int) and 0 <= idx < len(row):
            row[idx] = value
    return row


async def normalize_row(spec: RowSpec, schema_resolver: Optional[SchemaResolver] = None) -> List[Any]:
    """
    Positional row for a single-row spec.

    Letter keys decode base-26; name keys are placed by the resolved schema
    and unknown names are dropped. Unaddressed slots are None.
    """
    if isinstance(spec, PositionalRow):
        return spec.values
    if isinstance(spec, LetterKeyedRow):
        return _place_letter_keyed(spec.cells)
    if isinstance(spec, NameKeyedRow):
        if schema_resolver is None:
            raise RowValidationError("name-keyed row needs a table schema")
        return await _place_name_keyed(spec.cells, schema_resolver)
    raise RowValidationError(f"unsupported row shape: {type(spec).__name__}")


async def normalize_rows(spec: RowSpec, schema_resolver: Optional[SchemaResolver] = None) -> List[List[Any]]:
    """Batch for the rows/add body: a RowBatch unchanged, anything else wrapped."""
    if isinstance(spec, RowBatch):
        return spec.rows
    return [await normalize_row(spec, schema_resolver)]


# =============================================================================
# WORKBOOK LOCATION
# =============================================================================

def encode_share_id(link: str) -> str:
    """Graph share id for a sharing URL: ``u!`` + unpadded base64url."""
    encoded = base64.urlsafe_b64encode(str(link or "").encode("utf-8")).decode("ascii")
    return "u!" + encoded.rstrip("=")


def path_from_parent_reference(parent_path: str, name: Optional[str] = None) -> Optional[str]:
    """Drive-relative file path from a parentReference.path and item name."""
    idx = (parent_path or "").find(ROOT_MARKER)
    if idx < 0:
        return None
    folder = unquote(parent_path[idx + len(ROOT_MARKER):]).rstrip("/")
    if name:
        return f"{folder}/{name}"
    return folder or "/"


@dataclass
class WorkbookLocator:
    """Identifies a workbook: item id, drive path, or a sharing link."""
    drive_id: Optional[str] = None
    item_id: Optional[str] = None
    path: Optional[str] = None
    link: Optional[str] = None

    def base_path(self) -> str:
        if self.drive_id and self.item_id:
            return f"/drives/{quote(self.drive_id, safe='')}/items/{quote(self.item_id, safe='')}"
        if self.drive_id and self.path:
            rel = "/" + self.path.lstrip("/")
            return f"/drives/{quote(self.drive_id, safe='')}/root:{quote(rel)}:"
        raise MissingParameterError("provide { drive_id, item_id } or { drive_id, path }")


@dataclass
class ExcelAppendResult:
    """Uniform success/failure envelope for row appends."""
    ok: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"ok": self.ok}
        if self.ok:
            result["data"] = self.data
        else:
            result["error"] = self.error
        return result


# =============================================================================
# CLIENT
# =============================================================================

class ExcelTableClient:
    """
    Appends rows to workbook tables through Microsoft Graph.

    Usage:
        client = create_excel_client(settings, transport, store)
        result = await client.append_rows(
            WorkbookLocator(drive_id="b!...", path="/Finance/Invoices.xlsx"),
            "Invoices",
            row={"Date": "2026-03-01", "Total": 120.5},
        )
    """

    def __init__(self, resolver: CredentialResolver, transport: GraphTransport):
        self.resolver = resolver
        self.transport = transport

    async def resolve_link(self, link: str, token: str) -> WorkbookLocator:
        """Resolve a sharing link to drive id, item id and file path."""
        share_id = encode_share_id(link)
        item = await self.transport.request_json(
            f"/shares/{quote(share_id, safe='!')}/driveItem?$select=id,name,parentReference,webUrl",
            token,
            context="Share link resolution failed"
        )
        parent = item.get("parentReference") or {}
        return WorkbookLocator(
            drive_id=parent.get("driveId") or None,
            item_id=item.get("id") or None,
            path=path_from_parent_reference(str(parent.get("path") or ""), item.get("name")),
        )

    async def list_columns(self, base: str, table: str, token: str) -> List[Column]:
        """Table columns as {name, index}, sorted by index."""
        data = await self.transport.request_json(
            f"{base}/workbook/tables/{quote(table, safe='')}/columns?$select=name,index",
            token,
            context=f"Could not list columns of table {table}"
        )
        columns = data.get("value")
        if not isinstance(columns, list):
            return []
        return sorted(columns, key=lambda c: (c or {}).get("index") or 0)

    async def append_rows(
        self,
        locator: WorkbookLocator,
        table: str,
        values: Any = None,
        row: Any = None,
        hints: Optional[CredentialHints] = None,
        debug: bool = False
    ) -> ExcelAppendResult:
        """
        Append one row (or a batch) to ``table``.

        Never raises: every failure is returned as ``ExcelAppendResult(ok=False)``.
        """
        try:
            if not table:
                raise MissingParameterError("missing table")
            if not locator.drive_id and not locator.link:
                raise MissingParameterError("missing drive_id")

            spec = parse_row_spec(values=values, row=row)
            token = await self.resolver.resolve(hints)

            if not locator.item_id and not locator.path and locator.link:
                try:
                    resolved = await self.resolve_link(locator.link, token)
                except ArchiveError as e:
                    logger.warning("Could not resolve share link: %s", e.message)
                    resolved = WorkbookLocator()
                if resolved.drive_id and resolved.item_id:
                    locator = WorkbookLocator(
                        drive_id=locator.drive_id or resolved.drive_id,
                        item_id=resolved.item_id,
                        path=resolved.path,
                        link=locator.link,
                    )

            base = locator.base_path()
            rows = await normalize_rows(spec, lambda: self.list_columns(base, table, token))

            url = f"{base}/workbook/tables/{quote(table, safe='')}/rows/add"
            if debug:
                logger.debug("append_rows: POST %s", url)
            data = await self.transport.request_json(
                url,
                token,
                method="POST",
                json_body={"values": rows},
                context=f"Could not add rows to table {table}"
            )
            logger.info("Appended %d row(s) to table %s", len(rows), table)
            return ExcelAppendResult(ok=True, data=data)

        except ArchiveError as e:
            logger.error("append_rows: %s", e.message)
            return ExcelAppendResult(ok=False, error=e.message)
        except Exception as e:
            logger.error("append_rows: %s", str(e))
            return ExcelAppendResult(ok=False, error=str(e) or "unknown")


def create_excel_client(settings: ArchiveSettings, transport: GraphTransport, store=None) -> ExcelTableClient:
    """Excel client wired to Graph token exchange and persisted tokens in ``store``."""
    return ExcelTableClient(build_credential_resolver(settings, transport, store), transport)
