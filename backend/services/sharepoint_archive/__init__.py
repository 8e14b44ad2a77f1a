"""
Invoice Archive Hub - SharePoint Archive

Archives invoice PDFs and their extracted JSON metadata into a SharePoint
document library and appends derived rows to Excel tables.

Components:
- credentials.py / token_exchange.py: bearer token resolution
- naming.py: deterministic base names from extracted invoice data
- uploader.py: collision-safe small-file uploads
- archiver.py: per-attachment archival orchestration
- excel_rows.py: row shape normalization and table appends
- storage.py: durable stores (local files, Mongo, in-memory)
- transport.py: httpx transport for Microsoft Graph

Usage:
    from services.sharepoint_archive import ArchiveSettings, GraphTransport, create_invoice_archiver

    settings = ArchiveSettings.from_env()
    async with GraphTransport(settings) as transport:
        archiver = create_invoice_archiver(settings, transport, LocalFileStore(settings.storage_dir))
        result = await archiver.archive(attachments, extraction_results, UploadTarget.from_settings(settings))
"""

from .config import ArchiveSettings
from .errors import (
    ArchiveError, AuthError, MissingParameterError, StorageError,
    RowValidationError, GraphRequestError, UploadError, CollisionExhaustedError
)
from .credentials import CredentialHints, CredentialResolver
from .token_exchange import GraphTokenExchange, build_credential_resolver
from .transport import GraphTransport, GraphResponse
from .storage import DurableStore, LocalFileStore, MongoFileStore, InMemoryStore
from .naming import derive_base_name, fallback_base_name
from .uploader import GraphUploader, upload_with_suffix
from .archiver import (
    Attachment, AttachmentOutcome, ArchiveRunResult, ExtractionResult, UploadTarget,
    InvoiceArchiver, create_invoice_archiver
)
from .excel_rows import (
    ExcelTableClient, ExcelAppendResult, WorkbookLocator, create_excel_client,
    parse_row_spec, normalize_row
)

__all__ = [
    'ArchiveSettings',
    'ArchiveError', 'AuthError', 'MissingParameterError', 'StorageError',
    'RowValidationError', 'GraphRequestError', 'UploadError', 'CollisionExhaustedError',
    'CredentialHints', 'CredentialResolver',
    'GraphTokenExchange', 'build_credential_resolver',
    'GraphTransport', 'GraphResponse',
    'DurableStore', 'LocalFileStore', 'MongoFileStore', 'InMemoryStore',
    'derive_base_name', 'fallback_base_name',
    'GraphUploader', 'upload_with_suffix',
    'Attachment', 'AttachmentOutcome', 'ArchiveRunResult', 'ExtractionResult', 'UploadTarget',
    'InvoiceArchiver', 'create_invoice_archiver',
    'ExcelTableClient', 'ExcelAppendResult', 'WorkbookLocator', 'create_excel_client',
    'parse_row_spec', 'normalize_row',
]
