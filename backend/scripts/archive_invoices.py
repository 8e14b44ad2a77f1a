#!/usr/bin/env python3
"""
Archive a folder of invoice PDFs into SharePoint.

Every ``*.pdf`` in the folder is uploaded; a ``<stem>.json`` file next to a
PDF is used as its extraction result (invoice_date, issuer, total_amount, ...).

Usage:
    archive-invoices ./inbox --site-id <site> --drive-id <drive> [--drive-path Invoices]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from services.sharepoint_archive import (
    ArchiveError,
    ArchiveSettings,
    Attachment,
    CredentialHints,
    ExtractionResult,
    GraphTransport,
    LocalFileStore,
    UploadTarget,
    create_invoice_archiver,
)

logger = logging.getLogger("archive_invoices")


def load_folder(folder: Path):
    """Attachments and extraction results for the PDFs in ``folder``."""
    attachments = []
    extraction_results = []
    for pdf in sorted(folder.glob("*.pdf")):
        attachments.append(Attachment(
            filename=pdf.name,
            uid=pdf.stem,
            content_type="application/pdf",
            content=pdf.read_bytes(),
        ))
        sidecar = pdf.with_suffix(".json")
        if sidecar.exists():
            try:
                data = json.loads(sidecar.read_text(encoding="utf-8"))
            except ValueError as e:
                logger.warning("Ignoring unreadable extraction file %s: %s", sidecar.name, str(e))
                continue
            extraction_results.append(ExtractionResult(data=data, uid=pdf.stem, filename=pdf.name))
    return attachments, extraction_results


async def archive_folder(args) -> int:
    settings = ArchiveSettings.from_env()
    target = UploadTarget.from_settings(
        settings,
        site_id=args.site_id,
        drive_id=args.drive_id,
        drive_path=args.drive_path,
        json_subdir=args.json_subdir,
    )
    attachments, extraction_results = load_folder(Path(args.folder))
    if not attachments:
        print(f"No PDF files found in {args.folder}")
        return 0

    store = LocalFileStore(settings.storage_dir)
    async with GraphTransport(settings) as transport:
        archiver = create_invoice_archiver(settings, transport, store)
        try:
            result = await archiver.archive(
                attachments,
                extraction_results,
                target,
                CredentialHints(access_token=args.access_token),
            )
        except ArchiveError as e:
            print(f"Archive failed: {e.message}", file=sys.stderr)
            return 2

    for name, outcome in result.items:
        if outcome.skipped:
            print(f"SKIP {name} ({outcome.reason})")
        elif outcome.pdf is None:
            print(f"FAIL {name}")
        else:
            print(f"OK   {name} -> {outcome.pdf_name}" + (f" + {outcome.json_name}" if outcome.json_name else ""))
    print(f"Uploaded {result.uploaded}, skipped {result.skipped}, failed {result.failed}")
    return 1 if result.failed else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Archive invoice PDFs and extraction JSON into SharePoint",
        prog="archive-invoices",
    )
    parser.add_argument("folder", help="folder holding *.pdf and optional <stem>.json files")
    parser.add_argument("--site-id", help="SharePoint site id (default: SP_SITE_ID)")
    parser.add_argument("--drive-id", help="document library drive id (default: SP_DRIVE_ID)")
    parser.add_argument("--drive-path", help="folder inside the drive (default: SP_DRIVE_PATH or Invoices)")
    parser.add_argument("--json-subdir", help="sidecar subfolder under the drive path (default: json)")
    parser.add_argument("--access-token", help="use this Graph access token as-is")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    return asyncio.run(archive_folder(args))


if __name__ == "__main__":
    sys.exit(main())
