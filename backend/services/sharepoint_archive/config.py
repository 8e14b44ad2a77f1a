"""
Invoice Archive Hub - Configuration

Settings for the SharePoint archive core, read from environment variables.

Configuration via environment variables:
- GRAPH_API_BASE: Microsoft Graph root (default v1.0 endpoint)
- GRAPH_LOGIN_BASE: Azure AD login host
- TENANT_ID / GRAPH_TENANT_ID: tenant used for token exchange
- GRAPH_CLIENT_ID / GRAPH_CLIENT_SECRET: app registration
- GRAPH_SCOPE: scope requested from the token endpoint
- GRAPH_REQUEST_TIMEOUT: transport timeout in seconds
- SP_SITE_ID / SP_DRIVE_ID / SP_DRIVE_PATH / SP_JSON_SUBDIR: default upload target
- ARCHIVE_STORAGE_DIR: root directory of the local durable store
- ARCHIVE_TOKEN_PATHS: comma separated store paths holding persisted tokens
- MONGO_URL / DB_NAME: optional Mongo-backed durable store
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


# =============================================================================
# DEFAULTS
# =============================================================================

GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"
GRAPH_LOGIN_BASE = "https://login.microsoftonline.com"
GRAPH_DEFAULT_SCOPE = "https://graph.microsoft.com/.default"
GRAPH_REQUEST_TIMEOUT = 30.0

DEFAULT_DRIVE_PATH = "Invoices"
DEFAULT_JSON_SUBDIR = "json"
DEFAULT_STORAGE_DIR = "./data"
DEFAULT_DB_NAME = "invoice_archive"

# Persisted token bundles written by the interactive sign-in flow, in lookup order
DEFAULT_TOKEN_PATHS = ("oauth/ms_tokens.json", "samples/ms_tokens.json")

# Candidate names tried per artifact: base, base_1 ... base_9
MAX_NAME_ATTEMPTS = 10


def _env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


@dataclass(frozen=True)
class ArchiveSettings:
    """Immutable settings passed explicitly to every archive component."""
    graph_api_base: str = GRAPH_API_BASE
    login_base: str = GRAPH_LOGIN_BASE
    tenant_id: str = "common"
    client_id: str = ""
    client_secret: str = ""
    scope: str = GRAPH_DEFAULT_SCOPE
    request_timeout: float = GRAPH_REQUEST_TIMEOUT

    site_id: str = ""
    drive_id: str = ""
    drive_path: str = DEFAULT_DRIVE_PATH
    json_subdir: str = DEFAULT_JSON_SUBDIR

    storage_dir: str = DEFAULT_STORAGE_DIR
    token_paths: Tuple[str, ...] = field(default=DEFAULT_TOKEN_PATHS)
    mongo_url: Optional[str] = None
    db_name: str = DEFAULT_DB_NAME

    @classmethod
    def from_env(cls) -> "ArchiveSettings":
        token_paths = tuple(
            p.strip() for p in _env("ARCHIVE_TOKEN_PATHS").split(",") if p.strip()
        ) or DEFAULT_TOKEN_PATHS
        return cls(
            graph_api_base=_env("GRAPH_API_BASE", default=GRAPH_API_BASE).rstrip("/"),
            login_base=_env("GRAPH_LOGIN_BASE", default=GRAPH_LOGIN_BASE).rstrip("/"),
            tenant_id=_env("GRAPH_TENANT_ID", "TENANT_ID", default="common"),
            client_id=_env("GRAPH_CLIENT_ID"),
            client_secret=_env("GRAPH_CLIENT_SECRET"),
            scope=_env("GRAPH_SCOPE", default=GRAPH_DEFAULT_SCOPE),
            request_timeout=float(_env("GRAPH_REQUEST_TIMEOUT", default=str(GRAPH_REQUEST_TIMEOUT))),
            site_id=_env("SP_SITE_ID"),
            drive_id=_env("SP_DRIVE_ID"),
            drive_path=os.environ.get("SP_DRIVE_PATH", DEFAULT_DRIVE_PATH),
            json_subdir=os.environ.get("SP_JSON_SUBDIR", DEFAULT_JSON_SUBDIR),
            storage_dir=_env("ARCHIVE_STORAGE_DIR", default=DEFAULT_STORAGE_DIR),
            token_paths=token_paths,
            mongo_url=os.environ.get("MONGO_URL") or None,
            db_name=_env("DB_NAME", default=DEFAULT_DB_NAME),
        )
