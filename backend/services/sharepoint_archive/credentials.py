"""
Invoice Archive Hub - Credential Resolution

Turns caller-supplied credential hints into a bearer token for Microsoft
Graph. Resolution order, stopping at the first success:

1. An explicit access token is used verbatim (no validation, no expiry check).
2. When the caller supplied no refresh token, client id or client secret,
   persisted token bundles are read from the durable store. A stored access
   token is returned directly; a stored refresh token is merged into the
   hints and exchanged.
3. Otherwise the token exchange runs with whatever hints are available.

The resolved token is used for every call in one operation; nothing here
refreshes mid-operation or caches across operations.
"""

import json
import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Iterable, Optional

from .config import DEFAULT_TOKEN_PATHS
from .errors import ArchiveError, AuthError

logger = logging.getLogger(__name__)


# camelCase keys accepted from JSON callers
_HINT_ALIASES = {
    "accessToken": "access_token",
    "refreshToken": "refresh_token",
    "clientId": "client_id",
    "clientSecret": "client_secret",
    "tenantId": "tenant",
    "tenant_id": "tenant",
}


@dataclass(frozen=True)
class CredentialHints:
    """Credential material a caller may supply for one operation."""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    tenant: Optional[str] = None
    scope: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CredentialHints":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _HINT_ALIASES.get(key, key)
            if name in known and value:
                values[name] = str(value)
        return cls(**values)

    def has_override(self) -> bool:
        """True when the caller gave a refresh token or client credentials."""
        return bool(self.refresh_token or self.client_id or self.client_secret)

    def merged_over(self, base: "CredentialHints") -> "CredentialHints":
        """Fill unset fields from ``base``; values set here win."""
        updates = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name)
        }
        return replace(base, **updates)


class CredentialResolver:
    """
    Resolves a Graph access token from hints, persisted tokens or token exchange.

    Args:
        token_exchange: object exposing ``async ensure_access_token(hints) -> str``
        store: durable store holding persisted token bundles (optional)
        token_paths: store paths checked in order for persisted bundles
    """

    def __init__(self, token_exchange, store=None, token_paths: Iterable[str] = DEFAULT_TOKEN_PATHS):
        self.token_exchange = token_exchange
        self.store = store
        self.token_paths = tuple(token_paths)

    async def load_stored_tokens(self) -> Optional[Dict[str, Any]]:
        """Return the first persisted bundle holding an access or refresh token."""
        if self.store is None:
            return None
        for path in self.token_paths:
            try:
                raw = await self.store.read(path)
                bundle = json.loads(raw.decode("utf-8"))
            except (ArchiveError, UnicodeDecodeError, ValueError) as e:
                logger.debug("No usable token bundle at %s: %s", path, str(e))
                continue
            if isinstance(bundle, dict) and (bundle.get("access_token") or bundle.get("refresh_token")):
                logger.info("Loaded persisted Graph tokens from %s", path)
                return bundle
        return None

    async def resolve(self, hints: Optional[CredentialHints] = None) -> str:
        """
        Produce a bearer token.

        Raises:
            AuthError: when no path yields a token
        """
        hints = hints or CredentialHints()
        if hints.access_token:
            return hints.access_token

        if not hints.has_override():
            stored = await self.load_stored_tokens()
            if stored and stored.get("access_token"):
                return stored["access_token"]
            if stored and stored.get("refresh_token"):
                merged = hints.merged_over(CredentialHints(refresh_token=stored["refresh_token"]))
                try:
                    token = await self.token_exchange.ensure_access_token(merged)
                except AuthError as e:
                    logger.warning("Persisted refresh token rejected: %s", e.message)
                    token = None
                if token:
                    return token

        try:
            token = await self.token_exchange.ensure_access_token(hints)
        except AuthError:
            raise
        except ArchiveError as e:
            raise AuthError(f"Token exchange failed: {e.message}", status_code=e.status_code) from e

        if not token:
            raise AuthError("missing access token (provide accessToken or refreshToken+clientId)")
        return token
