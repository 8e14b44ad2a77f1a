"""
Invoice Archive Hub - Azure AD Token Exchange

OAuth2 token requests against the Microsoft identity platform:
- refresh_token grant when a refresh token and client id are available
- client_credentials grant when a client id and secret are available

Tokens are returned to the caller and never cached or persisted here.
"""

import logging
import time
from typing import Optional
from urllib.parse import urlencode

from .config import ArchiveSettings
from .credentials import CredentialHints, CredentialResolver
from .errors import AuthError, GraphRequestError
from .transport import GraphTransport

logger = logging.getLogger(__name__)


class GraphTokenExchange:
    """Exchanges credential hints for a Graph access token."""

    def __init__(self, settings: ArchiveSettings, transport: GraphTransport):
        self.settings = settings
        self.transport = transport

    def token_url(self, tenant: str) -> str:
        return f"{self.settings.login_base}/{tenant}/oauth2/v2.0/token"

    async def ensure_access_token(self, hints: Optional[CredentialHints] = None) -> str:
        """
        Return an access token for the given hints.

        Hints override configured client id, secret, tenant and scope.

        Raises:
            AuthError: if no grant is possible or the token endpoint refuses
        """
        hints = hints or CredentialHints()
        if hints.access_token:
            return hints.access_token

        client_id = hints.client_id or self.settings.client_id
        client_secret = hints.client_secret or self.settings.client_secret
        tenant = hints.tenant or self.settings.tenant_id or "common"
        scope = hints.scope or self.settings.scope

        if hints.refresh_token:
            if not client_id:
                raise AuthError("refresh token supplied without a client id")
            grant = "refresh_token"
            if "offline_access" not in scope.split():
                scope = f"{scope} offline_access"
            form = {
                "grant_type": grant,
                "client_id": client_id,
                "refresh_token": hints.refresh_token,
                "scope": scope,
            }
            if client_secret:
                form["client_secret"] = client_secret
        elif client_id and client_secret:
            grant = "client_credentials"
            form = {
                "grant_type": grant,
                "client_id": client_id,
                "client_secret": client_secret,
                "scope": scope,
            }
        else:
            raise AuthError("no credentials available (provide accessToken, refreshToken+clientId or clientId+clientSecret)")

        start_time = time.time()
        try:
            resp = await self.transport.fetch(
                self.token_url(tenant),
                "POST",
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                body=urlencode(form)
            )
        except GraphRequestError as e:
            raise AuthError(f"Token request failed: {e.message}") from e

        elapsed_ms = int((time.time() - start_time) * 1000)
        data = resp.json({})
        if not isinstance(data, dict):
            data = {}
        if resp.status != 200:
            logger.error(
                "Graph token request failed: grant=%s, status=%d, error=%s, timing=%dms",
                grant, resp.status, data.get("error", "unknown"), elapsed_ms
            )
            raise AuthError(
                f"Token request failed: {resp.status} {data.get('error_description') or resp.text[:200]}",
                status_code=resp.status,
                details={"error": data.get("error")}
            )

        token = data.get("access_token")
        if not token:
            raise AuthError("Token response did not include an access token", status_code=resp.status)

        logger.info("Graph token acquired via %s grant, timing=%dms", grant, elapsed_ms)
        return token


def build_credential_resolver(settings: ArchiveSettings, transport: GraphTransport, store=None) -> CredentialResolver:
    """Resolver backed by Graph token exchange and the configured persisted-token paths."""
    return CredentialResolver(
        GraphTokenExchange(settings, transport),
        store=store,
        token_paths=settings.token_paths
    )
