"""
Invoice Archive Hub - Microsoft Graph Transport

Thin async wrapper around httpx used for every remote call made by the
archive core. One client is shared for the lifetime of the transport;
timeouts are configured on that client.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type, Union

import httpx

from .config import ArchiveSettings
from .errors import GraphRequestError

logger = logging.getLogger(__name__)


Body = Union[bytes, str, Dict[str, Any], list, None]


def parse_json_safe(text: str, default: Any = None) -> Any:
    """Parse JSON text, returning ``default`` when it is empty or malformed."""
    if not text:
        return default
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return default


def join_drive_path(*parts: Optional[str]) -> str:
    """Join drive path segments, trimming surrounding slashes and dropping blanks."""
    cleaned = [(p or "").strip("/") for p in parts]
    return "/".join(p for p in cleaned if p)


@dataclass
class GraphResponse:
    """Raw response from the transport: HTTP status and body text."""
    status: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self, default: Any = None) -> Any:
        return parse_json_safe(self.text, default)


def graph_error(
    response: GraphResponse,
    context: str,
    error_cls: Type[GraphRequestError] = GraphRequestError
) -> GraphRequestError:
    """Build a structured error from a failed Graph response body."""
    body = response.json({}) or {}
    err = body.get("error") if isinstance(body, dict) else None
    code = None
    detail = response.text[:300]
    if isinstance(err, dict):
        code = err.get("code")
        detail = err.get("message") or detail
    return error_cls(
        f"{context}: {response.status} - {detail}",
        status_code=response.status,
        details=body if isinstance(body, dict) else {},
        code=code
    )


class GraphTransport:
    """
    Async HTTP transport for Microsoft Graph.

    Usage:
        async with GraphTransport(settings) as transport:
            resp = await transport.fetch(url, "GET", headers={...})
    """

    def __init__(self, settings: ArchiveSettings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "GraphTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.request_timeout)
        return self._client

    def url(self, path: str) -> str:
        """Resolve a Graph-relative path (``/drives/...``) to an absolute URL."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.settings.graph_api_base}{path}"

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Body = None
    ) -> GraphResponse:
        """
        Send one request and return status and text.

        Dict and list bodies are sent as JSON, bytes and str as raw content.
        Network failures raise GraphRequestError; HTTP error statuses do not.
        """
        kwargs: Dict[str, Any] = {"headers": headers or {}}
        if isinstance(body, (dict, list)):
            kwargs["json"] = body
        elif isinstance(body, str):
            kwargs["content"] = body.encode("utf-8")
        elif body is not None:
            kwargs["content"] = body

        try:
            resp = await self._http().request(method.upper(), self.url(url), **kwargs)
        except httpx.RequestError as e:
            logger.error("Graph request error: %s %s: %s", method.upper(), url, str(e))
            raise GraphRequestError(f"Graph request failed: {str(e)}", details={"url": url})

        return GraphResponse(status=resp.status_code, text=resp.text)

    async def request_json(
        self,
        path: str,
        token: str,
        method: str = "GET",
        json_body: Optional[Dict[str, Any]] = None,
        context: str = "Graph request failed"
    ) -> Dict[str, Any]:
        """Authenticated JSON request; raises GraphRequestError on non-2xx."""
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        if json_body is not None:
            headers["Content-Type"] = "application/json"
        resp = await self.fetch(path, method, headers=headers, body=json_body)
        if not resp.ok:
            raise graph_error(resp, context)
        data = resp.json({"raw": resp.text})
        return data if isinstance(data, dict) else {"value": data}
