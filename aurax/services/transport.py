"""Authenticated HTTP transport for the AuraX API."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..errors import ConfigurationError, NetworkError, error_from_response

logger = logging.getLogger(__name__)


class Transport:
    """Issues requests against one base URL with the two credential headers.

    The underlying ``httpx.AsyncClient`` is created lazily unless one is
    injected; only a self-created client is closed by :meth:`aclose`.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        key_id: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        raw_base = (base_url or "").strip()
        if not raw_base:
            raise ConfigurationError("AURAX_BASE_URL missing; set the API base URL")
        if not raw_base.startswith(("http://", "https://")):
            raise ConfigurationError("AURAX_BASE_URL must include http/https scheme")
        self._base_url = raw_base.rstrip("/")
        self._api_key = api_key
        self._key_id = key_id
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def auth_headers(self) -> Dict[str, str]:
        return {"x-api-key": self._api_key, "x-key-id": self._key_id}

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _headers(self, extra: Optional[Dict[str, str]]) -> Dict[str, str]:
        headers = dict(extra or {})
        headers.update(self.auth_headers)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request; non-2xx responses raise the matching typed error."""

        client = self._ensure_client()
        url = self.url(path)
        logger.debug("%s %s", method, url)
        try:
            resp = await client.request(method, url, headers=self._headers(headers), **kwargs)
        except httpx.TransportError as exc:
            logger.warning("Transport failure on %s %s: %s", method, url, exc)
            raise NetworkError(exc) from exc
        if not resp.is_success:
            logger.info("%s %s returned HTTP %s", method, url, resp.status_code)
            raise error_from_response(resp)
        return resp

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout: Any = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming response after the same status check as :meth:`request`."""

        client = self._ensure_client()
        url = self.url(path)
        extra: Dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = timeout
        try:
            async with client.stream(method, url, headers=self._headers(headers), **extra) as resp:
                if not resp.is_success:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    raise error_from_response(resp, body)
                yield resp
        except httpx.TransportError as exc:
            raise NetworkError(exc) from exc

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
