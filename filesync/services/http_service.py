"""Authenticated HTTP transport for the remote file API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from filesync.exceptions import FetchFailed

if TYPE_CHECKING:
    from filesync.config import Settings

logger = logging.getLogger(__name__)


class HTTPService:
    """Thin wrapper around ``httpx.AsyncClient`` adding the auth token header.

    Every transport or status error is reported as ``FetchFailed``.
    """

    def __init__(
        self,
        base_url: str,
        auth_header: str = "X-Auth-Token",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth_header = auth_header
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> HTTPService:
        return cls(
            settings.api_endpoint,
            auth_header=settings.auth_header,
            timeout=settings.request_timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> HTTPService:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def _get(self, path: str, params: dict[str, str] | None, token: str) -> httpx.Response:
        try:
            resp = await self.client.get(path, params=params, headers={self.auth_header: token})
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            msg = f"GET {path} returned {exc.response.status_code}"
            raise FetchFailed(msg) from exc
        except httpx.HTTPError as exc:
            msg = f"GET {path} failed: {exc}"
            raise FetchFailed(msg) from exc
        return resp

    async def get_json(self, path: str, params: dict[str, str] | None, token: str) -> Any:
        """GET ``path`` and return the decoded JSON body."""
        resp = await self._get(path, params, token)
        try:
            return resp.json()
        except ValueError as exc:
            msg = f"GET {path} returned a non-JSON body"
            raise FetchFailed(msg) from exc

    async def get_bytes(self, path: str, token: str) -> bytes:
        """GET ``path`` and return the raw response body."""
        resp = await self._get(path, None, token)
        logger.debug("Fetched %d bytes from %s", len(resp.content), path)
        return resp.content
