"""Gitopia REST lookups."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from relay.config import settings
from relay.errors import NotFound, UpstreamError

JSONDict = dict[str, Any]


class GitopiaAPI:
    """
    Thin async client for the Gitopia chain REST endpoints.

    Each method is one keyed GET; nothing is cached. Pass ``client`` to share a
    connection pool (or a mock transport in tests), otherwise a client is
    created on first use and closed by :meth:`aclose`.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or settings.gitopia_api_url).rstrip("/")
        self._timeout = timeout or settings.http_timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str) -> JSONDict:
        url = f"{self.base_url}/{path}"
        try:
            resp = await self._http().get(url)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Gitopia request failed: {url}: {exc}") from exc
        if resp.status_code == 404:
            raise NotFound(f"Gitopia: nothing at {path}")
        if resp.status_code >= 300:
            raise UpstreamError(
                f"Gitopia error: {resp.status_code} {resp.text}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"Gitopia returned invalid JSON for {path}") from exc
        if not isinstance(data, dict):
            raise UpstreamError(f"Gitopia returned unexpected payload for {path}")
        return data

    async def get_user(self, address: str) -> Optional[JSONDict]:
        """User record (``User`` object) for an address, ``None`` when absent."""
        data = await self._get(f"user/{address}")
        user = data.get("User")
        return user if isinstance(user, dict) else None

    async def get_dao(self, address: str) -> Optional[JSONDict]:
        """Organization record (``dao`` object) for an address."""
        data = await self._get(f"dao/{address}")
        dao = data.get("dao")
        return dao if isinstance(dao, dict) else None

    async def get_repository(self, repository_id: str) -> JSONDict:
        data = await self._get(f"repository/{repository_id}")
        repository = data.get("Repository")
        if not isinstance(repository, dict):
            raise NotFound(f"Gitopia: no repository {repository_id}")
        return repository
