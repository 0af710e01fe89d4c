"""Shared HTTP client for the application server."""

from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .._utils import logger
from ..backup.exceptions import RemoteUnavailableError
from ..config import RemoteConfig


class RemoteHttpClient:
    """Thin wrapper around ``httpx.AsyncClient`` with retries and error translation.

    Transport errors are retried with exponential backoff; once attempts are
    exhausted, and for any non-2xx answer, a ``RemoteUnavailableError`` is raised
    so callers never see httpx exceptions.
    """

    def __init__(self, config: Optional[RemoteConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or RemoteConfig()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {}
            if self.config.auth_token:
                headers["Authorization"] = f"Bearer {self.config.auth_token}"
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.request_timeout),
                headers=headers,
            )
        return self._client

    def url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def server_url(self, path: str) -> str:
        """URL relative to the server origin rather than the API root."""
        return f"{self.config.server_root}/{path.lstrip('/')}"

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and return the successful response.

        Raises:
            RemoteUnavailableError: On transport failure after retries or a non-2xx status
        """
        client = self._get_client()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"{method} {url} failed: {e!r}")
            raise RemoteUnavailableError(f"{method} {url} failed: {e!r}") from e

        if response.is_error:
            logger.warning(f"{method} {url} returned HTTP {response.status_code}")
            raise RemoteUnavailableError(
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self.request(method, self.url(path), **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise RemoteUnavailableError(f"{method} {path} returned invalid JSON: {e}") from e

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "RemoteHttpClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
