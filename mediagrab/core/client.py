"""Shared async HTTP plumbing for provider backends."""

import logging
from pathlib import Path
from typing import Optional

import aiofiles
import httpx

from .base import DownloadBackend
from .exceptions import DownloadIOError, ProviderError

logger = logging.getLogger(__name__)

USER_AGENT = "curl/8.4.0"
CHUNK_SIZE = 64 * 1024


def available_path(path: Path) -> Path:
    """Return path, or the first free name_1.ext, name_2.ext, ... beside it."""
    candidate = path
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
        counter += 1
    return candidate


class HTTPBackend(DownloadBackend):
    """Backend owning one httpx.AsyncClient per `async with` block."""

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the backend.

        Args:
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPBackend":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, ensuring it's initialized."""
        if self._client is None:
            raise RuntimeError(
                f"{type(self).__name__} must be used as async context manager"
            )
        return self._client

    async def request(self, method: str, url: str, label: str, **kwargs) -> str:
        """
        Send one API request and return the body of a 2xx response.

        Args:
            method: HTTP method
            url: Request URL
            label: Short name of the call used in error messages
            **kwargs: Passed through to httpx

        Raises:
            ProviderError: On transport failure or non-2xx status
        """
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"{label} request failed: {e}")

        body = response.text
        if not response.is_success:
            logger.error(f"{label} returned HTTP {response.status_code}")
            raise ProviderError(
                f"{label} error: HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        return body

    async def stream_to_file(
        self, url: str, path: Path, label: str, overwrite: bool = True
    ) -> Path:
        """
        Stream a remote file to disk.

        A partially written file is left in place when anything fails.

        Args:
            url: Remote file URL (sent without provider credentials)
            path: Destination path
            label: What is being downloaded, used in error messages
            overwrite: Replace an existing file at path. When False the file
                is created exclusively under the first free name from
                available_path().

        Returns:
            The path actually written

        Raises:
            ProviderError: On transport failure or non-2xx status
            DownloadIOError: If the local file cannot be written
        """
        mode = "wb"
        if not overwrite:
            path = available_path(path)
            mode = "xb"
        logger.debug(f"Downloading {label} to {path}")

        try:
            async with self.client.stream("GET", url) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", "replace")
                    raise ProviderError(
                        f"Failed to download {label}: HTTP {response.status_code}",
                        status_code=response.status_code,
                        body=body,
                    )

                try:
                    async with aiofiles.open(path, mode) as f:
                        async for chunk in response.aiter_bytes(CHUNK_SIZE):
                            await f.write(chunk)
                except OSError as e:
                    raise DownloadIOError(
                        f"Failed to download {label}: cannot write {path}: {e}",
                        path=path,
                    )
        except httpx.HTTPError as e:
            raise ProviderError(f"Failed to download {label}: {e}")

        return path
