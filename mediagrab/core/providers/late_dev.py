"""Late.dev direct-resolve download backend."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import httpx

from ..base import FetchedFile, FetchRequest, Platform, ProviderKind
from ..client import HTTPBackend
from ..exceptions import ValidationError
from ..parser import parse_direct_response

logger = logging.getLogger(__name__)

NO_AUDIO_WARNING = (
    "download may not include audio (separate video/audio streams); "
    "try format=mp4 quality=720p"
)


class LateDevBackend(HTTPBackend):
    """Downloads through Late.dev: one GET returns a ready download URL."""

    BASE_URL = "https://getlate.dev/api/v1"

    # Only these platforms honour format/quality
    FORMAT_PLATFORMS = (Platform.YOUTUBE,)

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not api_key or not api_key.strip():
            raise ValidationError(
                "Late.dev API key not configured (set LATE_DEV_API_KEY)"
            )
        super().__init__(timeout=timeout, transport=transport)
        self.api_key = api_key.strip()
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self._clock = clock or datetime.now

    @classmethod
    def create(cls, api_key: str, settings, **options) -> "LateDevBackend":
        return cls(
            api_key=api_key,
            base_url=settings.late_dev_base_url,
            timeout=settings.request_timeout,
            transport=options.get("transport"),
            clock=options.get("clock"),
        )

    @property
    def provider(self) -> ProviderKind:
        return ProviderKind.LATE_DEV

    def build_params(self, request: FetchRequest) -> dict[str, str]:
        """Query parameters for the resolve call."""
        params = {"url": request.url}
        if request.platform in self.FORMAT_PLATFORMS:
            if request.format:
                params["format"] = request.format
            if request.quality:
                params["quality"] = request.quality
        return params

    def output_path(self, request: FetchRequest) -> Path:
        """
        Caller's exact path, or {platform}_{timestamp}.{ext} in output_dir.

        The generated name may still be suffixed with _1, _2, ... at write
        time if a file of that name already exists.
        """
        if request.target_path is not None:
            return request.target_path
        timestamp = self._clock().strftime("%Y%m%d-%H%M%S")
        ext = request.format or "mp4"
        return request.output_dir / f"{request.platform.value}_{timestamp}.{ext}"

    async def fetch(self, request: FetchRequest) -> list[FetchedFile]:
        """
        Resolve the media URL via Late.dev and stream it to disk.

        Args:
            request: What to download and where

        Returns:
            A single FetchedFile

        Raises:
            ProviderError: Non-2xx from the API or the media host
            ResponseParseError: Unusable API response
            DownloadIOError: Local write failure
        """
        if request.platform == Platform.TWITTER:
            logger.warning(
                "Late.dev works poorly for Twitter/X, consider --provider instag"
            )

        endpoint = f"{self.base_url}/tools/{request.platform.value}/download"
        logger.info(f"Resolving {request.url} via Late.dev")

        body = await self.request(
            "GET",
            endpoint,
            label="Late.dev API",
            params=self.build_params(request),
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        logger.debug(f"Late.dev response: {body[:500]}")

        media = parse_direct_response(body)

        warnings = []
        if not media.has_audio:
            logger.warning(f"No audio stream found for {request.url}")
            warnings.append(NO_AUDIO_WARNING)

        # Generated names never replace an existing file
        path = await self.stream_to_file(
            media.download_url,
            self.output_path(request),
            label="media",
            overwrite=request.target_path is not None,
        )

        logger.info(f"Download complete: {path}")
        return [FetchedFile(path=path, warnings=warnings)]
