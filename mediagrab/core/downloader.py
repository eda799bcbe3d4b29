"""Download orchestration: platform, provider, backend, output files."""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import httpx

from .base import (
    DownloadBackend,
    DownloadResult,
    FetchedFile,
    FetchRequest,
    Platform,
    ProviderKind,
)
from .exceptions import DownloadIOError, MediaGrabError, UnsupportedProviderError
from .parser import PlatformResolver
from .providers import InstagBackend, LateDevBackend
from .registry import ProviderConfig, resolve_provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputTarget:
    """Where files go: always a directory, optionally one exact file path."""

    directory: Path
    file_path: Optional[Path] = None


def resolve_output_target(
    output: Optional[str | Path], default_dir: Path
) -> OutputTarget:
    """
    Work out the output directory and optional exact file path.

    An existing directory or a path ending in a separator is a directory
    target. Anything else is an exact file path in its parent directory.
    The directory is created if missing.

    Raises:
        DownloadIOError: If the directory cannot be created
    """
    if output is None or str(output).strip() == "":
        target = OutputTarget(directory=Path(default_dir))
    else:
        raw = str(output)
        path = Path(raw).expanduser()
        if raw.endswith(("/", "\\", os.sep)) or path.is_dir():
            target = OutputTarget(directory=path)
        else:
            target = OutputTarget(directory=path.parent, file_path=path)

    try:
        target.directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DownloadIOError(
            f"Cannot create output directory {target.directory}: {e}",
            path=target.directory,
        )
    return target


class BackendFactory:
    """Creates the backend for a provider kind."""

    _backends: dict[ProviderKind, type[DownloadBackend]] = {
        ProviderKind.LATE_DEV: LateDevBackend,
        ProviderKind.INSTAG: InstagBackend,
    }

    @classmethod
    def register(
        cls, provider: ProviderKind, backend_cls: type[DownloadBackend]
    ) -> None:
        """Register (or replace) the backend class for a provider."""
        cls._backends[provider] = backend_cls

    @classmethod
    def get_backend_class(cls, provider: ProviderKind) -> type[DownloadBackend]:
        backend_cls = cls._backends.get(provider)
        if backend_cls is None:
            raise UnsupportedProviderError(
                f"{provider} provider not yet implemented"
            )
        return backend_cls

    @classmethod
    def supported_providers(cls) -> list[ProviderKind]:
        return list(cls._backends)


class MediaDownloader:
    """Turns a URL plus provider configuration into local files."""

    def __init__(
        self,
        provider_config: Optional[ProviderConfig] = None,
        download_dir: Optional[str | Path] = None,
        settings=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the downloader.

        Args:
            provider_config: Credentials and provider policy (from settings if not provided)
            download_dir: Default output directory (from settings if not provided)
            settings: Settings instance (uses get_settings() if not provided)
            transport: Optional httpx transport shared by the backends
            sleep: Replacement for asyncio.sleep in job polling
            cancel_event: Aborts job polling when set
            clock: Time source used for generated file names
        """
        if settings is None:
            from ..config import get_settings

            settings = get_settings()
        self.settings = settings

        self.provider_config = provider_config or settings.to_provider_config()
        self.download_dir = (
            Path(download_dir) if download_dir else settings.get_download_path()
        )
        self._transport = transport
        self._sleep = sleep
        self._cancel_event = cancel_event
        self._clock = clock

    def create_backend(self, provider: ProviderKind) -> DownloadBackend:
        """
        Build the backend for a provider with exactly the credential it needs.

        Raises:
            UnsupportedProviderError: If no backend is registered for provider
            ValidationError: If the provider's credential is missing
        """
        backend_cls = BackendFactory.get_backend_class(provider)
        return backend_cls.create(
            self.provider_config.api_key_for(provider),
            self.settings,
            transport=self._transport,
            sleep=self._sleep,
            cancel_event=self._cancel_event,
            clock=self._clock,
        )

    async def download(
        self,
        url: str,
        platform: Optional[str] = None,
        provider: Optional[str] = None,
        output: Optional[str | Path] = None,
        format: Optional[str] = None,
        quality: Optional[str] = None,
    ) -> list[DownloadResult]:
        """
        Download the media behind a URL.

        Args:
            url: Media URL
            platform: Platform name or alias, detected from the URL if omitted
            provider: Provider name, overrides configuration if given
            output: Directory, or exact file path for single-file results
            format: Requested format (youtube only)
            quality: Requested quality (youtube only)

        Returns:
            One DownloadResult per file written

        Raises:
            MediaGrabError: Any subclass, with platform/provider context set
        """
        resolved_platform: Optional[Platform] = None
        resolved_provider: Optional[ProviderKind] = None

        try:
            resolved_platform = PlatformResolver.resolve(url, platform)
            resolved_provider = resolve_provider(
                provider, self.provider_config, resolved_platform.value
            )
            logger.info(
                f"Downloading {url} (platform={resolved_platform}, "
                f"provider={resolved_provider})"
            )

            target = resolve_output_target(output, self.download_dir)
            backend = self.create_backend(resolved_provider)

            request = FetchRequest(
                url=url,
                platform=resolved_platform,
                output_dir=target.directory,
                target_path=target.file_path,
                format=format or None,
                quality=quality or None,
            )

            async with backend:
                fetched = await backend.fetch(request)

            if target.file_path is not None and fetched:
                fetched[0] = self._move_first(fetched[0], target.file_path)
                if len(fetched) > 1:
                    logger.warning(
                        f"{len(fetched)} files downloaded but an exact file path "
                        f"was requested; only the first was moved to "
                        f"{target.file_path}"
                    )

            results = [
                self._to_result(f, url, resolved_platform, resolved_provider)
                for f in fetched
            ]

        except MediaGrabError as e:
            e.add_context(platform=resolved_platform, provider=resolved_provider)
            logger.error(f"Download failed [{e.kind}]: {e.message}")
            raise

        logger.info(f"Downloaded {len(results)} file(s) from {url}")
        return results

    @staticmethod
    def _move_first(fetched: FetchedFile, file_path: Path) -> FetchedFile:
        if fetched.path == file_path:
            return fetched
        try:
            os.replace(fetched.path, file_path)
        except OSError as e:
            raise DownloadIOError(
                f"Downloaded {fetched.path} but failed to rename to {file_path}: {e}",
                path=file_path,
            )
        return FetchedFile(path=file_path, warnings=fetched.warnings)

    @staticmethod
    def _to_result(
        fetched: FetchedFile,
        url: str,
        platform: Platform,
        provider: ProviderKind,
    ) -> DownloadResult:
        path = fetched.path.resolve()
        try:
            size = path.stat().st_size
        except OSError:
            size = None
        return DownloadResult(
            file_path=path,
            platform=platform,
            provider=provider,
            original_url=url,
            warnings=tuple(fetched.warnings),
            file_size_bytes=size,
        )


@dataclass
class DownloadOutcome:
    """Result-or-error value for callers that do not handle exceptions."""

    success: bool
    results: list[DownloadResult] = field(default_factory=list)
    error_kind: Optional[str] = None
    error: Optional[str] = None
    details: Optional[str] = None
    platform: Optional[str] = None
    provider: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "files": [str(r.file_path) for r in self.results],
            "warnings": [w for r in self.results for w in r.warnings],
            "error_kind": self.error_kind,
            "error": self.error,
            "details": self.details,
            "platform": self.platform,
            "provider": self.provider,
        }


# Convenience function for simple usage
async def download_media(
    url: str,
    platform: Optional[str] = None,
    provider: Optional[str] = None,
    output: Optional[str | Path] = None,
    format: Optional[str] = None,
    quality: Optional[str] = None,
    downloader: Optional[MediaDownloader] = None,
) -> DownloadOutcome:
    """
    Download a URL and report the outcome as a value.

    Args:
        url: Media URL
        platform: Optional platform override
        provider: Optional provider override
        output: Optional output directory or file path
        format: Optional format (youtube)
        quality: Optional quality (youtube)
        downloader: MediaDownloader to use (built from settings if not provided)

    Returns:
        DownloadOutcome
    """
    try:
        downloader = downloader or MediaDownloader()
        results = await downloader.download(
            url,
            platform=platform,
            provider=provider,
            output=output,
            format=format,
            quality=quality,
        )
    except MediaGrabError as e:
        return DownloadOutcome(
            success=False,
            error_kind=e.kind,
            error=e.message,
            details=e.details,
            platform=e.platform,
            provider=e.provider,
        )

    return DownloadOutcome(
        success=True,
        results=results,
        platform=results[0].platform.value if results else platform,
        provider=results[0].provider.value if results else provider,
    )
