"""Core download functionality."""

from .exceptions import (
    MediaGrabError,
    ValidationError,
    UnsupportedProviderError,
    ProviderError,
    ResponseParseError,
    JobTimeoutError,
    JobCancelledError,
    DownloadIOError,
)
from .base import (
    Platform,
    ProviderKind,
    DownloadResult,
    DownloadBackend,
    FetchRequest,
    FetchedFile,
)
from .parser import (
    PlatformResolver,
    JobResultItem,
    detect_platform,
    normalize_platform,
)
from .registry import (
    PlatformProviderOverride,
    ProviderConfig,
    default_provider_config,
    parse_provider,
    resolve_provider,
)
from .downloader import (
    BackendFactory,
    DownloadOutcome,
    MediaDownloader,
    download_media,
)

__all__ = [
    # Exceptions
    "MediaGrabError",
    "ValidationError",
    "UnsupportedProviderError",
    "ProviderError",
    "ResponseParseError",
    "JobTimeoutError",
    "JobCancelledError",
    "DownloadIOError",
    # Models and base classes
    "Platform",
    "ProviderKind",
    "DownloadResult",
    "DownloadBackend",
    "FetchRequest",
    "FetchedFile",
    "JobResultItem",
    # Platforms and providers
    "PlatformResolver",
    "detect_platform",
    "normalize_platform",
    "PlatformProviderOverride",
    "ProviderConfig",
    "default_provider_config",
    "parse_provider",
    "resolve_provider",
    # Orchestration
    "BackendFactory",
    "DownloadOutcome",
    "MediaDownloader",
    "download_media",
]
