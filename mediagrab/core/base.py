"""Abstract base classes and shared models for download backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class Platform(str, Enum):
    """Supported platforms."""

    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    TWITTER = "twitter"
    FACEBOOK = "facebook"
    LINKEDIN = "linkedin"
    BLUESKY = "bluesky"

    def __str__(self) -> str:
        return self.value


class ProviderKind(str, Enum):
    """Download providers."""

    # Late.dev in-house API, one request returns a download URL
    LATE_DEV = "latedev"
    # Instag.com API, submit/poll/fetch jobs
    INSTAG = "instag"
    # Reserved for a future third backend
    CUSTOM = "custom"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DownloadResult:
    """One retrieved file, created only after its bytes are on disk."""

    file_path: Path
    platform: Platform
    provider: ProviderKind
    original_url: str
    warnings: tuple[str, ...] = ()
    file_size_bytes: Optional[int] = None

    @property
    def file_size_mb(self) -> Optional[float]:
        """Return file size in MB."""
        if self.file_size_bytes:
            return self.file_size_bytes / (1024 * 1024)
        return None

    def to_record(self) -> dict[str, Any]:
        """Row for the download-history store."""
        return {
            "source_url": self.original_url,
            "platform": self.platform.value,
            "provider": self.provider.value,
            "file_path": str(self.file_path),
            "file_size": self.file_size_bytes,
            "status": "completed",
        }


@dataclass
class FetchRequest:
    """What the orchestrator asks a backend to retrieve."""

    url: str
    platform: Platform
    output_dir: Path
    target_path: Optional[Path] = None
    format: Optional[str] = None
    quality: Optional[str] = None


@dataclass
class FetchedFile:
    """A file a backend finished writing."""

    path: Path
    warnings: list[str] = field(default_factory=list)


class DownloadBackend(ABC):
    """Interface every provider backend implements.

    Backends are async context managers so that any network resources they
    hold live exactly as long as one download invocation.
    """

    @property
    @abstractmethod
    def provider(self) -> ProviderKind:
        """Return the provider this backend implements."""
        pass

    @classmethod
    def create(cls, api_key: str, settings: Any, **options: Any) -> "DownloadBackend":
        """Build a backend from its credential, Settings and runtime hooks."""
        return cls(api_key=api_key)

    @abstractmethod
    async def fetch(self, request: FetchRequest) -> list[FetchedFile]:
        """Resolve the media behind request.url and write it to disk."""
        pass

    async def __aenter__(self) -> "DownloadBackend":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None
