"""Custom exceptions for mediagrab."""

from pathlib import Path
from typing import Any, Optional


class MediaGrabError(Exception):
    """Base exception for all mediagrab errors."""

    kind = "error"

    def __init__(self, message: str, *, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.platform: Optional[str] = None
        self.provider: Optional[str] = None

    def add_context(
        self,
        platform: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> "MediaGrabError":
        """Attach platform/provider context without overwriting existing values."""
        if platform and not self.platform:
            self.platform = str(platform)
        if provider and not self.provider:
            self.provider = str(provider)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Structured form handed to callers (CLI, agent tools)."""
        return {
            "kind": self.kind,
            "message": self.message,
            "platform": self.platform,
            "provider": self.provider,
            "details": self.details,
        }


class ValidationError(MediaGrabError):
    """Unknown platform/provider or missing credential."""

    kind = "validation"


class UnsupportedProviderError(ValidationError):
    """Provider kind exists but has no backend implementation."""

    pass


class ProviderError(MediaGrabError):
    """A provider answered with a non-2xx status or could not be reached."""

    kind = "provider"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message, details=body)
        self.status_code = status_code
        self.body = body


class ResponseParseError(MediaGrabError):
    """Malformed JSON or a missing expected field."""

    kind = "parse"

    def __init__(self, message: str, body: Optional[str] = None):
        super().__init__(message, details=body)
        self.body = body


class JobTimeoutError(MediaGrabError):
    """Job polling hit the attempt ceiling without any results."""

    kind = "timeout"


class JobCancelledError(MediaGrabError):
    """Job polling was interrupted by a cancellation signal."""

    kind = "cancelled"


class DownloadIOError(MediaGrabError):
    """Local disk write failed."""

    kind = "io"

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message, details=str(path) if path else None)
        self.path = path
