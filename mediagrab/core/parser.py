"""URL platform detection and provider response parsing."""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional

from .base import Platform
from .exceptions import ResponseParseError, ValidationError


class PlatformResolver:
    """Maps URLs and user-supplied names to a Platform."""

    # Host suffixes per platform, checked in order
    DOMAINS: dict[Platform, tuple[str, ...]] = {
        Platform.YOUTUBE: ("youtube.com", "youtu.be"),
        Platform.INSTAGRAM: ("instagram.com", "instagr.am"),
        Platform.TIKTOK: ("tiktok.com",),
        Platform.TWITTER: ("twitter.com", "x.com"),
        Platform.FACEBOOK: ("facebook.com", "fb.watch", "fb.com"),
        Platform.LINKEDIN: ("linkedin.com", "lnkd.in"),
        Platform.BLUESKY: ("bsky.app", "bsky.social"),
    }

    ALIASES: dict[str, Platform] = {
        "yt": Platform.YOUTUBE,
        "ig": Platform.INSTAGRAM,
        "insta": Platform.INSTAGRAM,
        "tt": Platform.TIKTOK,
        "x": Platform.TWITTER,
        "tw": Platform.TWITTER,
        "fb": Platform.FACEBOOK,
        "li": Platform.LINKEDIN,
        "bsky": Platform.BLUESKY,
    }

    # Optional scheme, then the authority up to the first path/query/fragment
    HOST_PATTERN = re.compile(r"^\s*(?:[a-z][a-z0-9+.-]*://)?([^/?#\s]+)", re.I)

    @classmethod
    def extract_host(cls, url: str) -> Optional[str]:
        """Return the lower-cased host of a URL, without userinfo or port."""
        match = cls.HOST_PATTERN.match(url or "")
        if not match:
            return None
        host = match.group(1).rsplit("@", 1)[-1]
        host = host.split(":", 1)[0].strip(".").lower()
        return host or None

    @classmethod
    def detect(cls, url: str) -> Optional[Platform]:
        """
        Detect the platform a URL belongs to.

        Args:
            url: Media URL (e.g., https://www.youtube.com/watch?v=abc)

        Returns:
            The matching Platform, or None when no known domain matches
        """
        host = cls.extract_host(url)
        if not host:
            return None

        for platform, domains in cls.DOMAINS.items():
            for domain in domains:
                if host == domain or host.endswith("." + domain):
                    return platform
        return None

    @classmethod
    def normalize(cls, name: str) -> Optional[Platform]:
        """Map a platform name or shorthand alias to a Platform."""
        key = (name or "").strip().lower()
        if not key:
            return None
        try:
            return Platform(key)
        except ValueError:
            return cls.ALIASES.get(key)

    @classmethod
    def resolve(cls, url: str, platform: Optional[str] = None) -> Platform:
        """
        Resolve the platform for a download.

        Args:
            url: Media URL
            platform: Optional user override, takes precedence over detection

        Raises:
            ValidationError: If the override is unknown or detection fails
        """
        supported = ", ".join(p.value for p in Platform)

        if platform:
            resolved = cls.normalize(platform)
            if resolved is None:
                raise ValidationError(
                    f"Unknown platform: {platform}. Supported: {supported}"
                )
            return resolved

        resolved = cls.detect(url)
        if resolved is None:
            raise ValidationError(
                f"Could not detect platform from URL: {url}. "
                f"Specify one of: {supported}"
            )
        return resolved


def detect_platform(url: str) -> Optional[Platform]:
    return PlatformResolver.detect(url)


def normalize_platform(name: str) -> Optional[Platform]:
    return PlatformResolver.normalize(name)


@dataclass(frozen=True)
class ResolvedMedia:
    """Download URL picked from a direct-resolve response."""

    download_url: str
    has_audio: bool = True


@dataclass(frozen=True)
class JobResultItem:
    """One result of a finished job; its URL expires quickly."""

    type: str
    url: str

    @property
    def extension(self) -> str:
        if self.type == "video":
            return ".mp4"
        if self.type == "image":
            return ".jpg"
        return ""


def _load_json_object(body: str, what: str) -> dict[str, Any]:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise ResponseParseError(f"Failed to parse {what}: {e}", body=body)

    if not isinstance(data, dict):
        raise ResponseParseError(
            f"Failed to parse {what}: expected a JSON object", body=body
        )
    return data


def parse_direct_response(body: str) -> ResolvedMedia:
    """
    Pick the download URL out of a direct-resolve API response.

    When the main stream has no audio, the first alternate format that does
    have audio is used instead. If none exists the original URL is kept and
    has_audio stays False.

    Args:
        body: Raw response body

    Returns:
        ResolvedMedia with the effective URL

    Raises:
        ResponseParseError: If the body is not a JSON object or no URL is found
    """
    data = _load_json_object(body, "download response")

    download_url = data.get("downloadUrl") or ""
    has_audio = data.get("hasAudio", True) is not False

    formats = data.get("formats")
    if not has_audio and isinstance(formats, list):
        for fmt in formats:
            if not isinstance(fmt, dict) or fmt.get("hasAudio") is not True:
                continue
            alt_url = fmt.get("url") or ""
            if alt_url:
                download_url = alt_url
                has_audio = True
                break

    if not isinstance(download_url, str) or not download_url:
        raise ResponseParseError("No downloadUrl in response", body=body)

    return ResolvedMedia(download_url=download_url, has_audio=has_audio)


def parse_submit_response(body: str) -> str:
    """Return the job uuid from a submit response."""
    data = _load_json_object(body, "submit response")

    uuid = data.get("uuid")
    if not uuid or not isinstance(uuid, str):
        raise ResponseParseError("Submit response missing 'uuid' field", body=body)
    return uuid


def parse_results_response(body: str) -> list[JobResultItem]:
    """
    Parse a job results response.

    A response without a results key means the job is still running.

    Raises:
        ResponseParseError: If results is not a list of {type, url} objects
    """
    data = _load_json_object(body, "results response")

    results = data.get("results")
    if results is None:
        return []
    if not isinstance(results, list):
        raise ResponseParseError("'results' is not a list", body=body)

    items = []
    for raw in results:
        try:
            items.append(JobResultItem(type=str(raw["type"]), url=str(raw["url"])))
        except (KeyError, TypeError) as e:
            raise ResponseParseError(f"Malformed result item: {e}", body=body)
    return items
