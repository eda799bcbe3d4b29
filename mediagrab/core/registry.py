"""Provider registry and provider selection policy."""

from dataclasses import dataclass, replace
from typing import Optional

from .base import Platform, ProviderKind
from .exceptions import ValidationError
from .parser import PlatformResolver


# Accepted spellings for each provider
PROVIDER_ALIASES: dict[str, ProviderKind] = {
    "latedev": ProviderKind.LATE_DEV,
    "late": ProviderKind.LATE_DEV,
    "late.dev": ProviderKind.LATE_DEV,
    "instag": ProviderKind.INSTAG,
    "instag.com": ProviderKind.INSTAG,
    "custom": ProviderKind.CUSTOM,
}


def parse_provider(text: Optional[str]) -> Optional[ProviderKind]:
    """Parse a provider name, returning None when it is not recognised."""
    if not text:
        return None
    return PROVIDER_ALIASES.get(text.strip().lower())


@dataclass(frozen=True)
class PlatformProviderOverride:
    """Provider to use for one platform."""

    platform: str
    provider: ProviderKind


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and provider defaults, read-only for one invocation.

    Overrides are normalized on construction: platform names become
    canonical, unknown platforms are rejected, and when a platform appears
    more than once the last entry wins.
    """

    default_provider: ProviderKind = ProviderKind.LATE_DEV
    late_dev_api_key: str = ""
    instag_api_key: str = ""
    platform_overrides: tuple[PlatformProviderOverride, ...] = ()

    def __post_init__(self):
        object.__setattr__(
            self, "default_provider", _coerce_provider(self.default_provider)
        )

        merged: dict[Platform, ProviderKind] = {}
        for override in self.platform_overrides:
            if isinstance(override, PlatformProviderOverride):
                platform, provider = override.platform, override.provider
            else:
                platform, provider = override
            canonical = _canonical_platform(platform)
            merged.pop(canonical, None)
            merged[canonical] = _coerce_provider(provider)

        object.__setattr__(
            self,
            "platform_overrides",
            tuple(
                PlatformProviderOverride(platform.value, provider)
                for platform, provider in merged.items()
            ),
        )

    def provider_for_platform(self, platform: str) -> ProviderKind:
        """Return the per-platform override if set, otherwise the default."""
        canonical = PlatformResolver.normalize(str(platform))
        wanted = canonical.value if canonical else str(platform).lower()
        for override in self.platform_overrides:
            if override.platform == wanted:
                return override.provider
        return self.default_provider

    def with_platform_provider(
        self, platform: str, provider: ProviderKind
    ) -> "ProviderConfig":
        """Return a copy with platform mapped to provider (last write wins)."""
        return replace(
            self,
            platform_overrides=self.platform_overrides
            + (PlatformProviderOverride(platform, provider),),
        )

    def api_key_for(self, provider: ProviderKind) -> str:
        """Credential for a provider kind (empty when not configured)."""
        if provider == ProviderKind.LATE_DEV:
            return self.late_dev_api_key
        if provider == ProviderKind.INSTAG:
            return self.instag_api_key
        return ""


def default_provider_config() -> ProviderConfig:
    """Late.dev for everything, no credentials."""
    return ProviderConfig()


def _canonical_platform(platform: str) -> Platform:
    canonical = PlatformResolver.normalize(str(platform))
    if canonical is None:
        raise ValidationError(f"Unknown platform: {platform}")
    return canonical


def _coerce_provider(provider) -> ProviderKind:
    if isinstance(provider, ProviderKind):
        return provider
    parsed = parse_provider(provider)
    if parsed is None:
        raise ValidationError(f"Unknown provider '{provider}'")
    return parsed


def build_provider_config(
    default_provider: ProviderKind = ProviderKind.LATE_DEV,
    late_dev_api_key: str = "",
    instag_api_key: str = "",
    overrides: Optional[dict[str, ProviderKind]] = None,
) -> ProviderConfig:
    """
    Build a validated ProviderConfig.

    Args:
        default_provider: Provider used when no override matches
        late_dev_api_key: Late.dev API key
        instag_api_key: Instag.com API key
        overrides: Platform name -> provider, applied in order

    Raises:
        ValidationError: If an override names an unknown platform
    """
    return ProviderConfig(
        default_provider=default_provider,
        late_dev_api_key=late_dev_api_key,
        instag_api_key=instag_api_key,
        platform_overrides=tuple(
            PlatformProviderOverride(platform, provider)
            for platform, provider in (overrides or {}).items()
        ),
    )


def resolve_provider(
    explicit: Optional[str],
    config: ProviderConfig,
    platform: str,
) -> ProviderKind:
    """
    Pick the provider for one download.

    Precedence: explicit argument, then the platform override, then the
    configured default.

    Raises:
        ValidationError: If the explicit argument is not a known provider
    """
    if explicit is not None and explicit.strip():
        parsed = parse_provider(explicit)
        if parsed is None:
            raise ValidationError(
                f"Unknown provider '{explicit}'. "
                f"Expected one of: {', '.join(sorted(PROVIDER_ALIASES))}"
            )
        return parsed
    return config.provider_for_platform(platform)
