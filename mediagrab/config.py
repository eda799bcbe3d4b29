"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.base import ProviderKind
from .core.exceptions import ValidationError
from .core.registry import ProviderConfig, build_provider_config, parse_provider


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider credentials
    late_dev_api_key: str = ""
    instag_api_key: str = ""

    # Provider selection: global default plus "platform=provider" pairs,
    # comma-separated (e.g. "instagram=instag,twitter=instag")
    default_provider: str = "latedev"
    platform_providers: str = ""

    # Provider endpoints
    late_dev_base_url: str = "https://getlate.dev/api/v1"
    instag_base_url: str = "https://instag.com/api/v1"

    # Timeouts and polling (seconds)
    request_timeout: float = 30.0
    poll_interval: float = 5.0
    max_polls: int = 300  # ~25 minutes at the default interval

    # Downloads
    download_dir: str = "./downloads"

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    @field_validator("default_provider")
    @classmethod
    def _check_default_provider(cls, value: str) -> str:
        if parse_provider(value) is None:
            raise ValueError(f"unknown provider: {value}")
        return value

    def get_download_path(self) -> Path:
        """Get download directory as Path (not created here)."""
        return Path(self.download_dir).expanduser()

    def parse_platform_providers(self) -> dict[str, ProviderKind]:
        """
        Parse platform_providers into an ordered mapping.

        Raises:
            ValidationError: On a malformed pair or unknown provider
        """
        overrides: dict[str, ProviderKind] = {}
        for pair in self.platform_providers.split(","):
            pair = pair.strip()
            if not pair:
                continue
            platform, sep, provider_name = pair.partition("=")
            if not sep:
                raise ValidationError(
                    f"Invalid platform provider override '{pair}', "
                    "expected platform=provider"
                )
            provider = parse_provider(provider_name)
            if provider is None:
                raise ValidationError(f"Unknown provider '{provider_name.strip()}'")
            overrides[platform.strip()] = provider
        return overrides

    def to_provider_config(self) -> ProviderConfig:
        """Build the read-only ProviderConfig for one invocation."""
        return build_provider_config(
            default_provider=parse_provider(self.default_provider),
            late_dev_api_key=self.late_dev_api_key,
            instag_api_key=self.instag_api_key,
            overrides=self.parse_platform_providers(),
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Raises:
        ValidationError: If the environment holds an invalid setting
    """
    try:
        return Settings()
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']).upper()}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid configuration: {problems}", details=str(e))
