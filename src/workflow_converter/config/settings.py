"""Configuration and settings management using pydantic-settings."""
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DEPENDENCY_DENYLIST = [
    "vm2",
    "eval",
    "child_process",
    "pexpect",
    "sh",
    "plumbum",
]


class Settings(BaseSettings):
    """Converter settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="CONVERTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core settings
    env: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # Validation policy
    max_type_version: int = Field(
        default=10,
        description="Highest node typeVersion accepted without a validation error",
    )

    # Code generation
    dependency_denylist: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DEPENDENCY_DENYLIST),
        description="Package names never written to a generated manifest",
    )
    sandbox_timeout_s: int = Field(
        default=30,
        description="Wall-clock limit for user code run by generated code nodes",
    )
    python_requires: str = Field(
        default=">=3.10",
        description="requires-python value written to generated manifests",
    )

    # Enhancement
    enhancement_enabled: bool = Field(
        default=False,
        description="Ask the configured generator for improved node bodies",
    )
    enhancement_timeout_s: float = Field(
        default=60.0,
        description="Per-node timeout for a generator call",
    )
    enhancement_max_workers: int = Field(
        default=4,
        description="Maximum concurrent generator calls",
    )
    enhancement_min_code_length: int = Field(
        default=100,
        description="Shortest candidate body that can be accepted",
    )
    enhancement_telemetry_size: int = Field(
        default=256,
        description="Maximum retained enhancement decisions",
    )

    # Anthropic generator settings
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key (only needed for enhancement)",
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com",
        description="Anthropic API base URL",
    )
    anthropic_version: str = Field(
        default="2023-06-01",
        description="Anthropic API version",
    )
    anthropic_default_model: str = Field(
        default="claude-3-5-sonnet-20241022",
        description="Default Anthropic model",
    )
    enhancement_max_tokens: int = Field(
        default=4096,
        description="max_tokens sent with each enhancement request",
    )
    enhancement_max_retries: int = Field(
        default=2,
        description="Retries for transient generator failures",
    )

    @field_validator(
        "max_type_version",
        "sandbox_timeout_s",
        "enhancement_max_workers",
        "enhancement_min_code_length",
        "enhancement_telemetry_size",
        "enhancement_max_tokens",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate that limits are positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("enhancement_timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate that the enhancement timeout is positive."""
        if v <= 0:
            raise ValueError("enhancement_timeout_s must be positive")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate the log format name."""
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    @field_validator("dependency_denylist")
    @classmethod
    def normalize_denylist(cls, v: list[str]) -> list[str]:
        """Lowercase names and treat '_' and '-' alike."""
        return [name.strip().lower().replace("_", "-") for name in v if name.strip()]


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
