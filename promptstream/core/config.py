from pydantic_settings import BaseSettings, SettingsConfigDict

__version__ = "1.0.0"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROMPTSTREAM_",
        extra="ignore",
    )

    # HTTP
    request_timeout_seconds: float = 30.0  # Overall wall-clock timeout per vendor call
    availability_timeout_seconds: float = 30.0  # Max wait for a rate-limiter slot
    user_agent: str = f"promptstream/{__version__}"

    # Vendor endpoints
    openai_base_url: str = "https://api.openai.com/v1"
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_version: str = "2023-06-01"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Model list cache
    model_cache_ttl_seconds: float = 300.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Metrics
    metrics_enabled: bool = True


settings = Settings()


def validate_settings() -> None:
    """Validate critical settings. Called once when a gateway starts."""
    errors: list[str] = []

    if settings.request_timeout_seconds <= 0:
        errors.append("REQUEST_TIMEOUT_SECONDS must be positive")

    if settings.availability_timeout_seconds < 0:
        errors.append("AVAILABILITY_TIMEOUT_SECONDS must not be negative")

    if settings.model_cache_ttl_seconds < 0:
        errors.append("MODEL_CACHE_TTL_SECONDS must not be negative")

    for name in ("openai_base_url", "anthropic_base_url", "gemini_base_url"):
        value = getattr(settings, name)
        if not value.startswith(("https://", "http://")):
            errors.append(f"{name.upper()} must be an http(s) URL, got {value!r}")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
