import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


class Settings(BaseModel):
    # Cache Configuration
    cache_max: int = Field(default=100, ge=1, alias="CACHE_MAX")
    cache_ttl_seconds: float = Field(default=300, gt=0, alias="CACHE_TTL")

    # Content Configuration
    default_language: str = Field(default="en", alias="DEFAULT_LANGUAGE")
    enable_deduplication: bool = Field(default=True, alias="ENABLE_DEDUPLICATION")
    batch_concurrency: int = Field(default=5, ge=1, alias="BATCH_CONCURRENCY")
    mirror_templates: list[str] = Field(
        default=["https://{lang}.wikipedia.org", "https://{lang}.m.wikipedia.org"],
        alias="MIRROR_TEMPLATES",
    )

    # Upstream HTTP Configuration
    request_timeout: float = Field(default=10.0, gt=0, alias="REQUEST_TIMEOUT")
    user_agent: str = Field(
        default="wikigate/0.1 (resilient Wikipedia access layer; python-httpx)",
        alias="USER_AGENT",
    )

    # Circuit Breaker Configuration
    circuit_failure_threshold: int = Field(default=3, ge=1, alias="CIRCUIT_FAILURE_THRESHOLD")
    circuit_reset_timeout: float = Field(default=30.0, gt=0, alias="CIRCUIT_RESET_TIMEOUT")

    # Retry Configuration
    retry_max_retries: int = Field(default=3, ge=0, alias="RETRY_MAX_RETRIES")
    retry_base_delay: float = Field(default=1.0, ge=0, alias="RETRY_BASE_DELAY")
    retry_max_delay: float = Field(default=8.0, ge=0, alias="RETRY_MAX_DELAY")
    retry_backoff_multiplier: float = Field(default=2.0, ge=1, alias="RETRY_BACKOFF_MULTIPLIER")

    # Telemetry Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    enable_metrics: bool = Field(default=True, alias="ENABLE_METRICS")

    model_config = {"populate_by_name": True}

    @field_validator("mirror_templates", mode="before")
    @classmethod
    def _split_templates(cls, value: object) -> object:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("mirror_templates")
    @classmethod
    def _require_lang_placeholder(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one mirror template is required")
        for template in value:
            if "{lang}" not in template:
                raise ValueError(f"mirror template lacks '{{lang}}': {template}")
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment and a ``.env`` file."""
        load_dotenv()
        known = {field.alias for field in cls.model_fields.values() if field.alias}
        return cls.model_validate({k: v for k, v in os.environ.items() if k in known})
