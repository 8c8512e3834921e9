"""
Centralized configuration management.
All environment variables and settings are defined here.
"""
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="Bank Statement Converter", alias="APP_NAME")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    max_upload_mb: int = Field(default=10, alias="MAX_UPLOAD_MB")

    # Extraction gateway (OpenAI-compatible chat completions)
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_gateway_url: str = Field(
        default="https://api.openai.com/v1/chat/completions",
        alias="OPENAI_GATEWAY_URL",
    )
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_timeout: int = Field(default=120, alias="OPENAI_TIMEOUT")
    openai_verify_ssl: bool = Field(default=True, alias="OPENAI_VERIFY_SSL")

    # Chunked extraction
    extraction_mode: Literal["document", "text"] = Field(default="document", alias="EXTRACTION_MODE")
    pages_per_chunk: int = Field(default=2, alias="PAGES_PER_CHUNK")
    pacing_delay_document: float = Field(default=2.0, alias="PACING_DELAY_DOCUMENT")
    pacing_delay_text: float = Field(default=5.0, alias="PACING_DELAY_TEXT")
    rate_limit_backoff: float = Field(default=32.0, alias="RATE_LIMIT_BACKOFF")
    max_chunk_retries: int = Field(default=2, alias="MAX_CHUNK_RETRIES")
    retry_delay: float = Field(default=1.0, alias="RETRY_DELAY")
    min_chunk_text_chars: int = Field(default=20, alias="MIN_CHUNK_TEXT_CHARS")

    # Normalization
    default_currency: str = Field(default="INR", alias="DEFAULT_CURRENCY")
    default_to_credit: bool = Field(default=True, alias="DEFAULT_TO_CREDIT")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v_upper

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("max_upload_mb")
    @classmethod
    def validate_max_upload(cls, v):
        if v < 1:
            raise ValueError("Max upload size must be at least 1 MB")
        return v

    @field_validator("pages_per_chunk")
    @classmethod
    def validate_pages_per_chunk(cls, v):
        if v < 1:
            raise ValueError("Pages per chunk must be at least 1")
        return v

    @field_validator("max_chunk_retries")
    @classmethod
    def validate_retries(cls, v):
        if v < 0:
            raise ValueError("Max chunk retries cannot be negative")
        if v > 10:
            raise ValueError("Max chunk retries should not exceed 10")
        return v

    @field_validator("pacing_delay_document", "pacing_delay_text", "rate_limit_backoff", "retry_delay")
    @classmethod
    def validate_delays(cls, v):
        if v < 0:
            raise ValueError("Delays cannot be negative")
        return v

    @property
    def pacing_delay(self) -> float:
        """Inter-chunk delay for the configured extraction mode."""
        if self.extraction_mode == "text":
            return self.pacing_delay_text
        return self.pacing_delay_document

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
