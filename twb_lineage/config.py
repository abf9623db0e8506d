"""
Configuration for workbook loading and graph traversal.

Values are read from environment variables prefixed with ``TWB_LINEAGE_``
(or a local ``.env`` file), e.g.::

    TWB_LINEAGE_MAX_FILE_SIZE=209715200
    TWB_LINEAGE_WARN_FILE_SIZE=52428800
    TWB_LINEAGE_LOG_LEVEL=DEBUG
"""

from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MB = 1024 * 1024


class Settings(BaseSettings):
    """Runtime settings for the lineage pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="TWB_LINEAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Size policy
    max_file_size: int = Field(
        default=100 * MB, ge=1, description="Hard maximum input size in bytes"
    )
    warn_file_size: int = Field(
        default=50 * MB, ge=1, description="Inputs above this size are flagged as large"
    )

    # Loop protection for id generation and neighborhood expansion
    max_iterations: int = Field(default=10000, ge=1)

    # Neighborhood depth bounds
    hop_min: int = Field(default=1, ge=1)
    hop_max: int = Field(default=10, ge=1, le=10)

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @model_validator(mode="after")
    def validate_thresholds(self) -> "Settings":
        if self.warn_file_size > self.max_file_size:
            raise ValueError("warn_file_size must not exceed max_file_size")
        if self.hop_min > self.hop_max:
            raise ValueError("hop_min must not exceed hop_max")
        return self


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    Returns:
        Settings: The application settings
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
