"""Configuration management using Pydantic Settings"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    """Service settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="OFFLINE_STT_",
        extra="ignore",
        protected_namespaces=(),
    )

    # Model resources
    model_path: Path = Path("models/whisper.onnx")
    vocab_path: Path = Path("models/filters_vocab_multilingual.bin")
    multilingual: bool = True
    num_threads: int = os.cpu_count() or 1

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_format: Literal["simple", "detailed", "json"] = "detailed"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> LogLevel:
        """Validate log level, fallback to INFO if invalid."""
        upper_v = v.upper()
        if upper_v not in VALID_LOG_LEVELS:
            return "INFO"
        return upper_v  # type: ignore[return-value]

    @field_validator("num_threads")
    @classmethod
    def validate_num_threads(cls, v: int) -> int:
        """Thread counts below one mean 'use one thread'."""
        return max(1, v)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
