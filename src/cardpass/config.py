"""Configuration management for cardpass."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OCR
    ocr_language: str = "eng"
    ocr_oem: int = 3
    ocr_timeout_seconds: float = 15.0

    # Preprocessing
    dark_text: bool = False

    # Card layout
    detect_card_bounds: bool = False
    layout_file: Optional[Path] = None

    # Logging
    log_level: str = "INFO"

    class Config:
        env_prefix = "CARDPASS_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
