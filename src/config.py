"""
Syllabus Calendar — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

DEFAULT_GEMINI_ENDPOINT = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM — provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str = ""        # empty → extraction runs the regex fallback only
    LLM_ENDPOINT: str = DEFAULT_GEMINI_ENDPOINT
    LLM_TIMEOUT_SECONDS: float = 30.0
    LLM_MAX_RETRIES: int = 1

    # Google Calendar (OAuth client secrets; per-user tokens live in the DB)
    GOOGLE_CREDENTIALS_PATH: str = "credentials.json"

    # SQLite
    DATABASE_PATH: str = "data/syllabus_calendar.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Display / export
    TIMEZONE: str = "America/New_York"
    CALENDAR_NAME: str = "Syllabus Calendar"

    # Uploads
    MAX_UPLOAD_BYTES: int = 20 * 1024 * 1024

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("LLM_MAX_RETRIES", "MAX_UPLOAD_BYTES", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("LLM_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def parse_timeout(cls, v: str | float) -> float:
        return float(v)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    llm_api_key = os.getenv("LLM_API_KEY", "")
    if llm_api_key.startswith("your-"):
        llm_api_key = ""

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "gemini"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        LLM_ENDPOINT=os.getenv("LLM_ENDPOINT", DEFAULT_GEMINI_ENDPOINT),
        LLM_TIMEOUT_SECONDS=os.getenv("LLM_TIMEOUT_SECONDS", "30"),
        LLM_MAX_RETRIES=os.getenv("LLM_MAX_RETRIES", "1"),
        GOOGLE_CREDENTIALS_PATH=os.getenv("GOOGLE_CREDENTIALS_PATH", "credentials.json"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/syllabus_calendar.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "America/New_York"),
        CALENDAR_NAME=os.getenv("CALENDAR_NAME", "Syllabus Calendar"),
        MAX_UPLOAD_BYTES=os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
