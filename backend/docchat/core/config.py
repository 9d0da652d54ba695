from pydantic_settings import BaseSettings
from typing import List, Optional
from pathlib import Path
import json
import os


SETTINGS_FILE = Path(__file__).parent.parent.parent / "settings.json"


def load_settings_from_file() -> dict:
    """Load settings from JSON file if exists."""
    if SETTINGS_FILE.exists():
        try:
            with open(SETTINGS_FILE) as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            pass
    return {}


class Settings(BaseSettings):
    # OpenAI / Portkey
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_model: str = "gpt-4o-mini"

    # Host frame
    parent_origin: Optional[str] = None

    # Session
    store_name_prefix: str = "chat-session"
    ready_delay_seconds: float = 0.5
    fetch_timeout_seconds: float = 30.0
    example_question_count: int = 4

    # Server
    cors_origins: List[str] = ["http://localhost:5173"]
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

    def __init__(self, **kwargs):
        # Merge: kwargs > file_settings > env vars (handled by pydantic)
        file_settings = load_settings_from_file()
        merged = {**file_settings, **kwargs}

        super().__init__(**merged)

        # Handle CORS_ORIGINS as JSON string from env
        cors_env = os.getenv("CORS_ORIGINS")
        if cors_env:
            try:
                self.cors_origins = json.loads(cors_env)
            except json.JSONDecodeError:
                self.cors_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    def get_effective_settings(self) -> dict:
        """Get current effective settings with secrets masked (safe to log)."""
        return {
            "openai_api_key": self._mask_key(self.openai_api_key),
            "openai_base_url": self.openai_base_url,
            "openai_model": self.openai_model,
            "parent_origin": self.parent_origin,
            "store_name_prefix": self.store_name_prefix,
            "ready_delay_seconds": self.ready_delay_seconds,
            "fetch_timeout_seconds": self.fetch_timeout_seconds,
            "example_question_count": self.example_question_count,
        }

    def _mask_key(self, key: str) -> str:
        """Mask a secret key for display."""
        if not key:
            return ""
        if len(key) <= 8:
            return "*" * len(key)
        return key[:4] + "*" * (len(key) - 8) + key[-4:]


settings = Settings()
