"""Runtime settings for FormFlow.

Values come from ``FORMFLOW_*`` environment variables or the project's
``.env`` file, falling back to the defaults below.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    data_dir: Path = BASE_DIR / "data"
    api_base_url: str = "http://localhost:8000"
    intake_base_url: str = "http://localhost:8501"

    # Auto-save controller defaults
    autosave_delay_ms: int = 2000
    autosave_max_retries: int = 3
    enable_local_storage: bool = True
    local_storage_key: str = "autosave"

    default_expiry_days: float = 7
    max_expiry_days: float = 30
    session_hours: int = 24

    log_level: str = "INFO"

    model_config = {
        "env_prefix": "FORMFLOW_",
        "env_file": BASE_DIR / ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
