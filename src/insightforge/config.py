"""Settings loaded from environment / .env file.

all keys use the INSIGHTS_ prefix, e.g. INSIGHTS_WAREHOUSE_URL.
"""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="INSIGHTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # internal store - duckdb file, or in-memory when unset
    internal_database_path: str | None = None

    # external warehouse
    warehouse_enabled: bool = False
    warehouse_url: str | None = None
    warehouse_applications_json: str | None = None
    warehouse_applications_file: Path | None = None

    log_level: str = "INFO"
    events_page_limit_max: int = 100


@lru_cache
def get_settings() -> Settings:
    return Settings()
