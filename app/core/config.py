# File: /app/core/config.py | Version: 2.0 | Title: Central App Settings (Pydantic v2) + Data Engine limits
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- Database ---
    DATABASE_URL: str = "sqlite:///./app.db"

    # --- Security / JWT ---
    SECRET_KEY: str = "CHANGE_ME_FOR_DEV_ONLY"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # --- API behavior toggles ---
    ENABLE_STD_ERRORS: bool = (
        False  # set True in .env to enable standardized error responses
    )

    # --- Storage ---
    DATA_DIR: Path = Path("./data")
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    # --- Data engine ---
    TYPE_SAMPLE_ROWS: int = 10
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 1000
    QUERY_PREVIEW_ROW_LIMIT: int = 100
    QUERY_TIMEOUT_SECONDS: float = 10.0
    SEARCH_MATCHES_PER_TABLE: int = 5

    # v2-style config
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


settings = Settings()
