from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Staged import batches are refused for commit once this lifetime has elapsed.
    import_batch_ttl_minutes: int = Field(30, alias="IMPORT_BATCH_TTL_MINUTES")
    import_max_rows: int = Field(500, alias="IMPORT_MAX_ROWS")
    import_max_bytes: int = Field(5 * 1024 * 1024, alias="IMPORT_MAX_BYTES")
    # 0 disables the periodic expiry sweep (commit still refuses expired batches).
    batch_reaper_interval_seconds: int = Field(60, alias="BATCH_REAPER_INTERVAL_SECONDS")

    history_page_size_max: int = Field(100, alias="HISTORY_PAGE_SIZE_MAX")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(None, alias="LOG_FILE")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
