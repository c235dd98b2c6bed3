# Filename: sharebox/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from pathlib import Path
from typing import Literal


class Settings(BaseSettings):
    # Core
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    app_name: str = "ShareBox"
    app_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8000

    secret_key: str = Field(..., description="JWT secret key - required")
    access_token_expire_minutes: int = 1440
    jwt_algorithm: str = "HS256"

    database_url: str = Field(..., description="Database connection string")

    # blob store
    storage_path: Path = Path("./data")
    public_base_url: str = "http://localhost:8000"
    max_upload_size_mb: int = 500

    # dedup / versioning
    dedup_scope: Literal["global", "owner"] = "global"
    version_retry_attempts: int = 5

    # best-effort blob release
    cleanup_retry_attempts: int = 3
    cleanup_retry_backoff: float = 0.5

    cors_allow_origins: str = "*"
    cors_allow_credentials: bool = True
    cors_allow_methods: str = "*"
    cors_allow_headers: str = "*"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @property
    def blob_root(self) -> Path:
        return self.storage_path / "blobs"

    @property
    def blob_base_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/blobs"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    model_config = SettingsConfigDict(
        env_prefix="SHAREBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
