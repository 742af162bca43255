"""Configuration management for DocVault."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    ENV: str = "local"
    SERVICE_NAME: str = "docvault"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Relational store
    DATABASE_URL: str = "sqlite:///./data/docvault.db"
    DB_ECHO: bool = False
    DB_CREATE_TABLES: bool = True  # Create missing tables on startup

    # Object storage
    STORAGE_BACKEND: str = "local"  # "gcs" or "local"
    LOCAL_STORAGE_PATH: str = "./data/objects"
    GCP_PROJECT_ID: str = ""
    GCS_BUCKET_NAME: str = ""

    # Resumable uploads (tus 1.0.0)
    UPLOAD_BASE_PATH: str = "/api/v1/upload/files"
    UPLOAD_STATE_DIR: str = "./data/tus"
    MAX_UPLOAD_MB: int = 0  # 0 = no limit

    # Presigned URLs
    PRESIGN_DEFAULT_EXPIRY_SECONDS: int = 3600

    # Bearer token validation
    AUTH_ENABLED: bool = False
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"

    # Storage browsing
    RECENT_FILES_LIMIT: int = 10
    RECENT_FILES_MAX_LIMIT: int = 100

    @property
    def max_upload_bytes(self) -> int | None:
        """Convert MAX_UPLOAD_MB to bytes, None when unlimited."""
        if self.MAX_UPLOAD_MB <= 0:
            return None
        return self.MAX_UPLOAD_MB * 1024 * 1024


# Singleton settings instance
settings = Settings()
