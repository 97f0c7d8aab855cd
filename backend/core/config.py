from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DATABASE_URL: str = "sqlite:///./chunked_uploads.db"
    ORIGIN: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    # Chunk blob storage (S3 compatible, Cloudflare R2 in production)
    R2_ENDPOINT_URL: Optional[str] = None
    R2_ACCESS_KEY_ID: Optional[str] = None
    R2_SECRET_ACCESS_KEY: Optional[str] = None
    R2_BUCKET_NAME: str = "chunk-uploads"
    CHUNK_KEY_PREFIX: str = "chunks"

    # Google Drive sink
    GOOGLE_APPLICATION_CREDENTIALS_JSON: Optional[str] = None
    GOOGLE_SHARED_DRIVE_ID: Optional[str] = None
    GOOGLE_DRIVE_ROOT_ID: Optional[str] = None
    SIMPLE_UPLOAD_MAX_BYTES: int = 100 * 1024 * 1024
    SINK_UPLOAD_CHUNK_BYTES: int = 8 * 1024 * 1024
    SINK_REQUEST_TIMEOUT_SECONDS: int = 300

    # Chunk limits
    MAX_CHUNK_SIZE_MB: int = 64
    MAX_TOTAL_CHUNKS: int = 10000
    CHUNK_DOWNLOAD_MAX_WORKERS: Optional[int] = None

    # Sweeper
    SESSION_RETENTION_HOURS: int = 24
    CLEANUP_INTERVAL_SECONDS: int = 60 * 60
    ENABLE_BACKGROUND_SWEEPER: bool = True


settings = Settings()
