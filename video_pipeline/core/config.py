"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
Every value has a local-development default so both workers start against a
filesystem blob store and a broker on localhost.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "Video Pipeline"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Storage Configuration
    # STORAGE_BACKEND: local, s3, minio
    STORAGE_BACKEND: str = "local"

    # Local Storage (when STORAGE_BACKEND=local)
    LOCAL_STORAGE_PATH: str = "./storage"

    # S3/MinIO/Compatible Storage (when STORAGE_BACKEND=s3 or minio)
    STORAGE_BUCKET: str = ""
    STORAGE_REGION: str = ""
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = "localhost:9092"
    KAFKA_CLIENT_ID: str = "videoPipeline"
    KAFKA_TOPIC: str = "video-uploads"
    KAFKA_CONSUMER_GROUP: str = "videoProcessor"
    KAFKA_DLQ_TOPIC: Optional[str] = "video-uploads.dlq"  # empty disables the DLQ
    KAFKA_FROM_BEGINNING: bool = True

    # Pipeline
    SCRATCH_DIR: str = "./scratch"
    ORIGINALS_PREFIX: str = "videos"
    ENCODED_PREFIX: str = "encoded"
    OUTPUT_FORMATS: list[str] = ["mp4", "avi", "webm", "mkv"]
    WORK_LIST: list[str] = ["c-I5S_zTwAc", "DHjqpvDnNGE", "zQnBQ4tB3ZA"]
    SOURCE_URL_TEMPLATE: str = "https://www.youtube.com/watch?v={reference}"
    SKIP_EXISTING_OUTPUTS: bool = True

    # Downloader (yt-dlp)
    YTDLP_FORMAT: str = "bv*[height<=720][ext=mp4]+ba[ext=m4a]/b[height<=720]/b"
    YTDLP_PROXY: Optional[str] = None

    # Encoder (ffmpeg)
    FFMPEG_PATH: str = "ffmpeg"
    ENCODE_TIMEOUT_SECONDS: Optional[float] = None

    # Consumer retry policy
    HANDLER_MAX_ATTEMPTS: int = 3
    HANDLER_INITIAL_DELAY: float = 5.0
    HANDLER_MAX_DELAY: float = 60.0
    HANDLER_BACKOFF_MULTIPLIER: float = 2.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Metrics
    METRICS_PORT: Optional[int] = None


settings = Settings()
