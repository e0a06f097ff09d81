from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    PORT: int = 4000
    ENVIRONMENT: str = "production"
    CORS_ORIGINS: str = "*"  # Comma-separated; restrict in production

    # Download tokens
    TOKEN_TTL_SECONDS: int = 300
    EXPIRY_GRACE_SECONDS: int = 60  # Cushion before a stale token is force-reclaimed
    SWEEP_INTERVAL_SECONDS: int = 60

    # Conversion jobs
    MAX_PREPARE_CONCURRENCY: int = 2
    JOB_TIMEOUT_SECONDS: int = 600  # 0 disables the limit
    YTDLP_BINARY: str = "yt-dlp"
    AUDIO_FORMAT: str = "mp3"

    # Rate limiting (per client IP)
    RATE_LIMIT_REQUESTS: int = 60
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # Streaming
    STREAM_CHUNK_SIZE: int = 64 * 1024

    # Temp storage
    TEMP_DIR: str = "/tmp/social-downloader"
    LOG_DIR: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def rate_limit(self) -> str:
        """Limit string in the notation slowapi understands."""
        return f"{self.RATE_LIMIT_REQUESTS} per {self.RATE_LIMIT_WINDOW_SECONDS} seconds"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
