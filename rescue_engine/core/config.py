"""Application configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "rescue-engine"
    debug: bool = False
    database_url: str = "sqlite:///./rescue.db"
    api_prefix: str = "/api"

    # JWT (issued by the identity service, verified here)
    jwt_secret: str = "change-me-in-production-use-openssl-rand-hex-32"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Location relay
    location_throttle_seconds: float = 5.0

    # Chat
    chat_max_length: int = 2000

    # Bounding-box queries
    query_default_limit: int = 200
    query_max_limit: int = 500

    # Streaming
    stream_retry_ms: int = 3000
    stream_heartbeat_seconds: float = 15.0
    stream_queue_size: int = 256


settings = Settings()
