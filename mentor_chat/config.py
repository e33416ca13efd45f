# mentor_chat/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List


class Settings(BaseSettings):
    # Core
    APP_NAME: str = "Mentor Chat"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        validation_alias="MONGODB_URL",
    )
    DATABASE_NAME: str = "mentor_chat"

    # Presence mirror (empty string disables it)
    REDIS_URL: str = ""
    PRESENCE_TTL_SECONDS: int = 300

    # Auth
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # WebSocket
    WS_HEARTBEAT_INTERVAL: int = 30   # seconds
    WS_CONNECTION_TIMEOUT: int = 300  # seconds
    MAX_WS_MESSAGE_SIZE: int = 10_000_000  # bytes

    # Identity cache
    PROFILE_CACHE_TTL_SECONDS: float = 300.0

    # Rate Limiting (fixed window)
    RATE_LIMIT_MAX_MESSAGES: int = 5
    RATE_LIMIT_WINDOW_MS: int = 1000

    # Message Limits
    MAX_MESSAGE_LENGTH: int = 500

    # Timeout applied to user store / message store calls
    STORE_TIMEOUT_SECONDS: float = 5.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )


settings = Settings()
