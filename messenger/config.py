from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Messenger configuration, read from the process environment.
    A local .env file fills in anything the environment leaves unset.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database
    DATABASE_URL: str = "sqlite:///./messenger.db"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Bearer token signing key - required from .env
    AUTH_SECRET: str
    JWT_EXPIRES_MINUTES: int = 43200

    # Verification codes
    VERIFICATION_CODE_TTL_SECONDS: int = 300
    # There is no SMS gateway, so the code is echoed back to the client
    EXPOSE_VERIFICATION_CODE: bool = True

    # Privacy
    EXPORT_DIR: str = "./exports"

    # Stories
    STORY_TTL_HOURS: int = 24

    # Generative AI (Anna)
    GOOGLE_AI_API_KEY: str = ""
    GOOGLE_AI_MODEL: str = "gemini-pro"
    GOOGLE_AI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    AI_STREAM_MAX_ATTEMPTS: int = 3
    AI_STREAM_BACKOFF_SECONDS: float = 1.0

    # Real-time AI agent platform
    ZEGO_APP_ID: int = 0
    ZEGO_BASE_URL: str = "https://aigc.zego.im/v1"
    ZEGO_TOKEN: str = ""
    AGENT_START_TIMEOUT_SECONDS: float = 30.0
    AGENT_POLL_INTERVAL_SECONDS: float = 1.0


@lru_cache()
def get_settings() -> Settings:
    """Settings are parsed once per process; tests call cache_clear() after changing env."""
    return Settings()


settings = get_settings()
