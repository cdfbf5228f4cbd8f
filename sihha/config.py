import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from openai import AsyncOpenAI


class Settings(BaseSettings):
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./data/sihha.db")

    JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret")
    ACCESS_TOKEN_EXPIRE_DAYS: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "30"))

    LIVE_ONLINE_WINDOW_SECONDS: int = int(os.getenv("LIVE_ONLINE_WINDOW_SECONDS", "15"))
    APP_ONLINE_WINDOW_SECONDS: int = int(os.getenv("APP_ONLINE_WINDOW_SECONDS", "300"))

    LIVEKIT_URL: str = os.getenv("LIVEKIT_URL", "").strip()
    LIVEKIT_API_KEY: str = os.getenv("LIVEKIT_API_KEY", "").strip()
    LIVEKIT_API_SECRET: str = os.getenv("LIVEKIT_API_SECRET", "").strip()
    LIVEKIT_ROOM_PREFIX: str = os.getenv("LIVEKIT_ROOM_PREFIX", "sihha").strip() or "sihha"
    LIVEKIT_TOKEN_TTL_SECONDS: int = int(os.getenv("LIVEKIT_TOKEN_TTL_SECONDS", "900"))

    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_TRIAGE_MODEL: str = os.getenv("OPENAI_TRIAGE_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
    TRIAGE_ENABLE_MODERATION: bool = os.getenv("TRIAGE_ENABLE_MODERATION", "true").lower() in ("1", "true", "yes", "on")

    ADMIN_PHONE_NUMBER: str = os.getenv("ADMIN_PHONE_NUMBER", "+23500000000")
    ADMIN_DEFAULT_PASSWORD: str = os.getenv("ADMIN_DEFAULT_PASSWORD", "0412")
    ADMIN_DEFAULT_NAME: str = os.getenv("ADMIN_DEFAULT_NAME", "General Admin")

    CORS_ORIGINS: list = ["*"]

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    def is_livekit_configured(self) -> bool:
        return bool(self.LIVEKIT_URL and self.LIVEKIT_API_KEY and self.LIVEKIT_API_SECRET)

    def livekit_token_ttl_seconds(self) -> int:
        return max(60, int(self.LIVEKIT_TOKEN_TTL_SECONDS))

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()


def get_openai_client() -> Optional[AsyncOpenAI]:
    """
    Get configured OpenAI client instance.
    Returns None when no API key is set so triage can report itself as unavailable.
    """
    if not settings.OPENAI_API_KEY:
        return None

    return AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
