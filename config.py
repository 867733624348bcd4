"""Configuration management using Pydantic settings"""

from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings


DEFAULT_EXPIRE_JOB_CRON = "5 2 * * *"


class Settings(BaseSettings):
    """Application settings"""

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Admin operator (single account)
    ADMIN_USERNAME: str
    ADMIN_PASSWORD: str
    AUTH_SECRET: str
    SESSION_TTL_HOURS: int = 24

    # Emby server
    EMBY_BASE_URL: str
    EMBY_API_KEY: str
    EMBY_WEBHOOK_SECRET: str
    EMBY_TIMEOUT_SECONDS: float = 15.0

    # Storage
    DATABASE_URL: str = "sqlite:///./embyvault.db"

    # Membership expiration job
    SCHEDULER_ENABLED: bool = True
    DEFAULT_EXPIRE_JOB_CRON: str = DEFAULT_EXPIRE_JOB_CRON

    # Timezone used when rendering times inside notification emails
    DISPLAY_TIMEZONE: str = "Asia/Shanghai"

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("EMBY_BASE_URL")
    @classmethod
    def _strip_trailing_slashes(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
