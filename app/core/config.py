"""
Inkhouse Backend - Configuration
Standalone settings for the public API: database, session tokens,
API key issuance and rate limiting.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Application ──────────────────────────────────────────────────────
    APP_NAME: str = "Inkhouse"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000"

    # ── Database ─────────────────────────────────────────────────────────
    DATABASE_URL: str = "postgresql+asyncpg://inkhouse:changeme@db:5432/inkhouse"

    # ── Auth / JWT ───────────────────────────────────────────────────────
    SECRET_KEY: str = "change-me-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    # ── API Keys ─────────────────────────────────────────────────────────
    API_KEY_PREFIX: str = "ink_"
    API_KEY_MAX_ACTIVE: int = 5
    API_KEY_NAME_MAX_LENGTH: int = 100

    # ── Rate Limits ──────────────────────────────────────────────────────
    API_RATE_LIMIT: int = 1000  # requests per key per window
    API_RATE_LIMIT_WINDOW_SECONDS: int = 3600
    LOGIN_RATE_LIMIT: int = 100  # attempts per IP per window
    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int = 900

    @property
    def cors_origin_list(self) -> list:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
