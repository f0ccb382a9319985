from __future__ import annotations

import os

APP_VERSION = "0.1.0"


class Settings:
    PROJECT_NAME: str = "ItemTypeSet Console"
    API_V1_PREFIX: str = "/api/v1"

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Workflow/permission platform REST backend
    PLATFORM_API_URL: str = os.getenv("PLATFORM_API_URL", "http://localhost:8080/api")

    # Filter preferences store. SQLite unless POSTGRES_HOST is set.
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./itsadmin.sqlite")
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "")
    POSTGRES_PORT: str = os.getenv("POSTGRES_PORT", "5432")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "itsadmin")
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "itsadmin")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "itsadmin")

    ALLOWED_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
        if o.strip()
    ]

    # Idle editor sessions are dropped after this many seconds
    SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", "3600"))

    @property
    def database_url(self) -> str:
        if self.POSTGRES_HOST:
            return (
                f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
        return self.DATABASE_URL


settings = Settings()
