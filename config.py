import json
from typing import Any, List

from pydantic_settings import BaseSettings


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # Application
    APP_NAME: str = "Task Management API"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "taskmanagement"

    # Auth
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 120
    BCRYPT_ROUNDS: int = 12
    TOKEN_COOKIE_NAME: str = "token"
    COOKIE_SECURE: bool = False

    # CORS (stored as comma-separated string, parsed to list)
    CORS_ORIGINS_STR: str = "*"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # Team sizing
    TEAM_MIN_MEMBERS: int = 2
    TEAM_MAX_MEMBERS: int = 5

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
