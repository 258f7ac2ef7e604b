from functools import lru_cache
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Todo API"

    # "auth" profile (users + owned tasks) or open profile (shared task table)
    auth_enabled: bool = True
    storage: Literal["memory", "sqlite"] = "memory"
    database_path: str = "todo.db"

    # JWT
    jwt_secret: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    token_ttl_seconds: int = 24 * 60 * 60

    bcrypt_rounds: int = 10

    cors_origins: List[str] = ["*"]

    log_level: str = "INFO"
    log_dir: Optional[str] = None

    host: str = "127.0.0.1"
    port: int = 3001

    model_config = SettingsConfigDict(
        env_prefix="TODO_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
