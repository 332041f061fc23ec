from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

DEV_JWT_SECRET = "dev_secret_replace_in_prod"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./tasks.sqlite"
    sql_echo: bool = False

    jwt_secret: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7

    cache_ttl_seconds: float = 30  # per-user list snapshot lifetime

    store_timeout_seconds: float = 5
    audit_timeout_seconds: float = 2
    audit_recent_limit: int = 50

    cors_origins: str = "*"
    log_level: str = "INFO"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
