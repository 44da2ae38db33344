from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./tasks.db"
    database_echo: bool = False

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    cache_enabled: bool = True
    redis_dsn: str | None = None  # L1 only when unset
    l1_maxsize: int = 2048
    l1_ttl_seconds: int = 60  # default L1 TTL
    l2_ttl_seconds: int = 300  # default Redis TTL
    cache_namespace: str = "taskstore:"
    redis_pool_size: int = 5


@lru_cache
def get_settings() -> Settings:
    return Settings()
