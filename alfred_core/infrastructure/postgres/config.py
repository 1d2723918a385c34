#alfred_core\infrastructure\postgres\config.py

from functools import lru_cache
from typing import Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Where the user/VM records, subdomain assignments and health counters live."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Full DSN; when set the postgres_* parts are ignored
    database_dsn: Optional[str] = None

    postgres_user: str = "alfred"
    postgres_password: str = ""
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "alfred_core"
    postgres_sslmode: Optional[str] = None

    # Connection pool
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800

    echo_sql: bool = False

    @property
    def database_url(self) -> str:
        if self.database_dsn:
            return self.database_dsn

        credentials = quote_plus(self.postgres_user)
        if self.postgres_password:
            credentials = f"{credentials}:{quote_plus(self.postgres_password)}"

        url = f"postgresql://{credentials}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        if self.postgres_sslmode:
            url = f"{url}?sslmode={self.postgres_sslmode}"
        return url


@lru_cache()
def get_database_settings() -> DatabaseSettings:
    return DatabaseSettings()
