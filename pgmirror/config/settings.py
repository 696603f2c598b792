"""Application settings and configuration"""

from functools import lru_cache
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from ..exceptions import ConfigurationError
from .tables import TableRegistry, default_registry


class Settings(BaseSettings):
    """Application settings loaded from environment and config file"""

    postgres_host: str = Field("localhost", env="POSTGRES_HOST")
    postgres_port: int = Field(5432, env="POSTGRES_PORT")
    postgres_user: str = Field("postgres", env="POSTGRES_USER")
    postgres_password: str = Field("", env="POSTGRES_PASSWORD")
    postgres_db: str = Field("aimolt", env="POSTGRES_DB")
    postgres_connect_timeout: int = Field(10, env="POSTGRES_CONNECT_TIMEOUT")  # seconds

    supabase_url: Optional[str] = Field(None, env="SUPABASE_URL")
    supabase_key: Optional[str] = Field(None, env="SUPABASE_KEY")

    sync_max_attempts: int = Field(3, env="SYNC_MAX_ATTEMPTS")
    sync_base_delay: float = Field(1.0, env="SYNC_BASE_DELAY")  # seconds
    sync_max_delay: float = Field(10.0, env="SYNC_MAX_DELAY")
    sync_workers: int = Field(4, env="SYNC_WORKERS")
    sync_serialize_per_key: bool = Field(False, env="SYNC_SERIALIZE_PER_KEY")
    sync_autostart: bool = Field(False, env="SYNC_AUTOSTART")
    sync_initial_sync: bool = Field(False, env="SYNC_INITIAL_SYNC")

    bulk_batch_size: int = Field(50, env="BULK_BATCH_SIZE")
    bulk_default_limit: int = Field(100, env="BULK_DEFAULT_LIMIT")

    listen_poll_timeout: float = Field(1.0, env="LISTEN_POLL_TIMEOUT")
    listen_reconnect: bool = Field(True, env="LISTEN_RECONNECT")
    listen_reconnect_max_delay: float = Field(30.0, env="LISTEN_RECONNECT_MAX_DELAY")

    pool_min_connections: int = Field(1, env="POOL_MIN_CONNECTIONS")
    pool_max_connections: int = Field(10, env="POOL_MAX_CONNECTIONS")

    tables_config_path: Optional[str] = Field(None, env="TABLES_CONFIG_PATH")

    api_host: str = Field("0.0.0.0", env="API_HOST")
    api_port: int = Field(8000, env="API_PORT")
    api_reload: bool = Field(False, env="API_RELOAD")

    log_level: str = Field("INFO", env="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env

    @property
    def postgres_connection_params(self) -> Dict[str, Any]:
        """Keyword arguments for psycopg2.connect"""
        return {
            'host': self.postgres_host,
            'port': self.postgres_port,
            'user': self.postgres_user,
            'password': self.postgres_password,
            'dbname': self.postgres_db,
            'connect_timeout': self.postgres_connect_timeout
        }

    def require_supabase_credentials(self) -> None:
        """
        Fail fast when the mirror cannot be reached

        Raises:
            ConfigurationError: SUPABASE_URL or SUPABASE_KEY is missing
        """
        missing = [
            name for name, value in (
                ("SUPABASE_URL", self.supabase_url),
                ("SUPABASE_KEY", self.supabase_key)
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing {' and '.join(missing)} environment variable"
                f"{'s' if len(missing) > 1 else ''}"
            )

    def load_table_registry(self) -> TableRegistry:
        """Registry from TABLES_CONFIG_PATH, or the built-in tables"""
        if self.tables_config_path:
            return TableRegistry.from_yaml(self.tables_config_path)
        return default_registry()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
