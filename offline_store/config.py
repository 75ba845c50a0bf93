"""
Offline store configuration.

PostgresConfig is the serialized connection descriptor handed over by the
provider registry. OfflineStoreSettings carries the ambient knobs and is
read from the environment.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from offline_store.errors import InvalidConfigError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class OfflineStoreSettings(BaseSettings):
    """Environment settings for pooling, streaming and logging."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINE_STORE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    min_connections: int = Field(default=1, ge=1)
    max_connections: int = Field(default=10, ge=1)
    connect_timeout_seconds: int = Field(default=5, ge=1)

    # Rows fetched per round trip by server-side cursors
    iterator_batch_size: int = Field(default=1000, ge=1)

    log_level: str = Field(default="INFO")

    # Defaults for PostgresConfig.from_env()
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: str = Field(default="")
    postgres_db: str = "postgres"

    def get_pool_params(self) -> Dict[str, Any]:
        return {
            "minconn": self.min_connections,
            "maxconn": max(self.min_connections, self.max_connections),
            "connect_timeout": self.connect_timeout_seconds,
        }


class PostgresConfig(BaseModel):
    """
    Connection descriptor.
    Serialized with capitalised keys (Host, Port, ...) to match the
    documents already stored by the provider registry.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    host: str = Field(alias="Host", min_length=1)
    port: str = Field(alias="Port", min_length=1)
    username: str = Field(alias="Username", min_length=1)
    password: str = Field(default="", alias="Password")
    database: str = Field(alias="Database", min_length=1)

    @field_validator("port", mode="before")
    @classmethod
    def port_as_string(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @classmethod
    def deserialize(cls, config: bytes) -> "PostgresConfig":
        try:
            return cls.model_validate_json(config)
        except ValidationError as e:
            raise InvalidConfigError(f"invalid postgres config: {e.error_count()} error(s)") from e

    @classmethod
    def from_env(cls, settings: Optional[OfflineStoreSettings] = None) -> "PostgresConfig":
        settings = settings or OfflineStoreSettings()
        return cls(
            host=settings.postgres_host,
            port=str(settings.postgres_port),
            username=settings.postgres_user,
            password=settings.postgres_password,
            database=settings.postgres_db,
        )

    def serialize(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @property
    def dsn(self) -> str:
        return f"postgres://{self.username}:{self.password}@{self.host}:{self.port}/{self.database}"

    def get_postgres_params(self) -> Dict[str, Any]:
        """Helper for psycopg2 connection parameters."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.username,
            "password": self.password,
            "dbname": self.database,
        }

    def redacted(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "password": ("set" if self.password else None),
            "database": self.database,
        }


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
