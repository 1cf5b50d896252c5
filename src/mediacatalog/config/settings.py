"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./mediacatalog.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600
    pool_pre_ping: bool = True

    @property
    def is_sqlite(self) -> bool:
        """Check whether the configured backend is SQLite."""
        return "sqlite" in self.url


# Hey future me - schema_version is stamped into EVERY media_file row on write! Bump it when a
# scan needs to tell "written by old code" rows apart (e.g. a tag parser fix). It is NOT an
# optimistic-lock counter. It lives here (not as a module constant) so two catalogs in one
# process (tests!) can run with different versions.
class CatalogSettings(BaseModel):
    """Catalog write settings."""

    schema_version: int = Field(default=4, ge=1)


# Listen up, present_chunk_size caps the size of the IN (...) list used when marking paths
# present. 30k paths per statement keeps us under parameter limits on every backend we support.
# max_concurrent_chunks is ignored for SQLite (single writer) - see PresenceReconciler.
class ScanSettings(BaseModel):
    """Library scan reconciliation settings."""

    present_chunk_size: int = Field(default=30000, ge=1)
    max_concurrent_chunks: int = Field(default=4, ge=1)
    commit_every: int = Field(default=200, ge=1)


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_json_format: bool = False


class Settings(BaseSettings):
    """Top-level settings.

    Nested groups are populated from env vars with a double underscore, e.g.
    ``MEDIACATALOG_DATABASE__URL`` or ``MEDIACATALOG_SCAN__PRESENT_CHUNK_SIZE``.
    """

    model_config = SettingsConfigDict(
        env_prefix="MEDIACATALOG_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "mediacatalog"
    log_level: str = "INFO"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
