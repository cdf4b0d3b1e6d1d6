"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - get_settings() is cached (lru_cache) — single instance per process
    - handler_timeout_seconds >= 0; 0 disables the handler deadline
    - audit_ledger_max_entries >= 1

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support (ADR: developer UX)
    - Defaults provided for everything: an operations-map.json in the working
      directory is enough to start
    - database_url optional: finished audit records persisted only when set
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from opgate.core.domain_types import DEFAULT_HEALTH_PATH


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Operations
    operations_map_path: str = "operations-map.json"
    operations_module: str | None = None  # dotted path exposing register_operations(gateway)
    health_path: str = DEFAULT_HEALTH_PATH
    handler_timeout_seconds: float = Field(30.0, ge=0)
    strict_length_bounds: bool = False

    # Audit
    audit_ledger_max_entries: int = Field(10_000, ge=1)
    audit_log_path: str | None = None

    # Database (optional audit persistence)
    database_url: str | None = None

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str | None) -> str | None:
        """Hosting platforms provide postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v or None

    @field_validator("health_path")
    @classmethod
    def leading_slash(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # API
    cors_origins: list[str] = ["*"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"
    debug_mode: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
