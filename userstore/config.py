"""Typed configuration objects for relational database connectivity."""

from __future__ import annotations

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .retry import RetryPolicy

__all__ = [
    "DatabasePoolConfig",
    "DatabaseRuntimeConfig",
    "DatabaseSettings",
]


class DatabasePoolConfig(BaseModel):
    """Connection pool tuning knobs for the engine backing the provider."""

    size: PositiveInt = Field(
        5, description="Base amount of connections to keep open."
    )
    max_overflow: int = Field(
        5,
        ge=0,
        description=(
            "Maximum amount of transient connections allowed in addition to the base pool "
            "size when the demand temporarily exceeds capacity."
        ),
    )
    timeout: float | None = Field(
        5.0,
        ge=0.0,
        description="Seconds to wait when acquiring a pooled connection before failing. Use null for unlimited wait.",
    )
    recycle: PositiveFloat = Field(
        1_800.0,
        description="Seconds after which idle connections are recycled to avoid server-side disconnects.",
    )
    use_lifo: bool = Field(
        True,
        description="Prefer returning the most recently used connection to improve cache locality.",
    )


class DatabaseRuntimeConfig(BaseModel):
    """Session level runtime options applied to every connection."""

    application_name: str = Field(
        "userstore",
        min_length=1,
        description="Identifier visible in server monitoring views for tracking client activity.",
    )
    connect_timeout_seconds: PositiveFloat = Field(
        5.0,
        description="Timeout, in seconds, for establishing new database connections.",
    )


class DatabaseSettings(BaseSettings):
    """Complete database access configuration, loadable from ``USERSTORE_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="USERSTORE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    dsn: str = Field(
        ..., min_length=1, description="SQLAlchemy connection URL of the database holding the users table."
    )
    pool: DatabasePoolConfig = Field(default_factory=DatabasePoolConfig)
    runtime: DatabaseRuntimeConfig = Field(default_factory=DatabaseRuntimeConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    echo_statements: bool = Field(
        False,
        description="Enable SQLAlchemy statement logging. Should remain disabled in production for performance reasons.",
    )

    @field_validator("dsn")
    @classmethod
    def _validate_dsn(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError("dsn must be a URL such as 'sqlite:///users.db'")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.dsn.lower().startswith("sqlite")
