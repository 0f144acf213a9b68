"""Configuration for the approval engine and its REST adapter.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApprovalSettings(BaseSettings):
    """Settings for the engine, persistence and REST API.

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `ApprovalSettings(_env_file=path_to_env)`.
    """

    database_url: str = Field(
        default="sqlite:///approval.db",
        validation_alias="APPROVAL_DATABASE_URL",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = Field(
        default=False,
        validation_alias="APPROVAL_DATABASE_ECHO",
        description="Log every SQL statement (very noisy)",
    )
    sqlite_busy_timeout_seconds: float = Field(
        default=30.0,
        validation_alias="APPROVAL_SQLITE_BUSY_TIMEOUT_SECONDS",
        description="How long a SQLite writer waits for the database lock.",
        gt=0,
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    history_limit: int = Field(
        default=10,
        validation_alias="APPROVAL_HISTORY_LIMIT",
        description="History entries returned with the workflow after a mutation.",
        ge=1,
        le=500,
    )
    history_detail_limit: int = Field(
        default=50,
        validation_alias="APPROVAL_HISTORY_DETAIL_LIMIT",
        description="History entries returned when reading a workflow.",
        ge=1,
        le=500,
    )

    signature_max_bytes: int = Field(
        default=2_000_000,
        validation_alias="APPROVAL_SIGNATURE_MAX_BYTES",
        description="Upper bound on the size of a signature payload.",
        ge=1,
    )

    default_step_name: str = Field(
        default="Approbation",
        validation_alias="APPROVAL_DEFAULT_STEP_NAME",
        description="Name of the step synthesised for simple workflows without explicit steps.",
    )

    # Dev-friendly CORS. Override via APPROVAL_CORS_ORIGINS=...
    cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        validation_alias="APPROVAL_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")
