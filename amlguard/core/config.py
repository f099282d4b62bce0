from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "amlguard"
    log_level: str = "INFO"
    port: int = 4001
    # "production" disables the unauthenticated dev principal.
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("environment", "node_env"),
    )

    # Unset selects the in-memory fixture store for demos and tests.
    database_url: str | None = None
    # Bounded pool sizing for asyncpg connections.
    api_db_pool_size: int = 10
    api_db_max_overflow: int = 5
    api_db_statement_timeout_ms: int = 0

    # HS256 secret for bearer tokens issued by the login route.
    jwt_secret: str = "dev-secret"
    jwt_algorithm: str = "HS256"
    # Session lifetimes for the login flow.
    session_ttl_hours: int = 8
    session_remember_ttl_hours: int = 24
    # Poll interval for client-held session expiry checks.
    session_check_interval_s: int = 30

    # Audit queue bounds; overflow and exhausted retries are dropped and counted.
    audit_queue_max_size: int = 1000
    audit_max_attempts: int = 3
    audit_retry_backoff_ms: int = 200
    audit_write_timeout_ms: int = 5000
    # Audit-log listing defaults.
    audit_list_default_limit: int = 100
    audit_list_max_limit: int = 500

    # Institution list paging defaults.
    institutions_default_page_size: int = 10
    institutions_max_page_size: int = 200

    # Calendar look-back window for surveillance severity in risk scoring.
    risk_surveillance_window_months: int = 6
    # Number of recent risk profiles averaged into the score.
    risk_profile_sample_size: int = 3

    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
