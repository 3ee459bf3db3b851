"""Sync engine configuration via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class SyncSettings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///crmsync.db"
    echo_sql: bool = False
    app_title: str = "CRM Sync Engine"
    log_level: str = "INFO"

    # Per-call deadline for SyncEngine.process; 0 disables the deadline.
    process_timeout_seconds: float = 10.0
    # How many times a caller that lost a same-key race re-attempts the event
    # when the winner did not complete.
    max_contention_retries: int = 3

    idempotency_header: str = "Idempotency-Key"

    model_config = {"env_prefix": "CRMSYNC_", "env_file": ".env", "extra": "ignore"}

    @property
    def process_timeout(self) -> float | None:
        if self.process_timeout_seconds <= 0:
            return None
        return self.process_timeout_seconds

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}


settings = SyncSettings()
