from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from bidportal.authz.policy import DEFAULT_POLICY_PATH


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic (SQLite file, packaged policy).
    - Override via env vars, e.g. `BIDPORTAL_DB_URL`, `BIDPORTAL_POLICY_PATH`,
      `BIDPORTAL_AUDIT_LOG_LEVEL`.
    """

    model_config = SettingsConfigDict(env_prefix="BIDPORTAL_", extra="ignore")

    db_url: str | None = None
    policy_path: str | None = None
    log_level: str = "INFO"
    # Defaults to log_level.
    audit_log_level: str | None = None
    seed_demo_data: bool = True

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "bidportal.db"
        return f"sqlite:///{db_path}"

    def resolved_policy_path(self) -> Path:
        if self.policy_path:
            return Path(self.policy_path)
        return DEFAULT_POLICY_PATH


@lru_cache
def get_settings() -> Settings:
    return Settings()
