from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the repo).
    - Everything can be overridden with ``WSA_*`` environment variables.
    - ``token_secret`` keys the session-token hash; set a real one in production.
    """

    model_config = SettingsConfigDict(env_prefix="WSA_", extra="ignore")

    db_url: str | None = None
    policy_path: str | None = None
    log_level: str = "INFO"
    token_secret: str = "dev-only-token-secret-change-me-0000"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "workspace_access.db"
        return f"sqlite:///{db_path}"

    def resolved_policy_path(self) -> Path:
        if self.policy_path:
            return Path(self.policy_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "access_policy.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
