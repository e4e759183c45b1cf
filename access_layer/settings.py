from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the repo).
    - Every value can be overridden with an `ACCESS_*` environment variable.
    """

    model_config = SettingsConfigDict(env_prefix="ACCESS_", extra="ignore")

    db_url: str | None = None
    policy_config_path: str | None = None
    log_level: str = "INFO"

    default_page_size: int = 10
    max_page_size: int = 100

    audit_logging: bool = True
    # When false, `X-Tenant-Id` is only a fallback for identities without a workspace.
    trust_tenant_header: bool = False

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "access_layer.db"
        return f"sqlite:///{db_path}"

    def resolved_policy_config_path(self) -> Path:
        if self.policy_config_path:
            return Path(self.policy_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "policy_config.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
