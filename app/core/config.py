"""
Application configuration — loaded from environment / .env file.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # ── App ──
    app_name: str = "risk-audit-portal"
    app_env: str = "development"
    log_level: str = "INFO"

    # ── Audit backend (everything business-critical lives there) ──
    backend_url: str = "http://localhost:8080"
    backend_timeout_seconds: float = 10.0

    # ── Task cache ──
    task_cache_backend: str = "memory"  # memory | redis
    task_cache_storage_key: str = "auditTaskCache"
    redis_url: str = "redis://localhost:6380/0"
    revalidate_cache_on_idle: bool = False  # needs an auditor id to take effect

    # ── New-task polling ──
    poll_interval_seconds: float = 30.0
    notification_ttl_seconds: float = 5.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
