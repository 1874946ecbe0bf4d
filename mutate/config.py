"""Runtime settings read from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

LOCAL_ENVIRONMENTS = {"development", "local", "test"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class Settings:
    environment: str = "development"
    storage_type: str = "local"
    storage_root: Path = Path("storage")
    storage_public_url: str | None = None
    file_ttl: int = 24 * 60 * 60
    job_timeout: float = 300.0
    webhook_max_retries: int = 5
    webhook_timeout: float = 30.0
    webhook_initial_delay: float = 1.0
    webhook_secret: str | None = None
    queue_backoff_delay: float = 5.0
    config_dir: Path | None = None

    @property
    def is_local(self) -> bool:
        return self.environment.lower() in LOCAL_ENVIRONMENTS

    @property
    def archive_inputs(self) -> bool:
        return self.storage_type.lower() != "local"


def load_settings() -> Settings:
    storage_root = os.getenv("STORAGE_ROOT")
    config_dir = os.getenv("CONFIG_DIR")
    return Settings(
        environment=os.getenv("MUTATE_ENV") or "development",
        storage_type=os.getenv("STORAGE_TYPE") or "local",
        storage_root=Path(storage_root).expanduser() if storage_root else Path.cwd() / "storage",
        storage_public_url=os.getenv("STORAGE_PUBLIC_URL") or None,
        file_ttl=_env_int("FILE_TTL", 24 * 60 * 60),
        job_timeout=_env_float("JOB_TIMEOUT", 300.0),
        webhook_max_retries=_env_int("WEBHOOK_MAX_RETRIES", 5),
        webhook_timeout=_env_float("WEBHOOK_TIMEOUT", 30.0),
        webhook_initial_delay=_env_float("WEBHOOK_INITIAL_DELAY", 1.0),
        webhook_secret=os.getenv("WEBHOOK_SECRET") or None,
        queue_backoff_delay=_env_float("QUEUE_BACKOFF_DELAY", 5.0),
        config_dir=Path(config_dir).expanduser() if config_dir else None,
    )


__all__ = ["Settings", "load_settings", "LOCAL_ENVIRONMENTS"]
