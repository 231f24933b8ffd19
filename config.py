import logging
import os
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        identity_secret: str,
        identity_max_age_secs: int,
        dev_owner: Optional[str],
        scheduler_enabled: bool,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.identity_secret = identity_secret
        self.identity_max_age_secs = identity_max_age_secs
        self.dev_owner = dev_owner
        self.scheduler_enabled = scheduler_enabled
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def database_url_from_env() -> str:
    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "ledger.db"
        database_url = f"sqlite:///{default_db}"
    return database_url


def _identity_secret(dev_owner: Optional[str]) -> str:
    secret = os.getenv("FINANCE_IDENTITY_SECRET")
    if secret:
        return secret
    if not dev_owner:
        raise RuntimeError("FINANCE_IDENTITY_SECRET must be set")
    logger.warning("identity_secret_missing: signing tokens with a per-process random key")
    return secrets.token_urlsafe(32)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = database_url_from_env()
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    identity_max_age_secs = int(os.getenv("FINANCE_IDENTITY_MAX_AGE_SECS", "86400"))
    dev_owner = os.getenv("FINANCE_DEV_OWNER") or None
    identity_secret = _identity_secret(dev_owner)
    scheduler_enabled = _env_flag("FINANCE_SCHEDULER_ENABLED", True)
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        identity_secret=identity_secret,
        identity_max_age_secs=identity_max_age_secs,
        dev_owner=dev_owner,
        scheduler_enabled=scheduler_enabled,
        log_level=log_level,
    )
