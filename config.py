import logging
import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        audit_delay_secs: float,
        audit_enabled: bool,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.audit_delay_secs = audit_delay_secs
        self.audit_enabled = audit_enabled
        self.log_level = log_level


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level)
    # basicConfig leaves the root level alone once handlers exist.
    logging.getLogger().setLevel(level)


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("NETWORTH_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "networth.db"
    database_url = os.getenv("NETWORTH_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("NETWORTH_TIMEZONE", "America/Toronto")
    audit_delay_secs = float(os.getenv("NETWORTH_AUDIT_DELAY_SECS", "1"))
    audit_enabled = os.getenv("NETWORTH_AUDIT_ENABLED", "1") not in {"0", "false", "no"}
    log_level = os.getenv("NETWORTH_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        audit_delay_secs=audit_delay_secs,
        audit_enabled=audit_enabled,
        log_level=log_level,
    )
