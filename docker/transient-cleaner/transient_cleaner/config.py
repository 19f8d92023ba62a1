from __future__ import annotations

import os
import secrets
from dataclasses import dataclass

from .engine import DEFAULT_BATCH_SIZE
from .passes import DEFAULT_DOMAIN_PATTERN


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class CleanerConfig:
    log_level: str = "INFO"
    db_path: str = "/data/transient_cleaner.db"
    api_port: int = 9110
    admin_key: str = ""
    secret_key: str = ""
    nonce_max_age_seconds: int = 86400
    tick_interval_hours: int = 24
    batch_size: int = DEFAULT_BATCH_SIZE
    domain_pattern: str = DEFAULT_DOMAIN_PATTERN
    required_table: str = ""
    manual_respects_interval: bool = False
    datetime_format: str = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def from_env(cls) -> "CleanerConfig":
        return cls(
            log_level=str(os.getenv("TC_LOG_LEVEL", "INFO")).upper(),
            db_path=str(os.getenv("TC_DB_PATH", "/data/transient_cleaner.db")),
            api_port=int(str(os.getenv("TC_API_PORT", "9110"))),
            admin_key=str(os.getenv("TC_ADMIN_KEY", "")),
            secret_key=str(os.getenv("TC_SECRET_KEY") or secrets.token_hex(32)),
            nonce_max_age_seconds=int(str(os.getenv("TC_NONCE_MAX_AGE_SECONDS", "86400"))),
            tick_interval_hours=max(int(str(os.getenv("TC_TICK_INTERVAL_HOURS", "24"))), 1),
            batch_size=max(int(str(os.getenv("TC_BATCH_SIZE", str(DEFAULT_BATCH_SIZE)))), 1),
            domain_pattern=str(os.getenv("TC_DOMAIN_PATTERN") or DEFAULT_DOMAIN_PATTERN),
            required_table=str(os.getenv("TC_REQUIRED_TABLE", "")).strip(),
            manual_respects_interval=_env_bool("TC_MANUAL_RESPECTS_INTERVAL"),
            datetime_format=str(os.getenv("TC_DATETIME_FORMAT") or "%Y-%m-%d %H:%M:%S"),
        )
