"""Environment-driven service configuration and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


DATA_ROOT_ENV = "DATA_ROOT"
LEDGER_BACKEND_ENV = "LEDGER_BACKEND"
CORS_ORIGINS_ENV = "API_CORS_ORIGINS"
LOG_LEVEL_ENV = "LOG_LEVEL"
PUT_CAMPAIGN_ENV = "PUT_CAMPAIGN_STRATEGY"
RECONCILE_WORKERS_ENV = "RECONCILE_WORKERS"

LEDGER_BACKENDS = ("parquet", "memory")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    data_root: Path
    ledger_backend: str = "parquet"
    cors_origins: str = "*"
    log_level: str = "INFO"
    put_campaign_strategy: str = "Put Camp"
    reconcile_workers: int = 8


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return max(1, int(raw))
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-integer %s=%r", name, raw)
        return default


def load_settings() -> Settings:
    """Read settings from the environment, falling back to local defaults."""

    backend = os.getenv(LEDGER_BACKEND_ENV, "parquet").strip().lower()
    if backend not in LEDGER_BACKENDS:
        logging.getLogger(__name__).warning("Unknown ledger backend %r; using parquet", backend)
        backend = "parquet"

    return Settings(
        data_root=Path(os.getenv(DATA_ROOT_ENV, "./data")).resolve(),
        ledger_backend=backend,
        cors_origins=os.getenv(CORS_ORIGINS_ENV, "*"),
        log_level=os.getenv(LOG_LEVEL_ENV, "INFO").upper(),
        put_campaign_strategy=os.getenv(PUT_CAMPAIGN_ENV, "Put Camp"),
        reconcile_workers=_int_env(RECONCILE_WORKERS_ENV, 8),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def configure_logging(level: str | int = "INFO") -> None:
    """Install the root handler once; later calls only adjust the level."""

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    root.setLevel(level)


__all__ = ["Settings", "configure_logging", "get_settings", "load_settings"]
