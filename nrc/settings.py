from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("NRC_DB_PATH", "nrc.db")
    controller_name: str = os.getenv("NRC_CONTROLLER_NAME", "newresource")
    resource_kind: str = os.getenv("NRC_RESOURCE_KIND", "NewResource")
    metrics_prefix: str = os.getenv("NRC_METRICS_PREFIX", "newresource")

    # Dispatch
    workers: int = _env_int("NRC_WORKERS", 2)
    poll_interval_s: float = _env_float("NRC_POLL_INTERVAL_S", 2.0)
    # Every resync period all known resources are enqueued again, changed or not.
    resync_period_s: float = _env_float("NRC_RESYNC_PERIOD_S", 300.0)
    store_timeout_s: float = _env_float("NRC_STORE_TIMEOUT_S", 5.0)

    # Requeue backoff after a failed reconcile: base * 2^failures, capped.
    backoff_base_s: float = _env_float("NRC_BACKOFF_BASE_S", 0.005)
    backoff_max_s: float = _env_float("NRC_BACKOFF_MAX_S", 1000.0)

    # Start the controller threads together with the API.
    run_controller: bool = _env_bool("NRC_RUN_CONTROLLER", True)


settings = Settings()
