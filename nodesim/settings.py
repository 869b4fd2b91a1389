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


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("NODESIM_DB_PATH", "nodesim.db")
    poll_interval_s: int = _env_int("NODESIM_POLL_INTERVAL_S", 30)
    run_controller: bool = _env_bool("NODESIM_RUN_CONTROLLER", True)
    # Only this namespace is resynced when set; cluster-wide otherwise.
    watch_namespace: str | None = os.getenv("NODESIM_WATCH_NAMESPACE")

    # Sync fan-out and retry
    sync_workers: int = _env_int("NODESIM_SYNC_WORKERS", 5)
    max_retries: int = _env_int("NODESIM_MAX_RETRIES", 2)
    retry_backoff_s: int = _env_int("NODESIM_RETRY_BACKOFF_S", 2)

    # Keep the finalizer when a managed node could not be removed during
    # termination. Off by default: termination is never blocked.
    block_finalizer_on_cleanup_failure: bool = _env_bool("NODESIM_BLOCK_FINALIZER_ON_CLEANUP_FAILURE", False)

    # Cluster access
    in_cluster: bool = _env_bool("NODESIM_IN_CLUSTER", False)
    kubeconfig: str | None = os.getenv("NODESIM_KUBECONFIG")


settings = Settings()
