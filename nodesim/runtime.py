from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class PassSummary:
    simulator: str  # namespace/name
    phase: str  # gone|active|terminating|error
    created: int = 0
    patched: int = 0
    deleted: int = 0
    failed: int = 0
    skipped: int = 0
    aborted: bool = False
    requeue: bool = False
    attempts: int = 1
    retries: int = 0  # consecutive passes that ended asking for a requeue
    error: str | None = None
    finished_at: str = field(default_factory=utc_now)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class RuntimeState:
    """In-memory state shared by the controller loop and the HTTP API."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.last_pass: dict[str, PassSummary] = {}  # namespace/name -> summary
        self.retry_counts: dict[str, int] = {}  # namespace/name -> consecutive requeues

    def record_pass(self, summary: PassSummary) -> None:
        with self.lock:
            if summary.phase == "gone":
                self.last_pass.pop(summary.simulator, None)
                self.retry_counts.pop(summary.simulator, None)
                return
            self.last_pass[summary.simulator] = summary

    def get_pass(self, key: str) -> PassSummary | None:
        with self.lock:
            return self.last_pass.get(key)

    def list_passes(self) -> list[PassSummary]:
        with self.lock:
            return [self.last_pass[k] for k in sorted(self.last_pass)]

    def bump_retry(self, key: str) -> int:
        with self.lock:
            self.retry_counts[key] = self.retry_counts.get(key, 0) + 1
            return self.retry_counts[key]

    def reset_retry(self, key: str) -> None:
        with self.lock:
            self.retry_counts.pop(key, None)

    def retry_count(self, key: str) -> int:
        with self.lock:
            return self.retry_counts.get(key, 0)
