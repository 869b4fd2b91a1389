from __future__ import annotations

from dataclasses import dataclass

from . import db

FINALIZER_ADD = "finalizer-add"
FINALIZER_REMOVE = "finalizer-remove"
CREATE = "create"
PATCH = "patch"
DELETE = "delete"
ABORT = "abort"
ERROR = "error"


@dataclass(frozen=True)
class Event:
    kind: str
    level: str  # INFO|WARN|ERROR
    message: str
    simulator: str | None = None
    node: str | None = None


class EventSink:
    """Receives events emitted at the reconciler's decision points.

    The base sink drops everything; reconciliation logic never depends on
    what a sink does with an event.
    """

    def emit(self, event: Event) -> None:
        return None


class DbEventSink(EventSink):
    """Persists events to the sqlite ``events`` table."""

    def emit(self, event: Event) -> None:
        db.log_event(
            event.level,
            event.message,
            kind=event.kind,
            simulator=event.simulator,
            node=event.node,
        )
