from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .settings import settings


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    When the configured path is bind-mounted into a container and the file
    does not exist yet, Docker creates a *directory* there instead. In that
    case the DB file is placed inside the directory.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "nodesim.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              kind TEXT NOT NULL,
              simulator TEXT,
              node TEXT,
              message TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS reports (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              simulator TEXT NOT NULL,
              phase TEXT NOT NULL, -- gone|active|terminating|error
              created INTEGER NOT NULL DEFAULT 0,
              patched INTEGER NOT NULL DEFAULT 0,
              deleted INTEGER NOT NULL DEFAULT 0,
              failed INTEGER NOT NULL DEFAULT 0,
              skipped INTEGER NOT NULL DEFAULT 0,
              aborted INTEGER NOT NULL DEFAULT 0,
              requeue INTEGER NOT NULL DEFAULT 0,
              error TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_events_simulator ON events(simulator);
            CREATE INDEX IF NOT EXISTS idx_reports_simulator ON reports(simulator);
            """
        )


def log_event(
    level: str,
    message: str,
    kind: str = "info",
    simulator: str | None = None,
    node: str | None = None,
) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, kind, simulator, node, message) VALUES (?, ?, ?, ?, ?, ?)",
            (utc_now(), level.upper(), kind, simulator, node, message),
        )


def record_report(summary: dict[str, Any]) -> None:
    """Persist one pass summary (see ``PassSummary.as_dict``)."""
    with connect() as conn:
        conn.execute(
            """
            INSERT INTO reports (ts, simulator, phase, created, patched, deleted, failed, skipped, aborted, requeue, error)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                summary.get("finished_at") or utc_now(),
                summary["simulator"],
                summary["phase"],
                summary.get("created", 0),
                summary.get("patched", 0),
                summary.get("deleted", 0),
                summary.get("failed", 0),
                summary.get("skipped", 0),
                int(bool(summary.get("aborted"))),
                int(bool(summary.get("requeue"))),
                summary.get("error"),
            ),
        )


def latest_events(limit: int = 100, simulator: str | None = None) -> list[dict[str, Any]]:
    with connect() as conn:
        if simulator:
            rows = conn.execute(
                "SELECT * FROM events WHERE simulator=? ORDER BY id DESC LIMIT ?",
                (simulator, limit),
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]


def latest_reports(limit: int = 100) -> list[dict[str, Any]]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM reports ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        out = []
        for r in rows:
            row = dict(r)
            row["aborted"] = bool(row["aborted"])
            row["requeue"] = bool(row["requeue"])
            out.append(row)
        return out
