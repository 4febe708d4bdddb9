from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import pandas as pd
import structlog

from .utils import now_ms
from .window.aggregate import WindowAggregate

logger = structlog.get_logger()

_AGGREGATE_COLUMNS = "state, window_start, window_end, total_value, day_count, average_value, last_updated"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS window_aggregates (
    signal TEXT NOT NULL,
    state TEXT NOT NULL,
    window_start INTEGER NOT NULL,
    window_end INTEGER NOT NULL,
    total_value REAL NOT NULL,
    day_count INTEGER NOT NULL,
    average_value REAL NOT NULL,
    last_updated INTEGER NOT NULL,
    PRIMARY KEY (signal, state)
);
CREATE TABLE IF NOT EXISTS observations (
    signal TEXT NOT NULL,
    state TEXT NOT NULL,
    timestamp_ms INTEGER NOT NULL,
    value REAL NOT NULL,
    PRIMARY KEY (signal, state, timestamp_ms)
);
"""


@contextmanager
def _connect(sqlite_path: Path) -> Iterator[sqlite3.Connection]:
    sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(sqlite_path))
    conn.row_factory = sqlite3.Row
    try:
        conn.executescript(_SCHEMA)
        yield conn
        conn.commit()
    finally:
        conn.close()


class SQLiteWindowStore:
    """One ``window_aggregates`` row per (signal, state)."""

    def __init__(self, sqlite_path: Path, signal: str) -> None:
        self.sqlite_path = Path(sqlite_path)
        self.signal = signal

    def get_aggregate(self, state: str) -> Optional[WindowAggregate]:
        with _connect(self.sqlite_path) as conn:
            row = conn.execute(
                f"SELECT {_AGGREGATE_COLUMNS} FROM window_aggregates WHERE signal = ? AND state = ?",
                (self.signal, state),
            ).fetchone()
        return WindowAggregate.from_row(dict(row)) if row else None

    def save_aggregate(self, aggregate: WindowAggregate) -> None:
        row = aggregate.to_row()
        try:
            with _connect(self.sqlite_path) as conn:
                conn.execute(
                    f"INSERT INTO window_aggregates (signal, {_AGGREGATE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (self.signal, row["state"], row["window_start"], row["window_end"], row["total_value"],
                     row["day_count"], row["average_value"], row["last_updated"]),
                )
        except sqlite3.IntegrityError:
            logger.info("window_aggregate_exists", signal=self.signal, state=aggregate.state,
                        window_start=aggregate.window_start)

    def update_aggregate(
        self,
        state: str,
        new_value: float,
        new_timestamp_ms: int,
        old_timestamp_ms: Optional[int] = None,
        old_value: Optional[float] = None,
        updated_at: Optional[int] = None,
    ) -> None:
        stamp = updated_at if updated_at is not None else now_ms()
        current = self.get_aggregate(state)
        if current is None:
            self.save_aggregate(WindowAggregate.first(state, new_value, new_timestamp_ms, stamp))
            return
        updated = current.advance(new_value, new_timestamp_ms, stamp, old_timestamp_ms, old_value)
        with _connect(self.sqlite_path) as conn:
            conn.execute(
                """
                UPDATE window_aggregates
                SET window_start = ?, window_end = ?, total_value = ?, day_count = ?,
                    average_value = ?, last_updated = ?
                WHERE signal = ? AND state = ?
                """,
                (updated.window_start, updated.window_end, updated.total_value, updated.day_count,
                 updated.average_value, updated.last_updated, self.signal, state),
            )


class SQLiteObservationStore:
    """Daily raw values; serves as the historical lookup for window eviction."""

    def __init__(self, sqlite_path: Path, signal: str) -> None:
        self.sqlite_path = Path(sqlite_path)
        self.signal = signal

    def record(self, state: str, timestamp_ms: int, value: float) -> None:
        with _connect(self.sqlite_path) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO observations (signal, state, timestamp_ms, value) VALUES (?, ?, ?, ?)",
                (self.signal, state, int(timestamp_ms), float(value)),
            )

    def exists(self, state: str, timestamp_ms: int) -> bool:
        return self.get_old_day_value(state, timestamp_ms) is not None

    def get_old_day_value(self, state: str, timestamp_ms: int) -> Optional[float]:
        with _connect(self.sqlite_path) as conn:
            row = conn.execute(
                "SELECT value FROM observations WHERE signal = ? AND state = ? AND timestamp_ms = ?",
                (self.signal, state, int(timestamp_ms)),
            ).fetchone()
        return float(row["value"]) if row else None


def load_aggregates(sqlite_path: Path, signal: str) -> pd.DataFrame:
    """All window rows of one signal, sorted by state."""
    with _connect(Path(sqlite_path)) as conn:
        conn.row_factory = None
        return pd.read_sql_query(
            f"SELECT {_AGGREGATE_COLUMNS} FROM window_aggregates WHERE signal = ? ORDER BY state",
            conn,
            params=(signal,),
        )
