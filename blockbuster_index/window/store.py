from __future__ import annotations

from typing import Dict, Optional, Protocol, Tuple

import structlog

from ..utils import now_ms
from .aggregate import WindowAggregate

logger = structlog.get_logger()


class WindowStore(Protocol):
    def get_aggregate(self, state: str) -> Optional[WindowAggregate]:
        ...

    def save_aggregate(self, aggregate: WindowAggregate) -> None:
        ...

    def update_aggregate(
        self,
        state: str,
        new_value: float,
        new_timestamp_ms: int,
        old_timestamp_ms: Optional[int] = None,
        old_value: Optional[float] = None,
        updated_at: Optional[int] = None,
    ) -> None:
        ...


class HistoricalValueLookup(Protocol):
    def get_old_day_value(self, state: str, timestamp_ms: int) -> Optional[float]:
        ...


class InMemoryWindowStore:
    """Dict-backed :class:`WindowStore` for tests and dry runs."""

    def __init__(self) -> None:
        self.rows: Dict[str, WindowAggregate] = {}

    def get_aggregate(self, state: str) -> Optional[WindowAggregate]:
        return self.rows.get(state)

    def save_aggregate(self, aggregate: WindowAggregate) -> None:
        if aggregate.state in self.rows:
            logger.info("window_aggregate_exists", state=aggregate.state, window_start=aggregate.window_start)
            return
        self.rows[aggregate.state] = aggregate

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
        current = self.rows.get(state)
        if current is None:
            self.rows[state] = WindowAggregate.first(state, new_value, new_timestamp_ms, stamp)
            return
        self.rows[state] = current.advance(new_value, new_timestamp_ms, stamp, old_timestamp_ms, old_value)


class InMemoryObservationStore:
    """Daily values keyed by (state, timestamp_ms); doubles as the eviction lookup."""

    def __init__(self) -> None:
        self.values: Dict[Tuple[str, int], float] = {}

    def record(self, state: str, timestamp_ms: int, value: float) -> None:
        self.values.setdefault((state, timestamp_ms), value)

    def get_old_day_value(self, state: str, timestamp_ms: int) -> Optional[float]:
        return self.values.get((state, timestamp_ms))
