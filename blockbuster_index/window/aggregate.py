from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from ..utils import MS_PER_DAY


@dataclass(frozen=True)
class DailyObservation:
    state: str
    timestamp: int  # epoch seconds, start of day UTC
    value: int

    @property
    def timestamp_ms(self) -> int:
        return self.timestamp * 1000


@dataclass(frozen=True)
class WindowAggregate:
    """Running sum/count of one state's daily values inside the window.

    No per-day values are kept here; evicting a day needs the value from the
    observation history.
    """

    state: str
    window_start: int
    window_end: int
    total_value: float
    day_count: int
    average_value: float
    last_updated: int

    @classmethod
    def first(cls, state: str, value: float, timestamp_ms: int, updated_at: int) -> "WindowAggregate":
        return cls(
            state=state,
            window_start=timestamp_ms,
            window_end=timestamp_ms,
            total_value=value,
            day_count=1,
            average_value=float(value),
            last_updated=updated_at,
        )

    def advance(
        self,
        new_value: float,
        new_timestamp_ms: int,
        updated_at: int,
        old_timestamp_ms: Optional[int] = None,
        old_value: Optional[float] = None,
    ) -> "WindowAggregate":
        """Add one day and, when both ``old_*`` are given, retire the oldest one."""
        total = self.total_value + new_value
        count = self.day_count + 1
        start = self.window_start
        if old_timestamp_ms is not None and old_value is not None:
            total -= old_value
            count -= 1
            start = old_timestamp_ms + MS_PER_DAY
        count = max(1, count)
        return replace(
            self,
            window_start=start,
            window_end=new_timestamp_ms,
            total_value=total,
            day_count=count,
            average_value=total / count,
            last_updated=updated_at,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "window_start": self.window_start,
            "window_end": self.window_end,
            "total_value": self.total_value,
            "day_count": self.day_count,
            "average_value": self.average_value,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WindowAggregate":
        return cls(
            state=str(row["state"]),
            window_start=int(row["window_start"]),
            window_end=int(row["window_end"]),
            total_value=float(row["total_value"]),
            day_count=int(row["day_count"]),
            average_value=float(row["average_value"]),
            last_updated=int(row["last_updated"]),
        )
