from .aggregate import DailyObservation, WindowAggregate
from .service import DEFAULT_WINDOW_SIZE_DAYS, SlidingWindowService
from .store import (
    HistoricalValueLookup,
    InMemoryObservationStore,
    InMemoryWindowStore,
    WindowStore,
)

__all__ = [
    "DailyObservation",
    "WindowAggregate",
    "DEFAULT_WINDOW_SIZE_DAYS",
    "SlidingWindowService",
    "HistoricalValueLookup",
    "InMemoryObservationStore",
    "InMemoryWindowStore",
    "WindowStore",
]
