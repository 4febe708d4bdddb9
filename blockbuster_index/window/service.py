from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional

import structlog

from ..utils import MS_PER_DAY, now_ms, round_half_up
from .aggregate import WindowAggregate
from .store import WindowStore

logger = structlog.get_logger()

DEFAULT_WINDOW_SIZE_DAYS = 90

OldDayLookup = Callable[[str, int], Optional[float]]


class SlidingWindowService:
    """Rolling N-day average of a daily per-state value.

    Each :meth:`update_window` call adds exactly one day and retires at most
    one expired day (the current ``window_start``). Missing several daily runs
    therefore leaves extra days in the window until one update per missed day
    has been replayed.
    """

    def __init__(
        self,
        window_store: WindowStore,
        get_old_day_value: OldDayLookup,
        states: Iterable[str],
        window_size_days: int = DEFAULT_WINDOW_SIZE_DAYS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if window_size_days < 1:
            raise ValueError("window_size_days must be at least 1")
        self.window_store = window_store
        self.get_old_day_value = get_old_day_value
        self.states: List[str] = list(states)
        self.window_size_days = window_size_days
        self._clock = clock

    def update_window(self, state: str, new_value: float, new_timestamp: int) -> WindowAggregate:
        """Fold one day's value (``new_timestamp`` in epoch ms) into ``state``'s window."""
        try:
            current = self.window_store.get_aggregate(state)
            if current is None:
                created = WindowAggregate.first(state, new_value, new_timestamp, self._clock())
                self.window_store.save_aggregate(created)
                logger.info("window_created", state=state, value=new_value, window_start=new_timestamp)
                return created

            old_timestamp: Optional[int] = None
            old_value: Optional[float] = None
            threshold = new_timestamp - self.window_size_days * MS_PER_DAY
            if current.window_start < threshold:
                candidate = current.window_start
                found = self.get_old_day_value(state, candidate)
                if found is None:
                    logger.info("window_eviction_skipped", state=state, old_timestamp=candidate)
                else:
                    old_timestamp, old_value = candidate, found

            stamp = self._clock()
            updated = current.advance(new_value, new_timestamp, stamp, old_timestamp, old_value)
            self.window_store.update_aggregate(
                state, new_value, new_timestamp, old_timestamp, old_value, updated_at=stamp
            )

            logger.info(
                "window_updated",
                state=state,
                day_count=updated.day_count,
                average_value=updated.average_value,
                old_day_removed=old_timestamp is not None,
            )
            return updated
        except Exception as exc:
            logger.error(
                "window_update_failed",
                state=state,
                new_value=new_value,
                new_timestamp=new_timestamp,
                error=str(exc),
            )
            raise

    def get_windowed_scores(self, states: Optional[Iterable[str]] = None) -> Dict[str, int]:
        """Rounded window average per state; 0 for states with no window yet."""
        wanted = list(states) if states is not None else self.states
        scores: Dict[str, int] = {}
        for state in wanted:
            try:
                agg = self.window_store.get_aggregate(state)
            except Exception as exc:
                logger.error("windowed_scores_failed", state=state, error=str(exc))
                raise
            scores[state] = round_half_up(agg.average_value) if agg is not None else 0
        return scores
