from __future__ import annotations

from typing import Callable, Dict, List, Mapping, Protocol, TypeVar

import structlog

logger = structlog.get_logger()

W = TypeVar("W")

ScoreMap = Dict[str, float]


class WindowedSignal(Protocol):
    def update_window(self, state: str, new_value: float, new_timestamp: int) -> object:
        ...

    def get_windowed_scores(self) -> Dict[str, int]:
        ...


class SignalUpdateError(RuntimeError):
    """One or more per-state window updates failed during a run."""

    def __init__(self, failed_states: List[str]) -> None:
        super().__init__(f"Sliding window update failed for: {', '.join(failed_states)}")
        self.failed_states = failed_states


def orchestrate_signal(
    scraper: Callable[[int], Mapping[str, float]],
    window_service: WindowedSignal,
    get_workforce_data: Callable[[], W],
    normalize: Callable[[Mapping[str, float], W], ScoreMap],
    timestamp: int,
) -> Dict[str, int]:
    """Run one day of a job-count signal and return the windowed scores.

    ``timestamp`` is the start of the day in epoch seconds; window updates use
    it in milliseconds. The one-shot normalization is only logged. States are
    updated one at a time in scrape order. A failing state does not stop the
    others, but the run then raises :class:`SignalUpdateError` instead of
    returning scores.
    """
    logger.info("signal_started", timestamp=timestamp)

    raw = scraper(timestamp)
    workforce = get_workforce_data()
    normalized = normalize(raw, workforce)

    failed: List[str] = []
    for state, value in raw.items():
        try:
            window_service.update_window(state, value, timestamp * 1000)
        except Exception:
            # update_window has already logged the context
            failed.append(state)

    if failed:
        logger.error("signal_failed", timestamp=timestamp, failed_states=failed)
        raise SignalUpdateError(failed)

    windowed = window_service.get_windowed_scores()
    logger.info("signal_completed", timestamp=timestamp, normalized_scores=normalized, windowed_scores=windowed)
    return windowed
