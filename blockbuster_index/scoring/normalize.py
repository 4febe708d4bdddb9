from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional

from ..utils import clamp, round_half_up, round_half_up_to

BAND_FLOOR = 0.05
BAND_WIDTH = 0.15
TIED_BAND_SCORE = 0.1
TIED_WIDE_SCORE = 100

# (jobs / workforce) * 100 is a percentage; scaled so small shares stay integers.
WORKFORCE_SCALE = 1_000_000
# 10% of the workforce, scaled.
WORKFORCE_INVERSION_CEILING = 10_000_000


def _band(counts: Mapping[str, float], inverted: bool, ndigits: int) -> Dict[str, float]:
    if not counts:
        return {}
    values = list(counts.values())
    lo, hi = min(values), max(values)
    if hi == lo:
        return {state: TIED_BAND_SCORE for state in counts}

    span = hi - lo
    scores: Dict[str, float] = {}
    for state, v in counts.items():
        frac = (hi - v) / span if inverted else (v - lo) / span
        scores[state] = round_half_up_to(frac * BAND_WIDTH + BAND_FLOOR, ndigits)
    return scores


def calculate_scores(counts: Mapping[str, float]) -> Dict[str, float]:
    """Linear min-max into [0.05, 0.20], rounded to 2 decimals."""
    return _band(counts, inverted=False, ndigits=2)


def calculate_positive_scores(counts: Mapping[str, float]) -> Dict[str, float]:
    """Same mapping as :func:`calculate_scores`, rounded to 10 decimals."""
    return _band(counts, inverted=False, ndigits=10)


def calculate_inverted_scores(counts: Mapping[str, float]) -> Dict[str, float]:
    """Reversed band: the highest count gets 0.05, the lowest 0.20."""
    return _band(counts, inverted=True, ndigits=10)


def normalize_scores(
    scores: Mapping[str, float],
    min_override: Optional[float] = None,
    max_override: Optional[float] = None,
) -> Dict[str, int]:
    """Min-max normalize onto 0-100.

    ``min_override``/``max_override`` pin the scale so several batches can be
    compared on one historical range; values falling outside it are clamped.
    All-tied input maps every state to 100.
    """
    if not scores:
        return {}
    values = list(scores.values())
    lo = min_override if min_override is not None else min(values)
    hi = max_override if max_override is not None else max(values)

    if hi == lo:
        return {state: TIED_WIDE_SCORE for state in scores}

    return {
        state: int(clamp(round_half_up(100.0 * (v - lo) / (hi - lo)), 0, 100))
        for state, v in scores.items()
    }


def workforce_normalized_scores(counts: Mapping[str, float], workforce: Mapping[str, float]) -> Dict[str, int]:
    scores: Dict[str, int] = {}
    for state, count in counts.items():
        size = workforce.get(state) or 0
        if size > 0:
            pct = (count / size) * 100.0
            scores[state] = round_half_up(pct * WORKFORCE_SCALE)
        else:
            scores[state] = 0
    return scores


def workforce_normalized_inverted_scores(counts: Mapping[str, float], workforce: Mapping[str, float]) -> Dict[str, int]:
    scores: Dict[str, int] = {}
    for state, scaled in workforce_normalized_scores(counts, workforce).items():
        size = workforce.get(state) or 0
        scores[state] = max(0, WORKFORCE_INVERSION_CEILING - scaled) if size > 0 else 0
    return scores


def jobs_per_thousand_workers(counts: Mapping[str, float], workforce: Mapping[str, float]) -> Dict[str, int]:
    scores: Dict[str, int] = {}
    for state, count in counts.items():
        size = workforce.get(state) or 0
        scores[state] = round_half_up(count / size * 1000.0) if size > 0 else 0
    return scores


def equal_scores(states: Iterable[str]) -> Dict[str, float]:
    """Neutral fallback used when a signal could not be fetched."""
    return {state: TIED_BAND_SCORE for state in states}
