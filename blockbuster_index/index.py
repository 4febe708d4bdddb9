from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

import pandas as pd

from .scoring.normalize import normalize_scores
from .utils import DEFAULT_INVERTED, DEFAULT_WEIGHTS, STATES


@dataclass(frozen=True)
class StateScore:
    score: float
    components: Dict[str, float]


@dataclass(frozen=True)
class BlockbusterIndex:
    states: Dict[str, StateScore]
    calculated_at: str
    version: str
    signals_total: int
    signals_successful: int
    missing_signals: List[str] = field(default_factory=list)

    @property
    def total_states(self) -> int:
        return len(self.states)


def calculate_blockbuster_index(
    signal_results: Mapping[str, Mapping[str, float]],
    weights: Optional[Mapping[str, float]] = None,
    inverted: Optional[Iterable[str]] = None,
    states: Optional[Iterable[str]] = None,
    version: str = "dev",
) -> BlockbusterIndex:
    """Combine per-signal raw scores into one weighted 0-100 score per state.

    Each signal is min-max normalized on its own range; inverted signals are
    flipped (100 - x). A missing signal, or a state missing from a signal,
    contributes 0.
    """
    weights = dict(weights) if weights is not None else dict(DEFAULT_WEIGHTS)
    inverted_set = {s.upper() for s in (inverted if inverted is not None else DEFAULT_INVERTED)}
    states = list(states) if states is not None else list(STATES)

    unknown = sorted(s for s in signal_results if s.upper() not in weights)
    if unknown:
        raise ValueError(f"No weight configured for signal(s): {', '.join(unknown)}")

    normalized: Dict[str, Dict[str, int]] = {}
    for name, raw in signal_results.items():
        key = name.upper()
        if not raw:
            continue
        scaled = normalize_scores(raw)
        if key in inverted_set:
            scaled = {state: 100 - v for state, v in scaled.items()}
        normalized[key] = scaled

    out: Dict[str, StateScore] = {}
    for state in states:
        components = {sig: float(normalized.get(sig, {}).get(state, 0)) for sig in weights}
        score = sum(components[sig] * w for sig, w in weights.items())
        out[state] = StateScore(score=round(score, 2), components=components)

    missing = [sig for sig in weights if sig not in normalized]
    return BlockbusterIndex(
        states=out,
        calculated_at=dt.datetime.now(dt.timezone.utc).isoformat(),
        version=version,
        signals_total=len(weights),
        signals_successful=len(weights) - len(missing),
        missing_signals=missing,
    )


def index_to_frame(index: BlockbusterIndex) -> pd.DataFrame:
    rows = []
    for state, s in index.states.items():
        row: Dict[str, object] = {"state": state, "score": s.score}
        for sig, v in s.components.items():
            row[sig.lower()] = v
        rows.append(row)
    df = pd.DataFrame(rows)
    if df.empty:
        return df
    return df.sort_values(["score", "state"], ascending=[False, True]).reset_index(drop=True)
