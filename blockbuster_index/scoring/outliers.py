from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping

import numpy as np
import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class OutlierAnalysis:
    outliers: List[str]
    median: float
    mean: float
    standard_deviation: float
    corrected_scores: Dict[str, float] = field(default_factory=dict)


def detect_and_correct_outliers(scores: Mapping[str, float], threshold: float = 2.0) -> OutlierAnalysis:
    """Flag states whose population z-score exceeds ``threshold``.

    Flagged states are replaced by the cross-state median in
    ``corrected_scores``; everything else passes through unchanged. With zero
    spread no state can be an outlier.
    """
    if not scores:
        return OutlierAnalysis(outliers=[], median=0.0, mean=0.0, standard_deviation=0.0)

    states = list(scores.keys())
    arr = np.array([float(scores[s]) for s in states], dtype=float)

    mean = float(arr.mean())
    sd = float(arr.std(ddof=0))
    median = float(np.median(arr))

    outliers: List[str] = []
    corrected: Dict[str, float] = dict(scores)
    for state, v in zip(states, arr):
        z = abs(v - mean) / sd if sd > 0 else 0.0
        if z > threshold:
            outliers.append(state)
            corrected[state] = median

    return OutlierAnalysis(
        outliers=outliers,
        median=median,
        mean=mean,
        standard_deviation=sd,
        corrected_scores=corrected,
    )


def log_outlier_analysis(analysis: OutlierAnalysis, score_type: str) -> None:
    logger.info(
        "outlier_analysis",
        score_type=score_type,
        mean=round(analysis.mean, 2),
        median=round(analysis.median, 2),
        standard_deviation=round(analysis.standard_deviation, 2),
        outlier_count=len(analysis.outliers),
        outlier_states=analysis.outliers,
    )
