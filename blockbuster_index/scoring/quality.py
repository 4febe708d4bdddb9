from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import structlog

logger = structlog.get_logger()

ZERO_VALUE = "zero_value"
NEGATIVE_VALUE = "negative_value"
STATISTICAL_PREFIX = "statistical_outlier"


@dataclass(frozen=True)
class Gap:
    from_year: int
    to_year: int
    gap_size: int


@dataclass(frozen=True)
class QualityOutlier:
    year: int
    value: float
    reason: str


@dataclass(frozen=True)
class DataQualityMetrics:
    total_data_points: int
    valid_data_points: int
    zero_value_count: int
    negative_value_count: int
    large_gaps: List[Gap] = field(default_factory=list)
    outliers: List[QualityOutlier] = field(default_factory=list)
    data_quality_score: int = 0


@dataclass(frozen=True)
class FilteredDataPoint:
    year: int
    value: float
    was_filtered: bool
    filter_reason: Optional[str] = None


def _sorted_points(points: Iterable[Tuple[int, float]]) -> List[Tuple[int, float]]:
    return sorted(((int(y), float(v)) for y, v in points), key=lambda p: p[0])


def analyze_data_quality(
    points: Iterable[Tuple[int, float]],
    max_gap_years: int = 3,
    outlier_threshold: float = 2.5,
    min_valid_points: int = 5,
) -> DataQualityMetrics:
    """Describe technical problems in a yearly series: zeros, negatives, gaps, z-score outliers.

    Only the data itself is judged; no trend assumptions are made. Statistical
    outliers are computed over the positive values and only when at least
    ``min_valid_points`` of them exist.
    """
    data = _sorted_points(points)
    total = len(data)

    zero_count = 0
    negative_count = 0
    gaps: List[Gap] = []
    outliers: List[QualityOutlier] = []

    for i, (year, value) in enumerate(data):
        if value == 0:
            zero_count += 1
            outliers.append(QualityOutlier(year, value, ZERO_VALUE))
        elif value < 0:
            negative_count += 1
            outliers.append(QualityOutlier(year, value, NEGATIVE_VALUE))

        if i > 0:
            prev_year = data[i - 1][0]
            gap = year - prev_year
            if gap > max_gap_years:
                gaps.append(Gap(from_year=prev_year, to_year=year, gap_size=gap))

    valid = [(y, v) for y, v in data if v > 0]
    if len(valid) >= min_valid_points:
        arr = np.array([v for _, v in valid], dtype=float)
        mu = float(arr.mean())
        sd = float(arr.std(ddof=0))
        if sd > 0:
            for year, value in valid:
                z = abs(value - mu) / sd
                if z > outlier_threshold:
                    outliers.append(QualityOutlier(year, value, f"{STATISTICAL_PREFIX}_z{z:.1f}"))

    if total == 0:
        score = 0
    else:
        factors = [
            len(valid) / total,
            1.0 - len(gaps) / max(1, total - 1),
            1.0 - len(outliers) / total,
        ]
        score = int(round(sum(factors) / len(factors) * 100))

    return DataQualityMetrics(
        total_data_points=total,
        valid_data_points=len(valid),
        zero_value_count=zero_count,
        negative_value_count=negative_count,
        large_gaps=gaps,
        outliers=outliers,
        data_quality_score=score,
    )


def filter_data_quality_issues(
    points: Sequence[Tuple[int, float]],
    filter_zeros: bool = True,
    filter_negatives: bool = True,
    filter_statistical_outliers: bool = False,
    max_gap_years: int = 3,
    outlier_threshold: float = 2.5,
) -> Tuple[List[FilteredDataPoint], DataQualityMetrics]:
    metrics = analyze_data_quality(points, max_gap_years=max_gap_years, outlier_threshold=outlier_threshold)
    statistical = {o.year: o.reason for o in metrics.outliers if o.reason.startswith(STATISTICAL_PREFIX)}

    out: List[FilteredDataPoint] = []
    for year, value in _sorted_points(points):
        reason: Optional[str] = None
        if filter_zeros and value == 0:
            reason = ZERO_VALUE
        elif filter_negatives and value < 0:
            reason = NEGATIVE_VALUE
        elif filter_statistical_outliers and year in statistical:
            reason = statistical[year]
        out.append(FilteredDataPoint(year=year, value=value, was_filtered=reason is not None, filter_reason=reason))
    return out, metrics


def log_data_quality_analysis(metrics: DataQualityMetrics, state: str, signal_type: str) -> None:
    logger.info(
        "data_quality",
        state=state.upper(),
        signal_type=signal_type,
        total_data_points=metrics.total_data_points,
        valid_data_points=metrics.valid_data_points,
        data_quality_score=metrics.data_quality_score,
    )
    if metrics.zero_value_count or metrics.negative_value_count:
        logger.info(
            "data_quality_invalid_values",
            state=state.upper(),
            zero_values=metrics.zero_value_count,
            negative_values=metrics.negative_value_count,
        )
    for gap in metrics.large_gaps:
        logger.info("data_quality_gap", state=state.upper(), from_year=gap.from_year, to_year=gap.to_year, years=gap.gap_size)
    for o in metrics.outliers:
        logger.info("data_quality_outlier", state=state.upper(), year=o.year, value=o.value, reason=o.reason)
