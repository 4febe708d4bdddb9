from .normalize import (
    calculate_inverted_scores,
    calculate_positive_scores,
    calculate_scores,
    equal_scores,
    jobs_per_thousand_workers,
    normalize_scores,
    workforce_normalized_inverted_scores,
    workforce_normalized_scores,
)
from .outliers import OutlierAnalysis, detect_and_correct_outliers, log_outlier_analysis
from .quality import DataQualityMetrics, FilteredDataPoint, analyze_data_quality, filter_data_quality_issues

__all__ = [
    "calculate_inverted_scores",
    "calculate_positive_scores",
    "calculate_scores",
    "equal_scores",
    "jobs_per_thousand_workers",
    "normalize_scores",
    "workforce_normalized_inverted_scores",
    "workforce_normalized_scores",
    "OutlierAnalysis",
    "detect_and_correct_outliers",
    "log_outlier_analysis",
    "DataQualityMetrics",
    "FilteredDataPoint",
    "analyze_data_quality",
    "filter_data_quality_issues",
]
