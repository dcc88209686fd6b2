"""
mlstreamcore.evaluation

Public API for windowed statistics, threshold calibration and result output.
"""

from mlstreamcore.evaluation.aggregator import (
    EvaluationResult,
    PerformanceTrace,
    RunningResult,
    WindowAggregator,
    WindowSnapshot,
)
from mlstreamcore.evaluation.results import write_evaluation_outputs, write_predictions
from mlstreamcore.evaluation.statistics import HEADLINE_MEASURES, compute_stats
from mlstreamcore.evaluation.thresholds import (
    PER_LABEL,
    SINGLE,
    ThresholdCalibrator,
    ThresholdVector,
    calibrate_per_label,
    calibrate_single,
    parse_threshold_option,
)

__all__ = [
    # Aggregation
    "EvaluationResult",
    "PerformanceTrace",
    "RunningResult",
    "WindowAggregator",
    "WindowSnapshot",
    # Statistics
    "HEADLINE_MEASURES",
    "compute_stats",
    # Thresholds
    "PER_LABEL",
    "SINGLE",
    "ThresholdCalibrator",
    "ThresholdVector",
    "calibrate_per_label",
    "calibrate_single",
    "parse_threshold_option",
    # Output
    "write_evaluation_outputs",
    "write_predictions",
]
