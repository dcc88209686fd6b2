from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional

import numpy as np
import pandas as pd

from mlstreamcore.data.instance import Instance
from mlstreamcore.evaluation.statistics import compute_stats
from mlstreamcore.evaluation.thresholds import ThresholdCalibrator, ThresholdVector
from mlstreamcore.tasks import Task


# ---------------------------------------------------------------------------
# Mutable accumulator
# ---------------------------------------------------------------------------

@dataclass
class RunningResult:
    """
    The driver's single mutable accumulator.

    Window buffers (predictions / actuals / window timings) are cleared at
    window boundaries by WindowAggregator.reset(); the cumulative_* fields
    and instances_tested survive for the whole run.
    """
    n_labels: int
    task: Task
    thresholds: ThresholdVector
    predictions: list[np.ndarray] = field(default_factory=list)
    actuals: list[np.ndarray] = field(default_factory=list)
    test_time: float = 0.0
    update_time: float = 0.0
    cumulative_test_time: float = 0.0
    cumulative_update_time: float = 0.0
    instances_tested: int = 0

    def prediction_matrix(self) -> np.ndarray:
        if not self.predictions:
            return np.empty((0, self.n_labels))
        return np.vstack(self.predictions)

    def actual_matrix(self) -> np.ndarray:
        if not self.actuals:
            return np.empty((0, self.n_labels))
        return np.vstack(self.actuals)


# ---------------------------------------------------------------------------
# Frozen per-window value
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WindowSnapshot:
    """One entry of the performance trace. Never mutated after creation."""
    window: int
    instances: int
    n_window: int
    test_time: float
    update_time: float
    cumulative_test_time: float
    cumulative_update_time: float
    thresholds: tuple[float, ...]
    stats: Mapping[str, Any]

    def as_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "window": self.window,
            "instances": self.instances,
            "n_window": self.n_window,
        }
        row.update(self.stats)
        row.update({
            "test_time": self.test_time,
            "update_time": self.update_time,
            "cumulative_test_time": self.cumulative_test_time,
            "cumulative_update_time": self.cumulative_update_time,
            "threshold": self.thresholds[0] if len(self.thresholds) == 1 else list(self.thresholds),
        })
        return row


class PerformanceTrace:
    """Append-only, ordered sequence of WindowSnapshots."""

    def __init__(self, snapshots: Iterable[WindowSnapshot] = ()) -> None:
        self._snapshots: list[WindowSnapshot] = list(snapshots)

    def append(self, snapshot: WindowSnapshot) -> None:
        self._snapshots.append(snapshot)

    def __len__(self) -> int:
        return len(self._snapshots)

    def __iter__(self) -> Iterator[WindowSnapshot]:
        return iter(self._snapshots)

    def __getitem__(self, idx: int) -> WindowSnapshot:
        return self._snapshots[idx]

    def copy(self) -> PerformanceTrace:
        """Independent trace holding the same (frozen) snapshots."""
        return PerformanceTrace(self._snapshots)

    def to_frame(self) -> pd.DataFrame:
        """One row per snapshot; metric columns in first-seen order."""
        return pd.DataFrame([s.as_row() for s in self._snapshots])


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EvaluationResult:
    """What a streaming or batch evaluation hands back to the caller."""
    stats: Mapping[str, Any]
    trace: PerformanceTrace
    info: Mapping[str, Any]
    test_time: float
    build_time: float
    update_time: float
    instances_tested: int
    initial_instances: int
    thresholds: ThresholdVector
    predictions: np.ndarray
    actuals: np.ndarray

    @property
    def total_time(self) -> float:
        return self.test_time + self.build_time + self.update_time

    def measurements(self) -> dict[str, Any]:
        """Stats plus timings / counters, flattened for tabular output."""
        out = dict(self.stats)
        out.update({
            "Test time": self.test_time,
            "Build time": self.build_time,
            "Update time": self.update_time,
            "Total time": self.total_time,
            "Total instances tested": self.instances_tested,
            "Initial instances for training": self.initial_instances,
        })
        return out


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class WindowAggregator:
    """
    Buffers (prediction, truth) pairs for the current window and turns them
    into frozen WindowSnapshots via the statistics collaborator.
    """

    def __init__(
        self,
        n_labels: int,
        task: Task,
        thresholds: ThresholdVector,
        verbosity: int = 3,
    ) -> None:
        self.verbosity = verbosity
        self.result = RunningResult(n_labels=n_labels, task=task, thresholds=thresholds)

    @property
    def thresholds(self) -> ThresholdVector:
        return self.result.thresholds

    @property
    def n_buffered(self) -> int:
        return len(self.result.predictions)

    def record(self, prediction: np.ndarray, true_instance: Instance, test_time: float = 0.0) -> None:
        pred = np.array(prediction, dtype=float).reshape(-1)
        if pred.shape[0] < self.result.n_labels:
            raise ValueError(
                f"Prediction has {pred.shape[0]} values, expected {self.result.n_labels}."
            )
        # multi-target models may append extra information past the L values
        self.result.predictions.append(pred[: self.result.n_labels])
        self.result.actuals.append(np.array(true_instance.labels, dtype=float))
        self.result.test_time += test_time
        self.result.cumulative_test_time += test_time
        self.result.instances_tested += 1

    def record_update(self, update_time: float) -> None:
        self.result.update_time += update_time
        self.result.cumulative_update_time += update_time

    def stats(self) -> dict:
        return compute_stats(self.result, self.verbosity, "test")

    def snapshot(self, window: int) -> WindowSnapshot:
        r = self.result
        return WindowSnapshot(
            window=window,
            instances=r.instances_tested,
            n_window=len(r.predictions),
            test_time=r.test_time,
            update_time=r.update_time,
            cumulative_test_time=r.cumulative_test_time,
            cumulative_update_time=r.cumulative_update_time,
            thresholds=r.thresholds.values,
            stats=MappingProxyType(self.stats()),
        )

    def recalibrate(self, calibrator: ThresholdCalibrator) -> ThresholdVector:
        """Thresholds for the NEXT window, from this window's buffers."""
        if self.result.task == Task.MULTI_TARGET:
            return self.result.thresholds
        self.result.thresholds = calibrator.calibrate(
            self.result.prediction_matrix(),
            self.result.actual_matrix(),
            previous=self.result.thresholds,
        )
        return self.result.thresholds

    def reset(self) -> None:
        """Start a new window; cumulative counters are kept."""
        self.result.predictions = []
        self.result.actuals = []
        self.result.test_time = 0.0
        self.result.update_time = 0.0

    def final_result(
        self,
        trace: PerformanceTrace,
        info: Optional[dict] = None,
        build_time: float = 0.0,
        initial_instances: int = 0,
        stats: Optional[dict] = None,
    ) -> EvaluationResult:
        r = self.result
        return EvaluationResult(
            stats=MappingProxyType(dict(stats) if stats is not None else self.stats()),
            # the result owns its trace; later appends by the caller do not reach it
            trace=trace.copy(),
            info=MappingProxyType(dict(info or {})),
            test_time=r.cumulative_test_time,
            build_time=build_time,
            update_time=r.cumulative_update_time,
            instances_tested=r.instances_tested,
            initial_instances=initial_instances,
            thresholds=r.thresholds,
            predictions=r.prediction_matrix(),
            actuals=r.actual_matrix(),
        )
