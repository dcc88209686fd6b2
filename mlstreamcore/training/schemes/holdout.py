from __future__ import annotations

import time
from typing import Callable, Optional

import numpy as np

from mlstreamcore.config.schema import EvaluationConfig
from mlstreamcore.data.stream import InstanceStream
from mlstreamcore.errors import ModelBuildError, ModelError
from mlstreamcore.evaluation.aggregator import EvaluationResult, PerformanceTrace, WindowAggregator
from mlstreamcore.evaluation.thresholds import SINGLE, ThresholdVector, numeric_threshold
from mlstreamcore.models.base import StreamModel
from mlstreamcore.tasks import resolve_task
from mlstreamcore.utils.logging import write_log


class BatchHarness:
    """
    Classical train/test split: build once on the training data, test once
    on a held-out set. No updates, no windowing, no supervision schedule
    and no threshold calibration (single threshold, 0.5 unless the
    threshold option is a number).
    """

    def __init__(
        self,
        model: StreamModel,
        config: EvaluationConfig,
        log_file: Optional[str] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.model = model
        self.config = config
        self.log_file = log_file
        self.clock = clock

    def run(
        self,
        test: InstanceStream,
        train: Optional[InstanceStream] = None,
        build: bool = True,
    ) -> EvaluationResult:
        """
        Args:
            test:  Held-out stream.
            train: Training stream; required when build=True.
            build: False when the model is already built (e.g. after a
                   streaming run or when loaded from storage).

        Returns:
            EvaluationResult with a single-snapshot trace.
        """
        config = self.config
        task = resolve_task(self.model.capabilities, test.header.label_kind)
        threshold = numeric_threshold(config.threshold.threshold)

        print(f"\n{'='*60}")
        print(f"  Held-out evaluation")
        print(f"  train={len(train) if train is not None else 0}  test={len(test)}")
        print(f"{'='*60}")

        build_time = 0.0
        if build:
            if train is None:
                raise ValueError("BatchHarness.run(build=True) requires a training stream.")
            build_time = self.build(train)

        aggregator = WindowAggregator(
            n_labels=test.n_labels,
            task=task,
            thresholds=ThresholdVector.initial(SINGLE, test.n_labels, threshold),
            verbosity=config.verbosity,
        )
        trace = PerformanceTrace()

        for idx, inst in enumerate(test):
            start = self.clock()
            try:
                y = self.model.test(inst)
            except Exception as exc:
                raise ModelError(
                    f"Model test failed on held-out instance {idx}: {exc}",
                    phase="test",
                    instance_index=idx,
                    partial_trace=trace,
                    options_report=self.model.describe(),
                ) from exc
            aggregator.record(y, inst, self.clock() - start)

        snapshot = aggregator.snapshot(window=0)
        trace.append(snapshot)
        write_log(self.log_file, "Evaluation complete:")
        write_log(self.log_file, dict(snapshot.stats))

        info = {
            **self.model.describe(),
            "Type": task.value,
            "Threshold": str(aggregator.thresholds),
            "Verbosity": config.verbosity,
            "Dataset": test.name,
            "Scheme": "holdout",
        }
        return aggregator.final_result(
            trace,
            info=info,
            build_time=build_time,
            initial_instances=len(train) if (build and train is not None) else 0,
            stats=dict(snapshot.stats),
        )

    def build(self, train: InstanceStream) -> float:
        """Build the model on the full training stream; returns build time."""
        write_log(self.log_file, f"Building model on {len(train)} instances")
        start = self.clock()
        try:
            self.model.build(train)
        except ModelError:
            raise
        except Exception as exc:
            raise ModelBuildError(
                f"Model build failed: {exc}",
                options_report=self.model.describe(),
            ) from exc
        return self.clock() - start

    def predict(self, test: InstanceStream) -> np.ndarray:
        """Raw predictions for every held-out instance, truncated to L columns."""
        L = test.n_labels
        rows = []
        for idx, inst in enumerate(test):
            try:
                y = self.model.test(inst)
            except Exception as exc:
                raise ModelError(
                    f"Model test failed while predicting held-out instance {idx}: {exc}",
                    phase="test",
                    instance_index=idx,
                    options_report=self.model.describe(),
                ) from exc
            rows.append(np.asarray(y, dtype=float).reshape(-1)[:L])
        if not rows:
            return np.empty((0, L))
        return np.vstack(rows)
