from __future__ import annotations

import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from mlstreamcore.config.schema import EvaluationConfig
from mlstreamcore.data.instance import DatasetHeader, mask
from mlstreamcore.data.stream import InstanceStream, check_compatible_header
from mlstreamcore.errors import ConfigurationError, ModelBuildError, ModelError
from mlstreamcore.evaluation.aggregator import EvaluationResult, PerformanceTrace, WindowAggregator
from mlstreamcore.evaluation.statistics import HEADLINE_MEASURES
from mlstreamcore.evaluation.thresholds import ThresholdCalibrator, parse_threshold_option
from mlstreamcore.models.base import StreamModel
from mlstreamcore.tasks import Capability, Task, resolve_task
from mlstreamcore.training.schemes import BatchHarness, WindowPlan, get_scheme
from mlstreamcore.training.supervision import SupervisionSchedule
from mlstreamcore.utils.logging import write_log


class DriverState(Enum):
    IDLE = "idle"
    INITIAL_TRAIN = "initial_train"
    STREAM_LOOP = "stream_loop"
    FINALIZE = "finalize"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Streaming driver
# ---------------------------------------------------------------------------

class EvaluationDriver:
    """
    Prequential test-then-update evaluation of one model over one stream.

    Idle -> InitialTrain -> StreamLoop -> Finalize -> Done, with Failed
    reachable from every state. All configuration problems are raised
    before the model is built.
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

        self.state = DriverState.IDLE
        self.schedule = SupervisionSchedule(config.stream.supervision)
        self.scheme = get_scheme(config.stream.scheme)(config)
        self._begin()

    def _transition(self, state: DriverState) -> None:
        self.state = state
        write_log(self.log_file, f"Driver state -> {state.name}")

    def _begin(self) -> None:
        # every run gets its own trace and counters
        self.trace = PerformanceTrace()
        self.n_labeled_updates = 0
        self.n_masked_updates = 0

    def _fail(self, exc: Exception) -> None:
        self.state = DriverState.FAILED
        write_log(self.log_file, f"Driver state -> FAILED ({exc})")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _prepare(self, stream: InstanceStream, check_supervision: bool = True) -> tuple[WindowPlan, Task]:
        if not self.model.supports(Capability.INCREMENTAL):
            raise ConfigurationError(
                f"{type(self.model).__name__} does not declare INCREMENTAL capability; "
                "use the held-out (batch) evaluation instead."
            )
        task = resolve_task(self.model.capabilities, stream.header.label_kind)
        plan = self.scheme.plan(len(stream))
        if check_supervision:
            self.schedule.validate_window(plan.initial_size)
        return plan, task

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def run(self, stream: InstanceStream) -> EvaluationResult:
        """
        Evaluate the model over `stream`.

        Raises:
            ConfigurationError: before any training, on an invalid setup.
            ModelError:         if build/test/update fails; carries the
                                offending instance index and the partial
                                trace.
        """
        config = self.config
        self._begin()
        try:
            plan, task = self._prepare(stream)
            thresholds = parse_threshold_option(config.threshold.threshold, stream.n_labels)
        except ConfigurationError as exc:
            self._fail(exc)
            raise

        calibrating = plan.recalibrate and task == Task.MULTI_LABEL
        calibrator = ThresholdCalibrator(thresholds.mode) if calibrating else None
        W = plan.initial_size

        write_log(
            self.log_file,
            f"Stream '{stream.name}': N={len(stream)}  L={stream.n_labels}  type={task.value}\n"
            f"  scheme        : {self.scheme.name}\n"
            f"  initial window: {W}\n"
            f"  windows       : {len(plan.windows)} ({plan.n_snapshots} sampled)\n"
            f"  supervision   : {self.schedule.ratio} (stride {self.schedule.stride})\n"
            f"  threshold     : {config.threshold.threshold} "
            f"({'calibrated ' + thresholds.mode if calibrating else 'fixed'})"
        )

        # -------------------------------------------------------------
        # InitialTrain
        # -------------------------------------------------------------
        self._transition(DriverState.INITIAL_TRAIN)
        initial = stream[:W]
        start = self.clock()
        try:
            self.model.build(initial)
        except ModelError as exc:
            exc.options_report = exc.options_report or self.model.describe()
            exc.partial_trace = self.trace
            self._fail(exc)
            raise
        except Exception as exc:
            self._fail(exc)
            raise ModelBuildError(
                f"Model build failed on the initial window of {W} instances: {exc}",
                partial_trace=self.trace,
                options_report=self.model.describe(),
            ) from exc
        build_time = self.clock() - start
        write_log(self.log_file, f"Built initial model in {build_time:.3f} s")

        # -------------------------------------------------------------
        # StreamLoop
        # -------------------------------------------------------------
        self._transition(DriverState.STREAM_LOOP)
        remainder = stream[W:]
        aggregator = WindowAggregator(
            n_labels=stream.n_labels,
            task=task,
            thresholds=thresholds,
            verbosity=config.verbosity,
        )
        write_log(self.log_file, "  ".join(["#w", "n"] + list(HEADLINE_MEASURES)))

        last_stats = None
        for w, (begin, end) in enumerate(plan.windows):
            for i in range(begin, end):
                self._step(i, W, remainder[i], aggregator)

            if not plan.is_sampled(w):
                continue

            snapshot = aggregator.snapshot(window=w)
            self.trace.append(snapshot)
            last_stats = dict(snapshot.stats)
            write_log(
                self.log_file,
                "  ".join(
                    [f"#{w + 1}", str(snapshot.n_window)]
                    + [f"{snapshot.stats.get(m, float('nan')):.4f}" for m in HEADLINE_MEASURES]
                ),
            )

            if w == len(plan.windows) - 1:
                break
            if calibrator is not None:
                new = aggregator.recalibrate(calibrator)
                write_log(self.log_file, f"Thresholds for window {w + 2}: {new}")
            if plan.reset_each_window:
                aggregator.reset()

        # -------------------------------------------------------------
        # Finalize
        # -------------------------------------------------------------
        self._transition(DriverState.FINALIZE)
        info = {
            **self.model.describe(),
            "Type": task.value,
            "Supervision": self.schedule.ratio,
            "Threshold": str(aggregator.thresholds),
            "Threshold option": config.threshold.threshold,
            "Verbosity": config.verbosity,
            "Dataset": stream.name,
            "Scheme": self.scheme.name,
            "Labelled updates": self.n_labeled_updates,
            "Masked updates": self.n_masked_updates,
        }
        # windowed: last window's statistics; prequential: everything since the start
        stats = last_stats if plan.reset_each_window else None
        result = aggregator.final_result(
            self.trace,
            info=info,
            build_time=build_time,
            initial_instances=W,
            stats=stats,
        )
        self._transition(DriverState.DONE)
        return result

    def _step(self, i: int, offset: int, instance, aggregator: WindowAggregator) -> None:
        """Test, label-or-mask, update for remainder instance i."""
        phase = "test"
        try:
            start = self.clock()
            y = self.model.test(instance)
            test_time = self.clock() - start
            aggregator.record(y, instance, test_time)

            labeled = self.schedule.is_labeled(i)
            shown = instance if labeled else mask(instance)

            phase = "update"
            start = self.clock()
            self.model.update(shown, not labeled)
            aggregator.record_update(self.clock() - start)
        except Exception as exc:
            self._fail(exc)
            raise ModelError(
                f"Model {phase} failed on stream instance {offset + i} "
                f"(remainder index {i}): {exc}",
                phase=phase,
                instance_index=offset + i,
                partial_trace=self.trace,
                options_report=self.model.describe(),
            ) from exc

        if labeled:
            self.n_labeled_updates += 1
        else:
            self.n_masked_updates += 1

    def train_only(self, stream: InstanceStream) -> None:
        """
        No-evaluation mode: build on the initial window, then update on
        every training instance in order. Nothing is measured.
        """
        self._begin()
        try:
            # no evaluation, so the supervision schedule is never consulted
            plan, _ = self._prepare(stream, check_supervision=False)
        except ConfigurationError as exc:
            self._fail(exc)
            raise
        self._transition(DriverState.INITIAL_TRAIN)
        try:
            self.model.build(stream[: plan.initial_size])
        except Exception as exc:
            self._fail(exc)
            if isinstance(exc, ModelError):
                raise
            raise ModelBuildError(
                f"Model build failed: {exc}", options_report=self.model.describe(),
            ) from exc

        self._transition(DriverState.STREAM_LOOP)
        for idx, inst in enumerate(stream):
            try:
                self.model.update(inst, False)
            except Exception as exc:
                self._fail(exc)
                raise ModelError(
                    f"Model update failed on stream instance {idx}: {exc}",
                    phase="update",
                    instance_index=idx,
                    options_report=self.model.describe(),
                ) from exc
        self._transition(DriverState.DONE)


# ---------------------------------------------------------------------------
# Top-level evaluation routine
# ---------------------------------------------------------------------------

def evaluate_model(
    model: StreamModel,
    config: EvaluationConfig,
    train: Optional[InstanceStream] = None,
    test: Optional[InstanceStream] = None,
    prebuilt: bool = False,
    stored_header: Optional[DatasetHeader] = None,
    log_file: Optional[str] = None,
) -> Optional[EvaluationResult]:
    """
    Streaming evaluation on `train` and/or held-out evaluation on `test`.

    When both are evaluated the held-out result supersedes the streaming
    one. Returns None when evaluation is switched off (config.output.no_eval).

    Args:
        model:         The model under evaluation.
        config:        Resolved EvaluationConfig.
        train:         Stream for prequential evaluation (or training only).
        test:          Optional held-out stream.
        prebuilt:      The model was already built (e.g. loaded from disk).
        stored_header: Header persisted with a prebuilt model; train/test
                       headers must match it.
        log_file:      Optional log file path.
    """
    if train is None and test is None:
        raise ConfigurationError("Nothing to evaluate: provide a training stream, a test stream, or both.")

    if stored_header is not None:
        if train is not None:
            check_compatible_header(stored_header, train, role="training")
        if test is not None:
            check_compatible_header(stored_header, test, role="test")

    if train is None and not prebuilt:
        raise ConfigurationError("Options require a prebuilt model, but none is available!")

    do_eval = not config.output.no_eval
    result: Optional[EvaluationResult] = None
    harness = BatchHarness(model, config, log_file=log_file)

    # Non-incremental model with a held-out set: classical split instead of streaming
    batch_only = (
        train is not None
        and test is not None
        and not model.supports(Capability.INCREMENTAL)
    )

    if batch_only:
        write_log(log_file, "Model is not incremental; building once on the training set")
        if do_eval:
            result = harness.run(test, train=train, build=True)
        else:
            harness.build(train)
    else:
        if train is not None:
            driver = EvaluationDriver(model, config, log_file=log_file)
            if do_eval:
                result = driver.run(train)
            else:
                driver.train_only(train)

        if test is not None and do_eval:
            write_log(log_file, "Non-incremental evaluation on provided test set")
            result = harness.run(test, build=False)

    if config.output.predictions_path:
        if test is None:
            write_log(log_file, "No test set provided, cannot make predictions!")
        else:
            from mlstreamcore.evaluation.results import write_predictions
            path = write_predictions(harness.predict(test), test, Path(config.output.predictions_path))
            write_log(log_file, f"Predictions saved to: {path}")

    return result
