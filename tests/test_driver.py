"""
Tests for the streaming evaluation driver.
"""

import numpy as np
import pytest

from conftest import BatchOnlyModel, FailingModel, RecordingModel, make_config, make_stream
from mlstreamcore.errors import ConfigurationError, ModelBuildError, ModelError
from mlstreamcore.training.driver import DriverState, EvaluationDriver


class TestWindowedRun:
    """Windowed scheme end to end."""

    def test_nine_snapshots_of_ten(self, stream_100, recording_model):
        """N=100, 10 windows, full supervision -> 9 snapshots covering 10 each."""
        driver = EvaluationDriver(recording_model, make_config(num_windows=10))
        result = driver.run(stream_100)

        assert driver.state == DriverState.DONE
        assert len(result.trace) == 9
        assert [s.n_window for s in result.trace] == [10] * 9
        assert [s.instances for s in result.trace] == list(range(10, 100, 10))
        assert result.initial_instances == 10
        assert result.instances_tested == 90
        assert recording_model.calls[0] == ("build", 10)

    def test_test_then_update_order(self, stream_100, recording_model):
        """Every remainder instance is tested, then updated, in stream order."""
        EvaluationDriver(recording_model, make_config(num_windows=10)).run(stream_100)
        calls = recording_model.stream_calls()
        assert len(calls) == 180
        for k, i in enumerate(range(10, 100)):
            assert calls[2 * k] == ("test", i)
            assert calls[2 * k + 1][:2] == ("update", i)

    def test_full_supervision_never_masks(self, stream_100, recording_model):
        driver = EvaluationDriver(recording_model, make_config(num_windows=10))
        driver.run(stream_100)
        updates = [c for c in recording_model.calls if c[0] == "update"]
        assert not any(c[2] or c[3] for c in updates)
        assert driver.n_masked_updates == 0
        assert driver.n_labeled_updates == 90

    def test_oracle_scores_perfect(self, stream_100, recording_model):
        result = EvaluationDriver(recording_model, make_config(num_windows=10)).run(stream_100)
        assert result.stats["Exact match"] == pytest.approx(1.0)
        assert result.stats["N"] == 10

    def test_info_report(self, stream_100, recording_model):
        result = EvaluationDriver(recording_model, make_config(num_windows=10)).run(stream_100)
        assert result.info["Type"] == "ML"
        assert result.info["Scheme"] == "windowed"
        assert result.info["classifier"] == "RecordingModel"
        assert result.info["Supervision"] == 1.0


class TestPartialSupervision:
    """Supervision schedule applied in the stream loop."""

    def test_one_labelled_per_window(self):
        """window_size=20, r=0.05, N=220 -> 10 labelled and 190 masked updates."""
        model = RecordingModel()
        driver = EvaluationDriver(model, make_config(window_size=20, supervision=0.05))
        result = driver.run(make_stream(220))

        assert len(result.trace) == 10
        assert driver.n_labeled_updates == 10
        assert driver.n_masked_updates == 190

        updates = [c for c in model.calls if c[0] == "update"]
        labelled = [c[1] for c in updates if not c[2]]
        assert labelled == list(range(20, 220, 20))
        # masked updates really carry no labels
        assert all(c[3] for c in updates if c[2])

    def test_masked_instances_still_evaluated(self):
        """Every remainder instance is tested against its true labels."""
        model = RecordingModel()
        result = EvaluationDriver(model, make_config(num_windows=5, supervision=0.5)).run(make_stream(100))
        assert result.instances_tested == 80
        assert result.stats["Exact match"] == pytest.approx(1.0)

    def test_window_too_small_fails_before_build(self):
        """r=0.1 with W=5 is rejected before the model sees anything."""
        model = RecordingModel()
        driver = EvaluationDriver(model, make_config(window_size=5, supervision=0.1))
        with pytest.raises(ConfigurationError, match="too small"):
            driver.run(make_stream(100))
        assert model.calls == []
        assert driver.state == DriverState.FAILED


class TestThresholdRecalibration:

    def test_thresholds_follow_previous_window(self):
        """PCut1 starts at 0.5 and recalibrates to 0.55 on 0.8 / 0.3 scores."""
        model = RecordingModel(pos=0.8, neg=0.3)
        result = EvaluationDriver(model, make_config(num_windows=5, threshold="PCut1")).run(make_stream(100))
        assert result.trace[0].thresholds == (0.5,)
        for snap in list(result.trace)[1:]:
            assert snap.thresholds[0] == pytest.approx(0.55)

    def test_per_label_thresholds(self):
        model = RecordingModel(pos=0.8, neg=0.3)
        result = EvaluationDriver(model, make_config(num_windows=5, threshold="PCutL")).run(make_stream(100, n_labels=3))
        assert len(result.trace[-1].thresholds) == 3
        np.testing.assert_allclose(result.trace[-1].thresholds, 0.55)

    def test_fixed_threshold_never_moves(self):
        model = RecordingModel(pos=0.8, neg=0.3)
        config = make_config(num_windows=5, threshold="PCut1").resolve({"threshold.recalibrate": False})
        result = EvaluationDriver(model, config).run(make_stream(100))
        assert all(s.thresholds == (0.5,) for s in result.trace)


class TestPrequentialRun:

    def test_cumulative_statistics(self):
        model = RecordingModel()
        result = EvaluationDriver(model, make_config(scheme="prequential", num_windows=10)).run(make_stream(100))
        assert [s.n_window for s in result.trace] == list(range(10, 100, 10))
        assert result.stats["N"] == 90
        assert result.info["Scheme"] == "prequential"


class TestFailures:

    def test_test_failure_carries_index_and_partial_trace(self):
        model = FailingModel(fail_on=35, phase="test")
        driver = EvaluationDriver(model, make_config(num_windows=10))
        with pytest.raises(ModelError) as excinfo:
            driver.run(make_stream(100))
        err = excinfo.value
        assert err.phase == "test"
        assert err.instance_index == 35
        assert len(err.partial_trace) == 2
        assert err.options_report["classifier"] == "FailingModel"
        assert driver.state == DriverState.FAILED

    def test_update_failure(self):
        model = FailingModel(fail_on=12, phase="update")
        with pytest.raises(ModelError) as excinfo:
            EvaluationDriver(model, make_config(num_windows=10)).run(make_stream(100))
        assert excinfo.value.phase == "update"
        assert excinfo.value.instance_index == 12
        assert len(excinfo.value.partial_trace) == 0

    def test_build_failure(self):
        driver = EvaluationDriver(FailingModel(phase="build"), make_config(num_windows=10))
        with pytest.raises(ModelBuildError) as excinfo:
            driver.run(make_stream(100))
        assert excinfo.value.phase == "build"
        assert driver.state == DriverState.FAILED

    def test_non_incremental_model_rejected(self):
        model = BatchOnlyModel()
        with pytest.raises(ConfigurationError, match="INCREMENTAL"):
            EvaluationDriver(model, make_config(num_windows=10)).run(make_stream(100))
        assert model.calls == []


class TestTrainOnly:

    def test_builds_then_updates_everything(self):
        model = RecordingModel()
        driver = EvaluationDriver(model, make_config(num_windows=10))
        assert driver.train_only(make_stream(50)) is None
        assert model.calls[0] == ("build", 5)
        updates = [c for c in model.calls if c[0] == "update"]
        assert [c[1] for c in updates] == list(range(50))
        assert not any(c[0] == "test" for c in model.calls)
        assert driver.state == DriverState.DONE

    def test_ignores_supervision_window_check(self):
        """No-eval mode never consults the schedule, so r * W < 1 is fine."""
        model = RecordingModel()
        driver = EvaluationDriver(model, make_config(window_size=5, supervision=0.1))
        driver.train_only(make_stream(50))
        assert model.calls[0] == ("build", 5)
        assert driver.state == DriverState.DONE


class TestRepeatedRuns:
    """One driver object used for several runs."""

    def test_second_run_leaves_first_result_untouched(self):
        driver = EvaluationDriver(RecordingModel(), make_config(num_windows=10))
        first = driver.run(make_stream(100))
        second = driver.run(make_stream(100))

        assert len(first.trace) == 9
        assert len(second.trace) == 9
        assert first.info["Labelled updates"] == 90
        assert second.info["Labelled updates"] == 90
        assert driver.n_labeled_updates == 90

    def test_result_trace_is_not_the_driver_trace(self, stream_100, recording_model):
        driver = EvaluationDriver(recording_model, make_config(num_windows=10))
        result = driver.run(stream_100)
        driver.trace.append(result.trace[0])
        assert len(result.trace) == 9
