"""
Tests for the held-out harness and the top-level evaluate_model routine.
"""

import pandas as pd
import pytest

from conftest import BatchOnlyModel, FailingModel, RecordingModel, make_config, make_stream
from mlstreamcore.data.instance import DatasetHeader
from mlstreamcore.errors import ConfigurationError, ModelError
from mlstreamcore.training.driver import evaluate_model
from mlstreamcore.training.schemes import BatchHarness


class TestBatchHarness:

    def test_build_and_test_once(self):
        model = BatchOnlyModel()
        harness = BatchHarness(model, make_config(num_windows=10))
        result = harness.run(make_stream(20), train=make_stream(40), build=True)

        assert model.calls[0] == ("build", 40)
        assert not any(c[0] == "update" for c in model.calls)
        assert len(result.trace) == 1
        assert result.info["Scheme"] == "holdout"
        assert result.stats["N"] == 20
        assert result.initial_instances == 40

    def test_numeric_threshold_option(self):
        harness = BatchHarness(RecordingModel(), make_config(threshold="0.2"))
        result = harness.run(make_stream(10), build=False)
        assert result.thresholds.values == (0.2,)

    def test_calibration_option_uses_default(self):
        harness = BatchHarness(RecordingModel(), make_config(threshold="PCutL"))
        result = harness.run(make_stream(10), build=False)
        assert result.thresholds.values == (0.5,)

    def test_test_failure(self):
        harness = BatchHarness(FailingModel(fail_on=3), make_config())
        with pytest.raises(ModelError) as excinfo:
            harness.run(make_stream(10), build=False)
        assert excinfo.value.instance_index == 3
        assert excinfo.value.phase == "test"

    def test_predict_failure_is_a_model_error(self):
        harness = BatchHarness(FailingModel(fail_on=4), make_config())
        with pytest.raises(ModelError) as excinfo:
            harness.predict(make_stream(10))
        assert excinfo.value.instance_index == 4
        assert excinfo.value.phase == "test"

    def test_build_requires_train(self):
        with pytest.raises(ValueError):
            BatchHarness(RecordingModel(), make_config()).run(make_stream(10), build=True)


class TestEvaluateModel:

    def test_nothing_to_evaluate(self):
        with pytest.raises(ConfigurationError):
            evaluate_model(RecordingModel(), make_config())

    def test_test_only_requires_prebuilt_model(self):
        with pytest.raises(ConfigurationError, match="prebuilt"):
            evaluate_model(RecordingModel(), make_config(), test=make_stream(10))

    def test_test_only_with_prebuilt_model(self):
        model = RecordingModel()
        result = evaluate_model(model, make_config(), test=make_stream(10), prebuilt=True)
        assert result.info["Scheme"] == "holdout"
        assert not any(c[0] == "build" for c in model.calls)

    def test_stream_only(self):
        result = evaluate_model(RecordingModel(), make_config(num_windows=10), train=make_stream(100))
        assert result.info["Scheme"] == "windowed"
        assert len(result.trace) == 9

    def test_held_out_supersedes_stream_result(self):
        model = RecordingModel()
        result = evaluate_model(model, make_config(num_windows=10), train=make_stream(100), test=make_stream(30))
        assert result.info["Scheme"] == "holdout"
        assert result.stats["N"] == 30
        # stream ran first: one build, 90 updates
        assert sum(c[0] == "build" for c in model.calls) == 1
        assert sum(c[0] == "update" for c in model.calls) == 90

    def test_non_incremental_model_with_test_set(self):
        model = BatchOnlyModel()
        result = evaluate_model(model, make_config(num_windows=10), train=make_stream(100), test=make_stream(30))
        assert result.info["Scheme"] == "holdout"
        assert model.calls[0] == ("build", 100)

    def test_no_eval_returns_none(self):
        model = RecordingModel()
        config = make_config(num_windows=10).resolve({"output.no_eval": True})
        assert evaluate_model(model, config, train=make_stream(50), test=make_stream(10)) is None
        assert not any(c[0] == "test" for c in model.calls)

    def test_header_mismatch(self):
        stored = DatasetHeader.default(n_features=2, n_labels=4)
        with pytest.raises(ConfigurationError, match="not compatible"):
            evaluate_model(RecordingModel(), make_config(), train=make_stream(50), stored_header=stored)

    def test_matching_header_accepted(self):
        stored = DatasetHeader.default(n_features=2, n_labels=3)
        result = evaluate_model(
            RecordingModel(), make_config(), test=make_stream(10),
            prebuilt=True, stored_header=stored,
        )
        assert result is not None

    def test_predictions_written(self, tmp_path):
        path = tmp_path / "preds" / "out.csv"
        config = make_config(num_windows=10).resolve({"output.predictions_path": str(path)})
        evaluate_model(RecordingModel(), config, train=make_stream(100), test=make_stream(12))
        df = pd.read_csv(path)
        assert len(df) == 12
        assert list(df.columns[:2]) == ["y_true_y0", "y_pred_y0"]

    def test_predictions_without_test_set(self, tmp_path, capsys):
        path = tmp_path / "out.csv"
        config = make_config(num_windows=10).resolve({"output.predictions_path": str(path)})
        evaluate_model(RecordingModel(), config, train=make_stream(100))
        assert not path.exists()
        assert "No test set provided" in capsys.readouterr().out
