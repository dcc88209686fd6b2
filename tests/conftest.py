# tests/conftest.py
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd
import pytest

from mlstreamcore.config.schema import EvaluationConfig
from mlstreamcore.data.instance import Instance
from mlstreamcore.data.stream import InstanceStream
from mlstreamcore.models.base import StreamModel
from mlstreamcore.tasks import Capability


# ---------------------------------------------------------------------------
# Streams
# ---------------------------------------------------------------------------

def make_stream(n: int, n_labels: int = 3) -> InstanceStream:
    """
    Feature 0 is the absolute stream index so models can report order.
    Each row has exactly one positive label: y[i, j] = (i + j) % n_labels == 0.
    """
    X = np.column_stack([np.arange(n, dtype=float), np.linspace(-1.0, 1.0, n)])
    Y = np.array([[float((i + j) % n_labels == 0) for j in range(n_labels)] for i in range(n)])
    return InstanceStream.from_arrays(X, Y)


def make_config(**stream_kwargs) -> EvaluationConfig:
    threshold = stream_kwargs.pop("threshold", "0.5")
    verbosity = stream_kwargs.pop("verbosity", 3)
    return EvaluationConfig.from_dict({
        "stream": stream_kwargs,
        "threshold": {"threshold": threshold},
        "verbosity": verbosity,
    })


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class RecordingModel(StreamModel):
    """
    Oracle-ish model that logs every call.

    test() scores true positives `pos` and true negatives `neg`, reading the
    labels of the instance it is given.
    """

    capabilities = Capability.MULTI_LABEL | Capability.INCREMENTAL

    def __init__(self, pos: float = 0.9, neg: float = 0.1) -> None:
        self.pos = pos
        self.neg = neg
        self.calls: list[tuple] = []

    def build(self, training_window: Sequence[Instance]) -> None:
        self.calls.append(("build", len(training_window)))

    def test(self, instance: Instance) -> np.ndarray:
        self.calls.append(("test", int(instance.features[0])))
        return np.where(instance.labels == 1.0, self.pos, self.neg)

    def update(self, instance: Instance, labels_masked: bool) -> None:
        self.calls.append(("update", int(instance.features[0]), labels_masked, instance.is_masked))

    def stream_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] != "build"]


class FailingModel(RecordingModel):
    """Raises on test/update of one absolute stream index, or on build."""

    def __init__(self, fail_on: Optional[int] = None, phase: str = "test") -> None:
        super().__init__()
        self.fail_on = fail_on
        self.phase = phase

    def build(self, training_window):
        if self.phase == "build":
            raise RuntimeError("cannot build")
        super().build(training_window)

    def test(self, instance):
        if self.phase == "test" and int(instance.features[0]) == self.fail_on:
            raise RuntimeError("boom in test")
        return super().test(instance)

    def update(self, instance, labels_masked):
        if self.phase == "update" and int(instance.features[0]) == self.fail_on:
            raise RuntimeError("boom in update")
        super().update(instance, labels_masked)


class BatchOnlyModel(RecordingModel):
    """Declares no INCREMENTAL capability."""
    capabilities = Capability.MULTI_LABEL


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def stream_100() -> InstanceStream:
    return make_stream(100, n_labels=3)


@pytest.fixture
def recording_model() -> RecordingModel:
    return RecordingModel()


@pytest.fixture
def stream_csv(tmp_path) -> str:
    """CSV with three leading label columns followed by two features."""
    stream = make_stream(60, n_labels=3)
    df = pd.DataFrame(
        np.column_stack([stream.label_matrix(), stream.feature_matrix()]),
        columns=["y0", "y1", "y2", "x0", "x1"],
    )
    path = tmp_path / "stream.csv"
    df.to_csv(path, index=False)
    return str(path)
