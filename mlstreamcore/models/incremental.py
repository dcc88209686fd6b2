from __future__ import annotations

from collections import Counter
from typing import Optional, Sequence

import numpy as np
from sklearn.linear_model import SGDClassifier

from mlstreamcore.data.instance import Instance
from mlstreamcore.errors import ModelBuildError
from mlstreamcore.models.base import StreamModel
from mlstreamcore.tasks import Capability


def _check_window(model: StreamModel, training_window: Sequence[Instance]) -> int:
    if len(training_window) == 0:
        raise ModelBuildError(f"{type(model).__name__}: cannot build on an empty training window.")
    n_labels = training_window[0].n_labels
    if n_labels == 0:
        raise ModelBuildError(f"{type(model).__name__}: instances carry no labels.")
    return n_labels


# ---------------------------------------------------------------------------
# Binary relevance over incremental logistic regressions
# ---------------------------------------------------------------------------

class BinaryRelevanceSGD(StreamModel):
    """
    One SGD logistic regression per label, updated with partial_fit.

    Masked instances are ignored on update. Until a label has been seen in
    both classes its score is the running positive rate (0.5 before any
    observation).
    """

    capabilities = Capability.MULTI_LABEL | Capability.INCREMENTAL

    def __init__(
        self,
        alpha: float = 1e-4,
        build_passes: int = 5,
        random_state: Optional[int] = None,
    ) -> None:
        self.alpha = alpha
        self.build_passes = build_passes
        self.random_state = random_state
        self._estimators: list[SGDClassifier] = []
        self._positives = np.zeros(0)
        self._counts = np.zeros(0)

    def _new_estimator(self) -> SGDClassifier:
        return SGDClassifier(loss="log_loss", alpha=self.alpha, random_state=self.random_state)

    def build(self, training_window: Sequence[Instance]) -> None:
        n_labels = _check_window(self, training_window)
        X = np.vstack([inst.features for inst in training_window])
        Y = np.vstack([inst.labels for inst in training_window])

        self._estimators = [self._new_estimator() for _ in range(n_labels)]
        self._positives = np.zeros(n_labels)
        self._counts = np.zeros(n_labels)
        for j in range(n_labels):
            rows = ~np.isnan(Y[:, j])
            if not rows.any():
                continue
            self._positives[j] = Y[rows, j].sum()
            self._counts[j] = rows.sum()
            for _ in range(self.build_passes):
                self._estimators[j].partial_fit(X[rows], Y[rows, j].astype(int), classes=[0, 1])

    def test(self, instance: Instance) -> np.ndarray:
        x = instance.features.reshape(1, -1)
        out = np.full(len(self._estimators), 0.5)
        for j, est in enumerate(self._estimators):
            pos, n = self._positives[j], self._counts[j]
            if 0 < pos < n:
                out[j] = est.predict_proba(x)[0, 1]
            elif n > 0:
                out[j] = pos / n
        return out

    def update(self, instance: Instance, labels_masked: bool) -> None:
        if labels_masked:
            return
        x = instance.features.reshape(1, -1)
        for j, y in enumerate(instance.labels):
            if np.isnan(y):
                continue
            self._estimators[j].partial_fit(x, [int(y)], classes=[0, 1])
            self._positives[j] += y
            self._counts[j] += 1

    def describe(self) -> dict:
        info = super().describe()
        info.update({
            "alpha": self.alpha,
            "build_passes": self.build_passes,
            "random_state": self.random_state,
        })
        return info


# ---------------------------------------------------------------------------
# Label prior
# ---------------------------------------------------------------------------

class LabelFrequencyModel(StreamModel):
    """
    Predicts the running (Laplace-smoothed) marginal frequency of each
    label, ignoring the features. Useful as a baseline.
    """

    capabilities = Capability.MULTI_LABEL | Capability.INCREMENTAL

    def __init__(self, smoothing: float = 1.0) -> None:
        self.smoothing = smoothing
        self._positives: Optional[np.ndarray] = None
        self._counts: Optional[np.ndarray] = None

    def build(self, training_window: Sequence[Instance]) -> None:
        n_labels = _check_window(self, training_window)
        self._positives = np.zeros(n_labels)
        self._counts = np.zeros(n_labels)
        for inst in training_window:
            self._absorb(inst.labels)

    def _absorb(self, labels: np.ndarray) -> None:
        seen = ~np.isnan(labels)
        self._positives[seen] += labels[seen]
        self._counts[seen] += 1

    def test(self, instance: Instance) -> np.ndarray:
        s = self.smoothing
        return (self._positives + s) / (self._counts + 2 * s)

    def update(self, instance: Instance, labels_masked: bool) -> None:
        if not labels_masked:
            self._absorb(instance.labels)

    def describe(self) -> dict:
        info = super().describe()
        info["smoothing"] = self.smoothing
        return info


# ---------------------------------------------------------------------------
# Multi-target majority
# ---------------------------------------------------------------------------

class MajorityTargetModel(StreamModel):
    """Predicts the running most frequent value of each target."""

    capabilities = Capability.MULTI_TARGET | Capability.INCREMENTAL

    def __init__(self) -> None:
        self._counters: list[Counter] = []

    def build(self, training_window: Sequence[Instance]) -> None:
        n_labels = _check_window(self, training_window)
        self._counters = [Counter() for _ in range(n_labels)]
        for inst in training_window:
            self._absorb(inst.labels)

    def _absorb(self, labels: np.ndarray) -> None:
        for counter, y in zip(self._counters, labels):
            if not np.isnan(y):
                counter[float(y)] += 1

    def test(self, instance: Instance) -> np.ndarray:
        out = np.zeros(len(self._counters))
        for j, counter in enumerate(self._counters):
            if counter:
                # ties resolve to the smallest value
                out[j] = min(counter.items(), key=lambda kv: (-kv[1], kv[0]))[0]
        return out

    def update(self, instance: Instance, labels_masked: bool) -> None:
        if not labels_masked:
            self._absorb(instance.labels)
