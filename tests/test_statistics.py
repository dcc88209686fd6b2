"""
Tests for the statistics collaborator.
"""

import numpy as np
import pytest

from mlstreamcore.evaluation.aggregator import RunningResult
from mlstreamcore.evaluation.statistics import HEADLINE_MEASURES, compute_stats
from mlstreamcore.evaluation.thresholds import PER_LABEL, SINGLE, ThresholdVector
from mlstreamcore.tasks import Task


def make_result(P, Y, task=Task.MULTI_LABEL, thresholds=None) -> RunningResult:
    P = np.asarray(P, dtype=float)
    Y = np.asarray(Y, dtype=float)
    thresholds = thresholds or ThresholdVector.initial(SINGLE, Y.shape[1])
    return RunningResult(
        n_labels=Y.shape[1],
        task=task,
        thresholds=thresholds,
        predictions=list(P),
        actuals=list(Y),
    )


class TestMultiLabel:
    """Multi-label measures."""

    def test_perfect_predictions(self):
        """All headline measures are 1.0 when every label is right."""
        Y = [[1, 0, 1], [0, 1, 0]]
        P = [[0.9, 0.1, 0.8], [0.2, 0.7, 0.3]]
        stats = compute_stats(make_result(P, Y), verbosity=1)
        for m in HEADLINE_MEASURES:
            assert stats[m] == pytest.approx(1.0)
        assert stats["N"] == 2

    def test_known_values(self):
        """Jaccard accuracy, exact match and hamming score on a small case."""
        Y = [[1, 1, 0], [0, 1, 0]]
        P = [[0.9, 0.2, 0.1], [0.1, 0.9, 0.1]]
        stats = compute_stats(make_result(P, Y), verbosity=1)
        # row 0: {0} vs {0, 1} -> 0.5; row 1: exact
        assert stats["Accuracy"] == pytest.approx(0.75)
        assert stats["Exact match"] == pytest.approx(0.5)
        assert stats["Hamming score"] == pytest.approx(5 / 6)

    def test_threshold_changes_binarization(self):
        """The same scores give different stats under a different threshold."""
        Y = [[1, 0], [1, 0]]
        P = [[0.6, 0.4], [0.6, 0.4]]
        low = compute_stats(make_result(P, Y, thresholds=ThresholdVector(SINGLE, (0.3,))), verbosity=1)
        mid = compute_stats(make_result(P, Y, thresholds=ThresholdVector(SINGLE, (0.5,))), verbosity=1)
        assert mid["Exact match"] == pytest.approx(1.0)
        assert low["Exact match"] == pytest.approx(0.0)

    def test_per_label_thresholds(self):
        """Per-label thresholds are applied column by column."""
        Y = [[1, 1]]
        P = [[0.6, 0.2]]
        t = ThresholdVector(PER_LABEL, (0.5, 0.1))
        stats = compute_stats(make_result(P, Y, thresholds=t), verbosity=1)
        assert stats["Exact match"] == pytest.approx(1.0)

    def test_verbosity_levels_add_measures(self):
        """Higher verbosity only adds measures."""
        rng = np.random.default_rng(0)
        Y = (rng.uniform(size=(40, 3)) > 0.5).astype(float)
        P = rng.uniform(size=(40, 3))
        result = make_result(P, Y)
        keys = [set(compute_stats(result, verbosity=v)) for v in (1, 2, 3, 4)]
        for lower, higher in zip(keys, keys[1:]):
            assert lower < higher
        assert "F1 (micro)" in keys[1]
        assert "Log loss" in keys[2]
        assert "AUROC (macro)" in keys[2]
        assert "Accuracy[2]" in keys[3]

    def test_fully_missing_rows_excluded(self):
        """Rows with every label missing do not count."""
        Y = [[1, 0], [np.nan, np.nan]]
        P = [[0.9, 0.1], [0.9, 0.9]]
        stats = compute_stats(make_result(P, Y), verbosity=1)
        assert stats["N"] == 1
        assert stats["Exact match"] == pytest.approx(1.0)

    def test_empty(self):
        """No predictions gives N = 0 only."""
        result = RunningResult(n_labels=3, task=Task.MULTI_LABEL, thresholds=ThresholdVector.initial(SINGLE, 3))
        assert compute_stats(result) == {"N": 0}

    def test_unknown_phase(self):
        """Phase must be test or train."""
        with pytest.raises(ValueError):
            compute_stats(make_result([[0.5]], [[1]]), phase="validation")


class TestMultiTarget:
    """Multi-target measures."""

    def test_accuracy_and_exact_match(self):
        """Per-target accuracy averaged; exact match over all targets."""
        Y = [[2, 0], [1, 1], [0, 1]]
        P = [[2, 0], [1, 0], [1, 1]]
        stats = compute_stats(make_result(P, Y, task=Task.MULTI_TARGET), verbosity=4)
        assert stats["Accuracy[0]"] == pytest.approx(2 / 3)
        assert stats["Accuracy[1]"] == pytest.approx(2 / 3)
        assert stats["Accuracy"] == pytest.approx(2 / 3)
        assert stats["Hamming score"] == pytest.approx(2 / 3)
        assert stats["Exact match"] == pytest.approx(1 / 3)


class TestPartiallyMissingLabels:
    """Missing slots in otherwise observed rows are left out of every measure."""

    def test_missing_slot_is_not_a_false_positive(self):
        Y = [[1, np.nan], [0, 1]]
        P = [[0.9, 0.9], [0.1, 0.8]]
        stats = compute_stats(make_result(P, Y), verbosity=4)
        assert stats["N"] == 2
        assert stats["Accuracy"] == pytest.approx(1.0)
        assert stats["Exact match"] == pytest.approx(1.0)
        assert stats["Hamming score"] == pytest.approx(1.0)
        assert stats["Precision (micro)"] == pytest.approx(1.0)
        assert stats["Label cardinality (pred)"] == pytest.approx(1.0)
        assert stats["Accuracy[1]"] == pytest.approx(1.0)

    def test_observed_errors_still_count(self):
        Y = [[1, np.nan], [0, 1]]
        P = [[0.1, 0.9], [0.1, 0.8]]
        stats = compute_stats(make_result(P, Y), verbosity=2)
        assert stats["Hamming score"] == pytest.approx(2 / 3)
        assert stats["Exact match"] == pytest.approx(0.5)
