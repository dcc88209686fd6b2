from __future__ import annotations

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    f1_score,
    log_loss,
    precision_score,
    recall_score,
    roc_auc_score,
)

from mlstreamcore.tasks import Task


_PHASES: frozenset[str] = frozenset({"test", "train"})

# Headline measures, printed per window when the driver logs progress.
HEADLINE_MEASURES: tuple[str, ...] = ("Accuracy", "Exact match", "Hamming score")


def compute_stats(result, verbosity: int = 3, phase: str = "test") -> dict:
    """
    Compute named metrics for the predictions buffered in `result`.

    Args:
        result:    Anything exposing prediction_matrix(), actual_matrix(),
                   task (Task) and thresholds (ThresholdVector); in
                   practice a RunningResult.
        verbosity: 1 = headline measures, 2 = + averaged F1 / cardinality,
                   3 = + precision/recall/log loss/AUROC, 4+ = per-label.
        phase:     "test" or "train"; metrics are identical for both, the
                   phase only labels where the predictions came from.

    Returns:
        dict of metric name -> value. Rows whose true labels are entirely
        missing are excluded.
    """
    if phase not in _PHASES:
        raise ValueError(f"Unknown phase '{phase}'. Expected one of: {', '.join(sorted(_PHASES))}")

    P = result.prediction_matrix()
    Y = result.actual_matrix()
    if len(P) == 0:
        return {"N": 0}

    observed = ~np.isnan(Y).all(axis=1)
    P, Y = P[observed], Y[observed]
    if len(P) == 0:
        return {"N": 0}

    if result.task == Task.MULTI_TARGET:
        return _multi_target_stats(Y, P, verbosity)

    thresholds = result.thresholds.broadcast(Y.shape[1])
    return _multi_label_stats(Y, P, thresholds, verbosity)


# ---------------------------------------------------------------------------
# Multi-label
# ---------------------------------------------------------------------------

def _multi_label_stats(Y: np.ndarray, P: np.ndarray, thresholds: np.ndarray, verbosity: int) -> dict:
    # missing label slots (NaN) are left out of every measure
    observed = ~np.isnan(Y)
    y_true = np.nan_to_num(Y, nan=0.0).astype(int)
    y_pred = (P >= thresholds).astype(int)
    n_labels = y_true.shape[1]

    agree = (y_true == y_pred) | ~observed
    true_set = (y_true == 1) & observed
    pred_set = (y_pred == 1) & observed
    union = (true_set | pred_set).sum(axis=1)
    inter = (true_set & pred_set).sum(axis=1)
    # empty true and empty predicted label sets count as a perfect match
    jaccard = np.where(union > 0, inter / np.maximum(union, 1), 1.0)

    flat_true, flat_pred = y_true[observed], y_pred[observed]
    hamming_score = float(accuracy_score(flat_true, flat_pred))

    stats: dict = {
        "Accuracy": float(jaccard.mean()),
        "Exact match": float(agree.all(axis=1).mean()),
        "Hamming score": hamming_score,
        "N": int(len(y_true)),
    }
    if verbosity < 2:
        return stats

    columns = [observed[:, j] for j in range(n_labels)]
    per_label_f1 = np.array([
        f1_score(y_true[rows, j], y_pred[rows, j], zero_division=0) if rows.any() else np.nan
        for j, rows in enumerate(columns)
    ])

    # micro averages over a label matrix are binary measures over its observed slots
    stats.update({
        "Hamming loss": 1.0 - hamming_score,
        "F1 (micro)": float(f1_score(flat_true, flat_pred, zero_division=0)),
        "F1 (macro)": float(np.nanmean(per_label_f1)) if np.isfinite(per_label_f1).any() else 0.0,
        "Label cardinality (true)": float(true_set.sum(axis=1).mean()),
        "Label cardinality (pred)": float(pred_set.sum(axis=1).mean()),
    })
    if verbosity < 3:
        return stats

    stats["Precision (micro)"] = float(precision_score(flat_true, flat_pred, zero_division=0))
    stats["Recall (micro)"] = float(recall_score(flat_true, flat_pred, zero_division=0))

    P_clipped = np.clip(P, 0.0, 1.0)
    stats["Log loss"] = float(np.mean([
        log_loss(y_true[rows, j], P_clipped[rows, j], labels=[0, 1])
        for j, rows in enumerate(columns)
        if rows.any()
    ]))

    # AUROC is undefined for labels that only show one class in this window
    aucs = [
        roc_auc_score(y_true[rows, j], P[rows, j])
        for j, rows in enumerate(columns)
        if len(np.unique(y_true[rows, j])) == 2
    ]
    if aucs:
        stats["AUROC (macro)"] = float(np.mean(aucs))
    if verbosity < 4:
        return stats

    for j, rows in enumerate(columns):
        stats[f"Accuracy[{j}]"] = float((y_pred[rows, j] == y_true[rows, j]).mean()) if rows.any() else float("nan")
        stats[f"F1[{j}]"] = float(per_label_f1[j])
    return stats


# ---------------------------------------------------------------------------
# Multi-target
# ---------------------------------------------------------------------------

def _multi_target_stats(Y: np.ndarray, P: np.ndarray, verbosity: int) -> dict:
    observed = ~np.isnan(Y)
    y_true = np.nan_to_num(Y, nan=-1.0).round().astype(int)
    y_pred = np.nan_to_num(P, nan=-1.0).round().astype(int)

    correct = (y_true == y_pred) | ~observed
    per_target = np.array([
        accuracy_score(y_true[observed[:, j], j], y_pred[observed[:, j], j])
        if observed[:, j].any() else np.nan
        for j in range(y_true.shape[1])
    ])

    hamming = float(np.nanmean(per_target)) if np.isfinite(per_target).any() else 0.0
    stats: dict = {
        "Accuracy": hamming,
        "Exact match": float(correct.all(axis=1).mean()),
        "Hamming score": hamming,
        "N": int(len(y_true)),
    }
    if verbosity >= 4:
        for j, acc in enumerate(per_target):
            stats[f"Accuracy[{j}]"] = float(acc)
    return stats
