from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from mlstreamcore.errors import ConfigurationError

_log = logging.getLogger(__name__)


SINGLE = "single"
PER_LABEL = "per-label"

# threshold option string -> calibration mode
_CALIBRATION_OPTIONS: dict[str, str] = {
    "PCut1": SINGLE,
    "PCutL": PER_LABEL,
}


# ---------------------------------------------------------------------------
# ThresholdVector
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ThresholdVector:
    """
    Decision thresholds used to binarize probabilistic predictions for
    reporting. One value in single mode, L values in per-label mode.
    """
    mode: str
    values: tuple[float, ...]

    def __post_init__(self) -> None:
        if self.mode not in (SINGLE, PER_LABEL):
            raise ValueError(f"Unknown threshold mode '{self.mode}'.")
        if self.mode == SINGLE and len(self.values) != 1:
            raise ValueError("Single-mode ThresholdVector holds exactly one value.")
        object.__setattr__(self, "values", tuple(float(v) for v in self.values))

    @classmethod
    def initial(cls, mode: str, n_labels: int, value: float = 0.5) -> ThresholdVector:
        n = 1 if mode == SINGLE else n_labels
        return cls(mode=mode, values=(value,) * n)

    def broadcast(self, n_labels: int) -> np.ndarray:
        if self.mode == SINGLE:
            return np.full(n_labels, self.values[0])
        if len(self.values) != n_labels:
            raise ValueError(f"Have {len(self.values)} per-label thresholds, need {n_labels}.")
        return np.asarray(self.values)

    def __str__(self) -> str:
        return "[" + ", ".join(f"{v:.4g}" for v in self.values) + "]"


def parse_threshold_option(text: str, n_labels: int) -> ThresholdVector:
    """
    Initial ThresholdVector for a threshold option.

    "PCut1" -> single threshold starting at 0.5
    "PCutL" -> L per-label thresholds starting at 0.5
    number  -> single threshold starting at that value

    Whether the vector is later recalibrated is decided by the scheme and
    ThresholdConfig.recalibrate, not by the option.
    """
    text = str(text).strip()
    if text in _CALIBRATION_OPTIONS:
        return ThresholdVector.initial(_CALIBRATION_OPTIONS[text], n_labels)
    try:
        value = float(text)
    except ValueError:
        raise ConfigurationError(
            f"Invalid threshold option '{text}'. Expected a number, 'PCut1' or 'PCutL'."
        ) from None
    if not (0.0 <= value <= 1.0):
        raise ConfigurationError(f"Threshold {value} is outside [0, 1].")
    return ThresholdVector.initial(SINGLE, n_labels, value)


def numeric_threshold(text: str, default: float = 0.5) -> float:
    """The fixed threshold named by `text`, or `default` for calibration modes."""
    try:
        return float(text)
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Rank-based calibration
# ---------------------------------------------------------------------------

def _cut(scores: np.ndarray, k: int) -> Optional[float]:
    """
    Midpoint between the k-th and (k+1)-th largest score, or None when
    k leaves no positives or no negatives. NaN scores are ignored.
    """
    scores = scores[~np.isnan(scores)]
    total = scores.size
    if total == 0 or k <= 0 or k >= total:
        return None
    ranked = np.sort(scores)[::-1]
    t = 0.5 * (ranked[k - 1] + ranked[k])
    return float(np.clip(t, 0.0, 1.0))


def calibrate_single(predictions: np.ndarray, cardinality: float) -> Optional[float]:
    """
    PCut1: one threshold t such that binarizing all N x L scores at t
    yields round(cardinality * N) positives. None if ill-posed.

    NaN scores (slots whose label is missing) take no part; N counts the
    rows with at least one remaining score.
    """
    P = np.atleast_2d(np.asarray(predictions, dtype=float))
    n = int((~np.isnan(P)).any(axis=1).sum()) if P.size else 0
    if n == 0 or not np.isfinite(cardinality):
        return None
    k = int(round(cardinality * n))
    return _cut(P.ravel(), k)


def calibrate_per_label(predictions: np.ndarray, rates: Sequence[float]) -> np.ndarray:
    """
    PCutL: one threshold per label column matching that label's observed
    positive rate. Ill-posed columns (rate 0, rate 1, no data) are NaN.
    NaN scores are ignored column by column.
    """
    P = np.atleast_2d(np.asarray(predictions, dtype=float))
    rates = np.asarray(rates, dtype=float)
    out = np.full(rates.shape[0], np.nan)
    if P.size == 0:
        return out
    for j, rate in enumerate(rates):
        if not np.isfinite(rate):
            continue
        n = int((~np.isnan(P[:, j])).sum())
        t = _cut(P[:, j], int(round(rate * n)))
        if t is not None:
            out[j] = t
    return out


def label_cardinality(actuals: np.ndarray) -> float:
    """Mean number of positive labels per instance; missing labels ignored."""
    Y = np.atleast_2d(np.asarray(actuals, dtype=float))
    observed = ~np.isnan(Y).all(axis=1)
    if not observed.any():
        return float("nan")
    return float(np.nansum(Y[observed], axis=1).mean())


def label_rates(actuals: np.ndarray) -> np.ndarray:
    """Per-label positive rate; NaN where a label was never observed."""
    Y = np.atleast_2d(np.asarray(actuals, dtype=float))
    counts = (~np.isnan(Y)).sum(axis=0)
    sums = np.nansum(Y, axis=0)
    with np.errstate(invalid="ignore", divide="ignore"):
        return np.where(counts > 0, sums / np.maximum(counts, 1), np.nan)


# ---------------------------------------------------------------------------
# Calibrator
# ---------------------------------------------------------------------------

class ThresholdCalibrator:
    """
    Derives the next window's ThresholdVector from one window's predictions
    and ground truth. Degenerate windows keep the previous thresholds.
    """

    def __init__(self, mode: str = SINGLE) -> None:
        if mode not in (SINGLE, PER_LABEL):
            raise ValueError(f"Unknown calibration mode '{mode}'.")
        self.mode = mode

    def calibrate(
        self,
        predictions: np.ndarray,
        actuals: np.ndarray,
        previous: ThresholdVector,
    ) -> ThresholdVector:
        n_labels = np.atleast_2d(actuals).shape[1]
        # scores of missing labels take no part in the cut
        predictions = np.where(np.isnan(actuals), np.nan, predictions)

        if self.mode == SINGLE:
            t = calibrate_single(predictions, label_cardinality(actuals))
            if t is None:
                _log.warning("Degenerate window for single-threshold calibration; keeping %s", previous)
                return previous
            return ThresholdVector(mode=SINGLE, values=(t,))

        values = calibrate_per_label(predictions, label_rates(actuals))
        fallback = previous.broadcast(n_labels)
        degenerate = np.isnan(values)
        if degenerate.any():
            _log.warning(
                "Degenerate labels %s for per-label calibration; keeping previous thresholds there",
                np.flatnonzero(degenerate).tolist(),
            )
            values = np.where(degenerate, fallback, values)
        return ThresholdVector(mode=PER_LABEL, values=tuple(values))
