from __future__ import annotations

import numpy as np

from mlstreamcore.errors import ConfigurationError


def _check_ratio(r: float) -> None:
    if not (0.0 < r <= 1.0):
        raise ConfigurationError(f"Supervision ratio must be in (0, 1], got {r}.")


def labeling_stride(r: float) -> int:
    """
    Sampling stride for ratio r.

    r < 0.5  -> every stride-th instance is revealed, stride = round(1/r)
    r >= 0.5 -> every stride-th instance is withheld, stride = round(1/(1-r))
    r == 1.0 -> 0 (nothing is withheld)
    """
    _check_ratio(r)
    if r == 1.0:
        return 0
    if r < 0.5:
        return max(1, int(round(1.0 / r)))
    return max(1, int(round(1.0 / (1.0 - r))))


def is_labeled(i: int, r: float) -> bool:
    """
    Whether the label of remainder instance i is revealed to the model
    before its update. Deterministic in (i, r).
    """
    stride = labeling_stride(r)
    if stride == 0:
        return True
    if r < 0.5:
        return i % stride == 0
    return i % stride != 0


class SupervisionSchedule:
    """Stateless labelled/unlabelled decision for a fixed ratio r."""

    def __init__(self, ratio: float = 1.0) -> None:
        _check_ratio(ratio)
        self.ratio = float(ratio)
        self.stride = labeling_stride(self.ratio)

    def __repr__(self) -> str:
        return f"SupervisionSchedule(ratio={self.ratio}, stride={self.stride})"

    def is_labeled(self, i: int) -> bool:
        return is_labeled(i, self.ratio)

    def labeled_mask(self, n: int) -> np.ndarray:
        """Boolean vector of is_labeled(i) for i in range(n)."""
        idx = np.arange(n)
        if self.stride == 0:
            return np.ones(n, dtype=bool)
        if self.ratio < 0.5:
            return idx % self.stride == 0
        return idx % self.stride != 0

    def validate_window(self, window_size: int) -> None:
        """A window must contain at least one labelled instance: r * W >= 1."""
        # tolerance for ratios like 1/3 that are not exact in binary
        if self.ratio * window_size < 1.0 - 1e-9:
            raise ConfigurationError(
                f"The ratio of labelled instances ({self.ratio}) is too small "
                f"given the window size ({window_size}): "
                f"{self.ratio} * {window_size} < 1."
            )
