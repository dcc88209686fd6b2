from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

import numpy as np


LABEL_KINDS: frozenset[str] = frozenset({"binary", "categorical"})


def _frozen_array(values) -> np.ndarray:
    arr = np.array(values, dtype=float).reshape(-1)
    arr.setflags(write=False)
    return arr


# ---------------------------------------------------------------------------
# Instance
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Instance:
    """
    One stream element: a feature vector of length d and a label vector of
    length L. Missing label slots are NaN.

    Both arrays are copied and made read-only on construction, so an
    Instance can be shared freely between the driver, the aggregator and
    the model.
    """
    features: np.ndarray
    labels: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "features", _frozen_array(self.features))
        object.__setattr__(self, "labels", _frozen_array(self.labels))

    @property
    def n_labels(self) -> int:
        return int(self.labels.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.features.shape[0])

    @property
    def is_masked(self) -> bool:
        """True when every label slot is missing."""
        return bool(np.isnan(self.labels).all())


def mask(instance: Instance) -> Instance:
    """Return a NEW instance with every label slot set missing."""
    return replace(instance, labels=np.full(instance.n_labels, np.nan))


# ---------------------------------------------------------------------------
# Header
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DatasetHeader:
    """Column layout of a stream; used to check compatibility on resume."""
    feature_names: tuple[str, ...]
    label_names: tuple[str, ...]
    label_kind: str = "binary"
    name: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.label_kind not in LABEL_KINDS:
            raise ValueError(
                f"Unknown label_kind '{self.label_kind}'. "
                f"Expected one of: {', '.join(sorted(LABEL_KINDS))}"
            )

    @property
    def n_labels(self) -> int:
        return len(self.label_names)

    @property
    def n_features(self) -> int:
        return len(self.feature_names)

    @classmethod
    def default(cls, n_features: int, n_labels: int, label_kind: str = "binary") -> DatasetHeader:
        return cls(
            feature_names=tuple(f"x{j}" for j in range(n_features)),
            label_names=tuple(f"y{j}" for j in range(n_labels)),
            label_kind=label_kind,
        )

    def mismatch(self, other: DatasetHeader) -> Optional[str]:
        """Human-readable description of the first incompatibility, or None."""
        if self.label_names != other.label_names:
            return (
                f"Label columns differ: {list(self.label_names)} "
                f"vs {list(other.label_names)}"
            )
        if self.feature_names != other.feature_names:
            missing = [c for c in self.feature_names if c not in other.feature_names]
            extra   = [c for c in other.feature_names if c not in self.feature_names]
            if not missing and not extra:
                return "Feature columns are in a different order."
            return f"Feature columns differ: missing={missing} extra={extra}"
        if self.label_kind != other.label_kind:
            return f"Label kind differs: {self.label_kind} vs {other.label_kind}"
        return None
