from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional, Sequence, Union, overload

import numpy as np
import pandas as pd

from mlstreamcore.data.instance import DatasetHeader, Instance
from mlstreamcore.errors import ConfigurationError


class InstanceStream(Sequence[Instance]):
    """
    Finite, ordered sequence of Instances sharing one DatasetHeader.

    Slicing returns a new stream over the same (immutable) instances.
    """

    def __init__(self, instances: Sequence[Instance], header: DatasetHeader) -> None:
        self._instances: tuple[Instance, ...] = tuple(instances)
        self.header = header
        for idx, inst in enumerate(self._instances):
            if inst.n_labels != header.n_labels:
                raise ValueError(
                    f"Instance {idx} has {inst.n_labels} labels, "
                    f"header declares {header.n_labels}."
                )

    # ------------------------------------------------------------------
    # Sequence protocol
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._instances)

    def __iter__(self) -> Iterator[Instance]:
        return iter(self._instances)

    @overload
    def __getitem__(self, idx: int) -> Instance: ...
    @overload
    def __getitem__(self, idx: slice) -> InstanceStream: ...

    def __getitem__(self, idx):
        if isinstance(idx, slice):
            return InstanceStream(self._instances[idx], self.header)
        return self._instances[idx]

    def __repr__(self) -> str:
        return (
            f"InstanceStream(name={self.name!r}, N={len(self)}, "
            f"d={self.header.n_features}, L={self.n_labels})"
        )

    # ------------------------------------------------------------------
    # Properties / bulk access
    # ------------------------------------------------------------------

    @property
    def n_labels(self) -> int:
        return self.header.n_labels

    @property
    def name(self) -> str:
        return self.header.name or "stream"

    def label_matrix(self) -> np.ndarray:
        if not self._instances:
            return np.empty((0, self.n_labels))
        return np.vstack([inst.labels for inst in self._instances])

    def feature_matrix(self) -> np.ndarray:
        if not self._instances:
            return np.empty((0, self.header.n_features))
        return np.vstack([inst.features for inst in self._instances])

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_arrays(
        cls,
        X: np.ndarray,
        Y: np.ndarray,
        header: Optional[DatasetHeader] = None,
    ) -> InstanceStream:
        X = np.asarray(X, dtype=float)
        Y = np.asarray(Y, dtype=float)
        if X.ndim != 2 or Y.ndim != 2:
            raise ValueError("X and Y must both be 2-D arrays.")
        if len(X) != len(Y):
            raise ValueError(f"X has {len(X)} rows but Y has {len(Y)}.")
        if header is None:
            header = DatasetHeader.default(X.shape[1], Y.shape[1], label_kind=_infer_label_kind(Y))
        return cls([Instance(x, y) for x, y in zip(X, Y)], header)

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        label_cols: Optional[list[str]] = None,
        n_labels: Optional[int] = None,
        id_col: Optional[str] = None,
        name: Optional[str] = None,
    ) -> InstanceStream:
        """
        Build a stream from a DataFrame in row order.

        Label columns are either named explicitly (label_cols) or taken as
        the first n_labels columns (after dropping id_col). Everything else
        is a feature column.
        """
        cols = [c for c in df.columns if c != id_col]
        if label_cols:
            unknown = [c for c in label_cols if c not in df.columns]
            if unknown:
                raise ConfigurationError(f"Label columns not found in data: {unknown}")
        elif n_labels:
            label_cols = cols[:n_labels]
        else:
            raise ConfigurationError("Either label_cols or n_labels must be given.")

        feature_cols = [c for c in cols if c not in label_cols]
        Y = df[label_cols].to_numpy(dtype=float)
        X = df[feature_cols].to_numpy(dtype=float)
        header = DatasetHeader(
            feature_names=tuple(str(c) for c in feature_cols),
            label_names=tuple(str(c) for c in label_cols),
            label_kind=_infer_label_kind(Y),
            name=name,
        )
        return cls.from_arrays(X, Y, header=header)


def _infer_label_kind(Y: np.ndarray) -> str:
    observed = Y[~np.isnan(Y)]
    if observed.size and not np.isin(observed, (0.0, 1.0)).all():
        return "categorical"
    return "binary"


def load_csv(
    path: Union[str, Path],
    label_cols: Optional[list[str]] = None,
    n_labels: Optional[int] = None,
    id_col: Optional[str] = None,
) -> InstanceStream:
    df = pd.read_csv(path)
    return InstanceStream.from_dataframe(
        df, label_cols=label_cols, n_labels=n_labels, id_col=id_col, name=Path(path).stem,
    )


def check_compatible_header(stored: DatasetHeader, stream: InstanceStream, role: str = "training") -> None:
    """
    Raises ConfigurationError if `stream` does not match the header stored
    alongside a persisted model.
    """
    msg = stored.mismatch(stream.header)
    if msg is not None:
        raise ConfigurationError(
            f"New {role} data is not compatible with the stored training header:\n{msg}"
        )
