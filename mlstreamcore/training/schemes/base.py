from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from mlstreamcore.config.schema import EvaluationConfig
from mlstreamcore.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Plan dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WindowPlan:
    """
    How a stream of length N is consumed.

    initial_size:      instances used for the initial build (W).
    windows:           consecutive (start, stop) ranges over the remainder
                       stream; together they cover [0, N - W) exactly once.
    snapshot_last:     False when the last range is a leftover tail that
                       is processed but not sampled.
    reset_each_window: clear the aggregator after each snapshot.
    recalibrate:       recalibrate thresholds after each snapshot.
    """
    initial_size: int
    windows: tuple[tuple[int, int], ...]
    snapshot_last: bool = True
    reset_each_window: bool = True
    recalibrate: bool = True

    @property
    def remainder_size(self) -> int:
        return self.windows[-1][1] if self.windows else 0

    @property
    def n_snapshots(self) -> int:
        return len(self.windows) - (0 if self.snapshot_last else 1)

    def is_sampled(self, window_idx: int) -> bool:
        return self.snapshot_last or window_idx < len(self.windows) - 1


# ---------------------------------------------------------------------------
# Base scheme
# ---------------------------------------------------------------------------

class BaseWindowScheme(ABC):
    """A windowing policy: turns a stream length into a WindowPlan."""

    name: str = "base"

    def __init__(self, config: EvaluationConfig) -> None:
        self.config = config

    def _window_size(self, n_total: int) -> int:
        sc = self.config.stream
        if sc.window_size is not None:
            return sc.window_size
        return n_total // sc.num_windows

    def _check(self, n_total: int, window_size: int) -> None:
        if window_size < 1:
            raise ConfigurationError(
                f"Window size is {window_size} for a stream of {n_total} instances "
                f"({self.config.stream.num_windows} windows); the stream is too short."
            )
        if n_total - window_size < 1:
            raise ConfigurationError(
                f"No instances left after the initial window of {window_size} "
                f"(stream length {n_total})."
            )

    @abstractmethod
    def plan(self, n_total: int) -> WindowPlan:
        """
        Args:
            n_total: Stream length N, including the initial window.

        Returns:
            WindowPlan for the run.

        Raises:
            ConfigurationError: if the stream cannot be windowed.
        """
        ...
