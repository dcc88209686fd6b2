from __future__ import annotations

from mlstreamcore.training.schemes.base import BaseWindowScheme, WindowPlan


class WindowedScheme(BaseWindowScheme):
    """
    Fixed-count windows.

    The stream is cut into windows of W = floor(N / num_windows) (or the
    configured window_size). The first window builds the model; the
    remainder is evaluated window by window with a snapshot, threshold
    recalibration and aggregator reset after each. The last window absorbs
    the leftover instances when N is not a multiple of W.
    """

    name = "windowed"

    def plan(self, n_total: int) -> WindowPlan:
        W = self._window_size(n_total)
        self._check(n_total, W)
        remainder = n_total - W

        if self.config.stream.window_size is not None:
            n_windows = max(1, remainder // W)
        else:
            n_windows = self.config.stream.num_windows - 1

        windows = [(w * W, (w + 1) * W) for w in range(n_windows)]
        last_start = windows[-1][0]
        windows[-1] = (last_start, remainder)

        return WindowPlan(
            initial_size=W,
            windows=tuple(windows),
            snapshot_last=True,
            reset_each_window=True,
            recalibrate=self.config.threshold.recalibrate,
        )
