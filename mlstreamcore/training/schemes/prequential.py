from __future__ import annotations

from mlstreamcore.training.schemes.base import BaseWindowScheme, WindowPlan


class PrequentialScheme(BaseWindowScheme):
    """
    Prequential-basic evaluation: statistics accumulated since the start of
    the remainder stream, sampled every window_size instances.

    No aggregator reset and no threshold recalibration; the sampled
    snapshots form the "results over time" trace and the final statistics
    cover every remainder instance, including a trailing partial block
    that is never sampled.
    """

    name = "prequential"

    def plan(self, n_total: int) -> WindowPlan:
        W = self._window_size(n_total)
        self._check(n_total, W)
        remainder = n_total - W

        n_full = remainder // W
        windows = [(w * W, (w + 1) * W) for w in range(n_full)]
        snapshot_last = True
        if remainder % W:
            windows.append((n_full * W, remainder))
            snapshot_last = False

        return WindowPlan(
            initial_size=W,
            windows=tuple(windows),
            snapshot_last=snapshot_last,
            reset_each_window=False,
            recalibrate=False,
        )
