from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

from mlstreamcore.data.instance import Instance
from mlstreamcore.tasks import Capability


class StreamModel(ABC):
    """
    The only contract the evaluation engine relies on.

    Subclasses declare `capabilities`; the driver checks them instead of
    inspecting concrete classes.
    """

    capabilities: Capability = Capability.MULTI_LABEL

    @abstractmethod
    def build(self, training_window: Sequence[Instance]) -> None:
        """
        Fit the initial model on the first window.

        Raises:
            ModelBuildError: on malformed input, e.g. an empty window.
        """
        ...

    @abstractmethod
    def test(self, instance: Instance) -> np.ndarray:
        """
        Length-L prediction for `instance` (probabilities for multi-label,
        class values for multi-target). Must not change model state.
        """
        ...

    def update(self, instance: Instance, labels_masked: bool) -> None:
        """
        Incorporate one instance. Masked instances (all labels NaN) must be
        tolerated. Only models declaring INCREMENTAL need to override this.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support incremental updates.")

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def describe(self) -> dict:
        """Options report for result info and error diagnostics."""
        return {
            "classifier": type(self).__name__,
            "capabilities": str(self.capabilities),
        }
