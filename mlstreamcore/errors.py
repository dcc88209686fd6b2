from __future__ import annotations

from typing import Any, Optional


class ConfigurationError(ValueError):
    """
    Raised before a run starts when the requested evaluation cannot be
    carried out (window too small for the supervision ratio, missing
    model capability, incompatible dataset headers, ...).
    """


class ModelError(RuntimeError):
    """
    A model's build/test/update call failed and the run was aborted.

    Attributes:
        phase:          "build", "test" or "update".
        instance_index: Absolute stream index of the offending instance
                        (None for build failures).
        partial_trace:  PerformanceTrace accumulated up to the failure.
                        Diagnostic only, never an authoritative result.
        options_report: The model's describe() output.
    """

    def __init__(
        self,
        message: str,
        *,
        phase: str = "update",
        instance_index: Optional[int] = None,
        partial_trace: Any = None,
        options_report: Optional[dict] = None,
    ) -> None:
        super().__init__(message)
        self.phase = phase
        self.instance_index = instance_index
        self.partial_trace = partial_trace
        self.options_report = options_report or {}


class ModelBuildError(ModelError):
    """Initial build failed (e.g. degenerate training window)."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("phase", "build")
        super().__init__(message, **kwargs)
