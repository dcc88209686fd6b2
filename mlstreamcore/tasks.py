from __future__ import annotations

from enum import Enum, Flag, auto

from mlstreamcore.errors import ConfigurationError


class Capability(Flag):
    """What a model declares it can do. The driver branches on these."""
    MULTI_LABEL = auto()
    MULTI_TARGET = auto()
    INCREMENTAL = auto()


class Task(Enum):
    MULTI_LABEL = "ML"
    MULTI_TARGET = "MT"


# ---------------------------------------------------------------------------
# label kind + declared capabilities -> Task
# ---------------------------------------------------------------------------

def resolve_task(capabilities: Capability, label_kind: str) -> Task:
    """
    Categorical label columns always mean a multi-target evaluation; binary
    columns are evaluated as multi-label unless the model only declares
    multi-target support.

    Raises ConfigurationError when the model cannot produce the required
    kind of output.
    """
    if label_kind == "categorical":
        if Capability.MULTI_TARGET not in capabilities:
            raise ConfigurationError(
                "Dataset has categorical targets but the model does not "
                "declare MULTI_TARGET capability."
            )
        return Task.MULTI_TARGET
    if Capability.MULTI_LABEL in capabilities:
        return Task.MULTI_LABEL
    if Capability.MULTI_TARGET in capabilities:
        return Task.MULTI_TARGET
    raise ConfigurationError(
        "Model declares neither MULTI_LABEL nor MULTI_TARGET capability."
    )
