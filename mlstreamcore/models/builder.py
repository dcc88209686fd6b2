from __future__ import annotations

from mlstreamcore.config.schema import EvaluationConfig
from mlstreamcore.errors import ConfigurationError
from mlstreamcore.models.base import StreamModel
from mlstreamcore.models.incremental import (
    BinaryRelevanceSGD,
    LabelFrequencyModel,
    MajorityTargetModel,
)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

MODEL_REGISTRY: dict[str, type[StreamModel]] = {
    "binary_relevance_sgd": BinaryRelevanceSGD,
    "label_frequency": LabelFrequencyModel,
    "majority_target": MajorityTargetModel,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_model(config: EvaluationConfig) -> StreamModel:
    """
    Instantiate (but do not build) the model named in config.model.

    Args:
        config: Resolved EvaluationConfig.

    Returns:
        An unbuilt StreamModel; the driver calls build() on the first window.
    """
    mc = config.model
    if mc.name not in MODEL_REGISTRY:
        available = ", ".join(MODEL_REGISTRY.keys())
        raise ConfigurationError(f"Unknown model '{mc.name}'. Available: {available}")
    try:
        return MODEL_REGISTRY[mc.name](**mc.kwargs)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid kwargs for model '{mc.name}': {exc}") from exc
