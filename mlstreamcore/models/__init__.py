from mlstreamcore.models.base import StreamModel
from mlstreamcore.models.builder import MODEL_REGISTRY, build_model
from mlstreamcore.models.incremental import (
    BinaryRelevanceSGD,
    LabelFrequencyModel,
    MajorityTargetModel,
)

__all__ = [
    "StreamModel", "MODEL_REGISTRY", "build_model",
    "BinaryRelevanceSGD", "LabelFrequencyModel", "MajorityTargetModel",
]
