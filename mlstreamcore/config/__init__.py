from mlstreamcore.config.schema import (
    DataConfig,
    EvaluationConfig,
    ModelConfig,
    OutputConfig,
    StreamConfig,
    ThresholdConfig,
)

__all__ = [
    "DataConfig", "EvaluationConfig", "ModelConfig",
    "OutputConfig", "StreamConfig", "ThresholdConfig",
]
