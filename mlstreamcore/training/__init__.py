from mlstreamcore.training.driver import DriverState, EvaluationDriver, evaluate_model
from mlstreamcore.training.supervision import SupervisionSchedule, is_labeled, labeling_stride

__all__ = [
    "DriverState", "EvaluationDriver", "evaluate_model",
    "SupervisionSchedule", "is_labeled", "labeling_stride",
]
