from mlstreamcore.errors import ConfigurationError
from mlstreamcore.training.schemes.base import BaseWindowScheme, WindowPlan
from mlstreamcore.training.schemes.holdout import BatchHarness
from mlstreamcore.training.schemes.prequential import PrequentialScheme
from mlstreamcore.training.schemes.windowed import WindowedScheme


def get_scheme(name: str) -> type[BaseWindowScheme]:
    if name == "windowed":
        return WindowedScheme
    elif name == "prequential":
        return PrequentialScheme
    else:
        raise ConfigurationError(
            f"Unknown evaluation scheme '{name}'. "
            "Expected 'windowed' or 'prequential'."
        )


__all__ = [
    "BaseWindowScheme", "WindowPlan",
    "WindowedScheme", "PrequentialScheme", "BatchHarness",
    "get_scheme",
]
