from __future__ import annotations

import os
import random
from typing import Optional

import numpy as np


def resolve_seed(seed: Optional[int]) -> int:
    """The requested seed, or a fresh one to be logged and stored in the manifest."""
    if seed is not None:
        return seed
    return random.SystemRandom().randint(0, 2**31 - 1)


def set_global_seed(seed: int) -> None:
    """
    Set Python's and NumPy's global seeds.

    The evaluation engine itself is deterministic (no sampling anywhere in
    the supervision schedule or calibration); the seed only matters for
    models that draw random numbers, e.g. SGD weight shuffling. Reference
    models also take it explicitly through ModelConfig.kwargs["random_state"].
    """
    os.environ["PYTHONHASHSEED"] = str(seed)
    random.seed(seed)
    np.random.seed(seed)
