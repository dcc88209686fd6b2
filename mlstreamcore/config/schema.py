from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from mlstreamcore.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class StreamConfig(BaseModel):
    # "windowed"    -> fixed-count windows with threshold recalibration
    # "prequential" -> cumulative statistics sampled every window_size
    scheme: str = "windowed"

    # Number of equal windows the stream is divided into. The first one is
    # consumed for the initial build.
    num_windows: int = Field(default=10, ge=2)

    # Fixed window size. When set it takes precedence over num_windows.
    window_size: Optional[int] = Field(default=None, ge=1)

    # Fraction of remainder instances whose labels are revealed before the
    # update step. 1.0 = full supervision.
    supervision: float = Field(default=1.0, gt=0.0, le=1.0)

    class Config:
        frozen = True


class ThresholdConfig(BaseModel):
    # A number ("0.5"), "PCut1" (single calibrated threshold) or
    # "PCutL" (one calibrated threshold per label).
    threshold: str = "0.5"

    # Recalibrate at every window boundary (windowed scheme only).
    # Thresholds are used for reporting, never fed back into the model.
    recalibrate: bool = True

    class Config:
        frozen = True

    @field_validator("threshold", mode="before")
    @classmethod
    def _coerce_threshold(cls, value: Any) -> str:
        # YAML gives 0.5 as a float
        return str(value)


class DataConfig(BaseModel):
    # Explicit label columns, or the first n_labels columns of the CSV.
    label_cols: List[str] = Field(default_factory=list)
    n_labels: Optional[int] = Field(default=None, ge=1)
    id_col: Optional[str] = None

    class Config:
        frozen = True


class ModelConfig(BaseModel):
    # Key into models.builder.MODEL_REGISTRY
    name: str = "binary_relevance_sgd"
    kwargs: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True


class OutputConfig(BaseModel):
    # Build + update only, no evaluation (e.g. unlabelled test data).
    no_eval: bool = False
    # CSV file for held-out test-set predictions. Requires a test set.
    predictions_path: Optional[str] = None
    # Write trace / summary CSVs under <output_dir>/summary
    write_trace: bool = True

    class Config:
        frozen = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

class EvaluationConfig(BaseModel):
    stream: StreamConfig = Field(default_factory=StreamConfig)
    threshold: ThresholdConfig = Field(default_factory=ThresholdConfig)
    verbosity: int = Field(default=3, ge=1)
    data: DataConfig = Field(default_factory=DataConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    class Config:
        frozen = True

    @classmethod
    def from_dict(cls, raw: dict) -> EvaluationConfig:
        """Validate a raw mapping; pydantic errors become ConfigurationError."""
        try:
            return cls(**(raw or {}))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid evaluation config:\n{exc}") from exc

    @classmethod
    def from_yaml(cls, path: str | Path) -> EvaluationConfig:
        """Load and validate a config from a YAML file."""
        with open(path) as f:
            raw = yaml.safe_load(f)
        return cls.from_dict(raw)

    def resolve(self, overrides: dict[str, Any]) -> EvaluationConfig:
        """
        Apply dot-notation overrides (e.g. "stream.supervision"), returning
        a NEW config. The original config is never mutated.
        """
        raw = self.model_dump()
        for key, value in overrides.items():
            parts = key.split(".")
            node = raw
            for part in parts[:-1]:
                if part not in node:
                    raise ConfigurationError(f"Unknown config section '{part}' in override '{key}'.")
                node = node[part]
            node[parts[-1]] = value
        return EvaluationConfig.from_dict(raw)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()
