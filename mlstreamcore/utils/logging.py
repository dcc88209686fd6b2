from __future__ import annotations

import importlib
import json
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from mlstreamcore.config.schema import EvaluationConfig


# import name -> distribution reported in the manifest
_TRACKED_PACKAGES: dict[str, str] = {
    "numpy": "numpy",
    "pandas": "pandas",
    "sklearn": "scikit-learn",
    "pydantic": "pydantic",
    "yaml": "PyYAML",
    "mlstreamcore": "mlstreamcore",
}


def save_run_manifest(
    output_dir: Path,
    config: EvaluationConfig,
    cli_args: dict[str, Any],
    streams: Optional[dict[str, Any]] = None,
) -> Path:
    """
    Write output_dir/run_manifest.json describing one evaluation run.

    Args:
        output_dir: Root output directory for this run.
        config:     The resolved EvaluationConfig (after CLI overrides).
        cli_args:   vars(args) from argparse, plus the seed actually used.
        streams:    role -> InstanceStream for the data being evaluated;
                    name, length and label count are recorded.

    Returns:
        Path to the written manifest file.
    """
    manifest = {
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        "cli_args": cli_args,
        "config": config.to_dict(),
        "streams": {
            role: {"name": s.name, "instances": len(s), "labels": s.n_labels, "label_kind": s.header.label_kind}
            for role, s in (streams or {}).items()
            if s is not None
        },
        "software_versions": _collect_versions(),
        "git_commit": _get_git_commit(),
        "python_version": sys.version,
    }

    manifest_path = Path(output_dir) / "run_manifest.json"
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2, default=str)

    return manifest_path


def _collect_versions() -> dict[str, str]:
    versions = {}
    for module_name, dist in _TRACKED_PACKAGES.items():
        try:
            versions[dist] = getattr(importlib.import_module(module_name), "__version__", "unknown")
        except ImportError:
            versions[dist] = "not installed"
    return versions


def _get_git_commit() -> str:
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True, text=True, check=True
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return "unavailable"
    return result.stdout.strip()


def setup_logging(output_dir: Path, run_name: str) -> str:
    """Create <output_dir>/logs and return a fresh timestamped log file path."""
    log_dir = Path(output_dir) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return str(log_dir / f"{run_name}_{timestamp}.log")


def write_log(log_file: Optional[str], msg) -> None:
    """Timestamp `msg`, append it to log_file (if any) and echo it."""
    line = f"{datetime.now():%Y-%m-%d %H:%M:%S} - {msg}\n"
    if log_file:
        with open(log_file, "a") as f:
            f.write(line)
    print(line)
