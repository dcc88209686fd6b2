from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from mlstreamcore.data.stream import InstanceStream
from mlstreamcore.evaluation.aggregator import EvaluationResult


_STRUCTURAL_TRACE_COLS: frozenset[str] = frozenset({
    "window", "instances", "n_window", "N",
    "test_time", "update_time", "cumulative_test_time", "cumulative_update_time",
})


def _performance_cols(trace_df: pd.DataFrame) -> list[str]:
    """
    Return numeric columns that represent model performance metrics.
    Excludes structural bookkeeping and timing columns.
    """
    numeric = trace_df.select_dtypes(include=[np.number]).columns
    return [c for c in numeric if c not in _STRUCTURAL_TRACE_COLS and c != "threshold"]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def write_evaluation_outputs(result: EvaluationResult, output_dir: Path) -> pd.DataFrame:
    """
    Write the performance trace and final statistics of one evaluation.

    Parameters
    ----------
    result : EvaluationResult
        Returned by EvaluationDriver.run() or BatchHarness.run().
    output_dir : Path
        Root output directory.  A ``summary/`` subdirectory is created here.

    Returns
    -------
    summary_df : pd.DataFrame
        One row per performance metric with columns:
        [metric, mean, std, median, min, max, per_window_values],
        computed over the trace.  Also written to summary/summary_metrics.csv.
    """
    output_dir = Path(output_dir)
    summary_dir = output_dir / "summary"
    summary_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # 1. Performance trace -> trace.csv
    # ------------------------------------------------------------------
    trace_df = result.trace.to_frame()
    trace_df.to_csv(summary_dir / "trace.csv", index=False)

    # ------------------------------------------------------------------
    # 2. Final measurements + info -> final_metrics.csv
    # ------------------------------------------------------------------
    final_df = pd.DataFrame(
        [{"name": k, "value": v} for k, v in result.measurements().items()]
        + [{"name": k, "value": v} for k, v in result.info.items()]
    )
    final_df.to_csv(summary_dir / "final_metrics.csv", index=False)

    # ------------------------------------------------------------------
    # 3. Final accumulation predictions -> predictions.csv
    # ------------------------------------------------------------------
    _build_predictions_df(result).to_csv(summary_dir / "predictions.csv", index=False)

    # ------------------------------------------------------------------
    # 4. Summary statistics over windows -> summary_metrics.csv
    # ------------------------------------------------------------------
    summary_df = _build_summary_df(trace_df)
    summary_df.to_csv(summary_dir / "summary_metrics.csv", index=False)

    _print_summary(result, n_windows=len(trace_df))

    return summary_df


def write_predictions(predictions: np.ndarray, test: InstanceStream, path: Path) -> Path:
    """
    Held-out predictions next to the true labels, one row per test
    instance: y_true_<label> / y_pred_<label> columns.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Y = test.label_matrix()
    df = pd.DataFrame(index=range(len(test)))
    for j, name in enumerate(test.header.label_names):
        df[f"y_true_{name}"] = Y[:, j]
        df[f"y_pred_{name}"] = predictions[:, j]
    df.to_csv(path, index=False)
    return path


# ---------------------------------------------------------------------------
# Internal builders
# ---------------------------------------------------------------------------

def _build_predictions_df(result: EvaluationResult) -> pd.DataFrame:
    """
    y_true_j / y_pred_prob_j / y_pred_label_j for every instance in the
    final accumulation (last window, or the whole stream for prequential).
    """
    P, Y = result.predictions, result.actuals
    if len(P) == 0:
        return pd.DataFrame()
    t = result.thresholds.broadcast(P.shape[1])
    out = pd.DataFrame(index=range(len(P)))
    for j in range(P.shape[1]):
        out[f"y_true_{j}"] = Y[:, j]
        out[f"y_pred_prob_{j}"] = P[:, j]
        if result.info.get("Type") == "ML":
            out[f"y_pred_label_{j}"] = (P[:, j] >= t[j]).astype(int)
    return out


def _build_summary_df(trace_df: pd.DataFrame) -> pd.DataFrame:
    """
    Summary statistics across windows for every performance metric.

    Returns a tidy DataFrame:
        metric | mean | std | median | min | max | per_window_values

    std uses ddof=0 (population std over the windows).
    """
    rows: list[dict] = []
    if trace_df.empty:
        return pd.DataFrame(rows)
    for col in _performance_cols(trace_df):
        values = trace_df[col].dropna().to_numpy(dtype=float)
        if len(values) == 0:
            continue
        rows.append({
            "metric":             col,
            "mean":               float(np.mean(values)),
            "std":                float(np.std(values, ddof=0)),
            "median":             float(np.median(values)),
            "min":                float(np.min(values)),
            "max":                float(np.max(values)),
            "per_window_values":  values.tolist(),
        })

    return pd.DataFrame(rows)


# ---------------------------------------------------------------------------
# Console output
# ---------------------------------------------------------------------------

def _print_summary(result: EvaluationResult, n_windows: int) -> None:
    width = 62
    print("\n" + "=" * width)
    print(f"  Evaluation summary  ({result.info.get('Scheme', '?')}, {n_windows} sampled windows)")
    print("=" * width)

    for name, value in result.measurements().items():
        if isinstance(value, (int, float, np.integer, np.floating)):
            print(f"  {name:<32}  {float(value):.4f}")
        else:
            print(f"  {name:<32}  {value}")

    print("=" * width + "\n")
