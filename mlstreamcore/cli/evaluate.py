from __future__ import annotations

import argparse
import sys
from pathlib import Path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Prequential evaluation of a multi-label stream model.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # --- Data / output ---
    parser.add_argument("--train_csv", type=str, default=None,
                        help="Stream CSV for prequential (test-then-update) evaluation.")
    parser.add_argument("--test_csv", type=str, default=None,
                        help="Held-out CSV for non-incremental evaluation.")
    parser.add_argument("--output_dir", type=str, required=True,
                        help="Root directory for all outputs.")
    parser.add_argument("--config", type=str, default=None,
                        help="Path to YAML config file. Defaults apply if omitted.")

    # --- Overrides (CLI takes precedence over config file) ---
    parser.add_argument("--scheme", type=str, default=None,
                        choices=["windowed", "prequential"],
                        help="Windowing scheme. Overrides config.stream.scheme.")
    parser.add_argument("--num_windows", type=int, default=None,
                        help="Number of windows. Overrides config.stream.num_windows.")
    parser.add_argument("--window_size", type=int, default=None,
                        help="Fixed window size. Overrides config.stream.window_size.")
    parser.add_argument("--supervision", type=float, default=None,
                        help="Ratio of labelled instances in (0, 1].")
    parser.add_argument("--threshold", type=str, default=None,
                        help="A number, 'PCut1' or 'PCutL'.")
    parser.add_argument("--verbosity", type=int, default=None,
                        help="Amount of evaluation output (1-4+).")
    parser.add_argument("--model", type=str, default=None,
                        help="Model registry key. Overrides config.model.name.")
    parser.add_argument("--n_labels", type=int, default=None,
                        help="Number of leading label columns. Overrides config.data.n_labels.")
    parser.add_argument("--no_eval", action="store_true",
                        help="Build and update only; skip evaluation.")
    parser.add_argument("--predictions", type=str, default=None,
                        help="CSV file for held-out predictions (requires --test_csv).")

    # --- Reproducibility ---
    parser.add_argument("--seed", type=int, default=None,
                        help="Global random seed. Auto-generated and logged if None.")

    return parser


def _cli_overrides(args: argparse.Namespace) -> dict:
    mapping = {
        "scheme": "stream.scheme",
        "num_windows": "stream.num_windows",
        "window_size": "stream.window_size",
        "supervision": "stream.supervision",
        "threshold": "threshold.threshold",
        "verbosity": "verbosity",
        "model": "model.name",
        "n_labels": "data.n_labels",
        "predictions": "output.predictions_path",
    }
    overrides = {
        key: getattr(args, arg)
        for arg, key in mapping.items()
        if getattr(args, arg) is not None
    }
    if args.no_eval:
        overrides["output.no_eval"] = True
    return overrides


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.train_csv is None and args.test_csv is None:
        parser.error("at least one of --train_csv / --test_csv is required")

    from mlstreamcore.errors import ConfigurationError, ModelError

    # ------------------------------------------------------------------
    # 1. Seed
    # ------------------------------------------------------------------
    from mlstreamcore.utils.reproducibility import resolve_seed, set_global_seed
    seed = resolve_seed(args.seed)
    set_global_seed(seed)

    # ------------------------------------------------------------------
    # 2. Output directory + log file
    # ------------------------------------------------------------------
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    from mlstreamcore.utils.logging import save_run_manifest, setup_logging, write_log
    log_file = setup_logging(output_dir, args.model or "evaluate")
    write_log(log_file, f"Global seed: {seed}")

    try:
        # --------------------------------------------------------------
        # 3. Config
        # --------------------------------------------------------------
        from mlstreamcore.config.schema import EvaluationConfig
        config = EvaluationConfig.from_yaml(args.config) if args.config else EvaluationConfig()
        overrides = _cli_overrides(args)
        if overrides:
            config = config.resolve(overrides)
        if config.model.name == "binary_relevance_sgd" and "random_state" not in config.model.kwargs:
            config = config.resolve({"model.kwargs": {**config.model.kwargs, "random_state": seed}})

        write_log(
            log_file,
            f"Config loaded from: {args.config or '(defaults)'}\n"
            f"  scheme      : {config.stream.scheme}\n"
            f"  num_windows : {config.stream.num_windows}\n"
            f"  window_size : {config.stream.window_size}\n"
            f"  supervision : {config.stream.supervision}\n"
            f"  threshold   : {config.threshold.threshold}\n"
            f"  verbosity   : {config.verbosity}\n"
            f"  model       : {config.model.name} {config.model.kwargs}"
        )

        # --------------------------------------------------------------
        # 4. Data
        # --------------------------------------------------------------
        from mlstreamcore.data.stream import load_csv
        dc = config.data
        load_kwargs = dict(label_cols=dc.label_cols or None, n_labels=dc.n_labels, id_col=dc.id_col)
        train = load_csv(args.train_csv, **load_kwargs) if args.train_csv else None
        test = load_csv(args.test_csv, **load_kwargs) if args.test_csv else None
        for role, stream in (("train", train), ("test", test)):
            if stream is not None:
                write_log(log_file, f"Loaded {role}: {stream!r}")

        # --------------------------------------------------------------
        # 5. Run manifest (before training starts)
        # --------------------------------------------------------------
        save_run_manifest(
            output_dir, config, vars(args) | {"seed_used": seed},
            streams={"train": train, "test": test},
        )

        # --------------------------------------------------------------
        # 6. Evaluate
        # --------------------------------------------------------------
        from mlstreamcore.models.builder import build_model
        from mlstreamcore.training.driver import evaluate_model
        model = build_model(config)
        result = evaluate_model(model, config, train=train, test=test, log_file=log_file)

    except ConfigurationError as exc:
        write_log(log_file, f"Configuration error: {exc}")
        return 2
    except ModelError as exc:
        write_log(
            log_file,
            f"Model error during {exc.phase} (instance {exc.instance_index}): {exc}\n"
            f"  options: {exc.options_report}\n"
            f"  windows completed before failure: {len(exc.partial_trace or [])}",
        )
        return 1

    # ------------------------------------------------------------------
    # 7. Outputs
    # ------------------------------------------------------------------
    if result is not None and config.output.write_trace:
        from mlstreamcore.evaluation.results import write_evaluation_outputs
        write_evaluation_outputs(result, output_dir)

    write_log(log_file, f"\nAll outputs written to: {output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
