"""Command-line interface for the retirement simulation engine."""

from __future__ import annotations

import argparse
from pathlib import Path

import yaml

from nestegg.engine.errors import ValidationError
from nestegg.engine.logging import configure_cli_logging, record_metrics
from nestegg.engine.profile import load_profile
from nestegg.engine.simulation import (
    MonteCarloAggregator,
    SimulationOptions,
    write_simulation_artifacts,
)
from nestegg.engine.tax.states import load_state_tables
from nestegg.engine.utils.display import format_currency
from nestegg.engine.utils.rand import seed_for_stream
from nestegg.engine.validate import validate_profile_file

DESCRIPTION = "nestegg retirement Monte Carlo engine"
DEFAULT_PROFILE = Path("configs") / "household.yml"


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:  # pragma: no cover - argparse validation
        raise argparse.ArgumentTypeError("Expected an integer") from exc
    if number < 1:
        raise argparse.ArgumentTypeError("Expected an integer >= 1")
    return number


def _add_simulate_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    simulate = subparsers.add_parser("simulate", help="Run the Monte Carlo simulation")
    simulate.add_argument(
        "--profile",
        type=Path,
        default=DEFAULT_PROFILE,
        help="Path to the household profile YAML",
    )
    simulate.add_argument(
        "--trials", type=_positive_int, default=1000, help="Number of Monte Carlo trials"
    )
    simulate.add_argument(
        "--seed", type=int, help="Master seed (default: audit/seeds.yml or 42)"
    )
    simulate.add_argument(
        "--seed-file",
        type=Path,
        help="Seed file written by a previous run; used when --seed is omitted",
    )
    simulate.add_argument(
        "--state-tables",
        type=Path,
        help="YAML file of state tax tables merged over the built-in ones",
    )
    simulate.add_argument(
        "--workers", type=_positive_int, default=1, help="Worker processes; 1 runs inline"
    )
    simulate.add_argument(
        "--executor",
        choices=["process", "thread"],
        default="process",
        help="Executor used when workers > 1",
    )
    simulate.add_argument(
        "--antithetic",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Pair trials with mirrored return shocks",
    )
    simulate.add_argument(
        "--swr",
        action="store_true",
        help="Estimate the safe withdrawal rate with a root search",
    )
    simulate.add_argument(
        "--swr-trials", type=_positive_int, default=200, help="Trials per search evaluation"
    )
    simulate.add_argument(
        "--output-dir",
        type=Path,
        help="Optional directory for CSV/JSON artefacts",
    )


def _add_validate_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Attach the validate command used for profile range checks."""

    validate = subparsers.add_parser("validate", help="Validate a household profile")
    validate.add_argument(
        "--profile",
        type=Path,
        default=DEFAULT_PROFILE,
        help="Path to the household profile YAML",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nestegg", description=DESCRIPTION)
    parser.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Mirror logs to artifacts/logs/nestegg.log in JSON format",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (NESTEGG_LOG_LEVEL takes precedence)",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)
    _add_validate_subparser(sub)
    _add_simulate_subparser(sub)
    return parser


def _handle_validate(args: argparse.Namespace) -> None:
    """Validate the profile and report diagnostics to stdout."""

    summary = validate_profile_file(args.profile)
    for warning in summary.warnings:
        print(f"[nestegg] validate warning: {warning}")
    if summary.errors:
        for error in summary.errors:
            print(f"[nestegg] validate error: {error}")
        raise SystemExit(1)
    print("[nestegg] validate status=ok")


def _handle_simulate(args: argparse.Namespace) -> None:
    seed = args.seed
    if seed is None and args.seed_file is not None:
        seed = seed_for_stream(seed_path=args.seed_file)
    state_tables = None
    if args.state_tables is not None:
        try:
            state_tables = load_state_tables(args.state_tables)
        except (OSError, TypeError, ValueError, yaml.YAMLError) as exc:
            print(f"[nestegg] simulate error: {exc}")
            raise SystemExit(1) from exc
    try:
        profile = load_profile(args.profile)
        options = SimulationOptions(
            trials=int(args.trials),
            seed=seed,
            antithetic=bool(args.antithetic),
            workers=int(args.workers),
            executor=args.executor,
            estimate_safe_withdrawal_rate=bool(args.swr),
            swr_trials=int(args.swr_trials),
        )
        result = MonteCarloAggregator(profile, state_tables=state_tables).run(options)
    except ValidationError as exc:
        for error in exc.errors:
            print(f"[nestegg] simulate error: {error}")
        raise SystemExit(1) from exc

    artifacts = write_simulation_artifacts(
        result,
        label=Path(args.profile).stem,
        output_dir=args.output_dir,
    )
    for warning in result.warnings:
        print(f"[nestegg] simulate warning: {warning}")
    print(
        f"[nestegg] simulate trials={result.trials} "
        f"success={result.success_display} "
        f"median={format_currency(result.median_ending_balance)} "
        f"swr={result.safe_withdrawal_rate:.4f} summary={artifacts.summary_json}"
    )
    tags = {"profile": Path(args.profile).stem, "seed": str(result.metadata.get("seed"))}
    record_metrics("simulate_probability_of_success", result.probability_of_success, tags)
    record_metrics("simulate_elapsed_ms", float(result.metadata.get("elapsed_ms", 0.0)), tags)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_cli_logging(json_logs=bool(args.json_logs), level=args.log_level)
    if args.cmd == "simulate":
        _handle_simulate(args)
    elif args.cmd == "validate":
        _handle_validate(args)
    else:
        print(f"[nestegg] command = {args.cmd}")


if __name__ == "__main__":
    main()
