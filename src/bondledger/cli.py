"""Command line entry point: run scenarios and Monte Carlo checks."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config.loader import load_config
from .simulation.monte_carlo import MonteCarloRunner, summarize_runs
from .simulation.runner import ScenarioRunner
from .simulation.scenarios import SCENARIO_LIBRARY, get_scenario

logger = logging.getLogger("bondledger")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bondledger",
        description="Time-weighted reward accounting for bonded staking programs",
    )
    parser.add_argument("--config", help="YAML config (defaults to the bundled defaults.yaml)")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List predefined scenarios")

    scenario = sub.add_parser("scenario", help="Run a predefined scenario")
    scenario.add_argument("name", choices=sorted(SCENARIO_LIBRARY))
    scenario.add_argument("--csv", help="Write ledger snapshots to this CSV file")
    scenario.add_argument("--json", help="Write the full result to this JSON file")
    scenario.add_argument("--html", help="Write an HTML report with charts")

    mc = sub.add_parser("montecarlo", help="Run random interleavings and check invariants")
    mc.add_argument("--runs", type=int, help="Number of runs")
    mc.add_argument("--seed", type=int, help="Base random seed")
    return parser


def cmd_list() -> int:
    for key, scenario in sorted(SCENARIO_LIBRARY.items()):
        print(f"{key:20s} {scenario.description}")
    return 0


def cmd_scenario(args, config) -> int:
    result = ScenarioRunner(config).run(get_scenario(args.name))
    print(f"{result.scenario.name}: {result.scenario.description}")
    for depositor, share in sorted(result.reward_shares.items()):
        expected = result.scenario.expected_shares.get(depositor)
        suffix = f" (expected {expected * 100:6.2f}%)" if expected is not None else ""
        print(f"  {depositor:12s} {share * 100:6.2f}%{suffix}")
    for warning in result.warnings:
        print(f"  [{warning.severity}] {warning.category}: {warning.message}")

    if args.csv or args.json or args.html:
        from .reporting.export import export_csv, export_html_report, export_json
        if args.csv:
            export_csv(result, args.csv)
        if args.json:
            export_json(result, args.json)
        if args.html:
            from .reporting.charts import (
                create_accumulator_chart,
                create_earned_chart,
                create_principal_chart,
                create_reward_share_chart,
            )
            charts = [
                create_reward_share_chart(result),
                create_accumulator_chart(result.snapshots),
                create_principal_chart(result.snapshots, config.unit),
                create_earned_chart(result.snapshots, config.unit),
            ]
            export_html_report(result, args.html, charts)
    return 1 if any(w.severity == "error" for w in result.warnings) else 0


def cmd_montecarlo(args, config) -> int:
    runs = MonteCarloRunner(config).run(num_runs=args.runs, random_seed=args.seed)
    summary = summarize_runs(runs)
    print(json.dumps(summary, indent=2))
    return 1 if summary.get("runs_with_warnings") else 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "list":
        return cmd_list()

    config = load_config(args.config)
    logger.info("Loaded config %s", config.compute_hash())
    if args.command == "scenario":
        return cmd_scenario(args, config)
    return cmd_montecarlo(args, config)


if __name__ == "__main__":
    sys.exit(main())
