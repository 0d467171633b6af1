# spectra/cli.py
"""
Command line wrapper.

Commands:
  run                  execute test cases, save results
  regression:baseline  execute test cases, save results as the new baseline
  regression:run       execute test cases, compare against the baseline
  orchestrate          adaptive phased run with the decision oracle

Exit codes: 0 ok, 1 regressions found (regression:run) or run aborted
(orchestrate), 2 persistence/configuration error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from spectra.config import OrchestratorConfig, Settings, configure_logging
from spectra.exceptions import PersistenceError, SpectraError
from spectra.http_runner import HTTPTestRunner
from spectra.models import TestCase, TestResult
from spectra.nonfunctional_runner import NonFunctionalRunner
from spectra.oracle import build_oracle
from spectra.orchestrator import AdaptiveOrchestrator
from spectra.persistence import (
    load_baseline,
    load_test_cases,
    save_baseline,
    save_regression_report,
    save_report,
    save_results,
)
from spectra.regression import RegressionComparator, format_regression_results

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2


# ==================== Helpers ====================

def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings()
    overrides = {
        "base_url": args.base_url,
        "timeout_s": args.timeout,
        "results_path": args.results,
        "baseline_path": getattr(args, "baseline", None),
        "log_level": args.log_level,
    }
    if args.no_default_fixtures:
        overrides["allow_default_fixtures"] = False
    return settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})


async def execute_cases(runner: HTTPTestRunner, cases: List[TestCase]) -> Dict[str, TestResult]:
    """Functional run; cases carrying non-functional configs go through the extensions."""
    nf_runner = NonFunctionalRunner(runner)
    results: Dict[str, TestResult] = {}
    for case in cases:
        if case.non_functional_tests:
            results[case.id] = await nf_runner.execute_non_functional_tests(case)
        else:
            results[case.id] = await runner.execute(case)
    return results


def format_test_results(results: Dict[str, TestResult]) -> str:
    """Console summary of one run."""
    passed = sum(1 for r in results.values() if r.success)
    lines = ["", "== TEST RESULTS ==", ""]
    for r in results.values():
        mark = "✅" if r.success else "❌"
        status = r.status if r.status is not None else "---"
        lines.append(f"{mark} {r.test_case.method} {r.test_case.endpoint} [{status}] {r.duration_ms:.0f}ms  {r.test_case.title}")
        if r.error:
            lines.append(f"   Error: {r.error}")
        for a in r.assertions:
            if not a.success:
                lines.append(f"   - {a.name}: {a.error}")
        if r.fixture_fallbacks:
            lines.append(f"   ⚠️ default path values used for: {', '.join(r.fixture_fallbacks)}")
        for nf in r.non_functional_results:
            lines.append(f"   {'✅' if nf.success else '❌'} {nf.type.value}: {nf.details or nf.error or ''}")
    lines += ["", f"Total: {len(results)}  Passed: {passed}  Failed: {len(results) - passed}", ""]
    return "\n".join(lines)


# ==================== Commands ====================

async def cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    cases = load_test_cases(args.cases)
    async with HTTPTestRunner.from_settings(settings) as runner:
        results = await execute_cases(runner, cases)
    print(format_test_results(results))
    save_results(results, settings.results_path)
    return EXIT_OK


async def cmd_regression_baseline(args: argparse.Namespace, settings: Settings) -> int:
    cases = load_test_cases(args.cases)
    async with HTTPTestRunner.from_settings(settings) as runner:
        results = await execute_cases(runner, cases)
    print(format_test_results(results))
    save_results(results, settings.results_path)
    save_baseline(results, settings.baseline_path)
    return EXIT_OK


async def cmd_regression_run(args: argparse.Namespace, settings: Settings) -> int:
    cases = load_test_cases(args.cases)
    baseline = load_baseline(settings.baseline_path)

    async with HTTPTestRunner.from_settings(settings) as runner:
        results = await execute_cases(runner, cases)
    print(format_test_results(results))
    save_results(results, settings.results_path)

    if baseline is None:
        return EXIT_OK

    summary = RegressionComparator().compare(baseline, results)
    print(format_regression_results(summary))
    save_regression_report(summary, settings.results_path)
    return EXIT_FAILED if summary.regressed_tests > 0 else EXIT_OK


async def cmd_orchestrate(args: argparse.Namespace, settings: Settings) -> int:
    cases = load_test_cases(args.cases)
    config = OrchestratorConfig.from_yaml(args.config) if args.config else OrchestratorConfig.from_env()
    if args.phases:
        config.phases = [p.strip() for p in args.phases.split(",") if p.strip()]
    config.oracle_timeout_s = min(config.oracle_timeout_s, settings.oracle_timeout_s)

    async with HTTPTestRunner.from_settings(settings) as runner:
        orchestrator = AdaptiveOrchestrator(runner, build_oracle(settings), config)
        report = await orchestrator.run(cases)

    print(format_test_results(report.results))
    save_results(report.results, settings.results_path)
    save_report(report.to_dict(), Path(settings.results_path).parent / "orchestration-report.json")

    if report.insights:
        print("Insights:")
        for insight in report.insights:
            print(f"  • {insight}")
    if report.recommendations:
        print("Recommendations:")
        for rec in report.recommendations:
            print(f"  • {rec}")

    return EXIT_FAILED if report.aborted else EXIT_OK


COMMANDS = {
    "run": cmd_run,
    "regression:baseline": cmd_regression_baseline,
    "regression:run": cmd_regression_run,
    "orchestrate": cmd_orchestrate,
}


# ==================== CLI ====================

def _build_cli() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="spectra",
        description="API test execution and regression tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  spectra run cases.json --base-url http://localhost:3000
  spectra regression:baseline cases.json --baseline regression-baseline.json
  spectra regression:run cases.json --baseline regression-baseline.json
  spectra orchestrate cases.json --config orchestrator.yaml
""",
    )
    sub = p.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("run", "Execute test cases and save results"),
        ("regression:baseline", "Execute test cases and save them as the regression baseline"),
        ("regression:run", "Execute test cases and compare against the baseline"),
        ("orchestrate", "Adaptive phased run with continuation decisions"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("cases", help="JSON file with test cases")
        cmd.add_argument("--base-url", help="Target API base URL")
        cmd.add_argument("--timeout", type=float, help="HTTP timeout in seconds")
        cmd.add_argument("--results", help="Results file (default test-results.json)")
        cmd.add_argument("--log-level", help="Logging level (default INFO)")
        cmd.add_argument(
            "--no-default-fixtures",
            action="store_true",
            help="Leave unresolved path placeholders instead of guessing ids",
        )
        if name.startswith("regression"):
            cmd.add_argument("--baseline", help="Baseline file (default regression-baseline.json)")
        if name == "orchestrate":
            cmd.add_argument("--config", help="Orchestrator YAML config")
            cmd.add_argument("--phases", help="Comma-separated phase order")

    return p


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = _build_cli().parse_args(argv)

    try:
        settings = _settings_from_args(args)
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}", file=sys.stderr)
        return EXIT_ERROR

    configure_logging(settings.log_level)

    try:
        return asyncio.run(COMMANDS[args.command](args, settings))
    except PersistenceError as e:
        logger.error(f"❌ {e}")
        return EXIT_ERROR
    except SpectraError as e:
        logger.error(f"❌ {e}")
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("\n\n👋 Cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
