"""
Command-line interface for cucumber-runner.

Usage:
    cucumber-runner discover                       # Print the test tree
    cucumber-runner list                           # List runnable scenario ids
    cucumber-runner run                            # Run every scenario
    cucumber-runner run features/a.feature:12      # Run selected node ids
    cucumber-runner run --json --report out.json   # JSON output + report file
    cucumber-runner doctor                         # Check node / cucumber-js setup
    cucumber-runner --version

Exit codes: 0 success, 1 failing scenarios (or unhealthy doctor), 2 usage,
configuration or spawn errors.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import RunnerConfig, load_config
from .controller import CucumberTestController
from .doctor import CucumberDoctor
from .errors import ConfigError, SpawnFailure
from .hierarchy import HierarchyNode
from .reporter import ConsoleRunReport, DiagnosticStore, RecordingRunReport, ReportGenerator
from .runner import CucumberRunner
from .tree import TestTree


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def load_settings(args: argparse.Namespace) -> RunnerConfig:
    """Load runner settings and apply command-line overrides."""
    settings = load_config(args.config)
    if args.root:
        settings.root = Path(args.root)
    return settings


def configure_logging(settings: RunnerConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_controller(settings: RunnerConfig) -> CucumberTestController:
    runner = CucumberRunner(settings.root, command=settings.command)
    return CucumberTestController(settings.root, runner=runner, tree=TestTree(), discovery=settings.discovery)


def runnable_nodes(controller: CucumberTestController) -> List[HierarchyNode]:
    """Nodes with a source line, in tree order."""
    tree = controller.tree
    return [node for node in tree.walk() if node.line is not None]


def cmd_discover(args: argparse.Namespace, settings: RunnerConfig) -> int:
    """Discover and print the test tree."""
    controller = build_controller(settings)
    root = asyncio.run(controller.refresh())

    if args.json:
        print(json.dumps(root.to_dict(), indent=2))
    else:
        print(controller.tree.render())
    return EXIT_OK


def cmd_list(args: argparse.Namespace, settings: RunnerConfig) -> int:
    """List runnable node ids."""
    controller = build_controller(settings)
    asyncio.run(controller.refresh())

    nodes = runnable_nodes(controller)
    if args.json:
        print(json.dumps([{"id": n.id, "name": n.name} for n in nodes], indent=2))
        return EXIT_OK

    if not nodes:
        print("No scenarios found.", file=sys.stderr)
        return EXIT_OK
    print("Available scenarios:")
    for node in nodes:
        print(f"  {node.id:40s} {node.name}")
    return EXIT_OK


async def _discover_and_run(controller, targets, report, diagnostics):
    await controller.refresh()
    include = None
    if targets:
        include = []
        unknown = []
        for target in targets:
            node = controller.tree.get(target)
            if node is None:
                unknown.append(target)
            else:
                include.append(node)
        if unknown:
            return unknown, None
    outcome = await controller.run_tests(report=report, include=include, diagnostics=diagnostics)
    return [], outcome


def cmd_run(args: argparse.Namespace, settings: RunnerConfig) -> int:
    """Run scenarios."""
    controller = build_controller(settings)
    if args.json:
        report = RecordingRunReport()
    else:
        report = ConsoleRunReport(verbose=args.verbose)
        report.print_header()
    diagnostics = DiagnosticStore()

    unknown, outcome = asyncio.run(_discover_and_run(controller, args.targets, report, diagnostics))
    if unknown:
        print(f"Error: Unknown test id(s): {', '.join(unknown)}", file=sys.stderr)
        print("Run `cucumber-runner list` to see available ids.", file=sys.stderr)
        return EXIT_USAGE

    result = report.to_result()
    result["run"] = outcome.to_dict()
    generator = ReportGenerator(result, command=" ".join(settings.command), cwd=settings.root)

    if args.json:
        print(generator.to_json())

    report_path = args.report or settings.report_path
    if report_path:
        generator.write_json(report_path)
        if not args.json:
            print(f"\nReport written to: {report_path}")

    if result["status"] == "PASS" and outcome.exit_code == 0:
        return EXIT_OK
    return EXIT_FAILED


def cmd_doctor(args: argparse.Namespace, settings: RunnerConfig) -> int:
    """Run diagnostics."""
    doctor = CucumberDoctor(settings.root, command=settings.command)
    diagnosis = doctor.diagnose()

    if args.json:
        print(json.dumps(diagnosis, indent=2))
    else:
        doctor.print_diagnosis(diagnosis)

    if diagnosis["summary"] == "HEALTHY":
        return EXIT_OK
    return EXIT_FAILED


COMMANDS = {
    "discover": cmd_discover,
    "list": cmd_list,
    "run": cmd_run,
    "doctor": cmd_doctor,
}


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to cucumber-runner.yaml",
    )
    parser.add_argument(
        "--root",
        type=str,
        help="Project directory (overrides `root` from the config file)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output and debug logging",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output JSON",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cucumber-runner",
        description="Discover and run cucumber-js scenarios",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"cucumber-runner {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    discover_parser = subparsers.add_parser("discover", help="Print the discovered test tree")
    _add_common_args(discover_parser)

    list_parser = subparsers.add_parser("list", help="List runnable scenario ids")
    _add_common_args(list_parser)

    run_parser = subparsers.add_parser("run", help="Run scenarios")
    _add_common_args(run_parser)
    run_parser.add_argument(
        "targets",
        nargs="*",
        help="Node ids to run (see `list`); default: everything",
    )
    run_parser.add_argument(
        "--report",
        type=str,
        help="Write JSON report to file",
    )

    doctor_parser = subparsers.add_parser("doctor", help="Run diagnostics")
    _add_common_args(doctor_parser)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    try:
        settings = load_settings(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    configure_logging(settings, args.verbose)

    try:
        return COMMANDS[args.command](args, settings)
    except (SpawnFailure, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
