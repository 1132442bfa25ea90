"""
Report sinks and report generation for cucumber runs.

This module ships the console-side implementations of the sink protocols
in cucumber_runner.ports, plus a JSON report writer:

- RecordingRunReport: in-memory TestRunReport; accumulates scenario results
- ConsoleRunReport: RecordingRunReport that also prints results as they arrive
- DiagnosticStore: in-memory DiagnosticCollection
- ReportGenerator: JSON report with run metadata, summary and results

Example usage:
    from cucumber_runner.reporter import ConsoleRunReport, ReportGenerator

    report = ConsoleRunReport(verbose=True)
    await controller.run_tests(report=report)

    generator = ReportGenerator(report.to_result())
    generator.write_json("reports/cucumber-runner.json")
"""

import json
import os
import socket
import subprocess
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from .hierarchy import HierarchyNode
from .ports import Diagnostic

PASSED = "PASSED"
FAILED = "FAILED"
SKIPPED = "SKIPPED"


@dataclass
class ScenarioReport:
    """
    Reported outcome of one scenario.

    Attributes:
        node_id: Tree node id the result was reported against
        name: Display name of the node
        uri: Feature file
        line: Source line (None if unknown)
        status: PASSED, FAILED or SKIPPED
        duration_ms: Duration in milliseconds (0 for skipped scenarios)
        diagnostics: Serialized diagnostics of a failed scenario
    """
    node_id: str
    name: str
    uri: Optional[str]
    line: Optional[int]
    status: str
    duration_ms: int = 0
    diagnostics: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RecordingRunReport:
    """Collects the results of one run in memory."""

    def __init__(self):
        self.started_ids: List[str] = []
        self.scenarios: List[ScenarioReport] = []
        self.output: List[str] = []
        self.ended = False

    def _record(self, node: HierarchyNode, status: str, duration_ms: int = 0,
                diagnostics: Optional[List[Diagnostic]] = None) -> ScenarioReport:
        scenario = ScenarioReport(
            node_id=node.id,
            name=node.name,
            uri=node.uri,
            line=node.line,
            status=status,
            duration_ms=duration_ms,
            diagnostics=[d.to_dict() for d in diagnostics or []],
        )
        self.scenarios.append(scenario)
        return scenario

    def started(self, node: HierarchyNode) -> None:
        self.started_ids.append(node.id)

    def passed(self, node: HierarchyNode, duration_ms: int) -> None:
        self._record(node, PASSED, duration_ms)

    def failed(self, node: HierarchyNode, diagnostics: List[Diagnostic], duration_ms: int) -> None:
        self._record(node, FAILED, duration_ms, diagnostics)

    def skipped(self, node: HierarchyNode) -> None:
        self._record(node, SKIPPED)

    def append_output(self, text: str) -> None:
        self.output.append(text)

    def end(self) -> None:
        self.ended = True

    def count(self, status: str) -> int:
        return sum(1 for s in self.scenarios if s.status == status)

    @property
    def success(self) -> bool:
        return self.count(FAILED) == 0

    def to_result(self) -> Dict[str, Any]:
        """
        Summarize the run as a plain dictionary.

        Returns:
            Dictionary with counts, total duration, failed node ids, overall
            status ('PASS' / 'FAIL') and per-scenario results
        """
        return {
            "status": "PASS" if self.success else "FAIL",
            "passed": self.count(PASSED),
            "failed": self.count(FAILED),
            "skipped": self.count(SKIPPED),
            "total": len(self.scenarios),
            "total_duration_ms": sum(s.duration_ms for s in self.scenarios),
            "failed_scenarios": [s.node_id for s in self.scenarios if s.status == FAILED],
            "results": [s.to_dict() for s in self.scenarios],
        }


class ConsoleRunReport(RecordingRunReport):
    """
    Prints scenario results as they arrive and a summary when the run ends.

    Free-text run output is only printed in verbose mode.
    """

    def __init__(self, verbose: bool = False, output: Optional[TextIO] = None):
        """
        Initialize the console report.

        Args:
            verbose: Print run output and failure messages
            output: Output stream (default: sys.stdout)
        """
        super().__init__()
        self.verbose = verbose
        self.stream = output or sys.stdout

    def _print(self, *args, **kwargs):
        """Print to configured output."""
        print(*args, file=self.stream, **kwargs)

    def print_header(self):
        self._print("=" * 70)
        self._print("CUCUMBER RUN")
        self._print("=" * 70)

    def _record(self, node, status, duration_ms=0, diagnostics=None):
        scenario = super()._record(node, status, duration_ms, diagnostics)
        label = {PASSED: "PASS", FAILED: "FAIL", SKIPPED: "SKIP"}[status]
        self._print(f"  [{label}] {scenario.name:40s} ({duration_ms}ms)  {scenario.node_id}")
        if self.verbose:
            for diagnostic in scenario.diagnostics:
                start = diagnostic["range"]["start"]
                self._print(f"        {diagnostic['uri']}:{start['line'] + 1}: {diagnostic['message'][:200]}")
        return scenario

    def append_output(self, text: str) -> None:
        super().append_output(text)
        if self.verbose:
            self._print(f"    | {text.rstrip()}")

    def print_summary(self):
        result = self.to_result()
        total = result["total"]

        self._print()
        self._print("=" * 70)
        self._print("CUCUMBER SUMMARY")
        self._print("=" * 70)
        self._print(f"Passed:  {result['passed']}/{total}")
        self._print(f"Failed:  {result['failed']}/{total}")
        self._print(f"Skipped: {result['skipped']}/{total}")

        if result["failed_scenarios"]:
            self._print("\nFailed scenarios:")
            for node_id in result["failed_scenarios"]:
                self._print(f"  - {node_id}")

        self._print(f"\nTotal time: {result['total_duration_ms'] / 1000:.2f}s")
        self._print(f"\nStatus: {result['status']}")

    def end(self) -> None:
        if self.ended:
            return
        super().end()
        self.print_summary()


class DiagnosticStore:
    """In-memory DiagnosticCollection keyed by uri."""

    def __init__(self):
        self._by_uri: Dict[str, List[Diagnostic]] = {}

    def set(self, uri: str, diagnostics: List[Diagnostic]) -> None:
        self._by_uri[uri] = list(diagnostics)

    def clear(self) -> None:
        self._by_uri.clear()

    def get(self, uri: str) -> List[Diagnostic]:
        return list(self._by_uri.get(uri, []))

    def uris(self) -> List[str]:
        return sorted(self._by_uri)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {uri: [d.to_dict() for d in diagnostics] for uri, diagnostics in self._by_uri.items()}


@dataclass
class ReportMetadata:
    """
    Metadata about the environment a run executed in.

    Attributes:
        run_id: Unique identifier for this run
        timestamp: ISO 8601 timestamp
        hostname: Machine hostname
        platform: Operating system platform
        git_branch: Current git branch (if in git repo)
        git_commit: Current git commit hash (if in git repo)
        user: Username from environment
        command: cucumber-js command line prefix
    """
    run_id: str
    timestamp: str
    hostname: str
    platform: str
    git_branch: str
    git_commit: str
    user: str
    command: str


@dataclass
class ReportSummary:
    passed: int
    failed: int
    skipped: int
    total: int
    total_duration_ms: int
    status: str


class ReportGenerator:
    """
    Generates JSON reports from a run result.

    The result is the dictionary produced by RecordingRunReport.to_result().
    """

    def __init__(
        self,
        result: Dict[str, Any],
        run_id: Optional[str] = None,
        command: str = "",
        cwd: Optional[Path] = None,
    ):
        """
        Initialize the report generator.

        Args:
            result: Run result dictionary
            run_id: Optional run identifier (generated if not provided)
            command: cucumber-js command recorded in the metadata
            cwd: Directory git metadata is read from (default: current directory)
        """
        self.result = result
        self.run_id = run_id or f"cucumber-{int(datetime.now().timestamp())}"
        self.command = command
        self.cwd = cwd

    def _git(self, *args: str, fallback_env: str) -> str:
        try:
            proc = subprocess.run(
                ["git", *args],
                capture_output=True,
                text=True,
                timeout=5,
                cwd=str(self.cwd) if self.cwd else None,
            )
        except (OSError, subprocess.SubprocessError):
            return os.environ.get(fallback_env, "unknown")
        return proc.stdout.strip() if proc.returncode == 0 else "unknown"

    def build_metadata(self) -> ReportMetadata:
        """Build report metadata from environment."""
        return ReportMetadata(
            run_id=self.run_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
            hostname=socket.gethostname(),
            platform=sys.platform,
            git_branch=self._git("rev-parse", "--abbrev-ref", "HEAD", fallback_env="GIT_BRANCH"),
            git_commit=self._git("rev-parse", "--short", "HEAD", fallback_env="CI_COMMIT_SHA"),
            user=os.environ.get("USER", os.environ.get("USERNAME", "unknown")),
            command=self.command,
        )

    def build_summary(self) -> ReportSummary:
        return ReportSummary(
            passed=self.result.get("passed", 0),
            failed=self.result.get("failed", 0),
            skipped=self.result.get("skipped", 0),
            total=self.result.get("total", 0),
            total_duration_ms=self.result.get("total_duration_ms", 0),
            status=self.result.get("status", "UNKNOWN"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": "2.0",
            "metadata": asdict(self.build_metadata()),
            "summary": asdict(self.build_summary()),
            "run": self.result.get("run", {}),
            "results": self.result.get("results", []),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def write_json(self, path: str, indent: int = 2) -> Path:
        """
        Write JSON report to file, creating parent directories.

        Returns:
            Path to written file
        """
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w") as f:
            f.write(self.to_json(indent=indent))

        return output_path
