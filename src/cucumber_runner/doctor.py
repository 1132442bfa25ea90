"""
Diagnostic tool for cucumber-runner.

Tells apart the two reasons a run can produce no results:

- HARNESS_ISSUE: the toolchain is missing (node, the cucumber-js command)
- SERVICE_ISSUE: the project itself is not runnable (no feature files)
- HEALTHY: everything needed for a run is in place

Example usage:
    from cucumber_runner.doctor import CucumberDoctor

    doctor = CucumberDoctor("/path/to/project")
    diagnosis = doctor.diagnose()
    doctor.print_diagnosis(diagnosis)
"""

import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TextIO, Union

from .config import DEFAULT_COMMAND, find_cucumber_config

MIN_NODE_MAJOR = 18

# Directories never searched for feature files.
IGNORED_DIRS = {"node_modules", ".git"}


@dataclass
class DiagnosticCheck:
    """
    Definition of a diagnostic check.

    Attributes:
        name: Human-readable check name
        category: 'harness' or 'service'
        check_fn: Function that returns (status, recommendation)
        required: If False, an ERROR is reported as WARNING
    """
    name: str
    category: str
    check_fn: Callable[[], tuple]
    required: bool = True


class CucumberDoctor:
    """
    Runs environment (harness) and project (service) checks.

    Example:
        doctor = CucumberDoctor(".", command=["yarn", "cucumber-js"])
        doctor.add_check(DiagnosticCheck(
            name="step_definitions",
            category="service",
            check_fn=lambda: ("OK", None) if Path("steps").exists() else ("ERROR", "Add step definitions"),
        ))
    """

    def __init__(
        self,
        root_path: Union[str, Path] = ".",
        command: Optional[Sequence[str]] = None,
        checks: Optional[List[DiagnosticCheck]] = None,
    ):
        self.root_path = Path(root_path)
        self.command = list(command) if command else list(DEFAULT_COMMAND)
        self.checks = checks if checks is not None else self._default_checks()

    def _default_checks(self) -> List[DiagnosticCheck]:
        return [
            DiagnosticCheck(name="node", category="harness", check_fn=self._check_node),
            DiagnosticCheck(name="command", category="harness", check_fn=self._check_command),
            DiagnosticCheck(
                name="cucumber_config",
                category="service",
                check_fn=self._check_cucumber_config,
                required=False,
            ),
            DiagnosticCheck(name="feature_files", category="service", check_fn=self._check_feature_files),
        ]

    def add_check(self, check: DiagnosticCheck):
        self.checks.append(check)

    def _check_node(self) -> tuple:
        """Check that node is on PATH and recent enough."""
        node = shutil.which("node")
        if node is None:
            return ("ERROR", "Install Node.js and make sure `node` is on PATH")
        try:
            result = subprocess.run([node, "--version"], capture_output=True, text=True, timeout=5)
        except subprocess.TimeoutExpired:
            return ("ERROR", "`node --version` timed out")
        except OSError as e:
            return ("ERROR", f"Cannot run node: {e}")

        version = result.stdout.strip().lstrip("v")
        try:
            major = int(version.split(".")[0])
        except ValueError:
            return ("WARNING", f"Could not parse node version: {version!r}")
        if major < MIN_NODE_MAJOR:
            return ("WARNING", f"Node.js {version} is old; cucumber-js needs {MIN_NODE_MAJOR}+")
        return ("OK", None)

    def _check_command(self) -> tuple:
        """Check that the cucumber-js command's executable is on PATH."""
        executable = self.command[0]
        if shutil.which(executable) is None and not (self.root_path / executable).exists():
            return ("ERROR", f"Command not found: {executable}")
        return ("OK", None)

    def _check_cucumber_config(self) -> tuple:
        if find_cucumber_config(self.root_path) is None:
            return ("ERROR", "No cucumber config found; cucumber-js defaults will be used")
        return ("OK", None)

    def _check_feature_files(self) -> tuple:
        for path in self.root_path.rglob("*.feature"):
            if not IGNORED_DIRS.intersection(path.relative_to(self.root_path).parts):
                return ("OK", None)
        return ("ERROR", f"No .feature files found under {self.root_path}")

    def diagnose(self) -> Dict[str, Any]:
        """
        Run all diagnostic checks.

        Returns:
            Dictionary containing:
            - harness: Dict of harness check results
            - service: Dict of service check results
            - summary: Overall status (HEALTHY, HARNESS_ISSUE, SERVICE_ISSUE)
            - recommendations: List of recommended actions
        """
        results: Dict[str, Any] = {
            "harness": {},
            "service": {},
            "recommendations": [],
        }

        for check in self.checks:
            status, recommendation = check.check_fn()
            if status == "ERROR" and not check.required:
                status = "WARNING"
            results[check.category][check.name] = status

            if recommendation:
                results["recommendations"].append(recommendation)

        harness_ok = all(v in ("OK", "WARNING") for v in results["harness"].values())
        service_ok = all(v in ("OK", "WARNING") for v in results["service"].values())

        if not harness_ok:
            results["summary"] = "HARNESS_ISSUE"
        elif not service_ok:
            results["summary"] = "SERVICE_ISSUE"
        else:
            results["summary"] = "HEALTHY"

        return results

    def print_diagnosis(self, diagnosis: Optional[Dict[str, Any]] = None, output: Optional[TextIO] = None):
        """
        Print diagnosis results.

        Args:
            diagnosis: Diagnosis dict from diagnose(). If None, runs diagnose().
            output: Output stream (default: sys.stdout)
        """
        if diagnosis is None:
            diagnosis = self.diagnose()
        stream = output or sys.stdout

        def emit(*args):
            print(*args, file=stream)

        emit("=" * 70)
        emit("CUCUMBER RUNNER DOCTOR")
        emit("=" * 70)
        emit()

        for title, key in (("Harness Checks:", "harness"), ("\nService Checks:", "service")):
            emit(title)
            for check, status in diagnosis[key].items():
                icon = "OK" if status == "OK" else "WA" if status == "WARNING" else "ER"
                emit(f"  [{icon}] {check:20s}: {status}")

        emit(f"\n{'=' * 70}")
        emit(f"Summary: {diagnosis['summary']}")
        emit(f"{'=' * 70}")

        if diagnosis["recommendations"]:
            emit("\nRecommendations:")
            for i, rec in enumerate(diagnosis["recommendations"], 1):
                emit(f"  {i}. {rec}")
        else:
            emit("\nNo issues detected")
