"""
cucumber-runner: discover and run cucumber-js scenarios from Python.

Runs `cucumber-js --format message` as a subprocess, decodes its
newline-delimited message stream, and turns it into:

- A test tree: folder -> feature -> scenario / outline -> example row
- Per-scenario verdicts (passed / failed / skipped) with durations
- Source diagnostics for failed and undefined steps

Quick Start:
    import asyncio
    from cucumber_runner import ConsoleRunReport, CucumberTestController

    controller = CucumberTestController("/path/to/project")
    asyncio.run(controller.discover_from_pickles())

    report = ConsoleRunReport()
    asyncio.run(controller.run_tests(report=report))

Correlating a recorded stream:
    from cucumber_runner import RunEventHandler, TestRunCorrelator, parse_line

    handler = RunEventHandler(TestRunCorrelator(tests_to_run), report)
    for line in open("messages.ndjson"):
        event = parse_line(line)
        if event is not None:
            handler.handle(event)
    handler.end()

Diagnostics:
    from cucumber_runner.doctor import CucumberDoctor

    CucumberDoctor(".").print_diagnosis()
"""

__version__ = "0.1.0"

# Errors
from .errors import (
    ConfigError,
    CorrelationNotFound,
    CucumberRunnerError,
    DecodeError,
    SpawnFailure,
)

# Decoder
from .events import CucumberEvent, decode_envelope, parse_envelope, parse_line

# Tree
from .hierarchy import (
    HierarchyNode,
    build_test_hierarchy,
    build_test_hierarchy_from_pickles,
    outline_group_key,
)
from .tree import TestTree

# Correlation
from .correlator import CaseResult, TestRunCorrelator, Verdict, compute_verdict
from .handler import RunEventHandler

# Execution
from .cancellation import CancellationToken
from .config import RunnerConfig, clean_and_copy_config, load_config
from .controller import CucumberTestController
from .runner import CucumberRunner, RunOutcome, RunState

# Sinks
from .ports import (
    Diagnostic,
    DiagnosticCollection,
    DiagnosticSeverity,
    Range,
    TestRunReport,
    TreeSink,
)
from .reporter import ConsoleRunReport, DiagnosticStore, RecordingRunReport, ReportGenerator

__all__ = [
    # Version
    "__version__",
    # Errors
    "CucumberRunnerError",
    "DecodeError",
    "CorrelationNotFound",
    "SpawnFailure",
    "ConfigError",
    # Decoder
    "CucumberEvent",
    "decode_envelope",
    "parse_envelope",
    "parse_line",
    # Tree
    "HierarchyNode",
    "build_test_hierarchy",
    "build_test_hierarchy_from_pickles",
    "outline_group_key",
    "TestTree",
    # Correlation
    "TestRunCorrelator",
    "CaseResult",
    "Verdict",
    "compute_verdict",
    "RunEventHandler",
    # Execution
    "CancellationToken",
    "RunnerConfig",
    "load_config",
    "clean_and_copy_config",
    "CucumberRunner",
    "RunOutcome",
    "RunState",
    "CucumberTestController",
    # Sinks
    "Diagnostic",
    "DiagnosticSeverity",
    "Range",
    "TreeSink",
    "TestRunReport",
    "DiagnosticCollection",
    "ConsoleRunReport",
    "RecordingRunReport",
    "DiagnosticStore",
    "ReportGenerator",
]
