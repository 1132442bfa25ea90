"""
ports.py - Sink interfaces consumed by the runner.

The host that displays results (an IDE test explorer, a console, a CI
report) is not part of this package. It is reached only through these
protocols:

- TreeSink: receives the discovered test tree (replace-all)
- TestRunReport: receives per-scenario outcomes and free-text output
- DiagnosticCollection: receives source markers for failed steps

cucumber_runner.tree and cucumber_runner.reporter ship in-memory and
console implementations.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from cucumber_runner.hierarchy import HierarchyNode


class DiagnosticSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"
    HINT = "hint"


@dataclass(frozen=True)
class Range:
    """Zero-based, end-exclusive character range in a source file."""

    start_line: int
    start_character: int
    end_line: int
    end_character: int


@dataclass(frozen=True)
class Diagnostic:
    """A message anchored to a source range.

    Attributes:
        uri: Feature file the range refers to
        range: Location of the offending step text
        message: Failure message (or the step status when there is none)
        severity: Marker severity
    """

    uri: str
    range: Range
    message: str
    severity: DiagnosticSeverity = DiagnosticSeverity.ERROR

    def to_dict(self) -> dict:
        return {
            "uri": self.uri,
            "range": {
                "start": {"line": self.range.start_line, "character": self.range.start_character},
                "end": {"line": self.range.end_line, "character": self.range.end_character},
            },
            "message": self.message,
            "severity": self.severity.value,
        }


@runtime_checkable
class TreeSink(Protocol):
    """Receives the discovered tree. Node ids are stable across rebuilds."""

    def replace(self, nodes: Sequence["HierarchyNode"]) -> None:
        """Replace every top-level node with `nodes`."""
        ...


@runtime_checkable
class TestRunReport(Protocol):
    """Receives the outcome of one run."""

    def started(self, node: "HierarchyNode") -> None:
        ...

    def passed(self, node: "HierarchyNode", duration_ms: int) -> None:
        ...

    def failed(
        self,
        node: "HierarchyNode",
        diagnostics: List[Diagnostic],
        duration_ms: int,
    ) -> None:
        ...

    def skipped(self, node: "HierarchyNode") -> None:
        ...

    def append_output(self, text: str) -> None:
        """Append one line of free-text run output."""
        ...

    def end(self) -> None:
        """Signal that no further results will be reported."""
        ...


@runtime_checkable
class DiagnosticCollection(Protocol):
    """Receives source markers, replacing any previous set for the uri."""

    def set(self, uri: str, diagnostics: List[Diagnostic]) -> None:
        ...

    def clear(self) -> None:
        ...
