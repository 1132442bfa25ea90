"""
Test controller - discovery and execution on top of the runner.

Discovery runs cucumber-js with --dry-run and keeps only the source and
compiled messages (gherkinDocument, pickle) to build the test tree.
Execution maps the selected tree nodes to `path:line` arguments, runs them,
and feeds the run's events through a RunEventHandler into the report.

Example:
    controller = CucumberTestController("/path/to/project")
    await controller.discover_from_pickles()

    report = ConsoleRunReport()
    await controller.run_tests(report=report)
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .cancellation import CancellationToken
from .config import DISCOVERY_MODES
from .correlator import TestRunCorrelator
from .errors import ConfigError
from .events import CucumberEvent
from .handler import RunEventHandler
from .hierarchy import HierarchyNode, build_test_hierarchy, build_test_hierarchy_from_pickles
from .ports import DiagnosticCollection, TestRunReport, TreeSink
from .runner import CucumberRunner, RunOutcome
from .schemas import GherkinDocument, Pickle
from .tree import TestTree

logger = logging.getLogger(__name__)

DRY_RUN_ARGS = ["--dry-run"]


class CucumberTestController:
    """
    Owns the test tree of one project and runs its scenarios.

    Attributes:
        root_path: Project directory
        runner: CucumberRunner used for discovery and runs
        tree: TreeSink receiving discovered nodes
        discovery: 'pickles' (default) or 'documents', used by refresh()
    """

    def __init__(
        self,
        root_path: Union[str, Path],
        runner: Optional[CucumberRunner] = None,
        tree: Optional[TreeSink] = None,
        discovery: str = "pickles",
    ):
        if discovery not in DISCOVERY_MODES:
            raise ConfigError(f"Invalid discovery: {discovery}")
        self.root_path = Path(root_path)
        self.runner = runner or CucumberRunner(self.root_path)
        self.tree = tree if tree is not None else TestTree()
        self.discovery = discovery
        self._root: Optional[HierarchyNode] = None

    @property
    def root(self) -> Optional[HierarchyNode]:
        """Root node of the last discovery (None before the first one)."""
        return self._root

    async def _dry_run(self, token: Optional[CancellationToken] = None):
        documents: List[GherkinDocument] = []
        pickles: List[Pickle] = []

        def collect(event: CucumberEvent) -> None:
            if event.type == "gherkinDocument":
                documents.append(event.data)
            elif event.type == "pickle":
                pickles.append(event.data)

        outcome = await self.runner.run(DRY_RUN_ARGS, on_event=collect, token=token)
        logger.info(
            "Discovery found %d documents and %d pickles (exit code %s)",
            len(documents),
            len(pickles),
            outcome.exit_code,
        )
        if outcome.exit_code not in (0, None):
            logger.warning(
                "Discovery dry run exited with code %s; the test tree may be incomplete",
                outcome.exit_code,
            )
        return documents, pickles

    def _publish(self, root: HierarchyNode) -> HierarchyNode:
        self._root = root
        self.tree.replace(root.children)
        return root

    async def discover(self, token: Optional[CancellationToken] = None) -> HierarchyNode:
        """Build the tree from the parsed documents of a dry run."""
        documents, _ = await self._dry_run(token)
        return self._publish(build_test_hierarchy(documents))

    async def discover_from_pickles(self, token: Optional[CancellationToken] = None) -> HierarchyNode:
        """Build the tree from the compiled pickles of a dry run."""
        documents, pickles = await self._dry_run(token)
        return self._publish(build_test_hierarchy_from_pickles(pickles, documents))

    async def refresh(self, token: Optional[CancellationToken] = None) -> HierarchyNode:
        """Rediscover using the configured discovery mode."""
        if self.discovery == "documents":
            return await self.discover(token)
        return await self.discover_from_pickles(token)

    def _relative_path(self, uri: str) -> str:
        path = Path(uri)
        if path.is_absolute():
            return Path(os.path.relpath(path, self.root_path)).as_posix()
        return path.as_posix()

    def build_cucumber_args(self, include: Sequence[HierarchyNode]) -> List[str]:
        """
        Map tree nodes to cucumber-js path arguments.

        A node with a uri becomes its root-relative path, suffixed ':<line>'
        when the node has a line. Folder nodes contribute their descendants.
        Duplicates are dropped, first occurrence wins.
        """
        args: List[str] = []

        def visit(node: HierarchyNode) -> None:
            if node.uri is None:
                for child in node.children:
                    visit(child)
                return
            arg = self._relative_path(node.uri)
            if node.line is not None:
                arg = f"{arg}:{node.line}"
            if arg not in args:
                args.append(arg)

        for node in include:
            visit(node)
        return args

    def _candidates(self, include: Optional[Sequence[HierarchyNode]]) -> List[HierarchyNode]:
        roots = list(include) if include is not None else list(self._root.children if self._root else [])
        seen: Dict[str, HierarchyNode] = {}
        for root in roots:
            for node in root.walk():
                seen.setdefault(node.id, node)
        return list(seen.values())

    async def run_tests(
        self,
        report: TestRunReport,
        include: Optional[Sequence[HierarchyNode]] = None,
        diagnostics: Optional[DiagnosticCollection] = None,
        token: Optional[CancellationToken] = None,
    ) -> RunOutcome:
        """
        Run the included nodes (default: the whole tree, discovered first if
        needed).

        Args:
            report: Receives verdicts and run output
            include: Nodes to run; their descendants are included
            diagnostics: Receives source markers for failed steps
            token: Cancellation token

        Returns:
            RunOutcome of the cucumber-js invocation

        Raises:
            SpawnFailure: If cucumber-js could not be started
        """
        if include is None and self._root is None:
            await self.refresh(token)

        if diagnostics is not None:
            diagnostics.clear()

        correlator = TestRunCorrelator(self._candidates(include))
        handler = RunEventHandler(correlator, report, token=token, diagnostics=diagnostics)

        args = self.build_cucumber_args(include) if include is not None else []
        try:
            if args:
                outcome = await self.runner.run_with_tmp_config(
                    args, report=report, on_event=handler.handle, token=token
                )
            else:
                outcome = await self.runner.run(report=report, on_event=handler.handle, token=token)
        finally:
            handler.end()

        logger.info("Run finished: %d results, exit code %s", len(handler.results), outcome.exit_code)
        return outcome
