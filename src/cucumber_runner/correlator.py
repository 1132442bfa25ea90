"""
Message-stream correlator.

cucumber-js reports a run as independent messages that point at each other
only through opaque ids:

    gherkinDocument  scenario/background -> steps          (source)
    pickle           astNodeIds -> scenario, examples row  (compiled)
                     steps[].astNodeIds -> source step
    testCase         pickleId, testSteps[].pickleStepId    (execution plan)
    testCaseStarted  testCaseId                            (one attempt)
    testStepFinished testCaseStartedId, testStepId         (step outcome)
    testCaseFinished testCaseStartedId                     (attempt done)

TestRunCorrelator keeps each kind in its own table keyed by id and answers
joins over them. Every lookup raises CorrelationNotFound naming the missing
id and the table it searched; nothing returns a placeholder.

Step results are keyed by the testCaseStarted id, never the testCase id, so
retried attempts of one test case keep separate step lists.

Example:
    correlator = TestRunCorrelator(tests_to_run)
    correlator.add_gherkin_document(document)
    correlator.add_pickle(pickle)
    correlator.add_test_case(test_case)
    correlator.add_test_case_started(started)
    diagnostic = correlator.finish_step(step_finished)
    result = correlator.finish_case(started.id, finished.timestamp)
    print(result.verdict, result.duration_ms)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, TypeVar

from .ast_index import AstNodeIndex, index_document
from .errors import CorrelationNotFound
from .hierarchy import HierarchyNode, leaf_id
from .ports import Diagnostic, DiagnosticSeverity, Range
from .schemas import (
    Feature,
    GherkinDocument,
    Pickle,
    Step,
    StepStatus,
    TestCase,
    TestCaseStarted,
    TestStepFinished,
    Timestamp,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Verdict(Enum):
    """Aggregated outcome of one scenario execution."""
    PASSED = "PASSED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


# Evaluated as set membership, top to bottom; the first status present wins.
VERDICT_PRIORITY = (
    (StepStatus.FAILED, Verdict.FAILED),
    (StepStatus.SKIPPED, Verdict.SKIPPED),
    (StepStatus.AMBIGUOUS, Verdict.FAILED),
    (StepStatus.PENDING, Verdict.SKIPPED),
    (StepStatus.UNDEFINED, Verdict.FAILED),
)

# Step statuses that get a source diagnostic.
DIAGNOSTIC_STATUSES = frozenset({StepStatus.FAILED, StepStatus.UNDEFINED})


def compute_verdict(statuses: Iterable[StepStatus]) -> Verdict:
    """Aggregate step statuses into one verdict, independent of their order."""
    present = set(statuses)
    for status, verdict in VERDICT_PRIORITY:
        if status in present:
            return verdict
    return Verdict.PASSED


def step_diagnostic_range(step: Step) -> Range:
    """Range covering the step text, just past its keyword, on the step's line."""
    line = step.location.line - 1
    column = step.location.column - 1 if step.location.column else 0
    start = column + len(step.keyword)
    return Range(line, start, line, start + len(step.text))


@dataclass
class CaseResult:
    """
    Verdict for one finished testCaseStarted.

    Attributes:
        test_case_started_id: The attempt this result belongs to
        node: Tree node the attempt was resolved to
        verdict: Aggregated scenario outcome
        duration_ms: Finished minus started timestamp, in whole milliseconds
        statuses: Step statuses in arrival order
        diagnostics: Diagnostics produced for failed/undefined steps
        attempt: Attempt number reported by cucumber-js
        will_be_retried: True when cucumber-js will run this test case again
    """
    test_case_started_id: str
    node: HierarchyNode
    verdict: Verdict
    duration_ms: int
    statuses: List[StepStatus] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    attempt: int = 0
    will_be_retried: bool = False


def _lookup(table: Dict[str, T], key: str, buffer: str) -> T:
    try:
        return table[key]
    except KeyError:
        raise CorrelationNotFound(key, buffer) from None


class TestRunCorrelator:
    """
    Accumulates the messages of one run and correlates them.

    Create one instance per run; instances must not be shared between runs.
    """

    __test__ = False

    def __init__(self, tests_to_run: Iterable[HierarchyNode] = ()):
        """
        Initialize the correlator.

        Args:
            tests_to_run: Candidate tree nodes that results may be reported against
        """
        self.tests_to_run: Dict[str, HierarchyNode] = {}
        for node in tests_to_run:
            self.tests_to_run.setdefault(node.id, node)

        self.documents: Dict[str, GherkinDocument] = {}
        self.pickles: Dict[str, Pickle] = {}
        self.test_cases: Dict[str, TestCase] = {}
        self.test_cases_started: Dict[str, TestCaseStarted] = {}
        self.step_results: Dict[str, List[TestStepFinished]] = {}
        self._diagnostics: Dict[str, List[Diagnostic]] = {}
        self._ast_index: AstNodeIndex = {}

    # -------------------------------------------------------------------------
    # Accumulation
    # -------------------------------------------------------------------------

    def add_gherkin_document(self, document: GherkinDocument) -> None:
        self.documents[document.uri] = document
        index_document(document, self._ast_index)

    def add_pickle(self, pickle: Pickle) -> None:
        self.pickles[pickle.id] = pickle

    def add_test_case(self, test_case: TestCase) -> None:
        self.test_cases[test_case.id] = test_case

    def add_test_case_started(self, started: TestCaseStarted) -> None:
        self.test_cases_started[started.id] = started

    # -------------------------------------------------------------------------
    # Point lookups
    # -------------------------------------------------------------------------

    def get_test_case_started(self, test_case_started_id: str) -> TestCaseStarted:
        return _lookup(self.test_cases_started, test_case_started_id, "testCasesStarted")

    def get_test_case(self, test_case_id: str) -> TestCase:
        return _lookup(self.test_cases, test_case_id, "testCases")

    def get_test_case_by_started_id(self, test_case_started_id: str) -> TestCase:
        started = self.get_test_case_started(test_case_started_id)
        return self.get_test_case(started.test_case_id)

    def get_pickle(self, pickle_id: str) -> Pickle:
        return _lookup(self.pickles, pickle_id, "pickles")

    def get_document(self, uri: str) -> GherkinDocument:
        return _lookup(self.documents, uri, "gherkinDocuments")

    # -------------------------------------------------------------------------
    # Joins
    # -------------------------------------------------------------------------

    def resolve_source_step(self, test_case_started_id: str, test_step_id: str) -> Step:
        """
        Find the source step executed by one test step of one attempt.

        Chain: testCaseStarted -> testCase -> testStep.pickleStepId -> pickle
        -> pickleStep -> first astNodeId -> step of a scenario or background
        in the pickle's document.

        Raises:
            CorrelationNotFound: At the first hop that cannot be resolved
        """
        test_case = self.get_test_case_by_started_id(test_case_started_id)

        test_step = next((s for s in test_case.test_steps if s.id == test_step_id), None)
        if test_step is None:
            raise CorrelationNotFound(test_step_id, "testSteps", f"test case {test_case.id}")
        if not test_step.pickle_step_id:
            raise CorrelationNotFound(test_step_id, "pickleStepIds", "hook steps have no source step")

        pickle = self.get_pickle(test_case.pickle_id)
        pickle_step = next((s for s in pickle.steps if s.id == test_step.pickle_step_id), None)
        if pickle_step is None:
            raise CorrelationNotFound(test_step.pickle_step_id, "pickleSteps", f"pickle {pickle.id}")
        if not pickle_step.ast_node_ids:
            raise CorrelationNotFound(pickle_step.id, "astNodeIds", "pickle step has no astNodeIds")
        ast_node_id = pickle_step.ast_node_ids[0]

        document = self.get_document(pickle.uri)
        if document.feature is None:
            raise CorrelationNotFound(pickle.uri, "features")

        for definition in document.feature.iter_definitions():
            for step in definition.steps:
                if step.id == ast_node_id:
                    return step

        raise CorrelationNotFound(ast_node_id, "steps", f"document {document.uri}")

    def resolve_tree_item(self, test_case_id: str) -> HierarchyNode:
        """
        Map a test case back to the tree node it was discovered as.

        Each astNodeId of the pickle is tried from first to last; one that
        resolves to a line yields the candidate id '<uri>:<line>'. The first
        candidate present in tests_to_run wins, then '<uri>:' as a fallback.

        Raises:
            CorrelationNotFound: If no candidate node matches
        """
        test_case = self.get_test_case(test_case_id)
        pickle = self.get_pickle(test_case.pickle_id)

        for ast_node_id in pickle.ast_node_ids:
            location = self._ast_index.get(ast_node_id)
            if location is None:
                continue
            node = self.tests_to_run.get(leaf_id(pickle.uri, location.line))
            if node is not None:
                return node

        node = self.tests_to_run.get(leaf_id(pickle.uri, None))
        if node is not None:
            return node

        raise CorrelationNotFound(test_case_id, "testsToRun", f"pickle {pickle.id} at {pickle.uri}")

    def resolve_tree_item_by_started_id(self, test_case_started_id: str) -> HierarchyNode:
        started = self.get_test_case_started(test_case_started_id)
        return self.resolve_tree_item(started.test_case_id)

    def resolve_feature(self, test_case_started_id: str) -> Feature:
        """Return the feature that owns the scenario of one attempt."""
        test_case = self.get_test_case_by_started_id(test_case_started_id)
        pickle = self.get_pickle(test_case.pickle_id)
        document = self.get_document(pickle.uri)
        if document.feature is None:
            raise CorrelationNotFound(pickle.uri, "features", "document has no feature")
        return document.feature

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    def statuses_for(self, test_case_started_id: str) -> List[StepStatus]:
        results = self.step_results.get(test_case_started_id, [])
        return [r.test_step_result.status for r in results]

    def finish_step(self, data: TestStepFinished) -> Optional[Diagnostic]:
        """
        Record a step outcome; build a diagnostic for failed/undefined steps.

        The outcome always counts towards the verdict. The diagnostic is
        best-effort: if the source step or tree node cannot be resolved the
        failure is logged and None is returned.
        """
        started_id = data.test_case_started_id
        self.step_results.setdefault(started_id, []).append(data)

        result = data.test_step_result
        if result.status not in DIAGNOSTIC_STATUSES:
            return None

        try:
            step = self.resolve_source_step(started_id, data.test_step_id)
            test_case = self.get_test_case_by_started_id(started_id)
            node = self.resolve_tree_item(test_case.id)
            pickle = self.get_pickle(test_case.pickle_id)
        except CorrelationNotFound as e:
            logger.warning(
                "No diagnostic for step %s of %s: %s", data.test_step_id, started_id, e
            )
            return None

        diagnostic = Diagnostic(
            uri=node.uri or pickle.uri,
            range=step_diagnostic_range(step),
            message=result.message or result.status.value,
            severity=DiagnosticSeverity.ERROR,
        )
        self._diagnostics.setdefault(started_id, []).append(diagnostic)
        return diagnostic

    def finish_case(
        self,
        test_case_started_id: str,
        timestamp: Timestamp,
        will_be_retried: bool = False,
    ) -> CaseResult:
        """
        Compute the verdict and duration of one finished attempt.

        Raises:
            CorrelationNotFound: If the attempt or its tree node is unknown
        """
        started = self.get_test_case_started(test_case_started_id)
        node = self.resolve_tree_item(started.test_case_id)
        statuses = self.statuses_for(test_case_started_id)

        duration_ms = timestamp.to_millis() - started.timestamp.to_millis()
        return CaseResult(
            test_case_started_id=test_case_started_id,
            node=node,
            verdict=compute_verdict(statuses),
            duration_ms=max(0, duration_ms),
            statuses=statuses,
            diagnostics=list(self._diagnostics.get(test_case_started_id, [])),
            attempt=started.attempt,
            will_be_retried=will_be_retried,
        )
