"""Shared fixtures: the sample project of cucumber_messages, decoded."""

from typing import List

import pytest
from cucumber_messages import sample_document, sample_pickles, sample_test_cases

from cucumber_runner.correlator import TestRunCorrelator
from cucumber_runner.hierarchy import HierarchyNode, build_test_hierarchy_from_pickles
from cucumber_runner.schemas import GherkinDocument, Pickle, TestCase


class RecordingReport:
    """TestRunReport that records every call in order."""

    __test__ = False

    def __init__(self):
        self.calls: List[tuple] = []
        self.output: List[str] = []

    def started(self, node):
        self.calls.append(("started", node.id))

    def passed(self, node, duration_ms):
        self.calls.append(("passed", node.id, duration_ms))

    def failed(self, node, diagnostics, duration_ms):
        self.calls.append(("failed", node.id, list(diagnostics), duration_ms))

    def skipped(self, node):
        self.calls.append(("skipped", node.id))

    def append_output(self, text):
        self.output.append(text)

    def end(self):
        self.calls.append(("end",))

    def of_kind(self, kind: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == kind]


@pytest.fixture
def document() -> GherkinDocument:
    return GherkinDocument.model_validate(sample_document())


@pytest.fixture
def pickles() -> List[Pickle]:
    return [Pickle.model_validate(p) for p in sample_pickles()]


@pytest.fixture
def test_cases() -> List[TestCase]:
    return [TestCase.model_validate(tc) for tc in sample_test_cases()]


@pytest.fixture
def tree_root(document, pickles) -> HierarchyNode:
    return build_test_hierarchy_from_pickles(pickles, [document])


@pytest.fixture
def correlator(document, pickles, test_cases, tree_root) -> TestRunCorrelator:
    """Correlator loaded with the sample sources; every tree node is a candidate."""
    correlator = TestRunCorrelator(tree_root.walk())
    correlator.add_gherkin_document(document)
    for p in pickles:
        correlator.add_pickle(p)
    for tc in test_cases:
        correlator.add_test_case(tc)
    return correlator


@pytest.fixture
def report() -> RecordingReport:
    return RecordingReport()
