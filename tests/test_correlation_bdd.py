"""
Executable BDD scenarios for stream correlation.

The scenarios live in the repo-level features/correlation.feature; the
step definitions below drive a RunEventHandler with decoded cucumber-js
message lines and inspect what reaches the report and diagnostics.

Running:
    pytest tests/test_correlation_bdd.py -v
"""

import json
from typing import Any, Dict, List

import pytest
from cucumber_messages import case_finished, case_started, envelope, source_envelopes, step_finished
from pytest_bdd import given, parsers, scenarios, then, when

from cucumber_runner.correlator import TestRunCorrelator
from cucumber_runner.events import parse_line
from cucumber_runner.handler import RunEventHandler
from cucumber_runner.hierarchy import build_test_hierarchy_from_pickles
from cucumber_runner.reporter import DiagnosticStore
from cucumber_runner.schemas import GherkinDocument, Pickle

FEATURE_FILE = "../features/correlation.feature"

scenarios(FEATURE_FILE)


@pytest.fixture
def bdd_context() -> Dict[str, Any]:
    return {}


def _stream(handler: RunEventHandler, lines: List[str]) -> None:
    for line in lines:
        event = parse_line(line)
        if event is not None:
            handler.handle(event)


def _run_case(started_id: str, test_case_id: str, step_id: str, status: str, message: str, retried: bool) -> List[str]:
    attempt = 1 if started_id.endswith("b") else 0
    envelopes = [
        envelope("testCaseStarted", case_started(started_id, test_case_id, ms=100, attempt=attempt)),
        envelope("testStepFinished", step_finished(started_id, step_id, status, message=message or None)),
        envelope("testCaseFinished", case_finished(started_id, ms=160, will_be_retried=retried)),
    ]
    return [json.dumps(e) for e in envelopes]


@given("the sample project sources have been streamed")
def sources_streamed(bdd_context, report):
    sources = source_envelopes()
    document = GherkinDocument.model_validate(sources[0]["gherkinDocument"])
    pickles = [Pickle.model_validate(e["pickle"]) for e in sources if "pickle" in e]
    root = build_test_hierarchy_from_pickles(pickles, [document])

    diagnostics = DiagnosticStore()
    handler = RunEventHandler(TestRunCorrelator(root.walk()), report, diagnostics=diagnostics)
    _stream(handler, [json.dumps(e) for e in sources])
    bdd_context["handler"] = handler
    bdd_context["diagnostics"] = diagnostics


@when(
    parsers.re(
        r'attempt "(?P<started_id>[^"]+)" of "(?P<test_case_id>[^"]+)" runs with step "(?P<step_id>[^"]+)" '
        r'ending "(?P<status>[^"]+)" with message "(?P<message>[^"]*)"'
    )
)
def run_attempt(bdd_context, started_id, test_case_id, step_id, status, message):
    _stream(bdd_context["handler"], _run_case(started_id, test_case_id, step_id, status, message, False))


@when(
    parsers.parse(
        'attempt "{started_id}" of "{test_case_id}" runs with step "{step_id}" '
        'ending "{status}" and will be retried'
    )
)
def run_retried_attempt(bdd_context, started_id, test_case_id, step_id, status):
    _stream(bdd_context["handler"], _run_case(started_id, test_case_id, step_id, status, "", True))


@when(parsers.parse('the lines "{first}", "{second}" and "{third}" are streamed'))
def stream_lines(bdd_context, first, second, third):
    _stream(bdd_context["handler"], [first, second, third])


@then(parsers.parse('"{node_id}" is reported as failed exactly once'))
def failed_once(report, node_id):
    failures = report.of_kind("failed")
    assert [f[1] for f in failures] == [node_id]


@then(parsers.parse('"{node_id}" is reported as passed'))
def reported_passed(report, node_id):
    assert [p[1] for p in report.of_kind("passed")] == [node_id]


@then("nothing is reported as failed")
def nothing_failed(report):
    assert report.of_kind("failed") == []


@then(parsers.parse("the failure carries {count:d} diagnostic starting on line {line:d} column {column:d}"))
def failure_diagnostics(report, count, line, column):
    diagnostics = report.of_kind("failed")[0][2]
    assert len(diagnostics) == count
    assert (diagnostics[0].range.start_line, diagnostics[0].range.start_character) == (line, column)


@then(parsers.parse('the diagnostic message is "{message}"'))
def diagnostic_message(report, message):
    assert report.of_kind("failed")[0][2][0].message == message


@then(parsers.parse('the output mentions "{text}"'))
def output_mentions(report, text):
    assert any(text in line for line in report.output)


@then(parsers.parse('no diagnostics remain for "{uri}"'))
def no_diagnostics(bdd_context, uri):
    assert bdd_context["diagnostics"].get(uri) == []
