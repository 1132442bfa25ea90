"""
Run event handler: feeds decoded events into a correlator and reports the
resulting verdicts and diagnostics to the sinks.

Correlation failures never abort a run. They are logged with the missing
id and the table that was searched, and only that event is skipped.
"""

import base64
import binascii
import logging
from typing import Any, Callable, Dict, List, Optional

from .cancellation import CancellationToken
from .correlator import CaseResult, TestRunCorrelator, Verdict
from .errors import CorrelationNotFound
from .events import CucumberEvent
from .ports import Diagnostic, DiagnosticCollection, TestRunReport
from .schemas import (
    Attachment,
    GherkinDocument,
    Pickle,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestRunFinished,
    TestStepFinished,
)

logger = logging.getLogger(__name__)

TEXT_MEDIA_TYPES = ("text/", "application/json")


class RunEventHandler:
    """
    Dispatches one run's events.

    Example:
        handler = RunEventHandler(TestRunCorrelator(tests), report, token)
        await runner.run(args, report=report, on_event=handler.handle)
        handler.end()
    """

    def __init__(
        self,
        correlator: TestRunCorrelator,
        report: TestRunReport,
        token: Optional[CancellationToken] = None,
        diagnostics: Optional[DiagnosticCollection] = None,
    ):
        self.correlator = correlator
        self.report = report
        self.token = token
        self.diagnostics = diagnostics
        self.results: List[CaseResult] = []
        self._diagnostics_by_uri: Dict[str, List[Diagnostic]] = {}
        self._retried_diagnostics: Dict[str, List[Diagnostic]] = {}
        self._ended = False
        self._handlers: Dict[str, Callable[[Any], None]] = {
            "stdout": self._handle_stdout,
            "gherkinDocument": self._handle_gherkin_document,
            "pickle": self._handle_pickle,
            "testCase": self._handle_test_case,
            "testCaseStarted": self._handle_test_case_started,
            "testStepFinished": self._handle_test_step_finished,
            "testCaseFinished": self._handle_test_case_finished,
            "testRunFinished": self._handle_test_run_finished,
            "attachment": self._handle_attachment,
        }

    @property
    def ended(self) -> bool:
        return self._ended

    def end(self) -> None:
        """End the report; later calls are no-ops."""
        if self._ended:
            return
        self._ended = True
        self.report.end()

    def handle(self, event: CucumberEvent) -> None:
        if self.token is not None and self.token.is_cancellation_requested:
            self.end()
            return
        if self._ended:
            return

        handler = self._handlers.get(event.type)
        if handler is None:
            return
        try:
            handler(event.data)
        except CorrelationNotFound as e:
            logger.warning(
                "Skipping %s event: %s not found in %s (%s)",
                event.type,
                e.missing_id,
                e.buffer,
                e,
            )

    def _feature_name(self, test_case_started_id: str) -> str:
        try:
            return self.correlator.resolve_feature(test_case_started_id).name
        except CorrelationNotFound:
            return "Unknown"

    def _log_case(self, marker: str, test_case_started_id: str, scenario: str) -> None:
        feature = self._feature_name(test_case_started_id)
        self.report.append_output(f'({marker}) Feature: "{feature}" - Scenario: "{scenario}"')

    def _handle_stdout(self, data: str) -> None:
        self.report.append_output(data)

    def _handle_gherkin_document(self, data: GherkinDocument) -> None:
        self.correlator.add_gherkin_document(data)

    def _handle_pickle(self, data: Pickle) -> None:
        self.correlator.add_pickle(data)

    def _handle_test_case(self, data: TestCase) -> None:
        self.correlator.add_test_case(data)

    def _handle_test_case_started(self, data: TestCaseStarted) -> None:
        self.correlator.add_test_case_started(data)
        node = self.correlator.resolve_tree_item_by_started_id(data.id)
        self.report.started(node)
        self._log_case("started", data.id, node.name)

    def _handle_test_step_finished(self, data: TestStepFinished) -> None:
        diagnostic = self.correlator.finish_step(data)
        if diagnostic is None:
            return
        uri_diagnostics = self._diagnostics_by_uri.setdefault(diagnostic.uri, [])
        uri_diagnostics.append(diagnostic)
        if self.diagnostics is not None:
            self.diagnostics.set(diagnostic.uri, list(uri_diagnostics))

    def _handle_test_case_finished(self, data: TestCaseFinished) -> None:
        result = self.correlator.finish_case(
            data.test_case_started_id,
            data.timestamp,
            will_be_retried=data.will_be_retried,
        )
        self.results.append(result)
        node = result.node
        test_case_id = self.correlator.get_test_case_started(data.test_case_started_id).test_case_id

        if result.will_be_retried:
            self._retried_diagnostics.setdefault(test_case_id, []).extend(result.diagnostics)
            self._log_case(f"retrying after attempt {result.attempt}", data.test_case_started_id, node.name)
            return

        self._drop_diagnostics(self._retried_diagnostics.pop(test_case_id, []))

        if result.verdict is Verdict.FAILED:
            self._log_case("failed", data.test_case_started_id, node.name)
            self.report.failed(node, result.diagnostics, result.duration_ms)
        elif result.verdict is Verdict.SKIPPED:
            self._log_case("skipped", data.test_case_started_id, node.name)
            self.report.skipped(node)
        else:
            self._log_case("passed", data.test_case_started_id, node.name)
            self.report.passed(node, result.duration_ms)

    def _drop_diagnostics(self, stale: List[Diagnostic]) -> None:
        """Withdraw the diagnostics of attempts superseded by a retry."""
        if not stale:
            return
        stale_ids = {id(d) for d in stale}
        for uri in sorted({d.uri for d in stale}):
            kept = [d for d in self._diagnostics_by_uri.get(uri, []) if id(d) not in stale_ids]
            self._diagnostics_by_uri[uri] = kept
            if self.diagnostics is not None:
                self.diagnostics.set(uri, list(kept))

    def _handle_test_run_finished(self, data: TestRunFinished) -> None:
        outcome = "success" if data.success else "failure"
        line = f"Test run finished: {outcome}"
        if data.message:
            line = f"{line} ({data.message})"
        self.report.append_output(line)

    def _handle_attachment(self, data: Attachment) -> None:
        if not data.media_type.startswith(TEXT_MEDIA_TYPES):
            logger.debug("Ignoring %s attachment", data.media_type)
            return
        body = data.body
        if (data.content_encoding or "").upper() == "BASE64":
            try:
                body = base64.b64decode(body).decode("utf-8", errors="replace")
            except (binascii.Error, ValueError) as e:
                logger.warning("Could not decode %s attachment: %s", data.media_type, e)
                return
        self.report.append_output(body)
