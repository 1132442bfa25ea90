"""Tests for the event decoder."""

import json
import logging

import pytest
from cucumber_messages import envelope, failing_run_envelopes, sample_document, sample_pickles

from cucumber_runner.errors import DecodeError
from cucumber_runner.events import (
    ENVELOPE_TYPES,
    CucumberEvent,
    decode_envelope,
    parse_envelope,
    parse_line,
)
from cucumber_runner.schemas import FeatureChild, GherkinDocument, Pickle, StepStatus, TestStepFinished


class TestParseLine:
    """Tests for parse_line()."""

    def test_non_json_line_is_not_an_event(self):
        """Test that incidental output decodes to None."""
        assert parse_line("not json") is None

    def test_unknown_envelope_kind_is_ignored(self):
        """Test that an object without a known key decodes to None."""
        assert parse_line('{"unknownKind":{}}') is None

    def test_blank_lines_are_ignored(self):
        assert parse_line("") is None
        assert parse_line("   \n") is None

    def test_non_object_json_is_ignored(self):
        assert parse_line("[1, 2, 3]") is None
        assert parse_line("42") is None

    def test_pickle_line(self):
        """Test that a pickle envelope decodes into a validated model."""
        line = json.dumps(envelope("pickle", sample_pickles()[0])) + "\n"
        event = parse_line(line)

        assert isinstance(event, CucumberEvent)
        assert event.type == "pickle"
        assert isinstance(event.data, Pickle)
        assert event.data.ast_node_ids == ["sc1"]
        assert event.data.steps[0].ast_node_ids == ["bg-s1"]

    def test_stdout_line(self):
        event = parse_line('{"stdout": "hello from a step"}')
        assert event == CucumberEvent(type="stdout", data="hello from a step")

    def test_schema_failure_is_logged_not_raised(self, caplog):
        """Test that a payload failing validation is logged with its schema name."""
        with caplog.at_level(logging.ERROR, logger="cucumber_runner.events"):
            event = parse_line('{"testCaseStarted": {"id": "tcs1"}}')

        assert event is None
        assert "TestCaseStartedSchema" in caplog.text

    def test_every_event_of_a_run_decodes(self):
        """Test that a recorded run decodes line by line without loss."""
        events = [parse_line(json.dumps(e)) for e in failing_run_envelopes()]
        assert all(e is not None for e in events)
        assert [e.type for e in events[:2]] == ["gherkinDocument", "pickle"]

    def test_unknown_fields_are_tolerated(self):
        """Test that fields added by newer cucumber-js versions do not drop an event."""
        payload = dict(sample_pickles()[0], someNewField={"x": 1})
        event = parse_line(json.dumps({"pickle": payload}))
        assert event is not None


class TestDecodeEnvelope:
    """Tests for decode_envelope() and parse_envelope()."""

    def test_raises_decode_error_with_details(self):
        payload = {"testCaseStartedId": "tcs1"}
        with pytest.raises(DecodeError) as exc_info:
            decode_envelope({"testStepFinished": payload})

        error = exc_info.value
        assert error.schema_name == "TestStepFinishedSchema"
        assert error.payload == payload
        assert error.issues

    def test_step_result_status(self):
        event = decode_envelope(
            {
                "testStepFinished": {
                    "testCaseStartedId": "tcs1",
                    "testStepId": "t1",
                    "testStepResult": {"status": "UNDEFINED", "duration": {"seconds": 0, "nanos": 0}},
                    "timestamp": {"seconds": 1, "nanos": 0},
                }
            }
        )
        assert isinstance(event.data, TestStepFinished)
        assert event.data.test_step_result.status is StepStatus.UNDEFINED

    def test_invalid_status_is_rejected(self):
        assert parse_envelope(
            {
                "testStepFinished": {
                    "testCaseStartedId": "tcs1",
                    "testStepId": "t1",
                    "testStepResult": {"status": "EXPLODED", "duration": {"seconds": 0}},
                    "timestamp": {"seconds": 1},
                }
            }
        ) is None

    def test_parse_envelope_ignores_non_dicts(self):
        assert parse_envelope("text") is None
        assert parse_envelope(None) is None

    def test_envelope_types_cover_the_protocol(self):
        assert set(ENVELOPE_TYPES) == {
            "gherkinDocument",
            "pickle",
            "testCase",
            "testCaseStarted",
            "testCaseFinished",
            "testStepStarted",
            "testStepFinished",
            "testRunStarted",
            "testRunFinished",
            "attachment",
            "stdout",
        }


class TestGherkinDocumentSchema:
    """Tests for the source document models."""

    def test_feature_children(self):
        document = GherkinDocument.model_validate(sample_document())
        scenarios = list(document.feature.iter_scenarios())

        assert [s.id for s in scenarios] == ["sc1", "sc2"]
        assert not scenarios[0].is_outline
        assert scenarios[1].is_outline
        assert [row.location.line for row in scenarios[1].examples[0].table_body] == [20, 21]

    def test_definitions_include_backgrounds(self):
        document = GherkinDocument.model_validate(sample_document())
        assert [d.id for d in document.feature.iter_definitions()] == ["bg", "sc1", "sc2"]

    def test_feature_child_accepts_exactly_one_member(self):
        scenario = sample_document()["feature"]["children"][1]["scenario"]
        background = sample_document()["feature"]["children"][0]["background"]
        with pytest.raises(ValueError):
            FeatureChild.model_validate({"scenario": scenario, "background": background})

    def test_snake_case_construction(self):
        """Test that models can be built from attribute names as well as wire keys."""
        pickle = Pickle(id="p", uri="a.feature", name="n", ast_node_ids=["x", "y"])
        assert pickle.ast_node_ids == ["x", "y"]
