"""
Event decoder for the cucumber-js message stream.

Every stdout line of `cucumber-js --format message` is either one JSON
envelope with a single well-known top-level key, or incidental output (a
`console.log` from a step definition, a deprecation warning, ...).

    event = parse_line('{"pickle": {...}}')
    if event is None:
        ...  # not a protocol event, forward the raw line as output
    elif event.type == "pickle":
        pickle = event.data  # a validated schemas.Pickle

Schema failures are logged with the payload and the schema name and then
treated exactly like incidental output. The decoder never raises.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from .errors import DecodeError
from .schemas import (
    Attachment,
    GherkinDocument,
    Pickle,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestRunFinished,
    TestRunStarted,
    TestStepFinished,
    TestStepStarted,
)
from .utilities import safe_json_parse

logger = logging.getLogger(__name__)

# Process-level kinds added by the runner, never seen on the wire.
STDERR = "stderr"
CLOSE = "close"
ERROR = "error"

# Envelope key -> (schema name, validator). Checked in this order; the first
# key present wins.
ENVELOPE_SCHEMAS: Tuple[Tuple[str, str, TypeAdapter], ...] = (
    ("gherkinDocument", "GherkinDocumentSchema", TypeAdapter(GherkinDocument)),
    ("testStepStarted", "TestStepStartedSchema", TypeAdapter(TestStepStarted)),
    ("testStepFinished", "TestStepFinishedSchema", TypeAdapter(TestStepFinished)),
    ("stdout", "StdoutDataSchema", TypeAdapter(str)),
    ("testRunStarted", "TestRunStartedSchema", TypeAdapter(TestRunStarted)),
    ("testRunFinished", "TestRunFinishedSchema", TypeAdapter(TestRunFinished)),
    ("testCaseStarted", "TestCaseStartedSchema", TypeAdapter(TestCaseStarted)),
    ("testCaseFinished", "TestCaseFinishedSchema", TypeAdapter(TestCaseFinished)),
    ("pickle", "PickleSchema", TypeAdapter(Pickle)),
    ("testCase", "TestCaseSchema", TypeAdapter(TestCase)),
    ("attachment", "AttachmentSchema", TypeAdapter(Attachment)),
)

ENVELOPE_TYPES = tuple(key for key, _, _ in ENVELOPE_SCHEMAS)


@dataclass(frozen=True)
class CucumberEvent:
    """
    One typed event.

    Attributes:
        type: Envelope key (e.g. 'pickle', 'testCaseStarted') or one of the
            process-level kinds 'stderr', 'close', 'error'
        data: Validated payload model, or str / int / exception for the
            process-level kinds
    """
    type: str
    data: Any


def decode_envelope(envelope: Dict[str, Any]) -> Optional[CucumberEvent]:
    """
    Decode an already-parsed JSON object into a typed event.

    Returns:
        The event, or None if no known envelope key is present

    Raises:
        DecodeError: If the payload fails validation against its schema
    """
    for key, schema_name, adapter in ENVELOPE_SCHEMAS:
        if key not in envelope:
            continue
        payload = envelope[key]
        try:
            data = adapter.validate_python(payload)
        except ValidationError as e:
            raise DecodeError(schema_name, payload, e.errors()) from e
        return CucumberEvent(type=key, data=data)
    return None


def parse_envelope(value: Any) -> Optional[CucumberEvent]:
    """Decode any parsed JSON value, logging and swallowing schema failures."""
    if not isinstance(value, dict):
        logger.debug("Ignoring non-object JSON value: %r", value)
        return None
    try:
        return decode_envelope(value)
    except DecodeError as e:
        logger.error(
            "Envelope does not match %s: payload=%r issues=%r",
            e.schema_name,
            e.payload,
            e.issues,
        )
        return None


def parse_line(line: str) -> Optional[CucumberEvent]:
    """
    Decode one line of process output.

    Args:
        line: A single line, with or without its trailing newline

    Returns:
        A typed event, or None when the line is not a protocol event
    """
    text = line.strip()
    if not text:
        return None
    value = safe_json_parse(text)
    if value is None:
        return None
    return parse_envelope(value)
