"""
Error taxonomy for cucumber-runner.

- DecodeError: a protocol line failed payload validation (logged, ignored)
- CorrelationNotFound: an id lookup failed at some hop (logged, event skipped)
- SpawnFailure: the external tool could not be started (terminal)
- ConfigError: a runner or cucumber configuration file could not be read

A nonzero exit code from cucumber-js is not an error; it is reported as the
run's completion code.
"""

from typing import Any, List, Optional, Sequence


class CucumberRunnerError(Exception):
    """Base class for all cucumber-runner errors."""


class DecodeError(CucumberRunnerError):
    """
    An envelope payload did not match its schema.

    Attributes:
        schema_name: Name of the schema the payload was validated against
        payload: The offending payload as received
        issues: Validation issues reported by pydantic
    """

    def __init__(self, schema_name: str, payload: Any, issues: Optional[List[Any]] = None):
        self.schema_name = schema_name
        self.payload = payload
        self.issues = issues or []
        super().__init__(f"Payload does not match {schema_name}")


class CorrelationNotFound(CucumberRunnerError, LookupError):
    """
    A correlation lookup could not resolve an id.

    Attributes:
        missing_id: The id (or uri) that could not be found
        buffer: Name of the table that was searched
    """

    def __init__(self, missing_id: str, buffer: str, detail: str = ""):
        self.missing_id = missing_id
        self.buffer = buffer
        message = f"Could not find {buffer} entry for id: {missing_id}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SpawnFailure(CucumberRunnerError):
    """The external test tool could not be started."""

    def __init__(self, command: Sequence[str], cause: BaseException):
        self.command = list(command)
        self.cause = cause
        super().__init__(f"Failed to start {' '.join(self.command)}: {cause}")


class ConfigError(CucumberRunnerError):
    """A configuration file is missing required data or cannot be parsed."""
