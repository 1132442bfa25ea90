"""
Pydantic models for the cucumber-js message protocol.

Each model validates one envelope payload emitted by `cucumber-js --format
message`. Wire keys are camelCase; attributes are snake_case through an alias
generator, so both `Pickle.model_validate({"astNodeIds": [...]})` and
`Pickle(ast_node_ids=[...])` work.

Unknown keys are ignored so that newer tool versions adding fields do not
make a whole event kind disappear. Missing or mistyped required fields still
fail validation.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .utilities import timestamp_to_millis


class MessageModel(BaseModel):
    """Base for all protocol payloads: camelCase aliases, immutable."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


# =============================================================================
# Source documents
# =============================================================================


class Location(MessageModel):
    line: int
    column: Optional[int] = None


class Tag(MessageModel):
    name: str
    id: str
    location: Optional[Location] = None


class TableCell(MessageModel):
    value: str
    location: Optional[Location] = None


class TableRow(MessageModel):
    id: str
    cells: List[TableCell] = Field(default_factory=list)
    location: Location


class DataTable(MessageModel):
    rows: List[TableRow] = Field(default_factory=list)
    location: Optional[Location] = None


class DocString(MessageModel):
    content: str
    delimiter: Optional[str] = None
    media_type: Optional[str] = None
    location: Optional[Location] = None


class Step(MessageModel):
    """A step as written in the feature file."""

    id: str
    keyword: str
    keyword_type: Optional[str] = None
    text: str
    location: Location
    data_table: Optional[DataTable] = None
    doc_string: Optional[DocString] = None


class Examples(MessageModel):
    """One Examples table of a Scenario Outline."""

    id: str
    tags: List[Tag] = Field(default_factory=list)
    location: Location
    keyword: str
    name: str = ""
    description: str = ""
    table_header: Optional[TableRow] = None
    table_body: List[TableRow] = Field(default_factory=list)


class Scenario(MessageModel):
    id: str
    keyword: str
    name: str
    description: str = ""
    location: Location
    tags: List[Tag] = Field(default_factory=list)
    steps: List[Step] = Field(default_factory=list)
    examples: List[Examples] = Field(default_factory=list)

    @property
    def is_outline(self) -> bool:
        """A scenario with examples only runs through its expanded rows."""
        return len(self.examples) > 0


class Background(MessageModel):
    id: str
    location: Location
    keyword: str
    name: str = ""
    description: str = ""
    steps: List[Step] = Field(default_factory=list)


def _check_single_member(model: BaseModel, members: List[str]) -> None:
    present = [name for name in members if getattr(model, name) is not None]
    if len(present) > 1:
        raise ValueError(f"expected exactly one of {members}, got {present}")


class RuleChild(MessageModel):
    scenario: Optional[Scenario] = None
    background: Optional[Background] = None

    @model_validator(mode="after")
    def _one_member(self) -> "RuleChild":
        _check_single_member(self, ["scenario", "background"])
        return self


class Rule(MessageModel):
    id: str
    keyword: str
    name: str
    description: str = ""
    location: Location
    tags: List[Tag] = Field(default_factory=list)
    children: List[RuleChild] = Field(default_factory=list)


class FeatureChild(MessageModel):
    """Tagged variant: exactly one of scenario, background or rule."""

    scenario: Optional[Scenario] = None
    background: Optional[Background] = None
    rule: Optional[Rule] = None

    @model_validator(mode="after")
    def _one_member(self) -> "FeatureChild":
        _check_single_member(self, ["scenario", "background", "rule"])
        return self


class Feature(MessageModel):
    name: str
    description: Optional[str] = None
    tags: List[Tag] = Field(default_factory=list)
    children: List[FeatureChild] = Field(default_factory=list)
    location: Optional[Location] = None
    language: Optional[str] = None
    keyword: Optional[str] = None

    def iter_definitions(self) -> Iterator[Union[Scenario, Background]]:
        """Yield scenarios and backgrounds in source order, descending into rules."""
        for child in self.children:
            if child.scenario is not None:
                yield child.scenario
            elif child.background is not None:
                yield child.background
            elif child.rule is not None:
                for rule_child in child.rule.children:
                    if rule_child.scenario is not None:
                        yield rule_child.scenario
                    elif rule_child.background is not None:
                        yield rule_child.background

    def iter_scenarios(self) -> Iterator[Scenario]:
        for definition in self.iter_definitions():
            if isinstance(definition, Scenario):
                yield definition


class GherkinDocument(MessageModel):
    uri: str
    feature: Optional[Feature] = None
    comments: List[Any] = Field(default_factory=list)


# =============================================================================
# Compiled artifacts
# =============================================================================


class PickleTag(MessageModel):
    name: str
    ast_node_id: str


class PickleStep(MessageModel):
    id: str
    text: str
    type: Optional[str] = None
    ast_node_ids: List[str] = Field(default_factory=list)
    argument: Optional[Dict[str, Any]] = None


class Pickle(MessageModel):
    """A compiled, directly executable scenario (or one outline row)."""

    id: str
    uri: str
    name: str
    language: str = ""
    steps: List[PickleStep] = Field(default_factory=list)
    tags: List[PickleTag] = Field(default_factory=list)
    ast_node_ids: List[str] = Field(default_factory=list)


class TestStep(MessageModel):
    """One step of a compiled test case. Hook steps have no pickle_step_id."""

    __test__ = False

    id: str
    pickle_step_id: Optional[str] = None
    hook_id: Optional[str] = None
    step_definition_ids: List[str] = Field(default_factory=list)
    step_match_arguments_lists: Optional[List[Dict[str, Any]]] = None


class TestCase(MessageModel):
    __test__ = False

    id: str
    pickle_id: str
    test_steps: List[TestStep] = Field(default_factory=list)


# =============================================================================
# Runtime events
# =============================================================================


class Timestamp(MessageModel):
    seconds: int
    nanos: int = 0

    def to_millis(self) -> int:
        return timestamp_to_millis(self.seconds, self.nanos)


class Duration(MessageModel):
    seconds: int
    nanos: int = 0


class StepStatus(str, Enum):
    """Status of one executed test step, as reported by cucumber-js."""

    UNKNOWN = "UNKNOWN"
    PASSED = "PASSED"
    SKIPPED = "SKIPPED"
    PENDING = "PENDING"
    UNDEFINED = "UNDEFINED"
    AMBIGUOUS = "AMBIGUOUS"
    FAILED = "FAILED"


class TestStepResult(MessageModel):
    __test__ = False

    status: StepStatus
    message: Optional[str] = None
    duration: Duration
    exception: Optional[Dict[str, Any]] = None


class TestRunStarted(MessageModel):
    __test__ = False

    timestamp: Timestamp


class TestRunFinished(MessageModel):
    __test__ = False

    success: bool
    timestamp: Timestamp
    message: Optional[str] = None


class TestCaseStarted(MessageModel):
    __test__ = False

    id: str
    test_case_id: str
    timestamp: Timestamp
    attempt: int = 0
    worker_id: Optional[str] = None


class TestCaseFinished(MessageModel):
    __test__ = False

    test_case_started_id: str
    timestamp: Timestamp
    will_be_retried: bool = False


class TestStepStarted(MessageModel):
    __test__ = False

    test_case_started_id: str
    test_step_id: str
    timestamp: Timestamp


class TestStepFinished(MessageModel):
    __test__ = False

    test_case_started_id: str
    test_step_id: str
    test_step_result: TestStepResult
    timestamp: Timestamp


class Attachment(MessageModel):
    body: str
    media_type: str
    content_encoding: Optional[str] = None
    file_name: Optional[str] = None
    test_case_started_id: Optional[str] = None
    test_step_id: Optional[str] = None
    hook_id: Optional[str] = None
