"""
Scenario/Example index.

Maps every addressable source node id (scenario, examples table, examples
row, background, including those nested in rules) to where it lives, so a
compiled pickle's astNodeIds can be turned back into `uri:line`.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from .schemas import Background, GherkinDocument


@dataclass(frozen=True)
class AstNodeLocation:
    """Source location of one ast node."""
    uri: str
    line: int
    name: str


AstNodeIndex = Dict[str, AstNodeLocation]


def index_document(document: GherkinDocument, index: Optional[AstNodeIndex] = None) -> AstNodeIndex:
    """
    Add every addressable node of one document to an index.

    Args:
        document: Parsed gherkin document; documents without a feature add nothing
        index: Existing index to extend in place (a new one is created if None)

    Returns:
        The extended index
    """
    if index is None:
        index = {}
    feature = document.feature
    if feature is None:
        return index

    uri = document.uri
    for definition in feature.iter_definitions():
        if isinstance(definition, Background):
            index[definition.id] = AstNodeLocation(uri, definition.location.line, definition.name)
            continue

        scenario = definition
        index[scenario.id] = AstNodeLocation(uri, scenario.location.line, scenario.name)
        for examples in scenario.examples:
            examples_name = examples.name or scenario.name
            index[examples.id] = AstNodeLocation(uri, examples.location.line, examples_name)
            for row in examples.table_body:
                index[row.id] = AstNodeLocation(
                    uri, row.location.line, f"{examples_name}:{row.location.line}"
                )
    return index


def build_ast_node_index(documents: Iterable[GherkinDocument]) -> AstNodeIndex:
    """Build an id -> location index over all documents."""
    index: AstNodeIndex = {}
    for document in documents:
        index_document(document, index)
    return index
