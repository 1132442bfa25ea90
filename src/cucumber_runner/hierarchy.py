"""
Test hierarchy builder.

Builds the folder -> feature -> scenario / outline -> row tree that is shown
to the user. Two entry points:

- build_test_hierarchy(documents): from parsed documents only
- build_test_hierarchy_from_pickles(pickles, documents): from the compiled
  pickles of a dry run, resolved against the documents (used for discovery)

Node ids are deterministic:
- folders and features: slash-joined path of sanitized names
  (e.g. 'features/auth/User_login')
- executable leaves and outline groups: '<uri>:<line>', so an id can be
  recomputed from a source location alone

Outline grouping policy:
    The protocol never names an outline group. Pickles expanded from the same
    Scenario Outline share every astNodeId except the last one (the examples
    row). Pickles are therefore grouped by the sorted all-but-last prefix;
    see outline_group_key().

Example:
    root = build_test_hierarchy_from_pickles(pickles, documents)
    tree.replace(root.children)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .ast_index import AstNodeIndex, build_ast_node_index
from .schemas import Examples, GherkinDocument, Pickle, Scenario
from .utilities import normalize_uri, sanitize_name

ROOT_ID = "root"


@dataclass
class HierarchyNode:
    """
    One node of the test tree.

    Attributes:
        id: Stable node id (see module docstring)
        name: Display name
        uri: Source feature file, as reported by cucumber-js (None for folders)
        line: 1-based source line (None for folders and features)
        children: Ordered child nodes
    """
    id: str
    name: str
    uri: Optional[str] = None
    line: Optional[int] = None
    children: List["HierarchyNode"] = field(default_factory=list)

    def walk(self) -> Iterator["HierarchyNode"]:
        """Yield this node and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.uri is not None:
            data["uri"] = self.uri
        if self.line is not None:
            data["line"] = self.line
        data["children"] = [child.to_dict() for child in self.children]
        return data


def build_node_id(parent_id: str, name: str) -> str:
    """Join a sanitized name onto a parent id ('root' children get the bare name)."""
    safe_name = sanitize_name(name)
    normalized_parent = normalize_uri(parent_id)
    if normalized_parent == ROOT_ID:
        return safe_name
    return f"{normalized_parent}/{safe_name}"


def leaf_id(uri: str, line: Optional[int]) -> str:
    """Id of an executable node: '<uri>:<line>', or '<uri>:' when the line is unknown."""
    return f"{uri}:{'' if line is None else line}"


def outline_group_key(pickle: Pickle) -> Tuple[str, Tuple[str, ...]]:
    """
    Clustering key for pickles of one feature file.

    Pickles with the same all-but-last astNodeIds prefix are rows of the same
    outline. A pickle whose prefix is empty (a plain scenario) is always its
    own group.
    """
    prefix = pickle.ast_node_ids[:-1]
    if not prefix:
        return ("single", (pickle.id,))
    return ("outline", tuple(sorted(prefix)))


class _FolderTree:
    """Creates folder nodes on demand, one per distinct folder path."""

    def __init__(self):
        self.root = HierarchyNode(id=ROOT_ID, name=ROOT_ID)
        self._folders: Dict[str, HierarchyNode] = {ROOT_ID: self.root}

    def parent_for(self, uri: str) -> Tuple[HierarchyNode, str]:
        """Return the folder node that holds `uri`, plus the file name."""
        parts = [part for part in normalize_uri(uri).split("/") if part not in ("", ".")]
        filename = parts.pop() if parts else uri

        parent = self.root
        for part in parts:
            folder_id = build_node_id(parent.id, part)
            folder = self._folders.get(folder_id)
            if folder is None:
                folder = HierarchyNode(id=folder_id, name=part)
                self._folders[folder_id] = folder
                parent.children.append(folder)
            parent = folder
        return parent, filename


def _examples_node(uri: str, scenario: Scenario, examples: Examples) -> HierarchyNode:
    group_name = examples.name or scenario.name
    header_line = (
        examples.table_header.location.line
        if examples.table_header is not None
        else examples.location.line
    )
    group = HierarchyNode(id=leaf_id(uri, header_line), name=group_name, uri=uri, line=header_line)
    for row in examples.table_body:
        row_line = row.location.line
        group.children.append(
            HierarchyNode(
                id=leaf_id(uri, row_line),
                name=f"{group_name}:{row_line}",
                uri=uri,
                line=row_line,
            )
        )
    return group


def build_test_hierarchy(documents: Iterable[GherkinDocument]) -> HierarchyNode:
    """
    Build the tree from parsed documents alone.

    A plain scenario becomes a leaf keyed by its own line; an outline becomes
    one group per examples table (keyed by its header line) with one child per
    table body row. Documents without a feature are skipped.

    Returns:
        Synthetic root node; its children are the top-level nodes
    """
    folders = _FolderTree()

    for document in documents:
        feature = document.feature
        if feature is None:
            continue

        uri = document.uri
        parent, _ = folders.parent_for(uri)
        feature_node = HierarchyNode(
            id=build_node_id(parent.id, feature.name),
            name=feature.name,
            uri=uri,
        )
        parent.children.append(feature_node)

        for scenario in feature.iter_scenarios():
            if scenario.is_outline:
                for examples in scenario.examples:
                    feature_node.children.append(_examples_node(uri, scenario, examples))
            else:
                line = scenario.location.line
                feature_node.children.append(
                    HierarchyNode(id=leaf_id(uri, line), name=scenario.name, uri=uri, line=line)
                )

    return folders.root


def _line_of(index: AstNodeIndex, ast_node_id: Optional[str]) -> Optional[int]:
    if ast_node_id is None:
        return None
    location = index.get(ast_node_id)
    return location.line if location is not None else None


def _scenario_node(pickle: Pickle, uri: str, index: AstNodeIndex) -> HierarchyNode:
    first_id = pickle.ast_node_ids[0] if pickle.ast_node_ids else None
    line = _line_of(index, first_id)
    return HierarchyNode(id=leaf_id(uri, line), name=pickle.name, uri=uri, line=line)


def _outline_node(pickles: List[Pickle], uri: str, index: AstNodeIndex) -> HierarchyNode:
    first = pickles[0]
    first_id = first.ast_node_ids[0] if first.ast_node_ids else None
    location = index.get(first_id) if first_id is not None else None
    line = location.line if location is not None else None

    outline = HierarchyNode(
        id=leaf_id(uri, line),
        name=(location.name if location is not None else "") or first.name,
        uri=uri,
        line=line,
    )
    for pickle in pickles:
        last_id = pickle.ast_node_ids[-1] if pickle.ast_node_ids else None
        row_line = _line_of(index, last_id)
        outline.children.append(
            HierarchyNode(id=leaf_id(uri, row_line), name=pickle.name, uri=uri, line=row_line)
        )
    return outline


def build_test_hierarchy_from_pickles(
    pickles: Iterable[Pickle],
    documents: Iterable[GherkinDocument],
) -> HierarchyNode:
    """
    Build the tree from dry-run pickles, resolving lines through the documents.

    Pickles are grouped per uri and then by outline_group_key(): a group of one
    is a plain scenario leaf, a larger group is an outline node with one child
    per pickle in arrival order. A pickle whose line cannot be resolved still
    gets a node (id '<uri>:').

    Returns:
        Synthetic root node; its children are the top-level nodes
    """
    index = build_ast_node_index(documents)
    folders = _FolderTree()

    pickles_by_uri: Dict[str, List[Pickle]] = {}
    for pickle in pickles:
        pickles_by_uri.setdefault(pickle.uri, []).append(pickle)

    for uri, uri_pickles in pickles_by_uri.items():
        parent, filename = folders.parent_for(uri)
        feature_node = HierarchyNode(
            id=build_node_id(parent.id, filename),
            name=filename,
            uri=uri,
        )
        parent.children.append(feature_node)

        groups: Dict[Tuple[str, Tuple[str, ...]], List[Pickle]] = {}
        for pickle in uri_pickles:
            groups.setdefault(outline_group_key(pickle), []).append(pickle)

        for group in groups.values():
            if len(group) > 1:
                feature_node.children.append(_outline_node(group, uri, index))
            else:
                feature_node.children.append(_scenario_node(group[0], uri, index))

    return folders.root
