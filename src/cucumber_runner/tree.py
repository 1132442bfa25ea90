"""In-memory TreeSink holding the discovered test tree."""

from typing import Dict, Iterator, List, Optional, Sequence

from .hierarchy import HierarchyNode


class TestTree:
    """
    Holds the top-level nodes of the last discovery and an id index over them.

    replace() swaps the whole tree; ids are stable across rediscovery, so a
    node looked up before a refresh resolves to its replacement afterwards.
    """

    __test__ = False

    def __init__(self):
        self.items: List[HierarchyNode] = []
        self._by_id: Dict[str, HierarchyNode] = {}

    def replace(self, nodes: Sequence[HierarchyNode]) -> None:
        self.items = list(nodes)
        self._by_id = {}
        for node in self.walk():
            self._by_id.setdefault(node.id, node)

    def walk(self) -> Iterator[HierarchyNode]:
        for item in self.items:
            yield from item.walk()

    def get(self, node_id: str) -> Optional[HierarchyNode]:
        return self._by_id.get(node_id)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._by_id

    def render(self) -> str:
        """Indented text rendering, one node per line."""
        lines: List[str] = []

        def visit(node: HierarchyNode, depth: int) -> None:
            suffix = f"  [{node.id}]" if node.line is not None else ""
            lines.append(f"{'  ' * depth}{node.name}{suffix}")
            for child in node.children:
                visit(child, depth + 1)

        for item in self.items:
            visit(item, 0)
        return "\n".join(lines)
