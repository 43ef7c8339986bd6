"""In-memory ancestry queries over a snapshot of all nodes of a kind.

The snapshot is loaded once per request; every question afterwards is
answered from the parent map and child index without further I/O. Walks are
bounded by the number of nodes, so corrupt cyclic data cannot hang them.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from .models import Node
from .tree import index_children


class AncestryIndex:
    def __init__(self, nodes: Iterable[Node]) -> None:
        self._nodes = {node.id: node for node in nodes}
        self._children = index_children(self._nodes.values())

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def children(self, node_id: str) -> List[Node]:
        """Direct children of ``node_id`` in sibling order."""
        return list(self._children.get(node_id, ()))

    def ancestors(self, node_id: str) -> List[Node]:
        """Ancestors of ``node_id``, nearest parent first."""

        chain: List[Node] = []
        seen = {node_id}
        current = self._nodes.get(node_id)
        while current is not None and current.parent_id is not None:
            parent = self._nodes.get(current.parent_id)
            if parent is None or parent.id in seen:
                break
            seen.add(parent.id)
            chain.append(parent)
            current = parent
        return chain

    def depth(self, node_id: str) -> int:
        return len(self.ancestors(node_id))

    def is_descendant(self, candidate_id: str, ancestor_id: str) -> bool:
        """True if ``ancestor_id`` is somewhere above ``candidate_id``."""

        seen = {candidate_id}
        current = self._nodes.get(candidate_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id == ancestor_id:
                return True
            if current.parent_id in seen:
                return False
            seen.add(current.parent_id)
            current = self._nodes.get(current.parent_id)
        return False

    def descendants(self, node_id: str) -> set[str]:
        found: set[str] = set()
        stack = [node_id]
        while stack:
            for child in self._children.get(stack.pop(), ()):
                if child.id not in found and child.id != node_id:
                    found.add(child.id)
                    stack.append(child.id)
        return found

    def exclude_self_and_descendants(self, node_id: str) -> set[str]:
        """Ids that may not become the new parent of ``node_id``."""
        return {node_id} | self.descendants(node_id)


def is_descendant(candidate_id: str, ancestor_id: str, nodes: Iterable[Node]) -> bool:
    return AncestryIndex(nodes).is_descendant(candidate_id, ancestor_id)


def exclude_self_and_descendants(node_id: str, all_nodes: Iterable[Node]) -> set[str]:
    return AncestryIndex(all_nodes).exclude_self_and_descendants(node_id)
