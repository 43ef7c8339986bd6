"""Reconstruct nested trees from flat node lists."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, List, Optional

from loguru import logger

from .models import Node, TreeNode

ChildIndex = dict[Optional[str], List[Node]]


def sibling_sort_key(node: Node) -> tuple:
    """Order ascending, then newest first, then id for a total order."""

    return (node.order, -node.created_at.timestamp(), node.id)


def index_children(nodes: Iterable[Node]) -> ChildIndex:
    """
    Group nodes by parent id, each group sorted by ``sibling_sort_key``.

    Nodes whose parent is not part of ``nodes`` are filed under ``None`` so
    they are treated as roots instead of being dropped.
    """

    nodes = list(nodes)
    known = {node.id for node in nodes}
    index: defaultdict[Optional[str], List[Node]] = defaultdict(list)
    for node in nodes:
        parent_id = node.parent_id if node.parent_id in known else None
        index[parent_id].append(node)
    for siblings in index.values():
        siblings.sort(key=sibling_sort_key)
    return dict(index)


def build_tree(nodes: Iterable[Node]) -> List[TreeNode]:
    """
    Build the nested tree in a single pass over a child index.

    Every input node appears exactly once. Nodes stuck in a stored cycle are
    unreachable from any root; the first of them (in sibling order) is
    promoted to a root so the output stays complete and finite.
    """

    nodes = list(nodes)
    index = index_children(nodes)
    tree_nodes = {node.id: TreeNode.from_node(node) for node in nodes}
    visited: set[str] = set()
    roots: List[TreeNode] = []

    def attach(root: Node) -> None:
        visited.add(root.id)
        roots.append(tree_nodes[root.id])
        stack = [root.id]
        while stack:
            parent_id = stack.pop()
            parent = tree_nodes[parent_id]
            for child in index.get(parent_id, ()):
                if child.id in visited:
                    continue
                visited.add(child.id)
                parent.children.append(tree_nodes[child.id])
                stack.append(child.id)

    for root in index.get(None, ()):
        attach(root)

    if len(visited) < len(tree_nodes):
        for node in sorted(nodes, key=sibling_sort_key):
            if node.id not in visited:
                logger.warning(
                    "Node {node_id} is part of a parent cycle; treating it as a root",
                    node_id=node.id,
                )
                attach(node)

    for tree_node in tree_nodes.values():
        tree_node.child_count = len(tree_node.children)
    return roots
