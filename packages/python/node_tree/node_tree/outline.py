"""Flatten a tree into indented outline rows for selects and tree tables."""

from __future__ import annotations

from typing import List, Optional, Sequence

from .models import OutlineRow, TreeNode, TreeViewState


def flatten_tree(
    tree: Sequence[TreeNode],
    state: Optional[TreeViewState] = None,
) -> List[OutlineRow]:
    """
    Return rows in depth-first order with their nesting level.

    ``state`` is the caller's view state: children of nodes that are not in
    ``expanded_ids`` are omitted (all branches are open when it is ``None``),
    and the row matching ``selected_id`` is flagged.
    """

    state = state or TreeViewState()
    expanded = None if state.expanded_ids is None else set(state.expanded_ids)
    rows: List[OutlineRow] = []
    stack = [(node, 0) for node in reversed(tree)]
    while stack:
        node, level = stack.pop()
        has_children = bool(node.children)
        is_expanded = has_children and (expanded is None or node.id in expanded)
        rows.append(
            OutlineRow(
                node=node.to_node(),
                level=level,
                has_children=has_children,
                expanded=is_expanded,
                selected=node.id == state.selected_id,
            )
        )
        if is_expanded:
            stack.extend((child, level + 1) for child in reversed(node.children))
    return rows
