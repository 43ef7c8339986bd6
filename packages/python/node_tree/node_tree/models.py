"""Pydantic models describing hierarchical nodes and operation results."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator


def _strip_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    if not stripped:
        raise ValueError("name must not be blank")
    return stripped


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        return None
    return value


class Node(BaseModel):
    """A named, ordered entry of a single-parent tree (category or menu)."""

    id: str
    name: str
    slug: str
    parent_id: Optional[str] = None
    order: int = 0
    description: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    version: int = 1


_NODE_FIELDS = set(Node.model_fields)


class TreeNode(Node):
    """A node together with its (sorted) children."""

    children: List["TreeNode"] = Field(default_factory=list)
    child_count: int = 0

    @classmethod
    def from_node(cls, node: Node, *, child_count: int = 0) -> "TreeNode":
        return cls(**node.model_dump(include=_NODE_FIELDS), child_count=child_count)

    def to_node(self) -> Node:
        return Node(**self.model_dump(include=_NODE_FIELDS))


class NodeCreate(BaseModel):
    """Payload for creating a node."""

    name: str = Field(min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    parent_id: Optional[str] = None
    order: int = Field(default=0, ge=0)
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return _strip_name(value)

    @field_validator("parent_id")
    @classmethod
    def blank_parent_is_root(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class NodeUpdate(BaseModel):
    """Partial update of a node.

    Only fields that were explicitly set are applied, so ``parent_id=None``
    moves the node to the root level while omitting it leaves the parent alone.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    parent_id: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=0)
    payload: Optional[dict[str, Any]] = None
    expected_version: Optional[int] = Field(default=None, ge=1)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return _strip_name(value)

    @field_validator("parent_id")
    @classmethod
    def blank_parent_is_root(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    def provided(self, field: str) -> bool:
        return field in self.model_fields_set


class OrderUpdate(BaseModel):
    id: str
    order: int = Field(ge=0)


class ParentOption(BaseModel):
    value: str
    label: str


class ItemFailure(BaseModel):
    id: str
    code: str
    message: str


class DeleteResult(BaseModel):
    success: bool = True


class BatchDeleteResult(BaseModel):
    success: bool = True
    deleted_count: int


class ReorderResult(BaseModel):
    success: bool
    updated: int
    failures: List[ItemFailure] = Field(default_factory=list)


class SlugPreview(BaseModel):
    slug: str


class NodePath(BaseModel):
    """Ancestor chain from the root down to ``node_id`` (inclusive)."""

    node_id: str
    depth: int
    nodes: List[Node]
    label: str


class TreeViewState(BaseModel):
    """
    UI state for a rendered tree.

    - expanded_ids: which nodes are expanded; ``None`` expands every branch
    - selected_id: which node is currently selected / focused
    """

    expanded_ids: Optional[List[str]] = None
    selected_id: Optional[str] = None


class OutlineRow(BaseModel):
    node: Node
    level: int
    has_children: bool
    expanded: bool
    selected: bool


class PublicTreeNode(BaseModel):
    """Node as exposed to anonymous readers: no timestamps or version."""

    id: str
    name: str
    slug: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    order: int = 0
    payload: dict[str, Any] = Field(default_factory=dict)
    children: List["PublicTreeNode"] = Field(default_factory=list)


TreeNode.model_rebuild()
PublicTreeNode.model_rebuild()
