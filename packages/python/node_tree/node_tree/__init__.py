"""Hierarchical node engine shared by categories and navigation menus."""

from .ancestry import AncestryIndex, exclude_self_and_descendants, is_descendant
from .config import NodeTreeSettings
from .errors import (
    BatchDeleteRejectedError,
    InvalidNodeArgumentError,
    NodeConflictError,
    NodeInternalError,
    NodeNotFoundError,
    NodeTreeError,
    SlugTakenError,
)
from .kinds import CATEGORY, KINDS, MENU, NodeKind, SlugSource, get_kind
from .models import (
    BatchDeleteResult,
    DeleteResult,
    ItemFailure,
    Node,
    NodeCreate,
    NodePath,
    NodeUpdate,
    OrderUpdate,
    OutlineRow,
    ParentOption,
    PublicTreeNode,
    ReorderResult,
    SlugPreview,
    TreeNode,
    TreeViewState,
)
from .outline import flatten_tree
from .repository import InMemoryNodeRepository, NodeRepository
from .service import NodeTreeService
from .slugs import SLUG_PATTERN, SlugAllocator, is_valid_slug, slugify
from .tree import build_tree, index_children

__all__ = [
    "AncestryIndex",
    "exclude_self_and_descendants",
    "is_descendant",
    "NodeTreeSettings",
    "BatchDeleteRejectedError",
    "InvalidNodeArgumentError",
    "NodeConflictError",
    "NodeInternalError",
    "NodeNotFoundError",
    "NodeTreeError",
    "SlugTakenError",
    "CATEGORY",
    "KINDS",
    "MENU",
    "NodeKind",
    "SlugSource",
    "get_kind",
    "BatchDeleteResult",
    "DeleteResult",
    "ItemFailure",
    "Node",
    "NodeCreate",
    "NodePath",
    "NodeUpdate",
    "OrderUpdate",
    "OutlineRow",
    "ParentOption",
    "PublicTreeNode",
    "ReorderResult",
    "SlugPreview",
    "TreeNode",
    "TreeViewState",
    "flatten_tree",
    "InMemoryNodeRepository",
    "NodeRepository",
    "NodeTreeService",
    "SLUG_PATTERN",
    "SlugAllocator",
    "is_valid_slug",
    "slugify",
    "build_tree",
    "index_children",
]
