"""Persistence contract for nodes plus an in-memory implementation.

Repositories are thin stores: they enforce slug uniqueness (as a storage
constraint) and optional version checks, but never tree invariants. Those
belong to ``NodeTreeService``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Mapping, Optional

from .errors import NodeConflictError, NodeNotFoundError, SlugTakenError
from .models import Node
from .tree import sibling_sort_key

UPDATABLE_FIELDS = frozenset(
    {"name", "slug", "parent_id", "order", "description", "payload", "updated_at"}
)


class NodeRepository(ABC):
    """Async store of the nodes of one kind, keyed by id."""

    @abstractmethod
    async def get(self, node_id: str) -> Optional[Node]:
        """Return the node or ``None`` when it does not exist."""

    @abstractmethod
    async def get_by_slug(self, slug: str) -> Optional[Node]:
        ...

    @abstractmethod
    async def list_all(self) -> List[Node]:
        ...

    @abstractmethod
    async def list_by_parent(self, parent_id: Optional[str]) -> List[Node]:
        """Direct children of ``parent_id`` (root nodes for ``None``), sorted."""

    @abstractmethod
    async def count_children(self, node_id: str) -> int:
        ...

    @abstractmethod
    async def insert(self, node: Node) -> Node:
        """Persist a new node; raises ``SlugTakenError`` on a slug collision."""

    @abstractmethod
    async def update(
        self,
        node_id: str,
        changes: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> Node:
        """
        Apply ``changes`` and bump the version.

        Raises ``NodeNotFoundError`` for a missing id, ``NodeConflictError``
        when ``expected_version`` does not match and ``SlugTakenError`` when the
        new slug is taken.
        """

    @abstractmethod
    async def delete(self, node_id: str, *, expected_version: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete_many(self, node_ids: Iterable[str]) -> int:
        """Delete the given ids and return how many records were removed."""


def _check_changes(changes: Mapping[str, Any]) -> None:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")


class InMemoryNodeRepository(NodeRepository):
    """Dictionary-backed repository for tests and single-process use."""

    def __init__(self, nodes: Iterable[Node] = ()) -> None:
        self._nodes: dict[str, Node] = {}
        for node in nodes:
            self._nodes[node.id] = node.model_copy(deep=True)

    def _slug_owner(self, slug: str) -> Optional[str]:
        for node in self._nodes.values():
            if node.slug == slug:
                return node.id
        return None

    def _existing(self, node_id: str, expected_version: Optional[int]) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(f"Node {node_id} not found", node_id=node_id)
        if expected_version is not None and node.version != expected_version:
            raise NodeConflictError(
                f"Node {node_id} was modified concurrently "
                f"(expected version {expected_version}, found {node.version})",
                node_id=node_id,
                node_name=node.name,
            )
        return node

    async def get(self, node_id: str) -> Optional[Node]:
        node = self._nodes.get(node_id)
        return node.model_copy(deep=True) if node else None

    async def get_by_slug(self, slug: str) -> Optional[Node]:
        owner = self._slug_owner(slug)
        return await self.get(owner) if owner else None

    async def list_all(self) -> List[Node]:
        nodes = [node.model_copy(deep=True) for node in self._nodes.values()]
        return sorted(nodes, key=sibling_sort_key)

    async def list_by_parent(self, parent_id: Optional[str]) -> List[Node]:
        return [node for node in await self.list_all() if node.parent_id == parent_id]

    async def count_children(self, node_id: str) -> int:
        return sum(1 for node in self._nodes.values() if node.parent_id == node_id)

    async def insert(self, node: Node) -> Node:
        if node.id in self._nodes:
            raise NodeConflictError(f"Node {node.id} already exists", node_id=node.id)
        if self._slug_owner(node.slug) is not None:
            raise SlugTakenError(node.slug, node_id=node.id)
        self._nodes[node.id] = node.model_copy(deep=True)
        return node.model_copy(deep=True)

    async def update(
        self,
        node_id: str,
        changes: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> Node:
        _check_changes(changes)
        node = self._existing(node_id, expected_version)
        slug = changes.get("slug")
        if slug is not None and self._slug_owner(slug) not in (None, node_id):
            raise SlugTakenError(slug, node_id=node_id)
        updated = node.model_copy(update={**changes, "version": node.version + 1}, deep=True)
        self._nodes[node_id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, node_id: str, *, expected_version: Optional[int] = None) -> None:
        self._existing(node_id, expected_version)
        del self._nodes[node_id]

    async def delete_many(self, node_ids: Iterable[str]) -> int:
        deleted = 0
        for node_id in set(node_ids):
            if self._nodes.pop(node_id, None) is not None:
                deleted += 1
        return deleted
