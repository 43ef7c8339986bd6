"""Read and mutation operations for one node kind.

``NodeTreeService`` validates every invariant against a snapshot it reads at
call time, then performs the write. Validation failures are raised before
anything is written; only ``update_order`` applies items independently.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence
from uuid import uuid4

from loguru import logger

from .ancestry import AncestryIndex
from .config import NodeTreeSettings
from .config import settings as default_settings
from .errors import (
    BatchDeleteRejectedError,
    InvalidNodeArgumentError,
    NodeConflictError,
    NodeNotFoundError,
    NodeTreeError,
    SlugTakenError,
)
from .kinds import NodeKind, SlugSource
from .models import (
    BatchDeleteResult,
    DeleteResult,
    ItemFailure,
    Node,
    NodeCreate,
    NodePath,
    NodeUpdate,
    OrderUpdate,
    ParentOption,
    PublicTreeNode,
    ReorderResult,
    SlugPreview,
    TreeNode,
)
from .outline import flatten_tree
from .repository import NodeRepository
from .slugs import SlugAllocator, slugify
from .tree import build_tree

PATH_SEPARATOR = " > "


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeTreeService:
    """Mutation coordinator and read facade for the nodes of ``kind``."""

    def __init__(
        self,
        kind: NodeKind,
        repository: NodeRepository,
        *,
        settings: Optional[NodeTreeSettings] = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: uuid4().hex,
    ) -> None:
        self.kind = kind
        self.repository = repository
        self.settings = settings or default_settings
        self.slugs = SlugAllocator(repository, max_attempts=self.settings.slug_max_attempts)
        self._clock = clock
        self._new_id = id_factory

    # ---------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------
    async def _snapshot(self) -> AncestryIndex:
        return AncestryIndex(await self.repository.list_all())

    def _not_found(self, node_id: str, what: Optional[str] = None) -> NodeNotFoundError:
        what = what or self.kind.label
        return NodeNotFoundError(f"{what} {node_id} not found", node_id=node_id)

    async def _require(self, node_id: str) -> Node:
        node = await self.repository.get(node_id)
        if node is None:
            raise self._not_found(node_id)
        return node

    @staticmethod
    def _with_children(node: Node, snapshot: AncestryIndex) -> TreeNode:
        children = snapshot.children(node.id)
        tree_node = TreeNode.from_node(node, child_count=len(children))
        tree_node.children = [
            TreeNode.from_node(child, child_count=len(snapshot.children(child.id)))
            for child in children
        ]
        return tree_node

    def _explicit_slug(
        self, slug: str, *, node_id: Optional[str] = None, name: Optional[str] = None
    ) -> str:
        normalized = slugify(slug)
        if not normalized:
            raise InvalidNodeArgumentError(
                f"Slug '{slug}' contains no usable characters",
                node_id=node_id,
                node_name=name,
            )
        return normalized

    def _base_slug(self, data: NodeCreate) -> str:
        if data.slug is not None:
            return self._explicit_slug(data.slug, name=data.name)
        if self.kind.slug_source is SlugSource.REQUIRED:
            raise InvalidNodeArgumentError(
                f"{self.kind.label} '{data.name}' requires an explicit slug",
                node_name=data.name,
            )
        return slugify(data.name) or self.kind.name

    async def _with_slug_retry(
        self,
        base_slug: str,
        write: Callable[[str], Awaitable[Node]],
        *,
        node_name: str,
        exclude_id: Optional[str] = None,
    ) -> Node:
        """Allocate a slug and write; re-allocate when the store reports a race."""

        retries = self.settings.slug_conflict_retries
        attempt = 0
        while True:
            slug = await self.slugs.ensure_unique(
                base_slug, exclude_id=exclude_id, node_name=node_name
            )
            try:
                return await write(slug)
            except SlugTakenError as exc:
                if attempt >= retries:
                    raise NodeConflictError(
                        f"Slug '{slug}' was taken concurrently; please retry",
                        node_id=exclude_id,
                        node_name=node_name,
                        details={"slug": slug},
                    ) from exc
                attempt += 1
                logger.info(
                    "Slug {slug} taken concurrently for {kind}, re-allocating",
                    slug=slug,
                    kind=self.kind.name,
                )

    def _check_new_parent(self, snapshot: AncestryIndex, node: Node, parent_id: str) -> None:
        if parent_id == node.id:
            raise InvalidNodeArgumentError(
                f"{self.kind.label} '{node.name}' cannot be its own parent",
                node_id=node.id,
                node_name=node.name,
            )
        if snapshot.is_descendant(parent_id, node.id):
            descendant = snapshot.get(parent_id)
            raise InvalidNodeArgumentError(
                f"Cannot move '{node.name}' under its descendant "
                f"'{descendant.name if descendant else parent_id}'",
                node_id=node.id,
                node_name=node.name,
                details={"parent_id": parent_id},
            )
        if parent_id not in snapshot:
            raise self._not_found(parent_id, f"Parent {self.kind.name}")

    # ---------------------------------------------------------
    # Reads
    # ---------------------------------------------------------
    async def list(
        self,
        parent_id: Optional[str] = None,
        *,
        roots_only: bool = False,
        include_children: bool = False,
    ) -> List[TreeNode]:
        """
        List nodes with their child counts.

        ``parent_id`` narrows to the children of one node, ``roots_only`` to
        root nodes; without either every node is returned.
        """

        snapshot = await self._snapshot()
        nodes = snapshot.nodes()
        counts = Counter(node.parent_id for node in nodes)
        if roots_only:
            nodes = [node for node in nodes if node.parent_id is None]
        elif parent_id is not None:
            nodes = [node for node in nodes if node.parent_id == parent_id]

        if include_children:
            return [self._with_children(node, snapshot) for node in nodes]
        return [TreeNode.from_node(node, child_count=counts[node.id]) for node in nodes]

    async def tree(self) -> List[TreeNode]:
        return build_tree(await self.repository.list_all())

    async def by_id(self, node_id: str) -> TreeNode:
        snapshot = await self._snapshot()
        node = snapshot.get(node_id)
        if node is None:
            raise self._not_found(node_id)
        return self._with_children(node, snapshot)

    async def path(self, node_id: str) -> NodePath:
        """Breadcrumb chain from the root down to ``node_id``."""

        snapshot = await self._snapshot()
        node = snapshot.get(node_id)
        if node is None:
            raise self._not_found(node_id)
        chain = list(reversed(snapshot.ancestors(node_id))) + [node]
        return NodePath(
            node_id=node_id,
            depth=len(chain) - 1,
            nodes=chain,
            label=PATH_SEPARATOR.join(item.name for item in chain),
        )

    async def parent_options(self, exclude_id: Optional[str] = None) -> List[ParentOption]:
        """Nodes that may become the parent of ``exclude_id``, in tree order."""

        snapshot = await self._snapshot()
        excluded = snapshot.exclude_self_and_descendants(exclude_id) if exclude_id else set()
        candidates = [node for node in snapshot.nodes() if node.id not in excluded]
        rows = flatten_tree(build_tree(candidates))
        return [ParentOption(value=row.node.id, label=row.node.name) for row in rows]

    async def generate_slug(self, name: str) -> SlugPreview:
        """Preview the slug ``create`` would currently allocate for ``name``."""

        base = slugify(name) or self.kind.name
        return SlugPreview(slug=await self.slugs.ensure_unique(base))

    async def public_tree(self) -> List[PublicTreeNode]:
        """Anonymous view: hidden nodes (and their subtrees) and internals removed."""

        view = self.kind.public_view
        if view is None:
            raise InvalidNodeArgumentError(f"{self.kind.label} nodes have no public view")

        snapshot = await self._snapshot()
        hidden: set[str] = set()
        for node in snapshot.nodes():
            if node.id not in hidden and not view.include(node):
                hidden |= snapshot.exclude_self_and_descendants(node.id)
        tree = build_tree(node for node in snapshot.nodes() if node.id not in hidden)

        def to_public(node: TreeNode) -> PublicTreeNode:
            return PublicTreeNode(
                id=node.id,
                name=node.name,
                slug=node.slug,
                description=node.description,
                parent_id=node.parent_id,
                order=node.order,
                payload={
                    key: value
                    for key, value in node.payload.items()
                    if key not in view.hidden_payload_fields
                },
            )

        roots = [to_public(node) for node in tree]
        stack = list(zip(tree, roots))
        while stack:
            source, target = stack.pop()
            for child in source.children:
                public_child = to_public(child)
                target.children.append(public_child)
                stack.append((child, public_child))
        return roots

    # ---------------------------------------------------------
    # Mutations
    # ---------------------------------------------------------
    async def create(self, data: NodeCreate) -> TreeNode:
        self.kind.validate_name(data.name)
        payload = self.kind.validate_payload(data.payload, node_name=data.name)
        if data.parent_id is not None and await self.repository.get(data.parent_id) is None:
            raise self._not_found(data.parent_id, f"Parent {self.kind.name}")

        node_id = self._new_id()
        now = self._clock()

        async def write(slug: str) -> Node:
            return await self.repository.insert(
                Node(
                    id=node_id,
                    name=data.name,
                    slug=slug,
                    parent_id=data.parent_id,
                    order=data.order,
                    description=data.description,
                    payload=payload,
                    created_at=now,
                    updated_at=now,
                )
            )

        created = await self._with_slug_retry(self._base_slug(data), write, node_name=data.name)
        logger.info(
            "Created {kind} {node_id} ({slug}) under {parent_id}",
            kind=self.kind.name,
            node_id=created.id,
            slug=created.slug,
            parent_id=created.parent_id,
        )
        return TreeNode.from_node(created)

    async def update(self, node_id: str, patch: NodeUpdate) -> TreeNode:
        snapshot = await self._snapshot()
        node = snapshot.get(node_id)
        if node is None:
            raise self._not_found(node_id)
        if patch.expected_version is not None and patch.expected_version != node.version:
            raise NodeConflictError(
                f"{self.kind.label} '{node.name}' was modified by someone else",
                node_id=node.id,
                node_name=node.name,
                details={"expected_version": patch.expected_version, "version": node.version},
            )

        changes: dict = {}
        if patch.name is not None and patch.name != node.name:
            self.kind.validate_name(patch.name, node_id=node.id)
            changes["name"] = patch.name
        if patch.provided("description"):
            changes["description"] = patch.description
        if patch.order is not None:
            changes["order"] = patch.order
        if patch.payload is not None:
            changes["payload"] = self.kind.validate_payload(
                {**node.payload, **patch.payload}, node_id=node.id, node_name=node.name
            )
        if patch.provided("parent_id") and patch.parent_id != node.parent_id:
            if patch.parent_id is not None:
                self._check_new_parent(snapshot, node, patch.parent_id)
            changes["parent_id"] = patch.parent_id

        new_slug_base = None
        if patch.slug is not None:
            base = self._explicit_slug(patch.slug, node_id=node.id, name=node.name)
            if base != node.slug:
                if not self.kind.slug_editable:
                    raise NodeConflictError(
                        f"{self.kind.label} '{node.name}' has an immutable slug",
                        node_id=node.id,
                        node_name=node.name,
                        details={"slug": node.slug},
                    )
                new_slug_base = base

        if not changes and new_slug_base is None:
            return self._with_children(node, snapshot)

        changes["updated_at"] = self._clock()

        async def write(slug: Optional[str]) -> Node:
            fields = dict(changes, slug=slug) if slug is not None else changes
            return await self.repository.update(
                node_id, fields, expected_version=patch.expected_version
            )

        if new_slug_base is not None:
            updated = await self._with_slug_retry(
                new_slug_base, write, node_name=node.name, exclude_id=node_id
            )
        else:
            updated = await write(None)

        changed = sorted(field for field in changes if field != "updated_at")
        if new_slug_base is not None:
            changed.append("slug")
        logger.info(
            "Updated {kind} {node_id}: {fields}",
            kind=self.kind.name,
            node_id=node_id,
            fields=changed,
        )
        return self._with_children(updated, snapshot)

    async def delete(self, node_id: str, *, expected_version: Optional[int] = None) -> DeleteResult:
        node = await self._require(node_id)
        if await self.repository.count_children(node_id) > 0:
            children = await self.repository.list_by_parent(node_id)
            raise NodeConflictError(
                f"{self.kind.label} '{node.name}' has children; delete or reparent them first",
                node_id=node.id,
                node_name=node.name,
                details={"children": [{"id": child.id, "name": child.name} for child in children]},
            )

        await self.repository.delete(node_id, expected_version=expected_version)
        logger.info("Deleted {kind} {node_id}", kind=self.kind.name, node_id=node_id)
        return DeleteResult()

    async def batch_delete(self, node_ids: Iterable[str]) -> BatchDeleteResult:
        """All-or-nothing: every target must exist and be a leaf."""

        ids = list(dict.fromkeys(node_ids))
        if not ids:
            raise InvalidNodeArgumentError(f"Select at least one {self.kind.name} to delete")

        snapshot = await self._snapshot()
        failures: List[NodeTreeError] = []
        for node_id in ids:
            node = snapshot.get(node_id)
            if node is None:
                failures.append(self._not_found(node_id))
            elif snapshot.children(node_id):
                failures.append(
                    NodeConflictError(
                        f"{self.kind.label} '{node.name}' has children",
                        node_id=node.id,
                        node_name=node.name,
                    )
                )
        if failures:
            logger.info(
                "Batch delete of {count} {kind} nodes rejected: {failed}",
                count=len(ids),
                kind=self.kind.name,
                failed=[failure.node_id for failure in failures],
            )
            raise BatchDeleteRejectedError(failures)

        deleted = await self.repository.delete_many(ids)
        logger.info("Batch deleted {deleted} {kind} nodes", deleted=deleted, kind=self.kind.name)
        return BatchDeleteResult(deleted_count=deleted)

    async def update_order(self, updates: Sequence[OrderUpdate]) -> ReorderResult:
        """Apply each order change independently and report per-item failures."""

        now = self._clock()
        results = await asyncio.gather(
            *(
                self.repository.update(item.id, {"order": item.order, "updated_at": now})
                for item in updates
            ),
            return_exceptions=True,
        )

        failures: List[ItemFailure] = []
        for item, result in zip(updates, results):
            if isinstance(result, NodeTreeError):
                failures.append(ItemFailure(id=item.id, code=result.code, message=result.message))
            elif isinstance(result, BaseException):
                raise result

        if failures:
            logger.warning(
                "Reorder of {kind} nodes: {failed} of {total} failed",
                kind=self.kind.name,
                failed=len(failures),
                total=len(updates),
            )
        return ReorderResult(
            success=not failures,
            updated=len(updates) - len(failures),
            failures=failures,
        )
