"""FastAPI routers exposing the node tree operations of one kind."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from node_tree import (
    BatchDeleteResult,
    DeleteResult,
    NodeCreate,
    NodeKind,
    NodePath,
    NodeTreeService,
    NodeUpdate,
    OrderUpdate,
    ParentOption,
    PublicTreeNode,
    ReorderResult,
    SlugPreview,
    TreeNode,
)

from .authz import EDITOR, VIEWER, require_relation
from .services import service_for

ROUTE_PREFIXES = {
    "category": "/categories",
    "menu": "/menus",
}


class BatchDeleteRequest(BaseModel):
    ids: list[str] = Field(default_factory=list)


class ReorderRequest(BaseModel):
    updates: list[OrderUpdate] = Field(default_factory=list)


def build_router(kind: NodeKind) -> APIRouter:
    """Create the admin (and, where the kind has one, public) routes for ``kind``."""

    router = APIRouter(prefix=ROUTE_PREFIXES[kind.name], tags=[kind.name])
    get_service = service_for(kind)
    can_read = [Depends(require_relation(kind, VIEWER))]
    can_edit = [Depends(require_relation(kind, EDITOR))]

    @router.get("", response_model=list[TreeNode], dependencies=can_read)
    async def list_nodes(
        parent_id: str | None = Query(default=None),
        roots_only: bool = Query(default=False),
        include_children: bool = Query(default=False),
        service: NodeTreeService = Depends(get_service),
    ):
        """List nodes, optionally only the children of ``parent_id`` or the roots."""

        return await service.list(
            parent_id,
            roots_only=roots_only,
            include_children=include_children,
        )

    @router.get("/tree", response_model=list[TreeNode], dependencies=can_read)
    async def get_tree(service: NodeTreeService = Depends(get_service)):
        """Return the full nested tree."""

        return await service.tree()

    @router.get("/parent-options", response_model=list[ParentOption], dependencies=can_read)
    async def get_parent_options(
        exclude_id: str | None = Query(default=None),
        service: NodeTreeService = Depends(get_service),
    ):
        """Valid parents for ``exclude_id``: everything but itself and its subtree."""

        return await service.parent_options(exclude_id)

    @router.get("/slug", response_model=SlugPreview, dependencies=can_read)
    async def preview_slug(
        name: str = Query(..., min_length=1),
        service: NodeTreeService = Depends(get_service),
    ):
        return await service.generate_slug(name)

    if kind.public_view is not None:

        @router.get("/public", response_model=list[PublicTreeNode])
        async def get_public_tree(service: NodeTreeService = Depends(get_service)):
            """Visible nodes for anonymous readers; no authentication required."""

            return await service.public_tree()

    @router.get("/{node_id}", response_model=TreeNode, dependencies=can_read)
    async def get_node(node_id: str, service: NodeTreeService = Depends(get_service)):
        return await service.by_id(node_id)

    @router.get("/{node_id}/path", response_model=NodePath, dependencies=can_read)
    async def get_node_path(node_id: str, service: NodeTreeService = Depends(get_service)):
        return await service.path(node_id)

    @router.post("", response_model=TreeNode, status_code=201, dependencies=can_edit)
    async def create_node(payload: NodeCreate, service: NodeTreeService = Depends(get_service)):
        return await service.create(payload)

    @router.patch("/{node_id}", response_model=TreeNode, dependencies=can_edit)
    async def update_node(
        node_id: str,
        payload: NodeUpdate,
        service: NodeTreeService = Depends(get_service),
    ):
        """Apply the fields present in the body; ``parent_id: null`` moves to the root."""

        return await service.update(node_id, payload)

    @router.delete("/{node_id}", response_model=DeleteResult, dependencies=can_edit)
    async def delete_node(
        node_id: str,
        expected_version: int | None = Query(default=None, ge=1),
        service: NodeTreeService = Depends(get_service),
    ):
        """Delete a leaf node; nodes with children are rejected with 409."""

        return await service.delete(node_id, expected_version=expected_version)

    @router.post("/batch-delete", response_model=BatchDeleteResult, dependencies=can_edit)
    async def batch_delete_nodes(
        payload: BatchDeleteRequest,
        service: NodeTreeService = Depends(get_service),
    ):
        return await service.batch_delete(payload.ids)

    @router.put("/order", response_model=ReorderResult, dependencies=can_edit)
    async def update_order(
        payload: ReorderRequest,
        service: NodeTreeService = Depends(get_service),
    ):
        return await service.update_order(payload.updates)

    return router
