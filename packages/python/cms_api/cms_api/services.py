"""Per-kind service registry kept on the FastAPI application state."""

from __future__ import annotations

from typing import Callable, Mapping

from fastapi import Request

from node_tree import KINDS, NodeKind, NodeRepository, NodeTreeService


def build_services(repositories: Mapping[str, NodeRepository]) -> dict[str, NodeTreeService]:
    """Create one ``NodeTreeService`` per known kind from its repository."""

    missing = set(KINDS) - set(repositories)
    if missing:
        raise ValueError(f"Missing repositories for kinds: {sorted(missing)}")
    return {name: NodeTreeService(KINDS[name], repositories[name]) for name in KINDS}


def service_for(kind: NodeKind) -> Callable[[Request], NodeTreeService]:
    def dependency(request: Request) -> NodeTreeService:
        return request.app.state.node_services[kind.name]

    return dependency
