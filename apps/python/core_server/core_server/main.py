"""FastAPI application composing the category and navigation menu routers."""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from typing import Mapping, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from cms_api import (
    Authorizer,
    KetoAuthorizer,
    KratosIdentityProvider,
    build_router,
    build_services,
    register_exception_handlers,
)
from db_core import close_mongo_client, ping
from node_tree import KINDS, NodeRepository
from node_tree.mongo_repository import MongoNodeRepository

from .config import settings


def _configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.info("Logger configured at {level} level", level=settings.log_level)


def _mongo_repositories() -> dict[str, NodeRepository]:
    return {name: MongoNodeRepository(kind.collection) for name, kind in KINDS.items()}


def create_app(
    *,
    repositories: Optional[Mapping[str, NodeRepository]] = None,
    authorizer: Optional[Authorizer] = None,
    identity_provider: Optional[KratosIdentityProvider] = None,
) -> FastAPI:
    """
    Build the API. Without explicit repositories every kind is stored in its
    own MongoDB collection, whose indexes are created at startup.
    """

    repositories = dict(repositories) if repositories is not None else _mongo_repositories()
    uses_mongo = any(isinstance(repo, MongoNodeRepository) for repo in repositories.values())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for repo in repositories.values():
            if isinstance(repo, MongoNodeRepository):
                await repo.ensure_indexes()
        yield
        await app.state.authorizer.aclose()
        await app.state.identity_provider.aclose()
        if uses_mongo:
            close_mongo_client()

    app = FastAPI(title=settings.api_title, version=settings.api_version, lifespan=lifespan)
    app.state.node_services = build_services(repositories)
    app.state.authorizer = authorizer or KetoAuthorizer()
    app.state.identity_provider = identity_provider or KratosIdentityProvider()
    register_exception_handlers(app)

    # Allow the admin front-end origins (with credentials) to talk to this API.
    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        logger.info("CORS middleware added {origins}", origins=settings.cors_allow_origins)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        """Simple liveness endpoint for load balancers and probes."""

        return {"status": "ok"}

    if uses_mongo:

        @app.get("/health/db", tags=["health"])
        async def health_db() -> dict:
            return await ping()

    for kind in KINDS.values():
        app.include_router(build_router(kind))

    return app


_configure_logging()
app = create_app()

"""Run with:

    uvicorn core_server.main:app --host 0.0.0.0 --port 8000 --reload
"""
