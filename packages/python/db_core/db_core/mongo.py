"""Async MongoDB helpers built on top of Motor.

Only connection plumbing lives here; ``node_tree`` builds its repositories,
indexes and error translation on top.
"""

from functools import lru_cache
from typing import Any

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)

from .settings import settings


@lru_cache
def get_mongo_client() -> AsyncIOMotorClient:
    """Return a cached Motor client configured via ``db_core.settings``."""

    return AsyncIOMotorClient(
        settings.uri,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
    )


def get_db() -> AsyncIOMotorDatabase:
    """Return the CMS database named by ``settings.db_name``."""

    return get_mongo_client()[settings.db_name]


def get_collection(name: str) -> AsyncIOMotorCollection:
    return get_db()[name]


def close_mongo_client() -> None:
    """Close the cached client so the next ``get_db`` call reconnects."""

    if get_mongo_client.cache_info().currsize:
        get_mongo_client().close()
    get_mongo_client.cache_clear()


async def ping() -> dict[str, Any]:
    """Run a ``ping`` command against the configured MongoDB server."""

    await get_db().command("ping")
    return {"ok": True}
