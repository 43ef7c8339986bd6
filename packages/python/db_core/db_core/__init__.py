"""Minimal MongoDB helpers shared by the CMS node repositories.

Example usage in a repository:

    from db_core import get_collection

    async def list_roots():
        cursor = get_collection("categories").find({"parent_id": None})
        return await cursor.to_list(length=None)
"""

from .settings import MongoSettings, settings
from .mongo import close_mongo_client, get_collection, get_db, get_mongo_client, ping
from .typing import MongoDocument, MongoFilter

__all__ = [
    "MongoSettings",
    "settings",
    "get_mongo_client",
    "get_db",
    "get_collection",
    "close_mongo_client",
    "ping",
    "MongoDocument",
    "MongoFilter",
]
