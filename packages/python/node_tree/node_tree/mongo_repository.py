"""Motor-backed node repository.

Documents use the node id as ``_id``. A unique index on ``slug`` is the final
arbiter for concurrent creates; its violations surface as ``SlugTakenError``
so the service can re-allocate. Every other driver failure is logged and
raised as an opaque ``NodeInternalError``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, List, Mapping, Optional

from db_core import MongoDocument, MongoFilter, get_collection
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .errors import NodeConflictError, NodeInternalError, NodeNotFoundError, SlugTakenError
from .models import Node
from .repository import NodeRepository, _check_changes

_SORT = [("order", ASCENDING), ("created_at", DESCENDING), ("_id", ASCENDING)]


def _doc_to_model(doc: MongoDocument) -> Node:
    return Node(
        id=str(doc["_id"]),
        name=doc["name"],
        slug=doc["slug"],
        parent_id=doc.get("parent_id"),
        order=int(doc.get("order", 0)),
        description=doc.get("description"),
        payload=doc.get("payload") or {},
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
        version=int(doc.get("version", 1)),
    )


def _model_to_doc(node: Node) -> dict[str, Any]:
    doc = node.model_dump(exclude={"id"})
    doc["_id"] = node.id
    return doc


class MongoNodeRepository(NodeRepository):
    def __init__(
        self,
        collection_name: str,
        collection: Optional[AsyncIOMotorCollection] = None,
    ) -> None:
        self.collection_name = collection_name
        self._explicit_collection = collection

    def _collection(self) -> AsyncIOMotorCollection:
        if self._explicit_collection is not None:
            return self._explicit_collection
        return get_collection(self.collection_name)

    @asynccontextmanager
    async def _storage(
        self,
        action: str,
        *,
        node_id: Optional[str] = None,
        slug: Optional[str] = None,
    ) -> AsyncIterator[None]:
        try:
            yield
        except DuplicateKeyError as exc:
            if slug is None:
                logger.error(
                    "Duplicate key during {action} on {collection}: {error}",
                    action=action,
                    collection=self.collection_name,
                    error=exc,
                )
                raise NodeConflictError(
                    f"Duplicate key during {action}", node_id=node_id
                ) from exc
            raise SlugTakenError(slug, node_id=node_id) from exc
        except PyMongoError as exc:
            logger.exception(
                "Storage failure during {action} on {collection} (node {node_id})",
                action=action,
                collection=self.collection_name,
                node_id=node_id,
            )
            raise NodeInternalError(
                f"Storage failure during {action}", node_id=node_id
            ) from exc

    async def ensure_indexes(self) -> None:
        """Create the unique slug index and the sibling lookup index."""

        collection = self._collection()
        async with self._storage("ensure_indexes"):
            await collection.create_index("slug", unique=True, name="slug_unique")
            await collection.create_index(
                [("parent_id", ASCENDING), ("order", ASCENDING)],
                name="parent_order",
            )
        logger.info("Indexes ensured on {collection}", collection=self.collection_name)

    # ---------------------------------------------------------
    # READ
    # ---------------------------------------------------------
    async def _find(self, query: MongoFilter) -> List[Node]:
        async with self._storage("find"):
            cursor = self._collection().find(query).sort(_SORT)
            return [_doc_to_model(doc) async for doc in cursor]

    async def get(self, node_id: str) -> Optional[Node]:
        async with self._storage("get", node_id=node_id):
            doc = await self._collection().find_one({"_id": node_id})
        return _doc_to_model(doc) if doc else None

    async def get_by_slug(self, slug: str) -> Optional[Node]:
        async with self._storage("get_by_slug"):
            doc = await self._collection().find_one({"slug": slug})
        return _doc_to_model(doc) if doc else None

    async def list_all(self) -> List[Node]:
        return await self._find({})

    async def list_by_parent(self, parent_id: Optional[str]) -> List[Node]:
        return await self._find({"parent_id": parent_id})

    async def count_children(self, node_id: str) -> int:
        async with self._storage("count_children", node_id=node_id):
            return await self._collection().count_documents({"parent_id": node_id})

    # ---------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------
    async def insert(self, node: Node) -> Node:
        async with self._storage("insert", node_id=node.id, slug=node.slug):
            await self._collection().insert_one(_model_to_doc(node))
        return node

    async def _missing_or_stale(self, node_id: str, expected_version: Optional[int]) -> Exception:
        current = await self.get(node_id)
        if current is None:
            return NodeNotFoundError(f"Node {node_id} not found", node_id=node_id)
        return NodeConflictError(
            f"Node {node_id} was modified concurrently "
            f"(expected version {expected_version}, found {current.version})",
            node_id=node_id,
            node_name=current.name,
        )

    @staticmethod
    def _selector(node_id: str, expected_version: Optional[int]) -> MongoFilter:
        selector: MongoFilter = {"_id": node_id}
        if expected_version is not None:
            selector["version"] = expected_version
        return selector

    async def update(
        self,
        node_id: str,
        changes: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> Node:
        _check_changes(changes)
        async with self._storage("update", node_id=node_id, slug=changes.get("slug")):
            doc = await self._collection().find_one_and_update(
                self._selector(node_id, expected_version),
                {"$set": dict(changes), "$inc": {"version": 1}},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise await self._missing_or_stale(node_id, expected_version)
        return _doc_to_model(doc)

    async def delete(self, node_id: str, *, expected_version: Optional[int] = None) -> None:
        async with self._storage("delete", node_id=node_id):
            result = await self._collection().delete_one(
                self._selector(node_id, expected_version)
            )
        if result.deleted_count == 0:
            raise await self._missing_or_stale(node_id, expected_version)

    async def delete_many(self, node_ids: Iterable[str]) -> int:
        ids = list(node_ids)
        async with self._storage("delete_many"):
            result = await self._collection().delete_many({"_id": {"$in": ids}})
        return result.deleted_count
