"""Typing helpers shared by Mongo-backed repositories."""

from typing import Any, Mapping, MutableMapping

MongoDocument = Mapping[str, Any]
MongoFilter = MutableMapping[str, Any]
