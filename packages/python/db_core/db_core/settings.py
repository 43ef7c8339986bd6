"""Configuration helpers for the MongoDB connection used by db_core.

Values are read from the environment once at import time; set ``MONGO_URI``
and ``MONGO_DB_NAME`` before the first import.
"""
import os

from loguru import logger
from pydantic import BaseModel, Field


class MongoSettings(BaseModel):
    """MongoDB connection configuration for the CMS node stores."""

    uri: str = Field(
        default_factory=lambda: os.getenv("MONGO_URI", "mongodb://localhost:27017")
    )
    db_name: str = Field(default_factory=lambda: os.getenv("MONGO_DB_NAME", "cms"))
    server_selection_timeout_ms: int = Field(
        default_factory=lambda: int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000"))
    )


settings: MongoSettings = MongoSettings()
logger.debug(
    "MongoSettings initialized with uri={uri} db_name={db_name}",
    uri=settings.uri,
    db_name=settings.db_name,
)
