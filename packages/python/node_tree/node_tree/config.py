"""Configuration for the node tree engine."""

import os

from pydantic import BaseModel, Field


class NodeTreeSettings(BaseModel):
    """Tunables for slug allocation and optimistic write retries."""

    slug_max_attempts: int = Field(
        default_factory=lambda: int(os.getenv("NODE_TREE_SLUG_MAX_ATTEMPTS", "100")),
        ge=1,
    )
    slug_conflict_retries: int = Field(
        default_factory=lambda: int(os.getenv("NODE_TREE_SLUG_CONFLICT_RETRIES", "1")),
        ge=0,
    )


settings = NodeTreeSettings()
