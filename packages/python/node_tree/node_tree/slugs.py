"""URL-safe identifiers derived from display names, kept unique per repository."""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

from loguru import logger

from .errors import NodeConflictError
from .repository import NodeRepository

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

_DISALLOWED = re.compile(r"[^a-z0-9\s_-]")
_SEPARATOR_RUNS = re.compile(r"[\s_-]+")


def slugify(name: str) -> str:
    """
    Turn a display name into a slug.

    Accented letters are folded to ASCII, everything is lowercased, characters
    other than letters, digits, whitespace, underscores and hyphens are dropped,
    separator runs become a single hyphen and edge hyphens are stripped. The
    result is either empty or matches ``SLUG_PATTERN``.
    """

    folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    slug = _DISALLOWED.sub("", folded.lower().strip())
    slug = _SEPARATOR_RUNS.sub("-", slug)
    return slug.strip("-")


def is_valid_slug(slug: str) -> bool:
    return bool(SLUG_PATTERN.match(slug))


class SlugAllocator:
    """Find the first free slug among ``base``, ``base-1``, ``base-2``, ..."""

    def __init__(self, repository: NodeRepository, *, max_attempts: int = 100) -> None:
        self.repository = repository
        self.max_attempts = max_attempts

    async def ensure_unique(
        self,
        candidate: str,
        exclude_id: Optional[str] = None,
        *,
        node_name: Optional[str] = None,
    ) -> str:
        for attempt in range(self.max_attempts):
            slug = candidate if attempt == 0 else f"{candidate}-{attempt}"
            existing = await self.repository.get_by_slug(slug)
            if existing is None or existing.id == exclude_id:
                if attempt:
                    logger.debug(
                        "Slug {candidate} taken, allocated {slug}",
                        candidate=candidate,
                        slug=slug,
                    )
                return slug

        raise NodeConflictError(
            f"No free slug for '{candidate}' after {self.max_attempts} attempts",
            node_id=exclude_id,
            node_name=node_name,
            details={"slug": candidate},
        )
