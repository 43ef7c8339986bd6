"""Domain-level errors for the node tree engine.

Every error carries a stable ``code`` from the taxonomy ``not_found``,
``conflict``, ``invalid_argument`` and ``internal`` plus the offending node's
id and/or name when known, so callers can point at exactly what failed.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class NodeTreeError(Exception):
    """Base class for every error raised by the node tree engine."""

    code = "internal"

    def __init__(
        self,
        message: str,
        *,
        node_id: Optional[str] = None,
        node_name: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.node_id = node_id
        self.node_name = node_name
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.node_id is not None:
            payload["node_id"] = self.node_id
        if self.node_name is not None:
            payload["node_name"] = self.node_name
        if self.details:
            payload["details"] = self.details
        return payload


class NodeNotFoundError(NodeTreeError):
    """Raised when a node (or a referenced parent) cannot be located."""

    code = "not_found"


class NodeConflictError(NodeTreeError):
    """Raised when a write would collide with existing state."""

    code = "conflict"


class SlugTakenError(NodeConflictError):
    """Raised by repositories when the unique slug constraint rejects a write."""

    def __init__(self, slug: str, *, node_id: Optional[str] = None) -> None:
        super().__init__(
            f"Slug '{slug}' is already in use",
            node_id=node_id,
            details={"slug": slug},
        )
        self.slug = slug


class InvalidNodeArgumentError(NodeTreeError):
    """Raised for self-parenting, cycle-inducing moves and malformed input."""

    code = "invalid_argument"


class NodeInternalError(NodeTreeError):
    """Raised when the underlying store fails unexpectedly."""

    code = "internal"


class BatchDeleteRejectedError(NodeTreeError):
    """Raised when any target of a batch delete fails pre-validation.

    Nothing is deleted. ``failures`` lists every offending id with its reason.
    """

    def __init__(self, failures: Sequence[NodeTreeError]) -> None:
        self.failures = list(failures)
        ids = ", ".join(str(failure.node_id) for failure in self.failures)
        super().__init__(
            f"Batch delete rejected; nothing was deleted (failed: {ids})",
            details={"failures": [failure.to_dict() for failure in self.failures]},
        )
        if all(isinstance(failure, NodeNotFoundError) for failure in self.failures):
            self.code = NodeNotFoundError.code
        else:
            self.code = NodeConflictError.code
