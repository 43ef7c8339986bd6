"""Kind descriptors that parameterize the generic node tree engine.

A kind bundles everything that differs between node families: where they are
stored, how slugs are obtained, which payload fields they accept and whether
they have an anonymous public view.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidNodeArgumentError
from .models import Node


class SlugSource(str, Enum):
    AUTO = "auto"  # derived from the name unless given explicitly
    REQUIRED = "required"  # caller must provide one


class CategoryPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class MenuPayload(BaseModel):
    """Navigation menu specific fields."""

    model_config = ConfigDict(extra="forbid")

    url: str = Field(min_length=1)
    icon: Optional[str] = None
    is_external: bool = False
    is_visible: bool = True
    open_in_new_tab: bool = False
    require_auth: bool = False
    allowed_roles: Optional[str] = None


@dataclass(frozen=True)
class PublicView:
    """Filter and field stripping for the unauthenticated read view."""

    include: Callable[[Node], bool]
    hidden_payload_fields: frozenset[str] = frozenset()


@dataclass(frozen=True)
class NodeKind:
    name: str
    label: str
    collection: str
    slug_source: SlugSource
    slug_editable: bool
    name_max_length: int
    payload_model: type[BaseModel]
    public_view: Optional[PublicView] = None

    def validate_payload(
        self,
        payload: Mapping[str, Any],
        *,
        node_id: Optional[str] = None,
        node_name: Optional[str] = None,
    ) -> dict[str, Any]:
        """Validate a payload against the kind's model and return it normalized."""

        try:
            return self.payload_model.model_validate(dict(payload)).model_dump()
        except ValidationError as exc:
            raise InvalidNodeArgumentError(
                f"Invalid {self.name} payload: {exc.error_count()} error(s)",
                node_id=node_id,
                node_name=node_name,
                details={
                    "errors": [
                        {"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()
                    ]
                },
            ) from exc

    def validate_name(self, name: str, *, node_id: Optional[str] = None) -> None:
        if len(name) > self.name_max_length:
            raise InvalidNodeArgumentError(
                f"{self.label} name must be at most {self.name_max_length} characters",
                node_id=node_id,
                node_name=name,
            )


def _menu_is_visible(node: Node) -> bool:
    return bool(node.payload.get("is_visible", True))


CATEGORY = NodeKind(
    name="category",
    label="Category",
    collection="categories",
    slug_source=SlugSource.AUTO,
    slug_editable=True,
    name_max_length=255,
    payload_model=CategoryPayload,
)

MENU = NodeKind(
    name="menu",
    label="Menu",
    collection="navigation_menus",
    slug_source=SlugSource.REQUIRED,
    slug_editable=False,
    name_max_length=50,
    payload_model=MenuPayload,
    public_view=PublicView(
        include=_menu_is_visible,
        hidden_payload_fields=frozenset({"is_visible"}),
    ),
)

KINDS: dict[str, NodeKind] = {kind.name: kind for kind in (CATEGORY, MENU)}


def get_kind(name: str) -> NodeKind:
    try:
        return KINDS[name]
    except KeyError:
        raise InvalidNodeArgumentError(f"Unknown node kind '{name}'") from None
