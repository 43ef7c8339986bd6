"""Expose the CMS category and navigation menu routers."""

from .authz import (
    Authorizer,
    Identity,
    KetoAuthorizer,
    KratosIdentityProvider,
    get_identity,
    require_relation,
)
from .errors import register_exception_handlers
from .router import build_router
from .services import build_services, service_for

__all__ = [
    "Authorizer",
    "Identity",
    "KetoAuthorizer",
    "KratosIdentityProvider",
    "get_identity",
    "require_relation",
    "register_exception_handlers",
    "build_router",
    "build_services",
    "service_for",
]
