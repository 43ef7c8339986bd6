"""Configuration for the CMS API package."""

import os

from pydantic import BaseModel, Field


class CmsApiSettings(BaseModel):
    """Endpoints of the identity (Kratos) and permission (Keto) services."""

    kratos_public_url: str = Field(
        default_factory=lambda: os.getenv("KRATOS_PUBLIC_URL", "http://kratos:4433")
    )
    keto_read_url: str = Field(
        default_factory=lambda: os.getenv("KETO_READ_URL", "http://keto:4466")
    )
    permissions_namespace: str = Field(
        default_factory=lambda: os.getenv("CMS_PERMISSIONS_NAMESPACE", "app:cms")
    )
    timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("CMS_AUTH_TIMEOUT_SECONDS", "5.0"))
    )


settings = CmsApiSettings()
