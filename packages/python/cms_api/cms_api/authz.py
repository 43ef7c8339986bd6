"""Authorization gate: only privileged identities may read the admin views or mutate.

The identity comes from the Ory Kratos session of the request cookie. Checks
go to Ory Keto. The object is ``<kind>:all`` in the configured namespace, the
relation is ``viewer`` for admin reads and ``editor`` for mutations, and the
subject is ``user:<identity id>``.
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx
from fastapi import Depends, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, Field

from node_tree import NodeKind

from .config import settings

VIEWER = "viewer"
EDITOR = "editor"
USER_SUBJECT_PREFIX = "user"


class Identity(BaseModel):
    """The part of a Kratos identity the gate needs."""

    id: str
    traits: dict[str, Any] = Field(default_factory=dict)


def user_subject(user_id: str) -> str:
    return f"{USER_SUBJECT_PREFIX}:{user_id}"


def kind_object_id(kind: NodeKind) -> str:
    return f"{kind.name}:all"


class _HttpService:
    """Owns a lazily created ``httpx.AsyncClient`` unless one is injected."""

    def __init__(self, client: Optional[httpx.AsyncClient]) -> None:
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class KratosIdentityProvider(_HttpService):
    """Resolve the session cookie of a request via Kratos ``/sessions/whoami``."""

    def __init__(
        self,
        *,
        public_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(client)
        self.public_url = (public_url or settings.kratos_public_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.timeout_seconds

    async def identify(self, request: Request) -> Identity:
        cookies = request.headers.get("cookie")
        if not cookies:
            raise HTTPException(status_code=401, detail="Not authenticated")

        start = time.perf_counter()
        try:
            resp = await self._get_client().get(
                f"{self.public_url}/sessions/whoami",
                headers={"Cookie": cookies},
                timeout=self.timeout,
            )
        except httpx.RequestError as exc:
            logger.warning(
                "Kratos whoami request failed after {duration:.2f} ms: {error}",
                duration=(time.perf_counter() - start) * 1000,
                error=exc,
            )
            raise HTTPException(status_code=502, detail="Identity service unavailable") from exc

        logger.debug(
            "Kratos whoami responded with {status} in {duration:.2f} ms",
            status=resp.status_code,
            duration=(time.perf_counter() - start) * 1000,
        )
        if resp.status_code in (401, 403):
            raise HTTPException(status_code=401, detail="Not authenticated")
        if resp.status_code != 200:
            raise HTTPException(status_code=502, detail="Identity service error")

        identity = resp.json().get("identity")
        if not isinstance(identity, dict) or not identity.get("id"):
            raise HTTPException(status_code=502, detail="Identity response missing identity")
        return Identity(id=str(identity["id"]), traits=identity.get("traits") or {})


class Authorizer(Protocol):
    async def allowed(self, identity: Identity, kind: NodeKind, relation: str) -> bool:
        ...

    async def aclose(self) -> None:
        ...


class KetoAuthorizer(_HttpService):
    """Ask Keto's relation-tuple check endpoint whether an identity may act."""

    def __init__(
        self,
        *,
        read_url: Optional[str] = None,
        namespace: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(client)
        self.read_url = (read_url or settings.keto_read_url).rstrip("/")
        self.namespace = namespace or settings.permissions_namespace
        self.timeout = timeout if timeout is not None else settings.timeout_seconds

    async def allowed(self, identity: Identity, kind: NodeKind, relation: str) -> bool:
        payload = {
            "namespace": self.namespace,
            "object": kind_object_id(kind),
            "relation": relation,
            "subject_id": user_subject(identity.id),
        }
        start = time.perf_counter()
        try:
            response = await self._get_client().post(
                f"{self.read_url}/relation-tuples/check",
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            # Keto answers 403 for a denied check.
            if exc.response.status_code == 403:
                allowed = False
            else:
                logger.warning(
                    "Keto check {object}/{relation} for {subject} failed: {error}",
                    object=payload["object"],
                    relation=relation,
                    subject=payload["subject_id"],
                    error=exc,
                )
                raise HTTPException(status_code=502, detail="Permission service error") from exc
        except httpx.RequestError as exc:
            logger.warning("Keto check request failed: {error}", error=exc)
            raise HTTPException(status_code=502, detail="Permission service unavailable") from exc
        else:
            allowed = bool(response.json().get("allowed"))

        logger.debug(
            "Keto check {object}/{relation} for {subject} -> {result} in {duration:.2f} ms",
            object=payload["object"],
            relation=relation,
            subject=payload["subject_id"],
            result=allowed,
            duration=(time.perf_counter() - start) * 1000,
        )
        return allowed


async def get_identity(request: Request) -> Identity:
    """
    Resolve the caller with the app's identity provider, caching the result on
    the request state so later dependencies reuse it.
    """

    cached = getattr(request.state, "identity", None)
    if cached is not None:
        return cached

    identity = await request.app.state.identity_provider.identify(request)
    request.state.identity = identity
    return identity


def require_relation(kind: NodeKind, relation: str) -> Callable[..., Awaitable[Identity]]:
    """Build a dependency that rejects identities lacking ``relation`` on ``kind``."""

    async def dependency(request: Request, identity: Identity = Depends(get_identity)) -> Identity:
        if not await request.app.state.authorizer.allowed(identity, kind, relation):
            logger.info(
                "Denied {relation} on {kind} for identity {identity_id}",
                relation=relation,
                kind=kind.name,
                identity_id=identity.id,
            )
            raise HTTPException(status_code=403, detail="Forbidden")
        return identity

    return dependency
