"""Centralized FastAPI dependencies for use with Depends()."""

from typing import Annotated

import httpx
from fastapi import Depends

from app.config import Settings
from app.services.concourse_auth import ConcourseAuth, CredentialSource
from app.services.concourse_client import (
    ConcourseClient,
    HTTPConcourseClient,
    InMemoryConcourseClient,
)
from app.services.dispatcher import HookDispatcher

_concourse_client: ConcourseClient = InMemoryConcourseClient()
_token_client: httpx.AsyncClient | None = None


def init_production_deps(settings: Settings) -> None:
    """Swap the InMemory test double for a client talking to Concourse.

    Two httpx clients share the TLS settings: one without auth for the token
    endpoint, and one for API calls that authenticates through a
    ``CredentialSource`` wrapping the first.
    """
    global _concourse_client, _token_client  # noqa: PLW0603

    concourse = settings.concourse
    verify = not concourse.insecure_skip_verify
    timeout = httpx.Timeout(concourse.timeout_seconds)

    _token_client = httpx.AsyncClient(verify=verify, timeout=timeout)
    source = CredentialSource(
        _token_client,
        concourse.url,
        concourse.auth.username,
        concourse.auth.password,
    )
    api_client = httpx.AsyncClient(
        auth=ConcourseAuth(source),
        verify=verify,
        timeout=timeout,
    )
    _concourse_client = HTTPConcourseClient(concourse.url, api_client)


async def close_production_deps() -> None:
    """Close the httpx clients opened by ``init_production_deps()``."""
    global _concourse_client, _token_client  # noqa: PLW0603

    if isinstance(_concourse_client, HTTPConcourseClient):
        await _concourse_client.aclose()
    if _token_client is not None:
        await _token_client.aclose()
    _concourse_client = InMemoryConcourseClient()
    _token_client = None


def get_concourse_client() -> ConcourseClient:
    """Return the application Concourse client instance.

    Defaults to InMemoryConcourseClient for development and testing.
    Swapped to the production implementation by ``init_production_deps()``.
    """
    return _concourse_client


def get_hook_dispatcher(
    client: Annotated[ConcourseClient, Depends(get_concourse_client)],
) -> HookDispatcher:
    """Return a dispatcher bound to the current Concourse client."""
    return HookDispatcher(client)


__all__ = [
    "close_production_deps",
    "get_concourse_client",
    "get_hook_dispatcher",
    "init_production_deps",
]
