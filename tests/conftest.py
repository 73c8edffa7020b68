"""Shared test fixtures for the in-memory Concourse client and FastAPI test client."""

from collections.abc import AsyncGenerator, Iterator

import pytest
import structlog
from httpx import ASGITransport, AsyncClient
from structlog.testing import LogCapture

from app.dependencies import get_concourse_client
from app.main import app
from app.schemas.pipelines import PipelineConfig, ResourceConfig
from app.services.concourse_client import InMemoryConcourseClient

REPO_HTTPS = "https://github.com/acme/widgets.git"
REPO_SSH = "git@github.com:acme/widgets.git"


def git_resource(
    name: str,
    uri: object = REPO_HTTPS,
    *,
    webhook_token: str = "hook-secret",
    type_: str = "git",
) -> ResourceConfig:
    """Build a resource config; pass ``uri=None`` to omit ``source.uri``."""
    source = {"branch": "main"}
    if uri is not None:
        source["uri"] = uri
    return ResourceConfig(name=name, type=type_, webhook_token=webhook_token, source=source)


@pytest.fixture
def concourse() -> InMemoryConcourseClient:
    """An in-memory Concourse with team ``main`` and pipeline ``widgets``.

    The pipeline has one matching git resource (``repo``) and one unrelated
    time resource.
    """
    pipeline = PipelineConfig(
        resources=[
            git_resource("repo"),
            ResourceConfig(name="nightly", type="time", source={"interval": "24h"}),
        ]
    )
    return InMemoryConcourseClient(pipelines={"main": {"widgets": pipeline}})


@pytest.fixture
async def client(concourse: InMemoryConcourseClient) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient with the Concourse client overridden.

    The lifespan is not run by ASGITransport, so no production clients are
    created and no configuration is required.
    """
    app.dependency_overrides[get_concourse_client] = lambda: concourse
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def log_output() -> Iterator[LogCapture]:
    """Capture structlog entries with the request context merged in."""
    capture = LogCapture()
    structlog.configure(processors=[structlog.contextvars.merge_contextvars, capture])
    yield capture
    structlog.reset_defaults()
