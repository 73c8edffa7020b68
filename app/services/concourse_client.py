"""Concourse API client abstraction with protocol-based swappable implementations.

Production code uses ``HTTPConcourseClient`` which talks to the Concourse REST
API through an ``httpx.AsyncClient`` authenticated with ``ConcourseAuth``.
Tests use ``InMemoryConcourseClient`` which serves canned teams and pipelines
and records every call for assertion without network access.
"""

from __future__ import annotations

from typing import Protocol
from urllib.parse import quote, quote_plus

import httpx
import structlog

from app.schemas.pipelines import PipelineConfig, PipelineConfigResponse

logger = structlog.get_logger()

REDACTED = "REDACTED"


class ConcourseError(Exception):
    """Raised when Concourse cannot be reached or answers with an error."""


class TeamNotFoundError(ConcourseError):
    """The requested team does not exist."""


def _segment(value: str) -> str:
    return quote(value, safe="")


def webhook_url(base_url: str, team: str, pipeline: str, resource: str, token: str) -> str:
    """Build the check-via-webhook URL for one resource."""
    return (
        f"{base_url}/api/v1/teams/{_segment(team)}/pipelines/{_segment(pipeline)}"
        f"/resources/{_segment(resource)}/check/webhook"
        f"?webhook_token={quote_plus(token)}"
    )


def redacted_webhook_url(base_url: str, team: str, pipeline: str, resource: str) -> str:
    """Same as ``webhook_url`` with the token replaced, for logging."""
    return webhook_url(base_url, team, pipeline, resource, REDACTED)


class ConcourseClient(Protocol):
    """Protocol for the Concourse operations the relay depends on."""

    @property
    def url(self) -> str:
        """Base URL of the Concourse server."""
        ...

    async def find_team(self, team: str) -> None:
        """Ensure ``team`` exists.

        Raises:
            TeamNotFoundError: If Concourse has no such team.
            ConcourseError: On any other failure.
        """
        ...

    async def get_pipeline_config(self, team: str, pipeline: str) -> PipelineConfig | None:
        """Return the pipeline's configuration, or None if it does not exist."""
        ...

    async def check_resource_webhook(
        self, team: str, pipeline: str, resource: str, token: str
    ) -> int:
        """Trigger a check of ``resource`` and return the HTTP status received."""
        ...


class HTTPConcourseClient:
    """Production implementation backed by the Concourse REST API.

    ``client`` must already carry the credentials for API calls (normally
    ``ConcourseAuth``); the check-via-webhook call is additionally authorized
    by the caller's webhook token.
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient) -> None:
        self._base_url = base_url
        self._client = client

    @property
    def url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def find_team(self, team: str) -> None:
        url = f"{self._base_url}/api/v1/teams/{_segment(team)}"
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise ConcourseError(f"team lookup failed: {exc}") from exc

        if resp.status_code == httpx.codes.NOT_FOUND:
            raise TeamNotFoundError(f"team {team!r} not found")
        if not resp.is_success:
            raise ConcourseError(f"team lookup returned {resp.status_code}")

    async def get_pipeline_config(self, team: str, pipeline: str) -> PipelineConfig | None:
        url = (
            f"{self._base_url}/api/v1/teams/{_segment(team)}"
            f"/pipelines/{_segment(pipeline)}/config"
        )
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise ConcourseError(f"pipeline config lookup failed: {exc}") from exc

        if resp.status_code == httpx.codes.NOT_FOUND:
            return None
        if not resp.is_success:
            raise ConcourseError(f"pipeline config lookup returned {resp.status_code}")

        try:
            return PipelineConfigResponse.model_validate_json(resp.content).config
        except ValueError as exc:
            raise ConcourseError(f"malformed pipeline config: {exc}") from exc

    async def check_resource_webhook(
        self, team: str, pipeline: str, resource: str, token: str
    ) -> int:
        """POST to the check-via-webhook endpoint, draining the response body.

        Raises:
            ConcourseError: If the request could not be sent or answered.
        """
        url = webhook_url(self._base_url, team, pipeline, resource, token)
        try:
            async with self._client.stream("POST", url) as resp:
                status_code = resp.status_code
                reason = resp.reason_phrase
                try:
                    await resp.aread()
                except httpx.HTTPError as exc:
                    logger.warning("webhook_response_drain_failed", error=str(exc))
        except httpx.HTTPError as exc:
            raise ConcourseError(f"webhook request failed: {exc}") from exc

        if not httpx.codes.is_success(status_code):
            logger.warning(
                "webhook_non_success_response",
                status_code=status_code,
                reason=reason,
            )
        return status_code


class InMemoryConcourseClient:
    """Test double that serves canned pipelines and records every call.

    Args:
        pipelines: ``{team: {pipeline: PipelineConfig}}``.  Teams listed here
            exist; pipelines missing under an existing team are "not found".
        statuses: ``{resource name: status}`` returned by
            ``check_resource_webhook``; unlisted resources get 200.
    """

    def __init__(
        self,
        pipelines: dict[str, dict[str, PipelineConfig]] | None = None,
        statuses: dict[str, int] | None = None,
        base_url: str = "http://concourse.test",
    ) -> None:
        self.pipelines = pipelines if pipelines is not None else {}
        self.statuses = statuses if statuses is not None else {}
        self.base_url = base_url
        self.pipeline_error: ConcourseError | None = None
        self.team_lookups: list[str] = []
        self.pipeline_lookups: list[tuple[str, str]] = []
        self.webhook_calls: list[dict] = []

    @property
    def url(self) -> str:
        return self.base_url

    async def find_team(self, team: str) -> None:
        self.team_lookups.append(team)
        if team not in self.pipelines:
            raise TeamNotFoundError(f"team {team!r} not found")

    async def get_pipeline_config(self, team: str, pipeline: str) -> PipelineConfig | None:
        self.pipeline_lookups.append((team, pipeline))
        if self.pipeline_error is not None:
            raise self.pipeline_error
        return self.pipelines.get(team, {}).get(pipeline)

    async def check_resource_webhook(
        self, team: str, pipeline: str, resource: str, token: str
    ) -> int:
        self.webhook_calls.append(
            {"team": team, "pipeline": pipeline, "resource": resource, "token": token}
        )
        return self.statuses.get(resource, 200)
