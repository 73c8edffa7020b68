"""Webhook dispatch: resolve the notified pipeline and trigger matching checks.

``HookDispatcher.handle`` turns one inbound notification into a single HTTP
status.  Matching resources are dispatched strictly in pipeline order and the
first non-2xx answer ends the request with that status; resources after it
are never triggered.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog
from fastapi import status

from app.services.concourse_auth import CredentialError
from app.services.concourse_client import ConcourseError, redacted_webhook_url
from app.services.matcher import canonicalize_git_url, match_resources, redact_git_url

if TYPE_CHECKING:
    from app.schemas.webhooks import HookRequest
    from app.services.concourse_client import ConcourseClient

logger = structlog.get_logger()


class HookDispatcher:
    """Validates a hook request and forwards it to every matching resource."""

    def __init__(self, client: ConcourseClient) -> None:
        self._client = client

    async def handle(self, request: HookRequest) -> int:
        """Process one notification and return the status for the caller.

        Returns:
            401 without a webhook token, 400 for a missing or unparseable git
            URL, 404 for an unknown team or pipeline or when nothing matched,
            500 when the pipeline could not be fetched, 200 when every
            matching resource accepted the check, otherwise the status of the
            first resource that did not.
        """
        git_url = request.git_url.strip()
        logger.info(
            "hook_received",
            team=request.team,
            pipeline=request.pipeline,
            git_url=redact_git_url(git_url),
        )

        if not request.token:
            logger.info("hook_rejected_no_webhook_token")
            return status.HTTP_401_UNAUTHORIZED

        if not git_url:
            logger.info("hook_rejected_no_git_url")
            return status.HTTP_400_BAD_REQUEST

        canonical_url = canonicalize_git_url(git_url)
        if canonical_url is None:
            logger.info(
                "hook_rejected_unparseable_git_url", git_url=redact_git_url(git_url)
            )
            return status.HTTP_400_BAD_REQUEST
        logger.info("hook_git_url_canonicalized", canonical_url=canonical_url)

        try:
            await self._client.find_team(request.team)
        except (ConcourseError, CredentialError) as exc:
            logger.info("team_lookup_failed", team=request.team, error=str(exc))
            return status.HTTP_404_NOT_FOUND

        try:
            config = await self._client.get_pipeline_config(request.team, request.pipeline)
        except (ConcourseError, CredentialError) as exc:
            logger.error("pipeline_lookup_failed", pipeline=request.pipeline, error=str(exc))
            return status.HTTP_500_INTERNAL_SERVER_ERROR

        if config is None:
            logger.info("pipeline_not_found", pipeline=request.pipeline)
            return status.HTTP_404_NOT_FOUND

        outcome = status.HTTP_404_NOT_FOUND
        for resource in match_resources(config.resources, canonical_url):
            status_code = await self._dispatch(request, resource.name)
            if not httpx.codes.is_success(status_code):
                logger.info(
                    "hook_dispatch_stopped",
                    resource=resource.name,
                    status_code=status_code,
                )
                return status_code
            outcome = status.HTTP_200_OK

        if outcome == status.HTTP_404_NOT_FOUND:
            logger.info("hook_no_matching_resource", canonical_url=canonical_url)
        return outcome

    async def _dispatch(self, request: HookRequest, resource: str) -> int:
        logger.info(
            "webhook_dispatched",
            url=redacted_webhook_url(
                self._client.url, request.team, request.pipeline, resource
            ),
        )
        try:
            return await self._client.check_resource_webhook(
                request.team, request.pipeline, resource, request.token
            )
        except (ConcourseError, CredentialError) as exc:
            logger.error("webhook_dispatch_failed", resource=resource, error=str(exc))
            return status.HTTP_500_INTERNAL_SERVER_ERROR
