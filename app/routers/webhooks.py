"""Generic git webhook router.

Source-control hosts call ``/v1/webhook/git/{team}/{pipeline}`` with a
``webhook_token`` and the pushed repository's ``git_url``, either in the query
string or as form fields.  The response is a bare status code.
"""

import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request, Response

from app.dependencies import get_hook_dispatcher
from app.schemas.webhooks import HookRequest
from app.services.dispatcher import HookDispatcher

logger = structlog.get_logger()

router = APIRouter(prefix="/v1/webhook", tags=["webhooks"])

_FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def _form_value(request: Request, key: str) -> str:
    """Return ``key`` from the form body if present, else from the query string.

    A field present in the body wins even when it is empty.
    """
    content_type = request.headers.get("content-type", "")
    if request.method in ("POST", "PUT") and content_type.startswith(_FORM_CONTENT_TYPES):
        form = await request.form()
        value = form.get(key)
        if isinstance(value, str):
            return value
    return request.query_params.get(key, "")


@router.api_route("/git/{team}/{pipeline}", methods=["GET", "POST", "PUT"])
async def git_webhook(
    team: str,
    pipeline: str,
    request: Request,
    dispatcher: Annotated[HookDispatcher, Depends(get_hook_dispatcher)],
) -> Response:
    """Receive a git push notification and trigger matching resource checks."""
    hook = HookRequest(
        team=team,
        pipeline=pipeline,
        token=await _form_value(request, "webhook_token"),
        git_url=await _form_value(request, "git_url"),
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=str(uuid.uuid4()))
    try:
        status_code = await dispatcher.handle(hook)
        logger.info("hook_completed", status_code=status_code)
    finally:
        structlog.contextvars.clear_contextvars()

    return Response(status_code=status_code)
