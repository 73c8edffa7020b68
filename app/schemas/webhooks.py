"""Models for inbound webhook notifications."""

from pydantic import BaseModel


class HookRequest(BaseModel):
    """A single inbound notification, built from path and form/query parameters.

    Lives only for the duration of the request that produced it.
    """

    team: str
    pipeline: str
    token: str = ""
    git_url: str = ""
