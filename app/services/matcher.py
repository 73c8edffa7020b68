"""Git URL canonicalization and pipeline resource matching.

Two URLs refer to the same repository when their canonical forms are equal.
The canonical form drops the user/scheme prefix and the ``.git`` suffix and
turns ``:`` into ``/``, so ``git@github.com:org/repo.git`` and
``https://github.com/org/repo.git`` both become ``github.com/org/repo``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterable

    from app.schemas.pipelines import ResourceConfig

logger = structlog.get_logger()

GIT_RESOURCE_TYPE = "git"

# Greedy prefixes strip up to the last ``@`` or ``://``; the suffix must be
# ``.git``, optionally preceded by a colon.
_GIT_URL_RE = re.compile(r"^(?:.*@|.*://)(.*)(:?\.git)\Z")

# Optional scheme followed by the user-info part of the authority.
_USERINFO_RE = re.compile(r"^(?P<scheme>[A-Za-z][A-Za-z0-9+.-]*://)?[^/?#]*@")


def canonicalize_git_url(url: str) -> str | None:
    """Return the canonical form of a git URL, or None if it cannot be parsed.

    URLs without a ``user@`` or ``scheme://`` prefix, or without a ``.git``
    suffix, are unparseable.  None never equals any canonical form, including
    that of another unparseable URL.
    """
    match = _GIT_URL_RE.match(url)
    if match is None:
        return None
    return match.group(1).replace(":", "/")


def redact_git_url(url: str) -> str:
    """Drop the user-info (``user:password@``) from a git URL for logging."""
    return _USERINFO_RE.sub(lambda m: m.group("scheme") or "", url, count=1)


def match_resources(
    resources: Iterable[ResourceConfig],
    canonical_url: str | None,
) -> list[ResourceConfig]:
    """Select the webhook-enabled git resources pointing at ``canonical_url``.

    Args:
        resources: The pipeline's resources, in configuration order.
        canonical_url: Canonical form of the notified repository URL.

    Returns:
        The matching resources, in the order they were given.
    """
    if canonical_url is None:
        return []

    matched = []
    for resource in resources:
        if resource.type != GIT_RESOURCE_TYPE or not resource.webhook_token:
            continue

        uri = resource.source_uri()
        if uri is None:
            if "uri" in resource.source:
                logger.info("resource_uri_not_string", resource=resource.name)
            else:
                logger.info("resource_uri_missing", resource=resource.name)
            continue

        if canonicalize_git_url(uri) == canonical_url:
            matched.append(resource)
    return matched
