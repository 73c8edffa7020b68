"""Bearer credentials for the Concourse API.

``CredentialSource`` performs the OAuth password grant against Concourse's
token endpoint and keeps the resulting credential until it expires.  The
access token Concourse issues is an opaque 28-byte blob whose last eight
bytes hold the expiry as a little-endian Unix timestamp; the expiry is read
from there instead of being parsed out of claims.

``ConcourseAuth`` plugs a ``CredentialSource`` into an ``httpx.AsyncClient``
so every API request carries a current ``Authorization`` header.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from collections.abc import AsyncGenerator, Callable, Generator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import httpx
import structlog

logger = structlog.get_logger()

# Public client registration of the ``fly`` CLI; identifies the application,
# not the user.
CLIENT_ID = "fly"
CLIENT_SECRET = "Zmx5"
SCOPES = ("openid", "profile", "email", "federated:id", "groups")
TOKEN_PATH = "/sky/issuer/token"

ACCESS_TOKEN_LENGTH = 28
_EXPIRY_OFFSET = 20

# A credential this close to expiry is treated as already expired.
EXPIRY_LEEWAY = timedelta(seconds=10)

_TOKEN_TYPE_CASING = {"": "Bearer", "bearer": "Bearer", "mac": "MAC", "basic": "Basic"}


class CredentialError(Exception):
    """Raised when a Concourse credential cannot be obtained."""


class TokenRequestError(CredentialError):
    """The token endpoint was unreachable, rejected the grant, or replied garbage."""


class TokenFormatError(CredentialError):
    """The access token does not have the expected binary layout."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Credential:
    """An access token and the moment it stops being accepted."""

    access_token: str
    token_type: str
    expiry: datetime

    def is_valid(self, now: datetime) -> bool:
        return bool(self.access_token) and now + EXPIRY_LEEWAY < self.expiry

    @property
    def authorization(self) -> str:
        """Value for the ``Authorization`` header."""
        scheme = _TOKEN_TYPE_CASING.get(self.token_type.lower(), self.token_type)
        return f"{scheme} {self.access_token}"


def parse_token_expiry(access_token: str) -> datetime:
    """Extract the expiry timestamp embedded in a Concourse access token.

    The token is unpadded standard base64 of exactly 28 bytes; bytes 20-27
    are an unsigned little-endian count of seconds since the Unix epoch.

    Raises:
        TokenFormatError: If the token does not decode to 28 bytes or the
            timestamp is out of range.
    """
    padded = access_token + "=" * (-len(access_token) % 4)
    try:
        raw = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise TokenFormatError(f"access token is not base64: {exc}") from exc

    if len(raw) != ACCESS_TOKEN_LENGTH:
        raise TokenFormatError(
            f"invalid access token length: {len(raw)} bytes, expected {ACCESS_TOKEN_LENGTH}"
        )

    seconds = int.from_bytes(raw[_EXPIRY_OFFSET:], "little", signed=False)
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError) as exc:
        raise TokenFormatError(f"access token expiry out of range: {seconds}") from exc


async def request_password_grant(
    client: httpx.AsyncClient,
    base_url: str,
    username: str,
    password: str,
) -> dict:
    """Exchange a username and password for a token at Concourse's issuer.

    Args:
        client: Unauthenticated httpx client used only for the token endpoint.
        base_url: Concourse base URL without trailing slash.
        username: Concourse local user.
        password: Password of that user.

    Returns:
        The parsed JSON token response.

    Raises:
        TokenRequestError: On transport failures, non-2xx replies or a reply
            without an ``access_token``.
    """
    try:
        resp = await client.post(
            f"{base_url}{TOKEN_PATH}",
            data={
                "grant_type": "password",
                "username": username,
                "password": password,
                "scope": " ".join(SCOPES),
            },
            auth=(CLIENT_ID, CLIENT_SECRET),
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as exc:
        raise TokenRequestError(f"token request failed: {exc}") from exc

    if not resp.is_success:
        raise TokenRequestError(f"token endpoint returned {resp.status_code}")

    try:
        payload = resp.json()
    except ValueError as exc:
        raise TokenRequestError("token endpoint returned invalid JSON") from exc

    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise TokenRequestError("token response has no access_token")
    return payload


class CredentialSource:
    """Single-slot credential cache with single-flight refresh.

    A still-valid credential is returned immediately.  Otherwise the first
    caller starts one refresh task and every concurrent caller awaits that
    same task, so at most one password grant is in flight at a time.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        username: str,
        password: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._base_url = base_url
        self._username = username
        self._password = password
        self._clock = clock
        self._credential: Credential | None = None
        self._refresh: asyncio.Task[Credential] | None = None
        self._lock = asyncio.Lock()

    @property
    def credential(self) -> Credential | None:
        """The cached credential, valid or not."""
        return self._credential

    async def get_token(self) -> Credential:
        """Return a valid credential, acquiring a new one if needed.

        Raises:
            CredentialError: If the acquisition this call waited on failed.
        """
        credential = self._credential
        if credential is not None and credential.is_valid(self._clock()):
            return credential

        async with self._lock:
            if self._refresh is None:
                self._refresh = asyncio.ensure_future(self._acquire())
            refresh = self._refresh

        return await asyncio.shield(refresh)

    async def _acquire(self) -> Credential:
        try:
            payload = await request_password_grant(
                self._client, self._base_url, self._username, self._password
            )
            access_token = payload["access_token"]
            expiry = parse_token_expiry(access_token)
        except CredentialError as exc:
            logger.error("credential_acquisition_failed", error=str(exc))
            raise
        finally:
            self._refresh = None

        credential = Credential(
            access_token=access_token,
            token_type=str(payload.get("token_type") or ""),
            expiry=expiry,
        )
        self._credential = credential
        logger.info("credential_acquired", expiry=expiry.isoformat())
        return credential


class ConcourseAuth(httpx.Auth):
    """httpx auth flow that attaches the current Concourse credential.

    Example:
        >>> auth = ConcourseAuth(source)
        >>> async with httpx.AsyncClient(auth=auth) as client:
    """

    def __init__(self, source: CredentialSource) -> None:
        self.source = source

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        raise RuntimeError("ConcourseAuth requires an httpx.AsyncClient")

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        credential = await self.source.get_token()
        request.headers["Authorization"] = credential.authorization
        yield request
