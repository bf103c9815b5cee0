"""Session state and grant strategies for the EMA REST API.

A session owns the credential, the grant strategy that produced the
current bearer token, and the token itself. The token and the strategy
are always replaced together so that reauthentication reuses exactly the
mode that issued the previous token.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, ClassVar, TypeAlias

import httpx
import structlog

from .errors import (
    ConfigurationError,
    error_from_body,
    error_from_response,
    error_from_transport,
)
from .result import ApiError, Err, ErrorKind, Ok, Result

logger = structlog.get_logger(__name__)

DOMAIN_TOKEN_PATH = "/latest/accessTokens/getUsingWindowsCredentials"
OAUTH_TOKEN_PATH = "/token"

PASSWORD_GRANT = "password"
CLIENT_CREDENTIALS_GRANT = "client_credentials"


@dataclass(frozen=True)
class Credential:
    """Host and account used to obtain tokens. Never mutated."""

    host: str
    principal: str
    secret: str

    def __repr__(self) -> str:
        return f"Credential(host={self.host!r}, principal={self.principal!r}, secret='***')"


@dataclass(frozen=True)
class DomainCredentials:
    """Windows domain credentials posted to the EMA access token endpoint."""

    path: ClassVar[str] = DOMAIN_TOKEN_PATH
    name: ClassVar[str] = "domain_credentials"

    def request_kwargs(self, credential: Credential) -> dict[str, Any]:
        return {"json": {"Upn": credential.principal, "Password": credential.secret}}


@dataclass(frozen=True)
class PasswordGrant:
    """OAuth resource-owner password grant."""

    path: ClassVar[str] = OAUTH_TOKEN_PATH
    name: ClassVar[str] = PASSWORD_GRANT

    def request_kwargs(self, credential: Credential) -> dict[str, Any]:
        return {"json": {"username": credential.principal, "password": credential.secret}}


@dataclass(frozen=True)
class ClientCredentialsGrant:
    """OAuth client credentials grant."""

    path: ClassVar[str] = OAUTH_TOKEN_PATH
    name: ClassVar[str] = CLIENT_CREDENTIALS_GRANT

    def request_kwargs(self, credential: Credential) -> dict[str, Any]:
        return {
            "json": {"client_id": credential.principal, "client_secret": credential.secret},
        }


GrantStrategy: TypeAlias = DomainCredentials | PasswordGrant | ClientCredentialsGrant

_OAUTH_GRANTS: dict[str, GrantStrategy] = {
    PASSWORD_GRANT: PasswordGrant(),
    CLIENT_CREDENTIALS_GRANT: ClientCredentialsGrant(),
}


def select_grant_strategy(
    use_domain_credentials: bool,
    grant_type: str | None = None,
) -> GrantStrategy:
    """Pick the grant strategy for an authenticate() call.

    Args:
        use_domain_credentials: Whether the EMA installation uses Windows
            domain credentials.
        grant_type: OAuth grant type ("password" or "client_credentials")
            when not in domain credentials mode.

    Returns:
        The selected grant strategy.

    Raises:
        ConfigurationError: If the combination is missing, ambiguous or unknown.
    """
    if not use_domain_credentials and not grant_type:
        msg = "Cannot authenticate without a grant type when not using domain credentials mode"
        raise ConfigurationError(msg)
    if use_domain_credentials and grant_type:
        msg = "Cannot authenticate with both domain credentials and a grant type"
        raise ConfigurationError(msg)
    if use_domain_credentials:
        return DomainCredentials()

    strategy = _OAUTH_GRANTS.get(grant_type)  # type: ignore[arg-type]
    if strategy is None:
        msg = f"Invalid grant type: {grant_type!r}"
        raise ConfigurationError(msg)
    return strategy


class Session:
    """Bearer token holder for one EMA account.

    Token refresh is single-flight: concurrent callers that hit an expired
    token wait on one lock, and only the first one talks to the token
    endpoint. The others find the token already replaced and reuse it.
    """

    def __init__(self, credential: Credential):
        self.credential = credential
        self._lock = asyncio.Lock()
        self._token: str | None = None
        self._strategy: GrantStrategy | None = None

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def strategy(self) -> GrantStrategy | None:
        return self._strategy

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    @property
    def uses_domain_credentials(self) -> bool:
        return isinstance(self._strategy, DomainCredentials)

    @property
    def authorization(self) -> str:
        """Value for the Authorization header of the current token."""
        return f"Bearer {self._token}"

    async def authenticate(
        self,
        client: httpx.AsyncClient,
        strategy: GrantStrategy,
    ) -> "Result[Session]":
        """Obtain a token with ``strategy`` and record both on success.

        Args:
            client: HTTP client whose base URL points at the EMA API root.
            strategy: Grant strategy to run.

        Returns:
            ``Ok(self)`` on success, otherwise the normalized error. A failed
            attempt leaves the previous token and strategy in place.
        """
        async with self._lock:
            return await self._obtain_token(client, strategy)

    async def reauthenticate(
        self,
        client: httpx.AsyncClient,
        stale_token: str | None,
    ) -> "Result[Session]":
        """Refresh the token with the recorded strategy.

        Args:
            client: HTTP client whose base URL points at the EMA API root.
            stale_token: Token that was rejected by the server.

        Returns:
            ``Ok(self)`` once a token other than ``stale_token`` is held,
            otherwise the error from the token endpoint.
        """
        async with self._lock:
            if self._token is not None and self._token != stale_token:
                logger.debug("Token already refreshed by a concurrent request")
                return Ok(self)
            if self._strategy is None:
                return Err(
                    ApiError(
                        code=401,
                        message="Session has no recorded grant strategy to reauthenticate with",
                        kind=ErrorKind.AUTHENTICATION,
                    ),
                )
            logger.info("Reauthenticating", grant=self._strategy.name)
            return await self._obtain_token(client, self._strategy)

    async def _obtain_token(
        self,
        client: httpx.AsyncClient,
        strategy: GrantStrategy,
    ) -> "Result[Session]":
        start_time = time.time()
        logger.debug("Requesting access token", grant=strategy.name, path=strategy.path)
        try:
            response = await client.post(strategy.path, **strategy.request_kwargs(self.credential))
        except httpx.HTTPError as exc:
            error = error_from_transport(exc)
            logger.warning("Token request failed", grant=strategy.name, error=error.message)
            return Err(error)

        if not response.is_success:
            error = error_from_response(response, ErrorKind.AUTHENTICATION)
            logger.warning(
                "Authentication rejected",
                grant=strategy.name,
                status=response.status_code,
                code=error.code,
                error=error.message,
            )
            return Err(error)

        try:
            body = response.json()
        except ValueError:
            body = None

        token = body.get("access_token") if isinstance(body, dict) else None
        if not token or not isinstance(token, str):
            error = error_from_body(
                body,
                fallback_code=401,
                fallback_message="Could not retrieve access token",
                kind=ErrorKind.AUTHENTICATION,
            )
            logger.warning("Token response without access_token", grant=strategy.name)
            return Err(error)

        self._token = token
        self._strategy = strategy
        logger.info(
            "Authenticated",
            grant=strategy.name,
            duration_seconds=round(time.time() - start_time, 3),
        )
        return Ok(self)
