"""Authenticated request execution for the EMA REST API.

Every API call goes through :meth:`RequestExecutor.execute`, which attaches
the session's bearer token, maps every failure into an :class:`Err`, and
recovers from an expired token by reauthenticating and replaying the
request once.
"""

import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import httpx
import pydantic
import structlog

from .errors import (
    TRANSPORT_ERROR_CODE,
    SessionNotAuthenticatedError,
    error_from_body,
    error_from_response,
    error_from_transport,
)
from .result import ApiError, Err, ErrorKind, Ok, Result
from .session import Session
from .types import HttpMethod

logger = structlog.get_logger(__name__)

T = TypeVar("T")

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})


def query_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    """Keep the non-empty entries of ``params`` for the query string.

    ``None``, empty strings and ``False`` are dropped. Encoding is left to
    httpx, which joins the survivors with ``&``.
    """
    return {key: value for key, value in (params or {}).items() if value}


def _is_soft_error(payload: Any) -> bool:
    return isinstance(payload, dict) and bool(payload.get("Message"))


class RequestExecutor:
    """Sends authenticated requests and normalizes their outcome."""

    def __init__(self, session: Session, client: httpx.AsyncClient):
        """Initialize the executor.

        Args:
            session: Session holding the bearer token and grant strategy.
            client: HTTP client whose base URL points at the EMA API root.
        """
        self.session = session
        self.client = client

    async def execute(
        self,
        method: HttpMethod,
        path: str,
        body: Any = None,
        postprocess: Callable[[Any], T] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Result[T]:
        """Perform one logical API call.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH or DELETE).
            path: Path relative to the API root.
            body: Optional JSON body.
            postprocess: Optional transform applied to a successful payload,
                e.g. model validation or client-side filtering.
            params: Optional query filters; empty values are left out.

        Returns:
            ``Ok`` with the (transformed) payload, or ``Err`` with the
            normalized error.

        Raises:
            ValueError: If ``method`` is not a supported HTTP method.
            SessionNotAuthenticatedError: If the session holds no token yet.
        """
        verb = method.upper()
        if verb not in HTTP_METHODS:
            msg = f"Unsupported HTTP method: {method}"
            raise ValueError(msg)
        if not self.session.is_authenticated:
            msg = "Session is not authenticated; call authenticate() first"
            raise SessionNotAuthenticatedError(msg)

        query = query_params(params)
        stale_token = self.session.token
        try:
            response = await self._send(verb, path, body, query)
        except httpx.HTTPError as exc:
            return self._transport_failure(verb, path, exc)

        if response.status_code == httpx.codes.UNAUTHORIZED:
            logger.info("Access token rejected", method=verb, path=path)
            auth = await self.session.reauthenticate(self.client, stale_token)
            if isinstance(auth, Err):
                logger.warning(
                    "Reauthentication failed",
                    method=verb,
                    path=path,
                    code=auth.code,
                    error=auth.message,
                )
                return auth

            # A second 401 is mapped like any other error status.
            try:
                response = await self._send(verb, path, body, query)
            except httpx.HTTPError as exc:
                return self._transport_failure(verb, path, exc)

        return self._handle_response(verb, path, response, postprocess)

    async def _send(
        self, method: str, path: str, body: Any, query: dict[str, Any]
    ) -> httpx.Response:
        start_time = time.time()
        logger.debug("Making API request", method=method, path=path, params=sorted(query))
        response = await self.client.request(
            method,
            path,
            json=body,
            params=query or None,
            headers={"Authorization": self.session.authorization},
        )
        logger.debug(
            "API request completed",
            method=method,
            path=path,
            status=response.status_code,
            duration_seconds=round(time.time() - start_time, 3),
        )
        return response

    def _transport_failure(self, method: str, path: str, exc: httpx.HTTPError) -> Err:
        error = error_from_transport(exc)
        logger.warning("API request failed", method=method, path=path, error=error.message)
        return Err(error)

    def _handle_response(
        self,
        method: str,
        path: str,
        response: httpx.Response,
        postprocess: Callable[[Any], T] | None,
    ) -> Result[T]:
        if not response.is_success:
            error = error_from_response(response, ErrorKind.APPLICATION)
            logger.warning(
                "API error response",
                method=method,
                path=path,
                status=response.status_code,
                code=error.code,
                error=error.message,
            )
            return Err(error)

        try:
            payload = response.json() if response.content else None
        except ValueError as exc:
            logger.warning("Undecodable API response", method=method, path=path)
            return Err(
                ApiError(
                    code=TRANSPORT_ERROR_CODE,
                    message=f"Invalid JSON in response: {exc}",
                    kind=ErrorKind.PROTOCOL,
                ),
            )

        if _is_soft_error(payload):
            error = error_from_body(
                payload,
                fallback_code=TRANSPORT_ERROR_CODE,
                fallback_message=str(payload["Message"]),
                kind=ErrorKind.SOFT,
            )
            logger.warning(
                "API error in successful response",
                method=method,
                path=path,
                code=error.code,
                error=error.message,
            )
            return Err(error)

        if postprocess is None:
            return Ok(payload)

        try:
            return Ok(postprocess(payload))
        except pydantic.ValidationError as exc:
            logger.warning(
                "API response failed validation",
                method=method,
                path=path,
                errors=exc.error_count(),
            )
            return Err(
                ApiError(
                    code=TRANSPORT_ERROR_CODE,
                    message=str(exc),
                    kind=ErrorKind.PROTOCOL,
                ),
            )
