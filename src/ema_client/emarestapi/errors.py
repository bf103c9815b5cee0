"""Exceptions and server error normalization for the EMA REST API.

The EMA server reports failures in several shapes: ``ExtendedCode`` /
``ExtendedMessage`` on newer endpoints, ``Code`` / ``Message`` on older
ones, OAuth ``error`` / ``error_description`` on the token endpoint, and
sometimes nothing at all. Everything is folded into :class:`ApiError`
using one precedence chain.
"""

from typing import Any

import httpx

from .result import ApiError, ErrorKind

TRANSPORT_ERROR_CODE = 500


class ConfigurationError(ValueError):
    """Raised when authenticate() is called with an invalid argument combination."""


class SessionNotAuthenticatedError(RuntimeError):
    """Raised when a request is executed before the session was authenticated."""


def _first_present(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _first_code(data: dict[str, Any], *keys: str) -> int | None:
    for key in keys:
        try:
            return int(data[key])
        except (KeyError, TypeError, ValueError):
            continue
    return None


def error_from_body(
    body: Any,
    fallback_code: int,
    fallback_message: str,
    kind: ErrorKind,
) -> ApiError:
    """Build an ApiError from a decoded error body.

    Code precedence is ``ExtendedCode`` -> ``Code`` -> ``fallback_code``,
    skipping values that are not integers.
    Message precedence is ``ExtendedMessage`` -> ``Message`` ->
    ``error_description`` -> ``error`` -> ``fallback_message``.

    Args:
        body: Decoded JSON body; anything other than a dict uses the fallbacks.
        fallback_code: Code used when the body carries none (usually the HTTP status).
        fallback_message: Message used when the body carries none.
        kind: Error category to record.

    Returns:
        Normalized error.
    """
    if not isinstance(body, dict):
        return ApiError(code=fallback_code, message=fallback_message, kind=kind)

    code = _first_code(body, "ExtendedCode", "Code")
    message = _first_present(
        body,
        "ExtendedMessage",
        "Message",
        "error_description",
        "error",
    )
    return ApiError(
        code=code if code is not None else fallback_code,
        message=str(message) if message is not None else fallback_message,
        kind=kind,
    )


def error_from_response(response: httpx.Response, kind: ErrorKind) -> ApiError:
    """Normalize a non-success HTTP response.

    Falls back to the HTTP status code and reason phrase when the body is
    empty or not JSON.
    """
    try:
        body = response.json() if response.content else None
    except ValueError:
        body = None
    return error_from_body(
        body,
        fallback_code=response.status_code,
        fallback_message=response.reason_phrase or f"HTTP {response.status_code}",
        kind=kind,
    )


def error_from_transport(exc: httpx.HTTPError) -> ApiError:
    """Map a failure that produced no server response to a generic 500."""
    return ApiError(
        code=TRANSPORT_ERROR_CODE,
        message=str(exc) or exc.__class__.__name__,
        kind=ErrorKind.TRANSPORT,
    )
