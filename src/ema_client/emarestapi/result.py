"""Result types returned by every EMA REST API operation.

Expected failures (rejected credentials, server errors, unreachable hosts)
are returned as values rather than raised, so callers branch on the
``ok`` discriminator instead of catching exceptions.
"""

import enum
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeAlias, TypeGuard, TypeVar

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    """Category of a normalized API error."""

    AUTHENTICATION = "authentication"
    APPLICATION = "application"
    TRANSPORT = "transport"
    SOFT = "soft"
    PROTOCOL = "protocol"


@dataclass(frozen=True)
class ApiError:
    """Normalized error reported by the server or by the transport."""

    code: int
    message: str
    kind: ErrorKind = ErrorKind.APPLICATION


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying the (post-processed) payload."""

    value: T

    @property
    def ok(self) -> Literal[True]:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying a normalized :class:`ApiError`."""

    error: ApiError

    @property
    def ok(self) -> Literal[False]:
        return False

    @property
    def code(self) -> int:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message


Result: TypeAlias = Ok[T] | Err


class ApiRequestError(Exception):
    """Raised by :func:`unwrap` when a result holds an error."""

    def __init__(self, error: ApiError):
        super().__init__(f"[{error.code}] {error.message}")
        self.error = error


def is_error(result: Any) -> TypeGuard[Err]:
    """Return True if ``result`` is the error variant."""
    return isinstance(result, Err)


def unwrap(result: Result[T]) -> T:
    """Return the success payload or raise :class:`ApiRequestError`.

    Args:
        result: Outcome of an API operation.

    Returns:
        The payload carried by the success variant.

    Raises:
        ApiRequestError: If ``result`` is the error variant.
    """
    if isinstance(result, Err):
        raise ApiRequestError(result.error)
    return result.value
