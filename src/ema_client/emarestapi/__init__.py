"""EMA REST API core package.

Provides the authenticated request executor for the Intel EMA REST API:
a session that owns the bearer token and grant strategy, an executor that
wraps every call with a uniform result contract and one-shot
reauthentication, and the Pydantic models of the API's resources.

Exports:
    Session, Credential: Token holder and the account it authenticates.
    DomainCredentials, PasswordGrant, ClientCredentialsGrant: Grant strategies.
    RequestExecutor: Authenticated request execution with error normalization.
    Ok, Err, ApiError, ErrorKind: Result types.
    types: Module containing Pydantic models for API payloads.
"""

from . import types
from .errors import ConfigurationError, SessionNotAuthenticatedError
from .executor import RequestExecutor, query_params
from .result import (
    ApiError,
    ApiRequestError,
    Err,
    ErrorKind,
    Ok,
    Result,
    is_error,
    unwrap,
)
from .session import (
    ClientCredentialsGrant,
    Credential,
    DomainCredentials,
    GrantStrategy,
    PasswordGrant,
    Session,
    select_grant_strategy,
)

__all__ = [
    "ApiError",
    "ApiRequestError",
    "ClientCredentialsGrant",
    "ConfigurationError",
    "Credential",
    "DomainCredentials",
    "Err",
    "ErrorKind",
    "GrantStrategy",
    "Ok",
    "PasswordGrant",
    "RequestExecutor",
    "Result",
    "Session",
    "SessionNotAuthenticatedError",
    "query_params",
    "is_error",
    "select_grant_strategy",
    "types",
    "unwrap",
]
