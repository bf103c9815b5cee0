"""EMA endpoint-management client.

Async client for the Intel EMA REST API: authenticates with domain
credentials or OAuth grants, manages endpoints, their hardware inventory,
AMT setups, tenants and users, and runs out-of-band power operations.
"""

from .controller import EndpointController
from .emarestapi import ApiError, Err, ErrorKind, Ok, is_error, unwrap

__version__ = "0.1.0"

__all__ = [
    "ApiError",
    "EndpointController",
    "Err",
    "ErrorKind",
    "Ok",
    "is_error",
    "unwrap",
]
