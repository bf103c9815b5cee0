"""High level client for managing EMA endpoints.

Builds resource paths, query filters and request bodies, and hands them to
the :class:`~ema_client.emarestapi.RequestExecutor`. Successful payloads are
validated into the Pydantic models of :mod:`ema_client.emarestapi.types`.
"""

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel

from .emarestapi import (
    Credential,
    Err,
    Ok,
    RequestExecutor,
    Result,
    Session,
    select_grant_strategy,
)
from .emarestapi.types import (
    AdminCredential,
    AmtProvisionRequest,
    AmtSetupResponse,
    EmaTenant,
    EmaUpdateSysRoleOptions,
    EmaUser,
    EmaUserCreateOptions,
    EmaUserGroup,
    EmaUserGroupMembership,
    Endpoint,
    EndpointHardware,
    GrantType,
    NoopResponse,
    SleepMode,
)

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_TIMEOUT = 30.0

OOB_PATH = "/latest/endpointOOBOperations/Single"
SLEEP_MODES = ("light", "deep")


def _one(model: type[M]) -> Callable[[Any], M]:
    return model.model_validate


def _many(model: type[M]) -> Callable[[Any], list[M]]:
    def validate(payload: Any) -> list[M]:
        return [model.model_validate(item) for item in payload or []]

    return validate


def _removed(payload: Any) -> bool:
    # EMA answers DELETE with either an empty body or a JSON boolean.
    return True if payload is None else bool(payload)


class EndpointController:
    """Client for the EMA endpoint, AMT, tenant and user APIs.

    The account should hold the "Tenant Administrator" role to be able to
    run every operation offered here.

    Example::

        async with EndpointController("https://ema.example.com", user, password) as ema:
            auth = await ema.authenticate(use_domain_credentials=True)
            if is_error(auth):
                raise RuntimeError(auth.message)
            powered_on = await ema.get_endpoints(where=lambda e: e.power_state == 0)
    """

    def __init__(
        self,
        host_url: str,
        username: str,
        password: str,
        *,
        verify_tls: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the controller.

        Args:
            host_url: Host URL of the EMA installation (e.g. "https://ema.example.com").
            username: Account (UPN or OAuth client id) to authenticate with.
            password: Password or OAuth client secret.
            verify_tls: Whether to validate the server's TLS certificate.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, mainly for tests.

        Raises:
            ValueError: If host_url is empty or timeout is not positive.
        """
        if not host_url:
            msg = "host_url cannot be empty"
            raise ValueError(msg)
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self.base_url = f"{host_url.rstrip('/')}/api"
        self.session = Session(Credential(host=host_url, principal=username, secret=password))
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=timeout,
            verify=verify_tls,
            transport=transport,
        )
        self.executor = RequestExecutor(self.session, self.client)

    async def __aenter__(self):
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager and close the HTTP client."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if open."""
        if not self.client.is_closed:
            await self.client.aclose()

    async def authenticate(
        self,
        use_domain_credentials: bool,
        grant_type: GrantType | None = None,
    ) -> "Result[EndpointController]":
        """Retrieve an access token from the EMA server.

        Ask your EMA administrator whether the installation uses Windows
        domain credentials or OAuth grants.

        Args:
            use_domain_credentials: Authenticate with Windows domain credentials.
            grant_type: OAuth grant type when not using domain credentials.

        Returns:
            ``Ok(self)`` for chaining, or the authentication error.

        Raises:
            ConfigurationError: If the argument combination is invalid.
        """
        strategy = select_grant_strategy(use_domain_credentials, grant_type)
        result = await self.session.authenticate(self.client, strategy)
        if isinstance(result, Err):
            return result
        return Ok(self)

    # Endpoints

    async def get_endpoints(
        self,
        group_id: str | None = None,
        where: Callable[[Endpoint], bool] | None = None,
    ) -> Result[list[Endpoint]]:
        """Return endpoints, optionally narrowed by group and a client-side predicate.

        Args:
            group_id: Only return endpoints of this endpoint group.
            where: Predicate applied locally to the fetched endpoints; it is
                never sent to the server.
        """

        def narrow(payload: Any) -> list[Endpoint]:
            endpoints = _many(Endpoint)(payload)
            return [e for e in endpoints if where(e)] if where else endpoints

        return await self.executor.execute(
            "GET",
            "/latest/endpoints",
            postprocess=narrow,
            params={"endpointGroupId": group_id},
        )

    async def get_endpoint_by_name(
        self,
        name: str | None = None,
        contains: str | None = None,
        starts_with: str | None = None,
    ) -> Result[list[Endpoint]]:
        """Return endpoints matching a computer name.

        Useful when computer names carry centralized tags such as service
        tags or NetBIOS names. At least one filter must be given.

        Raises:
            ValueError: If no filter is given.
        """
        if not (name or contains or starts_with):
            msg = "One of name, contains or starts_with is required"
            raise ValueError(msg)
        filters = {
            "computerName": name,
            "computerNameContains": contains,
            "computerNameStartsWith": starts_with,
        }
        return await self.executor.execute(
            "GET", "/latest/endpoints", postprocess=_many(Endpoint), params=filters
        )

    async def get_endpoint_by_id(self, endpoint_id: str) -> Result[Endpoint]:
        """Return the endpoint with the given internal EMA ID.

        The ID is assigned by EMA, not taken from the machine or domain.
        An unknown ID yields the server's not-found error.
        """
        return await self.executor.execute(
            "GET", f"/latest/endpoints/{endpoint_id}", postprocess=_one(Endpoint)
        )

    async def get_endpoint_hardware(self, endpoint_id: str) -> Result[EndpointHardware]:
        """Return the AMT-reported hardware inventory of an endpoint."""
        return await self.executor.execute(
            "GET",
            f"/latest/endpoints/{endpoint_id}/HardwareInfoFromAmt",
            postprocess=_one(EndpointHardware),
        )

    async def remove_endpoint(self, endpoint_id: str) -> Result[bool]:
        return await self.executor.execute(
            "DELETE", f"/latest/endpoints/{endpoint_id}", postprocess=_removed
        )

    # Out-of-band operations

    async def _oob(self, operation: str, endpoint_id: str) -> Result[NoopResponse]:
        return await self.executor.execute(
            "POST",
            f"{OOB_PATH}/{operation}",
            body={"EndpointId": endpoint_id},
            postprocess=_one(NoopResponse),
        )

    async def power_on(self, endpoint_id: str) -> Result[NoopResponse]:
        return await self._oob("PowerOn", endpoint_id)

    async def power_off(self, endpoint_id: str, force: bool = False) -> Result[NoopResponse]:
        """Power off an endpoint.

        Args:
            endpoint_id: Internal EMA ID of the endpoint.
            force: Hard power off instead of a graceful shutdown (not
                supported on every platform).
        """
        return await self._oob(f"PowerOff/{'Hard' if force else 'Soft'}", endpoint_id)

    async def hibernate(self, endpoint_id: str) -> Result[NoopResponse]:
        return await self._oob("Hibernate", endpoint_id)

    async def sleep(self, endpoint_id: str, mode: SleepMode) -> Result[NoopResponse]:
        """Put an endpoint to sleep.

        Raises:
            ValueError: If mode is not "light" or "deep".
        """
        if mode not in SLEEP_MODES:
            msg = f"Invalid sleep mode: {mode!r}"
            raise ValueError(msg)
        return await self._oob(f"Sleep/{mode}", endpoint_id)

    async def boot_to_bios(self, endpoint_id: str) -> Result[NoopResponse]:
        return await self._oob("BootToBios", endpoint_id)

    # AMT setup

    async def get_amt_profile(self, endpoint_id: str) -> Result[AmtSetupResponse]:
        """Return the AMT setup of an endpoint.

        Shows whether a machine is provisioned for AMT, or in the process
        of being provisioned.
        """
        return await self.executor.execute(
            "GET",
            f"/latest/amtSetups/endpoints/{endpoint_id}",
            postprocess=_one(AmtSetupResponse),
        )

    async def provision_amt(
        self,
        endpoint_id: str,
        mebx_password: str,
        intranet_suffix: str,
        use_cira: bool = True,
        use_ema_account: bool = True,
        use_tls: bool = True,
    ) -> Result[AmtSetupResponse]:
        """Provision an endpoint for CIRA through the Intel AMT service.

        Args:
            endpoint_id: Internal EMA ID of the endpoint.
            mebx_password: Password to set for the MEBx BIOS screen.
            intranet_suffix: Intranet DNS suffix used for provisioning.
            use_cira: Whether to use CIRA.
            use_ema_account: Whether to provision with the EMA account.
            use_tls: Whether to use TLS.
        """
        request = AmtProvisionRequest(
            endpoint_id=endpoint_id,
            admin_credential=AdminCredential(password=mebx_password),
            cira_intranet_suffix=intranet_suffix,
            uses_cira=use_cira,
            uses_ema_account=use_ema_account,
            uses_tls=use_tls,
        )
        return await self.executor.execute(
            "POST",
            "/latest/amtSetups/endpoints/provision",
            body=request.to_wire(),
            postprocess=_one(AmtSetupResponse),
        )

    # Tenants

    async def get_ema_tenants(self) -> Result[list[EmaTenant]]:
        return await self.executor.execute("GET", "/latest/tenants", postprocess=_many(EmaTenant))

    async def get_ema_tenant(self, tenant_id: str) -> Result[EmaTenant]:
        return await self.executor.execute(
            "GET", f"/latest/tenants/{tenant_id}", postprocess=_one(EmaTenant)
        )

    # Users

    async def get_ema_users(self) -> Result[list[EmaUser]]:
        return await self.executor.execute("GET", "/latest/users", postprocess=_many(EmaUser))

    async def get_ema_user(self, user_id: str) -> Result[EmaUser]:
        return await self.executor.execute(
            "GET", f"/latest/users/{user_id}", postprocess=_one(EmaUser)
        )

    async def get_ema_user_by_name(self, username: str) -> Result[EmaUser]:
        return await self.executor.execute(
            "GET",
            "/latest/users/getUserByName",
            postprocess=_one(EmaUser),
            params={"username": username},
        )

    async def create_user(self, options: EmaUserCreateOptions) -> Result[EmaUser]:
        return await self.executor.execute(
            "POST", "/latest/users", body=options.to_wire(), postprocess=_one(EmaUser)
        )

    async def update_user_role(self, options: EmaUpdateSysRoleOptions) -> Result[EmaUser]:
        return await self.executor.execute(
            "PUT",
            f"/latest/users/{options.user_id}",
            body=options.to_wire(),
            postprocess=_one(EmaUser),
        )

    # User groups

    async def get_ema_user_groups(self) -> Result[list[EmaUserGroup]]:
        return await self.executor.execute(
            "GET", "/latest/userGroups", postprocess=_many(EmaUserGroup)
        )

    async def get_ema_user_group(self, group_id: int) -> Result[EmaUserGroup]:
        return await self.executor.execute(
            "GET", f"/latest/userGroups/{group_id}", postprocess=_one(EmaUserGroup)
        )

    async def get_user_group_membership(
        self, group_id: int
    ) -> Result[list[EmaUserGroupMembership]]:
        return await self.executor.execute(
            "GET",
            f"/latest/userGroupMemberships/{group_id}",
            postprocess=_many(EmaUserGroupMembership),
        )

    async def _change_membership(
        self, group_id: int, action: str, user_names: Iterable[str]
    ) -> Result[list[EmaUserGroupMembership]]:
        members = [EmaUserGroupMembership(user_name=name).to_wire() for name in user_names]
        logger.debug(
            "Changing group membership", group_id=group_id, action=action, count=len(members)
        )
        return await self.executor.execute(
            "POST",
            f"/latest/userGroupMemberships/{group_id}/{action}",
            body=members,
            postprocess=_many(EmaUserGroupMembership),
        )

    async def add_user_to_group(
        self, group_id: int, *user_names: str
    ) -> Result[list[EmaUserGroupMembership]]:
        return await self._change_membership(group_id, "addMembers", user_names)

    async def remove_user_from_group(
        self, group_id: int, *user_names: str
    ) -> Result[list[EmaUserGroupMembership]]:
        return await self._change_membership(group_id, "removeMembers", user_names)
