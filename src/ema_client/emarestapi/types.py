"""Resource types for the EMA REST API.

Pydantic models representing payloads sent to and returned by the EMA
API. Wire names are PascalCase; attributes are snake_case and both are
accepted on input. Fields default so that partial records from older
server versions still validate; a null in a known field also falls back to
the default, and fields the models do not declare are kept as extras.
"""

from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_pascal

HttpMethod: TypeAlias = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
GrantType: TypeAlias = Literal["password", "client_credentials"]
SleepMode: TypeAlias = Literal["light", "deep"]


class EmaModel(BaseModel):
    """Base for EMA payloads with PascalCase wire aliases."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="allow")

    @model_validator(mode="before")
    @classmethod
    def _drop_null_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = set(cls.model_fields)
        known.update(field.alias for field in cls.model_fields.values() if field.alias)
        # EMA sends null for unset fields; let those take the field default.
        return {
            key: value for key, value in data.items() if value is not None or key not in known
        }

    def to_wire(self) -> dict:
        """Serialize using the wire (PascalCase) field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Endpoint(EmaModel):
    """A managed machine known to EMA."""

    # Identification
    endpoint_id: str = ""
    endpoint_group_id: str = ""
    endpoint_group_name: str = ""
    computer_name: str = ""
    node_identity: int = 0

    # Agent and firmware
    last_update: str = ""
    me_version: str = Field("", alias="MEVersion")
    platform_type: int = 0
    agent_version: int = 0
    agent_identifier: int = 0
    mefw_build_number: int = Field(0, alias="MEFWBuildNumber")

    # Power and connectivity
    power_state: int = 0
    power_state_update: str = ""
    is_connected: bool = False
    is_cira_connected: bool = False

    # AMT
    is_amt_version_valid: bool = False
    amt_control_mode: int = 0
    amt_provisioning_state: int = 0
    amt_provisioning_mode: int = 0


class AmtPlatformInfo(EmaModel):
    computer_model: str = ""
    manufacturer_name: str = ""
    serial_number: str = ""
    version_number: str = ""
    system_id: str = ""


class AmtBaseBoardInfo(EmaModel):
    manufacturer_name: str = ""
    product_name: str = ""
    version_number: str = ""
    serial_number: str = ""
    asset_tag: str = ""
    is_replaceable: bool = False


class AmtBiosInfo(EmaModel):
    manufacturer_name: str = ""
    version_number: str = ""
    release_date: str = ""


class ProcessorInfo(EmaModel):
    manufacturer_name: str = ""
    version: str = ""
    max_clock_speed_in_ghz: float = Field(0.0, alias="MaxClockSpeedInGHz")
    status: str = ""


class MemoryModuleInfo(EmaModel):
    bank_label: str = ""
    manufacturer_name: str = ""
    serial_number: str = ""
    size: int = 0
    form_factor: str = ""
    memory_type: str = ""
    asset_tag: str = ""
    part_number: str = ""


class StorageMediaInfo(EmaModel):
    model: str = ""
    serial_number: str = ""
    max_media_size: int = 0


class EndpointHardware(EmaModel):
    """Hardware inventory of an endpoint as reported by AMT."""

    amt_platform_info: AmtPlatformInfo = Field(default_factory=AmtPlatformInfo)
    amt_base_board_info: AmtBaseBoardInfo = Field(default_factory=AmtBaseBoardInfo)
    amt_bios_info: AmtBiosInfo = Field(default_factory=AmtBiosInfo)
    amt_processor_info: list[ProcessorInfo] = Field(default_factory=list)
    amt_memory_module_info: list[MemoryModuleInfo] = Field(default_factory=list)
    amt_storage_media_info: list[StorageMediaInfo] = Field(default_factory=list)


class NoopResponse(EmaModel):
    """Acknowledgement of an out-of-band operation."""

    endpoint_id: str = ""


class AmtSetupProfile(EmaModel):
    uses_tls: bool = Field(False, alias="UsesTLS")
    uses_cira: bool = Field(False, alias="UsesCIRA")
    uses_ema_account: bool = False
    cira_intranet_suffix: str = ""
    admin_password: str = ""
    mebx_password_state: str = ""
    provision_certificate_hash: str = ""
    provisioning_dns_suffix: str = ""
    pps: str = Field("", alias="PPS")


class AmtSetupComponentStatus(EmaModel):
    name: str = ""
    status: bool = False
    details: str = ""


class AmtSetupExtraInfo(EmaModel):
    last_updated: str = ""
    heci_driver: AmtSetupComponentStatus | None = Field(None, alias="HECIDriver")
    corporate_dns: AmtSetupComponentStatus | None = Field(None, alias="CorporateDNS")
    corporate_vpn: AmtSetupComponentStatus | None = Field(None, alias="CorporateVPN")
    intel_nic: AmtSetupComponentStatus | None = None


class AmtSetupResponse(EmaModel):
    """AMT setup (provisioning) record of an endpoint."""

    amt_setup_id: str = ""
    type: str = ""
    pid: str = Field("", alias="PID")
    creation: str = ""
    sets_random_mebx_password: bool = False
    sets_random_admin_password: bool = False
    profile: AmtSetupProfile | None = None
    state: str = ""
    state_string: str = ""
    extra_amt_info: AmtSetupExtraInfo | None = None
    amt_profile_id: int = 0


class AdminCredential(EmaModel):
    password: str


class AmtProvisionRequest(EmaModel):
    """Body of an AMT provisioning request."""

    endpoint_id: str
    admin_credential: AdminCredential
    cira_intranet_suffix: str
    sets_random_mebx_password: bool = False
    uses_cira: bool = True
    uses_ema_account: bool = True
    uses_tls: bool = True


class EmaTenant(EmaModel):
    tenant_id: str = ""
    name: str = ""
    description: str = ""
    created_by: str = ""
    created_on: str = ""
    modified_by: str = ""
    modified_on: str = ""


class EmaUser(EmaModel):
    user_id: str = ""
    username: str = ""
    enabled: bool = False
    tenant_id: str = ""
    description: str = ""
    role_id: int = 0
    sys_role: str = ""


class EmaUserCreateOptions(EmaModel):
    """Body of a user creation request."""

    username: str
    password: str | None = None
    tenant_id: str | None = None
    description: str | None = None
    enabled: bool = True
    sys_role: str | None = None


class EmaUpdateSysRoleOptions(EmaModel):
    """Body of a system role update for an existing user."""

    user_id: str
    sys_role: str


class EmaUserGroup(EmaModel):
    user_group_id: int = 0
    name: str = ""
    tenant_id: str = ""
    description: str = ""
    created_on: str = ""
    created_by: str = ""
    modified_on: str = ""
    modified_by: str = ""
    role_id: int = 0
    access_rights_id: str = ""
    access_rights: str = ""


class EmaUserGroupMembership(EmaModel):
    user_name: str = ""
