"""Configuration and logging setup for the EMA client."""

import json
import logging
import os
import pathlib
import sys
from typing import Literal, TypeAlias

import pydantic
import structlog

from . import controller
from .emarestapi import Err, Result
from .emarestapi.types import GrantType

CONFIG_ENV_VAR = "EMA_CLIENT_CONFIG_PATH"
logger = structlog.get_logger(__name__)

LogFormat: TypeAlias = Literal["logfmt", "json"]


class ClientConfig(pydantic.BaseModel):
    """Configuration for connecting to an EMA server."""

    host: str = pydantic.Field(description="Host URL of the EMA installation", min_length=1)
    username: str = pydantic.Field(description="Account UPN or OAuth client id")
    password: pydantic.SecretStr = pydantic.Field(
        description="Account password or OAuth client secret",
    )
    use_domain_credentials: bool = pydantic.Field(
        True,
        description="Authenticate with Windows domain credentials",
    )
    grant_type: GrantType | None = pydantic.Field(
        None,
        description="OAuth grant type when not using domain credentials",
    )
    verify_tls: bool = pydantic.Field(
        True,
        description="Validate the server's TLS certificate",
    )
    timeout: float = pydantic.Field(
        controller.DEFAULT_TIMEOUT,
        description="Request timeout in seconds",
        gt=0,
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")
    log_format: LogFormat = pydantic.Field("logfmt", description="Log line format")

    @pydantic.field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        if not isinstance(logging.getLevelName(value.upper()), int):
            msg = f"Unknown log level: {value!r}"
            raise ValueError(msg)
        return value.upper()

    @pydantic.model_validator(mode="after")
    def _check_grant(self) -> "ClientConfig":
        if self.use_domain_credentials and self.grant_type:
            msg = "grant_type cannot be set when use_domain_credentials is true"
            raise ValueError(msg)
        if not self.use_domain_credentials and not self.grant_type:
            msg = "grant_type is required when use_domain_credentials is false"
            raise ValueError(msg)
        return self


def _add_client_name(_logger, _method_name, event_dict):
    event_dict.setdefault("client", "ema")
    return event_dict


def configure_logging(log_level_name: str, log_format: LogFormat = "logfmt") -> None:
    """Configure structlog to write the client's events to stderr.

    Every event carries ``client=ema`` so that the client's lines can be
    told apart in the log stream of the application embedding it.

    Args:
        log_level_name: Standard logging level name, e.g. "INFO".
        log_format: "logfmt" for key=value lines, "json" for one JSON
            object per line.

    Raises:
        ValueError: If the level name is unknown.
    """
    log_level = logging.getLevelName(log_level_name.upper())
    if not isinstance(log_level, int):
        msg = f"Unknown log level: {log_level_name!r}"
        raise ValueError(msg)

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.processors.LogfmtRenderer(
            key_order=("timestamp", "level", "client", "msg"),
        )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _add_client_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str | None = None) -> ClientConfig:
    """Load configuration from a JSON file.

    Args:
        config_path: Path to the JSON file; defaults to the path named by
            the EMA_CLIENT_CONFIG_PATH environment variable.

    Raises:
        FileNotFoundError: If no path is given or the file does not exist.
        pydantic.ValidationError: If the file content is invalid.
    """
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR)
    if not resolved_path:
        msg = f"No configuration path given and {CONFIG_ENV_VAR} is not set"
        raise FileNotFoundError(msg)

    path = pathlib.Path(resolved_path)
    if not path.exists():
        msg = f"Configuration file not found: {resolved_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return ClientConfig(**data)


def load_config_from_env() -> ClientConfig:
    """Build configuration from EMA_* environment variables.

    Reads EMA_HOST, EMA_USER and EMA_PASSWORD, plus the optional
    EMA_GRANT_TYPE, EMA_VERIFY_TLS, EMA_LOG_LEVEL and EMA_LOG_FORMAT. Setting
    EMA_GRANT_TYPE switches from domain credentials to OAuth.
    """
    grant_type = os.environ.get("EMA_GRANT_TYPE") or None
    data = {
        "host": os.environ.get("EMA_HOST", ""),
        "username": os.environ.get("EMA_USER", ""),
        "password": os.environ.get("EMA_PASSWORD", ""),
        "use_domain_credentials": grant_type is None,
        "grant_type": grant_type,
        "verify_tls": os.environ.get("EMA_VERIFY_TLS", "true"),
        "log_level": os.environ.get("EMA_LOG_LEVEL", "INFO"),
        "log_format": os.environ.get("EMA_LOG_FORMAT", "logfmt"),
    }
    return ClientConfig(**data)


def create_controller(config: ClientConfig) -> controller.EndpointController:
    """Construct an unauthenticated controller from validated config."""
    ema = controller.EndpointController(
        config.host,
        config.username,
        config.password.get_secret_value(),
        verify_tls=config.verify_tls,
        timeout=config.timeout,
    )
    logger.info("Created EMA controller", base_url=ema.base_url, verify_tls=config.verify_tls)
    return ema


async def connect(config: ClientConfig) -> "Result[controller.EndpointController]":
    """Create a controller and authenticate it with the configured grant.

    The controller is closed again when authentication fails.
    """
    configure_logging(config.log_level, config.log_format)
    ema = create_controller(config)
    result = await ema.authenticate(config.use_domain_credentials, config.grant_type)
    if isinstance(result, Err):
        await ema.aclose()
    return result
