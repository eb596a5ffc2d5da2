"""
Gateway configuration
Read once from the environment at startup
"""

import logging
import os
from typing import Any, Dict, FrozenSet, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, field_validator

from .auth.permissions import (
    DEFAULT_ACCESS_LEVEL,
    DEFAULT_PERMISSIONS,
    AccessLevel,
    Permission,
    PermissionGrant,
    parse_permissions,
)

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}

# environment variable -> field name
ENV_FIELDS = {
    "FRESHDESK_DOMAIN": "domain",
    "FRESHDESK_API_KEY": "api_key",
    "FRESHDESK_RATE_LIMIT": "rate_limit_per_minute",
    "FRESHDESK_TIMEOUT": "timeout_ms",
    "FRESHDESK_MAX_RETRIES": "max_retries",
    "FRESHDESK_RETRY_BASE_DELAY": "retry_base_delay_ms",
    "FRESHDESK_RETRY_MAX_DELAY": "retry_max_delay_ms",
    "FRESHDESK_ACCESS_LEVEL": "access_level",
    "MCP_TRANSPORT": "transport",
    "MCP_HOST": "host",
    "MCP_PORT": "port",
    "LOG_LEVEL": "log_level",
}

REQUIRED_ENV = ("FRESHDESK_DOMAIN", "FRESHDESK_API_KEY")


def _env_flag(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in _TRUE_VALUES


class GatewayConfig(BaseModel):
    """Configuration for the gateway server"""
    model_config = ConfigDict(frozen=True)

    domain: str
    api_key: str = Field(repr=False)

    rate_limit_per_minute: PositiveInt = 50
    timeout_ms: PositiveInt = 30000
    max_retries: NonNegativeInt = 3
    retry_base_delay_ms: PositiveInt = 1000
    retry_max_delay_ms: PositiveInt = 30000

    access_level: AccessLevel = DEFAULT_ACCESS_LEVEL
    permissions: FrozenSet[Permission] = DEFAULT_PERMISSIONS

    skip_connection_test: bool = False
    skip_permission_discovery: bool = False

    transport: Literal["stdio", "sse", "streamable-http"] = "stdio"
    host: str = "0.0.0.0"
    port: PositiveInt = 9000
    log_level: str = "INFO"

    @field_validator("domain", "api_key")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("access_level", mode="before")
    @classmethod
    def _parse_access_level(cls, value: Any) -> AccessLevel:
        return AccessLevel.parse(value)

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.strip().upper()

    @staticmethod
    def validate_env(env: Mapping[str, str]) -> None:
        """Validate required environment variables"""
        missing = [name for name in REQUIRED_ENV if not (env.get(name) or "").strip()]
        if missing:
            error_msg = f"❌ Missing required environment variables: {', '.join(missing)}"
            logger.error(error_msg)
            raise ValueError(error_msg)
        logger.info("✅ All required environment variables are present")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "GatewayConfig":
        """
        Build the configuration from environment variables

        Raises:
            ValueError: a required variable is missing or a value is invalid
        """
        env = os.environ if env is None else env
        cls.validate_env(env)

        values: Dict[str, Any] = {}
        for var_name, field_name in ENV_FIELDS.items():
            raw = env.get(var_name)
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()

        raw_permissions = env.get("FRESHDESK_PERMISSIONS")
        if raw_permissions is not None and raw_permissions.strip():
            values["permissions"] = parse_permissions(raw_permissions.split(","))

        values["skip_connection_test"] = _env_flag(env.get("SKIP_CONNECTION_TEST"))
        values["skip_permission_discovery"] = _env_flag(env.get("SKIP_PERMISSION_DISCOVERY"))

        return cls(**values)

    def fallback_grant(self) -> PermissionGrant:
        """Grant used when permission discovery is skipped or fails"""
        return PermissionGrant(access_level=self.access_level, permissions=self.permissions)

    def safe_dict(self) -> Dict[str, Any]:
        """Configuration without the credential, for logs and tool output"""
        data = self.model_dump(exclude={"api_key"})
        data["access_level"] = self.access_level.name.lower()
        data["permissions"] = sorted(p.value for p in self.permissions)
        return data
