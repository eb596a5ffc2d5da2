#!/usr/bin/env python3
"""
Freshdesk Gateway MCP Server
Exposes Freshdesk helpdesk operations as MCP tools, gated by the
permissions of the configured API key
"""

import asyncio
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastmcp import FastMCP

from . import __version__
from .adapters.errors import ErrorKind, FreshdeskError
from .adapters.freshdesk_adapter import TOOL_CATEGORIES, FreshdeskAdapter
from .auth.discovery import PermissionDiscovery
from .auth.permissions import AccessLevel, PermissionGrant, requires
from .config import GatewayConfig
from .registry import RegisteredTool, ToolRegistry

logger = logging.getLogger(__name__)

SERVER_NAME = "Freshdesk-Gateway"
TOOL_PREFIX = "freshdesk_"


def configure_logging(level: str = "INFO"):
    """Configure logging to stderr so the stdio transport stays clean"""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


class Gateway:
    """
    Wires one configuration to one adapter, one registry and the current
    permission grant.
    """

    def __init__(
        self,
        config: GatewayConfig,
        adapter: Optional[FreshdeskAdapter] = None,
        registry: Optional[ToolRegistry] = None,
    ):
        self.config = config
        self.adapter = adapter or FreshdeskAdapter.from_config(config)
        self.registry = registry or ToolRegistry()
        self.discovery = PermissionDiscovery(self.adapter)

        self.grant: PermissionGrant = config.fallback_grant()
        self.grant_source = "configuration"
        self.connected: Optional[bool] = None
        self.started_at = datetime.now(timezone.utc)

        self.registry.register_adapter_tools(self.adapter)
        self._register_local_tools()

    async def initialize(self) -> PermissionGrant:
        """
        Run the connection test and permission discovery

        Raises:
            FreshdeskError: discovery hit an authentication failure
        """
        if self.config.skip_connection_test:
            logger.info("⏭️  Skipping Freshdesk connection test")
        else:
            self.connected = await self.adapter.test_connection()
            if not self.connected:
                logger.error("❌ Freshdesk connection test failed")

        if self.config.skip_permission_discovery:
            logger.info("⏭️  Skipping permission discovery, using configured grant")
            return self.grant

        try:
            self.grant = await self.discovery.discover()
            self.grant_source = "discovery"
        except FreshdeskError as e:
            if e.kind is ErrorKind.AUTHENTICATION:
                logger.error(f"❌ Freshdesk rejected the API key: {e.message}")
                raise
            logger.warning(f"⚠️  Permission discovery failed ({e.message}), using configured grant")

        return self.grant

    async def close(self):
        await self.adapter.close()

    # =========================================================================
    # LOCAL TOOLS
    # =========================================================================

    def _register_local_tools(self):
        local = requires(AccessLevel.READ)
        self.registry.register(
            "health_check",
            "Get health status of the gateway, the Freshdesk connection and the rate limit",
            local,
            self.health_check,
        )
        self.registry.register(
            "get_rate_limit_status",
            "Get the current Freshdesk rate limit window",
            local,
            self.get_rate_limit_status,
        )
        self.registry.register(
            "discover_tools",
            "List every tool with whether the current permissions allow it",
            local,
            self.discover_tools,
            parameters={
                "category": {
                    "type": "string",
                    "description": "Only list tools of this category",
                    "required": False,
                    "enum": [*TOOL_CATEGORIES, "local"],
                },
            },
        )
        self.registry.register(
            "get_permissions",
            "Show the access level and permissions of the configured API key",
            local,
            self.get_permissions,
        )

    async def health_check(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "server": {
                "name": SERVER_NAME,
                "version": __version__,
                "status": "healthy" if self.connected is not False else "degraded",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "started_at": self.started_at.isoformat(),
            },
            "freshdesk": {
                **self.adapter.get_platform_info(),
                "connected": self.connected,
                "stats": dict(self.adapter.stats),
            },
            "rate_limit": self.adapter.rate_limiter.get_info(),
            "access_level": self.grant.access_level.name.lower(),
            "total_tools": len(self.registry),
            "available_tools": len(self.registry.available_tools(self.grant)),
        }

    async def get_rate_limit_status(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        info = self.adapter.rate_limiter.get_info()
        return {
            "platform": self.adapter.platform_name,
            **info,
            "usage_percentage": round(100 * (info["limit"] - info["remaining"]) / info["limit"], 1),
            "rate_limit_hits": self.adapter.stats["rate_limit_hits"],
        }

    async def discover_tools(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        category = arguments.get("category")
        tools = self.registry.list_tools(self.grant, category=category)
        return {
            "total_tools": len(tools),
            "available_tools": sum(1 for tool in tools if tool["available"]),
            "access_level": self.grant.access_level.name.lower(),
            "tools": tools,
        }

    async def get_permissions(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return {
            **self.grant.describe(),
            "source": self.grant_source,
            "discovery": self.discovery.summary(),
        }


# =============================================================================
# MCP SERVER
# =============================================================================

def exposed_name(tool: RegisteredTool) -> str:
    return tool.name if tool.category == "local" else f"{TOOL_PREFIX}{tool.name}"


def _register_mcp_tool(mcp: FastMCP, gateway: Gateway, tool: RegisteredTool):
    """Expose one registry tool with its parameters as top-level MCP arguments"""
    async def call(**arguments: Any) -> str:
        # The grant is read at call time, so a narrowed grant still applies
        supplied = {key: value for key, value in arguments.items() if value is not None}
        return await gateway.registry.call_tool(tool.name, supplied, gateway.grant)

    signature = gateway.adapter.validator.signature(tool.parameters or {})
    call.__signature__ = signature
    call.__annotations__ = {
        **{name: param.annotation for name, param in signature.parameters.items()},
        "return": str,
    }
    call.__name__ = exposed_name(tool)
    mcp.tool(name=exposed_name(tool), description=tool.description)(call)


def create_server(gateway: Gateway) -> FastMCP:
    """Build the MCP server with one tool per operation the grant allows"""
    mcp = FastMCP(name=SERVER_NAME)

    allowed = set(gateway.registry.available_tools(gateway.grant))
    registered = 0
    for tool in gateway.registry.tools():
        if tool.name not in allowed:
            logger.debug(f"🔒 Not exposing {tool.name}: permission denied")
            continue
        _register_mcp_tool(mcp, gateway, tool)
        registered += 1

    logger.info(f"🛠️  Exposed {registered}/{len(gateway.registry)} tools over MCP")
    return mcp


# =============================================================================
# MAIN SERVER FUNCTION
# =============================================================================

async def main():
    """Main server startup function"""
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    logger.info(f"🚀 Starting {SERVER_NAME} v{__version__}...")

    config = GatewayConfig.from_env()
    configure_logging(config.log_level)

    gateway = Gateway(config)
    try:
        await gateway.initialize()
        mcp = create_server(gateway)

        logger.info(f"🎫 Freshdesk: {gateway.adapter.domain}")
        logger.info(f"🔐 Access level: {gateway.grant.access_level.name.lower()} ({gateway.grant_source})")
        logger.info(f"⚡ Rate limit: {config.rate_limit_per_minute}/min")
        logger.info(f"🚢 Transport: {config.transport}")
        logger.info("✅ Server initialization complete - ready for connections!")

        if config.transport == "stdio":
            await mcp.run_async(transport="stdio")
        else:
            await mcp.run_async(transport=config.transport, host=config.host, port=config.port)
    finally:
        await gateway.close()


def run():
    """Console script entry point"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("🛑 Server shutdown requested by user")
    except (ValueError, FreshdeskError) as e:
        logger.error(f"💥 Server startup failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
