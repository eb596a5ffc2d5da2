"""
Tool registry
Every callable operation is registered here with its access requirement;
calls are authorized before the handler runs
"""

import functools
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .adapters.errors import ErrorKind, FreshdeskError
from .auth.permissions import OperationRequirement, PermissionGrant, authorize, ensure_authorized

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class RegisteredTool:
    name: str
    description: str
    requirement: OperationRequirement
    handler: Handler
    category: str = "local"
    parameters: Optional[Dict[str, Dict[str, Any]]] = None


def render(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=str)


class ToolRegistry:
    """Name -> tool table shared by the MCP server and the local tools"""

    def __init__(self):
        self._tools: Dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        description: str,
        requirement: OperationRequirement,
        handler: Handler,
        category: str = "local",
        parameters: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> RegisteredTool:
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered")
        if not isinstance(requirement, OperationRequirement):
            raise ValueError(f"Tool '{name}' needs an OperationRequirement")

        tool = RegisteredTool(
            name=name,
            description=description,
            requirement=requirement,
            handler=handler,
            category=category,
            parameters=parameters,
        )
        self._tools[name] = tool
        return tool

    def register_adapter_tools(self, adapter) -> int:
        """Register every tool of an adapter's table; returns how many were added"""
        for name, config in adapter.all_tools.items():
            self.register(
                name=name,
                description=config["description"],
                requirement=config["requires"],
                handler=functools.partial(adapter.execute_tool, name),
                category=config["category"],
                parameters=config["parameters"],
            )
        logger.info(f"🛠️  Registered {len(adapter.all_tools)} {adapter.platform_name} tools")
        return len(adapter.all_tools)

    def get(self, name: str) -> Optional[RegisteredTool]:
        return self._tools.get(name)

    def tools(self) -> List[RegisteredTool]:
        return list(self._tools.values())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(self, grant: Optional[PermissionGrant], category: Optional[str] = None) -> List[Dict[str, Any]]:
        """Every tool with whether `grant` may call it"""
        listing = []
        for tool in self._tools.values():
            if category and tool.category != category:
                continue
            decision = authorize(grant, tool.requirement)
            entry = {
                "name": tool.name,
                "description": tool.description,
                "category": tool.category,
                "requires": tool.requirement.describe(),
                "parameters": tool.parameters or {},
                "available": decision.allowed,
                "missing_permissions": decision.missing_permissions,
            }
            if not decision.allowed:
                entry["reason"] = decision.reason
            listing.append(entry)
        return listing

    def available_tools(self, grant: Optional[PermissionGrant]) -> List[str]:
        return [tool.name for tool in self._tools.values() if authorize(grant, tool.requirement).allowed]

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]],
        grant: Optional[PermissionGrant],
    ) -> str:
        """
        Authorize and run a tool, rendering the outcome as JSON

        Classified failures are returned as error payloads; anything else
        propagates.
        """
        tool = self._tools.get(name)
        if tool is None:
            error = FreshdeskError(
                ErrorKind.VALIDATION,
                f"Unknown tool: {name}",
                details={"available_tools": sorted(self._tools)},
            )
            return render(error.to_dict())

        try:
            ensure_authorized(grant, tool.requirement, name)
            result = await tool.handler(arguments or {})
        except FreshdeskError as e:
            logger.warning(f"⚠️ Tool {name} failed [{e.kind.value}]: {e.message}")
            return render(e.to_dict())

        return render(result)
