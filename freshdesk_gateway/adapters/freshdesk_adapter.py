"""
Freshdesk API Adapter
Maps logical helpdesk operations (tickets, contacts, agents, companies,
conversations) onto Freshdesk v2 REST calls made through the orchestrator
"""

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..auth.permissions import AccessLevel, OperationRequirement, Permission, requires
from ..validation.pydantic_validator import PydanticParameterValidator
from .base_adapter import BaseAdapter, RetryPolicy
from .credentials import CredentialProvider
from .errors import ErrorKind, FreshdeskError
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")
QUERY_METHODS = frozenset({"GET", "DELETE"})


def _param(type_: str, description: str, required: bool = False, **extra: Any) -> Dict[str, Any]:
    return {"type": type_, "description": description, "required": required, **extra}


def _id(description: str) -> Dict[str, Any]:
    return _param("integer", description, required=True, minimum=1)


PAGINATION = {
    "page": _param("integer", "Page number (default: 1)", minimum=1),
    "per_page": _param("integer", "Items per page (default: 30, max: 100)", minimum=1, maximum=100),
}

TICKET_FIELDS = {
    "subject": _param("string", "Subject of the ticket"),
    "description": _param("string", "HTML content of the ticket"),
    "email": _param("string", "Email address of the requester"),
    "name": _param("string", "Name of the requester"),
    "requester_id": _param("integer", "ID of the requester"),
    "priority": _param("integer", "Priority: 1=Low, 2=Medium, 3=High, 4=Urgent", minimum=1, maximum=4),
    "status": _param(
        "integer",
        "Status: 2=Open, 3=Pending, 4=Resolved, 5=Closed, 6=Waiting on Customer, 7=Waiting on Third Party",
        minimum=2,
        maximum=7,
    ),
    "source": _param(
        "integer",
        "Source: 1=Email, 2=Portal, 3=Phone, 7=Chat, 8=Mobihelp, 9=Feedback Widget, 10=Outbound Email",
        minimum=1,
        maximum=10,
    ),
    "tags": _param("array", "Tags for the ticket", items="string"),
    "cc_emails": _param("array", "Email addresses to CC", items="string"),
    "custom_fields": _param("object", "Custom fields as key-value pairs"),
    "group_id": _param("integer", "Group ID to assign the ticket"),
    "responder_id": _param("integer", "Agent ID to assign the ticket"),
    "type": _param("string", "Ticket type"),
    "product_id": _param("integer", "Product ID associated with the ticket"),
    "due_by": _param("string", "ISO 8601 resolution due time"),
    "fr_due_by": _param("string", "ISO 8601 first response due time"),
}

CONTACT_FIELDS = {
    "name": _param("string", "Full name of the contact"),
    "email": _param("string", "Primary email address"),
    "phone": _param("string", "Telephone number"),
    "mobile": _param("string", "Mobile number"),
    "twitter_id": _param("string", "Twitter handle"),
    "unique_external_id": _param("string", "External ID of the contact"),
    "other_emails": _param("array", "Additional email addresses", items="string"),
    "company_id": _param("integer", "ID of the primary company"),
    "view_all_tickets": _param("boolean", "Whether the contact can see all company tickets"),
    "address": _param("string", "Address of the contact"),
    "description": _param("string", "A short description of the contact"),
    "job_title": _param("string", "Job title"),
    "language": _param("string", "Language code, e.g. en"),
    "time_zone": _param("string", "Time zone"),
    "tags": _param("array", "Tags for the contact", items="string"),
    "custom_fields": _param("object", "Custom fields as key-value pairs"),
}

COMPANY_FIELDS = {
    "name": _param("string", "Name of the company"),
    "description": _param("string", "Description of the company"),
    "note": _param("string", "Any specific note about the company"),
    "domains": _param("array", "Domains associated with the company", items="string"),
    "health_score": _param("string", "Health score of the company"),
    "account_tier": _param("string", "Account tier", enum=["Basic", "Premium", "Enterprise"]),
    "renewal_date": _param("string", "Contract renewal date (YYYY-MM-DD)"),
    "industry": _param("string", "Industry the company serves"),
    "custom_fields": _param("object", "Custom fields as key-value pairs"),
}

SEARCH_FIELDS = {
    "query": _param("string", 'Search query, e.g. "priority:3 AND status:2"', required=True),
    "page": _param("integer", "Page number (max: 10)", minimum=1, maximum=10),
}


def _with_required(fields: Dict[str, Dict[str, Any]], *names: str) -> Dict[str, Dict[str, Any]]:
    result = dict(fields)
    for name in names:
        result[name] = {**result[name], "required": True}
    return result


# 🎫 TICKETS
TICKET_TOOLS = {
    "create_ticket": {
        "method": "POST",
        "path": "/tickets",
        "description": "Create a new support ticket",
        "parameters": _with_required(TICKET_FIELDS, "subject", "description"),
        "requires": requires(AccessLevel.WRITE, Permission.TICKETS_WRITE),
    },
    "view_ticket": {
        "method": "GET",
        "path": "/tickets/{ticket_id}",
        "description": "Retrieve a specific ticket by ID",
        "parameters": {
            "ticket_id": _id("ID of the ticket"),
            "include": _param(
                "array",
                'Related data to embed: "conversations", "requester", "company", "stats"',
                items="string",
            ),
        },
        "requires": requires(AccessLevel.READ, Permission.TICKETS_READ),
    },
    "list_tickets": {
        "method": "GET",
        "path": "/tickets",
        "description": "List tickets with filtering options",
        "parameters": {
            **PAGINATION,
            "filter": _param("string", 'Predefined filter like "new_and_my_open", "watching", "spam", "deleted"'),
            "requester_id": _param("integer", "Filter by requester ID"),
            "responder_id": _param("integer", "Filter by agent ID"),
            "company_id": _param("integer", "Filter by company ID"),
            "updated_since": _param("string", "ISO 8601 datetime; only tickets updated after it"),
            "include": _param("array", 'Related data to embed: "description", "requester", "stats"', items="string"),
        },
        "requires": requires(AccessLevel.READ, Permission.TICKETS_READ),
    },
    "update_ticket": {
        "method": "PUT",
        "path": "/tickets/{ticket_id}",
        "description": "Update an existing ticket",
        "parameters": {"ticket_id": _id("ID of the ticket"), **TICKET_FIELDS},
        "requires": requires(AccessLevel.WRITE, Permission.TICKETS_WRITE),
    },
    "delete_ticket": {
        "method": "DELETE",
        "path": "/tickets/{ticket_id}",
        "description": "Delete a ticket",
        "parameters": {"ticket_id": _id("ID of the ticket")},
        "requires": requires(AccessLevel.WRITE, Permission.TICKETS_DELETE),
    },
    "search_tickets": {
        "method": "GET",
        "path": "/search/tickets",
        "description": "Search tickets with a Freshdesk filter query",
        "parameters": SEARCH_FIELDS,
        "requires": requires(AccessLevel.READ, Permission.TICKETS_READ, Permission.SEARCH),
    },
}

# 👤 CONTACTS
CONTACT_TOOLS = {
    "create_contact": {
        "method": "POST",
        "path": "/contacts",
        "description": "Create a new contact",
        "parameters": _with_required(CONTACT_FIELDS, "name"),
        "requires": requires(AccessLevel.WRITE, Permission.CONTACTS_WRITE),
    },
    "view_contact": {
        "method": "GET",
        "path": "/contacts/{contact_id}",
        "description": "Retrieve a specific contact by ID",
        "parameters": {"contact_id": _id("ID of the contact")},
        "requires": requires(AccessLevel.READ, Permission.CONTACTS_READ),
    },
    "list_contacts": {
        "method": "GET",
        "path": "/contacts",
        "description": "List contacts with filtering options",
        "parameters": {
            **PAGINATION,
            "email": _param("string", "Filter by email"),
            "mobile": _param("string", "Filter by mobile number"),
            "phone": _param("string", "Filter by phone number"),
            "company_id": _param("integer", "Filter by company ID"),
            "updated_since": _param("string", "ISO 8601 datetime; only contacts updated after it"),
            "state": _param("string", "Filter by contact state", enum=["verified", "unverified", "blocked", "deleted"]),
        },
        "requires": requires(AccessLevel.READ, Permission.CONTACTS_READ),
    },
    "update_contact": {
        "method": "PUT",
        "path": "/contacts/{contact_id}",
        "description": "Update an existing contact",
        "parameters": {"contact_id": _id("ID of the contact"), **CONTACT_FIELDS},
        "requires": requires(AccessLevel.WRITE, Permission.CONTACTS_WRITE),
    },
    "delete_contact": {
        "method": "DELETE",
        "path": "/contacts/{contact_id}",
        "description": "Soft delete a contact",
        "parameters": {"contact_id": _id("ID of the contact")},
        "requires": requires(AccessLevel.WRITE, Permission.CONTACTS_DELETE),
    },
    "search_contacts": {
        "method": "GET",
        "path": "/search/contacts",
        "description": "Search contacts with a Freshdesk filter query",
        "parameters": SEARCH_FIELDS,
        "requires": requires(AccessLevel.READ, Permission.CONTACTS_READ, Permission.SEARCH),
    },
    "merge_contacts": {
        "method": "POST",
        "path": "/contacts/{contact_id}/merge",
        "description": "Merge secondary contacts into a primary contact",
        "parameters": {
            "contact_id": _id("ID of the primary contact"),
            "secondary_contact_ids": _param(
                "array", "IDs of the contacts merged into the primary", required=True, items="integer"
            ),
        },
        "requires": requires(AccessLevel.WRITE, Permission.CONTACTS_WRITE),
    },
}

# 👨‍💼 AGENTS
AGENT_TOOLS = {
    "list_agents": {
        "method": "GET",
        "path": "/agents",
        "description": "List agents",
        "parameters": {
            **PAGINATION,
            "email": _param("string", "Filter by email"),
            "mobile": _param("string", "Filter by mobile number"),
            "phone": _param("string", "Filter by phone number"),
            "state": _param("string", "Filter by agent type", enum=["fulltime", "occasional"]),
        },
        "requires": requires(AccessLevel.READ, Permission.AGENTS_READ),
    },
    "view_agent": {
        "method": "GET",
        "path": "/agents/{agent_id}",
        "description": "Retrieve a specific agent by ID",
        "parameters": {"agent_id": _id("ID of the agent")},
        "requires": requires(AccessLevel.READ, Permission.AGENTS_READ),
    },
    "current_agent": {
        "method": "GET",
        "path": "/agents/me",
        "description": "Retrieve the agent that owns the API key",
        "parameters": {},
        "requires": requires(AccessLevel.READ, Permission.AGENTS_READ),
    },
    "list_agent_groups": {
        "method": "GET",
        "path": "/agents/{agent_id}/groups",
        "description": "List the groups an agent belongs to",
        "parameters": {"agent_id": _id("ID of the agent")},
        "requires": requires(AccessLevel.READ, Permission.AGENTS_READ),
    },
    "list_agent_roles": {
        "method": "GET",
        "path": "/agents/{agent_id}/roles",
        "description": "List the roles assigned to an agent",
        "parameters": {"agent_id": _id("ID of the agent")},
        "requires": requires(AccessLevel.READ, Permission.AGENTS_READ),
    },
    "update_agent": {
        "method": "PUT",
        "path": "/agents/{agent_id}",
        "description": "Update an agent",
        "parameters": {
            "agent_id": _id("ID of the agent"),
            "occasional": _param("boolean", "Whether the agent is occasional"),
            "signature": _param("string", "Signature of the agent in HTML"),
            "ticket_scope": _param(
                "integer", "Ticket permission: 1=Global, 2=Group, 3=Restricted", minimum=1, maximum=3
            ),
            "group_ids": _param("array", "Group IDs the agent belongs to", items="integer"),
            "role_ids": _param("array", "Role IDs of the agent", items="integer"),
            "skill_ids": _param("array", "Skill IDs of the agent", items="integer"),
            "email": _param("string", "Email address of the agent"),
            "language": _param("string", "Language code"),
            "time_zone": _param("string", "Time zone"),
        },
        "requires": requires(AccessLevel.ADMIN, Permission.AGENTS_WRITE),
    },
}

# 🏢 COMPANIES
COMPANY_TOOLS = {
    "create_company": {
        "method": "POST",
        "path": "/companies",
        "description": "Create a new company",
        "parameters": _with_required(COMPANY_FIELDS, "name"),
        "requires": requires(AccessLevel.WRITE, Permission.COMPANIES_WRITE),
    },
    "view_company": {
        "method": "GET",
        "path": "/companies/{company_id}",
        "description": "Retrieve a specific company by ID",
        "parameters": {"company_id": _id("ID of the company")},
        "requires": requires(AccessLevel.READ, Permission.COMPANIES_READ),
    },
    "list_companies": {
        "method": "GET",
        "path": "/companies",
        "description": "List companies",
        "parameters": dict(PAGINATION),
        "requires": requires(AccessLevel.READ, Permission.COMPANIES_READ),
    },
    "list_company_contacts": {
        "method": "GET",
        "path": "/companies/{company_id}/contacts",
        "description": "List the contacts of a company",
        "parameters": {"company_id": _id("ID of the company"), **PAGINATION},
        "requires": requires(AccessLevel.READ, Permission.COMPANIES_READ, Permission.CONTACTS_READ),
    },
    "update_company": {
        "method": "PUT",
        "path": "/companies/{company_id}",
        "description": "Update an existing company",
        "parameters": {"company_id": _id("ID of the company"), **COMPANY_FIELDS},
        "requires": requires(AccessLevel.WRITE, Permission.COMPANIES_WRITE),
    },
    "delete_company": {
        "method": "DELETE",
        "path": "/companies/{company_id}",
        "description": "Delete a company",
        "parameters": {"company_id": _id("ID of the company")},
        "requires": requires(AccessLevel.WRITE, Permission.COMPANIES_DELETE),
    },
    "search_companies": {
        "method": "GET",
        "path": "/search/companies",
        "description": "Search companies with a Freshdesk filter query",
        "parameters": SEARCH_FIELDS,
        "requires": requires(AccessLevel.READ, Permission.COMPANIES_READ, Permission.SEARCH),
    },
}

# 💬 CONVERSATIONS
CONVERSATION_TOOLS = {
    "list_conversations": {
        "method": "GET",
        "path": "/tickets/{ticket_id}/conversations",
        "description": "List the replies and notes of a ticket",
        "parameters": {"ticket_id": _id("ID of the ticket"), **PAGINATION},
        "requires": requires(AccessLevel.READ, Permission.CONVERSATIONS_READ),
    },
    "create_reply": {
        "method": "POST",
        "path": "/tickets/{ticket_id}/reply",
        "description": "Reply to a ticket",
        "parameters": {
            "ticket_id": _id("ID of the ticket"),
            "body": _param("string", "HTML content of the reply", required=True),
            "from_email": _param("string", "Email address the reply is sent from"),
            "user_id": _param("integer", "ID of the agent replying"),
            "cc_emails": _param("array", "Email addresses to CC", items="string"),
            "bcc_emails": _param("array", "Email addresses to BCC", items="string"),
        },
        "requires": requires(AccessLevel.WRITE, Permission.CONVERSATIONS_WRITE),
    },
    "create_note": {
        "method": "POST",
        "path": "/tickets/{ticket_id}/notes",
        "description": "Add a note to a ticket",
        "parameters": {
            "ticket_id": _id("ID of the ticket"),
            "body": _param("string", "HTML content of the note", required=True),
            "private": _param("boolean", "Whether the note is private (default: true)"),
            "incoming": _param("boolean", "Whether the note appears as coming from outside"),
            "notify_emails": _param("array", "Agent emails to notify", items="string"),
            "user_id": _param("integer", "ID of the agent adding the note"),
        },
        "requires": requires(AccessLevel.WRITE, Permission.CONVERSATIONS_WRITE),
    },
    "update_conversation": {
        "method": "PUT",
        "path": "/tickets/{ticket_id}/conversations/{conversation_id}",
        "description": "Update the body of a note or reply",
        "parameters": {
            "ticket_id": _id("ID of the ticket"),
            "conversation_id": _id("ID of the conversation"),
            "body": _param("string", "New HTML content", required=True),
        },
        "requires": requires(AccessLevel.WRITE, Permission.CONVERSATIONS_WRITE),
    },
    "delete_conversation": {
        "method": "DELETE",
        "path": "/tickets/{ticket_id}/conversations/{conversation_id}",
        "description": "Delete a note or reply",
        "parameters": {
            "ticket_id": _id("ID of the ticket"),
            "conversation_id": _id("ID of the conversation"),
        },
        "requires": requires(AccessLevel.WRITE, Permission.CONVERSATIONS_DELETE),
    },
}

TOOL_CATEGORIES = {
    "tickets": TICKET_TOOLS,
    "contacts": CONTACT_TOOLS,
    "agents": AGENT_TOOLS,
    "companies": COMPANY_TOOLS,
    "conversations": CONVERSATION_TOOLS,
}


def _quote_search_query(query: str) -> str:
    # Freshdesk only accepts filter queries wrapped in double quotes
    query = query.strip()
    if query.startswith('"') and query.endswith('"') and len(query) > 1:
        return query
    return f'"{query}"'


class FreshdeskAdapter(BaseAdapter):
    """
    Freshdesk API v2 adapter.

    Each tool in `all_tools` is a path/verb/parameter triple plus the access
    requirement checked by the registry before the tool runs.
    """

    platform_name = "freshdesk"

    def __init__(
        self,
        domain: str,
        api_key: str,
        rate_limit_per_minute: int = 50,
        timeout_ms: int = 30000,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        credentials = CredentialProvider(domain=domain, api_key=api_key)
        super().__init__(
            credentials=credentials,
            rate_limit_per_minute=rate_limit_per_minute,
            timeout_ms=timeout_ms,
            retry_policy=retry_policy,
            rate_limiter=rate_limiter,
            transport=transport,
            sleep=sleep,
        )
        self.domain = credentials.domain
        self.validator = PydanticParameterValidator()

        self.all_tools: Dict[str, Dict[str, Any]] = {}
        self._setup_tools()

        # Track API usage statistics
        self.stats = {
            "requests_made": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "rate_limit_hits": 0,
        }

        logger.info(
            f"🎫 Freshdesk adapter initialized with {len(self.all_tools)} tools "
            f"(key {credentials.masked_key()})"
        )

    @classmethod
    def from_config(cls, config, **kwargs) -> "FreshdeskAdapter":
        """Build an adapter from a GatewayConfig"""
        return cls(
            domain=config.domain,
            api_key=config.api_key,
            rate_limit_per_minute=config.rate_limit_per_minute,
            timeout_ms=config.timeout_ms,
            retry_policy=RetryPolicy(
                max_retries=config.max_retries,
                base_delay_ms=config.retry_base_delay_ms,
                max_delay_ms=config.retry_max_delay_ms,
            ),
            **kwargs,
        )

    def _setup_tools(self):
        """Flatten the per-category tables into `all_tools`"""
        for category, tools in TOOL_CATEGORIES.items():
            for name, config in tools.items():
                self.all_tools[name] = {**config, "category": category}

        logger.info(f"✅ Configured {len(self.all_tools)} Freshdesk API tools")

    def get_tools(self) -> List[str]:
        """Get list of available tool names"""
        return list(self.all_tools.keys())

    def get_tool_config(self, tool_name: str) -> Optional[Dict[str, Any]]:
        """Get configuration for a specific tool"""
        return self.all_tools.get(tool_name)

    def get_requirement(self, tool_name: str) -> Optional[OperationRequirement]:
        config = self.all_tools.get(tool_name)
        return config["requires"] if config else None

    async def get_available_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": name,
                "description": config["description"],
                "category": config["category"],
                "method": config["method"],
                "path": config["path"],
                "requires": config["requires"].describe(),
                "input_schema": self.validator.json_schema(name, config["parameters"]),
            }
            for name, config in self.all_tools.items()
        ]

    async def discover_api_schema(self) -> Dict[str, Any]:
        return {
            "api_version": "v2",
            "total_tools": len(self.all_tools),
            "categories": sorted({config["category"] for config in self.all_tools.values()}),
            "domain": self.domain,
            "rate_limits": {
                "requests_per_minute": self.rate_limiter.max_requests,
                "reset_interval": self.rate_limiter.window_seconds,
            },
        }

    async def test_connection(self) -> bool:
        """Test connection to Freshdesk API using the current agent endpoint"""
        try:
            await self.send("GET", "/agents/me")
        except FreshdeskError as e:
            logger.error(f"❌ Freshdesk connection test failed [{e.kind.value}]: {e.message}")
            return False
        logger.info("✅ Freshdesk connection test passed")
        return True

    def build_request(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Turn validated arguments into a method/path/params/data request

        Path placeholders are filled from the arguments; the rest go to the
        query string for GET/DELETE and to the JSON body otherwise.
        """
        config = self.all_tools[tool_name]
        method = config["method"]
        remaining = dict(arguments)

        def fill(match: re.Match) -> str:
            key = match.group(1)
            if key not in remaining:
                raise FreshdeskError(ErrorKind.VALIDATION, f"{key} is required for {tool_name}")
            return quote(str(remaining.pop(key)), safe="")

        path = _PLACEHOLDER.sub(fill, config["path"])

        if method in QUERY_METHODS:
            params = {}
            for key, value in remaining.items():
                if key == "query":
                    value = _quote_search_query(value)
                elif isinstance(value, list):
                    value = ",".join(str(item) for item in value)
                params[key] = value
            return {"method": method, "path": path, "params": params or None, "data": None}

        return {"method": method, "path": path, "params": None, "data": remaining or None}

    async def execute_tool(self, tool_name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute a tool/endpoint call

        Args:
            tool_name: Name of the tool to execute
            arguments: Tool arguments (optional)

        Returns:
            Tool execution result

        Raises:
            FreshdeskError: unknown tool, invalid arguments, or a terminal API failure
        """
        if tool_name not in self.all_tools:
            raise FreshdeskError(
                ErrorKind.VALIDATION,
                f"Tool '{tool_name}' not found in Freshdesk adapter",
                details={"available_tools": sorted(self.all_tools)},
            )

        config = self.all_tools[tool_name]
        validated = self.validator.validate_parameters(tool_name, config["parameters"], arguments)
        request = self.build_request(tool_name, validated)

        self.stats["requests_made"] += 1
        try:
            result = await self.send(
                request["method"],
                request["path"],
                data=request["data"],
                params=request["params"],
            )
        except FreshdeskError as e:
            self.stats["failed_requests"] += 1
            if e.kind is ErrorKind.RATE_LIMIT:
                self.stats["rate_limit_hits"] += 1
            logger.error(f"Error executing Freshdesk tool {tool_name}: {e.message}")
            raise

        self.stats["successful_requests"] += 1
        return {
            "success": True,
            "tool_name": tool_name,
            "platform": self.platform_name,
            "result": result,
        }
