import httpx
from mcp.server.fastmcp import FastMCP
import logging
from typing import Optional, Dict, Any, List, Annotated, Awaitable, Callable
from enum import IntEnum
from pydantic import Field

from .client import FreshdeskClient, PaginatedResult, PACKAGE_VERSION
from .config import FreshdeskConfig
from .errors import ApiError, ConfigError, InvalidResponseError

logger = logging.getLogger(__name__)

##
# Initialize FastMCP server
##
mcp = FastMCP("freshdesk-mcp")

# Config is read once at start-up; the shared client is created lazily from it
_config: Optional[FreshdeskConfig] = None
_client: Optional[FreshdeskClient] = None

PerPage = Annotated[int, Field(ge=1, le=100, description="Items per page")]
MaxResults = Annotated[Optional[int], Field(ge=1, description="Maximum total results to return")]


def _get_client() -> FreshdeskClient:
    global _client, _config
    if _client is None:
        if _config is None:
            _config = FreshdeskConfig.from_env()
        _client = FreshdeskClient(_config)
    return _client


def _ok(data: Any, *, pagination: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"success": True, "data": data}
    if pagination is not None:
        out["pagination"] = pagination
    return out


def _err(err_type: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "success": False,
        "error": {
            "type": err_type,
            "message": message,
        }
    }
    if details:
        out["error"]["details"] = details
    return out


async def _call(
    action: str,
    fn: Callable[[FreshdeskClient], Awaitable[Any]],
    *,
    details: Optional[Dict[str, Any]] = None,
    wrap: Callable[[Any], Dict[str, Any]] = _ok,
) -> Dict[str, Any]:
    """Run one client call and turn any failure into an error envelope."""
    try:
        data = await fn(_get_client())
    except ConfigError as e:
        return _err("config_error", str(e))
    except ApiError as e:
        return _err("api_error", str(e), details={"status": e.status_code, **(details or {})})
    except InvalidResponseError as e:
        return _err("unexpected_response", f"Failed to {action}: {e}", details=details)
    except httpx.RequestError as e:
        return _err("network_error", f"Failed to {action}: {e}", details=details)
    except Exception as e:
        logger.exception("Unexpected error while trying to %s", action)
        return _err("unexpected_error", f"An unexpected error occurred: {str(e)}", details=details)
    return wrap(data)


def _paged(key: str, per_page: int, max_results: Optional[int]) -> Callable[[PaginatedResult], Dict[str, Any]]:
    def wrap(result: PaginatedResult) -> Dict[str, Any]:
        return _ok({key: result.results}, pagination={
            "total": result.total,
            "per_page": per_page,
            "max_results": max_results,
        })
    return wrap


# enums of ticket properties
class TicketSource(IntEnum):
    EMAIL = 1
    PORTAL = 2
    PHONE = 3
    CHAT = 7
    FEEDBACK_WIDGET = 9
    OUTBOUND_EMAIL = 10

class TicketStatus(IntEnum):
    OPEN = 2
    PENDING = 3
    RESOLVED = 4
    CLOSED = 5

class TicketPriority(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    URGENT = 4


@mcp.tool("server.info")
async def get_server_info() -> Dict[str, Any]:
    """
    Health/version endpoint for clients and operators.
    Reports readiness and basic configuration metadata (non-secret).
    """
    try:
        config = _config or FreshdeskConfig.from_env()
    except ConfigError as e:
        return _ok({
            "name": "freshdesk-mcp",
            "version": PACKAGE_VERSION,
            "ready": False,
            "problem": str(e),
        })
    return _ok({
        "name": "freshdesk-mcp",
        "version": PACKAGE_VERSION,
        "freshdesk_host": config.host,
        "ready": True,
        "capabilities": {
            "pagination": True,
            "max_results": True,
            "retries": False,
        }
    })


# Tickets

@mcp.tool("tickets.list")
async def tickets_list(
    per_page: PerPage = 30,
    max_results: MaxResults = None,
    filter: Annotated[Optional[str], Field(description="Predefined filter: new_and_my_open, watching, spam, deleted")] = None,
    requester_id: Optional[int] = None,
    email: Optional[str] = None,
    company_id: Optional[int] = None,
    updated_since: Annotated[Optional[str], Field(description="ISO 8601 timestamp")] = None,
    include: Annotated[Optional[str], Field(description="Comma separated: requester, stats, description")] = None,
) -> Dict[str, Any]:
    """List tickets across all pages, optionally capped at max_results."""
    params = {
        "per_page": per_page,
        "filter": filter,
        "requester_id": requester_id,
        "email": email,
        "company_id": company_id,
        "updated_since": updated_since,
        "include": include,
    }
    return await _call(
        "list tickets",
        lambda c: c.list_tickets(params, max_results),
        wrap=_paged("tickets", per_page, max_results),
    )

@mcp.tool("tickets.get")
async def tickets_get(ticket_id: int, include: Optional[List[str]] = None) -> Dict[str, Any]:
    """Get a ticket in Freshdesk."""
    return await _call("fetch ticket", lambda c: c.get_ticket(ticket_id, include), details={"ticket_id": ticket_id})

@mcp.tool("tickets.create")
async def tickets_create(
    subject: str,
    description: str,
    source: TicketSource,
    priority: TicketPriority,
    status: TicketStatus,
    email: Optional[str] = None,
    requester_id: Optional[int] = None,
    custom_fields: Optional[Dict[str, Any]] = None,
    additional_fields: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Create a ticket in Freshdesk"""
    if not email and not requester_id:
        return _err("validation_error", "Either email or requester_id must be provided")

    data: Dict[str, Any] = {
        "subject": subject,
        "description": description,
        "source": int(source),
        "priority": int(priority),
        "status": int(status)
    }
    if email:
        data["email"] = email
    if requester_id:
        data["requester_id"] = requester_id
    if custom_fields:
        data["custom_fields"] = custom_fields
    # Any other top-level fields
    if additional_fields:
        data.update(additional_fields)

    return await _call("create ticket", lambda c: c.create_ticket(data))

@mcp.tool("tickets.update")
async def tickets_update(ticket_id: int, ticket_fields: Dict[str, Any]) -> Dict[str, Any]:
    """Update a ticket in Freshdesk."""
    if not ticket_fields:
        return _err("validation_error", "No fields provided for update")
    return await _call("update ticket", lambda c: c.update_ticket(ticket_id, ticket_fields), details={"ticket_id": ticket_id})

@mcp.tool("tickets.delete")
async def tickets_delete(ticket_id: int) -> Dict[str, Any]:
    """Delete a ticket in Freshdesk. Deleted tickets can be restored."""
    return await _call(
        "delete ticket",
        lambda c: c.delete_ticket(ticket_id),
        details={"ticket_id": ticket_id},
        wrap=lambda data: _ok(data or {"message": "Ticket deleted"}),
    )

@mcp.tool("tickets.restore")
async def tickets_restore(ticket_id: int) -> Dict[str, Any]:
    """Restore a deleted ticket."""
    return await _call(
        "restore ticket",
        lambda c: c.restore_ticket(ticket_id),
        details={"ticket_id": ticket_id},
        wrap=lambda data: _ok(data or {"message": "Ticket restored"}),
    )

@mcp.tool("tickets.conversations.list")
async def tickets_conversations_list(
    ticket_id: int,
    per_page: PerPage = 30,
    max_results: MaxResults = None,
) -> Dict[str, Any]:
    """List every conversation on a ticket, oldest first."""
    return await _call(
        "fetch conversations",
        lambda c: c.list_conversations(ticket_id, {"per_page": per_page}, max_results),
        details={"ticket_id": ticket_id},
        wrap=_paged("conversations", per_page, max_results),
    )

@mcp.tool("tickets.reply.create")
async def tickets_reply_create(ticket_id: int, body: str) -> Dict[str, Any]:
    """Add a public reply to a ticket."""
    return await _call("create reply", lambda c: c.add_reply(ticket_id, {"body": body}), details={"ticket_id": ticket_id})

@mcp.tool("tickets.note.create")
async def tickets_note_create(ticket_id: int, body: str, private: bool = True) -> Dict[str, Any]:
    """Add a note to a ticket. Notes are private unless private=False."""
    data = {"body": body, "private": private}
    return await _call("create note", lambda c: c.add_note(ticket_id, data), details={"ticket_id": ticket_id})

@mcp.tool("tickets.search")
async def tickets_search(
    query: str,
    page: Annotated[Optional[int], Field(ge=1, le=10, description="Search result page")] = None,
) -> Dict[str, Any]:
    """Search for tickets in Freshdesk.

    Uses Freshdesk query syntax, e.g. "status:2 AND priority:3". The query is
    wrapped in double quotes if it is not already.
    """
    return await _call("search tickets", lambda c: c.search_tickets(query, page))


# Contacts

@mcp.tool("contacts.list")
async def contacts_list(
    per_page: PerPage = 30,
    max_results: MaxResults = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    company_id: Optional[int] = None,
    state: Annotated[Optional[str], Field(description="blocked, deleted, unverified or verified")] = None,
) -> Dict[str, Any]:
    """List contacts across all pages, optionally capped at max_results."""
    params = {"per_page": per_page, "email": email, "phone": phone, "company_id": company_id, "state": state}
    return await _call(
        "list contacts",
        lambda c: c.list_contacts(params, max_results),
        wrap=_paged("contacts", per_page, max_results),
    )

@mcp.tool("contacts.get")
async def contacts_get(contact_id: int) -> Dict[str, Any]:
    """Get a contact in Freshdesk."""
    return await _call("fetch contact", lambda c: c.get_contact(contact_id), details={"contact_id": contact_id})

@mcp.tool("contacts.create")
async def contacts_create(contact_fields: Dict[str, Any]) -> Dict[str, Any]:
    """Create a contact. Needs a name and one of email, phone, mobile or twitter_id."""
    if not contact_fields.get("name"):
        return _err("validation_error", "Contact name is required")
    return await _call("create contact", lambda c: c.create_contact(contact_fields))

@mcp.tool("contacts.update")
async def contacts_update(contact_id: int, contact_fields: Dict[str, Any]) -> Dict[str, Any]:
    """Update a contact in Freshdesk."""
    if not contact_fields:
        return _err("validation_error", "No fields provided for update")
    return await _call("update contact", lambda c: c.update_contact(contact_id, contact_fields), details={"contact_id": contact_id})

@mcp.tool("contacts.delete")
async def contacts_delete(contact_id: int) -> Dict[str, Any]:
    """Soft-delete a contact."""
    return await _call(
        "delete contact",
        lambda c: c.delete_contact(contact_id),
        details={"contact_id": contact_id},
        wrap=lambda data: _ok(data or {"message": "Contact deleted"}),
    )

@mcp.tool("contacts.search")
async def contacts_search(query: str) -> Dict[str, Any]:
    """Autocomplete contacts by name or email."""
    return await _call("search contacts", lambda c: c.search_contacts(query))


# Companies

@mcp.tool("companies.list")
async def companies_list(per_page: PerPage = 30, max_results: MaxResults = None) -> Dict[str, Any]:
    """List companies across all pages, optionally capped at max_results."""
    return await _call(
        "list companies",
        lambda c: c.list_companies({"per_page": per_page}, max_results),
        wrap=_paged("companies", per_page, max_results),
    )

@mcp.tool("companies.get")
async def companies_get(company_id: int) -> Dict[str, Any]:
    """Get a company in Freshdesk."""
    return await _call("fetch company", lambda c: c.get_company(company_id), details={"company_id": company_id})

@mcp.tool("companies.create")
async def companies_create(company_fields: Dict[str, Any]) -> Dict[str, Any]:
    """Create a company. Needs a name."""
    if not company_fields.get("name"):
        return _err("validation_error", "Company name is required")
    return await _call("create company", lambda c: c.create_company(company_fields))

@mcp.tool("companies.update")
async def companies_update(company_id: int, company_fields: Dict[str, Any]) -> Dict[str, Any]:
    """Update a company in Freshdesk."""
    if not company_fields:
        return _err("validation_error", "No fields provided for update")
    return await _call("update company", lambda c: c.update_company(company_id, company_fields), details={"company_id": company_id})

@mcp.tool("companies.delete")
async def companies_delete(company_id: int) -> Dict[str, Any]:
    """Delete a company."""
    return await _call(
        "delete company",
        lambda c: c.delete_company(company_id),
        details={"company_id": company_id},
        wrap=lambda data: _ok(data or {"message": "Company deleted"}),
    )


# Agents

@mcp.tool("agents.list")
async def agents_list(
    per_page: PerPage = 30,
    max_results: MaxResults = None,
    email: Optional[str] = None,
    state: Annotated[Optional[str], Field(description="fulltime or occasional")] = None,
) -> Dict[str, Any]:
    """List agents across all pages, optionally capped at max_results."""
    params = {"per_page": per_page, "email": email, "state": state}
    return await _call(
        "list agents",
        lambda c: c.list_agents(params, max_results),
        wrap=_paged("agents", per_page, max_results),
    )

@mcp.tool("agents.get")
async def agents_get(agent_id: int) -> Dict[str, Any]:
    """Get an agent in Freshdesk."""
    return await _call("fetch agent", lambda c: c.get_agent(agent_id), details={"agent_id": agent_id})

@mcp.tool("agents.me")
async def agents_me() -> Dict[str, Any]:
    """Get the agent that owns the configured API key."""
    return await _call("fetch current agent", lambda c: c.get_current_agent())


# Groups

@mcp.tool("groups.list")
async def groups_list(per_page: PerPage = 30, max_results: MaxResults = None) -> Dict[str, Any]:
    """List groups across all pages, optionally capped at max_results."""
    return await _call(
        "list groups",
        lambda c: c.list_groups({"per_page": per_page}, max_results),
        wrap=_paged("groups", per_page, max_results),
    )

@mcp.tool("groups.get")
async def groups_get(group_id: int) -> Dict[str, Any]:
    """Get a group in Freshdesk."""
    return await _call("fetch group", lambda c: c.get_group(group_id), details={"group_id": group_id})


def main():
    global _config
    logging.basicConfig(level=logging.INFO)
    logger.info("Starting Freshdesk MCP server")
    try:
        _config = FreshdeskConfig.from_env()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        raise
    logger.info("Freshdesk MCP server ready for %s", _config.host)
    mcp.run(transport='stdio')

if __name__ == "__main__":
    main()
