import httpx
import pytest
import pytest_asyncio

from freshdesk_mcp import server
from freshdesk_mcp.server import (
    TicketPriority,
    TicketSource,
    TicketStatus,
    mcp,
)


@pytest_asyncio.fixture
async def client(make_client, monkeypatch):
    async with make_client() as instance:
        monkeypatch.setattr(server, "_client", instance)
        yield instance


@pytest.fixture
def no_env(monkeypatch):
    monkeypatch.delenv("FRESHDESK_API_KEY", raising=False)
    monkeypatch.delenv("FRESHDESK_DOMAIN", raising=False)
    monkeypatch.setattr(server, "_client", None)
    monkeypatch.setattr(server, "_config", None)


@pytest.mark.asyncio
async def test_tools_are_registered():
    tools = await mcp.list_tools()
    names = {tool.name for tool in tools}

    for expected in [
        "server.info",
        "tickets.list",
        "tickets.get",
        "tickets.create",
        "tickets.conversations.list",
        "contacts.list",
        "contacts.search",
        "companies.list",
        "agents.list",
        "agents.me",
        "groups.list",
    ]:
        assert expected in names


@pytest.mark.asyncio
async def test_tickets_list_returns_all_pages(client, fake):
    fake.queue([{"id": 1}, {"id": 2}], [{"id": 3}])

    result = await server.tickets_list(per_page=2, filter="watching")

    assert result["success"] is True
    assert result["data"] == {"tickets": [{"id": 1}, {"id": 2}, {"id": 3}]}
    assert result["pagination"] == {"total": 3, "per_page": 2, "max_results": None}
    assert fake.requests[0].url.params["filter"] == "watching"
    assert "email" not in fake.requests[0].url.params


@pytest.mark.asyncio
async def test_list_tool_honours_max_results(client, fake):
    fake.queue([{"id": 1}, {"id": 2}], [{"id": 3}, {"id": 4}])

    result = await server.contacts_list(per_page=2, max_results=3)

    assert [c["id"] for c in result["data"]["contacts"]] == [1, 2, 3]
    assert result["pagination"]["total"] == 3
    assert len(fake.requests) == 2


@pytest.mark.asyncio
async def test_api_error_becomes_error_envelope(client, fake):
    fake.queue(httpx.Response(404, json={"description": "Record not found"}))

    result = await server.tickets_get(ticket_id=99)

    assert result["success"] is False
    assert result["error"]["type"] == "api_error"
    assert "Record not found" in result["error"]["message"]
    assert result["error"]["details"] == {"status": 404, "ticket_id": 99}


@pytest.mark.asyncio
async def test_validation_errors_reach_the_caller(client, fake):
    fake.queue(httpx.Response(400, json={
        "description": "Validation failed",
        "errors": [{"field": "name", "message": "It should not be blank", "code": "missing_field"}],
    }))

    result = await server.companies_update(company_id=4, company_fields={"name": ""})

    assert result["error"]["type"] == "api_error"
    assert "Validation failed" in result["error"]["message"]
    assert "missing_field" in result["error"]["message"]


@pytest.mark.asyncio
async def test_network_error_becomes_error_envelope(client, fake):
    fake.queue(httpx.ConnectError("connection refused"))

    result = await server.agents_me()

    assert result["success"] is False
    assert result["error"]["type"] == "network_error"
    assert "connection refused" in result["error"]["message"]


@pytest.mark.asyncio
async def test_delete_with_no_content(client, fake):
    fake.queue(httpx.Response(204))

    result = await server.tickets_delete(ticket_id=8)

    assert result == {"success": True, "data": {"message": "Ticket deleted"}}
    assert fake.requests[0].method == "DELETE"


@pytest.mark.asyncio
async def test_create_ticket_requires_requester(client, fake):
    result = await server.tickets_create(
        subject="s",
        description="d",
        source=TicketSource.EMAIL,
        priority=TicketPriority.LOW,
        status=TicketStatus.OPEN,
    )

    assert result["error"]["type"] == "validation_error"
    assert fake.requests == []


@pytest.mark.asyncio
async def test_create_ticket_payload(client, fake):
    fake.queue(httpx.Response(201, json={"id": 10}))

    result = await server.tickets_create(
        subject="Login broken",
        description="<p>Cannot log in</p>",
        source=TicketSource.PORTAL,
        priority=TicketPriority.HIGH,
        status=TicketStatus.OPEN,
        email="ann@example.com",
        custom_fields={"cf_region": "EU"},
        additional_fields={"tags": ["login"]},
    )

    assert result == {"success": True, "data": {"id": 10}}
    body = fake.requests[0].content
    assert b'"source":2' in body.replace(b" ", b"")
    assert b'"cf_region"' in body
    assert b'"tags"' in body


@pytest.mark.asyncio
async def test_update_requires_fields(client, fake):
    result = await server.contacts_update(contact_id=1, contact_fields={})

    assert result["error"]["type"] == "validation_error"
    assert fake.requests == []


@pytest.mark.asyncio
async def test_conversations_list(client, fake):
    fake.queue([{"id": 1, "body": "hi"}])

    result = await server.tickets_conversations_list(ticket_id=5, per_page=10)

    assert result["data"]["conversations"] == [{"id": 1, "body": "hi"}]
    assert fake.requests[0].url.path == "/api/v2/tickets/5/conversations"


@pytest.mark.asyncio
async def test_missing_config_is_reported(no_env):
    result = await server.groups_list()

    assert result["success"] is False
    assert result["error"]["type"] == "config_error"
    assert "FRESHDESK_API_KEY" in result["error"]["message"]


@pytest.mark.asyncio
async def test_server_info_not_ready(no_env):
    result = await server.get_server_info()

    assert result["data"]["ready"] is False


@pytest.mark.asyncio
async def test_server_info_ready(no_env, monkeypatch):
    monkeypatch.setenv("FRESHDESK_API_KEY", "k")
    monkeypatch.setenv("FRESHDESK_DOMAIN", "acme")

    result = await server.get_server_info()

    assert result["data"]["ready"] is True
    assert result["data"]["freshdesk_host"] == "acme.freshdesk.com"
    assert result["data"]["capabilities"]["retries"] is False


@pytest.mark.asyncio
async def test_ticket_search_tool(client, fake):
    fake.queue({"results": [{"id": 3}], "total": 1})

    result = await server.tickets_search(query="priority:4", page=2)

    assert result == {"success": True, "data": {"results": [{"id": 3}], "total": 1}}
    params = fake.requests[0].url.params
    assert fake.requests[0].url.path == "/api/v2/search/tickets"
    assert params["query"] == '"priority:4"'
    assert params["page"] == "2"


@pytest.mark.asyncio
async def test_contact_search_sends_term(client, fake):
    fake.queue([{"id": 8, "name": "Ann Lee"}])

    result = await server.contacts_search(query="ann")

    assert result["data"] == [{"id": 8, "name": "Ann Lee"}]
    assert fake.requests[0].url.path == "/api/v2/contacts/autocomplete"
    assert fake.requests[0].url.params["term"] == "ann"
    assert "query" not in fake.requests[0].url.params


@pytest.mark.asyncio
async def test_restore_with_no_content(client, fake):
    fake.queue(httpx.Response(204))

    result = await server.tickets_restore(ticket_id=8)

    assert result == {"success": True, "data": {"message": "Ticket restored"}}
    assert fake.requests[0].method == "PUT"
    assert fake.requests[0].url.path == "/api/v2/tickets/8/restore"


@pytest.mark.asyncio
async def test_restore_missing_ticket(client, fake):
    fake.queue(httpx.Response(404, json={"description": "Record not found"}))

    result = await server.tickets_restore(ticket_id=8)

    assert result["error"]["details"] == {"status": 404, "ticket_id": 8}


@pytest.mark.asyncio
async def test_create_company_requires_name(client, fake):
    result = await server.companies_create(company_fields={"domains": ["acme.com"]})

    assert result["error"]["type"] == "validation_error"
    assert fake.requests == []


@pytest.mark.asyncio
async def test_note_tool_sends_private_flag(client, fake):
    fake.queue(httpx.Response(201, json={"id": 1}))

    await server.tickets_note_create(ticket_id=2, body="internal", private=False)

    assert fake.requests[0].url.path == "/api/v2/tickets/2/notes"
    assert b'"private":false' in fake.requests[0].content.replace(b" ", b"")


@pytest.mark.asyncio
async def test_non_json_success_becomes_error_envelope(client, fake):
    fake.queue(httpx.Response(200, text="<html>maintenance</html>"))

    result = await server.groups_get(group_id=6)

    assert result["success"] is False
    assert result["error"]["type"] == "unexpected_response"
    assert result["error"]["details"] == {"group_id": 6}
