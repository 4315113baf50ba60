"""Async client for the Freshdesk v2 REST API."""

import base64
import logging
from importlib.metadata import PackageNotFoundError, version as pkg_version
from typing import Any, Dict, List, Mapping, Optional

import httpx
from pydantic import BaseModel, Field

from .config import FreshdeskConfig
from .errors import ApiError, InvalidResponseError, PaginationError

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 30

# Version info for the User-Agent header
try:
    PACKAGE_VERSION = pkg_version("freshdesk-mcp-server")
except PackageNotFoundError:
    PACKAGE_VERSION = "dev"

USER_AGENT = f"freshdesk-mcp/{PACKAGE_VERSION}"


class PaginatedResult(BaseModel):
    """Records gathered across pages, in page order."""

    results: List[Any] = Field(default_factory=list)
    total: int = 0


def _auth_header_value(api_key: str) -> str:
    # Freshdesk basic auth uses api_key:X
    token = base64.b64encode(f"{api_key}:X".encode()).decode()
    return f"Basic {token}"


def _clean_params(params: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Drop None values; list values are sent by httpx as repeated keys."""
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None}


def _api_error(response: httpx.Response) -> ApiError:
    description: Optional[str] = None
    errors: Any = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        description = body.get("description")
        errors = body.get("errors")
    if not description:
        description = f"HTTP {response.status_code}: {response.reason_phrase}"
    return ApiError(response.status_code, description, errors)


class FreshdeskClient:
    """Authenticated Freshdesk API client.

    One attempt per call: errors are raised to the caller and never retried.
    The auth header is computed once here and reused for every request, so a
    single instance can be shared by concurrent tool calls.

    Args:
        config: Immutable credentials and connection settings
        transport: Optional httpx transport, used by tests to fake the API
    """

    def __init__(self, config: FreshdeskConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config
        self._http = httpx.AsyncClient(
            base_url=config.base_url,
            headers={
                "Authorization": _auth_header_value(config.api_key),
                "User-Agent": USER_AGENT,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(config.timeout, connect=config.connect_timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "FreshdeskClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """Perform one request and return the parsed JSON body.

        Args:
            method: HTTP method
            path: Path relative to /api/v2, e.g. "/tickets/1"
            params: Query parameters; list values become repeated keys
            json: Request body, serialized as JSON

        Returns:
            The decoded JSON body, or an empty dict for 204 No Content

        Raises:
            ApiError: If the response status is not 2xx
            InvalidResponseError: If a 2xx body is not valid JSON
            httpx.RequestError: If the request could not be sent
        """
        logger.debug("%s %s params=%s", method, path, params)
        response = await self._http.request(method, path, params=_clean_params(params), json=json)
        if not response.is_success:
            error = _api_error(response)
            logger.warning("%s %s failed with %s: %s", method, path, error.status_code, error.description)
            raise error
        if response.status_code == 204:
            return {}
        try:
            return response.json()
        except ValueError:
            raise InvalidResponseError(
                f"{method} {path} returned {response.status_code} with a body that is not JSON"
            ) from None

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, json=body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.request("PUT", path, json=body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def paginate(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        max_results: Optional[int] = None,
    ) -> PaginatedResult:
        """Fetch successive pages of a list endpoint and concatenate them.

        Pages are requested one at a time starting at page 1. The walk stops at
        the first empty page, at the first page shorter than ``per_page``, or as
        soon as ``max_results`` records are held. A final page that is exactly
        ``per_page`` long costs one extra, empty request.

        Args:
            path: List endpoint, e.g. "/tickets"
            params: Extra query parameters; ``per_page`` defaults to 30
            max_results: Cap on returned records; None or 0 means no cap

        Returns:
            PaginatedResult whose total is the number of records returned

        Raises:
            ApiError: From any page request; records already fetched are dropped
            PaginationError: If a page is not a JSON array
            ValueError: If max_results is negative or per_page is not a positive integer
        """
        if max_results is not None and max_results < 0:
            raise ValueError("max_results must be >= 0")
        base_params = dict(params or {})
        raw_per_page = base_params.get("per_page")
        per_page = DEFAULT_PER_PAGE if raw_per_page is None else int(raw_per_page)
        if per_page < 1:
            raise ValueError("per_page must be >= 1")
        results: List[Any] = []
        page = 1

        while True:
            page_params = {**base_params, "page": page, "per_page": per_page}
            page_results = await self.get(path, page_params)

            if not page_results:
                break
            if not isinstance(page_results, list):
                raise PaginationError(f"Expected a list from {path} page {page}, got {type(page_results).__name__}")

            logger.debug("%s page %d returned %d records", path, page, len(page_results))
            results.extend(page_results)

            if max_results and len(results) >= max_results:
                results = results[:max_results]
                break

            if len(page_results) < per_page:
                break

            page += 1

        return PaginatedResult(results=results, total=len(results))

    # Tickets

    async def list_tickets(self, params: Optional[Mapping[str, Any]] = None, max_results: Optional[int] = None) -> PaginatedResult:
        return await self.paginate("/tickets", params, max_results)

    async def get_ticket(self, ticket_id: int, include: Optional[List[str]] = None) -> Any:
        params = {"include": ",".join(include)} if include else None
        return await self.get(f"/tickets/{ticket_id}", params)

    async def create_ticket(self, data: Dict[str, Any]) -> Any:
        return await self.post("/tickets", data)

    async def update_ticket(self, ticket_id: int, data: Dict[str, Any]) -> Any:
        return await self.put(f"/tickets/{ticket_id}", data)

    async def delete_ticket(self, ticket_id: int) -> Any:
        return await self.delete(f"/tickets/{ticket_id}")

    async def restore_ticket(self, ticket_id: int) -> Any:
        return await self.put(f"/tickets/{ticket_id}/restore", {})

    async def list_conversations(
        self, ticket_id: int, params: Optional[Mapping[str, Any]] = None, max_results: Optional[int] = None
    ) -> PaginatedResult:
        return await self.paginate(f"/tickets/{ticket_id}/conversations", params, max_results)

    async def add_reply(self, ticket_id: int, data: Dict[str, Any]) -> Any:
        return await self.post(f"/tickets/{ticket_id}/reply", data)

    async def add_note(self, ticket_id: int, data: Dict[str, Any]) -> Any:
        return await self.post(f"/tickets/{ticket_id}/notes", data)

    async def search_tickets(self, query: str, page: Optional[int] = None) -> Any:
        # The search API wants the whole query wrapped in double quotes
        if not (query.startswith('"') and query.endswith('"')):
            query = f'"{query}"'
        return await self.get("/search/tickets", {"query": query, "page": page})

    # Contacts

    async def list_contacts(self, params: Optional[Mapping[str, Any]] = None, max_results: Optional[int] = None) -> PaginatedResult:
        return await self.paginate("/contacts", params, max_results)

    async def get_contact(self, contact_id: int) -> Any:
        return await self.get(f"/contacts/{contact_id}")

    async def create_contact(self, data: Dict[str, Any]) -> Any:
        return await self.post("/contacts", data)

    async def update_contact(self, contact_id: int, data: Dict[str, Any]) -> Any:
        return await self.put(f"/contacts/{contact_id}", data)

    async def delete_contact(self, contact_id: int) -> Any:
        return await self.delete(f"/contacts/{contact_id}")

    async def search_contacts(self, term: str) -> Any:
        return await self.get("/contacts/autocomplete", {"term": term})

    # Companies

    async def list_companies(self, params: Optional[Mapping[str, Any]] = None, max_results: Optional[int] = None) -> PaginatedResult:
        return await self.paginate("/companies", params, max_results)

    async def get_company(self, company_id: int) -> Any:
        return await self.get(f"/companies/{company_id}")

    async def create_company(self, data: Dict[str, Any]) -> Any:
        return await self.post("/companies", data)

    async def update_company(self, company_id: int, data: Dict[str, Any]) -> Any:
        return await self.put(f"/companies/{company_id}", data)

    async def delete_company(self, company_id: int) -> Any:
        return await self.delete(f"/companies/{company_id}")

    # Agents

    async def list_agents(self, params: Optional[Mapping[str, Any]] = None, max_results: Optional[int] = None) -> PaginatedResult:
        return await self.paginate("/agents", params, max_results)

    async def get_agent(self, agent_id: int) -> Any:
        return await self.get(f"/agents/{agent_id}")

    async def get_current_agent(self) -> Any:
        return await self.get("/agents/me")

    # Groups

    async def list_groups(self, params: Optional[Mapping[str, Any]] = None, max_results: Optional[int] = None) -> PaginatedResult:
        return await self.paginate("/groups", params, max_results)

    async def get_group(self, group_id: int) -> Any:
        return await self.get(f"/groups/{group_id}")
