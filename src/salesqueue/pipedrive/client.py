"""Async Pipedrive API client.

Reads go to the versioned API (v2) first. When v2 answers "not found"
for an endpoint, the same logical request is re-issued against the
legacy API (v1): cursors become `start` offsets, and the legacy
`next_start` is turned back into a cursor, so callers always see the
same `Page` contract. Field metadata and saved filters only exist on the
legacy API.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

import httpx
from pydantic import ValidationError as ModelValidationError

from salesqueue.connectors.base import (
    ConnectorError,
    RequestPolicy,
    ResourceNotFoundError,
    TokenAuth,
)
from salesqueue.connectors.http_client import AsyncHTTPClient, HTTPResponse
from salesqueue.filters.fields import FIELD_ENDPOINTS, filter_type_for, normalize_object_type
from salesqueue.pagination import Page, fetch_paged
from salesqueue.pipedrive.models import (
    Activity,
    Deal,
    FieldDefinition,
    Organization,
    PipedriveEntity,
    Person,
    SavedFilter,
    Stage,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.pipedrive.com/api/v2"
DEFAULT_LEGACY_BASE_URL = "https://api.pipedrive.com/api/v1"

DEAL_INCLUDE_FIELDS = (
    "undone_activities_count,next_activity_id,last_incoming_mail_time,last_outgoing_mail_time"
)
METADATA_PAGE_SIZE = 500
METADATA_LIMIT = 10_000

E = TypeVar("E", bound=PipedriveEntity)


def cursor_to_start(cursor: Optional[str]) -> int:
    """Translate a cursor into a legacy `start` offset.

    Only cursors synthesized from a legacy `next_start` can be translated.
    """
    if not cursor:
        return 0
    if str(cursor).isdigit():
        return int(cursor)
    raise ConnectorError(
        f"Cannot continue cursor '{cursor}' on the legacy API",
        connector_name="pipedrive",
    )


def next_cursor_of(body: Dict[str, Any]) -> Optional[str]:
    """Next cursor of a versioned-API listing, or None at the end."""
    additional = body.get("additional_data") or {}
    cursor = additional.get("next_cursor")
    if cursor is None:
        cursor = (additional.get("pagination") or {}).get("next_cursor")
    return str(cursor) if cursor else None


def legacy_next_cursor_of(body: Dict[str, Any]) -> Optional[str]:
    """Cursor synthesized from a legacy listing's offset continuation.

    Continues only when the pagination block says there are more items
    and gives the next offset. Any other shape, including no pagination
    block at all, is the end of the stream.
    """
    pagination = (body.get("additional_data") or {}).get("pagination") or {}
    if pagination.get("more_items_in_collection") is not True:
        return None
    next_start = pagination.get("next_start")
    if next_start is None:
        return None
    return str(next_start)


def parse_entities(model: Type[E], items: Sequence[Any], label: str) -> List[E]:
    """Validate raw items, skipping (and logging) the ones that don't parse."""
    entities: List[E] = []
    for item in items or []:
        try:
            entities.append(model.model_validate(item))
        except ModelValidationError as e:
            logger.warning(f"Skipping malformed {label} record: {e.errors()[0].get('msg', e)}")
    return entities


class PipedriveClient:
    """Pipedrive API client with versioned/legacy endpoint fallback."""

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        legacy_base_url: str = DEFAULT_LEGACY_BASE_URL,
        policy: Optional[RequestPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_token: Pipedrive API token (sent as a bearer header)
            base_url: Versioned API base URL
            legacy_base_url: Legacy API base URL
            policy: Request policy shared by both API versions
            transport: Optional httpx transport (tests use MockTransport)
        """
        auth = TokenAuth(api_token)
        self._http = AsyncHTTPClient(
            auth=auth, policy=policy, base_url=base_url,
            transport=transport, connector_name="pipedrive",
        )
        self._legacy = AsyncHTTPClient(
            auth=auth, policy=policy, base_url=legacy_base_url,
            transport=transport, connector_name="pipedrive_legacy",
        )

    # -------------------------------------------------------------------------
    # Transport helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _payload(response: HTTPResponse, request_line: str) -> Dict[str, Any]:
        body = response.json() or {}
        if not isinstance(body, dict):
            raise ConnectorError(f"Unexpected response body for {request_line}", connector_name="pipedrive")
        if body.get("success") is False:
            raise ConnectorError(
                f"Pipedrive request failed: {request_line}: {body.get('error') or 'unknown error'}",
                connector_name="pipedrive",
                details={"error_info": body.get("error_info")},
            )
        return body

    async def _get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        legacy_params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """GET on the versioned API, falling back to legacy on not-found."""
        try:
            response = await self._http.get(path, params=params)
            return self._payload(response, f"GET {path}")
        except ResourceNotFoundError:
            logger.info(f"Versioned endpoint returned not found for GET {path}; retrying on legacy API")

        response = await self._legacy.get(path, params=legacy_params if legacy_params is not None else params)
        return self._payload(response, f"GET {path} (legacy)")

    async def _get_page(
        self,
        path: str,
        params: Dict[str, Any],
        legacy_params: Dict[str, Any],
        limit: int,
        cursor: Optional[str],
    ) -> Page:
        v2_params = dict(params, limit=limit)
        if cursor:
            v2_params["cursor"] = cursor

        try:
            response = await self._http.get(path, params=v2_params)
            body = self._payload(response, f"GET {path}")
            return Page(items=body.get("data") or [], next_cursor=next_cursor_of(body))
        except ResourceNotFoundError:
            logger.info(f"Versioned endpoint returned not found for GET {path}; retrying on legacy API")

        return await self._get_legacy_page(path, legacy_params, limit, cursor)

    async def _get_legacy_page(
        self,
        path: str,
        params: Dict[str, Any],
        limit: int,
        cursor: Optional[str],
    ) -> Page:
        legacy_params = dict(params, limit=limit, start=cursor_to_start(cursor))
        response = await self._legacy.get(path, params=legacy_params)
        body = self._payload(response, f"GET {path} (legacy)")
        return Page(items=body.get("data") or [], next_cursor=legacy_next_cursor_of(body))

    async def _get_one(self, path: str, model: Type[E], label: str) -> Optional[E]:
        try:
            body = await self._get(path)
        except ResourceNotFoundError:
            logger.info(f"{label} not found: GET {path}")
            return None
        data = body.get("data")
        if not data:
            return None
        entities = parse_entities(model, [data], label)
        return entities[0] if entities else None

    async def _get_by_ids(self, path: str, ids: Sequence[int]) -> List[Any]:
        if not ids:
            return []
        params = {"ids": ",".join(str(i) for i in ids), "limit": len(ids)}
        body = await self._get(path, params=params)
        return body.get("data") or []

    # -------------------------------------------------------------------------
    # Paged listings by filter
    # -------------------------------------------------------------------------

    async def get_activities_page(
        self, filter_id: int, limit: int = 100, cursor: Optional[str] = None
    ) -> Page:
        """One page of open activities matching a saved filter, oldest due first."""
        page = await self._get_page(
            "/activities",
            params={
                "filter_id": filter_id,
                "done": "false",
                "sort_by": "due_date",
                "sort_direction": "asc",
            },
            legacy_params={"filter_id": filter_id, "done": 0, "sort": "due_date ASC"},
            limit=limit,
            cursor=cursor,
        )
        return Page(items=parse_entities(Activity, page.items, "activity"), next_cursor=page.next_cursor)

    async def get_deals_page(
        self, filter_id: int, limit: int = 100, cursor: Optional[str] = None
    ) -> Page:
        """One page of open deals matching a saved filter."""
        page = await self._get_page(
            "/deals",
            params={
                "filter_id": filter_id,
                "status": "open",
                "include_fields": DEAL_INCLUDE_FIELDS,
            },
            legacy_params={"filter_id": filter_id, "status": "open"},
            limit=limit,
            cursor=cursor,
        )
        return Page(items=parse_entities(Deal, page.items, "deal"), next_cursor=page.next_cursor)

    # -------------------------------------------------------------------------
    # Bulk fetch by ids (callers keep batches at <= 100 ids)
    # -------------------------------------------------------------------------

    async def get_persons_by_ids(self, ids: Sequence[int]) -> List[Person]:
        return parse_entities(Person, await self._get_by_ids("/persons", ids), "person")

    async def get_organizations_by_ids(self, ids: Sequence[int]) -> List[Organization]:
        return parse_entities(Organization, await self._get_by_ids("/organizations", ids), "organization")

    async def get_deals_by_ids(self, ids: Sequence[int]) -> List[Deal]:
        return parse_entities(Deal, await self._get_by_ids("/deals", ids), "deal")

    # -------------------------------------------------------------------------
    # Single entities (None when not found)
    # -------------------------------------------------------------------------

    async def get_person(self, person_id: int) -> Optional[Person]:
        return await self._get_one(f"/persons/{person_id}", Person, "person")

    async def get_organization(self, org_id: int) -> Optional[Organization]:
        return await self._get_one(f"/organizations/{org_id}", Organization, "organization")

    async def get_stage(self, stage_id: int) -> Optional[Stage]:
        return await self._get_one(f"/stages/{stage_id}", Stage, "stage")

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    async def list_stages(self) -> List[Stage]:
        """All pipeline stages."""
        items = await fetch_paged(
            lambda cursor, size: self._get_page("/stages", {}, {}, size, cursor),
            limit=METADATA_LIMIT,
            max_page_size=METADATA_PAGE_SIZE,
        )
        return parse_entities(Stage, items, "stage")

    async def list_fields(self, object_type: str) -> List[FieldDefinition]:
        """Field definitions of an object type (legacy API only)."""
        endpoint = FIELD_ENDPOINTS[normalize_object_type(object_type)]
        items = await fetch_paged(
            lambda cursor, size: self._get_legacy_page(f"/{endpoint}", {}, size, cursor),
            limit=METADATA_LIMIT,
            max_page_size=METADATA_PAGE_SIZE,
        )
        return parse_entities(FieldDefinition, items, "field")

    async def list_filters(self, filter_type: Optional[str] = None) -> List[SavedFilter]:
        """Saved filters, optionally of one type (legacy API only)."""
        params = {"type": filter_type_for(filter_type)} if filter_type else None
        response = await self._legacy.get("/filters", params=params)
        body = self._payload(response, "GET /filters (legacy)")
        return parse_entities(SavedFilter, body.get("data") or [], "filter")

    async def create_filter(
        self, name: str, conditions: Dict[str, Any], filter_type: str
    ) -> SavedFilter:
        """Create a saved filter from canonical conditions (legacy API only)."""
        payload = {"name": name, "conditions": conditions, "type": filter_type_for(filter_type)}
        response = await self._legacy.post("/filters", json=payload)
        body = self._payload(response, "POST /filters (legacy)")
        created = parse_entities(SavedFilter, [body.get("data")], "filter")
        if not created:
            raise ConnectorError(f"Filter '{name}' was not returned by Pipedrive", connector_name="pipedrive")
        logger.info(f"Created filter {created[0].describe()}")
        return created[0]
