"""In-memory Pipedrive stand-in.

DummyPipedriveClient has the same async surface as PipedriveClient but
serves records from dictionaries. Used for:
- Unit and end-to-end tests
- `salesqueue digest --demo` (no network, no token)

It logs every call and can be told to raise a specific error for an
operation, optionally only for the Nth call.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from salesqueue.connectors.base import ConnectorError, ResourceNotFoundError
from salesqueue.filters.fields import filter_type_for, normalize_object_type
from salesqueue.pagination import Page
from salesqueue.pipedrive.client import cursor_to_start, parse_entities
from salesqueue.pipedrive.models import (
    Activity,
    Deal,
    FieldDefinition,
    Organization,
    Person,
    SavedFilter,
    Stage,
)

# Reference instant and filters matching the `demo()` dataset.
DEMO_NOW = datetime(2026, 2, 16, 8, 0, tzinfo=timezone.utc)
DEMO_FILTERS = {"overdue": 101, "today": 102, "missing": 103}


@dataclass
class DummyFailure:
    """Canned error for an operation; `on_call` limits it to one call (1-based)."""

    error: ConnectorError
    on_call: Optional[int] = None


class DummyPipedriveClient:
    """Offline Pipedrive client backed by in-memory records."""

    def __init__(
        self,
        activities_by_filter: Optional[Dict[int, List[Dict[str, Any]]]] = None,
        deals_by_filter: Optional[Dict[int, List[Dict[str, Any]]]] = None,
        persons: Optional[List[Dict[str, Any]]] = None,
        organizations: Optional[List[Dict[str, Any]]] = None,
        deals: Optional[List[Dict[str, Any]]] = None,
        stages: Optional[List[Dict[str, Any]]] = None,
        fields: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        filters: Optional[List[Dict[str, Any]]] = None,
    ):
        self.activities_by_filter = activities_by_filter or {}
        self.deals_by_filter = deals_by_filter or {}
        self.persons = {p["id"]: p for p in persons or []}
        self.organizations = {o["id"]: o for o in organizations or []}
        self.deals = {d["id"]: d for d in deals or []}
        self.stages = list(stages or [])
        self.fields = {normalize_object_type(k): v for k, v in (fields or {}).items()}
        self.filters = list(filters or [])
        self._failures: Dict[str, DummyFailure] = {}
        self._call_log: List[Dict[str, Any]] = []

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def fail(self, operation: str, error: ConnectorError, on_call: Optional[int] = None) -> None:
        """Make `operation` raise `error` (every call, or only call number `on_call`)."""
        self._failures[operation] = DummyFailure(error=error, on_call=on_call)

    def clear_failures(self) -> None:
        self._failures.clear()

    def _log_call(self, operation: str, args: Dict[str, Any]) -> None:
        self._call_log.append({"operation": operation, "args": args})
        failure = self._failures.get(operation)
        if failure is None:
            return
        if failure.on_call is None or failure.on_call == self.call_count(operation):
            raise failure.error

    def get_call_log(self) -> List[Dict[str, Any]]:
        return self._call_log.copy()

    def calls(self, operation: str) -> List[Dict[str, Any]]:
        return [call["args"] for call in self._call_log if call["operation"] == operation]

    def was_called(self, operation: str) -> bool:
        return any(call["operation"] == operation for call in self._call_log)

    def call_count(self, operation: str) -> int:
        return sum(1 for call in self._call_log if call["operation"] == operation)

    @staticmethod
    def _page(records: List[Dict[str, Any]], limit: int, cursor: Optional[str]) -> Page:
        start = cursor_to_start(cursor)
        end = start + limit
        next_cursor = str(end) if end < len(records) else None
        return Page(items=records[start:end], next_cursor=next_cursor)

    # -------------------------------------------------------------------------
    # PipedriveClient surface
    # -------------------------------------------------------------------------

    async def get_activities_page(self, filter_id: int, limit: int = 100, cursor: Optional[str] = None) -> Page:
        self._log_call("get_activities_page", {"filter_id": filter_id, "limit": limit, "cursor": cursor})
        page = self._page(self.activities_by_filter.get(filter_id, []), limit, cursor)
        return Page(items=parse_entities(Activity, page.items, "activity"), next_cursor=page.next_cursor)

    async def get_deals_page(self, filter_id: int, limit: int = 100, cursor: Optional[str] = None) -> Page:
        self._log_call("get_deals_page", {"filter_id": filter_id, "limit": limit, "cursor": cursor})
        page = self._page(self.deals_by_filter.get(filter_id, []), limit, cursor)
        return Page(items=parse_entities(Deal, page.items, "deal"), next_cursor=page.next_cursor)

    async def get_persons_by_ids(self, ids: Sequence[int]) -> List[Person]:
        self._log_call("get_persons_by_ids", {"ids": list(ids)})
        return parse_entities(Person, [self.persons[i] for i in ids if i in self.persons], "person")

    async def get_organizations_by_ids(self, ids: Sequence[int]) -> List[Organization]:
        self._log_call("get_organizations_by_ids", {"ids": list(ids)})
        found = [self.organizations[i] for i in ids if i in self.organizations]
        return parse_entities(Organization, found, "organization")

    async def get_deals_by_ids(self, ids: Sequence[int]) -> List[Deal]:
        self._log_call("get_deals_by_ids", {"ids": list(ids)})
        return parse_entities(Deal, [self.deals[i] for i in ids if i in self.deals], "deal")

    async def get_person(self, person_id: int) -> Optional[Person]:
        self._log_call("get_person", {"person_id": person_id})
        if person_id not in self.persons:
            return None
        return Person.model_validate(self.persons[person_id])

    async def get_organization(self, org_id: int) -> Optional[Organization]:
        self._log_call("get_organization", {"org_id": org_id})
        if org_id not in self.organizations:
            return None
        return Organization.model_validate(self.organizations[org_id])

    async def get_stage(self, stage_id: int) -> Optional[Stage]:
        self._log_call("get_stage", {"stage_id": stage_id})
        for stage in self.stages:
            if stage["id"] == stage_id:
                return Stage.model_validate(stage)
        return None

    async def list_stages(self) -> List[Stage]:
        self._log_call("list_stages", {})
        return parse_entities(Stage, self.stages, "stage")

    async def list_fields(self, object_type: str) -> List[FieldDefinition]:
        canonical = normalize_object_type(object_type)
        self._log_call("list_fields", {"object_type": canonical})
        if canonical not in self.fields:
            raise ResourceNotFoundError(f"No fields for {canonical}", resource_type="fields")
        return parse_entities(FieldDefinition, self.fields[canonical], "field")

    async def list_filters(self, filter_type: Optional[str] = None) -> List[SavedFilter]:
        self._log_call("list_filters", {"filter_type": filter_type})
        wanted = filter_type_for(filter_type) if filter_type else None
        records = [f for f in self.filters if wanted is None or f.get("type") == wanted]
        return parse_entities(SavedFilter, records, "filter")

    async def create_filter(self, name: str, conditions: Dict[str, Any], filter_type: str) -> SavedFilter:
        self._log_call("create_filter", {"name": name, "conditions": conditions, "filter_type": filter_type})
        record = {
            "id": max((f["id"] for f in self.filters), default=0) + 1,
            "name": name,
            "type": filter_type_for(filter_type),
            "conditions": conditions,
        }
        self.filters.append(record)
        return SavedFilter.model_validate(record)

    # -------------------------------------------------------------------------
    # Demo dataset
    # -------------------------------------------------------------------------

    @classmethod
    def demo(cls) -> "DummyPipedriveClient":
        """A small, self-consistent account used by `salesqueue digest --demo`."""
        return cls(
            activities_by_filter={
                101: [
                    {
                        "id": 1, "subject": "Send proposal", "type": "task",
                        "due_date": "2026-02-14", "deal_id": 456, "person_id": 10,
                        "person_name": "Maria Lopez", "org_id": 21,
                    },
                ],
                102: [
                    {
                        "id": 2, "subject": "Discovery call", "type": "call",
                        "due_date": "2026-02-16", "due_time": "10:30",
                        "person_id": {"value": 11, "name": "Jon Berg"},
                    },
                ],
            },
            deals_by_filter={
                103: [
                    {
                        "id": 789, "title": "Annual licence", "stage_id": 2,
                        "org_id": {"value": 21, "name": "Acme Corp"},
                        "owner_id": 7, "undone_activities_count": 0,
                    },
                ],
            },
            persons=[
                {"id": 10, "name": "Maria Lopez", "email": [{"value": "maria@example.com", "primary": True}]},
                {"id": 11, "name": "Jon Berg", "emails": [{"value": "jon@example.com", "primary": False}]},
            ],
            organizations=[{"id": 21, "name": "Acme Corp"}],
            deals=[{"id": 456, "title": "Pilot rollout", "stage_id": 3}],
            stages=[
                {"id": 2, "name": "Proposal made", "pipeline_id": 1, "order_nr": 2},
                {"id": 3, "name": "Negotiation", "pipeline_id": 1, "order_nr": 3},
            ],
            fields={
                "deal": [
                    {"id": 12, "key": "stage_id", "name": "Stage"},
                    {"id": 13, "key": "status", "name": "Status"},
                    {"id": 14, "key": "next_activity_date", "name": "Next activity date"},
                ],
                "activity": [
                    {"id": 30, "key": "due_date", "name": "Due date"},
                    {"id": 31, "key": "done", "name": "Done"},
                ],
            },
            filters=[
                {"id": 101, "name": "Overdue activities", "type": "activity"},
                {"id": 102, "name": "Activities due today", "type": "activity"},
                {"id": 103, "name": "Deals without next activity", "type": "deals"},
            ],
        )
