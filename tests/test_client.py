"""Tests for the Pipedrive client over httpx.MockTransport.

No network calls - every response is produced by a routing function.
"""

import asyncio
import json

import httpx
import pytest
from conftest import make_client, not_found, ok

from salesqueue.connectors.base import (
    AuthenticationError,
    ConnectorError,
    RequestPolicy,
    ServiceUnavailableError,
    TimeoutError,
)
from salesqueue.pipedrive.client import (
    PipedriveClient,
    cursor_to_start,
    legacy_next_cursor_of,
    next_cursor_of,
)
from salesqueue.pagination import fetch_paged


class TestCursorHelpers:
    """Cursor extraction and translation."""

    def test_next_cursor_v2(self):
        assert next_cursor_of({"additional_data": {"next_cursor": "abc"}}) == "abc"
        assert next_cursor_of({"additional_data": {"next_cursor": None}}) is None
        assert next_cursor_of({}) is None

    def test_legacy_cursor_from_next_start(self):
        body = {"additional_data": {"pagination": {"more_items_in_collection": True, "next_start": 100}}}
        assert legacy_next_cursor_of(body) == "100"

    def test_legacy_no_more_items(self):
        body = {"additional_data": {"pagination": {"more_items_in_collection": False, "next_start": 100}}}
        assert legacy_next_cursor_of(body) is None

    def test_legacy_missing_continuation_is_end_of_stream(self):
        """No pagination block, no flag or no offset all mean the end."""
        assert legacy_next_cursor_of({"data": [1]}) is None
        assert legacy_next_cursor_of({"additional_data": {}}) is None
        assert legacy_next_cursor_of({"additional_data": {"pagination": {"next_start": 5}}}) is None
        body = {"additional_data": {"pagination": {"more_items_in_collection": True}}}
        assert legacy_next_cursor_of(body) is None

    def test_cursor_to_start(self):
        assert cursor_to_start(None) == 0
        assert cursor_to_start("200") == 200
        with pytest.raises(ConnectorError):
            cursor_to_start("eyJpZCI6MTB9")


class TestPagedListings:
    """Versioned listings and the legacy fallback."""

    def test_activities_page_v2(self):
        """Versioned request carries filter, sort and cursor parameters."""

        def route(request):
            return ok(
                [{"id": 1, "subject": "Call", "type": "call", "due_date": "2026-02-14", "person_id": 10}],
                {"next_cursor": "c2"},
            )

        client, handler = make_client(route)
        page = asyncio.run(client.get_activities_page(7, limit=50, cursor="c1"))

        request = handler.requests[0]
        assert request.url.path == "/api/v2/activities"
        assert request.url.params["filter_id"] == "7"
        assert request.url.params["done"] == "false"
        assert request.url.params["sort_by"] == "due_date"
        assert request.url.params["sort_direction"] == "asc"
        assert request.url.params["limit"] == "50"
        assert request.url.params["cursor"] == "c1"
        assert request.headers["Authorization"] == "Bearer test-token"
        assert page.next_cursor == "c2"
        assert page.items[0].person_id.id == 10

    def test_deals_page_requests_extra_fields(self):
        client, handler = make_client(lambda request: ok([{"id": 789, "title": "Big", "stage_id": 2}]))
        page = asyncio.run(client.get_deals_page(9, limit=10))

        params = handler.requests[0].url.params
        assert params["status"] == "open"
        assert "next_activity_id" in params["include_fields"]
        assert "cursor" not in params
        assert page.next_cursor is None
        assert page.items[0].stage_id == 2

    def test_legacy_fallback_synthesizes_cursor(self):
        """v2 not found: the same listing is paged on v1 with start offsets."""

        def route(request):
            if request.url.path.startswith("/api/v2/"):
                return not_found()
            start = int(request.url.params["start"])
            limit = int(request.url.params["limit"])
            items = [{"id": i, "subject": f"a{i}"} for i in range(start + 1, start + limit + 1)]
            more = start + limit < 150
            return ok(items[: 150 - start], {"pagination": {"more_items_in_collection": more, "next_start": start + limit}})

        client, handler = make_client(route)

        async def fetch():
            return await fetch_paged(
                lambda cursor, size: client.get_activities_page(3, limit=size, cursor=cursor),
                limit=250,
            )

        items = asyncio.run(fetch())

        assert len(items) == 150
        legacy = [r for r in handler.requests if r.url.path == "/api/v1/activities"]
        assert [r.url.params["start"] for r in legacy] == ["0", "100"]
        assert legacy[0].url.params["done"] == "0"
        assert legacy[0].url.params["sort"] == "due_date ASC"

    def test_legacy_response_without_pagination_ends(self):
        """A legacy page with no continuation indicator ends the stream."""

        def route(request):
            if request.url.path.startswith("/api/v2/"):
                return not_found()
            return ok([{"id": 1}, {"id": 2}])

        client, handler = make_client(route)

        async def fetch():
            return await fetch_paged(
                lambda cursor, size: client.get_deals_page(3, limit=size, cursor=cursor),
                limit=50,
            )

        assert [d.id for d in asyncio.run(fetch())] == [1, 2]
        assert len(handler.requests) == 2

    def test_upstream_failure_propagates(self):
        """A 5xx on a listing is fatal to the caller."""
        client, _ = make_client(lambda request: httpx.Response(503, text="down"))
        with pytest.raises(ServiceUnavailableError):
            asyncio.run(client.get_activities_page(1))

    def test_success_false_body(self):
        """A 200 with success=false is an error."""
        client, _ = make_client(
            lambda request: httpx.Response(200, json={"success": False, "error": "Filter not visible"})
        )
        with pytest.raises(ConnectorError, match="Filter not visible"):
            asyncio.run(client.get_activities_page(1))

    def test_malformed_records_are_skipped(self):
        client, _ = make_client(lambda request: ok([{"id": 1}, {"subject": "no id"}]))
        page = asyncio.run(client.get_activities_page(1))
        assert [a.id for a in page.items] == [1]


class TestEntityLookups:
    """Bulk and single-entity reads."""

    def test_bulk_ids_parameter(self):
        client, handler = make_client(lambda request: ok([{"id": 10, "name": "Maria"}, {"id": 11, "name": "Jon"}]))
        persons = asyncio.run(client.get_persons_by_ids([10, 11]))

        request = handler.requests[0]
        assert request.url.path == "/api/v2/persons"
        assert request.url.params["ids"] == "10,11"
        assert [p.name for p in persons] == ["Maria", "Jon"]

    def test_bulk_falls_back_to_legacy(self):
        """A v2 not-found re-issues the same ids lookup on v1."""

        def route(request):
            if request.url.path.startswith("/api/v2/"):
                return not_found()
            return ok([{"id": 21, "name": "Acme Corp"}])

        client, handler = make_client(route)
        orgs = asyncio.run(client.get_organizations_by_ids([21, 22]))

        assert handler.paths() == ["/api/v2/organizations", "/api/v1/organizations"]
        assert handler.requests[1].url.params["ids"] == "21,22"
        assert [o.name for o in orgs] == ["Acme Corp"]

    def test_bulk_with_no_ids_makes_no_request(self):
        client, handler = make_client(lambda request: ok([]))
        assert asyncio.run(client.get_deals_by_ids([])) == []
        assert handler.requests == []

    def test_single_entity_not_found_on_both_versions(self):
        """Not found on v2 and v1 is None, not an error."""
        client, handler = make_client(lambda request: not_found())
        assert asyncio.run(client.get_person(404)) is None
        assert handler.paths() == ["/api/v2/persons/404", "/api/v1/persons/404"]

    def test_single_entity_found_on_legacy(self):
        def route(request):
            if request.url.path.startswith("/api/v2/"):
                return not_found()
            return ok({"id": 3, "name": "Negotiation"})

        client, _ = make_client(route)
        stage = asyncio.run(client.get_stage(3))
        assert stage.name == "Negotiation"

    def test_single_entity_auth_error_propagates(self):
        client, _ = make_client(lambda request: httpx.Response(401, text="bad token"))
        with pytest.raises(AuthenticationError):
            asyncio.run(client.get_organization(1))

    def test_person_primary_email(self):
        client, _ = make_client(
            lambda request: ok(
                {
                    "id": 10,
                    "name": "Maria",
                    "emails": [
                        {"value": "old@example.com", "primary": False},
                        {"value": "maria@example.com", "primary": True},
                    ],
                }
            )
        )
        person = asyncio.run(client.get_person(10))
        assert person.primary_email == "maria@example.com"


class TestMetadata:
    """Stages, fields and filters."""

    def test_list_stages_pages_through(self):
        def route(request):
            if request.url.params.get("cursor") == "p2":
                return ok([{"id": 3, "name": "Negotiation"}])
            return ok([{"id": 2, "name": "Proposal"}], {"next_cursor": "p2"})

        client, handler = make_client(route)
        stages = asyncio.run(client.list_stages())
        assert [s.name for s in stages] == ["Proposal", "Negotiation"]
        assert handler.requests[0].url.params["limit"] == "500"

    def test_list_fields_uses_legacy_endpoint(self):
        client, handler = make_client(lambda request: ok([{"id": 12, "key": "stage_id", "name": "Stage"}]))
        fields = asyncio.run(client.list_fields("deals"))
        assert handler.paths() == ["/api/v1/dealFields"]
        assert fields[0].key == "stage_id"

    def test_list_filters_by_type(self):
        client, handler = make_client(lambda request: ok([{"id": 5, "name": "Overdue", "type": "activity"}]))
        filters = asyncio.run(client.list_filters("activities"))
        assert handler.requests[0].url.path == "/api/v1/filters"
        assert handler.requests[0].url.params["type"] == "activity"
        assert filters[0].describe() == "Overdue (id=5, type=activity)"

    def test_create_filter_payload(self):
        conditions = {"glue": "and", "conditions": [{"glue": "and", "conditions": []}, {"glue": "or", "conditions": []}]}
        client, handler = make_client(lambda request: ok({"id": 77, "name": "Stalled", "type": "deals"}))
        created = asyncio.run(client.create_filter("Stalled", conditions, "deal"))

        request = handler.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v1/filters"
        assert json.loads(request.content) == {"name": "Stalled", "conditions": conditions, "type": "deals"}
        assert created.id == 77


class TestRetries:
    """Retry policy applied by the HTTP layer."""

    def test_retries_then_succeeds(self):
        calls = []

        def route(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503, text="busy")
            return ok({"id": 21, "name": "Acme"})

        client = PipedriveClient(
            api_token="t",
            policy=RequestPolicy(max_retries=2, retry_delay=0.0),
            transport=httpx.MockTransport(route),
        )
        org = asyncio.run(client.get_organization(21))
        assert org.name == "Acme"
        assert len(calls) == 2

    def test_create_filter_is_not_retried(self):
        """A timed-out POST may already have created the filter upstream."""
        calls = []

        def route(request):
            calls.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        client = PipedriveClient(
            api_token="t",
            policy=RequestPolicy(max_retries=3, retry_delay=0.0),
            transport=httpx.MockTransport(route),
        )
        with pytest.raises(TimeoutError):
            asyncio.run(client.create_filter("Stalled", {"glue": "and", "conditions": []}, "deals"))
        assert len(calls) == 1
