"""Sales queue digest builder.

SalesQueueService ties the data-acquisition pieces together:
- Stage names and saved-filter listings, cached with a TTL
- Three paged listings (overdue, due today, deals missing a next action)
  fetched concurrently; any failure aborts the digest
- Bulk lookups of referenced persons, organizations and deals, where a
  failed batch only leaves names blank
- Mapping of every record into the digest output models
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone as dt_timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from salesqueue.bulk import BatchFailure, BulkFetcher
from salesqueue.cache import TTLCache
from salesqueue.filters.conditions import ConditionNormalizer
from salesqueue.filters.errors import FilterResolutionError
from salesqueue.filters.fields import FieldResolver, normalize_object_type
from salesqueue.pagination import fetch_paged
from salesqueue.pipedrive.models import (
    Activity,
    ActivityDeal,
    ActivityItem,
    ActivityPerson,
    Deal,
    DealItem,
    Digest,
    DigestFilterIds,
    DigestSections,
    DigestSource,
    DigestStats,
    FieldDefinition,
    Organization,
    PartyRef,
    Person,
    SavedFilter,
)

logger = logging.getLogger(__name__)

DEFAULT_COMPANY_DOMAIN = "app.pipedrive.com"
DEFAULT_TIMEZONE = "Europe/Madrid"
DEFAULT_CACHE_TTL = 3600
DEFAULT_LIMIT = 50

STAGES_CACHE_KEY = "stages_all"
FILTERS_CACHE_PREFIX = "filters_"

FilterRef = Union[int, str]


@dataclass
class DigestLimits:
    """Maximum number of records per digest section."""

    overdue: int = DEFAULT_LIMIT
    today: int = DEFAULT_LIMIT
    missing: int = DEFAULT_LIMIT

    def __post_init__(self):
        for name in ("overdue", "today", "missing"):
            if getattr(self, name) < 0:
                raise ValueError(f"Limit '{name}' must not be negative")

    @classmethod
    def uniform(cls, limit: int) -> "DigestLimits":
        return cls(overdue=limit, today=limit, missing=limit)


def resolve_timezone(name: str) -> ZoneInfo:
    """ZoneInfo for an IANA name, raising ValueError for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone '{name}'")


def parse_due_day(due_date: Optional[str]) -> Optional[date]:
    """Calendar day of a Pipedrive due date (`YYYY-MM-DD[...]`)."""
    if not due_date:
        return None
    try:
        return date.fromisoformat(due_date[:10])
    except ValueError:
        logger.debug(f"Unparseable due date: {due_date!r}")
        return None


def days_overdue(due_date: Optional[str], today: date) -> Optional[int]:
    """Whole days between the due day and today, or None unless strictly overdue."""
    due_day = parse_due_day(due_date)
    if due_day is None or due_day >= today:
        return None
    return (today - due_day).days


def _ref_id(ref: Any) -> Optional[int]:
    return ref.id if ref is not None else None


class SalesQueueService:
    """Builds sales queue digests and manages saved filters."""

    def __init__(
        self,
        client: Any,
        *,
        company_domain: str = DEFAULT_COMPANY_DOMAIN,
        timezone: str = DEFAULT_TIMEZONE,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        cache: Optional[TTLCache] = None,
        field_resolver: Optional[FieldResolver] = None,
        bulk_fetcher: Optional[BulkFetcher] = None,
    ):
        """Initialize the service.

        Args:
            client: PipedriveClient or DummyPipedriveClient
            company_domain: Host used to build deal URLs
            timezone: Default IANA timezone for digests
            cache_ttl: Seconds to keep stages and filter listings
            cache: Shared cache (a private one is created if omitted)
            field_resolver: Field resolver (defaults to one over `client.list_fields`)
            bulk_fetcher: Batched id lookups (defaults to batches of 100)
        """
        self.client = client
        self.company_domain = company_domain
        self.timezone = timezone
        self.cache_ttl = cache_ttl
        self.cache = cache if cache is not None else TTLCache()
        self.field_resolver = field_resolver or FieldResolver(client.list_fields)
        self.bulk = bulk_fetcher or BulkFetcher()

    @classmethod
    def from_config(cls, cfg: Any, client: Any) -> "SalesQueueService":
        return cls(
            client,
            company_domain=cfg.company_domain,
            timezone=cfg.timezone,
            cache_ttl=cfg.cache_ttl,
        )

    # =========================================================================
    # Reference data
    # =========================================================================

    async def load_stages(self) -> Dict[int, str]:
        """Stage id -> name table, cached for `cache_ttl` seconds."""
        stages = self.cache.get(STAGES_CACHE_KEY)
        if stages is None:
            stages = await self.client.list_stages()
            self.cache.set(STAGES_CACHE_KEY, stages, self.cache_ttl)
            logger.debug(f"Loaded {len(stages)} stages")
        return {stage.id: stage.name for stage in stages}

    async def list_filters(self, filter_type: Optional[str] = None) -> List[SavedFilter]:
        """Saved filters, optionally of one type, cached for `cache_ttl` seconds."""
        cache_key = f"{FILTERS_CACHE_PREFIX}{filter_type or 'all'}"
        filters = self.cache.get(cache_key)
        if filters is None:
            filters = await self.client.list_filters(filter_type)
            self.cache.set(cache_key, filters, self.cache_ttl)
        return filters

    async def resolve_filter_id(self, value: FilterRef, expected_type: Optional[str] = None) -> int:
        """Numeric filter id for an id or a saved filter name.

        Names match case-insensitively and must match exactly one filter
        (of `expected_type`, when given).

        Raises:
            FilterResolutionError: If no filter or several filters match.
        """
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        text = str(value).strip()
        if text.isdigit():
            return int(text)

        filters = await self.list_filters(expected_type)
        matches = [f for f in filters if f.name.strip().lower() == text.lower()]
        if len(matches) != 1:
            raise FilterResolutionError(text, matches, expected_type)

        logger.debug(f"Resolved filter '{text}' to {matches[0].describe()}")
        return matches[0].id

    async def list_fields(self, object_type: str) -> List[FieldDefinition]:
        return await self.field_resolver.definitions(object_type)

    async def create_filter(
        self,
        name: str,
        conditions: Any,
        filter_type: str = "deals",
    ) -> SavedFilter:
        """Normalize `conditions` and create a saved filter from them.

        Leaves without an explicit object use the filter type's object.

        Raises:
            FilterError: If the conditions are malformed or a field is unknown.
        """
        if not name or not name.strip():
            raise ValueError("Filter name must not be empty")

        default_object = normalize_object_type(filter_type)
        normalizer = ConditionNormalizer(self.field_resolver)
        canonical = await normalizer.normalize(conditions, default_object)

        created = await self.client.create_filter(name.strip(), canonical.to_api(), filter_type)
        self.cache.delete_prefix(FILTERS_CACHE_PREFIX)
        return created

    # =========================================================================
    # Paged listings
    # =========================================================================

    async def fetch_activities(self, filter_id: int, limit: int) -> List[Activity]:
        return await fetch_paged(
            lambda cursor, size: self.client.get_activities_page(filter_id, limit=size, cursor=cursor),
            limit,
        )

    async def fetch_deals(self, filter_id: int, limit: int) -> List[Deal]:
        return await fetch_paged(
            lambda cursor, size: self.client.get_deals_page(filter_id, limit=size, cursor=cursor),
            limit,
        )

    # =========================================================================
    # Digest
    # =========================================================================

    def deal_url(self, deal_id: int) -> str:
        return f"https://{self.company_domain}/deal/{deal_id}"

    async def get_sales_queue_digest(
        self,
        overdue_filter: FilterRef,
        today_filter: FilterRef,
        missing_filter: FilterRef,
        limits: Optional[DigestLimits] = None,
        timezone: Optional[str] = None,
        now: Optional[datetime] = None,
        include_people_orgs: bool = True,
    ) -> Digest:
        """Build the digest for three saved filters.

        Args:
            overdue_filter: Filter (id or name) of overdue activities
            today_filter: Filter (id or name) of activities due today
            missing_filter: Filter (id or name) of deals missing a next action
            limits: Per-section maximum record counts
            timezone: IANA timezone for "today" and `generated_at`
            now: Reference instant (defaults to the current time)
            include_people_orgs: Look up referenced persons, orgs and deals

        Returns:
            The assembled Digest.

        Raises:
            ConnectorError: If any of the three listings fails.
            FilterResolutionError: If a filter name does not resolve.
        """
        limits = limits or DigestLimits()
        tz_name = timezone or self.timezone
        tz = resolve_timezone(tz_name)
        if now is None:
            now = datetime.now(dt_timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=dt_timezone.utc)
        local_now = now.astimezone(tz)
        today = local_now.date()

        overdue_id = await self.resolve_filter_id(overdue_filter, "activity")
        today_id = await self.resolve_filter_id(today_filter, "activity")
        missing_id = await self.resolve_filter_id(missing_filter, "deals")
        logger.info(
            f"Building sales queue digest (overdue={overdue_id}, today={today_id}, "
            f"missing={missing_id}, timezone={tz_name})"
        )

        stages = await self.load_stages()

        overdue_activities, today_activities, missing_deals = await asyncio.gather(
            self.fetch_activities(overdue_id, limits.overdue),
            self.fetch_activities(today_id, limits.today),
            self.fetch_deals(missing_id, limits.missing),
        )

        persons: Dict[int, Person] = {}
        orgs: Dict[int, Organization] = {}
        deals: Dict[int, Deal] = {}
        if include_people_orgs:
            persons, orgs, deals = await self._fetch_references(
                overdue_activities + today_activities, missing_deals
            )

        overdue_items = [
            self.enrich_activity(a, stages, deals, persons, orgs, today) for a in overdue_activities
        ]
        today_items = [
            self.enrich_activity(a, stages, deals, persons, orgs, today) for a in today_activities
        ]
        missing_items = [self.enrich_deal(d, stages, persons, orgs) for d in missing_deals]

        digest = Digest(
            generated_at=local_now.replace(microsecond=0).isoformat(),
            timezone=tz_name,
            sections=DigestSections(
                overdue=overdue_items,
                due_today=today_items,
                missing_next_action=missing_items,
            ),
            stats=DigestStats(
                overdue_count=len(overdue_items),
                due_today_count=len(today_items),
                missing_next_action_count=len(missing_items),
            ),
            source=DigestSource(
                filter_ids=DigestFilterIds(
                    overdue_activities_filter_id=overdue_id,
                    today_activities_filter_id=today_id,
                    missing_next_action_deals_filter_id=missing_id,
                )
            ),
        )
        logger.info(
            f"Digest ready: {len(overdue_items)} overdue, {len(today_items)} due today, "
            f"{len(missing_items)} missing next action"
        )
        return digest

    async def _fetch_references(self, activities: Iterable[Activity], deals: Iterable[Deal]):
        person_ids: Set[int] = set()
        org_ids: Set[int] = set()
        deal_ids: Set[int] = set()

        for activity in activities:
            if activity.person_id:
                person_ids.add(activity.person_id.id)
            if activity.org_id:
                org_ids.add(activity.org_id.id)
            if activity.deal_id:
                deal_ids.add(activity.deal_id.id)
        for deal in deals:
            if deal.person_id:
                person_ids.add(deal.person_id.id)
            if deal.org_id:
                org_ids.add(deal.org_id.id)

        failures: List[BatchFailure] = []
        persons, orgs, deals_by_id = await asyncio.gather(
            self.bulk.fetch(sorted(person_ids), self.client.get_persons_by_ids, label="persons", failures=failures),
            self.bulk.fetch(
                sorted(org_ids), self.client.get_organizations_by_ids, label="organizations", failures=failures
            ),
            self.bulk.fetch(sorted(deal_ids), self.client.get_deals_by_ids, label="deals", failures=failures),
        )
        if failures:
            labels = ", ".join(sorted({f.label for f in failures}))
            logger.warning(f"{len(failures)} reference batch(es) failed ({labels}); names fall back to defaults")
        return persons, orgs, deals_by_id

    def enrich_activity(
        self,
        activity: Activity,
        stages: Dict[int, str],
        deals: Dict[int, Deal],
        persons: Dict[int, Person],
        orgs: Dict[int, Organization],
        today: date,
    ) -> ActivityItem:
        deal = None
        deal_id = _ref_id(activity.deal_id)
        if deal_id is not None:
            deal_data = deals.get(deal_id)
            stage_id = (deal_data.stage_id if deal_data else None) or 0
            deal = ActivityDeal(
                deal_id=deal_id,
                title=activity.deal_display_title or (deal_data.title if deal_data else "") or "",
                stage_id=stage_id,
                stage_name=stages.get(stage_id, f"Stage {stage_id}") if stage_id else "",
                url=self.deal_url(deal_id),
            )

        person = None
        person_id = _ref_id(activity.person_id)
        if person_id is not None:
            person_data = persons.get(person_id)
            person = ActivityPerson(
                id=person_id,
                name=activity.person_display_name or (person_data.name if person_data else "") or "Unknown",
                email=person_data.primary_email if person_data else None,
            )

        return ActivityItem(
            activity_id=activity.id,
            activity_subject=activity.subject,
            activity_type=activity.type,
            due_date=activity.due_date,
            days_overdue=days_overdue(activity.due_date, today),
            deal=deal,
            person=person,
            org=self._party(activity.org_id, activity.org_display_name, orgs),
        )

    def enrich_deal(
        self,
        deal: Deal,
        stages: Dict[int, str],
        persons: Dict[int, Person],
        orgs: Dict[int, Organization],
    ) -> DealItem:
        if deal.stage_id is None:
            stage_name = ""
        else:
            stage_name = stages.get(deal.stage_id, f"Stage {deal.stage_id}")

        return DealItem(
            deal_id=deal.id,
            title=deal.title,
            stage_id=deal.stage_id,
            stage_name=stage_name,
            owner_id=deal.owner_id,
            undone_activities_count=deal.undone_activities_count,
            next_activity_id=deal.next_activity_id or None,
            last_outgoing_mail_time=deal.last_outgoing_mail_time or None,
            last_incoming_mail_time=deal.last_incoming_mail_time or None,
            url=self.deal_url(deal.id),
            person=self._party(deal.person_id, deal.person_display_name, persons),
            org=self._party(deal.org_id, deal.org_display_name, orgs),
        )

    @staticmethod
    def _party(ref: Any, own_name: Optional[str], lookup: Dict[int, Any]) -> Optional[PartyRef]:
        if ref is None:
            return None
        entity = lookup.get(ref.id)
        return PartyRef(id=ref.id, name=own_name or (entity.name if entity else "") or "Unknown")
