"""Pipedrive entity snapshots and digest output models.

Entity models are read-only snapshots of upstream records. Unknown upstream
fields are kept (`extra="allow"`) but never interpreted. Relationship
fields are reduced to `EntityRef` on validation via `normalize_ref`.

Output models define the digest document shape. Keys documented as
"absent when unknown" are dropped from the serialized form rather than
emitted as null.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer

from salesqueue.pipedrive.refs import EntityRef, normalize_ref

# =============================================================================
# Upstream entities
# =============================================================================


class PipedriveEntity(BaseModel):
    """Base for upstream snapshots."""

    id: int

    model_config = ConfigDict(extra="allow", frozen=True)


def _pick_contact_value(values: Any) -> Optional[str]:
    """Primary entry of a Pipedrive email list, else the first one."""
    if not values:
        return None
    if isinstance(values, str):
        return values
    if not isinstance(values, list):
        return None
    for item in values:
        if isinstance(item, dict) and item.get("primary") and item.get("value"):
            return item["value"]
    first = values[0]
    if isinstance(first, dict):
        return first.get("value") or None
    return first or None


class Activity(PipedriveEntity):
    """A scheduled activity (call, meeting, task...)."""

    subject: str = ""
    type: str = ""
    due_date: Optional[str] = None
    due_time: Optional[str] = None
    person_id: Optional[EntityRef] = None
    person_name: Optional[str] = None
    org_id: Optional[EntityRef] = None
    org_name: Optional[str] = None
    deal_id: Optional[EntityRef] = None
    deal_title: Optional[str] = None
    done: bool = False

    @field_validator("person_id", "org_id", "deal_id", mode="before")
    @classmethod
    def _normalize_ref(cls, v: Any) -> Optional[EntityRef]:
        return normalize_ref(v)

    @field_validator("subject", "type", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def person_display_name(self) -> Optional[str]:
        return self.person_name or (self.person_id.name if self.person_id else None)

    @property
    def org_display_name(self) -> Optional[str]:
        return self.org_name or (self.org_id.name if self.org_id else None)

    @property
    def deal_display_title(self) -> Optional[str]:
        return self.deal_title or (self.deal_id.name if self.deal_id else None)


class Deal(PipedriveEntity):
    """An open deal."""

    title: str = ""
    value: Optional[float] = None
    currency: Optional[str] = None
    stage_id: Optional[int] = None
    person_id: Optional[EntityRef] = None
    person_name: Optional[str] = None
    org_id: Optional[EntityRef] = None
    org_name: Optional[str] = None
    status: Optional[str] = None
    add_time: Optional[str] = None
    update_time: Optional[str] = None
    owner_id: Any = None
    next_activity_id: Optional[int] = None
    next_activity_date: Optional[str] = None
    undone_activities_count: Optional[int] = None
    last_incoming_mail_time: Optional[str] = None
    last_outgoing_mail_time: Optional[str] = None

    @field_validator("person_id", "org_id", mode="before")
    @classmethod
    def _normalize_ref(cls, v: Any) -> Optional[EntityRef]:
        return normalize_ref(v)

    @field_validator("title", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def person_display_name(self) -> Optional[str]:
        return self.person_name or (self.person_id.name if self.person_id else None)

    @property
    def org_display_name(self) -> Optional[str]:
        return self.org_name or (self.org_id.name if self.org_id else None)


class Person(PipedriveEntity):
    """A contact person.

    The legacy API calls the email list `email`, the versioned one `emails`.
    """

    name: str = ""
    email: Any = None
    emails: Any = None

    @property
    def primary_email(self) -> Optional[str]:
        return _pick_contact_value(self.emails) or _pick_contact_value(self.email)


class Organization(PipedriveEntity):
    """A company."""

    name: str = ""


class Stage(PipedriveEntity):
    """A pipeline stage."""

    name: str = ""
    pipeline_id: Optional[int] = None
    order_nr: Optional[int] = None


class SavedFilter(PipedriveEntity):
    """A saved server-side filter."""

    name: str = ""
    type: str = ""

    def describe(self) -> str:
        return f"{self.name} (id={self.id}, type={self.type})"


class FieldDefinition(PipedriveEntity):
    """Metadata of one entity field, as listed by the *Fields endpoints."""

    key: str = ""
    name: str = ""
    field_type: Optional[str] = None


# =============================================================================
# Digest output
# =============================================================================


class ActivityDeal(BaseModel):
    """Deal referenced by an activity."""

    deal_id: int
    title: str
    stage_id: int
    stage_name: str
    url: str


class ActivityPerson(BaseModel):
    """Person referenced by an activity. `email` is absent when unknown."""

    id: int
    name: str
    email: Optional[str] = None

    @model_serializer(mode="wrap")
    def _omit_unknown(self, handler):
        data = handler(self)
        if self.email is None:
            data.pop("email", None)
        return data


class PartyRef(BaseModel):
    """Person or organization as id + display name."""

    id: int
    name: str


class ActivityItem(BaseModel):
    """One activity in the overdue or due-today section.

    `days_overdue` is absent (not zero) unless the due day is before today.
    """

    activity_id: int
    activity_subject: str
    activity_type: str
    due_date: Optional[str]
    days_overdue: Optional[int] = None
    deal: Optional[ActivityDeal] = None
    person: Optional[ActivityPerson] = None
    org: Optional[PartyRef] = None

    @model_serializer(mode="wrap")
    def _omit_unknown(self, handler):
        data = handler(self)
        if self.days_overdue is None:
            data.pop("days_overdue", None)
        return data


class DealItem(BaseModel):
    """One deal in the missing-next-action section."""

    deal_id: int
    title: str
    stage_id: Optional[int]
    stage_name: str
    owner_id: Any = None
    undone_activities_count: Optional[int] = None
    next_activity_id: Optional[int] = None
    last_outgoing_mail_time: Optional[str] = None
    last_incoming_mail_time: Optional[str] = None
    url: str
    person: Optional[PartyRef] = None
    org: Optional[PartyRef] = None


class DigestSections(BaseModel):
    overdue: List[ActivityItem] = Field(default_factory=list)
    due_today: List[ActivityItem] = Field(default_factory=list)
    missing_next_action: List[DealItem] = Field(default_factory=list)


class DigestStats(BaseModel):
    overdue_count: int = 0
    due_today_count: int = 0
    missing_next_action_count: int = 0


class DigestFilterIds(BaseModel):
    overdue_activities_filter_id: int
    today_activities_filter_id: int
    missing_next_action_deals_filter_id: int


class DigestSource(BaseModel):
    filter_ids: DigestFilterIds


class Digest(BaseModel):
    """The consolidated sales queue document."""

    generated_at: str = Field(..., description="ISO-8601 with UTC offset, in `timezone`")
    timezone: str
    sections: DigestSections
    stats: DigestStats
    source: DigestSource

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(indent=indent)
