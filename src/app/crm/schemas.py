"""Pydantic schemas for CRM entities.

Create/Update schemas carry validated input into the repository; Read
schemas are what the repository returns. Request bodies accept the
camelCase keys the dashboard sends (``contactId``) as well as snake_case.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class DealStage(str, Enum):
    lead = "lead"
    qualified = "qualified"
    demo_scheduled = "demo_scheduled"
    proposal = "proposal"
    negotiation = "negotiation"
    closed_won = "closed_won"
    closed_lost = "closed_lost"


class ActivityType(str, Enum):
    call = "call"
    email = "email"
    demo = "demo"
    meeting = "meeting"
    linkedin_message = "linkedin_message"
    note = "note"


class ActivityOutcome(str, Enum):
    completed = "completed"
    no_answer = "no_answer"
    voicemail = "voicemail"
    scheduled_followup = "scheduled_followup"


class ReminderPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class TagColor(str, Enum):
    gray = "gray"
    red = "red"
    orange = "orange"
    yellow = "yellow"
    green = "green"
    blue = "blue"
    purple = "purple"
    pink = "pink"


class InputModel(BaseModel):
    """Base for input schemas: camelCase aliases, enums stored as values."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    @field_validator("contact_id", "deal_id", "gmail_account_id", mode="before", check_fields=False)
    @classmethod
    def blank_id_is_none(cls, value: object) -> object:
        """The dashboard sends ``""`` when no contact or deal is selected."""
        if isinstance(value, str) and not value.strip():
            return None
        return value


# ── Contacts ────────────────────────────────────────────────────────────────


class ContactCreate(InputModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    title: str | None = None
    property_type: str | None = None
    website: str | None = None
    linkedin_url: str | None = None
    notes: str | None = None
    source: str | None = None
    tags: list[str] = Field(default_factory=list)


class ContactUpdate(InputModel):
    """Partial update; only fields present in the request are applied."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    title: str | None = None
    property_type: str | None = None
    website: str | None = None
    linkedin_url: str | None = None
    notes: str | None = None
    source: str | None = None
    tags: list[str] | None = None


class ContactRead(BaseModel):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    title: str | None = None
    property_type: str | None = None
    website: str | None = None
    linkedin_url: str | None = None
    notes: str | None = None
    source: str | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Deals ───────────────────────────────────────────────────────────────────


class DealCreate(InputModel):
    contact_id: str | None = None
    title: str | None = None
    stage: DealStage = DealStage.lead
    tier: str | None = None
    value: float | None = None
    billing_period: str = "monthly"
    property_count: int = 1
    property_count_range: str | None = None
    lead_source: str | None = None
    current_system: str | None = None
    pain_point: str | None = None
    probability: int = 10
    expected_close_date: datetime | None = None
    next_step: str | None = None
    follow_up_date: datetime | None = None
    closed_at: datetime | None = None
    lost_reason: str | None = None
    notes: str | None = None
    sort_order: int = 0
    gmail_account_id: str | None = None
    enquiry_type: str | None = None


class DealUpdate(InputModel):
    """Partial update; only fields present in the request are applied."""

    contact_id: str | None = None
    title: str | None = None
    stage: DealStage | None = None
    tier: str | None = None
    value: float | None = None
    billing_period: str | None = None
    property_count: int | None = None
    property_count_range: str | None = None
    lead_source: str | None = None
    current_system: str | None = None
    pain_point: str | None = None
    probability: int | None = Field(default=None, ge=0, le=100)
    expected_close_date: datetime | None = None
    next_step: str | None = None
    follow_up_date: datetime | None = None
    closed_at: datetime | None = None
    lost_reason: str | None = None
    last_stage: DealStage | None = None
    notes: str | None = None
    sort_order: int | None = None
    enquiry_type: str | None = None


class DealRead(BaseModel):
    id: str
    contact_id: str | None = None
    title: str
    stage: str = "lead"
    tier: str | None = None
    value: float | None = None
    billing_period: str | None = "monthly"
    property_count: int | None = 1
    property_count_range: str | None = None
    lead_source: str | None = None
    current_system: str | None = None
    pain_point: str | None = None
    probability: int | None = 10
    expected_close_date: datetime | None = None
    next_step: str | None = None
    follow_up_date: datetime | None = None
    closed_at: datetime | None = None
    lost_reason: str | None = None
    last_stage: str | None = None
    notes: str | None = None
    sort_order: int | None = 0
    gmail_account_id: str | None = None
    enquiry_type: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Activities ──────────────────────────────────────────────────────────────


class ActivityCreate(InputModel):
    deal_id: str | None = None
    contact_id: str | None = None
    type: ActivityType | None = None
    subject: str | None = None
    description: str | None = None
    outcome: ActivityOutcome | None = None
    scheduled_at: datetime | None = None
    completed_at: datetime | None = None


class ActivityRead(BaseModel):
    id: str
    deal_id: str | None = None
    contact_id: str | None = None
    type: str
    subject: str | None = None
    description: str | None = None
    outcome: str | None = None
    scheduled_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None


# ── Reminders ───────────────────────────────────────────────────────────────


class ReminderCreate(InputModel):
    deal_id: str | None = None
    contact_id: str | None = None
    title: str | None = None
    description: str | None = None
    due_at: datetime | None = None
    priority: ReminderPriority = ReminderPriority.medium


class ReminderUpdate(InputModel):
    title: str | None = None
    description: str | None = None
    due_at: datetime | None = None
    priority: ReminderPriority | None = None
    is_completed: bool | None = None


class ReminderFilter(BaseModel):
    """Filter criteria for listing reminders."""

    show_completed: bool = False
    deal_id: str | None = None
    contact_id: str | None = None
    due_from: datetime | None = None
    due_before: datetime | None = None


class ReminderRead(BaseModel):
    id: str
    deal_id: str | None = None
    contact_id: str | None = None
    title: str
    description: str | None = None
    due_at: datetime
    is_completed: bool = False
    completed_at: datetime | None = None
    priority: str | None = "medium"
    created_at: datetime | None = None


# ── Tags ────────────────────────────────────────────────────────────────────


class TagCreate(InputModel):
    name: str | None = None
    color: TagColor = TagColor.gray

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str | None) -> str | None:
        return value.strip() if value is not None else None


class TagUpdate(InputModel):
    name: str | None = None
    color: TagColor | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str | None) -> str | None:
        return value.strip() if value is not None else None


class TagRead(BaseModel):
    id: str
    name: str
    color: str = "gray"
    created_at: datetime | None = None


# ── Composite views ─────────────────────────────────────────────────────────


class DealWithActivities(DealRead):
    """Deal nested in a contact detail view with its latest activities."""

    activities: list[ActivityRead] = Field(default_factory=list)


class ContactWithDeals(ContactRead):
    deals: list[DealRead] = Field(default_factory=list)


class ContactDetail(ContactRead):
    """Contact with deals, recent activities and reminders."""

    deals: list[DealWithActivities] = Field(default_factory=list)
    activities: list[ActivityRead] = Field(default_factory=list)
    reminders: list[ReminderRead] = Field(default_factory=list)


class DealWithContact(DealRead):
    contact: ContactRead | None = None
    last_contacted_at: datetime | None = None


class DealDetail(DealRead):
    """Deal with its contact, recent activities and reminders."""

    contact: ContactRead | None = None
    activities: list[ActivityRead] = Field(default_factory=list)
    reminders: list[ReminderRead] = Field(default_factory=list)
