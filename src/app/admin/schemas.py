"""Pydantic schemas for the admin customer console.

Read models mirror the platform tables; snapshot models carry the
per-organization aggregates (property setup, chat sessions, tickets,
usage) that the pure scoring modules work from.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from src.app.crm.schemas import InputModel

# ── Organizations ───────────────────────────────────────────────────────────


class OwnerInfo(BaseModel):
    email: str
    name: str | None = None


class OrganizationRead(BaseModel):
    id: str
    name: str
    slug: str
    type: str | None = None
    pricing_tier: str | None = None
    subscription_status: str | None = None
    billing_period: str | None = None
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    trial_started_at: datetime | None = None
    trial_ends_at: datetime | None = None
    trial_extended_count: int | None = None
    extra_properties_count: int | None = None
    extra_units_count: int | None = None
    phone_number: str | None = None
    default_language: str | None = None
    onboarding_completed_at: datetime | None = None
    created_at: datetime | None = None
    property_count: int = 0
    unit_count: int = 0
    member_count: int = 0
    owner: OwnerInfo | None = None
    has_crm_addon: bool = False


class CrmSubscriptionInfo(BaseModel):
    status: str
    billing_period: str = "monthly"
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False


class OrganizationDetail(OrganizationRead):
    custom_domain: str | None = None
    logo_url: str | None = None
    crm_subscription: CrmSubscriptionInfo | None = None


class OrganizationFilters(BaseModel):
    search: str | None = None
    tier: str | None = None
    status: str | None = None
    sort: Literal["name", "tier", "status", "created_at"] = "created_at"
    order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    date_from: datetime | None = None
    date_to: datetime | None = None
    has_crm_addon: bool = False


class OrganizationPage(BaseModel):
    organizations: list[OrganizationRead] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20


class MemberUser(BaseModel):
    name: str | None = None
    email: str
    image: str | None = None


class MemberRead(BaseModel):
    id: str
    user_id: str
    role: str
    job_title: str | None = None
    created_at: datetime | None = None
    user: MemberUser


class UsageRead(BaseModel):
    month: str
    messages_used: int = 0
    messages_cached: int = 0
    messages_faq_matched: int = 0
    messages_direct_lookup: int = 0
    tokens_input: int = 0
    tokens_output: int = 0


# ── Console actions ─────────────────────────────────────────────────────────


class CustomerAction(InputModel):
    """Body of ``PATCH /customers/{id}``; fields used depend on ``action``."""

    action: str | None = None
    tier: str | None = None
    days: int | str | None = None
    name: str | None = None
    phone_number: str | None = None
    subscription_status: str | None = None


class ChurnReasonCreate(InputModel):
    reason: str | None = None
    details: str | None = None


class ChurnRecord(BaseModel):
    id: str
    org_id: str
    org_name: str = "Unknown"
    slug: str = ""
    reason: str
    details: str | None = None
    health_score_at_churn: int | None = None
    created_at: datetime | None = None


# ── Billing ─────────────────────────────────────────────────────────────────


class BillingInput(BaseModel):
    """Billing-relevant fields of one organization."""

    id: str = ""
    pricing_tier: str | None = None
    subscription_status: str | None = None
    billing_period: str | None = None
    extra_properties_count: int | None = 0
    extra_units_count: int | None = 0
    created_at: datetime | None = None
    unit_count: int = 0


class MrrBreakdown(BaseModel):
    base_mrr: float = 0
    extra_properties_mrr: float = 0
    extra_units_mrr: float = 0
    crm_addon_mrr: float = 0
    total_mrr: float = 0


class AdminStats(BaseModel):
    total: int = 0
    active: int = 0
    trialing: int = 0
    past_due: int = 0
    canceled: int = 0
    new_this_month: int = 0
    estimated_mrr: int = 0
    base_mrr: int = 0
    expansion_mrr: int = 0
    crm_addon_mrr: int = 0
    crm_addon_count: int = 0
    total_units_managed: int = 0
    by_tier: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)


# ── Activity snapshots ──────────────────────────────────────────────────────


class PropertySetup(BaseModel):
    has_faqs: bool = False
    has_content: bool = False
    has_tokens: bool = False


class TicketCounts(BaseModel):
    total: int = 0
    open: int = 0
    open_high_priority: int = 0
    resolved: int = 0


class OrgSnapshot(BaseModel):
    """Aggregated platform activity for one organization."""

    org_id: str
    org_name: str
    slug: str = ""
    pricing_tier: str | None = None
    subscription_status: str | None = None
    billing_period: str | None = None
    stripe_subscription_id: str | None = None
    created_at: datetime | None = None
    trial_started_at: datetime | None = None
    trial_ends_at: datetime | None = None
    onboarding_completed_at: datetime | None = None
    owner: OwnerInfo | None = None
    properties: list[PropertySetup] = Field(default_factory=list)
    unit_count: int = 0
    messages_used: int = 0
    chat_sessions_30d: int = 0
    last_chat_at: datetime | None = None
    tickets: TicketCounts = Field(default_factory=TicketCounts)

    @property
    def property_count(self) -> int:
        return len(self.properties)


# ── Health ──────────────────────────────────────────────────────────────────


class OrgHealthInput(BaseModel):
    usage_percent: float = 0
    properties: list[PropertySetup] = Field(default_factory=list)
    chat_sessions_last_30d: int = 0
    open_tickets: int = 0
    open_high_priority_tickets: int = 0
    total_tickets: int = 0
    resolved_tickets: int = 0
    days_since_last_chat: int | None = None


class HealthBreakdown(BaseModel):
    ai_usage: int
    property_setup: int
    guest_engagement: int
    support_health: int
    account_activity: int
    total: int
    category: str


class CustomerHealth(BaseModel):
    org_id: str
    org_name: str
    slug: str = ""
    pricing_tier: str | None = None
    subscription_status: str | None = None
    owner: OwnerInfo | None = None
    property_count: int = 0
    breakdown: HealthBreakdown
    usage_percent: int = 0
    chat_sessions_last_30d: int = 0
    days_since_last_chat: int | None = None


class HealthStats(BaseModel):
    avg_score: int = 0
    healthy_count: int = 0
    at_risk_count: int = 0
    critical_count: int = 0
    total_customers: int = 0


# ── Renewals ────────────────────────────────────────────────────────────────


class RenewalCustomer(BaseModel):
    org_id: str
    org_name: str
    slug: str = ""
    pricing_tier: str | None = None
    subscription_status: str | None = None
    billing_period: str | None = None
    stripe_subscription_id: str | None = None
    owner: OwnerInfo | None = None
    health_score: int | None = None
    days_until_renewal: int
    renewal_urgency: str


class ReasonCount(BaseModel):
    reason: str
    count: int


class RenewalStats(BaseModel):
    upcoming_this_week: int = 0
    upcoming_this_month: int = 0
    recent_churn_count: int = 0
    top_churn_reasons: list[ReasonCount] = Field(default_factory=list)


# ── Trials ──────────────────────────────────────────────────────────────────


class TrialMilestones(BaseModel):
    has_property: bool = False
    has_faq: bool = False
    has_content_section: bool = False
    has_first_chat: bool = False
    onboarding_completed: bool = False

    @property
    def completed(self) -> int:
        return sum(self.model_dump().values())


class TrialCustomer(BaseModel):
    org_id: str
    org_name: str
    slug: str = ""
    pricing_tier: str | None = None
    trial_started_at: datetime | None = None
    trial_ends_at: datetime | None = None
    days_remaining: int
    days_elapsed: int
    onboarding_completed_at: datetime | None = None
    milestones: TrialMilestones
    milestones_completed: int
    last_activity_days_ago: int | None = None
    owner: OwnerInfo | None = None


class TrialStats(BaseModel):
    active_trials: int = 0
    stalled_count: int = 0
    avg_milestones: float = 0
    urgent_count: int = 0


# ── Upgrades ────────────────────────────────────────────────────────────────


class UpgradeTrigger(BaseModel):
    type: str
    description: str
    current_value: int
    limit_value: int


class UpgradeOpportunity(BaseModel):
    org_id: str
    org_name: str
    slug: str = ""
    current_tier: str
    subscription_status: str | None = None
    billing_period: str | None = None
    owner: OwnerInfo | None = None
    triggers: list[UpgradeTrigger]
    suggested_tier: str
    potential_mrr_increase: float


class TriggerCount(BaseModel):
    type: str
    count: int


class UpgradeStats(BaseModel):
    total_opportunities: int = 0
    potential_mrr_increase: int = 0
    trigger_breakdown: list[TriggerCount] = Field(default_factory=list)
