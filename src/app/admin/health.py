"""Customer health scoring.

The score (0-100) adds five components:
- ai_usage (0-25): share of the tier's monthly message allowance used
- property_setup (0-25): FAQs, content sections and access tokens per property
- guest_engagement (0-25): chat sessions in the last 30 days
- support_health (0-15): open and high-priority tickets, resolution ratio
- account_activity (0-10): days since the last chat session

Categories: healthy >= 70, at_risk >= 40, otherwise critical.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timezone

from src.app.admin.constants import DEFAULT_TIER, TIER_LIMITS, as_utc
from src.app.admin.schemas import (
    CustomerHealth,
    HealthBreakdown,
    HealthStats,
    OrgHealthInput,
    OrgSnapshot,
    PropertySetup,
)

HEALTH_CATEGORIES = ("healthy", "at_risk", "critical")
DEFAULT_MESSAGE_LIMIT = 1000


def health_category(score: int) -> str:
    if score >= 70:
        return "healthy"
    if score >= 40:
        return "at_risk"
    return "critical"


def score_ai_usage(usage_percent: float) -> int:
    if usage_percent <= 0:
        return 0
    if usage_percent <= 20:
        return 10
    if usage_percent <= 50:
        return 18
    if usage_percent <= 80:
        return 25
    if usage_percent <= 95:
        return 20
    # Close to the limit
    return 12


def score_property_setup(properties: list[PropertySetup]) -> int:
    if not properties:
        return 0
    total = 0
    for prop in properties:
        total += (8 if prop.has_faqs else 0) + (9 if prop.has_content else 0) + (
            8 if prop.has_tokens else 0
        )
    # Halves round up
    return min(25, math.floor(total / len(properties) + 0.5))


def score_guest_engagement(sessions_30d: int) -> int:
    if sessions_30d == 0:
        return 0
    if sessions_30d <= 5:
        return 8
    if sessions_30d <= 20:
        return 16
    if sessions_30d <= 50:
        return 22
    return 25


def score_support_health(open_tickets: int, open_high: int, total: int, resolved: int) -> int:
    if total == 0:
        return 15
    score = 15 - open_tickets * 2 - open_high * 3
    if resolved / total > 0.8:
        score += 5
    return max(0, min(15, score))


def score_account_activity(days_since_last_chat: int | None) -> int:
    if days_since_last_chat is None:
        return 2
    if days_since_last_chat < 7:
        return 10
    if days_since_last_chat < 14:
        return 7
    if days_since_last_chat < 30:
        return 4
    return 1


def calculate_health_score(data: OrgHealthInput) -> HealthBreakdown:
    ai_usage = score_ai_usage(data.usage_percent)
    property_setup = score_property_setup(data.properties)
    guest_engagement = score_guest_engagement(data.chat_sessions_last_30d)
    support_health = score_support_health(
        data.open_tickets,
        data.open_high_priority_tickets,
        data.total_tickets,
        data.resolved_tickets,
    )
    account_activity = score_account_activity(data.days_since_last_chat)
    total = ai_usage + property_setup + guest_engagement + support_health + account_activity
    return HealthBreakdown(
        ai_usage=ai_usage,
        property_setup=property_setup,
        guest_engagement=guest_engagement,
        support_health=support_health,
        account_activity=account_activity,
        total=total,
        category=health_category(total),
    )


def usage_percent(messages_used: int, tier: str | None) -> float:
    """Messages used this month as a percentage of the tier allowance."""
    limit = TIER_LIMITS.get(tier or DEFAULT_TIER, {}).get("messages", DEFAULT_MESSAGE_LIMIT)
    return messages_used / limit * 100 if limit > 0 else 0


def days_since(moment: datetime | None, now: datetime) -> int | None:
    if moment is None:
        return None
    return math.floor((now - as_utc(moment)).total_seconds() / 86400)


def build_customer_health(snapshot: OrgSnapshot, now: datetime | None = None) -> CustomerHealth:
    now = now or datetime.now(timezone.utc)
    percent = usage_percent(snapshot.messages_used, snapshot.pricing_tier)
    since_chat = days_since(snapshot.last_chat_at, now)
    breakdown = calculate_health_score(
        OrgHealthInput(
            usage_percent=percent,
            properties=snapshot.properties,
            chat_sessions_last_30d=snapshot.chat_sessions_30d,
            open_tickets=snapshot.tickets.open,
            open_high_priority_tickets=snapshot.tickets.open_high_priority,
            total_tickets=snapshot.tickets.total,
            resolved_tickets=snapshot.tickets.resolved,
            days_since_last_chat=since_chat,
        )
    )
    return CustomerHealth(
        org_id=snapshot.org_id,
        org_name=snapshot.org_name,
        slug=snapshot.slug,
        pricing_tier=snapshot.pricing_tier,
        subscription_status=snapshot.subscription_status,
        owner=snapshot.owner,
        property_count=snapshot.property_count,
        breakdown=breakdown,
        usage_percent=math.floor(percent + 0.5),
        chat_sessions_last_30d=snapshot.chat_sessions_30d,
        days_since_last_chat=since_chat,
    )


_SORT_KEYS = {
    "score": lambda c: c.breakdown.total,
    "name": lambda c: c.org_name.lower(),
    "usage": lambda c: c.usage_percent,
    "engagement": lambda c: c.chat_sessions_last_30d,
}


def filter_and_sort_health(
    customers: list[CustomerHealth],
    category: str | None = None,
    tier: str | None = None,
    sort: str = "score",
    order: str = "asc",
) -> list[CustomerHealth]:
    """Filter by category and tier, then sort (unknown sort keys use score)."""
    result = [
        c
        for c in customers
        if (not category or c.breakdown.category == category)
        and (not tier or c.pricing_tier == tier)
    ]
    key = _SORT_KEYS.get(sort, _SORT_KEYS["score"])
    return sorted(result, key=key, reverse=order == "desc")


def compute_health_stats(customers: Iterable[CustomerHealth]) -> HealthStats:
    items = list(customers)
    if not items:
        return HealthStats()
    categories = [c.breakdown.category for c in items]
    avg = sum(c.breakdown.total for c in items) / len(items)
    return HealthStats(
        avg_score=math.floor(avg + 0.5),
        healthy_count=categories.count("healthy"),
        at_risk_count=categories.count("at_risk"),
        critical_count=categories.count("critical"),
        total_customers=len(items),
    )
