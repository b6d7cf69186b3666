"""Estimated renewal dates for active subscriptions.

Without the billing provider's period end, the next renewal is estimated
from the signup date and the billing cycle (30 days monthly, 365 annual).
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timezone

from src.app.admin.constants import as_utc
from src.app.admin.schemas import (
    OrgSnapshot,
    ReasonCount,
    RenewalCustomer,
    RenewalStats,
)

URGENCY_ORDER = {"this_week": 0, "this_month": 1, "next_month": 2, "later": 3}


def days_until_renewal(
    created_at: datetime | None, billing_period: str | None, now: datetime | None = None
) -> int:
    now = now or datetime.now(timezone.utc)
    period = 365 if billing_period == "annual" else 30
    created = as_utc(created_at) if created_at else now
    days_since_created = math.floor((now - created).total_seconds() / 86400)
    return period - (days_since_created % period)


def renewal_urgency(days: int) -> str:
    if days <= 7:
        return "this_week"
    if days <= 30:
        return "this_month"
    if days <= 60:
        return "next_month"
    return "later"


def build_renewal_pipeline(
    snapshots: Iterable[OrgSnapshot], now: datetime | None = None
) -> list[RenewalCustomer]:
    """Renewal rows ordered by urgency, most urgent first."""
    now = now or datetime.now(timezone.utc)
    customers = []
    for snap in snapshots:
        days = days_until_renewal(snap.created_at, snap.billing_period, now)
        customers.append(
            RenewalCustomer(
                org_id=snap.org_id,
                org_name=snap.org_name,
                slug=snap.slug,
                pricing_tier=snap.pricing_tier,
                subscription_status=snap.subscription_status,
                billing_period=snap.billing_period,
                stripe_subscription_id=snap.stripe_subscription_id,
                owner=snap.owner,
                days_until_renewal=days,
                renewal_urgency=renewal_urgency(days),
            )
        )
    customers.sort(key=lambda c: URGENCY_ORDER[c.renewal_urgency])
    return customers


def compute_renewal_stats(
    customers: list[RenewalCustomer], churn_reasons: Iterable[str]
) -> RenewalStats:
    counts = Counter(churn_reasons)
    return RenewalStats(
        upcoming_this_week=sum(1 for c in customers if c.renewal_urgency == "this_week"),
        upcoming_this_month=sum(1 for c in customers if c.renewal_urgency == "this_month"),
        recent_churn_count=sum(counts.values()),
        top_churn_reasons=[ReasonCount(reason=r, count=n) for r, n in counts.most_common()],
    )
