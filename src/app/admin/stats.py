"""Customer totals and MRR for the admin console overview."""

from __future__ import annotations

import math
from collections import Counter
from datetime import datetime, timezone

from src.app.admin.billing import calculate_account_monthly_total
from src.app.admin.constants import as_utc
from src.app.admin.schemas import AdminStats, BillingInput


def _round(value: float) -> int:
    return math.floor(value + 0.5)


def compute_admin_stats(
    orgs: list[BillingInput],
    crm_subscriptions: dict[str, str | None],
    now: datetime | None = None,
) -> AdminStats:
    """Aggregate stats over every organization.

    Args:
        orgs: Billing fields and unit count of every organization.
        crm_subscriptions: Active CRM add-on billing period by organization id.
        now: Reference time for "new this month".
    """
    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    by_status = Counter(o.subscription_status or "unknown" for o in orgs)
    by_tier = Counter(o.pricing_tier or "unknown" for o in orgs)
    new_this_month = sum(
        1 for o in orgs if o.created_at is not None and as_utc(o.created_at) >= month_start
    )

    base = expansion = crm_addon = 0.0
    total_units = 0
    for org in orgs:
        if org.subscription_status != "active":
            continue
        total_units += org.unit_count
        has_crm = org.id in crm_subscriptions
        breakdown = calculate_account_monthly_total(
            org, has_crm, crm_subscriptions.get(org.id) or "monthly"
        )
        base += breakdown.base_mrr
        expansion += breakdown.extra_properties_mrr + breakdown.extra_units_mrr
        crm_addon += breakdown.crm_addon_mrr

    return AdminStats(
        total=len(orgs),
        active=by_status.get("active", 0),
        trialing=by_status.get("trialing", 0),
        past_due=by_status.get("past_due", 0),
        canceled=by_status.get("canceled", 0),
        new_this_month=new_this_month,
        estimated_mrr=_round(base + expansion + crm_addon),
        base_mrr=_round(base),
        expansion_mrr=_round(expansion),
        crm_addon_mrr=_round(crm_addon),
        crm_addon_count=len(crm_subscriptions),
        total_units_managed=total_units,
        by_tier=dict(by_tier),
        by_status=dict(by_status),
    )
