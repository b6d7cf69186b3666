"""Upgrade opportunity detection for active and trialing customers."""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable

from src.app.admin.billing import monthly_price
from src.app.admin.constants import DEFAULT_TIER, TIER_LIMITS, TIER_ORDER, TIER_PRICING
from src.app.admin.schemas import (
    OrgSnapshot,
    TriggerCount,
    UpgradeOpportunity,
    UpgradeStats,
    UpgradeTrigger,
)
from src.app.admin.health import usage_percent

HIGH_USAGE_PERCENT = 80
RUBY_ENGAGEMENT_SESSIONS = 10


def next_tier(current: str) -> str:
    """The next tier up; the top tier (or an unknown one) stays put."""
    if current not in TIER_ORDER or current == TIER_ORDER[-1]:
        return current
    return TIER_ORDER[TIER_ORDER.index(current) + 1]


def mrr_increase(current: str, suggested: str, billing_period: str | None) -> float:
    if current not in TIER_PRICING or suggested not in TIER_PRICING:
        return 0
    diff = monthly_price(suggested, billing_period) - monthly_price(current, billing_period)
    return round(diff, 2)


def upgrade_triggers(snapshot: OrgSnapshot) -> list[UpgradeTrigger]:
    tier = snapshot.pricing_tier or DEFAULT_TIER
    limits = TIER_LIMITS.get(tier)
    if limits is None:
        return []

    triggers: list[UpgradeTrigger] = []
    percent = usage_percent(snapshot.messages_used, tier)
    if percent >= HIGH_USAGE_PERCENT:
        triggers.append(
            UpgradeTrigger(
                type="usage_high",
                description=f"Using {math.floor(percent + 0.5)}% of AI message limit",
                current_value=snapshot.messages_used,
                limit_value=limits["messages"],
            )
        )
    if snapshot.property_count >= limits["properties"]:
        triggers.append(
            UpgradeTrigger(
                type="property_limit",
                description=(
                    f"At property limit ({snapshot.property_count}/{limits['properties']})"
                ),
                current_value=snapshot.property_count,
                limit_value=limits["properties"],
            )
        )
    if snapshot.unit_count >= limits["units"]:
        triggers.append(
            UpgradeTrigger(
                type="unit_limit",
                description=f"At unit limit ({snapshot.unit_count}/{limits['units']})",
                current_value=snapshot.unit_count,
                limit_value=limits["units"],
            )
        )
    if tier == "ruby" and snapshot.chat_sessions_30d >= RUBY_ENGAGEMENT_SESSIONS:
        triggers.append(
            UpgradeTrigger(
                type="high_engagement_ruby",
                description=(
                    f"High engagement Ruby user ({snapshot.chat_sessions_30d} sessions/month)"
                ),
                current_value=snapshot.chat_sessions_30d,
                limit_value=RUBY_ENGAGEMENT_SESSIONS,
            )
        )
    return triggers


def detect_upgrade_opportunities(snapshots: Iterable[OrgSnapshot]) -> list[UpgradeOpportunity]:
    """Organizations with at least one trigger, biggest MRR increase first."""
    opportunities = []
    for snap in snapshots:
        triggers = upgrade_triggers(snap)
        if not triggers:
            continue
        tier = snap.pricing_tier or DEFAULT_TIER
        suggested = next_tier(tier)
        opportunities.append(
            UpgradeOpportunity(
                org_id=snap.org_id,
                org_name=snap.org_name,
                slug=snap.slug,
                current_tier=tier,
                subscription_status=snap.subscription_status,
                billing_period=snap.billing_period,
                owner=snap.owner,
                triggers=triggers,
                suggested_tier=suggested,
                potential_mrr_increase=mrr_increase(tier, suggested, snap.billing_period),
            )
        )
    opportunities.sort(key=lambda o: o.potential_mrr_increase, reverse=True)
    return opportunities


def compute_upgrade_stats(opportunities: list[UpgradeOpportunity]) -> UpgradeStats:
    counts = Counter(t.type for o in opportunities for t in o.triggers)
    total_increase = sum(o.potential_mrr_increase for o in opportunities)
    return UpgradeStats(
        total_opportunities=len(opportunities),
        potential_mrr_increase=math.floor(total_increase + 0.5),
        trigger_breakdown=[TriggerCount(type=t, count=n) for t, n in counts.most_common()],
    )
