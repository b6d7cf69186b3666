"""Monthly recurring revenue of a platform organization."""

from __future__ import annotations

from src.app.admin.constants import (
    CRM_ADDON_PRICING,
    DEFAULT_TIER,
    EXTRA_PROPERTY_PRICING,
    EXTRA_UNIT_PRICING,
    TIER_PRICING,
)
from src.app.admin.schemas import BillingInput, MrrBreakdown


def monthly_price(tier: str, billing_period: str | None) -> float:
    """Tier price per month; annual plans are spread over 12 months."""
    pricing = TIER_PRICING[tier]
    return pricing["annual"] / 12 if billing_period == "annual" else pricing["monthly"]


def calculate_account_monthly_total(
    org: BillingInput,
    has_crm_addon: bool,
    crm_billing_period: str | None = "monthly",
) -> MrrBreakdown:
    """MRR breakdown of one organization.

    A missing tier counts as ruby. An unknown tier yields an all-zero
    breakdown.
    """
    tier = org.pricing_tier or DEFAULT_TIER
    if tier not in TIER_PRICING:
        return MrrBreakdown()

    base = monthly_price(tier, org.billing_period)
    extra_properties = (org.extra_properties_count or 0) * EXTRA_PROPERTY_PRICING.get(tier, 0)
    extra_units = (org.extra_units_count or 0) * EXTRA_UNIT_PRICING.get(tier, 0)

    crm_addon = 0.0
    if has_crm_addon:
        if crm_billing_period == "annual":
            crm_addon = CRM_ADDON_PRICING["annual"] / 12
        else:
            crm_addon = CRM_ADDON_PRICING["monthly"]

    return MrrBreakdown(
        base_mrr=base,
        extra_properties_mrr=extra_properties,
        extra_units_mrr=extra_units,
        crm_addon_mrr=crm_addon,
        total_mrr=base + extra_properties + extra_units + crm_addon,
    )
