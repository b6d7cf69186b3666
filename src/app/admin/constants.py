"""Platform pricing, limits and lookup values for the admin console."""

from __future__ import annotations

from datetime import datetime, timezone

TIER_PRICING: dict[str, dict[str, float]] = {
    "ruby": {"monthly": 18, "annual": 180},
    "sapphire": {"monthly": 59, "annual": 590},
    "emerald": {"monthly": 199, "annual": 1990},
    "diamond": {"monthly": 349, "annual": 3490},
}

TIER_LIMITS: dict[str, dict[str, int]] = {
    "ruby": {"properties": 2, "messages": 1000, "units": 10},
    "sapphire": {"properties": 10, "messages": 5000, "units": 50},
    "emerald": {"properties": 50, "messages": 20000, "units": 250},
    "diamond": {"properties": 100, "messages": 50000, "units": 500},
}

TIER_LABELS: dict[str, str] = {
    "ruby": "Ruby Studio",
    "sapphire": "Sapphire Suite",
    "emerald": "Emerald Boutique",
    "diamond": "Diamond Presidential",
}

# Upgrade path, cheapest first
TIER_ORDER: list[str] = ["ruby", "sapphire", "emerald", "diamond"]
VALID_TIERS = TIER_ORDER
DEFAULT_TIER = "ruby"

STATUS_LABELS: dict[str, str] = {
    "trialing": "Trial",
    "active": "Active",
    "past_due": "Past Due",
    "canceled": "Canceled",
    "expired": "Expired",
}
VALID_STATUSES: list[str] = list(STATUS_LABELS)

# Monthly price per extra property / unit; ruby has no add-ons
EXTRA_PROPERTY_PRICING: dict[str, float] = {"sapphire": 1.5, "emerald": 1.2, "diamond": 1.0}
EXTRA_UNIT_PRICING: dict[str, float] = {"sapphire": 1.5, "emerald": 1.2, "diamond": 1.0}

CRM_ADDON_PRICING: dict[str, float] = {"monthly": 29, "annual": 290}

CHURN_REASON_LABELS: dict[str, str] = {
    "pricing": "Too expensive",
    "not_using": "Not using the product",
    "competitor": "Switched to competitor",
    "missing_features": "Missing features",
    "support": "Support issues",
    "other": "Other",
}
CHURN_REASONS: list[str] = list(CHURN_REASON_LABELS)

# Subscription statuses included in the health dashboard
HEALTH_STATUSES = ("active", "trialing", "past_due")
# Subscription statuses checked for upgrade opportunities
UPGRADE_STATUSES = ("active", "trialing")

OPEN_TICKET_STATUSES = ("open", "in_progress")
RESOLVED_TICKET_STATUSES = ("resolved", "closed")
HIGH_TICKET_PRIORITIES = ("high", "urgent")

MAX_TRIAL_EXTENSION_DAYS = 90


def current_month(now: datetime | None = None) -> str:
    """Usage month key, e.g. ``"2025-03"``."""
    now = now or datetime.now(timezone.utc)
    return f"{now.year}-{now.month:02d}"


def as_utc(value: datetime) -> datetime:
    """Platform timestamps are stored naive in UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
