"""Pipeline, tier and lookup constants shared by the CRM modules."""

from __future__ import annotations

# ── Pipeline ────────────────────────────────────────────────────────────────

# (stage id, label, default probability) in pipeline order
PIPELINE_STAGES: list[tuple[str, str, int]] = [
    ("lead", "Lead", 10),
    ("qualified", "Qualified", 25),
    ("demo_scheduled", "Demo Scheduled", 50),
    ("proposal", "Proposal Sent", 65),
    ("negotiation", "Negotiation", 80),
    ("closed_won", "Closed Won", 100),
    ("closed_lost", "Closed Lost", 0),
]

STAGE_PROBABILITY: dict[str, int] = {stage: prob for stage, _, prob in PIPELINE_STAGES}
STAGE_LABELS: dict[str, str] = {stage: label for stage, label, _ in PIPELINE_STAGES}

CLOSED_STAGES = frozenset({"closed_won", "closed_lost"})
ACTIVE_STAGES: list[str] = [s for s, _, _ in PIPELINE_STAGES if s not in CLOSED_STAGES]

# Stages counted as "reached a demo" for demo-to-close rate
DEMO_OR_LATER_STAGES = frozenset(
    {"demo_scheduled", "proposal", "negotiation", "closed_won", "closed_lost"}
)

# ── Deal tiers (value suggested when a tier is picked on a deal) ───────────

CRM_TIERS: dict[str, dict] = {
    "ruby": {"name": "Ruby Studio", "monthly": 24.9, "annual": 249},
    "sapphire": {"name": "Sapphire Suite", "monthly": 59, "annual": 590},
    "emerald": {"name": "Emerald Boutique", "monthly": 199, "annual": 1990},
    "diamond": {"name": "Diamond Presidential", "monthly": 499, "annual": 4990},
}

BILLING_PERIODS = ("monthly", "annual")


def get_tier_value(tier: str | None, billing_period: str = "monthly") -> float:
    """Deal value for a tier and billing period, 0 for an unknown tier."""
    info = CRM_TIERS.get(tier or "")
    if info is None:
        return 0
    return info["annual"] if billing_period == "annual" else info["monthly"]


# ── Contacts ────────────────────────────────────────────────────────────────

PROPERTY_TYPES = ("hotel", "vacation_rental", "property_manager", "individual_host")
CONTACT_SOURCES = ("cold_outreach", "linkedin", "inbound", "referral", "facebook")
