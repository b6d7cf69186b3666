"""Lead intake from external systems.

Turns inbound signals into CRM records: webhook events from the product
(signups, Stripe billing, contact forms, support tickets, guest contacts)
and emails imported by the Gmail sync. Every intake finds or creates the
contact by email, then creates or updates a deal and logs an activity.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from pydantic import BaseModel, Field

from src.app.crm.pipeline import apply_stage_transition
from src.app.crm.schemas import (
    ActivityCreate,
    ActivityRead,
    ContactCreate,
    ContactRead,
    DealCreate,
    DealRead,
    InputModel,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SourceConfig:
    stage: str
    probability: int
    next_step: str
    create_deal: bool


SOURCE_CONFIG: dict[str, SourceConfig] = {
    "signup": SourceConfig("lead", 10, "Send welcome email and schedule intro call", True),
    "stripe": SourceConfig("closed_won", 100, "", True),
    "contact_form": SourceConfig("qualified", 25, "Respond within 24 hours", True),
    "gmail": SourceConfig("lead", 10, "Qualify lead - determine needs", True),
    "ticket": SourceConfig("lead", 10, "", False),
    "guest_contact": SourceConfig("lead", 5, "Follow up if marketing consent given", True),
}

SOURCE_NAMES: dict[str, str] = {
    "signup": "Trial Signup",
    "stripe": "Stripe",
    "contact_form": "Contact Form",
    "gmail": "Email",
    "ticket": "Support Ticket",
    "guest_contact": "Guest Contact",
}

LEAD_SOURCE_MAP: dict[str, str] = {
    "signup": "inbound",
    "stripe": "inbound",
    "contact_form": "inbound",
    "gmail": "cold_email",
    "ticket": "inbound",
    "guest_contact": "referral",
}

ACCOUNT_TYPE_MAP: dict[str, str] = {
    "hotel": "hotel",
    "vacation_rental": "vacation_rental",
    "property_manager": "property_manager",
    "individual_host": "vacation_rental",
}

# Contacts created by any intake path
INTAKE_CONTACT_SOURCE = "inbound"

CANCELLED_REASON = "Customer cancelled subscription"


class WebhookData(InputModel):
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    company: str | None = None
    account_type: str | None = None
    tier: str | None = None
    billing_period: str | None = None
    message: str | None = None
    subject: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebhookPayload(InputModel):
    source: str | None = None
    event: str | None = None
    data: WebhookData | None = None


class IntakeResult(BaseModel):
    contact_id: str
    deal_id: str | None = None
    activity_id: str
    message: str


# ── Pure helpers ────────────────────────────────────────────────────────────


def _local_part(email: str) -> str:
    return email.split("@")[0]


def generate_deal_title(source: str, data: WebhookData) -> str:
    """Deal title for a webhook lead, e.g. ``"Acme Hotels - Trial Signup"``."""
    name = data.company or data.name or _local_part(data.email or "")
    if source == "signup":
        return f"{name} - Trial Signup"
    if source == "stripe":
        if data.tier:
            return f"{name} - {data.tier[:1].upper()}{data.tier[1:]} Plan"
        return f"{name} - Subscription"
    if source == "contact_form":
        return f"{name} - Website Inquiry"
    if source == "gmail":
        return f"{name} - Email Inquiry"
    if source == "guest_contact":
        return f"{name} - Guest Lead"
    return f"{name} - New Lead"


def format_activity_description(source: str, event: str, data: WebhookData) -> str:
    lines = [f"Source: {SOURCE_NAMES.get(source, source)}", f"Event: {event}"]
    if data.subject:
        lines.append(f"Subject: {data.subject}")
    if data.message:
        lines.append(f"\nMessage:\n{data.message}")
    if data.tier:
        lines.append(f"Tier: {data.tier}")
    if data.billing_period:
        lines.append(f"Billing: {data.billing_period}")
    if data.account_type:
        lines.append(f"Account Type: {data.account_type}")
    if data.metadata:
        lines.append(f"\nMetadata: {json.dumps(data.metadata, indent=2, default=str)}")
    return "\n".join(lines)


def validate_payload(payload: WebhookPayload) -> str | None:
    """Error message for an unusable payload, None when it is valid."""
    if not payload.source or not payload.event or not payload.data or not payload.data.email:
        return "Missing required fields: source, event, data.email"
    if payload.source not in SOURCE_CONFIG:
        return f"Unknown source: {payload.source}"
    return None


# ── Service ─────────────────────────────────────────────────────────────────


class LeadIntakeService:
    """Creates contacts, deals and activities from inbound signals.

    Args:
        crm_repository: CrmRepository (or compatible) for persistence.
    """

    def __init__(self, crm_repository: Any) -> None:
        self._crm = crm_repository

    async def find_or_create_contact(
        self,
        email: str,
        name: str | None = None,
        phone: str | None = None,
        company: str | None = None,
        property_type: str | None = None,
        notes: str | None = None,
    ) -> tuple[ContactRead, bool]:
        """Look a contact up by email, creating it when missing.

        Blank name, phone and company on an existing contact are filled in
        from the new values.

        Returns:
            Tuple of (contact, created).
        """
        normalized = email.strip().lower()
        contact = await self._crm.find_contact_by_email(normalized)
        if contact is None:
            contact = await self._crm.create_contact(
                ContactCreate(
                    name=name or _local_part(normalized),
                    email=normalized,
                    phone=phone or None,
                    company=company or None,
                    property_type=property_type,
                    source=INTAKE_CONTACT_SOURCE,
                    notes=notes or None,
                )
            )
            return contact, True

        fill: dict[str, Any] = {}
        if name and not contact.name:
            fill["name"] = name
        if phone and not contact.phone:
            fill["phone"] = phone
        if company and not contact.company:
            fill["company"] = company
        if fill:
            contact = await self._crm.update_contact(contact.id, fill)
        return contact, False

    async def _apply_billing_event(
        self, deal: DealRead, event: str, data: WebhookData
    ) -> DealRead:
        now = datetime.now(timezone.utc)
        if event == "subscription_created":
            changes = {
                "stage": "closed_won",
                "probability": 100,
                "tier": data.tier or deal.tier,
                "billing_period": data.billing_period or deal.billing_period,
                "closed_at": now,
            }
        elif event == "subscription_cancelled":
            changes = {
                "stage": "closed_lost",
                "probability": 0,
                "lost_reason": CANCELLED_REASON,
                "closed_at": now,
            }
        else:
            return deal
        updated = await self._crm.update_deal(deal.id, apply_stage_transition(deal, changes, now))
        logger.info("webhook_deal_closed", deal_id=deal.id, stage=changes["stage"])
        return updated

    async def process_webhook(self, payload: WebhookPayload) -> IntakeResult:
        """Record a validated webhook event.

        Raises:
            ValueError: If the payload fails validate_payload().
        """
        error = validate_payload(payload)
        if error:
            raise ValueError(error)
        source, event, data = payload.source, payload.event, payload.data

        contact, created = await self.find_or_create_contact(
            data.email,
            name=data.name,
            phone=data.phone,
            company=data.company,
            property_type=ACCOUNT_TYPE_MAP.get(data.account_type or ""),
            notes=data.message,
        )
        logger.info(
            "webhook_contact_resolved",
            source=source,
            event=event,
            contact_id=contact.id,
            created=created,
        )

        config = SOURCE_CONFIG[source]
        deal: DealRead | None = None
        if config.create_deal:
            deal = await self._crm.find_latest_deal_for_contact(contact.id)
            if deal is not None:
                if source == "stripe":
                    deal = await self._apply_billing_event(deal, event, data)
            else:
                now = datetime.now(timezone.utc)
                deal = await self._crm.create_deal(
                    DealCreate(
                        contact_id=contact.id,
                        title=generate_deal_title(source, data),
                        stage=config.stage,
                        probability=config.probability,
                        tier=data.tier,
                        billing_period=data.billing_period or "monthly",
                        lead_source=LEAD_SOURCE_MAP[source],
                        next_step=config.next_step or None,
                        follow_up_date=now + timedelta(days=1) if config.next_step else None,
                        notes=data.message,
                        closed_at=now if config.stage == "closed_won" else None,
                    )
                )
                logger.info("webhook_deal_created", deal_id=deal.id, source=source)

        activity = await self._crm.create_activity(
            ActivityCreate(
                deal_id=deal.id if deal else None,
                contact_id=contact.id,
                type="note",
                subject=f"[Auto] {SOURCE_NAMES[source]}: {event}",
                description=format_activity_description(source, event, data),
                outcome="completed",
            )
        )

        return IntakeResult(
            contact_id=contact.id,
            deal_id=deal.id if deal else None,
            activity_id=activity.id,
            message=f"Processed {source}:{event}",
        )

    async def create_email_lead(
        self,
        from_email: str,
        from_name: str | None,
        subject: str,
        body: str,
        received_at: datetime | None = None,
        gmail_account_id: str | None = None,
    ) -> tuple[ContactRead, DealRead, ActivityRead]:
        """Contact, lead deal and inbound activity for an imported email."""
        contact, _ = await self.find_or_create_contact(
            from_email,
            name=from_name or None,
            notes=f"First contact via email: {subject}",
        )
        deal = await self._crm.create_deal(
            DealCreate(
                contact_id=contact.id,
                title=f"{from_name or from_email} - Email Inquiry",
                stage="lead",
                probability=10,
                lead_source=LEAD_SOURCE_MAP["gmail"],
                next_step="Qualify lead - respond to email",
                follow_up_date=datetime.now(timezone.utc) + timedelta(days=1),
                notes=f"Subject: {subject}\n\n{body[:1000]}",
                gmail_account_id=gmail_account_id,
            )
        )
        activity = await self._crm.create_activity(
            ActivityCreate(
                deal_id=deal.id,
                contact_id=contact.id,
                type="email",
                subject=f"Inbound Email: {subject}",
                description=body[:2000],
                outcome="completed",
                completed_at=received_at,
            )
        )
        logger.info("email_lead_created", contact_id=contact.id, deal_id=deal.id)
        return contact, deal, activity
