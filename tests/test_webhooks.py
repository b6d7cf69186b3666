"""Tests for the inbound webhook endpoint and LeadIntakeService."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from src.app.config import Settings
from src.app.crm.intake import (
    LeadIntakeService,
    WebhookData,
    WebhookPayload,
    format_activity_description,
    generate_deal_title,
    validate_payload,
)
from src.app.crm.schemas import ContactCreate

API_KEY = "ak_test_123"


def _payload(source: str = "signup", event: str = "trial_started", **data) -> WebhookPayload:
    data.setdefault("email", "owner@acmehotels.com")
    return WebhookPayload(source=source, event=event, data=WebhookData(**data))


@pytest.fixture
def intake(crm_repo):
    return LeadIntakeService(crm_repo)


@pytest.fixture
def webhook_keys():
    settings = Settings(CRM_API_KEY_ASKCONCIERGE=API_KEY, CRM_API_KEY_ZAPIER="")
    with patch("src.app.api.deps.get_settings", return_value=settings):
        yield


# ── Pure helpers ─────────────────────────────────────────────────────────────


class TestHelpers:
    def test_deal_titles_per_source(self):
        data = WebhookData(email="owner@acmehotels.com", company="Acme Hotels", tier="sapphire")
        assert generate_deal_title("signup", data) == "Acme Hotels - Trial Signup"
        assert generate_deal_title("stripe", data) == "Acme Hotels - Sapphire Plan"
        assert generate_deal_title("contact_form", data) == "Acme Hotels - Website Inquiry"
        assert generate_deal_title("guest_contact", data) == "Acme Hotels - Guest Lead"
        assert generate_deal_title("ticket", data) == "Acme Hotels - New Lead"

    def test_deal_title_falls_back_to_name_then_email(self):
        assert (
            generate_deal_title("stripe", WebhookData(email="x@y.com", name="Tom"))
            == "Tom - Subscription"
        )
        assert generate_deal_title("signup", WebhookData(email="tom@y.com")) == "tom - Trial Signup"

    def test_activity_description(self):
        text = format_activity_description(
            "contact_form",
            "form_submitted",
            WebhookData(email="x@y.com", subject="Demo", message="Call me", metadata={"page": "/"}),
        )
        assert text.startswith("Source: Contact Form\nEvent: form_submitted\nSubject: Demo")
        assert "Message:\nCall me" in text
        assert '"page": "/"' in text

    def test_validate_payload(self):
        assert validate_payload(_payload()) is None
        assert (
            validate_payload(WebhookPayload(source="signup", event="x"))
            == "Missing required fields: source, event, data.email"
        )
        assert validate_payload(_payload(source="fax")) == "Unknown source: fax"


# ── Service ──────────────────────────────────────────────────────────────────


class TestLeadIntakeService:
    @pytest.mark.asyncio
    async def test_signup_creates_contact_deal_and_activity(self, intake, crm_repo):
        result = await intake.process_webhook(
            _payload(name="Ana", company="Acme Hotels", account_type="individual_host")
        )

        contact = crm_repo.contacts[result.contact_id]
        assert contact.email == "owner@acmehotels.com"
        assert contact.property_type == "vacation_rental"
        assert contact.source == "inbound"

        deal = crm_repo.deals[result.deal_id]
        assert deal.title == "Acme Hotels - Trial Signup"
        assert deal.stage == "lead"
        assert deal.lead_source == "inbound"
        assert deal.next_step == "Send welcome email and schedule intro call"
        assert deal.follow_up_date is not None

        activity = crm_repo.activities[result.activity_id]
        assert activity.type == "note"
        assert activity.subject == "[Auto] Trial Signup: trial_started"
        assert result.message == "Processed signup:trial_started"

    @pytest.mark.asyncio
    async def test_email_is_normalized_and_contact_reused(self, intake, crm_repo):
        first = await intake.process_webhook(_payload(email="Owner@AcmeHotels.com"))
        second = await intake.process_webhook(_payload(source="contact_form", event="submitted"))

        assert first.contact_id == second.contact_id
        assert len(crm_repo.contacts) == 1
        # an existing deal is reused rather than duplicated
        assert second.deal_id == first.deal_id

    @pytest.mark.asyncio
    async def test_existing_contact_blank_fields_are_filled(self, intake, crm_repo):
        existing = await crm_repo.create_contact(
            ContactCreate(name="Ana", email="owner@acmehotels.com")
        )
        await intake.process_webhook(_payload(phone="+34 600 000", company="Acme Hotels", name="X"))

        contact = crm_repo.contacts[existing.id]
        assert contact.name == "Ana"
        assert contact.phone == "+34 600 000"
        assert contact.company == "Acme Hotels"

    @pytest.mark.asyncio
    async def test_stripe_subscription_created_closes_existing_deal(self, intake, crm_repo):
        signup = await intake.process_webhook(_payload())
        result = await intake.process_webhook(
            _payload(
                source="stripe",
                event="subscription_created",
                tier="emerald",
                billing_period="annual",
            )
        )

        assert result.deal_id == signup.deal_id
        deal = crm_repo.deals[result.deal_id]
        assert deal.stage == "closed_won"
        assert deal.probability == 100
        assert deal.tier == "emerald"
        assert deal.billing_period == "annual"
        assert deal.closed_at is not None
        assert deal.last_stage == "lead"

    @pytest.mark.asyncio
    async def test_stripe_subscription_cancelled_loses_deal(self, intake, crm_repo):
        signup = await intake.process_webhook(_payload())
        await intake.process_webhook(_payload(source="stripe", event="subscription_cancelled"))

        deal = crm_repo.deals[signup.deal_id]
        assert deal.stage == "closed_lost"
        assert deal.probability == 0
        assert deal.lost_reason == "Customer cancelled subscription"

    @pytest.mark.asyncio
    async def test_stripe_without_prior_deal_creates_won_deal(self, intake, crm_repo):
        result = await intake.process_webhook(
            _payload(source="stripe", event="subscription_created", tier="ruby")
        )
        deal = crm_repo.deals[result.deal_id]
        assert deal.stage == "closed_won"
        assert deal.probability == 100
        assert deal.closed_at is not None
        assert deal.next_step is None

    @pytest.mark.asyncio
    async def test_ticket_logs_activity_without_deal(self, intake, crm_repo):
        result = await intake.process_webhook(
            _payload(source="ticket", event="ticket_created", subject="Login issue")
        )
        assert result.deal_id is None
        assert crm_repo.deals == {}
        assert crm_repo.activities[result.activity_id].deal_id is None

    @pytest.mark.asyncio
    async def test_invalid_payload_raises(self, intake):
        with pytest.raises(ValueError, match="Unknown source"):
            await intake.process_webhook(_payload(source="fax"))


# ── API ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_webhook_requires_api_key(api, webhook_keys):
    response = await api.client.post("/v1/webhooks/inbound", json={})
    assert response.status_code == 401

    response = await api.client.post(
        "/v1/webhooks/inbound", json={}, headers={"Authorization": "Bearer wrong"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_webhook_validation_400(api, webhook_keys):
    response = await api.client.post(
        "/v1/webhooks/inbound",
        json={"source": "signup", "event": "trial_started", "data": {}},
        headers={"Authorization": f"Bearer {API_KEY}"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required fields: source, event, data.email"


@pytest.mark.asyncio
async def test_webhook_records_lead(api, webhook_keys):
    api.state.intake_service = LeadIntakeService(api.crm)

    response = await api.client.post(
        "/v1/webhooks/inbound",
        json={
            "source": "contact_form",
            "event": "form_submitted",
            "data": {
                "email": "guest@villa.com",
                "name": "Guest",
                "accountType": "hotel",
                "message": "Interested in a demo",
            },
        },
        headers={"Authorization": f"Bearer {API_KEY}"},
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Processed contact_form:form_submitted"
    deal = api.crm.deals[data["deal_id"]]
    assert deal.stage == "qualified"
    assert deal.probability == 25
