"""Integration tests for the deals API endpoints.

Uses InMemoryCrmRepository / InMemoryInboxRepository test doubles and an
AsyncMock drafter. Covers CRUD, stage-transition side effects, re-opening,
pipeline metrics and draft generation.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.app.crm.schemas import ContactCreate, DealCreate
from src.app.inbox.schemas import GeneratedDraft, ProcessedEmailCreate


@pytest.fixture
def drafter():
    mock = MagicMock()
    mock.generate_reply = AsyncMock(
        return_value=GeneratedDraft(subject="Re: Pricing", body="Hi Maria, ...")
    )
    mock.generate_outreach = AsyncMock(
        return_value=GeneratedDraft(subject="Guest messaging for Casa Verde", body="Hi Maria")
    )
    return mock


# ── CRUD ─────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_deal(api):
    contact = await api.crm.create_contact(ContactCreate(name="Maria"))

    response = await api.client.post(
        "/v1/deals",
        json={
            "title": "Casa Verde - Sapphire",
            "contactId": contact.id,
            "tier": "sapphire",
            "value": 59,
            "propertyCountRange": "2-5",
        },
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["message"] == "Deal created successfully"
    deal = data["deal"]
    assert deal["contact_id"] == contact.id
    assert deal["stage"] == "lead"
    assert deal["probability"] == 10
    assert deal["billing_period"] == "monthly"
    assert deal["property_count_range"] == "2-5"


@pytest.mark.asyncio
async def test_create_deal_requires_title(api):
    response = await api.client.post("/v1/deals", json={"value": 10})
    assert response.status_code == 400
    assert response.json()["detail"] == "Title is required"


@pytest.mark.asyncio
async def test_create_deal_unknown_contact_404(api):
    response = await api.client.post(
        "/v1/deals", json={"title": "X", "contactId": str(uuid.uuid4())}
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Contact not found"


@pytest.mark.asyncio
async def test_create_deal_blank_contact_is_unlinked(api):
    response = await api.client.post("/v1/deals", json={"title": "X", "contactId": ""})
    assert response.status_code == 201, response.text
    assert response.json()["deal"]["contact_id"] is None


@pytest.mark.asyncio
async def test_create_deal_malformed_contact_404(api):
    response = await api.client.post("/v1/deals", json={"title": "X", "contactId": "abc"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Contact not found"


@pytest.mark.asyncio
async def test_update_deal_blank_contact_clears_link(api):
    contact = await api.crm.create_contact(ContactCreate(name="Maria"))
    deal = await api.crm.create_deal(DealCreate(title="A", contact_id=contact.id))

    response = await api.client.patch(f"/v1/deals/{deal.id}", json={"contactId": ""})
    assert response.status_code == 200, response.text
    assert response.json()["deal"]["contact_id"] is None


@pytest.mark.asyncio
async def test_update_deal_malformed_contact_404(api):
    deal = await api.crm.create_deal(DealCreate(title="A"))

    response = await api.client.patch(f"/v1/deals/{deal.id}", json={"contactId": "not-a-uuid"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Contact not found"
    assert api.crm.deals[deal.id].contact_id is None


@pytest.mark.asyncio
async def test_create_deal_rejects_unknown_stage(api):
    response = await api.client.post("/v1/deals", json={"title": "X", "stage": "won"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_deals_with_contact(api):
    contact = await api.crm.create_contact(ContactCreate(name="Maria"))
    await api.crm.create_deal(DealCreate(title="A", contact_id=contact.id))
    await api.crm.create_deal(DealCreate(title="B"))

    response = await api.client.get("/v1/deals")
    assert response.status_code == 200
    deals = {d["title"]: d for d in response.json()["deals"]}
    assert deals["A"]["contact"]["name"] == "Maria"
    assert deals["B"]["contact"] is None


@pytest.mark.asyncio
async def test_get_deal_detail_and_not_found(api):
    deal = await api.crm.create_deal(DealCreate(title="A"))

    response = await api.client.get(f"/v1/deals/{deal.id}")
    assert response.status_code == 200
    assert response.json()["deal"]["title"] == "A"

    response = await api.client.get(f"/v1/deals/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["detail"] == "Deal not found"


# ── Stage Transitions ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_close_won_stamps_closed_at_and_probability(api):
    deal = await api.crm.create_deal(DealCreate(title="A", stage="negotiation", probability=80))

    response = await api.client.patch(f"/v1/deals/{deal.id}", json={"stage": "closed_won"})
    assert response.status_code == 200, response.text
    data = response.json()["deal"]
    assert data["stage"] == "closed_won"
    assert data["probability"] == 100
    assert data["closed_at"] is not None
    assert data["last_stage"] == "negotiation"


@pytest.mark.asyncio
async def test_close_lost_with_reason(api):
    deal = await api.crm.create_deal(DealCreate(title="A", stage="proposal"))

    response = await api.client.patch(
        f"/v1/deals/{deal.id}", json={"stage": "closed_lost", "lostReason": "price"}
    )
    data = response.json()["deal"]
    assert data["probability"] == 0
    assert data["lost_reason"] == "price"
    assert data["last_stage"] == "proposal"


@pytest.mark.asyncio
async def test_update_without_stage_change_keeps_probability(api):
    deal = await api.crm.create_deal(DealCreate(title="A", probability=40))

    response = await api.client.patch(f"/v1/deals/{deal.id}", json={"nextStep": "Call back"})
    data = response.json()["deal"]
    assert data["probability"] == 40
    assert data["next_step"] == "Call back"
    assert data["closed_at"] is None


@pytest.mark.asyncio
async def test_update_probability_out_of_range(api):
    deal = await api.crm.create_deal(DealCreate(title="A"))
    response = await api.client.patch(f"/v1/deals/{deal.id}", json={"probability": 150})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_reopen_closed_deal_restores_last_stage(api):
    deal = await api.crm.create_deal(DealCreate(title="A", stage="demo_scheduled"))
    await api.client.patch(
        f"/v1/deals/{deal.id}", json={"stage": "closed_lost", "lostReason": "timing"}
    )

    response = await api.client.post(f"/v1/deals/{deal.id}/reopen")
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Deal re-opened and moved to demo_scheduled"
    assert data["deal"]["stage"] == "demo_scheduled"
    assert data["deal"]["closed_at"] is None
    assert data["deal"]["lost_reason"] is None
    assert data["deal"]["probability"] == 10


@pytest.mark.asyncio
async def test_reopen_open_deal_400(api):
    deal = await api.crm.create_deal(DealCreate(title="A"))
    response = await api.client.post(f"/v1/deals/{deal.id}/reopen")
    assert response.status_code == 400
    assert response.json()["detail"] == "Deal is not closed"


# ── Delete / Metrics ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_delete_and_bulk_delete(api):
    a = await api.crm.create_deal(DealCreate(title="A"))
    b = await api.crm.create_deal(DealCreate(title="B"))
    c = await api.crm.create_deal(DealCreate(title="C"))

    response = await api.client.delete(f"/v1/deals/{a.id}")
    assert response.status_code == 200

    response = await api.client.post("/v1/deals/bulk-delete", json={"ids": [b.id, c.id]})
    assert response.json()["deleted_count"] == 2
    assert api.crm.deals == {}

    response = await api.client.post("/v1/deals/bulk-delete", json={"ids": []})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_pipeline_metrics(api):
    await api.crm.create_deal(DealCreate(title="A", stage="lead", value=100, probability=10))
    await api.crm.create_deal(DealCreate(title="B", stage="proposal", value=200, probability=50))
    await api.crm.create_deal(DealCreate(title="C", stage="closed_won", value=300))
    await api.crm.create_deal(
        DealCreate(title="D", stage="closed_lost", value=50, lost_reason="price")
    )

    response = await api.client.get("/v1/deals/metrics")
    assert response.status_code == 200
    data = response.json()
    assert data["total_deals"] == 4
    assert data["active_deals"] == 2
    assert data["total_pipeline_value"] == 300
    assert data["weighted_pipeline_value"] == 110
    assert data["win_rate"] == 50
    assert data["stage_counts"]["lead"] == 1
    assert data["lost_reason_counts"] == {"price": 1}


# ── Draft Generation ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_generate_outreach_draft(api, drafter):
    api.state.email_drafter = drafter
    contact = await api.crm.create_contact(
        ContactCreate(name="Maria", email="maria@casaverde.com", company="Casa Verde")
    )
    deal = await api.crm.create_deal(DealCreate(title="Casa Verde", contact_id=contact.id))

    response = await api.client.post(f"/v1/deals/{deal.id}/generate-draft")
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["message"] == "Draft generated successfully"

    draft = api.inbox.drafts[data["draft_id"]]
    assert draft.deal_id == deal.id
    assert draft.original_from_email == "maria@casaverde.com"
    assert draft.draft_subject == "Guest messaging for Casa Verde"
    drafter.generate_outreach.assert_awaited_once()
    drafter.generate_reply.assert_not_awaited()


@pytest.mark.asyncio
async def test_generate_reply_draft_for_imported_email(api, drafter):
    api.state.email_drafter = drafter
    contact = await api.crm.create_contact(ContactCreate(name="Maria", email="maria@x.com"))
    deal = await api.crm.create_deal(DealCreate(title="Email", contact_id=contact.id))
    processed = await api.inbox.record_processed(
        ProcessedEmailCreate(
            gmail_message_id="msg-1",
            from_email="maria@x.com",
            subject="Pricing",
            contact_id=contact.id,
            deal_id=deal.id,
        )
    )

    response = await api.client.post(f"/v1/deals/{deal.id}/generate-draft")
    assert response.status_code == 200
    draft = api.inbox.drafts[response.json()["draft_id"]]
    assert draft.processed_email_id == processed.id
    assert draft.gmail_message_id == "msg-1"
    assert draft.original_subject == "Pricing"
    drafter.generate_reply.assert_awaited_once()


@pytest.mark.asyncio
async def test_generate_draft_requires_contact_email(api, drafter):
    api.state.email_drafter = drafter
    contact = await api.crm.create_contact(ContactCreate(name="No Email"))
    deal = await api.crm.create_deal(DealCreate(title="A", contact_id=contact.id))

    response = await api.client.post(f"/v1/deals/{deal.id}/generate-draft")
    assert response.status_code == 400
    assert response.json()["detail"] == "Deal has no contact with email address"


@pytest.mark.asyncio
async def test_generate_draft_llm_failure_500(api, drafter):
    drafter.generate_outreach = AsyncMock(side_effect=RuntimeError("No LLM API keys configured"))
    api.state.email_drafter = drafter
    contact = await api.crm.create_contact(ContactCreate(name="Maria", email="m@x.com"))
    deal = await api.crm.create_deal(DealCreate(title="A", contact_id=contact.id))

    response = await api.client.post(f"/v1/deals/{deal.id}/generate-draft")
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to generate draft"
    assert api.inbox.drafts == {}
