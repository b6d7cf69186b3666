"""Tests for GmailSyncService.

Gmail and the drafter are mocked; lead intake runs for real against the
in-memory CRM repository so contacts, deals and activities can be checked.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.app.crm.intake import LeadIntakeService
from src.app.inbox.schemas import GeneratedDraft, ProcessedEmailCreate
from src.app.inbox.sync import CRON_SYNC, MANUAL_SYNC, GmailSyncService
from src.app.services.gsuite.models import InboundEmail


def _inbound(message_id: str = "m1", sender: str = "maria@casaverde.com", **overrides):
    fields = {
        "id": message_id,
        "thread_id": f"thread-{message_id}",
        "sender": f"Maria <{sender}>",
        "from_email": sender,
        "from_name": "Maria",
        "subject": "Pricing for 3 villas",
        "body": "Hi, how much would it cost?",
        "date": datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return InboundEmail(**fields)


@pytest.fixture
def gmail():
    mock = MagicMock()
    mock.fetch_messages = AsyncMock(return_value=[])
    mock.mark_as_read = AsyncMock()
    mock.add_label = AsyncMock()
    return mock


@pytest.fixture
def drafter():
    mock = MagicMock()
    mock.generate_reply = AsyncMock(
        return_value=GeneratedDraft(subject="Re: Pricing for 3 villas", body="Hi Maria")
    )
    return mock


@pytest.fixture
def sync_service(inbox_repo, crm_repo, gmail, drafter):
    return GmailSyncService(
        inbox_repository=inbox_repo,
        gmail_service=gmail,
        intake_service=LeadIntakeService(crm_repo),
        drafter=drafter,
        label_filter="Leads",
    )


@pytest.mark.asyncio
async def test_sync_without_accounts(sync_service, gmail):
    result = await sync_service.sync()
    assert result.success is False
    assert result.message == "Gmail not connected"
    gmail.fetch_messages.assert_not_awaited()


@pytest.mark.asyncio
async def test_sync_imports_new_email_as_lead(sync_service, inbox_repo, crm_repo, gmail, drafter):
    account = inbox_repo.add_account()
    gmail.fetch_messages.return_value = [_inbound()]

    result = await sync_service.sync(CRON_SYNC)

    assert result.success is True
    assert (result.processed, result.skipped, result.total) == (1, 0, 1)
    gmail.fetch_messages.assert_awaited_once_with(
        account, max_results=20, unread_only=True, newer_than_days=None, label="Leads"
    )

    [contact] = crm_repo.contacts.values()
    assert contact.email == "maria@casaverde.com"
    assert contact.name == "Maria"
    assert contact.source == "inbound"

    [deal] = crm_repo.deals.values()
    assert deal.title == "Maria - Email Inquiry"
    assert deal.stage == "lead"
    assert deal.lead_source == "cold_email"
    assert deal.gmail_account_id == account.id

    [activity] = crm_repo.activities.values()
    assert activity.type == "email"
    assert activity.subject == "Inbound Email: Pricing for 3 villas"

    [processed] = inbox_repo.processed.values()
    assert processed.deal_id == deal.id

    [draft] = inbox_repo.drafts.values()
    assert draft.status == "pending"
    assert draft.draft_body == "Hi Maria"
    assert draft.gmail_thread_id == "thread-m1"
    assert draft.processed_email_id == processed.id
    drafter.generate_reply.assert_awaited_once()

    gmail.mark_as_read.assert_awaited_once_with(account, "m1")
    gmail.add_label.assert_awaited_once_with(account, "m1")
    assert inbox_repo.synced == [account.id]


@pytest.mark.asyncio
async def test_manual_sync_options(sync_service, inbox_repo, gmail):
    account = inbox_repo.add_account()

    await sync_service.sync(MANUAL_SYNC)

    gmail.fetch_messages.assert_awaited_once_with(
        account, max_results=50, unread_only=False, newer_than_days=7, label="Leads"
    )


@pytest.mark.asyncio
async def test_already_processed_email_is_skipped(sync_service, inbox_repo, crm_repo, gmail):
    inbox_repo.add_account()
    await inbox_repo.record_processed(ProcessedEmailCreate(gmail_message_id="m1"))
    gmail.fetch_messages.return_value = [_inbound("m1")]

    result = await sync_service.sync()

    assert (result.processed, result.skipped) == (0, 1)
    assert crm_repo.contacts == {}
    gmail.mark_as_read.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_reply_sender_is_marked_processed_without_lead(
    sync_service, inbox_repo, crm_repo, gmail, drafter
):
    account = inbox_repo.add_account()
    gmail.fetch_messages.return_value = [_inbound("m2", sender="noreply@stripe.com")]

    result = await sync_service.sync()

    assert result.skipped == 1
    assert crm_repo.contacts == {}
    assert await inbox_repo.is_processed("m2")
    gmail.mark_as_read.assert_awaited_once_with(account, "m2")
    drafter.generate_reply.assert_not_awaited()


@pytest.mark.asyncio
async def test_existing_contact_is_reused(sync_service, inbox_repo, crm_repo, gmail):
    inbox_repo.add_account()
    gmail.fetch_messages.return_value = [_inbound("m1"), _inbound("m2", subject="Follow-up")]

    result = await sync_service.sync()

    assert result.processed == 2
    assert len(crm_repo.contacts) == 1
    assert len(crm_repo.deals) == 2


@pytest.mark.asyncio
async def test_draft_failure_still_imports_lead(sync_service, inbox_repo, crm_repo, gmail, drafter):
    inbox_repo.add_account()
    drafter.generate_reply.side_effect = RuntimeError("No LLM API keys configured")
    gmail.fetch_messages.return_value = [_inbound()]

    result = await sync_service.sync()

    assert result.processed == 1
    assert len(crm_repo.deals) == 1
    assert inbox_repo.drafts == {}
    gmail.mark_as_read.assert_awaited_once()


@pytest.mark.asyncio
async def test_label_failure_does_not_fail_import(sync_service, inbox_repo, gmail):
    inbox_repo.add_account()
    gmail.add_label.side_effect = RuntimeError("label quota")
    gmail.fetch_messages.return_value = [_inbound()]

    result = await sync_service.sync()
    assert result.processed == 1
    assert result.errors == []


@pytest.mark.asyncio
async def test_account_failure_is_reported_per_account(sync_service, inbox_repo, gmail):
    inbox_repo.add_account("a@example.com")
    inbox_repo.add_account("b@example.com")
    gmail.fetch_messages.side_effect = [RuntimeError("token revoked"), [_inbound()]]

    result = await sync_service.sync()

    assert result.success is True
    assert result.processed == 1
    assert result.errors == ["a@example.com: token revoked"]


@pytest.mark.asyncio
async def test_all_accounts_failing_marks_sync_failed(sync_service, inbox_repo, gmail):
    inbox_repo.add_account()
    gmail.fetch_messages.side_effect = RuntimeError("token revoked")

    result = await sync_service.sync()

    assert result.success is False
    assert result.message == "Sync failed"


@pytest.mark.asyncio
async def test_sync_without_drafter_skips_drafts(inbox_repo, crm_repo, gmail):
    service = GmailSyncService(inbox_repo, gmail, LeadIntakeService(crm_repo), drafter=None)
    inbox_repo.add_account()
    gmail.fetch_messages.return_value = [_inbound()]

    result = await service.sync()

    assert result.processed == 1
    assert inbox_repo.drafts == {}
