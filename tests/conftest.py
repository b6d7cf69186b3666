"""Shared test fixtures.

Provides:
- InMemoryCrmRepository / InMemoryInboxRepository test doubles with the
  same method surface as the SQLAlchemy repositories
- A FastAPI app with every v1 router mounted under /v1, the operator
  dependency overridden, and the doubles set on app.state
- An httpx AsyncClient bound to that app
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.app.crm.schemas import (
    ActivityCreate,
    ActivityRead,
    ContactCreate,
    ContactDetail,
    ContactRead,
    ContactWithDeals,
    DealCreate,
    DealDetail,
    DealRead,
    DealWithActivities,
    DealWithContact,
    ReminderCreate,
    ReminderFilter,
    ReminderRead,
    TagCreate,
    TagRead,
)
from src.app.inbox.schemas import (
    DraftCreate,
    DraftRead,
    GmailAccountRead,
    GmailTokens,
    ProcessedEmailCreate,
    ProcessedEmailRead,
)

OPERATOR = {"sub": "operator@example.com", "role": "operator", "type": "access"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ── In-Memory Test Doubles ───────────────────────────────────────────────────


class InMemoryCrmRepository:
    """In-memory CrmRepository for testing without database."""

    def __init__(self) -> None:
        self.contacts: dict[str, ContactRead] = {}
        self.deals: dict[str, DealRead] = {}
        self.activities: dict[str, ActivityRead] = {}
        self.reminders: dict[str, ReminderRead] = {}
        self.tags: dict[str, TagRead] = {}

    # Contacts

    async def list_contacts(self, search: str | None = None) -> list[ContactWithDeals]:
        result = []
        for contact in sorted(self.contacts.values(), key=lambda c: c.created_at, reverse=True):
            haystack = " ".join(filter(None, [contact.name, contact.email, contact.company]))
            if search and search.lower() not in haystack.lower():
                continue
            deals = [d for d in self.deals.values() if d.contact_id == contact.id]
            result.append(ContactWithDeals(**contact.model_dump(), deals=deals))
        return result

    async def create_contact(self, data: ContactCreate) -> ContactRead:
        contact = ContactRead(id=_new_id(), created_at=_now(), **data.model_dump(mode="json"))
        self.contacts[contact.id] = contact
        return contact

    async def get_contact(self, contact_id: str) -> ContactRead | None:
        return self.contacts.get(contact_id)

    async def find_contact_by_email(self, email: str) -> ContactRead | None:
        for contact in self.contacts.values():
            if contact.email and contact.email.lower() == email.lower():
                return contact
        return None

    async def get_contact_detail(self, contact_id: str) -> ContactDetail | None:
        contact = self.contacts.get(contact_id)
        if contact is None:
            return None
        deals = [
            DealWithActivities(
                **d.model_dump(),
                activities=[a for a in self.activities.values() if a.deal_id == d.id],
            )
            for d in self.deals.values()
            if d.contact_id == contact_id
        ]
        return ContactDetail(
            **contact.model_dump(),
            deals=deals,
            activities=[a for a in self.activities.values() if a.contact_id == contact_id],
            reminders=[r for r in self.reminders.values() if r.contact_id == contact_id],
        )

    async def update_contact(self, contact_id: str, changes: dict[str, Any]) -> ContactRead:
        contact = self.contacts.get(contact_id)
        if contact is None:
            raise ValueError(f"Contact not found: {contact_id}")
        updated = contact.model_copy(update={**changes, "updated_at": _now()})
        self.contacts[contact_id] = updated
        return updated

    async def delete_contact(self, contact_id: str) -> bool:
        return self.contacts.pop(contact_id, None) is not None

    async def bulk_delete_contacts(self, contact_ids: list[str]) -> int:
        return sum(1 for cid in contact_ids if self.contacts.pop(cid, None) is not None)

    async def bulk_update_tags(
        self, contact_ids: list[str], tag_ids: list[str], action: str = "add"
    ) -> int:
        count = 0
        for cid in contact_ids:
            contact = self.contacts.get(cid)
            if contact is None:
                continue
            if action == "remove":
                tags = [t for t in contact.tags if t not in tag_ids]
            else:
                tags = contact.tags + [t for t in tag_ids if t not in contact.tags]
            self.contacts[cid] = contact.model_copy(update={"tags": tags})
            count += 1
        return count

    # Deals

    async def list_deals(self) -> list[DealWithContact]:
        return [
            DealWithContact(**d.model_dump(), contact=self.contacts.get(d.contact_id or ""))
            for d in sorted(self.deals.values(), key=lambda d: d.created_at, reverse=True)
        ]

    async def create_deal(self, data: DealCreate) -> DealRead:
        deal = DealRead(id=_new_id(), created_at=_now(), **data.model_dump(mode="json"))
        self.deals[deal.id] = deal
        return deal

    async def get_deal(self, deal_id: str) -> DealRead | None:
        return self.deals.get(deal_id)

    async def get_deal_detail(self, deal_id: str) -> DealDetail | None:
        deal = self.deals.get(deal_id)
        if deal is None:
            return None
        return DealDetail(
            **deal.model_dump(),
            contact=self.contacts.get(deal.contact_id or ""),
            activities=[a for a in self.activities.values() if a.deal_id == deal_id],
            reminders=[r for r in self.reminders.values() if r.deal_id == deal_id],
        )

    async def find_latest_deal_for_contact(self, contact_id: str) -> DealRead | None:
        deals = [d for d in self.deals.values() if d.contact_id == contact_id]
        return max(deals, key=lambda d: d.created_at) if deals else None

    async def update_deal(self, deal_id: str, changes: dict[str, Any]) -> DealRead:
        deal = self.deals.get(deal_id)
        if deal is None:
            raise ValueError(f"Deal not found: {deal_id}")
        updated = deal.model_copy(update={**changes, "updated_at": _now()})
        self.deals[deal_id] = updated
        return updated

    async def delete_deal(self, deal_id: str) -> bool:
        return self.deals.pop(deal_id, None) is not None

    async def bulk_delete_deals(self, deal_ids: list[str]) -> int:
        return sum(1 for did in deal_ids if self.deals.pop(did, None) is not None)

    # Activities

    async def list_activities(
        self, deal_id: str | None = None, contact_id: str | None = None, limit: int = 50
    ) -> list[ActivityRead]:
        result = [
            a
            for a in sorted(self.activities.values(), key=lambda a: a.created_at, reverse=True)
            if (not deal_id or a.deal_id == deal_id)
            and (not contact_id or a.contact_id == contact_id)
        ]
        return result[:limit]

    async def create_activity(self, data: ActivityCreate) -> ActivityRead:
        fields = data.model_dump()
        fields["completed_at"] = fields.get("completed_at") or _now()
        activity = ActivityRead(id=_new_id(), created_at=_now(), **fields)
        self.activities[activity.id] = activity
        return activity

    # Reminders

    async def list_reminders(self, filters: ReminderFilter) -> list[ReminderRead]:
        result = []
        for r in sorted(self.reminders.values(), key=lambda r: r.due_at):
            if not filters.show_completed and r.is_completed:
                continue
            if filters.deal_id and r.deal_id != filters.deal_id:
                continue
            if filters.contact_id and r.contact_id != filters.contact_id:
                continue
            if filters.due_from and r.due_at < filters.due_from:
                continue
            if filters.due_before and r.due_at >= filters.due_before:
                continue
            result.append(r)
        return result

    async def get_reminder(self, reminder_id: str) -> ReminderRead | None:
        return self.reminders.get(reminder_id)

    async def create_reminder(self, data: ReminderCreate) -> ReminderRead:
        reminder = ReminderRead(id=_new_id(), created_at=_now(), **data.model_dump(mode="json"))
        self.reminders[reminder.id] = reminder
        return reminder

    async def update_reminder(self, reminder_id: str, changes: dict[str, Any]) -> ReminderRead:
        reminder = self.reminders.get(reminder_id)
        if reminder is None:
            raise ValueError(f"Reminder not found: {reminder_id}")
        update = dict(changes)
        if "is_completed" in changes:
            update["completed_at"] = _now() if changes["is_completed"] else None
        updated = reminder.model_copy(update=update)
        self.reminders[reminder_id] = updated
        return updated

    async def delete_reminder(self, reminder_id: str) -> bool:
        return self.reminders.pop(reminder_id, None) is not None

    # Tags

    async def list_tags(self) -> list[TagRead]:
        return list(self.tags.values())

    async def create_tag(self, data: TagCreate) -> TagRead:
        tag = TagRead(id=_new_id(), name=data.name, color=data.color, created_at=_now())
        self.tags[tag.id] = tag
        return tag

    async def update_tag(self, tag_id: str, changes: dict[str, Any]) -> TagRead:
        tag = self.tags.get(tag_id)
        if tag is None:
            raise ValueError(f"Tag not found: {tag_id}")
        updated = tag.model_copy(update=changes)
        self.tags[tag_id] = updated
        return updated

    async def delete_tag(self, tag_id: str) -> bool:
        return self.tags.pop(tag_id, None) is not None


class InMemoryInboxRepository:
    """In-memory InboxRepository for testing without database."""

    def __init__(self) -> None:
        self.accounts: dict[str, GmailAccountRead] = {}
        self.processed: dict[str, ProcessedEmailRead] = {}
        self.drafts: dict[str, DraftRead] = {}
        self.synced: list[str] = []

    def add_account(self, email: str = "sales@example.com", **overrides: Any) -> GmailAccountRead:
        fields = {
            "id": _new_id(),
            "email": email,
            "name": email.split("@")[0],
            "access_token": "access-token",
            "refresh_token": "refresh-token",
            "expiry_date": datetime(2099, 1, 1, tzinfo=timezone.utc),
            "created_at": _now(),
        }
        fields.update(overrides)
        account = GmailAccountRead(**fields)
        self.accounts[account.id] = account
        return account

    async def list_active_accounts(self) -> list[GmailAccountRead]:
        return [a for a in self.accounts.values() if a.is_active]

    async def get_account(self, account_id: str) -> GmailAccountRead | None:
        return self.accounts.get(account_id)

    async def upsert_account(
        self, email: str, tokens: GmailTokens, label_filter: str | None = None
    ) -> GmailAccountRead:
        for account in self.accounts.values():
            if account.email == email.lower():
                updated = account.model_copy(
                    update={"access_token": tokens.access_token, "is_active": True}
                )
                self.accounts[account.id] = updated
                return updated
        return self.add_account(
            email.lower(),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token or "",
            expiry_date=tokens.expiry_date,
            label_filter=label_filter,
        )

    async def update_account_tokens(self, account_id: str, tokens: GmailTokens) -> None:
        account = self.accounts[account_id]
        self.accounts[account_id] = account.model_copy(
            update={"access_token": tokens.access_token, "expiry_date": tokens.expiry_date}
        )

    async def deactivate_accounts(self, account_id: str | None = None) -> int:
        count = 0
        for aid, account in list(self.accounts.items()):
            if account_id is None or aid == account_id:
                self.accounts[aid] = account.model_copy(update={"is_active": False})
                count += 1
        return count

    async def touch_last_sync(self, account_id: str) -> None:
        self.synced.append(account_id)

    async def is_processed(self, gmail_message_id: str) -> bool:
        return any(p.gmail_message_id == gmail_message_id for p in self.processed.values())

    async def record_processed(self, data: ProcessedEmailCreate) -> ProcessedEmailRead:
        processed = ProcessedEmailRead(id=_new_id(), created_at=_now(), **data.model_dump(mode="json"))
        self.processed[processed.id] = processed
        return processed

    async def find_processed_for_deal(self, deal_id: str) -> ProcessedEmailRead | None:
        for processed in self.processed.values():
            if processed.deal_id == deal_id:
                return processed
        return None

    async def list_drafts(self, statuses: list[str] | None = None) -> list[DraftRead]:
        return [d for d in self.drafts.values() if not statuses or d.status in statuses]

    async def get_draft(self, draft_id: str) -> DraftRead | None:
        return self.drafts.get(draft_id)

    async def create_draft(self, data: DraftCreate) -> DraftRead:
        draft = DraftRead(id=_new_id(), created_at=_now(), **data.model_dump(mode="json"))
        self.drafts[draft.id] = draft
        return draft

    async def update_draft(self, draft_id: str, changes: dict[str, Any]) -> DraftRead:
        draft = self.drafts.get(draft_id)
        if draft is None:
            raise ValueError(f"Draft not found: {draft_id}")
        updated = draft.model_copy(update=changes)
        self.drafts[draft_id] = updated
        return updated

    async def delete_draft(self, draft_id: str) -> bool:
        return self.drafts.pop(draft_id, None) is not None

    async def bulk_delete_drafts(self, draft_ids: list[str]) -> int:
        return sum(1 for did in draft_ids if self.drafts.pop(did, None) is not None)


# ── App Fixtures ─────────────────────────────────────────────────────────────


def make_test_app():
    """Minimal FastAPI app with every v1 router under /v1 and auth bypassed."""
    from fastapi import FastAPI

    from src.app.api.deps import get_current_operator
    from src.app.api.v1 import (
        activities,
        contacts,
        customers,
        cron,
        deals,
        drafts,
        gmail,
        reminders,
        tags,
        webhooks,
    )

    app = FastAPI()
    for module in (
        contacts, deals, activities, reminders, tags, drafts, gmail, cron, webhooks, customers
    ):
        app.include_router(module.router, prefix="/v1")
    app.dependency_overrides[get_current_operator] = lambda: OPERATOR
    return app


@pytest.fixture
def crm_repo() -> InMemoryCrmRepository:
    return InMemoryCrmRepository()


@pytest.fixture
def inbox_repo() -> InMemoryInboxRepository:
    return InMemoryInboxRepository()


@pytest_asyncio.fixture
async def api(crm_repo, inbox_repo):
    """Test client plus the app.state it runs against.

    Services beyond the two repositories start as None; tests set the
    ones they need on ``state``.
    """
    app = make_test_app()
    app.state.crm_repository = crm_repo
    app.state.inbox_repository = inbox_repo
    for name in (
        "admin_repository",
        "email_drafter",
        "gmail_service",
        "gmail_oauth",
        "gmail_sync",
        "intake_service",
    ):
        setattr(app.state, name, None)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield SimpleNamespace(client=client, state=app.state, crm=crm_repo, inbox=inbox_repo)
