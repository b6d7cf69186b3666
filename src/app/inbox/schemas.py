"""Pydantic schemas for Gmail accounts, imported emails and email drafts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from src.app.crm.schemas import InputModel


class DraftStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    sent = "sent"
    rejected = "rejected"
    failed = "failed"
    generating = "generating"


class DraftTone(str, Enum):
    professional = "professional"
    friendly = "friendly"
    concise = "concise"
    follow_up = "follow_up"


# ── Gmail accounts ──────────────────────────────────────────────────────────


class GmailTokens(BaseModel):
    """OAuth tokens returned by Google's token endpoint."""

    access_token: str
    refresh_token: str | None = None
    expiry_date: datetime


class GmailAccountRead(BaseModel):
    id: str
    email: str
    name: str | None = None
    access_token: str
    refresh_token: str
    expiry_date: datetime
    is_active: bool = True
    label_filter: str | None = None
    last_sync_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Processed emails ────────────────────────────────────────────────────────


class ProcessedEmailCreate(BaseModel):
    gmail_account_id: str | None = None
    gmail_message_id: str
    from_email: str | None = None
    subject: str | None = None
    contact_id: str | None = None
    deal_id: str | None = None


class ProcessedEmailRead(ProcessedEmailCreate):
    id: str
    created_at: datetime | None = None


# ── Drafts ──────────────────────────────────────────────────────────────────


class DraftCreate(BaseModel):
    processed_email_id: str | None = None
    gmail_account_id: str | None = None
    contact_id: str | None = None
    deal_id: str | None = None
    original_from_email: str
    original_from_name: str | None = None
    original_subject: str | None = None
    original_body: str | None = None
    original_received_at: datetime | None = None
    draft_subject: str | None = None
    draft_body: str | None = None
    tone: str = DraftTone.professional.value
    status: str = DraftStatus.pending.value
    gmail_thread_id: str | None = None
    gmail_message_id: str | None = None


class DraftUpdate(InputModel):
    """Fields an operator may edit on a draft."""

    draft_subject: str | None = None
    draft_body: str | None = None
    tone: DraftTone | None = None
    status: DraftStatus | None = None


class DraftRead(BaseModel):
    id: str
    processed_email_id: str | None = None
    gmail_account_id: str | None = None
    contact_id: str | None = None
    deal_id: str | None = None
    original_from_email: str
    original_from_name: str | None = None
    original_subject: str | None = None
    original_body: str | None = None
    original_received_at: datetime | None = None
    draft_subject: str | None = None
    draft_body: str | None = None
    tone: str | None = DraftTone.professional.value
    status: str = DraftStatus.pending.value
    error_message: str | None = None
    sent_at: datetime | None = None
    sent_gmail_message_id: str | None = None
    gmail_thread_id: str | None = None
    gmail_message_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GeneratedDraft(BaseModel):
    """Subject and body produced by the drafter."""

    subject: str
    body: str


class ReplyContext(BaseModel):
    """Inbound email plus CRM context used to draft a reply."""

    from_name: str
    from_email: str
    subject: str
    body: str = ""
    contact_name: str | None = None
    company_name: str | None = None
    deal_title: str | None = None
    deal_stage: str | None = None


class OutreachContext(BaseModel):
    """CRM context used to draft a first-contact email."""

    contact_name: str
    contact_email: str
    contact_company: str | None = None
    deal_title: str | None = None
    deal_stage: str | None = None
    deal_tier: str | None = None
    enquiry_type: str | None = None
    next_step: str | None = None


class SyncResult(BaseModel):
    """Outcome of one Gmail sync run."""

    success: bool = True
    processed: int = 0
    skipped: int = 0
    total: int = 0
    message: str | None = None
    errors: list[str] = Field(default_factory=list)
