"""CRM persistence models -- tables owned and migrated by this service.

SQLAlchemy models using CrmBase:
- ContactModel: People and companies being sold to
- DealModel: Pipeline opportunities, optionally linked to a contact
- ActivityModel: Calls, emails, demos and notes logged against deals/contacts
- ReminderModel: Dated follow-up tasks
- TagModel: Colored labels applied to contacts (ids stored on contacts.tags)
- GmailAccountModel: Connected Gmail inboxes with OAuth tokens
- ProcessedEmailModel: Gmail messages already imported by sync
- EmailDraftModel: AI-drafted replies/outreach awaiting review
- ChurnReasonModel: Why a platform organization cancelled
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import CrmBase


def _uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )


def _created_at() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), server_default=func.now())


def _updated_at() -> Mapped[datetime | None]:
    return mapped_column(DateTime(timezone=True), onupdate=func.now(), nullable=True)


class ContactModel(CrmBase):
    """A person (usually a property owner or manager) in the CRM."""

    __tablename__ = "contacts"
    __table_args__ = (
        Index("contacts_email_idx", "email"),
        Index("contacts_company_idx", "company"),
        Index("contacts_created_at_idx", "created_at"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    property_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tags: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime | None] = _updated_at()


class DealModel(CrmBase):
    """A sales opportunity moving through the pipeline stages.

    ``last_stage`` remembers the open stage a deal was in before being
    closed so that re-opening can restore it.
    """

    __tablename__ = "deals"
    __table_args__ = (
        Index("deals_contact_id_idx", "contact_id"),
        Index("deals_stage_idx", "stage"),
        Index("deals_expected_close_idx", "expected_close_date"),
        Index("deals_created_at_idx", "created_at"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("contacts.id", ondelete="CASCADE"),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    stage: Mapped[str] = mapped_column(
        String(50), nullable=False, default="lead", server_default="lead"
    )
    tier: Mapped[str | None] = mapped_column(String(50), nullable=True)
    value: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)
    billing_period: Mapped[str | None] = mapped_column(
        String(20), default="monthly", server_default="monthly"
    )
    property_count: Mapped[int | None] = mapped_column(
        Integer, default=1, server_default="1"
    )
    property_count_range: Mapped[str | None] = mapped_column(String(50), nullable=True)
    lead_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    current_system: Mapped[str | None] = mapped_column(String(255), nullable=True)
    pain_point: Mapped[str | None] = mapped_column(Text, nullable=True)
    probability: Mapped[int | None] = mapped_column(
        Integer, default=10, server_default="10"
    )
    expected_close_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_step: Mapped[str | None] = mapped_column(Text, nullable=True)
    follow_up_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    lost_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_stage: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int | None] = mapped_column(Integer, default=0, server_default="0")
    gmail_account_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("gmail_accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    enquiry_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime | None] = _updated_at()


class ActivityModel(CrmBase):
    """A logged touchpoint (call, email, demo, meeting, note...)."""

    __tablename__ = "activities"
    __table_args__ = (
        Index("activities_deal_id_idx", "deal_id"),
        Index("activities_contact_id_idx", "contact_id"),
        Index("activities_created_at_idx", "created_at"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    deal_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("deals.id", ondelete="CASCADE"), nullable=True
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    outcome: Mapped[str | None] = mapped_column(String(50), nullable=True)
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()


class ReminderModel(CrmBase):
    """A dated follow-up task, optionally tied to a deal or contact."""

    __tablename__ = "reminders"
    __table_args__ = (
        Index("reminders_due_at_idx", "due_at"),
        Index("reminders_is_completed_idx", "is_completed"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    deal_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("deals.id", ondelete="CASCADE"), nullable=True
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_completed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    priority: Mapped[str | None] = mapped_column(
        String(20), default="medium", server_default="medium"
    )
    created_at: Mapped[datetime] = _created_at()


class TagModel(CrmBase):
    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = _uuid_pk()
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), default="gray", server_default="gray")
    created_at: Mapped[datetime] = _created_at()


class GmailAccountModel(CrmBase):
    """A connected Gmail inbox. Disconnecting is a soft delete (is_active)."""

    __tablename__ = "gmail_accounts"

    id: Mapped[uuid.UUID] = _uuid_pk()
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    expiry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))
    label_filter: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime | None] = _updated_at()


class ProcessedEmailModel(CrmBase):
    """Marker row for a Gmail message already handled by sync."""

    __tablename__ = "processed_emails"

    id: Mapped[uuid.UUID] = _uuid_pk()
    gmail_account_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("gmail_accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    gmail_message_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    from_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    deal_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("deals.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = _created_at()


class EmailDraftModel(CrmBase):
    """An AI-generated email draft and the inbound message it answers."""

    __tablename__ = "email_drafts"
    __table_args__ = (
        Index("email_drafts_status_idx", "status"),
        Index("email_drafts_created_at_idx", "created_at"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    processed_email_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("processed_emails.id", ondelete="SET NULL"),
        nullable=True,
    )
    gmail_account_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("gmail_accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    deal_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("deals.id", ondelete="SET NULL"), nullable=True
    )
    original_from_email: Mapped[str] = mapped_column(String(255), nullable=False)
    original_from_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    original_subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    original_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    draft_subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    draft_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    tone: Mapped[str | None] = mapped_column(
        String(50), default="professional", server_default="professional"
    )
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending"
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_gmail_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gmail_thread_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gmail_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime | None] = _updated_at()


class ChurnReasonModel(CrmBase):
    """Reason logged when a platform organization churns.

    ``organization_id`` points at the platform's organizations table, which
    lives on separate metadata, so it is not declared as a ForeignKey here.
    """

    __tablename__ = "churn_reasons"
    __table_args__ = (Index("churn_reasons_org_idx", "organization_id"),)

    id: Mapped[uuid.UUID] = _uuid_pk()
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    health_score_at_churn: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = _created_at()
